"""
Describe Table Tool - Get detailed schema information for a table

Runs three catalog queries (columns, indexes, foreign keys), all bound by
parameters so table and schema names never reach the SQL text.
"""

from typing import Any, Dict

from ..database import DatabaseManager
from ..formatter import FORMAT_SCHEMA

DEFAULT_SCHEMA = 'public'

TOOL_DEFINITION = {
    "name": "describe_table",
    "description": "Get detailed schema information about a specific table, including columns, "
                   "data types, constraints, indexes, and foreign keys.",
    "inputSchema": {
        "type": "object",
        "properties": {
            "table": {
                "type": "string",
                "description": "The name of the table to describe"
            },
            "schema": {
                "type": "string",
                "description": "Optional: The schema name (default: public)"
            },
            "format": FORMAT_SCHEMA
        },
        "required": ["table"]
    }
}

OUTPUT_FIELDS = ('schema', 'tableName', 'columns', 'indexes', 'foreignKeys')

COLUMNS_SQL = """
    SELECT
        column_name AS "columnName",
        data_type AS "dataType",
        is_nullable AS "isNullable",
        column_default AS "columnDefault",
        character_maximum_length AS "characterMaximumLength",
        numeric_precision AS "numericPrecision",
        numeric_scale AS "numericScale"
    FROM information_schema.columns
    WHERE table_schema = $1
      AND table_name = $2
    ORDER BY ordinal_position
"""

INDEXES_SQL = """
    SELECT
        i.relname AS "indexName",
        a.attname AS "columnName",
        ix.indisunique AS "isUnique",
        ix.indisprimary AS "isPrimary"
    FROM pg_class t
    JOIN pg_index ix ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey)
    JOIN pg_namespace n ON n.oid = t.relnamespace
    WHERE n.nspname = $1
      AND t.relname = $2
    ORDER BY i.relname, a.attnum
"""

FOREIGN_KEYS_SQL = """
    SELECT
        tc.constraint_name AS "constraintName",
        kcu.column_name AS "columnName",
        ccu.table_name AS "referencedTable",
        ccu.column_name AS "referencedColumn"
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
      ON tc.constraint_name = kcu.constraint_name
     AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage ccu
      ON ccu.constraint_name = tc.constraint_name
     AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
      AND tc.table_schema = $1
      AND tc.table_name = $2
    ORDER BY tc.constraint_name
"""


async def handle_describe_table_tool(database: DatabaseManager, arguments: Dict[str, Any],
                                     ready_timeout: float = 10.0) -> Dict[str, Any]:
    """
    Handle the describe_table tool execution

    Returns:
        {success, schema, tableName, columns, indexes, foreignKeys} or
        {success: False, error} when the table does not exist
    """
    try:
        table_name = arguments.get('table')
        if not table_name or not isinstance(table_name, str):
            return {
                'success': False,
                'error': 'Invalid input: table parameter is required and must be a string'
            }

        schema = arguments.get('schema') or DEFAULT_SCHEMA
        pool = await database.wait_for_ready(ready_timeout)
        executor = database.executor

        columns = await executor.fetch(pool, COLUMNS_SQL, schema, table_name)
        if not columns:
            return {
                'success': False,
                'error': f"Table '{schema}.{table_name}' not found"
            }

        indexes = await executor.fetch(pool, INDEXES_SQL, schema, table_name)
        foreign_keys = await executor.fetch(pool, FOREIGN_KEYS_SQL, schema, table_name)

        return {
            'success': True,
            'schema': schema,
            'tableName': table_name,
            'columns': columns,
            'indexes': indexes,
            'foreignKeys': foreign_keys
        }
    except Exception as e:
        return {
            'success': False,
            'error': str(e)
        }
