"""
List Tables Tool - List all tables in the database
"""

from typing import Any, Dict

from ..database import DatabaseManager
from ..formatter import FORMAT_SCHEMA

DEFAULT_SCHEMA = 'public'

TOOL_DEFINITION = {
    "name": "list_tables",
    "description": "List all tables in the PostgreSQL database. Returns table names, schemas, "
                   "and types (BASE TABLE or VIEW).",
    "inputSchema": {
        "type": "object",
        "properties": {
            "schema": {
                "type": "string",
                "description": "Optional: Filter tables by schema name (default: public)"
            },
            "format": FORMAT_SCHEMA
        }
    }
}

OUTPUT_FIELDS = ('tableCount', 'tables')

LIST_TABLES_SQL = """
    SELECT
        table_schema AS schema,
        table_name AS "tableName",
        table_type AS "tableType"
    FROM information_schema.tables
    WHERE table_schema = $1
    ORDER BY table_schema, table_name
"""


async def handle_list_tables_tool(database: DatabaseManager, arguments: Dict[str, Any],
                                  ready_timeout: float = 10.0) -> Dict[str, Any]:
    """List tables and views of one schema"""
    try:
        schema = arguments.get('schema') or DEFAULT_SCHEMA
        pool = await database.wait_for_ready(ready_timeout)

        tables = await database.executor.fetch(pool, LIST_TABLES_SQL, schema)

        return {
            'success': True,
            'tables': tables,
            'tableCount': len(tables)
        }
    except Exception as e:
        return {
            'success': False,
            'error': str(e)
        }
