"""
Query Tool - Execute read-only SQL queries
"""

import logging
from typing import Any, Dict

from security.pagination import apply_pagination, validate_pagination
from security.query_validator import QUERY_LIMITS, QueryValidationError, starts_with_read_verb, validate_query

from ..database import DatabaseManager
from ..formatter import FORMAT_SCHEMA

logger = logging.getLogger(__name__)

TOOL_DEFINITION = {
    "name": "query",
    "description": (
        "Execute a read-only SQL query against the PostgreSQL database. Only SELECT queries are allowed. "
        f"Results are limited to {QUERY_LIMITS.max_rows} rows and queries timeout after "
        f"{QUERY_LIMITS.timeout_ms // 1000} seconds. "
        "Supports pagination with limit and offset parameters."
    ),
    "inputSchema": {
        "type": "object",
        "properties": {
            "sql": {
                "type": "string",
                "description": "The SQL SELECT query to execute. Must be a read-only query "
                               "(no INSERT, UPDATE, DELETE, etc.)"
            },
            "limit": {
                "type": "integer",
                "description": f"Number of rows to return (default: {QUERY_LIMITS.max_rows}, "
                               f"max: {QUERY_LIMITS.max_rows})"
            },
            "offset": {
                "type": "integer",
                "description": "Number of rows to skip for pagination (default: 0)"
            },
            "format": FORMAT_SCHEMA
        },
        "required": ["sql"]
    }
}

OUTPUT_FIELDS = ('rowCount', 'limitApplied', 'pagination', 'data')


async def handle_query_tool(database: DatabaseManager, arguments: Dict[str, Any],
                            ready_timeout: float = 10.0) -> Dict[str, Any]:
    """
    Handle the query tool execution

    Args:
        database: Lifecycle manager owning the pool
        arguments: {sql, limit?, offset?}
        ready_timeout: Seconds to wait for a startup still in progress

    Returns:
        {success, data, rowCount, limitApplied, pagination} or {success: False, error}
    """
    try:
        sql = arguments.get('sql')
        if not sql or not isinstance(sql, str):
            return {
                'success': False,
                'error': 'Invalid input: sql parameter is required and must be a string'
            }

        limits = database.limits
        window = validate_pagination(arguments.get('limit'), arguments.get('offset'), limits)

        validation = validate_query(sql, insecure=database.insecure, limits=limits)
        if not validation.is_valid:
            return {
                'success': False,
                'error': validation.error
            }

        pool = await database.wait_for_ready(ready_timeout)

        # One extra row tells whether another page exists. Write statements
        # (insecure mode only) cannot take a LIMIT clause.
        if starts_with_read_verb(sql):
            statement = apply_pagination(sql, window.limit + 1, window.offset)
        else:
            statement = sql.strip()

        results, truncated = await database.executor.execute_page(pool, statement)

        has_more = truncated or len(results) > window.limit
        data = results[:window.limit]

        return {
            'success': True,
            'data': data,
            'rowCount': len(data),
            'limitApplied': window.limit < limits.max_rows,
            'pagination': {
                'limit': window.limit,
                'offset': window.offset,
                'hasMore': has_more
            }
        }

    except QueryValidationError as e:
        return {
            'success': False,
            'error': str(e)
        }
    except Exception as e:
        logger.error(f"Query tool failed: {e}")
        return {
            'success': False,
            'error': str(e)
        }
