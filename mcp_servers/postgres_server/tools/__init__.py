"""
Tool handlers exposed by the PostgreSQL MCP server

Each module defines a TOOL_DEFINITION (name, description, JSON schema),
the OUTPUT_FIELDS returned to the client and an async handler that
returns a result dict with a 'success' flag instead of raising.
"""

from . import describe_table_tool, list_tables_tool, query_tool, version_tool

TOOL_MODULES = (query_tool, list_tables_tool, describe_table_tool, version_tool)
