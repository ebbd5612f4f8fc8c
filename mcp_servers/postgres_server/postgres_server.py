"""
PostgreSQL MCP Server

Exposes query, list_tables, describe_table and version tools over the
Model Context Protocol. Every tool borrows the pool from one shared
DatabaseManager; statements submitted through the query tool go through
the read-only gate and the pagination rewriter first.
"""

import logging
from typing import Any, Dict, Optional

from server_project import settings

from ..base_mcp_server import BaseMCPServer, MCPServerError, MCPValidationError
from .database import DatabaseManager
from .formatter import FormatError, format_output, resolve_format
from .tools import describe_table_tool, list_tables_tool, query_tool, version_tool

logger = logging.getLogger(__name__)


class PostgresMCPServer(BaseMCPServer):
    """
    PostgreSQL MCP Server

    Tool handlers never raise; a result with success=False is turned into
    a JSON-RPC error carrying the failure reason.
    """

    def __init__(self, database: Optional[DatabaseManager] = None,
                 ready_timeout: Optional[float] = None):
        self.database = database or DatabaseManager(close_timeout=settings.DB_CLOSE_TIMEOUT_MS / 1000)
        self.ready_timeout = ready_timeout if ready_timeout is not None else settings.DB_READY_TIMEOUT_MS / 1000
        self._handlers = {
            query_tool.TOOL_DEFINITION["name"]: (query_tool.handle_query_tool, query_tool.OUTPUT_FIELDS),
            list_tables_tool.TOOL_DEFINITION["name"]: (list_tables_tool.handle_list_tables_tool,
                                                       list_tables_tool.OUTPUT_FIELDS),
            describe_table_tool.TOOL_DEFINITION["name"]: (describe_table_tool.handle_describe_table_tool,
                                                          describe_table_tool.OUTPUT_FIELDS),
            version_tool.TOOL_DEFINITION["name"]: (version_tool.handle_version_tool, version_tool.OUTPUT_FIELDS),
        }
        super().__init__(settings.SERVER_NAME, settings.SERVER_VERSION, settings.PROTOCOL_VERSION)

    def _initialize_tools(self):
        """Initialize PostgreSQL tools"""
        for definition in (query_tool.TOOL_DEFINITION,
                           list_tables_tool.TOOL_DEFINITION,
                           describe_table_tool.TOOL_DEFINITION,
                           version_tool.TOOL_DEFINITION):
            self.register_tool(
                name=definition["name"],
                description=definition["description"],
                input_schema=definition["inputSchema"]
            )

    async def _execute_tool(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Execute PostgreSQL tools"""
        if tool_name not in self._handlers:
            raise MCPServerError(f"Unknown tool: {tool_name}")

        try:
            resolve_format(arguments.get("format"))
        except FormatError as e:
            raise MCPValidationError(str(e))

        handler, output_fields = self._handlers[tool_name]
        result = await handler(self.database, arguments, self.ready_timeout)

        if not result.get("success"):
            error = result.get("error", "Unknown error")
            logger.error(f"Error executing tool {tool_name}: {error}")
            raise MCPServerError(error)

        return {field: result[field] for field in output_fields}

    def format_tool_result(self, tool_name: str, arguments: Dict[str, Any], result: Any) -> str:
        return format_output(result, arguments.get("format"))
