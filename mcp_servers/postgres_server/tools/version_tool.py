"""
Version Tool - Get MCP server version information
"""

from typing import Any, Dict

from server_project import settings

from ..formatter import FORMAT_SCHEMA

TOOL_DEFINITION = {
    "name": "version",
    "description": "Get the version information of the PostgreSQL MCP server.",
    "inputSchema": {
        "type": "object",
        "properties": {
            "format": FORMAT_SCHEMA
        }
    }
}

OUTPUT_FIELDS = ('name', 'version', 'description')


async def handle_version_tool(database=None, arguments: Dict[str, Any] = None,
                              ready_timeout: float = 10.0) -> Dict[str, Any]:
    return {
        'success': True,
        'name': settings.SERVER_NAME,
        'version': settings.SERVER_VERSION,
        'description': settings.SERVER_DESCRIPTION
    }
