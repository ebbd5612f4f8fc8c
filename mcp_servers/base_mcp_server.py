"""
Base MCP Server Implementation

This module provides the foundational MCP server class that specialized
servers inherit from, ensuring consistent JSON-RPC 2.0 protocol handling,
argument validation and error reporting.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union
from jsonrpc.jsonrpc2 import JSONRPC20Response

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

# JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class MCPServerError(Exception):
    """Base exception for MCP server errors"""
    code = INTERNAL_ERROR


class MCPValidationError(MCPServerError):
    """Request validation error"""
    code = INVALID_PARAMS


class MCPMethodNotFoundError(MCPServerError):
    """Unknown JSON-RPC method"""
    code = METHOD_NOT_FOUND


class MCPInvalidRequestError(MCPServerError):
    """Message is not a JSON-RPC 2.0 request object"""
    code = INVALID_REQUEST


class BaseMCPServer(ABC):
    """
    Base MCP Server class providing common functionality for all MCP servers.

    Implements the Model Context Protocol request routing (initialize,
    tools/list, tools/call, ping), tool registration and schema checks.
    Subclasses register their tools and implement _execute_tool.
    """

    def __init__(self, name: str, version: str = "1.0.0", protocol_version: str = PROTOCOL_VERSION):
        self.name = name
        self.version = version
        self.protocol_version = protocol_version
        self.tools = {}
        self._initialize_tools()
        logger.info(f"Initialized MCP Server: {name} v{version}")

    @abstractmethod
    def _initialize_tools(self):
        """Initialize server-specific tools and their schemas"""
        pass

    def get_server_info(self) -> Dict[str, Any]:
        """Return server information following MCP specification"""
        return {
            "name": self.name,
            "version": self.version
        }

    def get_capabilities(self) -> Dict[str, Any]:
        return {
            "tools": {"listChanged": False}
        }

    def list_tools(self) -> List[Dict[str, Any]]:
        """Return list of available tools with their schemas"""
        return list(self.tools.values())

    async def handle_request(self, request: Union[Dict, str]) -> Optional[JSONRPC20Response]:
        """
        Handle incoming MCP request and route to appropriate handler

        Args:
            request: JSON-RPC 2.0 request (dict or JSON string)

        Returns:
            JSON-RPC 2.0 response, or None for notifications
        """
        request_id = None
        try:
            if isinstance(request, str):
                try:
                    request = json.loads(request)
                except ValueError as e:
                    return self.parse_error(str(e))

            if not isinstance(request, dict) or not isinstance(request.get("method"), str):
                raise MCPInvalidRequestError("Invalid request: expected a JSON-RPC 2.0 request object")

            method = request["method"]
            params = request.get("params") or {}
            request_id = request.get("id")
            is_notification = "id" not in request

            logger.debug(f"Handling MCP request: {method}")

            if is_notification:
                self._handle_notification(method, params)
                return None

            # Route to appropriate handler
            if method == "initialize":
                result = self._handle_initialize(params)
            elif method == "tools/list":
                result = {"tools": self.list_tools()}
            elif method == "tools/call":
                result = await self._handle_tool_call(params)
            elif method == "ping":
                result = {}
            else:
                raise MCPMethodNotFoundError(f"Method not found: {method}")

            return JSONRPC20Response(result=result, _id=request_id)

        except MCPServerError as e:
            logger.error(f"MCP Server Error: {e}")
            return self._error_response(e.code, str(e), request_id)
        except Exception as e:
            logger.error(f"Unexpected error in MCP server {self.name}: {e}")
            return self._error_response(INTERNAL_ERROR, "Internal server error", request_id,
                                        error=str(e))

    def parse_error(self, detail: str) -> JSONRPC20Response:
        """Response for input that is not a JSON document"""
        return self._error_response(PARSE_ERROR, f"Parse error: {detail}", None)

    def _error_response(self, code: int, message: str, request_id: Any, **data) -> JSONRPC20Response:
        return JSONRPC20Response(error={
            "code": code,
            "message": message,
            "data": {"server": self.name, **data}
        }, _id=request_id)

    def _handle_notification(self, method: str, params: Dict[str, Any]):
        """Notifications (no id) are acknowledged by silence"""
        logger.debug(f"Received notification: {method}")

    def _handle_initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Handle MCP initialize request"""
        client_info = params.get("clientInfo") or {}
        if client_info:
            logger.info(f"Client connected: {client_info.get('name')} {client_info.get('version', '')}".rstrip())
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": self.get_capabilities(),
            "serverInfo": self.get_server_info()
        }

    async def _handle_tool_call(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Handle tool call request"""
        tool_name = params.get("name")
        arguments = params.get("arguments") or {}

        if tool_name not in self.tools:
            raise MCPValidationError(f"Unknown tool: {tool_name}")

        if not isinstance(arguments, dict):
            raise MCPValidationError("Tool arguments must be an object")

        # Validate arguments against tool schema
        self._validate_tool_arguments(tool_name, arguments)

        # Execute tool
        result = await self._execute_tool(tool_name, arguments)

        return {
            "content": [
                {
                    "type": "text",
                    "text": self.format_tool_result(tool_name, arguments, result)
                }
            ]
        }

    def format_tool_result(self, tool_name: str, arguments: Dict[str, Any], result: Any) -> str:
        """Render a tool result as the text content of the response"""
        return json.dumps(result, default=str)

    def _validate_tool_arguments(self, tool_name: str, arguments: Dict[str, Any]):
        """Validate tool arguments against schema"""
        tool_schema = self.tools[tool_name]["inputSchema"]
        properties = tool_schema.get("properties", {})
        required_fields = tool_schema.get("required", [])

        # Check required fields
        for field in required_fields:
            if field not in arguments:
                raise MCPValidationError(f"Missing required argument: {field}")

        # Validate field types
        for field, value in arguments.items():
            if field in properties and value is not None:
                self._validate_field_value(field, value, properties[field])

    def _validate_field_value(self, field_name: str, value: Any, schema: Dict[str, Any]):
        """Validate individual field value against schema"""
        expected_type = schema.get("type")

        if expected_type == "string" and not isinstance(value, str):
            raise MCPValidationError(f"Field {field_name} must be a string")
        elif expected_type == "integer" and (isinstance(value, bool) or not isinstance(value, (int, float))
                                             or (isinstance(value, float) and not value.is_integer())):
            raise MCPValidationError(f"Field {field_name} must be an integer")
        elif expected_type == "number" and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise MCPValidationError(f"Field {field_name} must be a number")
        elif expected_type == "boolean" and not isinstance(value, bool):
            raise MCPValidationError(f"Field {field_name} must be a boolean")
        elif expected_type == "array" and not isinstance(value, list):
            raise MCPValidationError(f"Field {field_name} must be an array")
        elif expected_type == "object" and not isinstance(value, dict):
            raise MCPValidationError(f"Field {field_name} must be an object")

    @abstractmethod
    async def _execute_tool(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Execute the specified tool with given arguments"""
        pass

    def register_tool(self, name: str, description: str, input_schema: Dict[str, Any]):
        """Register a tool with the server"""
        self.tools[name] = {
            "name": name,
            "description": description,
            "inputSchema": input_schema
        }
        logger.debug(f"Registered tool: {name}")
