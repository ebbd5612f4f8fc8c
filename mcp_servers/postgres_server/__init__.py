"""
PostgreSQL MCP Server

Read-only SQL access to a PostgreSQL database over the Model Context
Protocol, with an optional SSH tunnel to reach private networks.
"""

from .postgres_server import PostgresMCPServer
from .database import DatabaseManager

__all__ = ['PostgresMCPServer', 'DatabaseManager']
