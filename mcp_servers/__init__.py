"""
MCP Servers Package

This package contains the Model Context Protocol (MCP) server base class,
the stdio transport and the PostgreSQL server built on them.

MCP Servers:
- PostgreSQL Server: Read-only SQL queries and schema inspection, with
  result limits, query timeouts and optional SSH tunneling

Each server acts as a secure gateway, implementing the MCP protocol
for standardized communication with an AI client.
"""
