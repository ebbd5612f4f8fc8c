"""
PostgreSQL MCP server - Security Package

Query validation, pagination bounds and the security audit trail that
every statement passes through before it reaches the database.
"""
