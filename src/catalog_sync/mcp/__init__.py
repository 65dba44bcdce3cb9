"""MCP server exposing the change router as tools."""
