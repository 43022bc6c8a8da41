"""MCP stdio server exposing the cookie sync engine as tools."""
