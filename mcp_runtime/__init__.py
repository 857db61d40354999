"""MCP server runtime: protocol engine, capability registries and SSE transport."""

__version__ = "0.1.0"
