"""traitctl MCP surface (optional ``mcp`` extra)."""
