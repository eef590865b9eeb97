"""MCP surface for the agent memory store: stdio and Streamable HTTP servers."""
