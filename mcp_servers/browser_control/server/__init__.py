"""Tool contract, registry and result rendering for the browser control MCP server."""
