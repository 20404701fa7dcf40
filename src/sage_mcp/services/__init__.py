"""MCP tool definitions backed by the Sage integrations."""
