"""Integration adapters for the Sage Accounting API.

Keep these modules small and testable:
- No MCP request/response objects
- Pure IO + payload helpers
"""
