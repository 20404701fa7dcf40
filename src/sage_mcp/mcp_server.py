"""Sage Accounting MCP server (stdio transport).

Run:
  sage-accounting-mcp
  # or
  python -m sage_mcp.mcp_server

Logs go to stderr; stdout carries the MCP protocol stream.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Mapping
from typing import Any

import mcp.types as types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from sage_mcp.config import SageSettings
from sage_mcp.integrations.results import RequestOutcome
from sage_mcp.integrations.sage_client import SageClient
from sage_mcp.services.sage_tools import SAGE_TOOLS, SageTool, dispatch

logger = logging.getLogger(__name__)

SERVER_NAME = "sage-accounting-mcp"
SERVER_VERSION = "1.0.0"


class ToolCallError(Exception):
    """Raised inside the SDK call handler so it emits an `isError` result.

    The message is the complete error text shown to the caller.
    """


def list_tool_descriptors(tools: Mapping[str, SageTool] | None = None) -> list[types.Tool]:
    registry = SAGE_TOOLS if tools is None else tools
    return [
        types.Tool(name=tool.name, description=tool.description, inputSchema=tool.input_schema)
        for tool in registry.values()
    ]


def to_tool_response(outcome: RequestOutcome) -> dict[str, Any]:
    if outcome.ok:
        text = json.dumps(outcome.value, indent=2, ensure_ascii=False)
        return {"content": [{"type": "text", "text": text}], "isError": False}

    return {
        "content": [{"type": "text", "text": f"Error: {outcome.message}"}],
        "isError": True,
    }


def invoke_tool(
    client: SageClient, name: str, arguments: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Run one tool call and wrap the outcome in the MCP result shape. Never raises."""

    outcome = dispatch(client, name, arguments or {})
    if not outcome.ok:
        logger.warning("Tool %s failed (%s): %s", name, outcome.kind.value, outcome.message)
    return to_tool_response(outcome)


def create_server(client: SageClient) -> Server:
    server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return list_tool_descriptors()

    @server.call_tool()
    async def handle_call_tool(
        name: str, arguments: dict[str, Any] | None
    ) -> list[types.TextContent]:
        # requests is blocking; keep the protocol loop responsive.
        response = await asyncio.to_thread(invoke_tool, client, name, arguments)
        texts = [item["text"] for item in response["content"]]
        if response["isError"]:
            raise ToolCallError("\n".join(texts))
        return [types.TextContent(type="text", text=text) for text in texts]

    return server


async def serve(client: SageClient) -> None:
    server = create_server(client)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    settings = SageSettings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not settings.access_token:
        logger.warning("SAGE_ACCESS_TOKEN is not set; tool calls will fail until it is configured")

    client = SageClient.from_settings(settings)
    logger.info("🚀 Sage Accounting MCP server started (%s, %s)", settings.region, client.base_url)
    try:
        asyncio.run(serve(client))
    finally:
        logger.info("👋 Sage Accounting MCP server stopped")


if __name__ == "__main__":
    main()
