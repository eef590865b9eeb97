"""Agent Memory MCP Server -- stdio MCP server exposing tools, resources and prompts."""

import asyncio
import atexit
import json
import logging
import sys
from typing import Iterable

from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.types import (
    GetPromptResult,
    Prompt,
    PromptArgument,
    PromptMessage,
    Resource,
    TextContent,
    Tool,
)

from agent_memory import prompts as _prompts
from agent_memory.server.handlers import HANDLERS
from agent_memory.server.tool_schemas import TOOL_SCHEMAS

SERVER_NAME = "agent-memory-fts"

logger = logging.getLogger("agent_memory.server")


def _close_on_exit():
    """Close the memory service when the MCP server process exits."""
    try:
        from agent_memory.bridge import _close_service

        _close_service()
    except Exception as e:
        logger.debug("Close on exit failed: %s", e)


atexit.register(_close_on_exit)

server = Server(SERVER_NAME)


class ToolCallError(Exception):
    """Raised to make the MCP server report a tool result with isError set."""


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@server.list_tools()
async def list_tools() -> list[Tool]:
    """Return all memory tools."""
    return [
        Tool(
            name=schema["name"],
            description=schema["description"],
            inputSchema=schema["inputSchema"],
        )
        for schema in TOOL_SCHEMAS
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Dispatch tool call to the appropriate handler."""
    handler = HANDLERS.get(name)
    if not handler:
        raise ToolCallError(f"Unknown tool: {name}")

    result = await handler(arguments or {})
    # Extract text from MCP response format
    content_list = result.get("content", [{}])
    text = content_list[0].get("text", str(result)) if content_list else str(result)
    if result.get("isError"):
        raise ToolCallError(text)
    return [TextContent(type="text", text=text)]


# ---------------------------------------------------------------------------
# Resources -- memory://database/{stats,all,schema}
# ---------------------------------------------------------------------------

RESOURCES = [
    {
        "uri": "memory://database/stats",
        "name": "Database Statistics",
        "description": "Memory and keyword counts, date range, top keywords and database size",
        "mimeType": "application/json",
    },
    {
        "uri": "memory://database/all",
        "name": "All Memories",
        "description": "Export of every memory with its keywords",
        "mimeType": "application/json",
    },
    {
        "uri": "memory://database/schema",
        "name": "Database Schema",
        "description": "SQL DDL of the memory database",
        "mimeType": "text/plain",
    },
]


def read_resource_text(uri: str) -> str:
    """Render a resource body. Raises ValueError for unknown URIs."""
    from agent_memory import bridge

    if uri == "memory://database/stats":
        return json.dumps(bridge.database_stats(), indent=2, ensure_ascii=False)
    if uri == "memory://database/all":
        return json.dumps(bridge.export_memories(), indent=2, ensure_ascii=False)
    if uri == "memory://database/schema":
        return bridge.database_schema()
    raise ValueError(f"Unknown resource: {uri}")


@server.list_resources()
async def list_resources() -> list[Resource]:
    return [
        Resource(
            uri=r["uri"],
            name=r["name"],
            description=r["description"],
            mimeType=r["mimeType"],
        )
        for r in RESOURCES
    ]


@server.read_resource()
async def read_resource(uri) -> Iterable[ReadResourceContents]:
    uri = str(uri)
    mime = next((r["mimeType"] for r in RESOURCES if r["uri"] == uri), "text/plain")
    return [ReadResourceContents(content=read_resource_text(uri), mime_type=mime)]


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


@server.list_prompts()
async def list_prompts() -> list[Prompt]:
    return [
        Prompt(
            name=p["name"],
            description=p["description"],
            arguments=[PromptArgument(name=a, required=False) for a in p["arguments"]],
        )
        for p in _prompts.list_prompts()
    ]


@server.get_prompt()
async def get_prompt(name: str, arguments: dict[str, str] | None) -> GetPromptResult:
    try:
        rendered = _prompts.render(name, arguments)
    except KeyError:
        raise ValueError(f"Unknown prompt: {name}")
    # MCP prompt messages carry no system role: the instruction goes first
    return GetPromptResult(
        description=rendered["description"],
        messages=[
            PromptMessage(role="user", content=TextContent(type="text", text=rendered["system"])),
            PromptMessage(role="user", content=TextContent(type="text", text=rendered["user"])),
        ],
    )


async def main():
    """Entry point for the stdio MCP server."""
    from agent_memory.config import load_settings

    logging.basicConfig(level=load_settings().log_level, stream=sys.stderr)
    logger.info("Starting %s MCP server...", SERVER_NAME)

    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


if __name__ == "__main__":
    asyncio.run(main())
