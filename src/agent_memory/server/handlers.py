"""
Agent Memory MCP Handlers -- Maps tool names to async handler functions.

Each handler validates its arguments, delegates to agent_memory.bridge and
returns an MCP-compatible response dict. Store errors become ``isError``
responses whose text starts with ``Error [<kind>]:``.
"""

import json
import logging

from agent_memory.errors import MemoryStoreError
from agent_memory.schemas import (
    CheckIndexInput,
    InsertMemoryInput,
    ListMemoriesInput,
    MemoryIdInput,
    ReadFileInput,
    SearchMemoriesInput,
    UpdateMemoryInput,
    parse_arguments,
)

logger = logging.getLogger("agent_memory.server.handlers")


# ============================================================================
# Response Helpers
# ============================================================================


def mcp_response(text: str) -> dict:
    """Build a successful MCP response."""
    return {"content": [{"type": "text", "text": str(text)}]}


def mcp_json(data) -> dict:
    """Build a successful MCP response carrying pretty-printed JSON."""
    return mcp_response(json.dumps(data, indent=2, ensure_ascii=False))


def mcp_error(text: str, kind: str = "internal") -> dict:
    """Build an error MCP response."""
    return {"content": [{"type": "text", "text": f"Error [{kind}]: {text}"}], "isError": True}


def _store_error(tool: str, e: Exception) -> dict:
    if isinstance(e, MemoryStoreError):
        logger.info("%s rejected: %s (%s)", tool, e.message, e.kind)
        return mcp_error(e.message, e.kind)
    logger.error("%s failed: %s", tool, e, exc_info=True)
    return mcp_error(f"{tool} failed: {e}")


# ============================================================================
# Handler: insert_memory
# ============================================================================


async def handle_insert_memory(arguments: dict) -> dict:
    """Write content to a new dated file and index its summary + keywords."""
    try:
        args = parse_arguments(InsertMemoryInput, arguments)
        from agent_memory.bridge import insert_memory

        return mcp_json(insert_memory(args.content, args.summary, args.keywords))
    except Exception as e:
        return _store_error("insert_memory", e)


# ============================================================================
# Handler: update_memory
# ============================================================================


async def handle_update_memory(arguments: dict) -> dict:
    try:
        args = parse_arguments(UpdateMemoryInput, arguments)
        from agent_memory.bridge import update_memory

        result = update_memory(
            args.id,
            content=args.content,
            summary=args.summary,
            keywords=args.keywords,
        )
        return mcp_json(result)
    except Exception as e:
        return _store_error("update_memory", e)


# ============================================================================
# Handler: search_memories
# ============================================================================


async def handle_search_memories(arguments: dict) -> dict:
    """Ranked full-text search with keyword boosting."""
    try:
        args = parse_arguments(SearchMemoriesInput, arguments)
        from agent_memory.bridge import search_memories

        result = search_memories(
            args.query,
            keywords=args.keywords,
            limit=args.limit,
            summary_weight=args.summary_weight,
            keyword_weight=args.keyword_weight,
            keyword_boost=args.keyword_boost,
        )
        return mcp_json(result)
    except Exception as e:
        return _store_error("search_memories", e)


# ============================================================================
# Handlers: get_memory / delete_memory / list_memories
# ============================================================================


async def handle_get_memory(arguments: dict) -> dict:
    try:
        args = parse_arguments(MemoryIdInput, arguments)
        from agent_memory.bridge import get_memory

        return mcp_json(get_memory(args.id))
    except Exception as e:
        return _store_error("get_memory", e)


async def handle_delete_memory(arguments: dict) -> dict:
    """Delete a memory by ID. The content file is kept."""
    try:
        args = parse_arguments(MemoryIdInput, arguments)
        from agent_memory.bridge import delete_memory

        return mcp_response(delete_memory(args.id)["message"])
    except Exception as e:
        return _store_error("delete_memory", e)


async def handle_list_memories(arguments: dict) -> dict:
    try:
        args = parse_arguments(ListMemoriesInput, arguments)
        from agent_memory.bridge import list_memories

        return mcp_json(list_memories(limit=args.limit, offset=args.offset))
    except Exception as e:
        return _store_error("list_memories", e)


# ============================================================================
# Handlers: maintenance
# ============================================================================


async def handle_optimize_index(arguments: dict) -> dict:
    try:
        from agent_memory.bridge import optimize_index

        return mcp_response(optimize_index()["message"])
    except Exception as e:
        return _store_error("optimize_index", e)


async def handle_check_index(arguments: dict) -> dict:
    """Consistency sweep over the full-text index, optionally repairing it."""
    try:
        args = parse_arguments(CheckIndexInput, arguments)
        from agent_memory.bridge import check_index

        return mcp_json(check_index(repair=args.repair))
    except Exception as e:
        return _store_error("check_index", e)


# ============================================================================
# Handler: read_file
# ============================================================================


async def handle_read_file(arguments: dict) -> dict:
    """Capped read of a content file inside the content directory."""
    try:
        args = parse_arguments(ReadFileInput, arguments)
        from agent_memory.bridge import read_file

        return mcp_json(read_file(args.file_path))
    except Exception as e:
        return _store_error("read_file", e)


# ============================================================================
# Handler Registry
# ============================================================================

HANDLERS = {
    "insert_memory": handle_insert_memory,
    "update_memory": handle_update_memory,
    "search_memories": handle_search_memories,
    "get_memory": handle_get_memory,
    "delete_memory": handle_delete_memory,
    "list_memories": handle_list_memories,
    "optimize_index": handle_optimize_index,
    "read_file": handle_read_file,
    "check_index": handle_check_index,
}
