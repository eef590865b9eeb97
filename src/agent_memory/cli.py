"""Agent Memory CLI -- memory commands, maintenance, and server management."""

import argparse
import json
import logging
import sys
from pathlib import Path

from agent_memory.errors import MemoryStoreError

logger = logging.getLogger("agent_memory.cli")


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _read_content(args) -> str:
    """Content from --file, '-' (stdin) or the positional words."""
    if getattr(args, "file", None):
        return Path(args.file).read_text(encoding="utf-8")
    words = getattr(args, "content", None) or []
    if words == ["-"]:
        return sys.stdin.read()
    return " ".join(words)


def _keywords(args):
    raw = getattr(args, "keywords", None)
    if raw is None:
        return None
    return raw.split(",")


# ---------------------------------------------------------------------------
# Memory commands
# ---------------------------------------------------------------------------


def cmd_insert(args):
    """Insert a memory."""
    content = _read_content(args)
    if not content:
        print("Usage: agent-memory insert <text> -s SUMMARY [-k a,b] (or --file PATH, or '-' for stdin)", file=sys.stderr)
        sys.exit(1)

    from agent_memory.bridge import insert_memory

    result = insert_memory(content, args.summary, _keywords(args) or [])
    print(f"Inserted memory {result['id']}: {result['file_path']}")


def cmd_update(args):
    """Update a memory's content, summary or keywords."""
    content = _read_content(args) or None

    from agent_memory.bridge import update_memory

    result = update_memory(args.id, content=content, summary=args.summary, keywords=_keywords(args))
    print(f"Updated memory {result['id']}: {result['file_path']}")


def cmd_get(args):
    from agent_memory.bridge import get_memory

    _print_json(get_memory(args.id))


def cmd_search(args):
    """Ranked full-text search."""
    query_text = " ".join(args.query_text)
    if not query_text.strip():
        print("Usage: agent-memory search <search text>", file=sys.stderr)
        sys.exit(1)

    from agent_memory.bridge import search_memories

    result = search_memories(
        query_text,
        keywords=_keywords(args) or [],
        limit=args.limit,
        summary_weight=args.summary_weight,
        keyword_weight=args.keyword_weight,
        keyword_boost=args.boost,
    )
    if args.json:
        _print_json(result)
        return
    if not result["results"]:
        print(f'No results for "{query_text}"')
        return
    for r in result["results"]:
        print(f"[{r['id']}] {r['final_score']:.3f}  {r['summary'][:100]}")
        print(f"      {r['file_path']}")
    print(f"\n{len(result['results'])} result(s) of {result['total_found']} candidate(s)")


def cmd_list(args):
    from agent_memory.bridge import list_memories

    page = list_memories(limit=args.limit, offset=args.offset)
    if args.json:
        _print_json(page)
        return
    for m in page["memories"]:
        kws = ", ".join(m["keywords"])
        print(f"[{m['id']}] {m['created_at'][:19]}  {m['summary'][:80]}" + (f"  ({kws})" if kws else ""))
    p = page["pagination"]
    print(f"\n{len(page['memories'])} of {p['total']} (offset {p['offset']}{', more' if p['has_more'] else ''})")


def cmd_delete(args):
    from agent_memory.bridge import delete_memory

    print(delete_memory(args.id)["message"])


def cmd_read(args):
    """Print a content file from inside the content directory."""
    from agent_memory.bridge import read_file

    result = read_file(args.path)
    if result["file_exists"] is False:
        print(f"File not found: {args.path}", file=sys.stderr)
        sys.exit(1)
    print(result["file_contents"])


# ---------------------------------------------------------------------------
# Maintenance and introspection
# ---------------------------------------------------------------------------


def cmd_optimize(args):
    from agent_memory.bridge import optimize_index

    print(optimize_index()["message"])


def cmd_check_index(args):
    """Verify the full-text index against memory metadata."""
    from agent_memory.bridge import check_index

    report = check_index(repair=args.repair)
    _print_json(report)
    if not report["consistent"] and not args.repair:
        sys.exit(1)


def cmd_sweep(args):
    from agent_memory.bridge import sweep_staged

    result = sweep_staged(args.grace)
    print(f"Removed {result['removed']} staged file(s)")


def cmd_stats(args):
    from agent_memory.bridge import database_stats

    _print_json(database_stats())


def cmd_export(args):
    from agent_memory.bridge import export_memories

    data = export_memories()
    if args.output:
        Path(args.output).write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        print(f"Exported {data['total_memories']} memories to {args.output}")
    else:
        _print_json(data)


def cmd_schema(args):
    from agent_memory.bridge import database_schema

    print(database_schema())


def cmd_serve(args):
    """Run the MCP server (stdio, or Streamable HTTP with --http)."""
    import asyncio

    if args.http:
        from agent_memory.server.http_server import get_or_create_api_key, run_http

        api_key = None if args.no_auth else get_or_create_api_key()
        if api_key:
            print(f"API key: {api_key}", file=sys.stderr)
        print(f"Serving MCP on http://{args.host}:{args.port}/mcp", file=sys.stderr)
        asyncio.run(run_http(args.host, args.port, api_key))
        return

    from agent_memory.server.mcp_server import main as serve_stdio

    asyncio.run(serve_stdio())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-memory",
        description="Agent Memory -- full-text searchable memory store for AI agents",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- Memory commands ---
    insert_parser = subparsers.add_parser("insert", help="Insert a memory")
    insert_parser.add_argument("content", nargs="*", help="Content text ('-' reads stdin)")
    insert_parser.add_argument("--file", "-f", help="Read content from a file")
    insert_parser.add_argument("--summary", "-s", required=True, help="Summary (indexed, names the file)")
    insert_parser.add_argument("--keywords", "-k", help="Comma-separated keywords")

    update_parser = subparsers.add_parser("update", help="Update a memory")
    update_parser.add_argument("id", type=int)
    update_parser.add_argument("content", nargs="*", help="New content ('-' reads stdin)")
    update_parser.add_argument("--file", "-f", help="Read new content from a file")
    update_parser.add_argument("--summary", "-s", help="New summary")
    update_parser.add_argument("--keywords", "-k", help="Replacement keywords, comma-separated ('' clears)")

    get_parser = subparsers.add_parser("get", help="Show a memory with its content")
    get_parser.add_argument("id", type=int)

    search_parser = subparsers.add_parser("search", help="Search memories")
    search_parser.add_argument("query_text", nargs="+")
    search_parser.add_argument("--keywords", "-k", help="Comma-separated boost keywords")
    search_parser.add_argument("--limit", "-n", type=int, default=10)
    search_parser.add_argument("--summary-weight", type=float, default=0.8)
    search_parser.add_argument("--keyword-weight", type=float, default=2.0)
    search_parser.add_argument("--boost", type=float, default=1.0, help="Score bonus per matched keyword (lambda)")
    search_parser.add_argument("--json", action="store_true", help="Print the raw JSON result")

    list_parser = subparsers.add_parser("list", help="List memories, newest first")
    list_parser.add_argument("--limit", "-n", type=int, default=20)
    list_parser.add_argument("--offset", type=int, default=0)
    list_parser.add_argument("--json", action="store_true", help="Print the raw JSON page")

    delete_parser = subparsers.add_parser("delete", help="Delete a memory (content file is kept)")
    delete_parser.add_argument("id", type=int)

    read_parser = subparsers.add_parser("read", help="Print a content file")
    read_parser.add_argument("path")

    # --- Maintenance ---
    subparsers.add_parser("optimize", help="Optimize the full-text index")
    check_parser = subparsers.add_parser("check-index", help="Check the full-text index for drift")
    check_parser.add_argument("--repair", action="store_true", help="Rebuild entries that disagree")
    sweep_parser = subparsers.add_parser("sweep", help="Remove stale staged content files")
    sweep_parser.add_argument("--grace", type=int, default=None, help="Age in seconds (default from settings)")
    subparsers.add_parser("stats", help="Show database statistics")
    export_parser = subparsers.add_parser("export", help="Export all memories as JSON")
    export_parser.add_argument("--output", "-o", help="Write to a file instead of stdout")
    subparsers.add_parser("schema", help="Print the database DDL")

    # --- Server ---
    serve_parser = subparsers.add_parser("serve", help="Run the MCP server (stdio by default)")
    serve_parser.add_argument("--http", action="store_true", help="Serve Streamable HTTP instead of stdio")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8765, help="HTTP port (default: 8765)")
    serve_parser.add_argument("--no-auth", action="store_true", help="Disable the x-api-key check")

    return parser


COMMANDS = {
    "insert": cmd_insert,
    "update": cmd_update,
    "get": cmd_get,
    "search": cmd_search,
    "list": cmd_list,
    "delete": cmd_delete,
    "read": cmd_read,
    "optimize": cmd_optimize,
    "check-index": cmd_check_index,
    "sweep": cmd_sweep,
    "stats": cmd_stats,
    "export": cmd_export,
    "schema": cmd_schema,
    "serve": cmd_serve,
}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    from agent_memory.config import load_settings

    logging.basicConfig(level=load_settings().log_level, stream=sys.stderr)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return
    try:
        handler(args)
    except MemoryStoreError as e:
        print(f"Error [{e.kind}]: {e.message}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
