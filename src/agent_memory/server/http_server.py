"""Agent Memory HTTP Server -- Streamable HTTP transport for the MCP server.

Routes:
    /mcp                     MCP over Streamable HTTP (API key gated when set)
    /health                  liveness, never gated
    /.well-known/mcp.json    server card listing tools, resources and prompts

The card is built from the same registries the stdio server answers from,
so both transports always advertise the same surface.
"""

import contextlib
import logging
import secrets
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.types import Receive, Scope, Send

from mcp.server.streamable_http_manager import StreamableHTTPSessionManager

from agent_memory.config import memory_home

logger = logging.getLogger("agent_memory.server.http")

API_KEY_HEADER = "x-api-key"
API_KEY_PARAM = "api_key"
MCP_PATH = "/mcp"


# ---------------------------------------------------------------------------
# API key
# ---------------------------------------------------------------------------

def api_key_path() -> Path:
    return memory_home() / "api_key"


def get_or_create_api_key() -> str:
    """Load the API key from $AGENT_MEMORY_HOME/api_key, or generate one."""
    path = api_key_path()
    if path.exists():
        return path.read_text().strip()
    key = secrets.token_urlsafe(32)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(key + "\n")
    path.chmod(0o600)
    logger.info("Generated HTTP API key at %s", path)
    return key


def key_accepted(request: Request, api_key: str | None) -> bool:
    """True when no key is configured or the request carries the right one."""
    if not api_key:
        return True
    provided = request.headers.get(API_KEY_HEADER) or request.query_params.get(API_KEY_PARAM)
    return provided is not None and secrets.compare_digest(provided, api_key)


# ---------------------------------------------------------------------------
# Server card
# ---------------------------------------------------------------------------

def server_card(name: str) -> dict[str, Any]:
    """Describe the served surface by name, read from the live registries."""
    from agent_memory import __version__
    from agent_memory.prompts import PROMPTS
    from agent_memory.server.mcp_server import RESOURCES
    from agent_memory.server.tool_schemas import TOOL_SCHEMAS

    tools = [t["name"] for t in TOOL_SCHEMAS]
    resources = [r["uri"] for r in RESOURCES]
    prompts = sorted(PROMPTS)
    return {
        "name": name,
        "version": __version__,
        "description": "Full-text searchable memory store for AI agents",
        "transports": [
            {"type": "streamable-http", "url": MCP_PATH},
            {"type": "stdio", "command": "agent-memory serve"},
        ],
        "tools": tools,
        "resources": resources,
        "prompts": prompts,
        "tools_count": len(tools),
        "resources_count": len(resources),
        "prompts_count": len(prompts),
    }


async def _health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "server": request.app.state.server_name})


async def _card(request: Request) -> JSONResponse:
    return JSONResponse(server_card(request.app.state.server_name))


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

def create_http_app(server, api_key: str | None = None) -> Starlette:
    """Starlette app serving ``server`` over Streamable HTTP.

    ``api_key=None`` leaves ``/mcp`` open.
    """
    sessions = StreamableHTTPSessionManager(app=server, json_response=True, stateless=True)

    async def gated_mcp(scope: Scope, receive: Receive, send: Send) -> None:
        if not key_accepted(Request(scope, receive), api_key):
            await JSONResponse({"error": "Unauthorized"}, status_code=401)(scope, receive, send)
            return
        await sessions.handle_request(scope, receive, send)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with sessions.run():
            yield

    app = Starlette(
        routes=[
            Mount(MCP_PATH, app=gated_mcp),
            Route("/health", endpoint=_health),
            Route("/.well-known/mcp.json", endpoint=_card),
        ],
        lifespan=lifespan,
    )
    app.state.server_name = server.name
    return app


async def run_http(host: str, port: int, api_key: str | None) -> None:
    """Serve the MCP server over HTTP with uvicorn until interrupted."""
    import uvicorn

    from agent_memory.server.mcp_server import server

    app = create_http_app(server, api_key=api_key)
    logger.info("Serving %s on http://%s:%d%s (auth %s)",
                server.name, host, port, MCP_PATH, "on" if api_key else "off")
    await uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info")).serve()
