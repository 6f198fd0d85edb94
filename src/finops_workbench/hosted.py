"""
Hosted workbench MCP service (Streamable HTTP transport).

Runs the same MCP tool core in fixed CONNECTED mode. Backend credentials arrive
per HTTP call as headers; the backend client is rebuilt whenever they change.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any

import anyio
from mcp.server.streamable_http import StreamableHTTPServerTransport
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from .server import MCPMode, configure_runtime, server
from .workbench_client import DEFAULT_BACKEND_URL, WorkbenchClient

API_KEY_HEADER = "x-finops-api-key"
BACKEND_URL_HEADER = "x-finops-backend-url"


def _extract_backend_auth_from_scope(scope: Any) -> tuple[str, str]:
    """Extract the backend API key and URL from ASGI scope headers."""
    headers = {
        k.decode("latin-1").lower(): v.decode("latin-1") for k, v in scope.get("headers", [])
    }
    api_key = headers.get(API_KEY_HEADER, "").strip()
    backend_url = headers.get(BACKEND_URL_HEADER, "").strip() or DEFAULT_BACKEND_URL

    if not api_key:
        raise ValueError(f"Missing credentials. Provide the {API_KEY_HEADER} header.")
    return api_key, backend_url


class HostedSession:
    """
    Transport and backend client of one running hosted service.

    The tool core is shared by every caller, so a POST with different
    credentials swaps the client (and drops the loaded result) before the
    request reaches the transport.
    """

    def __init__(self) -> None:
        self.transport = StreamableHTTPServerTransport(
            mcp_session_id=None,
            is_json_response_enabled=True,
        )
        self.client: WorkbenchClient | None = None
        self.credentials: tuple[str, str] | None = None
        self._lock = anyio.Lock()
        configure_runtime(MCPMode.CONNECTED, None)

    async def _bind(self, api_key: str, backend_url: str) -> None:
        if self.credentials == (api_key, backend_url):
            return
        if self.client is not None:
            await self.client.close()
        self.client = WorkbenchClient(base_url=backend_url, api_key=api_key)
        self.credentials = (api_key, backend_url)
        configure_runtime(MCPMode.CONNECTED, self.client)

    async def handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("method") != "POST":
            await self.transport.handle_request(scope, receive, send)
            return

        try:
            api_key, backend_url = _extract_backend_auth_from_scope(scope)
        except ValueError as exc:
            await JSONResponse({"error": str(exc)}, status_code=401)(scope, receive, send)
            return

        async with self._lock:
            await self._bind(api_key, backend_url)
            await self.transport.handle_request(scope, receive, send)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
            self.client = None
        configure_runtime(MCPMode.CONNECTED, None)


@asynccontextmanager
async def lifespan(app: Starlette):
    """Start the MCP core on the HTTP transport for the life of the app."""
    session = HostedSession()
    app.state.session = session

    try:
        async with session.transport.connect() as (read_stream, write_stream):
            async with anyio.create_task_group() as task_group:
                task_group.start_soon(
                    server.run,
                    read_stream,
                    write_stream,
                    server.create_initialization_options(),
                )
                yield
                task_group.cancel_scope.cancel()
    finally:
        await session.close()


async def health(_: Request) -> JSONResponse:
    """Health check endpoint for hosted deployment."""
    return JSONResponse(
        {
            "status": "healthy",
            "mode": MCPMode.CONNECTED.value,
            "transport": "streamable-http",
        }
    )


class MCPEndpoint:
    """ASGI endpoint handing MCP traffic to the app's running session."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await scope["app"].state.session.handle(scope, receive, send)


mcp_endpoint = MCPEndpoint()
_MCP_METHODS = ["GET", "POST", "DELETE"]

app = Starlette(
    routes=[
        Route("/health", endpoint=health, methods=["GET"]),
        Route("/mcp", endpoint=mcp_endpoint, methods=_MCP_METHODS),
        Route("/mcp/", endpoint=mcp_endpoint, methods=_MCP_METHODS),
    ],
    lifespan=lifespan,
)
app.router.redirect_slashes = False


def main() -> None:
    """Run the hosted workbench MCP service."""
    import uvicorn

    host = os.getenv("MCP_HOST", "0.0.0.0")
    port = int(os.getenv("MCP_PORT", "8080"))
    uvicorn.run("finops_workbench.hosted:app", host=host, port=port, lifespan="on")
