"""FastAPI MCP Server - Main application entrypoint."""

import argparse
import asyncio
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mcpforge.config.loader import get_enabled_providers, get_settings, load_server_config
from mcpforge.mcp.errors import INVALID_REQUEST, PARSE_ERROR, make_error_data
from mcpforge.mcp.server import MCPServer, get_server
from mcpforge.mcp.transport_sse import create_sse_response, get_session_manager
from mcpforge.mcp.transport_stdio import serve_stdio
from mcpforge.utils.logging import get_logger, set_request_id, setup_logging


def load_configured_providers(server: MCPServer) -> None:
    """Load the providers enabled in config/server.yaml."""
    log = get_logger("startup")
    enabled_providers = get_enabled_providers(load_server_config())
    log.info("Loading providers", providers=enabled_providers)

    for provider, success in server.load_providers(enabled_providers).items():
        if not success:
            log.warning("Failed to load provider", provider=provider)

    log.info(
        "Capability registry ready",
        tool_count=server.tool_count,
        resource_count=server.resource_count,
        prompt_count=server.prompt_count,
        provider_count=server.provider_count,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()
    log = get_logger("startup")

    settings = get_settings()
    log.info(
        "Starting MCP server",
        server_name=settings.server_name,
        version=settings.server_version,
        protocol_version=settings.protocol_version,
    )

    server = get_server()
    load_configured_providers(server)

    # A closed SSE session takes its notification sender and subscriptions with it
    session_manager = get_session_manager()
    session_manager.on_close = server.detach_sender
    await session_manager.start_cleanup_task()

    yield

    log.info("Shutting down MCP server")
    session_manager.stop_cleanup_task()


# Create FastAPI app
app = FastAPI(
    title="mcpforge",
    description="MCP server exposing tools, resources and prompts over JSON-RPC 2.0",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for MCP compatibility
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


# Request ID middleware
@app.middleware("http")
async def add_request_id_middleware(request: Request, call_next):
    """Add request ID to all requests."""
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# =============================================================================
# Health and Info Endpoints
# =============================================================================


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict:
    """Root endpoint with server info."""
    settings = get_settings()
    server = get_server()

    return {
        "name": settings.server_name,
        "version": settings.server_version,
        "endpoints": {
            "health": "/health",
            "sse": "/sse",
            "message": "/message",
            "docs": "/docs",
        },
        "tools_available": server.tool_count,
        "resources_available": server.resource_count,
        "prompts_available": server.prompt_count,
        "mcp_protocol_version": settings.protocol_version,
    }


# =============================================================================
# MCP Endpoints
# =============================================================================


@app.get("/sse")
async def sse_endpoint(request: Request):
    """
    SSE endpoint for MCP session establishment.

    Returns an SSE stream that:
    1. Sends an 'endpoint' event with the message URL
    2. Streams responses and notifications for the session
    """
    session_manager = get_session_manager()
    session = session_manager.create_session()
    get_server().attach_sender(session.session_id, session)

    get_logger("sse").info("SSE session created", session_id=session.session_id)
    return await create_sse_response(session, "/message", session_manager)


@app.post("/message")
async def message_endpoint(request: Request) -> JSONResponse:
    """
    Message endpoint for JSON-RPC requests.

    Accepts JSON-RPC 2.0 messages (or batches) and returns responses.
    If session_id is provided, the session is the client and the response
    is also pushed to its SSE stream.
    """
    session_id = request.query_params.get("session_id")

    try:
        body = await request.body()
    except Exception as e:
        return JSONResponse(
            content={
                "jsonrpc": "2.0",
                "id": None,
                "error": make_error_data(PARSE_ERROR, f"Could not read request body: {e}"),
            }
        )

    session = None
    if session_id:
        session = get_session_manager().get_session(session_id)
        if session is None:
            # A session id must name a live session
            return JSONResponse(
                status_code=404,
                content={
                    "jsonrpc": "2.0",
                    "id": None,
                    "error": make_error_data(
                        INVALID_REQUEST, f"Unknown or expired session: {session_id}"
                    ),
                },
            )
    client_id = session.session_id if session is not None else "default"

    server = get_server()
    response = await server.handle_message(body, client_id)

    if response is None:
        # Notification - no response needed
        return JSONResponse(content={"status": "ok"}, status_code=202)

    if isinstance(response, list):
        response_data = [item.model_dump() for item in response]
    else:
        response_data = response.model_dump()

    if session is not None:
        await session.send_event("message", server.processor.serialize_response(response))

    return JSONResponse(content=response_data)


# =============================================================================
# Main Entry Point
# =============================================================================


async def run_stdio() -> None:
    """Serve a single client over stdin/stdout."""
    setup_logging(sys.stderr)
    server = get_server()
    load_configured_providers(server)
    await serve_stdio(server)


def main() -> None:
    """Run the server over HTTP (uvicorn) or stdio."""
    parser = argparse.ArgumentParser(prog="mcpforge")
    parser.add_argument("--stdio", action="store_true", help="serve over stdin/stdout")
    args = parser.parse_args()

    if args.stdio:
        asyncio.run(run_stdio())
        return

    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "mcpforge.main:app",
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
