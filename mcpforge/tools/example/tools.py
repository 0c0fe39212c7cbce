"""Example provider tools - demonstrates the provider pattern."""

from mcpforge.mcp.errors import ErrorKind, Failure
from mcpforge.mcp.schema import ParamSpec
from mcpforge.mcp.server import MCPServer, require
from mcpforge.tools.example.client import get_client


async def ping_handler() -> str:
    """Handle the example-ping tool call."""
    result = await get_client().ping()
    return f"pong: {result['pong']}"


async def echo_handler(message: str, repeat: int | None = None) -> str | Failure:
    """Handle the example-echo tool call."""
    if not message:
        return Failure(ErrorKind.INVALID_PARAMS, "'message' must not be empty")
    if repeat is not None and repeat < 1:
        return Failure(ErrorKind.INVALID_PARAMS, "'repeat' must be at least 1")

    result = await get_client().echo(message, repeat or 1)
    return f"Echo: {result['echo']}"


def status_handler() -> dict:
    """Serve example://status."""
    return get_client().status()


def register_tools(server: MCPServer) -> None:
    """Register all example provider capabilities with the server."""

    # Tool: example-ping
    require(
        server.add_tool(
            name="example-ping",
            description="Returns a simple pong response. Use this to test if the MCP server is working.",
            handler=ping_handler,
        )
    )

    # Tool: example-echo
    require(
        server.add_tool(
            name="example-echo",
            description="Echoes back the provided message. Use this to test tool argument passing.",
            params=[
                ParamSpec(name="message", type="string", description="The message to echo back"),
                ParamSpec(
                    name="repeat",
                    type="integer",
                    required=False,
                    description="How many times to repeat the message",
                ),
            ],
            handler=echo_handler,
        )
    )

    # Resource: example://status
    require(
        server.add_resource(
            uri="example://status",
            name="Example status",
            description="Uptime and call count of the example backend.",
            mime_type="application/json",
            handler=status_handler,
        )
    )
