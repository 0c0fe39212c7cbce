"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from mcpforge.config.loader import get_settings
from mcpforge.main import app
from mcpforge.mcp.errors import Outcome, Success
from mcpforge.mcp.models import JsonRpcNotification
from mcpforge.mcp.notifications import NotificationSender
from mcpforge.mcp.server import MCPServer, get_server, reset_server
from mcpforge.mcp.transport_sse import reset_session_manager
from mcpforge.tools.notes.store import reset_store


class RecordingSender(NotificationSender):
    """Notification sender that keeps everything it is asked to send."""

    def __init__(self):
        self.sent: list[JsonRpcNotification] = []

    async def send(self, notification: JsonRpcNotification) -> Outcome:
        self.sent.append(notification)
        return Success()

    @property
    def methods(self) -> list[str]:
        return [n.method for n in self.sent]


@pytest.fixture
def client():
    """Synchronous test client for FastAPI app."""
    return TestClient(app)


@pytest.fixture
async def async_client():
    """Async test client for FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(autouse=True)
def reset_global_server():
    """Reset the global server before each test and reload the example provider."""
    reset_server()
    reset_session_manager()
    reset_store()
    # Reload the example provider so tools are available
    get_server().load_provider("example")
    yield
    reset_server()
    reset_session_manager()
    reset_store()


@pytest.fixture
def server() -> MCPServer:
    """A fresh server with nothing registered."""
    return MCPServer(name="test-server", version="0.1.0")


@pytest.fixture
def full_server() -> MCPServer:
    """A fresh server with every bundled provider loaded."""
    server = MCPServer(name="test-server", version="0.1.0")
    server.load_providers(["example", "calculator", "notes"])
    return server


@pytest.fixture
def recorder() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def settings():
    """Get application settings."""
    return get_settings()


@pytest.fixture
def sample_jsonrpc_request():
    """Sample JSON-RPC request factory."""

    def _make_request(method: str, params: dict = None, id: int = 1):
        return {
            "jsonrpc": "2.0",
            "id": id,
            "method": method,
            "params": params or {},
        }

    return _make_request
