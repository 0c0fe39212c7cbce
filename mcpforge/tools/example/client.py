"""Example provider backend - no external calls needed."""

# Stands in for the API client a real provider would wrap.

from datetime import datetime, timezone


class ExampleClient:
    """In-process backend for the example provider."""

    def __init__(self) -> None:
        self.started_at = datetime.now(timezone.utc)
        self.calls = 0

    async def ping(self) -> dict:
        """Return a pong response."""
        self.calls += 1
        return {"pong": True}

    async def echo(self, message: str, repeat: int = 1) -> dict:
        """Echo back a message, optionally repeated."""
        self.calls += 1
        return {"echo": " ".join([message] * repeat)}

    def status(self) -> dict:
        """Uptime and call counter, served as a resource."""
        uptime = datetime.now(timezone.utc) - self.started_at
        return {"uptime_seconds": round(uptime.total_seconds(), 3), "calls": self.calls}


# Singleton client instance
_client: ExampleClient | None = None


def get_client() -> ExampleClient:
    """Get the example client instance."""
    global _client
    if _client is None:
        _client = ExampleClient()
    return _client
