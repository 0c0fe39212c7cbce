"""SSE (Server-Sent Events) transport for MCP."""

import asyncio
import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Callable

import structlog
from sse_starlette.sse import EventSourceResponse

from mcpforge.mcp.errors import ErrorKind, Failure, Outcome, Success
from mcpforge.mcp.models import JsonRpcNotification
from mcpforge.mcp.notifications import NotificationSender

logger = structlog.get_logger(__name__)

# Idle sessions are dropped after 30 minutes
SESSION_TIMEOUT = timedelta(minutes=30)
KEEPALIVE_INTERVAL = 30.0


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Session(NotificationSender):
    """
    One SSE connection.

    The session id doubles as the client id for subscriptions, and the
    session is that client's notification sender.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.created_at = _now()
        self.last_activity = self.created_at
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def touch(self) -> None:
        self.last_activity = _now()

    def is_expired(self) -> bool:
        return _now() - self.last_activity > SESSION_TIMEOUT

    async def send_event(self, event_type: str, data: Any) -> bool:
        """Queue an event for the stream; False once the session is closed."""
        if self._closed:
            return False
        await self.queue.put({"event": event_type, "data": data})
        return True

    async def send(self, notification: JsonRpcNotification) -> Outcome:
        if await self.send_event("message", json.dumps(notification.model_dump())):
            return Success()
        return Failure(ErrorKind.INTERNAL_ERROR, f"Session closed: {self.session_id}")

    def close(self) -> None:
        self._closed = True


class SessionManager:
    """Tracks live SSE sessions; ``on_close`` runs with the id of every removed session."""

    def __init__(self, on_close: Callable[[str], None] | None = None):
        self._sessions: dict[str, Session] = {}
        self._cleanup_task: asyncio.Task | None = None
        self.on_close = on_close

    def create_session(self) -> Session:
        session = Session(str(uuid.uuid4()))
        self._sessions[session.session_id] = session
        logger.info("Created session", session_id=session.session_id)
        return session

    def get_session(self, session_id: str) -> Session | None:
        """Get a live session by ID, refreshing its activity timestamp."""
        session = self._sessions.get(session_id)
        if session is not None:
            if session.is_expired():
                self.remove_session(session_id)
                return None
            session.touch()
        return session

    def remove_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.close()
        if self.on_close is not None:
            self.on_close(session_id)
        logger.info("Removed session", session_id=session_id)

    async def cleanup_expired(self) -> None:
        """Remove expired sessions."""
        expired = [sid for sid, session in self._sessions.items() if session.is_expired()]
        for sid in expired:
            self.remove_session(sid)
        if expired:
            logger.info("Cleaned up expired sessions", count=len(expired))

    async def start_cleanup_task(self) -> None:
        """Start background task to clean up expired sessions."""

        async def cleanup_loop():
            while True:
                await asyncio.sleep(60)
                await self.cleanup_expired()

        self._cleanup_task = asyncio.create_task(cleanup_loop())

    def stop_cleanup_task(self) -> None:
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    @property
    def session_count(self) -> int:
        return len(self._sessions)


# Global session manager
_session_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Get the global session manager."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager


def reset_session_manager() -> None:
    """Reset the global session manager (useful for testing)."""
    global _session_manager
    _session_manager = None


async def create_sse_response(
    session: Session,
    message_endpoint: str,
    manager: SessionManager | None = None,
) -> EventSourceResponse:
    """Create an SSE response streaming a session's queued events."""

    async def event_generator() -> AsyncGenerator[dict[str, Any], None]:
        # Tell the client where to POST its messages
        yield {
            "event": "endpoint",
            "data": f"{message_endpoint}?session_id={session.session_id}",
        }

        try:
            while not session.closed:
                try:
                    event = await asyncio.wait_for(session.queue.get(), timeout=KEEPALIVE_INTERVAL)
                    yield event
                except asyncio.TimeoutError:
                    yield {"event": "ping", "data": ""}
        except asyncio.CancelledError:
            logger.info("SSE stream cancelled", session_id=session.session_id)
            raise
        finally:
            if manager is not None:
                manager.remove_session(session.session_id)
            else:
                session.close()

    return EventSourceResponse(event_generator())
