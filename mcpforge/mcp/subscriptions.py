"""Client to resource subscription index."""

import threading
from typing import Any

import structlog

from mcpforge.mcp.errors import Outcome, Success


class SubscriptionManager:
    """
    Bidirectional index of resource subscriptions.

    ``uri -> clients`` and ``client -> uris`` are updated together under one
    lock, so ``client in subscribers(uri)`` holds exactly when
    ``uri in subscriptions_of(client)``. Empty sets are dropped.
    """

    def __init__(self, logger: Any = None) -> None:
        self._subscribers: dict[str, set[str]] = {}
        self._subscriptions: dict[str, set[str]] = {}
        self._lock = threading.Lock()
        self._log = logger or structlog.get_logger(__name__)

    def subscribe(self, client_id: str, uri: str) -> Outcome:
        """Subscribe a client to a URI. Subscribing twice is a no-op."""
        with self._lock:
            self._subscribers.setdefault(uri, set()).add(client_id)
            self._subscriptions.setdefault(client_id, set()).add(uri)
        self._log.debug("Subscribed", client_id=client_id, uri=uri)
        return Success()

    def unsubscribe(self, client_id: str, uri: str) -> Outcome:
        """Drop a subscription. Unknown pairs are a no-op."""
        with self._lock:
            self._discard(client_id, uri)
        self._log.debug("Unsubscribed", client_id=client_id, uri=uri)
        return Success()

    def clear_client(self, client_id: str) -> Outcome:
        """Remove every subscription held by a client (transport disconnect)."""
        with self._lock:
            uris = self._subscriptions.pop(client_id, set())
            for uri in uris:
                subscribers = self._subscribers.get(uri)
                if subscribers is not None:
                    subscribers.discard(client_id)
                    if not subscribers:
                        del self._subscribers[uri]
        if uris:
            self._log.info("Cleared client subscriptions", client_id=client_id, count=len(uris))
        return Success()

    def subscribers(self, uri: str) -> set[str]:
        """Clients subscribed to a URI (a copy)."""
        with self._lock:
            return set(self._subscribers.get(uri, ()))

    def subscriptions_of(self, client_id: str) -> set[str]:
        """URIs a client is subscribed to (a copy)."""
        with self._lock:
            return set(self._subscriptions.get(client_id, ()))

    def is_subscribed(self, client_id: str, uri: str) -> bool:
        with self._lock:
            return client_id in self._subscribers.get(uri, ())

    def snapshot(self) -> dict[str, set[str]]:
        """Copy of the whole ``uri -> clients`` map."""
        with self._lock:
            return {uri: set(clients) for uri, clients in self._subscribers.items()}

    def _discard(self, client_id: str, uri: str) -> None:
        subscribers = self._subscribers.get(uri)
        if subscribers is not None:
            subscribers.discard(client_id)
            if not subscribers:
                del self._subscribers[uri]
        uris = self._subscriptions.get(client_id)
        if uris is not None:
            uris.discard(uri)
            if not uris:
                del self._subscriptions[client_id]
