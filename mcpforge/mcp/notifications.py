"""Resource update and list-changed notification fan-out."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Iterable

import structlog

from mcpforge.mcp.errors import ErrorKind, Failure, Outcome, Success
from mcpforge.mcp.models import JsonRpcNotification
from mcpforge.mcp.subscriptions import SubscriptionManager

RESOURCE_UPDATED = "notifications/resources/updated"


def list_changed_method(kind: str) -> str:
    """Notification method for a capability's list change, e.g. ``notifications/tools/list_changed``."""
    return f"notifications/{kind}/list_changed"


class NotificationSender(ABC):
    """Delivers notifications to one connected client or transport."""

    @abstractmethod
    async def send(self, notification: JsonRpcNotification) -> Outcome:
        """Deliver a notification; return a Failure when delivery failed."""


class _SenderChannel:
    """Serializes sends to one sender so notifications arrive in submission order."""

    def __init__(self, sender: NotificationSender, log: Any):
        self.sender = sender
        self._lock = asyncio.Lock()
        self._log = log

    async def send(self, notification: JsonRpcNotification) -> Outcome:
        async with self._lock:
            try:
                outcome = await self.sender.send(notification)
            except Exception as e:
                self._log.warning(
                    "Notification send raised", method=notification.method, error=str(e)
                )
                return Failure.from_exception(e)
        if outcome is None:
            return Success()
        if not outcome.ok:
            self._log.warning(
                "Notification send failed", method=notification.method, error=outcome.message
            )
        return outcome


class NotificationDispatcher:
    """
    Pushes notifications through attached senders.

    Senders are attached per client id; a default sender stands in for every
    client on single-connection transports. With no sender attached every
    notification silently succeeds.
    """

    def __init__(
        self,
        subscriptions: SubscriptionManager,
        sender: NotificationSender | None = None,
        logger: Any = None,
    ) -> None:
        self._subscriptions = subscriptions
        self._log = logger or structlog.get_logger(__name__)
        self._default: _SenderChannel | None = None
        self._clients: dict[str, _SenderChannel] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()
        if sender is not None:
            self.set_sender(sender)

    # -------------------------------------------------------------------------
    # Sender management
    # -------------------------------------------------------------------------

    def set_sender(self, sender: NotificationSender | None) -> None:
        """Set (or clear) the default sender."""
        self._default = _SenderChannel(sender, self._log) if sender is not None else None
        self._remember_loop()

    def attach(self, client_id: str, sender: NotificationSender) -> None:
        """Attach the sender serving one client."""
        self._clients[client_id] = _SenderChannel(sender, self._log)
        self._remember_loop()
        self._log.debug("Attached notification sender", client_id=client_id)

    def detach(self, client_id: str) -> None:
        """Detach a client's sender."""
        if self._clients.pop(client_id, None) is not None:
            self._log.debug("Detached notification sender", client_id=client_id)

    @property
    def is_configured(self) -> bool:
        return self._default is not None or bool(self._clients)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def notify_resource_updated(self, uri: str) -> Outcome:
        """Send ``notifications/resources/updated`` once to each subscribed client."""
        self._remember_loop()
        subscribers = self._subscriptions.subscribers(uri)
        if not subscribers:
            return Success()

        channels = self._channels_for(sorted(subscribers))
        if not channels:
            return Success()

        notification = JsonRpcNotification(method=RESOURCE_UPDATED, params={"uri": uri})
        results = await asyncio.gather(*(channel.send(notification) for channel in channels))
        failures = [result for result in results if not result.ok]
        if failures:
            return Failure(
                ErrorKind.INTERNAL_ERROR,
                f"Failed to notify subscribers of {uri}: "
                + "; ".join(failure.message for failure in failures),
                {"uri": uri},
            )
        self._log.debug("Resource update sent", uri=uri, recipients=len(channels))
        return Success()

    async def notify_list_changed(self, kind: str) -> Outcome:
        """Send ``notifications/{kind}/list_changed`` to every attached sender."""
        self._remember_loop()
        channels = self._all_channels()
        if not channels:
            return Success()

        notification = JsonRpcNotification(method=list_changed_method(kind))
        results = await asyncio.gather(*(channel.send(notification) for channel in channels))
        failures = [result for result in results if not result.ok]
        if failures:
            return Failure(
                ErrorKind.INTERNAL_ERROR,
                f"Failed to send {kind} list_changed: "
                + "; ".join(failure.message for failure in failures),
            )
        return Success()

    async def notify_multiple(self, uris: Iterable[str]) -> Outcome:
        """
        Send update notifications for several URIs concurrently.

        Partial failure is reported as one Failure naming exactly the URIs
        that failed; successful sends are neither retried nor rolled back.
        """
        uris = list(uris)
        results = await asyncio.gather(*(self.notify_resource_updated(uri) for uri in uris))
        failed = [(uri, result) for uri, result in zip(uris, results) if not result.ok]
        if not failed:
            return Success()
        return Failure(
            ErrorKind.INTERNAL_ERROR,
            f"Failed to send notifications for: {', '.join(uri for uri, _ in failed)}",
            {"failed": [{"uri": uri, "error": result.message} for uri, result in failed]},
        )

    def schedule_list_changed(self, kind: str) -> None:
        """
        Fire-and-forget ``notify_list_changed``.

        Safe to call from synchronous code and from worker threads; does
        nothing until a sender is attached.
        """
        if not self.is_configured:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            self._spawn(loop, kind)
        elif self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._spawn, self._loop, kind)
        else:
            self._log.debug("No running event loop, list_changed dropped", kind=kind)

    async def drain(self) -> None:
        """Wait for scheduled notifications to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _spawn(self, loop: asyncio.AbstractEventLoop, kind: str) -> None:
        task = loop.create_task(self.notify_list_changed(kind))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _channels_for(self, client_ids: Iterable[str]) -> list[_SenderChannel]:
        channels: list[_SenderChannel] = []
        for client_id in client_ids:
            channel = self._clients.get(client_id, self._default)
            if channel is not None and all(channel is not c for c in channels):
                channels.append(channel)
        return channels

    def _all_channels(self) -> list[_SenderChannel]:
        channels = list(self._clients.values())
        if self._default is not None:
            channels.append(self._default)
        return channels

    def _remember_loop(self) -> None:
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass
