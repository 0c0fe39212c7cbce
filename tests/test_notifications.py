"""Tests for the notification dispatcher."""

import asyncio

import pytest

from mcpforge.mcp.errors import ErrorKind, Failure, Outcome, Success
from mcpforge.mcp.models import JsonRpcNotification
from mcpforge.mcp.notifications import NotificationDispatcher, NotificationSender, list_changed_method
from mcpforge.mcp.subscriptions import SubscriptionManager

from conftest import RecordingSender


class FailingSender(NotificationSender):
    """Fails every update for the given URIs."""

    def __init__(self, failing: set[str]):
        self.failing = failing
        self.sent: list[JsonRpcNotification] = []

    async def send(self, notification: JsonRpcNotification) -> Outcome:
        uri = (notification.params or {}).get("uri")
        if uri in self.failing:
            return Failure(ErrorKind.INTERNAL_ERROR, f"transport closed for {uri}")
        self.sent.append(notification)
        return Success()


class SlowSender(NotificationSender):
    """Delivers the first notification slowly to expose reordering."""

    def __init__(self):
        self.sent: list[int] = []

    async def send(self, notification: JsonRpcNotification) -> Outcome:
        if not self.sent and notification.params.get("seq") == 0:
            await asyncio.sleep(0.05)
        self.sent.append(notification.params["seq"])
        return Success()


@pytest.fixture
def subscriptions():
    return SubscriptionManager()


class TestResourceUpdated:
    """Tests for notify_resource_updated."""

    @pytest.mark.asyncio
    async def test_no_sender_is_silent_success(self, subscriptions):
        subscriptions.subscribe("c1", "mem://x")
        dispatcher = NotificationDispatcher(subscriptions)
        assert (await dispatcher.notify_resource_updated("mem://x")).ok

    @pytest.mark.asyncio
    async def test_subscribe_notify_unsubscribe(self, subscriptions, recorder):
        dispatcher = NotificationDispatcher(subscriptions)
        dispatcher.attach("c1", recorder)
        subscriptions.subscribe("c1", "mem://x")

        assert (await dispatcher.notify_resource_updated("mem://x")).ok
        assert len(recorder.sent) == 1
        assert recorder.sent[0].model_dump() == {
            "jsonrpc": "2.0",
            "method": "notifications/resources/updated",
            "params": {"uri": "mem://x"},
        }

        subscriptions.unsubscribe("c1", "mem://x")
        assert (await dispatcher.notify_resource_updated("mem://x")).ok
        assert len(recorder.sent) == 1

    @pytest.mark.asyncio
    async def test_one_notification_per_client(self, subscriptions):
        first, second = RecordingSender(), RecordingSender()
        dispatcher = NotificationDispatcher(subscriptions)
        dispatcher.attach("c1", first)
        dispatcher.attach("c2", second)
        subscriptions.subscribe("c1", "mem://x")
        subscriptions.subscribe("c2", "mem://x")
        subscriptions.subscribe("c2", "mem://y")

        await dispatcher.notify_resource_updated("mem://x")
        assert len(first.sent) == 1
        assert len(second.sent) == 1

    @pytest.mark.asyncio
    async def test_single_sink_gets_one_notification(self, subscriptions, recorder):
        dispatcher = NotificationDispatcher(subscriptions, sender=recorder)
        subscriptions.subscribe("c1", "mem://x")
        subscriptions.subscribe("c2", "mem://x")

        await dispatcher.notify_resource_updated("mem://x")
        assert len(recorder.sent) == 1

    @pytest.mark.asyncio
    async def test_sender_exception_becomes_failure(self, subscriptions):
        class Broken(NotificationSender):
            async def send(self, notification):
                raise ConnectionError("pipe closed")

        dispatcher = NotificationDispatcher(subscriptions)
        dispatcher.attach("c1", Broken())
        subscriptions.subscribe("c1", "mem://x")

        outcome = await dispatcher.notify_resource_updated("mem://x")
        assert outcome.kind is ErrorKind.INTERNAL_ERROR
        assert "pipe closed" in outcome.message

    @pytest.mark.asyncio
    async def test_fifo_per_sender(self, subscriptions):
        sender = SlowSender()
        dispatcher = NotificationDispatcher(subscriptions)
        dispatcher.attach("c1", sender)

        channel = dispatcher._clients["c1"]
        notifications = [
            JsonRpcNotification(method="notifications/resources/updated", params={"seq": i})
            for i in range(3)
        ]
        await asyncio.gather(*(channel.send(n) for n in notifications))
        assert sender.sent == [0, 1, 2]


class TestListChanged:
    """Tests for notify_list_changed."""

    @pytest.mark.asyncio
    async def test_sent_regardless_of_subscriptions(self, subscriptions, recorder):
        dispatcher = NotificationDispatcher(subscriptions)
        dispatcher.attach("c1", recorder)

        assert (await dispatcher.notify_list_changed("tools")).ok
        assert recorder.methods == ["notifications/tools/list_changed"]
        assert recorder.sent[0].model_dump() == {
            "jsonrpc": "2.0",
            "method": "notifications/tools/list_changed",
        }

    def test_method_names(self):
        assert list_changed_method("resources") == "notifications/resources/list_changed"
        assert list_changed_method("prompts") == "notifications/prompts/list_changed"

    @pytest.mark.asyncio
    async def test_schedule_and_drain(self, subscriptions, recorder):
        dispatcher = NotificationDispatcher(subscriptions, sender=recorder)
        dispatcher.schedule_list_changed("prompts")
        await dispatcher.drain()
        assert recorder.methods == ["notifications/prompts/list_changed"]

    def test_schedule_without_sender_is_noop(self, subscriptions):
        dispatcher = NotificationDispatcher(subscriptions)
        dispatcher.schedule_list_changed("tools")


class TestNotifyMultiple:
    """Tests for partial-failure fan-out."""

    @pytest.mark.asyncio
    async def test_all_succeed(self, subscriptions, recorder):
        dispatcher = NotificationDispatcher(subscriptions)
        dispatcher.attach("c1", recorder)
        for uri in ["mem://a", "mem://b"]:
            subscriptions.subscribe("c1", uri)

        assert (await dispatcher.notify_multiple(["mem://a", "mem://b"])).ok
        assert sorted(n.params["uri"] for n in recorder.sent) == ["mem://a", "mem://b"]

    @pytest.mark.asyncio
    async def test_partial_failure_names_failed_uris(self, subscriptions):
        sender = FailingSender({"mem://b", "mem://c"})
        dispatcher = NotificationDispatcher(subscriptions)
        dispatcher.attach("c1", sender)
        for uri in ["mem://a", "mem://b", "mem://c"]:
            subscriptions.subscribe("c1", uri)

        outcome = await dispatcher.notify_multiple(["mem://a", "mem://b", "mem://c"])
        assert not outcome.ok
        assert outcome.message == "Failed to send notifications for: mem://b, mem://c"
        assert [item["uri"] for item in outcome.data["failed"]] == ["mem://b", "mem://c"]
        # The successful send is kept
        assert [n.params["uri"] for n in sender.sent] == ["mem://a"]
