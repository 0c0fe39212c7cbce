"""Tests for completion/complete."""

import pytest

from mcpforge.mcp.errors import INVALID_PARAMS, METHOD_NOT_FOUND
from mcpforge.mcp.schema import ParamSpec
from mcpforge.mcp.server import MCPServer


@pytest.fixture
def completing_server(server: MCPServer) -> MCPServer:
    server.add_resource("mem://notes/alpha", lambda: "a")
    server.add_resource("mem://notes/beta", lambda: "b")
    server.add_resource_template(
        "logs://{date}/{level}",
        lambda date, level: "",
        completer=lambda argument, value: [lvl for lvl in ("debug", "error") if lvl.startswith(value)],
    )
    server.add_prompt(
        "calculate",
        lambda operation: operation,
        params=[ParamSpec(name="operation", type="string", choices=("add", "subtract", "Absolute"))],
    )
    return server


def _complete(ref: dict, name: str, value: str) -> dict:
    return {"ref": ref, "argument": {"name": name, "value": value}}


class TestResourceCompletion:
    """ref/resource completion."""

    @pytest.mark.asyncio
    async def test_template_completer(self, completing_server):
        outcome = await completing_server.dispatch(
            "completion/complete",
            _complete({"type": "ref/resource", "uri": "logs://{date}/{level}"}, "level", "e"),
        )
        assert outcome.value == {"completion": {"values": ["error"], "total": 1, "hasMore": False}}

    @pytest.mark.asyncio
    async def test_static_uris_by_substring(self, completing_server):
        outcome = await completing_server.dispatch(
            "completion/complete",
            _complete({"type": "ref/resource", "uri": "mem://notes/"}, "uri", "ALP"),
        )
        assert outcome.value["completion"]["values"] == ["mem://notes/alpha"]


class TestPromptCompletion:
    """ref/prompt completion."""

    @pytest.mark.asyncio
    async def test_choices_by_prefix(self, completing_server):
        outcome = await completing_server.dispatch(
            "completion/complete",
            _complete({"type": "ref/prompt", "name": "calculate"}, "operation", "a"),
        )
        assert outcome.value["completion"]["values"] == ["add", "Absolute"]

    @pytest.mark.asyncio
    async def test_unknown_argument_has_no_values(self, completing_server):
        outcome = await completing_server.dispatch(
            "completion/complete",
            _complete({"type": "ref/prompt", "name": "calculate"}, "other", ""),
        )
        assert outcome.value["completion"] == {"values": [], "total": 0, "hasMore": False}

    @pytest.mark.asyncio
    async def test_unknown_prompt(self, completing_server):
        outcome = await completing_server.dispatch(
            "completion/complete",
            _complete({"type": "ref/prompt", "name": "nope"}, "operation", ""),
        )
        assert outcome.code == METHOD_NOT_FOUND


class TestCompletionErrors:
    """Malformed requests and limits."""

    @pytest.mark.asyncio
    async def test_unknown_ref_type(self, completing_server):
        outcome = await completing_server.dispatch(
            "completion/complete", _complete({"type": "ref/tool", "name": "x"}, "a", "")
        )
        assert outcome.code == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_missing_ref(self, completing_server):
        outcome = await completing_server.dispatch("completion/complete", {"argument": {"name": "a"}})
        assert outcome.code == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_values_are_capped(self, server):
        server.add_resource_template(
            "big://{n}", lambda n: n, completer=lambda argument, value: [str(i) for i in range(150)]
        )
        outcome = await server.dispatch(
            "completion/complete", _complete({"type": "ref/resource", "uri": "big://{n}"}, "n", "")
        )
        completion = outcome.value["completion"]
        assert len(completion["values"]) == 100
        assert completion["total"] == 150
        assert completion["hasMore"] is True

    @pytest.mark.asyncio
    async def test_without_provider(self):
        from mcpforge.mcp.registry import CapabilityRegistry
        from mcpforge.mcp.router import ProtocolRouter
        from mcpforge.mcp.subscriptions import SubscriptionManager

        router = ProtocolRouter(CapabilityRegistry(), SubscriptionManager())
        outcome = await router.dispatch(
            "completion/complete", _complete({"type": "ref/prompt", "name": "x"}, "a", "")
        )
        assert outcome.code == METHOD_NOT_FOUND
        caps = (await router.dispatch("initialize", {})).value["capabilities"]
        assert caps == {}
