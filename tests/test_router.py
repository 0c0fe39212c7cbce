"""Tests for protocol routing, capability gating and the end-to-end flows."""

import base64

import pytest

from mcpforge.mcp.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    RESOURCE_NOT_FOUND,
    ErrorKind,
    Failure,
)
from mcpforge.mcp.registry import encode_cursor
from mcpforge.mcp.schema import ParamSpec

NUMBERS = [ParamSpec(name="a", type="number"), ParamSpec(name="b", type="number")]


def add(a, b):
    return a + b


def divide(a, b):
    if b == 0:
        return Failure(ErrorKind.INTERNAL_ERROR, "Cannot divide by zero")
    return a / b


class TestCapabilityGating:
    """Methods of an empty capability answer like unknown methods."""

    @pytest.mark.asyncio
    async def test_empty_server_initialize(self, server):
        outcome = await server.dispatch("initialize", {})
        assert outcome.ok
        assert outcome.value["capabilities"] == {"completions": {}}
        assert outcome.value["serverInfo"] == {"name": "test-server", "version": "0.1.0"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method",
        [
            "tools/list",
            "tools/call",
            "resources/list",
            "resources/templates/list",
            "resources/read",
            "resources/subscribe",
            "resources/unsubscribe",
            "prompts/list",
            "prompts/get",
        ],
    )
    async def test_gated_methods(self, server, method):
        outcome = await server.dispatch(method, {})
        assert outcome.kind is ErrorKind.METHOD_NOT_FOUND
        assert outcome.message == f"Method not found: {method}"

    @pytest.mark.asyncio
    async def test_no_prompts_means_no_prompt_capability(self, server):
        server.add_tool("add", add, "Adds", NUMBERS)
        caps = (await server.dispatch("initialize", {})).value["capabilities"]
        assert caps["tools"] == {"listChanged": True}
        assert "prompts" not in caps
        assert "resources" not in caps
        assert (await server.dispatch("prompts/get", {"name": "x"})).code == METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_template_alone_enables_resources(self, server):
        server.add_resource_template("logs://{date}/{level}", lambda date, level: "")
        caps = (await server.dispatch("initialize", {})).value["capabilities"]
        assert caps["resources"] == {"subscribe": True, "listChanged": True}

    @pytest.mark.asyncio
    async def test_unknown_method(self, server):
        outcome = await server.dispatch("sampling/createMessage", {})
        assert outcome.code == METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_instructions(self, server):
        server.instructions = "Use the calculator."
        outcome = await server.dispatch("initialize", {})
        assert outcome.value["instructions"] == "Use the calculator."


class TestTools:
    """tools/list and tools/call."""

    @pytest.mark.asyncio
    async def test_add_scenario(self, server):
        server.add_tool("add", add, "Adds two numbers", NUMBERS)
        outcome = await server.dispatch("tools/call", {"name": "add", "arguments": {"a": 2, "b": 3}})
        assert outcome.value == {"content": [{"type": "text", "text": "5"}], "isError": False}

    @pytest.mark.asyncio
    async def test_divide_by_zero_scenario(self, server):
        server.add_tool("divide", divide, "Divides", NUMBERS)
        response = await server.handle_message(
            '{"jsonrpc":"2.0","id":4,"method":"tools/call",'
            '"params":{"name":"divide","arguments":{"a":10,"b":0}}}'
        )
        error = response.model_dump()["error"]
        assert error["code"] == INTERNAL_ERROR
        assert "Cannot divide by zero" in error["message"]

    @pytest.mark.asyncio
    async def test_missing_name(self, server):
        server.add_tool("add", add, "Adds", NUMBERS)
        outcome = await server.dispatch("tools/call", {"arguments": {}})
        assert outcome.code == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_tools_are_exact_name_only(self, server):
        server.add_tool("add", add, "Adds", NUMBERS)
        outcome = await server.dispatch("tools/call", {"name": "ad", "arguments": {}})
        assert outcome.code == METHOD_NOT_FOUND
        assert outcome.message == "Tool not found: ad"

    @pytest.mark.asyncio
    async def test_argument_validation_precedes_invocation(self, server):
        calls = []
        server.add_tool("add", lambda a, b: calls.append((a, b)), "Adds", NUMBERS)
        outcome = await server.dispatch("tools/call", {"name": "add", "arguments": {"a": "2", "b": 3}})
        assert outcome.code == INVALID_PARAMS
        assert calls == []

    @pytest.mark.asyncio
    async def test_handler_fault_is_internal_error(self, server):
        def explode():
            raise KeyError("missing")

        server.add_tool("explode", explode)
        outcome = await server.dispatch("tools/call", {"name": "explode"})
        assert outcome.code == INTERNAL_ERROR

    @pytest.mark.asyncio
    async def test_tools_list_pagination(self):
        from mcpforge.mcp.server import MCPServer

        server = MCPServer(page_size=2)
        for name in ["a", "b", "c"]:
            server.add_tool(name, add, name, NUMBERS)

        first = (await server.dispatch("tools/list", {})).value
        assert [t["name"] for t in first["tools"]] == ["a", "b"]
        second = (await server.dispatch("tools/list", {"cursor": first["nextCursor"]})).value
        assert [t["name"] for t in second["tools"]] == ["c"]
        assert "nextCursor" not in second

        bad = await server.dispatch("tools/list", {"cursor": encode_cursor(99)})
        assert bad.code == INVALID_PARAMS


class TestResources:
    """resources/* methods."""

    @pytest.mark.asyncio
    async def test_template_scenario(self, server):
        def read_logs(date, level):
            return f"{date} {level.upper()} all quiet"

        server.add_resource_template("logs://{date}/{level}", read_logs, mime_type="text/plain")
        outcome = await server.dispatch("resources/read", {"uri": "logs://2025-01-01/error"})
        text = outcome.value["contents"][0]["text"]
        assert "2025-01-01" in text
        assert "ERROR" in text

    @pytest.mark.asyncio
    async def test_exact_resource_beats_template(self, server):
        server.add_resource_template("mem://{name}", lambda name: "template")
        server.add_resource("mem://x", lambda: "exact", mime_type="text/plain")
        outcome = await server.dispatch("resources/read", {"uri": "mem://x"})
        assert outcome.value["contents"][0]["text"] == "exact"

    @pytest.mark.asyncio
    async def test_text_round_trip(self, server):
        server.add_resource("mem://doc", lambda: "hello", mime_type="text/plain")
        outcome = await server.dispatch("resources/read", {"uri": "mem://doc"})
        assert outcome.value == {
            "contents": [{"uri": "mem://doc", "mimeType": "text/plain", "text": "hello"}]
        }

    @pytest.mark.asyncio
    async def test_blob_round_trip(self, server):
        raw = bytes(range(16))
        server.add_resource("mem://img", lambda: raw, mime_type="image/png")
        item = (await server.dispatch("resources/read", {"uri": "mem://img"})).value["contents"][0]
        assert "text" not in item
        assert item["mimeType"] == "image/png"
        assert base64.b64decode(item["blob"]) == raw

    @pytest.mark.asyncio
    async def test_unknown_uri(self, server):
        server.add_resource("mem://x", lambda: "x")
        outcome = await server.dispatch("resources/read", {"uri": "mem://y"})
        assert outcome.code == RESOURCE_NOT_FOUND
        assert outcome.data == {"uri": "mem://y"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("uri", ["no-scheme", "1abc://x", "mem:", "mem:// spaced"])
    async def test_malformed_uri(self, server, uri):
        server.add_resource("mem://x", lambda: "x")
        outcome = await server.dispatch("resources/read", {"uri": uri})
        assert outcome.code == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_handler_failure_is_resource_not_found(self, server):
        server.add_resource_template(
            "logs://{date}", lambda date: Failure(ErrorKind.INTERNAL_ERROR, f"no logs for {date}")
        )
        outcome = await server.dispatch("resources/read", {"uri": "logs://yesterday"})
        assert outcome.code == RESOURCE_NOT_FOUND
        assert outcome.message == "no logs for yesterday"

    @pytest.mark.asyncio
    async def test_handler_invalid_binding_is_resource_not_found(self, server):
        server.add_resource_template(
            "db://{table}", lambda table: Failure(ErrorKind.INVALID_PARAMS, "bad binding")
        )
        outcome = await server.dispatch("resources/read", {"uri": "db://users"})
        assert outcome.code == RESOURCE_NOT_FOUND
        assert outcome.message == "bad binding"
        assert outcome.data == {"uri": "db://users"}

    @pytest.mark.asyncio
    async def test_handler_fault_stays_internal(self, server):
        def broken():
            raise OSError("disk gone")

        server.add_resource("mem://x", broken)
        outcome = await server.dispatch("resources/read", {"uri": "mem://x"})
        assert outcome.code == INTERNAL_ERROR

    @pytest.mark.asyncio
    async def test_lists(self, server):
        server.add_resource("mem://x", lambda: "x", description="X")
        server.add_resource_template("logs://{date}", lambda date: date, name="Logs")
        resources = (await server.dispatch("resources/list", {})).value["resources"]
        templates = (await server.dispatch("resources/templates/list", {})).value["resourceTemplates"]
        assert resources == [{"uri": "mem://x", "name": "mem://x", "description": "X"}]
        assert templates == [{"uriTemplate": "logs://{date}", "name": "Logs"}]

    @pytest.mark.asyncio
    async def test_subscribe_rules(self, server):
        server.add_resource("mem://live", lambda: "x", subscribable=True)
        server.add_resource("mem://static", lambda: "x")
        server.add_resource_template("logs://{date}", lambda date: date)

        assert (await server.dispatch("resources/subscribe", {"uri": "mem://live"}, "c1")).value == {}
        assert server.subscriptions.subscribers("mem://live") == {"c1"}

        static = await server.dispatch("resources/subscribe", {"uri": "mem://static"}, "c1")
        assert static.code == INVALID_REQUEST
        templated = await server.dispatch("resources/subscribe", {"uri": "logs://today"}, "c1")
        assert templated.code == INVALID_REQUEST
        missing = await server.dispatch("resources/subscribe", {"uri": "mem://nope"}, "c1")
        assert missing.code == RESOURCE_NOT_FOUND
        malformed = await server.dispatch("resources/subscribe", {"uri": "nope"}, "c1")
        assert malformed.code == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_unsubscribe_always_succeeds(self, server):
        server.add_resource("mem://live", lambda: "x", subscribable=True)
        outcome = await server.dispatch("resources/unsubscribe", {"uri": "mem://never"}, "c1")
        assert outcome.value == {}
        assert (await server.dispatch("resources/unsubscribe", {}, "c1")).code == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_subscription_scenario(self, server, recorder):
        server.add_resource("mem://x", lambda: "x", subscribable=True)
        server.attach_sender("c1", recorder)

        await server.dispatch("resources/subscribe", {"uri": "mem://x"}, "c1")
        await server.notify_resource_updated("mem://x")
        assert [n.model_dump() for n in recorder.sent] == [
            {
                "jsonrpc": "2.0",
                "method": "notifications/resources/updated",
                "params": {"uri": "mem://x"},
            }
        ]

        await server.dispatch("resources/unsubscribe", {"uri": "mem://x"}, "c1")
        await server.notify_resource_updated("mem://x")
        assert len(recorder.sent) == 1

    @pytest.mark.asyncio
    async def test_removed_resource_keeps_subscription_but_reads_fail(self, server):
        server.add_resource("mem://x", lambda: "x", subscribable=True)
        server.add_resource("mem://y", lambda: "y")
        await server.dispatch("resources/subscribe", {"uri": "mem://x"}, "c1")
        server.remove_resource("mem://x")

        assert server.subscriptions.subscribers("mem://x") == {"c1"}
        outcome = await server.dispatch("resources/read", {"uri": "mem://x"})
        assert outcome.code == RESOURCE_NOT_FOUND


class TestPrompts:
    """prompts/list and prompts/get."""

    @pytest.mark.asyncio
    async def test_exact_prompt(self, server):
        server.add_prompt(
            "greet",
            lambda name: f"Say hello to {name}",
            description="Greeting",
            params=[ParamSpec(name="name", type="string")],
        )
        outcome = await server.dispatch("prompts/get", {"name": "greet", "arguments": {"name": "Ada"}})
        assert outcome.value == {
            "description": "Greeting",
            "messages": [{"role": "user", "content": {"type": "text", "text": "Say hello to Ada"}}],
        }

    @pytest.mark.asyncio
    async def test_prompt_template(self, server):
        server.add_prompt_template(
            "review/{language}",
            lambda language, focus=None: f"Review {language} for {focus}",
            params=[ParamSpec(name="focus", type="string", required=False)],
        )
        outcome = await server.dispatch(
            "prompts/get", {"name": "review/python", "arguments": {"focus": "bugs"}}
        )
        assert outcome.value["messages"][0]["content"]["text"] == "Review python for bugs"

    @pytest.mark.asyncio
    async def test_prompt_missing_argument(self, server):
        server.add_prompt("greet", lambda name: name, params=[ParamSpec(name="name", type="string")])
        outcome = await server.dispatch("prompts/get", {"name": "greet"})
        assert outcome.code == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_unknown_prompt(self, server):
        server.add_prompt("greet", lambda: "hi")
        outcome = await server.dispatch("prompts/get", {"name": "farewell"})
        assert outcome.code == METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_prompts_list_excludes_templates(self, server):
        server.add_prompt("greet", lambda: "hi", description="Greeting")
        server.add_prompt_template("review/{language}", lambda language: language)
        prompts = (await server.dispatch("prompts/list", {})).value["prompts"]
        assert prompts == [{"name": "greet", "description": "Greeting", "arguments": []}]


class TestJsonRpcTimeout:
    """Deadline applied around a dispatch."""

    @pytest.mark.asyncio
    async def test_slow_handler_times_out(self):
        import asyncio

        from mcpforge.mcp.server import MCPServer

        async def slow():
            await asyncio.sleep(1)
            return "late"

        server = MCPServer(request_timeout=0.05)
        server.add_tool("slow", slow)
        response = await server.handle_message(
            '{"jsonrpc":"2.0","id":1,"method":"tools/call","params":{"name":"slow"}}'
        )
        error = response.model_dump()["error"]
        assert error["code"] == INTERNAL_ERROR
        assert "timed out" in error["message"]
