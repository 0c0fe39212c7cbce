"""MCP method routing: validation, capability gating and dispatch."""

import re
from typing import Any, Awaitable, Callable

import structlog
from pydantic import BaseModel, ValidationError

from mcpforge.mcp.completion import CompletionProvider
from mcpforge.mcp.errors import ErrorKind, Failure, Outcome, Success
from mcpforge.mcp.invoker import MethodInvoker
from mcpforge.mcp.models import (
    Capabilities,
    CompleteParams,
    InitializeParams,
    InitializeResult,
    ListParams,
    PromptGetParams,
    PromptsListResult,
    ResourceTemplatesListResult,
    ResourceUriParams,
    ResourcesListResult,
    ServerInfo,
    ToolCallParams,
    ToolsListResult,
)
from mcpforge.mcp.registry import CapabilityKind, CapabilityRegistry
from mcpforge.mcp.subscriptions import SubscriptionManager

DEFAULT_PROTOCOL_VERSION = "2025-06-18"
DEFAULT_CLIENT_ID = "default"

# scheme ":" followed by at least one non-whitespace character
_URI_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:\S+$")

_TOOL_KINDS = (CapabilityKind.TOOL,)
_RESOURCE_KINDS = (CapabilityKind.RESOURCE, CapabilityKind.RESOURCE_TEMPLATE)
_PROMPT_KINDS = (CapabilityKind.PROMPT, CapabilityKind.PROMPT_TEMPLATE)

MethodHandler = Callable[[dict[str, Any], str], Awaitable[Outcome]]


def is_valid_uri(uri: str) -> bool:
    """Basic URI syntax check applied before any lookup."""
    return bool(_URI_RE.match(uri))


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(exclude_none=True)


def _invalid_params(method: str, error: ValidationError) -> Failure:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "params"
    return Failure(
        ErrorKind.INVALID_PARAMS,
        f"Invalid {method} params: {field}: {first['msg']}",
    )


class ProtocolRouter:
    """
    Dispatches the fixed MCP method set against the capability registry.

    Every handler returns an Outcome. A method whose capability has nothing
    registered answers exactly like an unknown method (MethodNotFound).
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        subscriptions: SubscriptionManager,
        invoker: MethodInvoker | None = None,
        completion: CompletionProvider | None = None,
        server_name: str = "mcpforge",
        server_version: str = "1.0.0",
        protocol_version: str = DEFAULT_PROTOCOL_VERSION,
        instructions: str | None = None,
        logger: Any = None,
    ) -> None:
        self.registry = registry
        self.subscriptions = subscriptions
        self.invoker = invoker or MethodInvoker()
        self.completion = completion
        self.server_name = server_name
        self.server_version = server_version
        self.protocol_version = protocol_version
        self.instructions = instructions
        self._log = logger or structlog.get_logger(__name__)

        # method -> (handler, capability kinds that must be non-empty)
        self._methods: dict[str, tuple[MethodHandler, tuple[CapabilityKind, ...]]] = {
            "initialize": (self.handle_initialize, ()),
            "notifications/initialized": (self.handle_initialized, ()),
            "tools/list": (self.handle_tools_list, _TOOL_KINDS),
            "tools/call": (self.handle_tools_call, _TOOL_KINDS),
            "resources/list": (self.handle_resources_list, _RESOURCE_KINDS),
            "resources/templates/list": (self.handle_resource_templates_list, _RESOURCE_KINDS),
            "resources/read": (self.handle_resources_read, _RESOURCE_KINDS),
            "resources/subscribe": (self.handle_resources_subscribe, _RESOURCE_KINDS),
            "resources/unsubscribe": (self.handle_resources_unsubscribe, _RESOURCE_KINDS),
            "prompts/list": (self.handle_prompts_list, _PROMPT_KINDS),
            "prompts/get": (self.handle_prompts_get, _PROMPT_KINDS),
            "completion/complete": (self.handle_completion, ()),
        }

    # -------------------------------------------------------------------------
    # Capability gating
    # -------------------------------------------------------------------------

    def capabilities(self) -> Capabilities:
        """Capabilities derived from which registry tables are non-empty."""
        return Capabilities(
            tools={"listChanged": True} if self.registry.has_any(*_TOOL_KINDS) else None,
            resources=(
                {"subscribe": True, "listChanged": True}
                if self.registry.has_any(*_RESOURCE_KINDS)
                else None
            ),
            prompts={"listChanged": True} if self.registry.has_any(*_PROMPT_KINDS) else None,
            completions={} if self.completion is not None else None,
        )

    def _gated(self, kinds: tuple[CapabilityKind, ...]) -> bool:
        return bool(kinds) and not self.registry.has_any(*kinds)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def dispatch(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        client_id: str = DEFAULT_CLIENT_ID,
    ) -> Outcome:
        """Route one method call; never raises."""
        entry = self._methods.get(method)
        if entry is None or self._gated(entry[1]):
            return Failure(ErrorKind.METHOD_NOT_FOUND, f"Method not found: {method}")

        handler, _ = entry
        self._log.debug("Dispatching", method=method, client_id=client_id)
        try:
            return await handler(params or {}, client_id)
        except Exception as e:
            self._log.exception("Error handling method", method=method)
            return Failure(ErrorKind.INTERNAL_ERROR, f"Error processing request: {e}")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def handle_initialize(self, params: dict[str, Any], client_id: str) -> Outcome:
        """Handle the initialize request."""
        try:
            init_params = InitializeParams(**params)
            self._log.info(
                "Client initializing",
                client_id=client_id,
                client=init_params.clientInfo.name,
                protocol_version=init_params.protocolVersion,
            )
        except ValidationError as e:
            # Still proceed with defaults
            self._log.warning("Invalid initialize params", error=str(e))

        result = InitializeResult(
            protocolVersion=self.protocol_version,
            capabilities=self.capabilities(),
            serverInfo=ServerInfo(name=self.server_name, version=self.server_version),
            instructions=self.instructions or None,
        )
        return Success(_dump(result))

    async def handle_initialized(self, params: dict[str, Any], client_id: str) -> Outcome:
        """Handle the notifications/initialized notification (no response)."""
        self._log.info("Client confirmed initialization", client_id=client_id)
        return Success(None)

    # -------------------------------------------------------------------------
    # Tools
    # -------------------------------------------------------------------------

    async def handle_tools_list(self, params: dict[str, Any], client_id: str) -> Outcome:
        """Handle the tools/list request."""
        page = self._page(CapabilityKind.TOOL, "tools/list", params)
        if not page.ok:
            return page
        items, next_cursor = page.value
        result = ToolsListResult(
            tools=[tool.to_mcp_tool() for tool in items], nextCursor=next_cursor
        )
        return Success(_dump(result))

    async def handle_tools_call(self, params: dict[str, Any], client_id: str) -> Outcome:
        """Handle the tools/call request. Tools are looked up by exact name only."""
        try:
            call_params = ToolCallParams(**params)
        except ValidationError as e:
            return _invalid_params("tools/call", e)

        tool = self.registry.lookup_exact(CapabilityKind.TOOL, call_params.name)
        if tool is None:
            return Failure(ErrorKind.METHOD_NOT_FOUND, f"Tool not found: {call_params.name}")

        bound = self.invoker.bind_arguments(tool.params, call_params.arguments)
        if not bound.ok:
            return bound

        self._log.info("Calling tool", tool=tool.name, client_id=client_id)
        outcome = await self.invoker.invoke(tool.handler, bound.value)
        if not outcome.ok:
            self._log.warning("Tool failed", tool=tool.name, error=outcome.message)
            return outcome
        return Success(_dump(self.invoker.tool_result(outcome.value)))

    # -------------------------------------------------------------------------
    # Resources
    # -------------------------------------------------------------------------

    async def handle_resources_list(self, params: dict[str, Any], client_id: str) -> Outcome:
        """Handle the resources/list request."""
        page = self._page(CapabilityKind.RESOURCE, "resources/list", params)
        if not page.ok:
            return page
        items, next_cursor = page.value
        result = ResourcesListResult(
            resources=[resource.to_mcp_resource() for resource in items],
            nextCursor=next_cursor,
        )
        return Success(_dump(result))

    async def handle_resource_templates_list(
        self, params: dict[str, Any], client_id: str
    ) -> Outcome:
        """Handle the resources/templates/list request."""
        page = self._page(CapabilityKind.RESOURCE_TEMPLATE, "resources/templates/list", params)
        if not page.ok:
            return page
        items, next_cursor = page.value
        result = ResourceTemplatesListResult(
            resourceTemplates=[template.to_mcp_template() for template in items],
            nextCursor=next_cursor,
        )
        return Success(_dump(result))

    async def handle_resources_read(self, params: dict[str, Any], client_id: str) -> Outcome:
        """Handle resources/read: exact URI first, then the most specific template."""
        uri = self._uri_param("resources/read", params)
        if not uri.ok:
            return uri
        uri = uri.value

        resource = self.registry.lookup_exact(CapabilityKind.RESOURCE, uri)
        if resource is not None:
            handler, kwargs, mime_type = resource.handler, {}, resource.mime_type
        else:
            match = self.registry.match_template(CapabilityKind.RESOURCE_TEMPLATE, uri)
            if not match.ok:
                return Failure(ErrorKind.RESOURCE_NOT_FOUND, f"Resource not found: {uri}", {"uri": uri})
            template, bindings = match.value
            handler, kwargs, mime_type = template.handler, bindings, template.mime_type

        outcome = await self.invoker.invoke(handler, kwargs=kwargs)
        if not outcome.ok:
            return self._resource_failure(uri, outcome)
        return Success(_dump(self.invoker.resource_result(uri, outcome.value, mime_type)))

    async def handle_resources_subscribe(self, params: dict[str, Any], client_id: str) -> Outcome:
        """Handle resources/subscribe; only exact, subscribable resources qualify."""
        uri = self._uri_param("resources/subscribe", params)
        if not uri.ok:
            return uri
        uri = uri.value

        resource = self.registry.lookup_exact(CapabilityKind.RESOURCE, uri)
        if resource is None:
            if self.registry.match_template(CapabilityKind.RESOURCE_TEMPLATE, uri).ok:
                return Failure(
                    ErrorKind.INVALID_REQUEST,
                    f"Resource does not support subscriptions: {uri}",
                )
            return Failure(ErrorKind.RESOURCE_NOT_FOUND, f"Resource not found: {uri}", {"uri": uri})
        if not resource.subscribable:
            return Failure(
                ErrorKind.INVALID_REQUEST, f"Resource does not support subscriptions: {uri}"
            )

        outcome = self.subscriptions.subscribe(client_id, uri)
        if not outcome.ok:
            return outcome
        return Success({})

    async def handle_resources_unsubscribe(
        self, params: dict[str, Any], client_id: str
    ) -> Outcome:
        """Handle resources/unsubscribe; succeeds for unknown pairs."""
        uri = self._uri_param("resources/unsubscribe", params)
        if not uri.ok:
            return uri
        outcome = self.subscriptions.unsubscribe(client_id, uri.value)
        if not outcome.ok:
            return outcome
        return Success({})

    # -------------------------------------------------------------------------
    # Prompts
    # -------------------------------------------------------------------------

    async def handle_prompts_list(self, params: dict[str, Any], client_id: str) -> Outcome:
        """Handle the prompts/list request."""
        page = self._page(CapabilityKind.PROMPT, "prompts/list", params)
        if not page.ok:
            return page
        items, next_cursor = page.value
        result = PromptsListResult(
            prompts=[prompt.to_mcp_prompt() for prompt in items], nextCursor=next_cursor
        )
        return Success(_dump(result))

    async def handle_prompts_get(self, params: dict[str, Any], client_id: str) -> Outcome:
        """Handle prompts/get: exact name first, then the most specific name template."""
        try:
            get_params = PromptGetParams(**params)
        except ValidationError as e:
            return _invalid_params("prompts/get", e)
        name = get_params.name
        arguments = get_params.arguments or {}

        prompt = self.registry.lookup_exact(CapabilityKind.PROMPT, name)
        if prompt is not None:
            bound = self.invoker.bind_arguments(prompt.params, arguments)
            if not bound.ok:
                return bound
            outcome = await self.invoker.invoke(prompt.handler, bound.value)
        else:
            match = self.registry.match_template(CapabilityKind.PROMPT_TEMPLATE, name)
            if not match.ok:
                return Failure(ErrorKind.METHOD_NOT_FOUND, f"Prompt not found: {name}")
            prompt, bindings = match.value
            bag = {**bindings, **arguments}
            bound = self.invoker.bind_arguments(prompt.params, bag)
            if not bound.ok:
                return bound
            kwargs = dict(bindings)
            kwargs.update(zip((p.name for p in prompt.params), bound.value))
            outcome = await self.invoker.invoke(prompt.handler, kwargs=kwargs)

        if not outcome.ok:
            return outcome
        result = self.invoker.prompt_result(outcome.value, prompt.description)
        if not result.ok:
            return result
        return Success(_dump(result.value))

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    async def handle_completion(self, params: dict[str, Any], client_id: str) -> Outcome:
        """Handle completion/complete through the configured provider."""
        if self.completion is None:
            return Failure(ErrorKind.METHOD_NOT_FOUND, "Method not found: completion/complete")
        try:
            complete_params = CompleteParams(**params)
        except ValidationError as e:
            return _invalid_params("completion/complete", e)
        outcome = await self.completion.complete(complete_params.ref, complete_params.argument)
        if not outcome.ok:
            return outcome
        return Success(_dump(outcome.value))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _page(self, kind: CapabilityKind, method: str, params: dict[str, Any]) -> Outcome:
        try:
            list_params = ListParams(**params)
        except ValidationError as e:
            return _invalid_params(method, e)
        return self.registry.list_all(kind, list_params.cursor)

    def _uri_param(self, method: str, params: dict[str, Any]) -> Outcome:
        try:
            uri = ResourceUriParams(**params).uri
        except ValidationError as e:
            return _invalid_params(method, e)
        if not is_valid_uri(uri):
            return Failure(ErrorKind.INVALID_PARAMS, f"Invalid URI format: {uri}")
        return Success(uri)

    def _resource_failure(self, uri: str, failure: Failure) -> Failure:
        # Caught faults stay internal errors; a handler-reported failure means
        # the resource could not be produced.
        if failure.fault or failure.kind is ErrorKind.RESOURCE_NOT_FOUND:
            return failure
        return Failure(ErrorKind.RESOURCE_NOT_FOUND, failure.message, failure.data or {"uri": uri})
