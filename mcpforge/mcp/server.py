"""Server composition: registry, subscriptions, notifications and routing."""

import importlib
from typing import Any, Callable, Iterable

import structlog

from mcpforge.config import Settings, get_settings
from mcpforge.mcp.completion import CompletionProvider, RegistryCompletionProvider
from mcpforge.mcp.errors import Outcome
from mcpforge.mcp.invoker import MethodInvoker
from mcpforge.mcp.jsonrpc import JsonRpcProcessor
from mcpforge.mcp.notifications import NotificationDispatcher, NotificationSender
from mcpforge.mcp.registry import (
    DEFAULT_PAGE_SIZE,
    CapabilityKind,
    CapabilityRegistry,
    Handler,
    PromptDefinition,
    PromptTemplateDefinition,
    ResourceDefinition,
    ResourceTemplateDefinition,
    ToolDefinition,
)
from mcpforge.mcp.router import DEFAULT_PROTOCOL_VERSION, ProtocolRouter
from mcpforge.mcp.schema import ParamSpec
from mcpforge.mcp.subscriptions import SubscriptionManager


class MCPServer:
    """
    Composition root for one MCP server.

    Providers register capabilities through the ``add_*`` methods; every
    successful registration or removal schedules a ``list_changed``
    notification for the affected capability.
    """

    def __init__(
        self,
        name: str = "mcpforge",
        version: str = "1.0.0",
        protocol_version: str = DEFAULT_PROTOCOL_VERSION,
        instructions: str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        request_timeout: float | None = None,
        completion: CompletionProvider | None = None,
        logger: Any = None,
    ) -> None:
        log = logger or structlog.get_logger(__name__)
        self._log = log
        self.subscriptions = SubscriptionManager(logger=log)
        self.dispatcher = NotificationDispatcher(self.subscriptions, logger=log)
        self.registry = CapabilityRegistry(
            page_size=page_size, listener=self._on_registry_change, logger=log
        )
        self.invoker = MethodInvoker(logger=log)
        self.router = ProtocolRouter(
            self.registry,
            self.subscriptions,
            invoker=self.invoker,
            completion=completion or RegistryCompletionProvider(self.registry, self.invoker),
            server_name=name,
            server_version=version,
            protocol_version=protocol_version,
            instructions=instructions,
            logger=log,
        )
        self.processor = JsonRpcProcessor(self.router, request_timeout=request_timeout)
        self._providers: set[str] = set()

    @property
    def name(self) -> str:
        return self.router.server_name

    @property
    def instructions(self) -> str | None:
        return self.router.instructions

    @instructions.setter
    def instructions(self, value: str | None) -> None:
        self.router.instructions = value

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def add_tool(
        self,
        name: str,
        handler: Handler,
        description: str = "",
        params: list[ParamSpec] | None = None,
    ) -> Outcome:
        """Register a tool; params are resolved by name in declaration order."""
        tool = ToolDefinition(name=name, description=description, params=params, handler=handler)
        return self.registry.register(CapabilityKind.TOOL, name, tool)

    def add_resource(
        self,
        uri: str,
        handler: Handler,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
        subscribable: bool = False,
    ) -> Outcome:
        resource = ResourceDefinition(
            uri=uri,
            handler=handler,
            name=name,
            description=description,
            mime_type=mime_type,
            subscribable=subscribable,
        )
        return self.registry.register(CapabilityKind.RESOURCE, uri, resource)

    def add_resource_template(
        self,
        uri_template: str,
        handler: Handler,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
        completer: Callable[[str, str], Any] | None = None,
    ) -> Outcome:
        template = ResourceTemplateDefinition(
            uri_template=uri_template,
            handler=handler,
            name=name,
            description=description,
            mime_type=mime_type,
            completer=completer,
        )
        return self.registry.register(CapabilityKind.RESOURCE_TEMPLATE, uri_template, template)

    def add_prompt(
        self,
        name: str,
        handler: Handler,
        description: str | None = None,
        params: list[ParamSpec] | None = None,
    ) -> Outcome:
        prompt = PromptDefinition(name=name, handler=handler, description=description, params=params)
        return self.registry.register(CapabilityKind.PROMPT, name, prompt)

    def add_prompt_template(
        self,
        name_template: str,
        handler: Handler,
        description: str | None = None,
        params: list[ParamSpec] | None = None,
    ) -> Outcome:
        prompt = PromptTemplateDefinition(
            name_template=name_template, handler=handler, description=description, params=params
        )
        return self.registry.register(CapabilityKind.PROMPT_TEMPLATE, name_template, prompt)

    def remove_tool(self, name: str) -> Outcome:
        return self.registry.unregister(CapabilityKind.TOOL, name)

    def remove_resource(self, uri: str) -> Outcome:
        return self.registry.unregister(CapabilityKind.RESOURCE, uri)

    def remove_resource_template(self, uri_template: str) -> Outcome:
        return self.registry.unregister(CapabilityKind.RESOURCE_TEMPLATE, uri_template)

    def remove_prompt(self, name: str) -> Outcome:
        return self.registry.unregister(CapabilityKind.PROMPT, name)

    def remove_prompt_template(self, name_template: str) -> Outcome:
        return self.registry.unregister(CapabilityKind.PROMPT_TEMPLATE, name_template)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def notify_resource_updated(self, uri: str) -> Outcome:
        return await self.dispatcher.notify_resource_updated(uri)

    async def notify_list_changed(self, kind: str) -> Outcome:
        return await self.dispatcher.notify_list_changed(kind)

    async def notify_multiple(self, uris: Iterable[str]) -> Outcome:
        return await self.dispatcher.notify_multiple(uris)

    def attach_sender(self, client_id: str, sender: NotificationSender) -> None:
        """Attach the notification sender for a connected client."""
        self.dispatcher.attach(client_id, sender)

    def detach_sender(self, client_id: str) -> None:
        """Detach a client's sender and drop its subscriptions."""
        self.dispatcher.detach(client_id)
        self.subscriptions.clear_client(client_id)

    def set_default_sender(self, sender: NotificationSender | None) -> None:
        """Sender used for every client on a single-connection transport."""
        self.dispatcher.set_sender(sender)

    def _on_registry_change(self, kind: CapabilityKind) -> None:
        self.dispatcher.schedule_list_changed(kind.list_kind)

    # -------------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------------

    def load_provider(self, provider_name: str) -> bool:
        """
        Load a provider module and register its capabilities.

        Providers are expected to be in mcpforge/tools/<provider_name>/
        and have a register_tools(server) function.
        """
        if provider_name in self._providers:
            self._log.debug("Provider already loaded", provider=provider_name)
            return True

        module_path = f"mcpforge.tools.{provider_name}.tools"
        try:
            module = importlib.import_module(module_path)
        except ImportError as e:
            self._log.warning("Could not import provider", provider=provider_name, error=str(e))
            return False

        if not hasattr(module, "register_tools"):
            self._log.warning("Provider has no register_tools function", provider=provider_name)
            return False

        module.register_tools(self)
        self._providers.add(provider_name)
        self._log.info("Loaded provider", provider=provider_name)
        return True

    def load_providers(self, provider_names: list[str]) -> dict[str, bool]:
        """Load multiple providers, returning success status for each."""
        return {name: self.load_provider(name) for name in provider_names}

    @property
    def tool_count(self) -> int:
        return self.registry.count(CapabilityKind.TOOL)

    @property
    def resource_count(self) -> int:
        return self.registry.count(CapabilityKind.RESOURCE) + self.registry.count(
            CapabilityKind.RESOURCE_TEMPLATE
        )

    @property
    def prompt_count(self) -> int:
        return self.registry.count(CapabilityKind.PROMPT) + self.registry.count(
            CapabilityKind.PROMPT_TEMPLATE
        )

    @property
    def provider_count(self) -> int:
        return len(self._providers)

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def dispatch(
        self, method: str, params: dict[str, Any] | None = None, client_id: str = "default"
    ) -> Outcome:
        """Route one method call without the JSON-RPC envelope."""
        return await self.router.dispatch(method, params, client_id)

    async def handle_message(self, raw_data: str | bytes, client_id: str = "default"):
        """Handle one raw JSON-RPC message (or batch)."""
        return await self.processor.handle_message(raw_data, client_id)


def require(outcome: Outcome) -> Any:
    """Unwrap a Success at startup; a failed registration is a programming error."""
    if not outcome.ok:
        raise RuntimeError(f"{outcome.kind.name}: {outcome.message}")
    return outcome.value


def create_server(settings: Settings | None = None) -> MCPServer:
    """Build a server from settings (defaults to the process settings)."""
    settings = settings or get_settings()
    return MCPServer(
        name=settings.server_name,
        version=settings.server_version,
        protocol_version=settings.protocol_version,
        instructions=settings.instructions,
        page_size=settings.page_size,
        request_timeout=settings.request_timeout,
    )


# Global server instance
_server: MCPServer | None = None


def get_server() -> MCPServer:
    """Get the global server, creating it if necessary."""
    global _server
    if _server is None:
        _server = create_server()
    return _server


def reset_server() -> None:
    """Reset the global server (useful for testing)."""
    global _server
    _server = None
