"""Capability registry for MCP tools, resources and prompts."""

import base64
import binascii
import threading
from enum import Enum
from typing import Any, Callable

import structlog

from mcpforge.mcp.errors import ErrorKind, Failure, Outcome, Success
from mcpforge.mcp.models import Prompt, Resource, ResourceTemplate, Tool
from mcpforge.mcp.schema import ParamSpec, generate_params_schema, generate_prompt_arguments
from mcpforge.mcp.templates import Template, TemplateSyntaxError, find_best_match

DEFAULT_PAGE_SIZE = 50

# Handlers may be sync or async and return a payload or a Failure
Handler = Callable[..., Any]


class CapabilityKind(str, Enum):
    """The registry's tables."""

    TOOL = "tools"
    RESOURCE = "resources"
    RESOURCE_TEMPLATE = "resource_templates"
    PROMPT = "prompts"
    PROMPT_TEMPLATE = "prompt_templates"

    @property
    def list_kind(self) -> str:
        """Capability name used in ``notifications/{kind}/list_changed``."""
        return {
            CapabilityKind.TOOL: "tools",
            CapabilityKind.RESOURCE: "resources",
            CapabilityKind.RESOURCE_TEMPLATE: "resources",
            CapabilityKind.PROMPT: "prompts",
            CapabilityKind.PROMPT_TEMPLATE: "prompts",
        }[self]

    @property
    def is_template(self) -> bool:
        return self in (CapabilityKind.RESOURCE_TEMPLATE, CapabilityKind.PROMPT_TEMPLATE)


# =============================================================================
# Descriptors
# =============================================================================


class ToolDefinition:
    """A registered tool with its metadata and handler."""

    def __init__(
        self,
        name: str,
        description: str,
        params: list[ParamSpec] | None,
        handler: Handler,
    ):
        self.name = name
        self.description = description or ""
        self.params = tuple(params or ())
        self.handler = handler

    @property
    def key(self) -> str:
        return self.name

    def to_mcp_tool(self) -> Tool:
        """Convert to MCP Tool model for protocol responses."""
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema=generate_params_schema(self.params),
        )


class ResourceDefinition:
    """A readable resource at a fixed URI."""

    def __init__(
        self,
        uri: str,
        handler: Handler,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
        subscribable: bool = False,
    ):
        self.uri = uri
        self.handler = handler
        self.name = name or uri
        self.description = description
        self.mime_type = mime_type
        self.subscribable = subscribable

    @property
    def key(self) -> str:
        return self.uri

    def to_mcp_resource(self) -> Resource:
        return Resource(
            uri=self.uri,
            name=self.name,
            description=self.description,
            mimeType=self.mime_type,
        )


class ResourceTemplateDefinition:
    """A family of resources addressed by a URI template.

    The handler receives the bound placeholders as keyword arguments. The
    optional ``completer`` maps (argument name, partial value) to candidate
    values for completion/complete.
    """

    def __init__(
        self,
        uri_template: str,
        handler: Handler,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
        completer: Callable[[str, str], Any] | None = None,
    ):
        self.uri_template = uri_template
        self.handler = handler
        self.name = name or uri_template
        self.description = description
        self.mime_type = mime_type
        self.completer = completer

    @property
    def key(self) -> str:
        return self.uri_template

    def to_mcp_template(self) -> ResourceTemplate:
        return ResourceTemplate(
            uriTemplate=self.uri_template,
            name=self.name,
            description=self.description,
            mimeType=self.mime_type,
        )


class PromptDefinition:
    """A prompt with a fixed name."""

    def __init__(
        self,
        name: str,
        handler: Handler,
        description: str | None = None,
        params: list[ParamSpec] | None = None,
    ):
        self.name = name
        self.handler = handler
        self.description = description
        self.params = tuple(params or ())

    @property
    def key(self) -> str:
        return self.name

    def to_mcp_prompt(self) -> Prompt:
        return Prompt(
            name=self.name,
            description=self.description,
            arguments=generate_prompt_arguments(self.params),
        )


class PromptTemplateDefinition:
    """A family of prompts addressed by a name template such as ``review/{language}``."""

    def __init__(
        self,
        name_template: str,
        handler: Handler,
        description: str | None = None,
        params: list[ParamSpec] | None = None,
    ):
        self.name_template = name_template
        self.handler = handler
        self.description = description
        self.params = tuple(params or ())

    @property
    def key(self) -> str:
        return self.name_template

    def to_mcp_prompt(self) -> Prompt:
        return Prompt(
            name=self.name_template,
            description=self.description,
            arguments=generate_prompt_arguments(self.params),
        )


_DESCRIPTOR_TYPES: dict[CapabilityKind, type] = {
    CapabilityKind.TOOL: ToolDefinition,
    CapabilityKind.RESOURCE: ResourceDefinition,
    CapabilityKind.RESOURCE_TEMPLATE: ResourceTemplateDefinition,
    CapabilityKind.PROMPT: PromptDefinition,
    CapabilityKind.PROMPT_TEMPLATE: PromptTemplateDefinition,
}

# Missing template matches are reported with the same kind as missing exact entries
_NOT_FOUND_KINDS = {
    CapabilityKind.RESOURCE_TEMPLATE: ErrorKind.RESOURCE_NOT_FOUND,
    CapabilityKind.PROMPT_TEMPLATE: ErrorKind.METHOD_NOT_FOUND,
}


# =============================================================================
# Pagination cursors
# =============================================================================


def encode_cursor(offset: int) -> str:
    """Encode a table offset as an opaque cursor."""
    return base64.urlsafe_b64encode(f"offset:{offset}".encode()).decode()


def decode_cursor(cursor: str) -> int | None:
    """Decode a cursor produced by encode_cursor; None when malformed."""
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
    except (binascii.Error, UnicodeError, ValueError):
        return None
    prefix, _, value = raw.partition(":")
    if prefix != "offset" or not value.isdigit():
        return None
    return int(value)


# =============================================================================
# Registry
# =============================================================================


class CapabilityRegistry:
    """
    Tables of tools, resources, resource templates, prompts and prompt templates.

    Each table keeps registration order and is guarded by its own lock, so a
    reader never observes a half-applied mutation. ``listener`` is called with
    the affected kind after every successful register/unregister.
    """

    def __init__(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        listener: Callable[[CapabilityKind], None] | None = None,
        logger: Any = None,
    ) -> None:
        self.page_size = page_size
        self._listener = listener
        self._log = logger or structlog.get_logger(__name__)
        self._tables: dict[CapabilityKind, dict[str, Any]] = {kind: {} for kind in CapabilityKind}
        self._templates: dict[CapabilityKind, dict[str, Template]] = {
            CapabilityKind.RESOURCE_TEMPLATE: {},
            CapabilityKind.PROMPT_TEMPLATE: {},
        }
        self._locks = {kind: threading.RLock() for kind in CapabilityKind}

    def register(self, kind: CapabilityKind, key: str, descriptor: Any) -> Outcome:
        """Add a descriptor; fails with ALREADY_EXISTS when the key is taken."""
        expected = _DESCRIPTOR_TYPES[kind]
        if not isinstance(descriptor, expected):
            return Failure(
                ErrorKind.INVALID_PARAMS,
                f"Expected {expected.__name__} for {kind.value}, got {type(descriptor).__name__}",
            )
        if not key:
            return Failure(ErrorKind.INVALID_PARAMS, f"Empty key for {kind.value}")

        template = None
        if kind.is_template:
            try:
                template = Template(key)
            except TemplateSyntaxError as e:
                return Failure(ErrorKind.INVALID_PARAMS, str(e))

        with self._locks[kind]:
            table = self._tables[kind]
            if key in table:
                return Failure(
                    ErrorKind.ALREADY_EXISTS,
                    f"{kind.value} entry already registered: {key}",
                    {"key": key},
                )
            table[key] = descriptor
            if template is not None:
                self._templates[kind][key] = template

        self._log.info("Registered capability", kind=kind.value, key=key)
        self._changed(kind)
        return Success()

    def unregister(self, kind: CapabilityKind, key: str) -> Outcome:
        """Remove a descriptor; fails with NOT_FOUND when the key is absent."""
        with self._locks[kind]:
            if key not in self._tables[kind]:
                return Failure(
                    ErrorKind.NOT_FOUND,
                    f"{kind.value} entry not registered: {key}",
                    {"key": key},
                )
            del self._tables[kind][key]
            if kind.is_template:
                del self._templates[kind][key]

        self._log.info("Unregistered capability", kind=kind.value, key=key)
        self._changed(kind)
        return Success()

    def lookup_exact(self, kind: CapabilityKind, key: str) -> Any | None:
        """Get a descriptor by its exact key."""
        with self._locks[kind]:
            return self._tables[kind].get(key)

    def list_all(self, kind: CapabilityKind, cursor: str | None = None) -> Outcome:
        """
        One page of a table in registration order.

        Succeeds with ``(items, next_cursor)``; ``next_cursor`` is None when
        the page reaches the end of the table.
        """
        start = 0
        if cursor is not None:
            decoded = decode_cursor(cursor)
            if decoded is None:
                return Failure(ErrorKind.INVALID_PARAMS, f"Invalid cursor: {cursor}")
            start = decoded

        with self._locks[kind]:
            items = list(self._tables[kind].values())

        if start > len(items):
            return Failure(ErrorKind.INVALID_PARAMS, f"Invalid cursor: {cursor}")

        end = start + self.page_size
        page = items[start:end]
        next_cursor = encode_cursor(end) if end < len(items) else None
        return Success((page, next_cursor))

    def match_template(self, kind: CapabilityKind, value: str) -> Outcome:
        """
        Resolve ``value`` against a template table.

        Succeeds with ``(descriptor, bindings)``; fails with RESOURCE_NOT_FOUND
        for resource templates and METHOD_NOT_FOUND for prompt templates.
        """
        if not kind.is_template:
            raise ValueError(f"{kind.value} is not a template table")
        with self._locks[kind]:
            candidates = [
                (self._templates[kind][key], descriptor)
                for key, descriptor in self._tables[kind].items()
            ]
        match = find_best_match(candidates, value)
        if match is None:
            return Failure(_NOT_FOUND_KINDS[kind], f"No template matches: {value}")
        return Success(match)

    def count(self, kind: CapabilityKind) -> int:
        with self._locks[kind]:
            return len(self._tables[kind])

    def has_any(self, *kinds: CapabilityKind) -> bool:
        """Check whether any of the given tables is non-empty."""
        return any(self.count(kind) > 0 for kind in kinds)

    def values(self, kind: CapabilityKind) -> list[Any]:
        """Snapshot of a whole table in registration order."""
        with self._locks[kind]:
            return list(self._tables[kind].values())

    def _changed(self, kind: CapabilityKind) -> None:
        if self._listener is not None:
            self._listener(kind)
