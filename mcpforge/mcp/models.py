"""Pydantic models for MCP JSON-RPC 2.0 protocol."""

from typing import Any, Literal
from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# JSON-RPC 2.0 Base Models
# =============================================================================


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request object."""

    jsonrpc: Literal["2.0"]
    id: int | str | None = None  # None for notifications
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response object."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: int | str | None = None
    result: Any = None
    error: JsonRpcError | None = None

    def model_dump(self, **kwargs: Any) -> dict[str, Any]:
        """Exactly one of ``result`` / ``error`` is emitted."""
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            data["error"] = self.error.model_dump(exclude_none=True)
        else:
            data["result"] = self.result if self.result is not None else {}
        return data


class JsonRpcNotification(BaseModel):
    """JSON-RPC 2.0 notification (no id)."""

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: dict[str, Any] | None = None

    def model_dump(self, **kwargs: Any) -> dict[str, Any]:
        kwargs.setdefault("exclude_none", True)
        return super().model_dump(**kwargs)


# =============================================================================
# MCP Content Types
# =============================================================================


class TextContent(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    """Image content block (base64 encoded)."""

    type: Literal["image"] = "image"
    data: str  # base64 encoded
    mimeType: str


class TextResourceContents(BaseModel):
    """Resource contents carried as text."""

    uri: str
    mimeType: str
    text: str


class BlobResourceContents(BaseModel):
    """Resource contents carried as base64 blob."""

    uri: str
    mimeType: str
    blob: str


class EmbeddedResource(BaseModel):
    """Resource content block embedded in a tool or prompt result."""

    type: Literal["resource"] = "resource"
    resource: TextResourceContents | BlobResourceContents


Content = TextContent | ImageContent | EmbeddedResource
ResourceContents = TextResourceContents | BlobResourceContents


# =============================================================================
# MCP Capability Models
# =============================================================================


class Tool(BaseModel):
    """MCP tool definition."""

    name: str
    description: str = ""
    inputSchema: dict[str, Any]


class Resource(BaseModel):
    """MCP resource definition."""

    uri: str
    name: str
    description: str | None = None
    mimeType: str | None = None


class ResourceTemplate(BaseModel):
    """MCP resource template definition."""

    uriTemplate: str
    name: str
    description: str | None = None
    mimeType: str | None = None


class PromptArgument(BaseModel):
    """Argument accepted by a prompt."""

    name: str
    description: str | None = None
    required: bool = True


class Prompt(BaseModel):
    """MCP prompt definition."""

    name: str
    description: str | None = None
    arguments: list[PromptArgument] = Field(default_factory=list)


class PromptMessage(BaseModel):
    """A single message produced by a prompt."""

    role: Literal["user", "assistant"] = "user"
    content: TextContent | ImageContent | EmbeddedResource


# =============================================================================
# MCP Results
# =============================================================================


class ToolCallResult(BaseModel):
    """Result of a tool call."""

    content: list[TextContent | ImageContent | EmbeddedResource]
    isError: bool = False


class ReadResourceResult(BaseModel):
    """Result of resources/read."""

    contents: list[TextResourceContents | BlobResourceContents]


class GetPromptResult(BaseModel):
    """Result of prompts/get."""

    description: str | None = None
    messages: list[PromptMessage]


class ToolsListResult(BaseModel):
    """Result of tools/list request."""

    tools: list[Tool]
    nextCursor: str | None = None


class ResourcesListResult(BaseModel):
    """Result of resources/list request."""

    resources: list[Resource]
    nextCursor: str | None = None


class ResourceTemplatesListResult(BaseModel):
    """Result of resources/templates/list request."""

    resourceTemplates: list[ResourceTemplate]
    nextCursor: str | None = None


class PromptsListResult(BaseModel):
    """Result of prompts/list request."""

    prompts: list[Prompt]
    nextCursor: str | None = None


class Completion(BaseModel):
    """Completion values for an argument."""

    values: list[str]
    total: int
    hasMore: bool = False


class CompleteResult(BaseModel):
    """Result of completion/complete."""

    completion: Completion


# =============================================================================
# MCP Protocol Models
# =============================================================================


class ClientInfo(BaseModel):
    """Client information sent during initialization."""

    name: str
    version: str


class ServerInfo(BaseModel):
    """Server information returned during initialization."""

    name: str
    version: str


class Capabilities(BaseModel):
    """Server capabilities; a capability is omitted when absent."""

    tools: dict[str, Any] | None = None
    resources: dict[str, Any] | None = None
    prompts: dict[str, Any] | None = None
    completions: dict[str, Any] | None = None


class InitializeParams(BaseModel):
    """Parameters for initialize request."""

    protocolVersion: str
    capabilities: dict[str, Any] = Field(default_factory=dict)
    clientInfo: ClientInfo


class InitializeResult(BaseModel):
    """Result of initialize request."""

    protocolVersion: str
    capabilities: Capabilities
    serverInfo: ServerInfo
    instructions: str | None = None


class ToolCallParams(BaseModel):
    """Parameters for tools/call request."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    arguments: dict[str, Any] | None = None


class ResourceUriParams(BaseModel):
    """Parameters for resources/read, resources/subscribe and resources/unsubscribe."""

    model_config = ConfigDict(extra="ignore")

    uri: str = Field(min_length=1)


class PromptGetParams(BaseModel):
    """Parameters for prompts/get request."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    arguments: dict[str, Any] | None = None


class ListParams(BaseModel):
    """Parameters for the */list requests."""

    model_config = ConfigDict(extra="ignore")

    cursor: str | None = None


class CompletionReference(BaseModel):
    """Reference to the prompt or resource being completed."""

    type: str
    uri: str | None = None
    name: str | None = None


class CompletionArgument(BaseModel):
    """Argument being completed."""

    name: str
    value: str = ""


class CompleteParams(BaseModel):
    """Parameters for completion/complete."""

    model_config = ConfigDict(extra="ignore")

    ref: CompletionReference
    argument: CompletionArgument
