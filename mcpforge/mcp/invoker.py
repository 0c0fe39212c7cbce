"""Safe handler invocation and content mapping."""

import base64
import functools
import inspect
import json
from typing import Any, Callable, Iterable

import pydantic_core
import structlog
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool

from mcpforge.mcp.errors import ErrorKind, Failure, Outcome, ProtocolError, Success
from mcpforge.mcp.models import (
    BlobResourceContents,
    EmbeddedResource,
    GetPromptResult,
    ImageContent,
    PromptMessage,
    ReadResourceResult,
    TextContent,
    TextResourceContents,
    ToolCallResult,
)
from mcpforge.mcp.schema import ParamSpec, ParamValidator, validate_param
from mcpforge.utils.mime import is_binary_mime_type, resolve_mime_type

_CONTENT_TYPES = (TextContent, ImageContent, EmbeddedResource)


def to_text(value: Any) -> str:
    """Strings pass through; everything else is JSON-encoded."""
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump_json(exclude_none=True)
    return json.dumps(
        value,
        separators=(",", ":"),
        ensure_ascii=False,
        default=pydantic_core.to_jsonable_python,
    )


class MethodInvoker:
    """
    Calls registered handlers and normalizes what comes back.

    Sync handlers run in a worker thread, async handlers are awaited. A
    returned ``Failure`` (or a raised ``ProtocolError``) is passed through
    untouched; any other exception becomes an InternalError failure.
    """

    def __init__(self, validator: ParamValidator = validate_param, logger: Any = None):
        self.validator = validator
        self._log = logger or structlog.get_logger(__name__)

    # -------------------------------------------------------------------------
    # Argument binding
    # -------------------------------------------------------------------------

    def bind_arguments(
        self,
        params: Iterable[ParamSpec],
        arguments: dict[str, Any] | None,
    ) -> Outcome:
        """
        Resolve declared parameters from the argument bag, in declaration order.

        Succeeds with the positional argument list. Missing required
        parameters and values the validator rejects fail with INVALID_PARAMS.
        """
        params = list(params)
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return Failure(ErrorKind.INVALID_PARAMS, "Arguments must be an object")

        missing = [p.name for p in params if p.required and p.name not in arguments]
        if missing:
            return Failure(
                ErrorKind.INVALID_PARAMS,
                f"Missing required arguments: {', '.join(missing)}",
                {"missing": missing},
            )

        errors: dict[str, str] = {}
        for param in params:
            if param.name not in arguments:
                continue
            message = self.validator(param, arguments[param.name])
            if message is not None:
                errors[param.name] = message
        if errors:
            details = "; ".join(f"{name}: {message}" for name, message in errors.items())
            return Failure(
                ErrorKind.INVALID_PARAMS,
                f"Invalid arguments: {details}",
                {"errors": errors},
            )

        return Success([arguments.get(p.name) for p in params])

    # -------------------------------------------------------------------------
    # Invocation
    # -------------------------------------------------------------------------

    async def invoke(
        self,
        handler: Callable[..., Any],
        args: list[Any] | None = None,
        kwargs: dict[str, Any] | None = None,
    ) -> Outcome:
        """Call a handler and turn its result or exception into an Outcome."""
        args = args or []
        kwargs = kwargs or {}
        try:
            if inspect.iscoroutinefunction(handler):
                result = await handler(*args, **kwargs)
            else:
                result = await run_in_threadpool(functools.partial(handler, *args, **kwargs))
                if inspect.isawaitable(result):
                    result = await result
        except ProtocolError as e:
            return e.failure
        except Exception as e:
            self._log.exception("Handler raised", handler=getattr(handler, "__name__", repr(handler)))
            return Failure.from_exception(e)

        if isinstance(result, (Success, Failure)):
            return result
        return Success(result)

    # -------------------------------------------------------------------------
    # Content mapping
    # -------------------------------------------------------------------------

    def tool_result(self, payload: Any) -> ToolCallResult:
        """
        Wrap a tool payload.

        Content blocks the handler built itself are kept as they are; any
        other payload becomes a single text block.
        """
        if isinstance(payload, _CONTENT_TYPES):
            return ToolCallResult(content=[payload])
        if (
            isinstance(payload, list)
            and payload
            and all(isinstance(item, _CONTENT_TYPES) for item in payload)
        ):
            return ToolCallResult(content=list(payload))
        return ToolCallResult(content=[TextContent(text=to_text(payload))])

    def resource_result(
        self,
        uri: str,
        payload: Any,
        mime_type: str | None = None,
    ) -> ReadResourceResult:
        """
        Wrap a resource payload as a single contents item.

        Binary MIME types produce a base64 ``blob`` (bytes are encoded, a
        string is taken as already encoded); all others a verbatim ``text``.
        """
        if isinstance(payload, ReadResourceResult):
            return payload
        if isinstance(payload, (TextResourceContents, BlobResourceContents)):
            return ReadResourceResult(contents=[payload])

        effective = resolve_mime_type(uri, mime_type)
        if is_binary_mime_type(effective):
            if isinstance(payload, (bytes, bytearray, memoryview)):
                blob = base64.b64encode(bytes(payload)).decode("ascii")
            else:
                blob = to_text(payload)
            return ReadResourceResult(
                contents=[BlobResourceContents(uri=uri, mimeType=effective, blob=blob)]
            )

        if isinstance(payload, (bytes, bytearray, memoryview)):
            text = bytes(payload).decode("utf-8", errors="replace")
        else:
            text = to_text(payload)
        return ReadResourceResult(
            contents=[TextResourceContents(uri=uri, mimeType=effective, text=text)]
        )

    def prompt_result(self, payload: Any, description: str | None = None) -> Outcome:
        """
        Normalize a prompt payload into ``{description?, messages}``.

        Accepted payloads: a GetPromptResult, a dict with ``messages``, a list
        of messages (dicts or PromptMessage), or a plain string which becomes
        one user message.
        """
        try:
            if isinstance(payload, GetPromptResult):
                result = payload
            elif isinstance(payload, str):
                result = GetPromptResult(
                    messages=[PromptMessage(role="user", content=TextContent(text=payload))]
                )
            elif isinstance(payload, dict) and "messages" in payload:
                result = GetPromptResult.model_validate(payload)
            elif isinstance(payload, (list, tuple)):
                result = GetPromptResult(messages=[_to_message(item) for item in payload])
            else:
                result = GetPromptResult(
                    messages=[PromptMessage(role="user", content=TextContent(text=to_text(payload)))]
                )
        except ValidationError as e:
            return Failure(ErrorKind.INTERNAL_ERROR, f"Invalid prompt result: {e.errors()[0]['msg']}")

        if result.description is None and description:
            result = result.model_copy(update={"description": description})
        return Success(result)


def _to_message(item: Any) -> PromptMessage:
    if isinstance(item, PromptMessage):
        return item
    if isinstance(item, str):
        return PromptMessage(role="user", content=TextContent(text=item))
    if isinstance(item, _CONTENT_TYPES):
        return PromptMessage(role="user", content=item)
    return PromptMessage.model_validate(item)
