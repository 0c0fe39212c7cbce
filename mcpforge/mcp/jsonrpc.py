"""JSON-RPC 2.0 message processing."""

import asyncio
import json
from typing import Any

import structlog
from pydantic import ValidationError

from mcpforge.mcp.errors import INVALID_REQUEST, PARSE_ERROR, Failure, make_error_data
from mcpforge.mcp.models import JsonRpcError, JsonRpcRequest, JsonRpcResponse
from mcpforge.mcp.router import DEFAULT_CLIENT_ID, ProtocolRouter

logger = structlog.get_logger(__name__)

Reply = JsonRpcResponse | list[JsonRpcResponse] | None


class JsonRpcProcessor:
    """Process JSON-RPC 2.0 messages."""

    def __init__(self, router: ProtocolRouter, request_timeout: float | None = None):
        self.router = router
        # None or 0 disables the per-request timeout
        self.request_timeout = request_timeout or None

    def parse_request(self, data: Any) -> tuple[JsonRpcRequest | None, dict | None]:
        """
        Validate one decoded JSON-RPC request object.

        Returns (request, error) tuple. One will be None.
        """
        if not isinstance(data, dict):
            return None, make_error_data(INVALID_REQUEST, "Request must be a JSON object")
        try:
            return JsonRpcRequest(**data), None
        except ValidationError as e:
            return None, make_error_data(INVALID_REQUEST, f"Invalid JSON-RPC request: {e}")

    async def process_request(
        self, request: JsonRpcRequest, client_id: str = DEFAULT_CLIENT_ID
    ) -> JsonRpcResponse | None:
        """
        Process a validated JSON-RPC request.

        Returns None for notifications (requests without id).
        """
        try:
            outcome = await asyncio.wait_for(
                self.router.dispatch(request.method, request.params, client_id),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Request timed out", method=request.method, timeout=self.request_timeout)
            outcome = Failure.from_exception(
                TimeoutError(f"Request timed out after {self.request_timeout}s")
            )

        # Notifications don't get responses
        if request.is_notification:
            return None

        if not outcome.ok:
            return JsonRpcResponse(id=request.id, error=JsonRpcError(**outcome.to_error()))
        return JsonRpcResponse(id=request.id, result=outcome.value)

    async def handle_message(
        self, raw_data: str | bytes, client_id: str = DEFAULT_CLIENT_ID
    ) -> Reply:
        """
        Handle a raw JSON-RPC message end-to-end.

        Returns a response, a list of responses for a batch, or None when
        nothing needs answering (notifications only).
        """
        try:
            if isinstance(raw_data, bytes):
                raw_data = raw_data.decode("utf-8")
            data = json.loads(raw_data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            # Parse errors don't have a request id
            return self._error(None, PARSE_ERROR, f"Invalid JSON: {e}")

        if isinstance(data, list):
            return await self._handle_batch(data, client_id)
        return await self._handle_one(data, client_id)

    async def _handle_one(self, data: Any, client_id: str) -> JsonRpcResponse | None:
        request, error = self.parse_request(data)
        if error is not None:
            request_id = data.get("id") if isinstance(data, dict) else None
            if not isinstance(request_id, (int, str)):
                request_id = None
            return JsonRpcResponse(id=request_id, error=JsonRpcError(**error))
        return await self.process_request(request, client_id)  # type: ignore[arg-type]

    async def _handle_batch(self, items: list[Any], client_id: str) -> Reply:
        if not items:
            return self._error(None, INVALID_REQUEST, "Empty batch")
        responses = await asyncio.gather(*(self._handle_one(item, client_id) for item in items))
        replies = [response for response in responses if response is not None]
        return replies or None

    def _error(self, request_id: Any, code: int, message: str) -> JsonRpcResponse:
        return JsonRpcResponse(id=request_id, error=JsonRpcError(**make_error_data(code, message)))

    def serialize_response(self, response: JsonRpcResponse | list[JsonRpcResponse]) -> str:
        """Serialize a JSON-RPC response (or batch) to a JSON string."""
        if isinstance(response, list):
            return json.dumps([item.model_dump() for item in response])
        return json.dumps(response.model_dump())

