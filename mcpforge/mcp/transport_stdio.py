"""Line-delimited stdio transport for MCP."""

import asyncio
import json
import sys
from typing import Protocol

import structlog

from mcpforge.mcp.errors import INVALID_REQUEST, Outcome, Success, make_error_data
from mcpforge.mcp.models import JsonRpcError, JsonRpcNotification, JsonRpcResponse
from mcpforge.mcp.notifications import NotificationSender
from mcpforge.mcp.server import MCPServer

logger = structlog.get_logger(__name__)

STDIO_CLIENT_ID = "stdio"

# Longest accepted request line; asyncio's default of 64 KiB is too small for tool arguments
MAX_LINE_BYTES = 16 * 1024 * 1024


class LineWriter(Protocol):
    """The part of ``asyncio.StreamWriter`` the transport uses."""

    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


class StdioTransport(NotificationSender):
    """
    One JSON-RPC message per line in, one per line out.

    Each request line is handled in its own task so a slow handler does not
    hold up the lines behind it; output lines are written under a lock so
    responses and notifications never interleave.
    """

    def __init__(
        self,
        server: MCPServer,
        reader: asyncio.StreamReader,
        writer: LineWriter,
        client_id: str = STDIO_CLIENT_ID,
    ):
        self.server = server
        self.reader = reader
        self.writer = writer
        self.client_id = client_id
        self._write_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    async def send(self, notification: JsonRpcNotification) -> Outcome:
        await self._write_line(json.dumps(notification.model_dump(), ensure_ascii=False))
        return Success()

    async def run(self) -> None:
        """Serve until the reader hits EOF, then wait for in-flight requests."""
        self.server.attach_sender(self.client_id, self)
        logger.info("Stdio transport started", client_id=self.client_id)
        try:
            while True:
                line = await self._read_line()
                if line is None:
                    await self._reject_oversized_line()
                    continue
                if not line:
                    break
                if not line.strip():
                    continue
                task = asyncio.create_task(self._handle_line(line))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            await self.server.dispatcher.drain()
        finally:
            self.server.detach_sender(self.client_id)
            logger.info("Stdio transport stopped", client_id=self.client_id)

    async def _handle_line(self, line: bytes) -> None:
        response = await self.server.handle_message(line, self.client_id)
        if response is None:
            return
        await self._write_line(self.server.processor.serialize_response(response))

    async def _read_line(self) -> bytes | None:
        """Next line (b"" at EOF), or None when the line was over the reader's limit and skipped."""
        try:
            return await self.reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            return e.partial
        except asyncio.LimitOverrunError as e:
            logger.warning("Request line too long", client_id=self.client_id)
            await self._skip_line(e.consumed)
            return None

    async def _skip_line(self, consumed: int) -> None:
        # readuntil() leaves an oversized line in the buffer; drop it up to its newline
        while True:
            await self.reader.readexactly(consumed)
            try:
                await self.reader.readuntil(b"\n")
                return
            except asyncio.IncompleteReadError:
                return
            except asyncio.LimitOverrunError as e:
                consumed = e.consumed

    async def _reject_oversized_line(self) -> None:
        error = JsonRpcResponse(
            id=None,
            error=JsonRpcError(**make_error_data(INVALID_REQUEST, "Request line too long")),
        )
        await self._write_line(self.server.processor.serialize_response(error))

    async def _write_line(self, text: str) -> None:
        data = text + "\n"
        async with self._write_lock:
            self.writer.write(data.encode("utf-8"))
            await self.writer.drain()


async def serve_stdio(server: MCPServer) -> None:
    """Run a server over the process's stdin/stdout."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=MAX_LINE_BYTES)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    transport, writer_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(transport, writer_protocol, reader, loop)
    await StdioTransport(server, reader, writer).run()
