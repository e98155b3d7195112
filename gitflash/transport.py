"""Channels between the dispatch loop and an operation server."""

import asyncio
import concurrent.futures
import os
import sys
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Union

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import CallToolResult, TextContent
from pydantic import ValidationError

from gitflash.config import Config
from gitflash.constants import (
    DEFAULT_MAX_READ_MB,
    DEFAULT_MAX_WRITE_MB,
    DEFAULT_OPERATION_TIMEOUT,
    TRANSPORT_GRACE_SECONDS,
)
from gitflash.models import ErrorKind, OperationRequest, OperationResult
from gitflash.tools.server import OperationServer


class Transport(ABC):
    """Delivers one request at a time and returns its result.

    Transport-level failures come back as ``Unknown`` (or ``Timeout``)
    results; ``call`` does not raise.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def call(self, request: OperationRequest) -> OperationResult:
        with self._lock:
            return self._call(request)

    @abstractmethod
    def _call(self, request: OperationRequest) -> OperationResult:
        ...

    def close(self) -> None:
        """Release any held resources."""

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class LocalTransport(Transport):
    """Calls an in-process OperationServer directly."""

    def __init__(self, server: OperationServer):
        super().__init__()
        self.server = server

    def _call(self, request: OperationRequest) -> OperationResult:
        try:
            return self.server.execute(request)
        except Exception as e:
            return OperationResult.failure(ErrorKind.UNKNOWN, f"Transport failure: {e}")


class SubprocessTransport(Transport):
    """Talks to the MCP operation server ``python -m gitflash.rpc`` over stdio.

    The client session runs on a private event loop thread and is opened on
    first use. Every call is bounded by ``timeout + grace``; a server that
    dies or stops answering is torn down and started again on the next call.
    """

    def __init__(
        self,
        root: Union[str, Path],
        timeout: float = DEFAULT_OPERATION_TIMEOUT,
        max_read_mb: int = DEFAULT_MAX_READ_MB,
        max_write_mb: int = DEFAULT_MAX_WRITE_MB,
        command: Optional[list[str]] = None,
        grace: float = TRANSPORT_GRACE_SECONDS,
    ):
        """Initialize transport.

        Args:
            root: Working directory for the remote server
            timeout: Server-side per-call timeout in seconds
            max_read_mb: Read limit passed to the server
            max_write_mb: Write limit passed to the server
            command: Override the server command line
            grace: Extra seconds to wait for a response beyond ``timeout``
        """
        super().__init__()
        self.root = Path(root).resolve()
        self.timeout = timeout
        self.grace = grace
        command = command or [
            sys.executable, "-m", "gitflash.rpc",
            "--root", str(self.root),
            "--timeout", str(timeout),
            "--max-read-mb", str(max_read_mb),
            "--max-write-mb", str(max_write_mb),
        ]
        self.params = StdioServerParameters(
            command=command[0],
            args=command[1:],
            env=dict(os.environ, PYTHONIOENCODING="utf-8"),
        )

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._session_task: Optional[asyncio.Task] = None
        self._requests: Optional[asyncio.Queue] = None
        self._last_error: Optional[BaseException] = None

    # ---------------------- Session (event loop thread) ----------------------

    async def _serve_session(self, ready: asyncio.Future, requests: asyncio.Queue) -> None:
        """Own the stdio client and session for their whole lifetime.

        Opening and closing both happen in this one task, which anyio's
        cancel scopes require. Requests arrive on ``requests`` as
        ``(tool, arguments, reply)``; None closes the session.
        """
        try:
            async with stdio_client(self.params) as (read, write):
                async with ClientSession(read, write) as session:
                    await session.initialize()
                    ready.set_result(None)
                    while True:
                        item = await requests.get()
                        if item is None:
                            return
                        name, arguments, reply = item
                        try:
                            result = await session.call_tool(name, arguments=arguments)
                        except Exception as e:
                            if not reply.done():
                                reply.set_exception(e)
                            raise
                        if not reply.done():
                            reply.set_result(result)
        except Exception as e:
            self._last_error = e
            if not ready.done():
                ready.set_exception(e)

    async def _until(self, future: asyncio.Future):
        """Wait for ``future`` unless the session ends first."""
        await asyncio.wait({future, self._session_task}, return_when=asyncio.FIRST_COMPLETED)
        if not future.done():
            reason = f": {self._last_error}" if self._last_error else ""
            raise ConnectionError(f"operation server closed the connection{reason}")
        return future.result()

    async def _request(self, name: str, arguments: dict[str, Any]) -> CallToolResult:
        loop = asyncio.get_running_loop()
        if self._session_task is None or self._session_task.done():
            ready = loop.create_future()
            self._requests = asyncio.Queue()
            self._last_error = None
            self._session_task = loop.create_task(self._serve_session(ready, self._requests))
            await self._until(ready)

        reply = loop.create_future()
        await self._requests.put((name, arguments, reply))
        return await self._until(reply)

    async def _stop_session(self, graceful: bool) -> None:
        task, self._session_task = self._session_task, None
        if task is None or task.done():
            return
        if graceful:
            await self._requests.put(None)
            done, _ = await asyncio.wait({task}, timeout=self.grace)
            if done:
                return
        # leaving stdio_client on cancellation terminates the server process
        task.cancel()
        await asyncio.wait({task}, timeout=self.grace)

    # ---------------------- Caller side ----------------------

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(
                target=self._loop.run_forever, name="gitflash-mcp-client", daemon=True
            )
            self._thread.start()
        return self._loop

    def _call(self, request: OperationRequest) -> OperationResult:
        limit = self.timeout + self.grace
        future = asyncio.run_coroutine_threadsafe(
            self._request(request.name.value, dict(request.arguments)), self._ensure_loop()
        )
        try:
            response = future.result(limit)
        except concurrent.futures.TimeoutError:
            future.cancel()
            self._reset(graceful=False)
            return OperationResult.failure(
                ErrorKind.TIMEOUT, f"Operation server did not answer within {limit}s"
            )
        except Exception as e:
            self._reset(graceful=False)
            return OperationResult.failure(ErrorKind.UNKNOWN, f"Transport failure: {e}")
        return self._decode(response)

    def _decode(self, response: CallToolResult) -> OperationResult:
        text = "".join(
            block.text for block in response.content if isinstance(block, TextContent)
        )
        if response.isError:
            # unknown tool or arguments the server's schema refuses
            return OperationResult.failure(
                ErrorKind.INVALID_REQUEST, text or "Operation server rejected the request"
            )
        try:
            return OperationResult.model_validate_json(text)
        except ValidationError:
            return OperationResult.failure(
                ErrorKind.UNKNOWN, "Transport failure: malformed response from operation server"
            )

    def _reset(self, graceful: bool) -> None:
        if self._loop is None:
            return
        asyncio.run_coroutine_threadsafe(self._stop_session(graceful), self._loop).result()

    def close(self) -> None:
        """Close the session so the server exits, then stop the loop thread."""
        with self._lock:
            if self._loop is None:
                return
            self._reset(graceful=True)
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join()
            self._loop.close()
            self._loop = None
            self._thread = None


def open_transport(config: Config, root: Union[str, Path]) -> Transport:
    """Build the transport selected by configuration."""
    if config.transport == "subprocess":
        return SubprocessTransport(
            root,
            timeout=config.operation_timeout,
            max_read_mb=config.max_read_mb,
            max_write_mb=config.max_write_mb,
        )
    server = OperationServer(
        root,
        timeout=config.operation_timeout,
        max_read_mb=config.max_read_mb,
        max_write_mb=config.max_write_mb,
    )
    return LocalTransport(server)
