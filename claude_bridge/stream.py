"""Streaming query over ``--output-format stream-json``.

A :class:`MessageStream` owns one CLI process and one background reader task.
The reader decodes stdout line by line and hands every item to the consumer
through an unbuffered memory object stream, so it never runs ahead of the
consumer. Each hand-off races the stream's cancel scope: closing the stream,
cancelling the caller, or the reader finishing on its own all end in the same
place, with the process reaped and the channel closed.

Typical use::

    async with client.query_stream("hello") as stream:
        async for item in stream:
            message = item.unwrap()
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Optional, Sequence

import anyio
from anyio.abc import TaskGroup

from claude_bridge._errors import ClaudeBridgeError, ProcessError, StreamReadError
from claude_bridge._internal.executor import CommandExecutor, ProcessStream
from claude_bridge._internal.message_parser import MessageParser
from claude_bridge.types import Message, MessageOrError
from claude_bridge.utils.log import get_logger

logger = get_logger()


class MessageStream:
    """Ordered, cancellable sequence of :class:`MessageOrError` items.

    The sequence holds at most one error item and, if present, it is the last
    one. Use it as an async context manager so the process is always reaped.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        parser: MessageParser,
        executable: str,
        args: Sequence[str],
        prompt: str,
        working_dir: Optional[str] = None,
    ) -> None:
        self._executor = executor
        self._parser = parser
        self._executable = executable
        self._args = list(args)
        self._prompt = prompt
        self._working_dir = working_dir

        # Zero buffer: every send waits for the consumer.
        self._send, self._receive = anyio.create_memory_object_stream[MessageOrError](0)
        # Created in start(): a CancelScope needs a running event loop.
        self._scope: Optional[anyio.CancelScope] = None
        self._tg: Optional[TaskGroup] = None
        self._process: Optional[ProcessStream] = None
        self._started = False
        self._closed = False

    @property
    def args(self) -> list[str]:
        return list(self._args)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    async def __aenter__(self) -> "MessageStream":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.aclose()

    async def start(self) -> "MessageStream":
        """Start the CLI and the background reader.

        Raises:
            CLIConnectionError: If the process could not be started. Nothing
                is left running in that case.
        """
        if self._started:
            return self
        if self._closed:
            raise RuntimeError("Cannot start a closed stream.")
        self._started = True

        try:
            self._process = await self._executor.execute_stream(
                self._executable, self._args, self._prompt, self._working_dir
            )
        except BaseException:
            self._closed = True
            self._send.close()
            self._receive.close()
            raise

        self._scope = anyio.CancelScope()
        self._tg = anyio.create_task_group()
        await self._tg.__aenter__()
        self._tg.start_soon(self._run, self._process, self._scope)
        return self

    def close(self) -> None:
        """Request cancellation without waiting for the reader to finish."""
        if self._scope is not None:
            self._scope.cancel()
        self._receive.close()

    async def aclose(self) -> None:
        """Cancel the reader, reap the process and close the channel."""
        if self._closed:
            return
        self._closed = True
        self.close()
        if self._tg is None:
            return
        tg, self._tg = self._tg, None
        # The body's exception is not handed to the group, so it propagates
        # unwrapped instead of inside an ExceptionGroup.
        await tg.__aexit__(None, None, None)

    def __aiter__(self) -> "MessageStream":
        return self

    async def __anext__(self) -> MessageOrError:
        if not self._started:
            raise RuntimeError("Stream has not been started; use 'async with' or start().")
        try:
            return await self._receive.receive()
        except (anyio.EndOfStream, anyio.ClosedResourceError):
            raise StopAsyncIteration from None

    async def messages(self) -> AsyncIterator[Message]:
        """Yield decoded messages, raising the terminal error if one arrives."""
        async for item in self:
            yield item.unwrap()

    async def _run(self, process: ProcessStream, scope: anyio.CancelScope) -> None:
        delivered = 0
        async with self._send:
            try:
                with scope:
                    delivered = await self._pump(process)
            finally:
                with anyio.CancelScope(shield=True):
                    try:
                        await process.aclose()
                    except ClaudeBridgeError as exc:
                        # The sequence has already ended; nobody is left to receive this.
                        logger.debug(
                            "[stream] Close-time error after stream ended",
                            extra={"error": str(exc)},
                        )
                scope.cancel()
                logger.debug(
                    "[stream] Reader finished",
                    extra={
                        "delivered": delivered,
                        "returncode": process.returncode,
                        "cancelled": scope.cancel_called,
                    },
                )

    async def _pump(self, process: ProcessStream) -> int:
        """Read, decode and deliver lines; return how many items were delivered."""
        delivered = 0
        try:
            async for line in process:
                if not line.strip():
                    continue
                try:
                    message = self._parser.parse_message(line)
                except Exception as exc:
                    logger.debug("[stream] Failed to decode line", extra={"error": str(exc)})
                    if await self._deliver(MessageOrError(error=exc)):
                        delivered += 1
                    return delivered
                if not await self._deliver(MessageOrError(message=message)):
                    return delivered
                delivered += 1
        except StreamReadError as exc:
            if await self._deliver(MessageOrError(error=exc)):
                delivered += 1
            return delivered

        # Output is exhausted: reap here so a non-zero exit reaches the consumer.
        try:
            await process.aclose()
        except ProcessError as exc:
            if await self._deliver(MessageOrError(error=exc)):
                delivered += 1
        return delivered

    async def _deliver(self, item: MessageOrError) -> bool:
        try:
            await self._send.send(item)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            return False
        return True


__all__ = ["MessageStream"]
