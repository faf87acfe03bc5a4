"""Python client for the Claude Code CLI.

`ClaudeClient.query` runs the CLI once and decodes its JSON result;
`ClaudeClient.query_stream` returns a `MessageStream` over ``stream-json``
output and `ClaudeClient.query_stream_handler` feeds that stream to a
callback. Module-level helpers build a fresh client per call.
"""

from __future__ import annotations

import inspect
import shutil
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from claude_bridge._errors import ClaudeBridgeError, CLIConnectionError, ConfigError
from claude_bridge._internal.executor import CommandExecutor, SubprocessExecutor, run_command
from claude_bridge._internal.message_parser import (
    DefaultMessageParser,
    MessageParser,
    parse_result,
)
from claude_bridge.options import (
    DEFAULT_EXECUTABLE,
    QUERY_FLAGS,
    STREAM_FLAGS,
    ArgumentBuilder,
    Options,
)
from claude_bridge.stream import MessageStream
from claude_bridge.types import Message, ResultMessage, model_to_dict
from claude_bridge.utils.log import get_logger

logger = get_logger()

MessageHandler = Callable[[Message], Union[Awaitable[Any], Any]]


class ClaudeClient:
    """Runs queries against the Claude CLI.

    The executor, parser and argument builder can be swapped out, which is
    how tests drive the client without a real CLI.
    """

    def __init__(
        self,
        executor: Optional[CommandExecutor] = None,
        parser: Optional[MessageParser] = None,
        builder: Optional[ArgumentBuilder] = None,
    ) -> None:
        self.executor = executor or SubprocessExecutor()
        self.parser = parser or DefaultMessageParser()
        self.builder = builder or ArgumentBuilder()

    def _prepare(
        self,
        prompt: str,
        options: Optional[Options],
        flags: Sequence[str],
    ) -> tuple[str, list[str], Optional[str]]:
        if not prompt:
            raise ConfigError(field="prompt", message="prompt is required")
        self.builder.validate(options)
        executable = self.builder.resolve_executable(options)
        args = [*flags, *self.builder.build_args(options)]
        return executable, args, self.builder.working_dir(options)

    async def query(self, prompt: str, options: Optional[Options] = None) -> ResultMessage:
        """Run the CLI to completion and return its result message.

        Raises:
            ConfigError: For an empty prompt or invalid options (nothing is spawned).
            ProcessError: If the CLI exits with a non-zero status.
            CLIConnectionError: If the CLI could not be started.
            ParseError: If the output is not a valid result document.
        """
        executable, args, working_dir = self._prepare(prompt, options, QUERY_FLAGS)
        logger.debug(
            "[client] Running query",
            extra={"executable": executable, "arg_count": len(args)},
        )
        try:
            output = await self.executor.execute(executable, args, prompt, working_dir)
        except ClaudeBridgeError:
            raise
        except OSError as exc:
            raise CLIConnectionError(f"failed to execute command: {exc}") from exc
        result = parse_result(output)
        logger.debug(
            "[client] Query finished",
            extra={"session_id": result.session_id, "usage": model_to_dict(result.usage)},
        )
        return result

    def query_stream(self, prompt: str, options: Optional[Options] = None) -> MessageStream:
        """Prepare a streaming query.

        Validation happens here; the process starts when the returned stream
        is entered (``async with``) or started explicitly.

        Raises:
            ConfigError: For an empty prompt or invalid options.
        """
        executable, args, working_dir = self._prepare(prompt, options, STREAM_FLAGS)
        return MessageStream(
            executor=self.executor,
            parser=self.parser,
            executable=executable,
            args=args,
            prompt=prompt,
            working_dir=working_dir,
        )

    async def query_stream_handler(
        self,
        prompt: str,
        handler: MessageHandler,
        options: Optional[Options] = None,
    ) -> None:
        """Stream a query and pass every message to ``handler``.

        ``handler`` may be a plain or an async callable. An exception from the
        handler stops the stream, reaps the process and propagates unchanged,
        as does the terminal error of the stream.
        """
        async with self.query_stream(prompt, options) as stream:
            async for item in stream:
                outcome = handler(item.unwrap())
                if inspect.isawaitable(outcome):
                    await outcome


async def query(prompt: str, options: Optional[Options] = None) -> ResultMessage:
    """One-shot helper: run a prompt with a default client."""
    return await ClaudeClient().query(prompt, options)


def query_stream(prompt: str, options: Optional[Options] = None) -> MessageStream:
    """Streaming helper: prepare a stream with a default client."""
    return ClaudeClient().query_stream(prompt, options)


async def query_stream_handler(
    prompt: str,
    handler: MessageHandler,
    options: Optional[Options] = None,
) -> None:
    """Handler-driven streaming helper using a default client."""
    await ClaudeClient().query_stream_handler(prompt, handler, options)


def is_claude_available(executable: str = DEFAULT_EXECUTABLE) -> bool:
    """Return True if the CLI can be found on PATH."""
    return shutil.which(executable) is not None


async def exec_command(
    args: Sequence[str],
    executable: str = DEFAULT_EXECUTABLE,
    working_dir: Optional[str] = None,
) -> str:
    """Run the CLI with raw arguments and return its stdout."""
    output = await run_command(executable, args, working_dir)
    return output.decode("utf-8", errors="replace")


__all__ = [
    "ClaudeClient",
    "query",
    "query_stream",
    "query_stream_handler",
    "is_claude_available",
    "exec_command",
]
