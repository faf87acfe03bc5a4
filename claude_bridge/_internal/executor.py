"""Subprocess execution for the Claude CLI using anyio.

Two modes are supported:

- one-shot: run the CLI to completion and return its combined stdout/stderr;
- streaming: start the CLI and hand back a :class:`ProcessStream` that yields
  stdout line by line while stderr is captured for error reporting.

In both modes the prompt is fed through stdin and stdin is closed afterwards,
so the CLI sees EOF and can finish on its own.
"""

from __future__ import annotations

import abc
import os
import subprocess
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import IO, Optional, Sequence

import anyio
from anyio.abc import Process

from claude_bridge._errors import (
    CLIConnectionError,
    CLINotFoundError,
    ProcessError,
    StreamReadError,
)
from claude_bridge.utils.log import get_logger

logger = get_logger()

MAX_LINE_SIZE_ENV = "CLAUDE_BRIDGE_MAX_LINE_SIZE"
_DEFAULT_MAX_LINE_SIZE = 1024 * 1024  # 1MB


def default_max_line_size() -> int:
    raw = os.getenv(MAX_LINE_SIZE_ENV)
    if not raw:
        return _DEFAULT_MAX_LINE_SIZE
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning(
            "[executor] Ignoring invalid max line size",
            extra={"env": MAX_LINE_SIZE_ENV, "value": raw},
        )
        return _DEFAULT_MAX_LINE_SIZE
    return value if value > 0 else _DEFAULT_MAX_LINE_SIZE


def _decode(payload: bytes) -> str:
    return payload.decode("utf-8", errors="replace")


def _spawn_error(exc: OSError, name: str, working_dir: Optional[str]) -> CLIConnectionError:
    """Translate an OSError raised while starting the CLI."""
    if isinstance(exc, FileNotFoundError):
        if working_dir and not Path(working_dir).exists():
            return CLIConnectionError(f"Working directory does not exist: {working_dir}")
        return CLINotFoundError(f"Claude CLI not found at: {name}", cli_path=name)
    return CLIConnectionError(f"failed to execute command: {exc}")


class ProcessStream:
    """Live handle on a streaming CLI process.

    Iterating yields stdout lines without their delimiter. :meth:`aclose`
    closes the pipe, reaps the process and raises :class:`ProcessError` when
    the exit status is non-zero, so closing is part of the result rather
    than a cleanup no-op.
    """

    def __init__(
        self,
        process: Process,
        stderr_file: IO[bytes],
        max_line_size: int = _DEFAULT_MAX_LINE_SIZE,
    ) -> None:
        if process.stdout is None:
            raise CLIConnectionError("CLI process has no stdout pipe")
        self._process = process
        self._stdout = process.stdout
        self._stderr_file = stderr_file
        self._max_line_size = max_line_size
        self._buffer = bytearray()
        self._exhausted = False
        self._closed = False

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def exhausted(self) -> bool:
        """True once the CLI closed its end of stdout."""
        return self._exhausted

    def __aiter__(self) -> "ProcessStream":
        return self

    async def __anext__(self) -> str:
        line = await self.receive_line()
        if line is None:
            raise StopAsyncIteration
        return line

    async def receive_line(self) -> Optional[str]:
        """Return the next stdout line, or None at end of output.

        Raises:
            StreamReadError: If a line exceeds the size limit or the pipe breaks.
        """
        while True:
            newline = self._buffer.find(b"\n")
            size = newline if newline >= 0 else len(self._buffer)
            if size > self._max_line_size:
                self._buffer.clear()
                raise StreamReadError(
                    f"error reading stream: line exceeded buffer size ({size} > {self._max_line_size})"
                )

            if newline >= 0:
                line = bytes(self._buffer[:newline])
                del self._buffer[: newline + 1]
                return _decode(line).rstrip("\r")

            if self._exhausted or self._closed:
                if not self._buffer:
                    return None
                # Final line without a trailing newline.
                line = bytes(self._buffer)
                self._buffer.clear()
                return _decode(line).rstrip("\r")

            try:
                chunk = await self._stdout.receive()
            except anyio.EndOfStream:
                self._exhausted = True
                continue
            except anyio.ClosedResourceError:
                return None
            except anyio.BrokenResourceError as exc:
                raise StreamReadError(f"error reading stream: {exc}") from exc
            self._buffer.extend(chunk)

    def _read_stderr(self) -> str:
        with self._stderr_file:
            self._stderr_file.seek(0)
            return _decode(self._stderr_file.read())

    async def aclose(self) -> None:
        """Close stdout and reap the process.

        A process whose output was not read to the end is killed first, since
        nothing will drain its pipe any more. Only the first call does work.

        Raises:
            ProcessError: If the process exited with a non-zero status.
        """
        if self._closed:
            return
        self._closed = True

        try:
            if not self._exhausted and self._process.returncode is None:
                with suppress(ProcessLookupError):
                    self._process.kill()
            # Closes the pipes and waits; kills and reaps if we get cancelled here.
            await self._process.aclose()
        finally:
            stderr_text = self._read_stderr()

        returncode = self._process.returncode
        logger.debug(
            "[executor] CLI process exited",
            extra={
                "pid": self._process.pid,
                "returncode": returncode,
                "stderr_length": len(stderr_text),
            },
        )
        if returncode:
            raise ProcessError(returncode, stderr_text)


class CommandExecutor(abc.ABC):
    """Starts CLI processes on behalf of the client."""

    @abc.abstractmethod
    async def execute(
        self,
        name: str,
        args: Sequence[str],
        stdin: str,
        working_dir: Optional[str] = None,
    ) -> bytes:
        """Run to completion and return combined stdout and stderr.

        Raises:
            ProcessError: On a non-zero exit status.
            CLIConnectionError: If the process could not be started.
        """

    @abc.abstractmethod
    async def execute_stream(
        self,
        name: str,
        args: Sequence[str],
        stdin: str,
        working_dir: Optional[str] = None,
    ) -> ProcessStream:
        """Start the process and return a handle on its stdout.

        Raises:
            CLIConnectionError: If the process could not be started.
        """


class SubprocessExecutor(CommandExecutor):
    """CommandExecutor that spawns real OS processes."""

    def __init__(self, max_line_size: Optional[int] = None) -> None:
        self.max_line_size = max_line_size or default_max_line_size()

    async def execute(
        self,
        name: str,
        args: Sequence[str],
        stdin: str,
        working_dir: Optional[str] = None,
    ) -> bytes:
        cmd = [name, *args]
        payload = stdin.encode("utf-8")
        logger.debug(
            "[executor] Running CLI",
            extra={"command": cmd[:1], "arg_count": len(args), "cwd": working_dir},
        )
        try:
            result = await anyio.run_process(
                cmd,
                input=payload or None,
                stdin=None if payload else subprocess.DEVNULL,
                stderr=subprocess.STDOUT,
                cwd=working_dir,
                check=False,
            )
        except OSError as exc:
            raise _spawn_error(exc, name, working_dir) from exc

        output = result.stdout or b""
        if result.returncode != 0:
            raise ProcessError(result.returncode, _decode(output))
        return output

    async def execute_stream(
        self,
        name: str,
        args: Sequence[str],
        stdin: str,
        working_dir: Optional[str] = None,
    ) -> ProcessStream:
        cmd = [name, *args]
        # Both ends go through temporary files: the child reads the whole prompt
        # without a writer task, and stderr never blocks on a full pipe.
        stdin_file = tempfile.TemporaryFile()
        stderr_file = tempfile.TemporaryFile()
        try:
            stdin_file.write(stdin.encode("utf-8"))
            stdin_file.flush()
            stdin_file.seek(0)
            process = await anyio.open_process(
                cmd,
                stdin=stdin_file,
                stdout=subprocess.PIPE,
                stderr=stderr_file,
                cwd=working_dir,
            )
        except OSError as exc:
            stderr_file.close()
            raise _spawn_error(exc, name, working_dir) from exc
        except BaseException:
            stderr_file.close()
            raise
        finally:
            stdin_file.close()

        logger.info(
            "[executor] Started CLI",
            extra={"command": cmd[:1], "pid": process.pid, "cwd": working_dir},
        )
        return ProcessStream(process, stderr_file, max_line_size=self.max_line_size)


async def run_command(
    name: str,
    args: Sequence[str],
    working_dir: Optional[str] = None,
) -> bytes:
    """Run the CLI with raw arguments and return stdout.

    Raises:
        ProcessError: With the captured stderr on a non-zero exit status.
        CLIConnectionError: If the process could not be started.
    """
    try:
        result = await anyio.run_process(
            [name, *args],
            stdin=subprocess.DEVNULL,
            cwd=working_dir,
            check=False,
        )
    except OSError as exc:
        raise _spawn_error(exc, name, working_dir) from exc
    if result.returncode != 0:
        raise ProcessError(result.returncode, _decode(result.stderr or b""))
    return result.stdout or b""


__all__ = [
    "CommandExecutor",
    "SubprocessExecutor",
    "ProcessStream",
    "run_command",
    "default_max_line_size",
]
