"""Error types for claude-bridge.

Every error carries the fields needed to rebuild its message, so callers can
branch on the type and inspect the attributes instead of parsing strings.
"""

from __future__ import annotations


class ClaudeBridgeError(Exception):
    """Base exception for all bridge errors."""

    def __str__(self) -> str:
        return self.args[0] if self.args else "An error occurred in claude-bridge"


class ConfigError(ClaudeBridgeError):
    """Raised when a prompt or option is invalid before any process starts."""

    def __init__(
        self,
        field: str,
        value: str = "",
        reason: str = "",
        message: str = "",
    ) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        self.message = message
        super().__init__(self._format())

    def _format(self) -> str:
        if self.message:
            return f"configuration error in field '{self.field}': {self.message}"
        return (
            f"configuration error in field '{self.field}' "
            f"with value '{self.value}': {self.reason}"
        )


class ProcessError(ClaudeBridgeError):
    """Raised when the CLI process exits with a non-zero status."""

    def __init__(self, exit_code: int, message: str = "") -> None:
        self.exit_code = exit_code
        self.message = message
        super().__init__(f"process exited with code {exit_code}: {message}")


class ParseError(ClaudeBridgeError):
    """Raised when CLI output cannot be decoded into a message."""

    def __init__(self, line: str, message: str) -> None:
        self.line = line
        self.message = message
        super().__init__(f"failed to parse message: {message} (line: {line})")


class AbortError(ClaudeBridgeError):
    """Raised when an operation was aborted by the caller."""

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(message or "operation aborted")


class CLIConnectionError(ClaudeBridgeError):
    """Raised when the CLI process cannot be started or talked to."""


class CLINotFoundError(CLIConnectionError):
    """Raised when the CLI executable is not found."""

    def __init__(self, message: str, cli_path: str | None = None) -> None:
        super().__init__(message)
        self.cli_path = cli_path


class StreamReadError(CLIConnectionError):
    """Raised when reading the CLI output stream fails."""


__all__ = [
    "ClaudeBridgeError",
    "ConfigError",
    "ProcessError",
    "ParseError",
    "AbortError",
    "CLIConnectionError",
    "CLINotFoundError",
    "StreamReadError",
]
