"""Async Python bindings for the Claude Code CLI."""

__version__ = "0.1.0"

from claude_bridge._errors import (
    AbortError,
    ClaudeBridgeError,
    CLIConnectionError,
    CLINotFoundError,
    ConfigError,
    ParseError,
    ProcessError,
    StreamReadError,
)
from claude_bridge._internal.executor import CommandExecutor, ProcessStream, SubprocessExecutor
from claude_bridge._internal.message_parser import parse_message, parse_result
from claude_bridge.client import (
    ClaudeClient,
    exec_command,
    is_claude_available,
    query,
    query_stream,
    query_stream_handler,
)
from claude_bridge.options import DEFAULT_EXECUTABLE, ArgumentBuilder, Options
from claude_bridge.stream import MessageStream
from claude_bridge.types import (
    AssistantMessage,
    McpHttpServerConfig,
    McpServerConfig,
    McpServerStatus,
    McpSSEServerConfig,
    McpStdioServerConfig,
    Message,
    MessageOrError,
    PermissionMode,
    PermissionRequestMessage,
    ResultMessage,
    SystemMessage,
    Usage,
    UserMessage,
    model_to_dict,
)

__all__ = [
    "__version__",
    # Client
    "ClaudeClient",
    "MessageStream",
    "query",
    "query_stream",
    "query_stream_handler",
    "is_claude_available",
    "exec_command",
    # Options
    "Options",
    "ArgumentBuilder",
    "DEFAULT_EXECUTABLE",
    "PermissionMode",
    "McpServerConfig",
    "McpStdioServerConfig",
    "McpSSEServerConfig",
    "McpHttpServerConfig",
    # Messages
    "Message",
    "MessageOrError",
    "UserMessage",
    "AssistantMessage",
    "ResultMessage",
    "SystemMessage",
    "PermissionRequestMessage",
    "Usage",
    "McpServerStatus",
    "model_to_dict",
    "parse_message",
    "parse_result",
    # Execution
    "CommandExecutor",
    "SubprocessExecutor",
    "ProcessStream",
    # Errors
    "ClaudeBridgeError",
    "ConfigError",
    "ProcessError",
    "ParseError",
    "AbortError",
    "CLIConnectionError",
    "CLINotFoundError",
    "StreamReadError",
]
