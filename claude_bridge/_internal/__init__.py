"""Internal components: process execution and message decoding."""

from .executor import CommandExecutor, ProcessStream, SubprocessExecutor
from .message_parser import DefaultMessageParser, MessageParser, parse_message, parse_result

__all__ = [
    "CommandExecutor",
    "ProcessStream",
    "SubprocessExecutor",
    "DefaultMessageParser",
    "MessageParser",
    "parse_message",
    "parse_result",
]
