"""Message parser for CLI output.

Decoding happens in two phases: the ``type`` discriminator is read first,
then the whole record is validated against the matching message model.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, Union

from pydantic import ValidationError

from claude_bridge._errors import ParseError
from claude_bridge.types import (
    AssistantMessage,
    Message,
    PermissionRequestMessage,
    ResultMessage,
    SystemMessage,
    UserMessage,
)
from claude_bridge.utils.log import get_logger

logger = get_logger()


def _load_object(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(text, str(exc)) from exc
    if not isinstance(data, dict):
        raise ParseError(text, f"expected a JSON object, got {type(data).__name__}")
    return data


def _validate(model: type[Message], data: dict[str, Any], line: str, label: str) -> Message:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ParseError(line, f"failed to parse {label} message: {exc}") from exc


def parse_message(line: str) -> Message:
    """Parse one line of ``stream-json`` output into a typed message.

    Raises:
        ParseError: If the line is not a JSON object, the ``type`` is unknown
            or the record does not fit the selected message shape.
    """
    data = _load_object(line)
    message_type = data.get("type")

    match message_type:
        case "user":
            return _validate(UserMessage, data, line, "user")
        case "assistant":
            return _validate(AssistantMessage, data, line, "assistant")
        case "result":
            return _validate(ResultMessage, data, line, "result")
        case "system":
            return _validate(SystemMessage, data, line, "system")
        case "permission_request":
            return _validate(PermissionRequestMessage, data, line, "permission request")
        case _:
            logger.debug(
                "[message_parser] Unknown message type",
                extra={"message_type": message_type},
            )
            raise ParseError(line, f"unknown message type: {message_type or ''}")


def parse_result(output: Union[bytes, str]) -> ResultMessage:
    """Decode the single JSON document produced by ``--output-format json``.

    Raises:
        ParseError: Carrying the raw output when it is not a valid result document.
    """
    text = output.decode("utf-8", errors="replace") if isinstance(output, bytes) else output
    try:
        data = json.loads(text)
        return ResultMessage.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ParseError(text, f"failed to parse JSON response: {exc}") from exc


class MessageParser(Protocol):
    """Anything that can turn a line of CLI output into a message."""

    def parse_message(self, line: str) -> Message: ...


class DefaultMessageParser:
    """MessageParser backed by :func:`parse_message`."""

    def parse_message(self, line: str) -> Message:
        return parse_message(line)


__all__ = ["parse_message", "parse_result", "MessageParser", "DefaultMessageParser"]
