"""Typed records exchanged with the Claude CLI.

Messages are decoded leniently: missing or null fields fall back to zero
values and unknown fields are ignored, so older and newer CLI versions
degrade instead of failing. Only the ``type`` discriminator and JSON
well-formedness are mandatory (see ``_internal.message_parser``).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator


# =============================================================================
# Permission modes
# =============================================================================


class PermissionMode(str, Enum):
    """How the CLI handles permission prompts for tool use."""

    DEFAULT = "default"
    ACCEPT_EDITS = "acceptEdits"
    BYPASS_PERMISSIONS = "bypassPermissions"
    PLAN = "plan"


# =============================================================================
# MCP server configuration
# =============================================================================


class _McpServerConfigBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """Return the CLI representation, leaving out empty collections."""
        data = self.model_dump(mode="json")
        return {key: value for key, value in data.items() if value not in ({}, [])}

    def to_arg(self) -> str:
        """Serialize the config to the JSON blob the CLI expects."""
        return json.dumps(self.to_dict())


class McpStdioServerConfig(_McpServerConfigBase):
    """MCP server launched as a child process speaking stdio."""

    type: Literal["stdio"] = "stdio"
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class McpSSEServerConfig(_McpServerConfigBase):
    """MCP server reached over server-sent events."""

    type: Literal["sse"] = "sse"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)


class McpHttpServerConfig(_McpServerConfigBase):
    """MCP server reached over streamable HTTP."""

    type: Literal["http"] = "http"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)


McpServerConfig = Union[McpStdioServerConfig, McpSSEServerConfig, McpHttpServerConfig]
MCP_SERVER_CONFIG_TYPES = (McpStdioServerConfig, McpSSEServerConfig, McpHttpServerConfig)


# =============================================================================
# Wire records
# =============================================================================


class WireModel(BaseModel):
    """Base for records decoded from CLI output."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # JSON null means "absent": let the field default apply.
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class Usage(WireModel):
    """Token accounting for a completed exchange."""

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0

    @model_serializer(mode="wrap")
    def _omit_zero_cache(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        for key in ("cache_creation_input_tokens", "cache_read_input_tokens"):
            if not data.get(key):
                data.pop(key, None)
        return data


class McpServerStatus(WireModel):
    """Connection status of one MCP server as reported by the CLI."""

    name: str = ""
    status: str = ""
    error: str | None = None


class UserMessage(WireModel):
    """Echo of user input, including tool results fed back to the model."""

    type: Literal["user"] = "user"
    message: Any = None
    parent_tool_use_id: str | None = None
    session_id: str = ""


class AssistantMessage(WireModel):
    """Assistant output for one turn."""

    type: Literal["assistant"] = "assistant"
    message: Any = None
    parent_tool_use_id: str | None = None
    session_id: str = ""


class ResultMessage(WireModel):
    """Terminal record of a completed exchange with timing, cost and usage."""

    type: Literal["result"] = "result"
    subtype: str = ""
    duration_ms: int = 0
    duration_api_ms: int = 0
    is_error: bool = False
    num_turns: int = 0
    result: str = ""
    session_id: str = ""
    total_cost_usd: float = 0.0
    usage: Usage = Field(default_factory=Usage)


class SystemMessage(WireModel):
    """Session metadata emitted when the CLI starts."""

    type: Literal["system"] = "system"
    subtype: str = ""
    api_key_source: str = Field(default="", alias="apiKeySource")
    cwd: str = ""
    session_id: str = ""
    tools: list[str] = Field(default_factory=list)
    mcp_servers: list[McpServerStatus] = Field(default_factory=list)
    model: str = ""
    permission_mode: str = Field(default="", alias="permissionMode")


class PermissionRequestMessage(WireModel):
    """Tool-use permission prompt."""

    type: Literal["permission_request"] = "permission_request"
    session_id: str = ""
    subtype: str = ""


Message = Union[
    UserMessage,
    AssistantMessage,
    ResultMessage,
    SystemMessage,
    PermissionRequestMessage,
]


@dataclass(frozen=True)
class MessageOrError:
    """One item of a streaming sequence: a decoded message or the terminal error."""

    message: Message | None = None
    error: Exception | None = None

    def __post_init__(self) -> None:
        if (self.message is None) == (self.error is None):
            raise ValueError("MessageOrError needs exactly one of message or error")

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def unwrap(self) -> Message:
        """Return the message, raising the carried error instead if there is one."""
        if self.error is not None:
            raise self.error
        return self.message  # type: ignore[return-value]


def model_to_dict(model: BaseModel) -> dict[str, Any]:
    """Convert a record to a JSON-serializable dict using wire field names."""
    return model.model_dump(exclude_none=True, by_alias=True, mode="json")


__all__ = [
    "PermissionMode",
    "McpStdioServerConfig",
    "McpSSEServerConfig",
    "McpHttpServerConfig",
    "McpServerConfig",
    "MCP_SERVER_CONFIG_TYPES",
    "WireModel",
    "Usage",
    "McpServerStatus",
    "UserMessage",
    "AssistantMessage",
    "ResultMessage",
    "SystemMessage",
    "PermissionRequestMessage",
    "Message",
    "MessageOrError",
    "model_to_dict",
]
