"""Per-call options and their mapping onto CLI flags."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from claude_bridge._errors import ConfigError
from claude_bridge.types import MCP_SERVER_CONFIG_TYPES, McpServerConfig, PermissionMode

DEFAULT_EXECUTABLE = "claude"

QUERY_FLAGS = ["--print", "--output-format", "json"]
STREAM_FLAGS = ["--print", "--output-format", "stream-json", "--verbose"]

_PERMISSION_MODE_REASON = "must be 'default', 'acceptEdits', 'bypassPermissions', or 'plan'"


@dataclass
class Options:
    """Configuration for a single query.

    Every field is optional; unset fields add no flag to the CLI invocation.
    """

    # Tools
    allowed_tools: list[str] = field(default_factory=list)
    disallowed_tools: list[str] = field(default_factory=list)

    # System prompt
    custom_system_prompt: str = ""
    append_system_prompt: str = ""

    # Working directory for the CLI process
    working_dir: Optional[Union[str, Path]] = None

    # Limits
    max_thinking_tokens: Optional[int] = None
    max_turns: Optional[int] = None

    mcp_servers: dict[str, Optional[McpServerConfig]] = field(default_factory=dict)

    # Falls back to DEFAULT_EXECUTABLE resolved through PATH.
    path_to_claude_code_executable: str = ""

    # Permissions
    permission_mode: Optional[Union[PermissionMode, str]] = None
    permission_prompt_tool_name: str = ""

    # Session continuation
    continue_conversation: bool = False
    resume: str = ""

    # Model
    model: str = ""
    fallback_model: str = ""


class ArgumentBuilder:
    """Validates options and turns them into CLI arguments."""

    def validate(self, options: Optional[Options]) -> None:
        """Check option invariants.

        Raises:
            ConfigError: naming the first offending field.
        """
        if options is None:
            return

        if options.max_thinking_tokens is not None and options.max_thinking_tokens < 0:
            raise ConfigError(
                field="MaxThinkingTokens",
                value=str(options.max_thinking_tokens),
                reason="must be non-negative",
            )

        if options.max_turns is not None and options.max_turns < 0:
            raise ConfigError(
                field="MaxTurns",
                value=str(options.max_turns),
                reason="must be non-negative",
            )

        for name, server in options.mcp_servers.items():
            if server is None:
                raise ConfigError(
                    field=f"MCPServers[{name}]",
                    value="nil",
                    reason="server config cannot be nil",
                )
            if not isinstance(server, MCP_SERVER_CONFIG_TYPES):
                raise ConfigError(
                    field=f"MCPServers[{name}]",
                    value=type(server).__name__,
                    reason="unsupported server config type",
                )

        if options.permission_mode:
            try:
                PermissionMode(options.permission_mode)
            except ValueError:
                raise ConfigError(
                    field="PermissionMode",
                    value=str(options.permission_mode),
                    reason=_PERMISSION_MODE_REASON,
                ) from None

    def build_args(self, options: Optional[Options]) -> list[str]:
        """Map non-default option fields to flags, in a fixed order."""
        args: list[str] = []
        if options is None:
            return args

        if options.model:
            args.extend(["--model", options.model])
        if options.fallback_model:
            args.extend(["--fallback-model", options.fallback_model])

        if options.continue_conversation:
            args.append("--continue")
        if options.resume:
            args.extend(["--resume", options.resume])

        if options.custom_system_prompt:
            args.extend(["--system-prompt", options.custom_system_prompt])
        if options.append_system_prompt:
            args.extend(["--append-system-prompt", options.append_system_prompt])

        if options.allowed_tools:
            args.extend(["--allowed-tools", ",".join(options.allowed_tools)])
        if options.disallowed_tools:
            args.extend(["--disallowed-tools", ",".join(options.disallowed_tools)])

        if options.max_thinking_tokens is not None:
            args.extend(["--max-thinking-tokens", str(options.max_thinking_tokens)])
        if options.max_turns is not None:
            args.extend(["--max-turns", str(options.max_turns)])

        if options.permission_mode:
            args.extend(["--permission-mode", PermissionMode(options.permission_mode).value])
        if options.permission_prompt_tool_name:
            args.extend(["--permission-prompt-tool-name", options.permission_prompt_tool_name])

        if options.mcp_servers:
            servers = {
                name: server.to_dict()
                for name, server in options.mcp_servers.items()
                if server is not None
            }
            args.extend(["--mcp-servers", json.dumps(servers)])

        return args

    @staticmethod
    def resolve_executable(options: Optional[Options]) -> str:
        if options is not None and options.path_to_claude_code_executable:
            return options.path_to_claude_code_executable
        return DEFAULT_EXECUTABLE

    @staticmethod
    def working_dir(options: Optional[Options]) -> Optional[str]:
        if options is None or not options.working_dir:
            return None
        return str(options.working_dir)


__all__ = [
    "DEFAULT_EXECUTABLE",
    "QUERY_FLAGS",
    "STREAM_FLAGS",
    "Options",
    "ArgumentBuilder",
]
