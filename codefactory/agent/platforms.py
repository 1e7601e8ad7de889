"""Supported agent platforms and how to talk to each of them.

Every platform is one entry in :data:`PLATFORMS`: the binary to launch, a
function that turns a :class:`CallConfig` into an argument vector, the
stdout dialect to decode, and the file-change tracking strategy to use.
A platform without an argument builder has no verified wire format and
refuses every call.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from codefactory.agent.errors import PlatformCLINotFoundError, PlatformUnavailableError
from codefactory.agent.process import find_binary
from codefactory.agent.stream import StreamDialect


class AgentPlatform(str, Enum):
    """AI coding agent CLIs CodeFactory can drive."""

    CLAUDE = "claude"
    CODEX = "codex"
    KIRO = "kiro"


class TrackingStrategy(str, Enum):
    """How a ``generate`` call learns which files it created or modified."""

    PROTOCOL = "protocol"
    GIT_DIFF = "git-diff"


@dataclass(frozen=True)
class CallConfig:
    """Per-call settings handed to a platform's argument builder."""

    prompt: str
    max_turns: int
    system_prompt: str | None = None
    allowed_tools: tuple[str, ...] = field(default_factory=tuple)


def build_claude_args(call: CallConfig) -> list[str]:
    """Argument vector for ``claude`` in non-interactive stream-json mode.

    Permission prompts are bypassed only when an explicit tool allow-list
    is given; a tool-less call keeps the CLI's default permissions.
    """
    args = ["--print", "--verbose"]
    if call.allowed_tools:
        args += ["--allowedTools", ",".join(call.allowed_tools)]
    args += [
        "--output-format", "stream-json",
        "--max-turns", str(call.max_turns),
    ]
    if call.allowed_tools:
        args += ["--permission-mode", "bypassPermissions"]
    if call.system_prompt:
        args += ["--system-prompt", call.system_prompt]
    args.append(call.prompt)
    return args


def build_codex_args(call: CallConfig) -> list[str]:
    """Argument vector for ``codex exec``.

    Codex has no tool allow-list flag; what it may do is governed by its
    approval mode, so full-auto is only requested when tools are.
    """
    args = ["exec"]
    if call.allowed_tools:
        args += ["--approval-mode", "full-auto"]
    args += ["--quiet", "--max-turns", str(call.max_turns)]
    if call.system_prompt:
        args += ["--system-prompt", call.system_prompt]
    args.append(call.prompt)
    return args


@dataclass(frozen=True)
class PlatformSpec:
    platform: AgentPlatform
    display_name: str
    binary: str
    description: str
    build_args: Callable[[CallConfig], list[str]] | None
    dialect: StreamDialect = StreamDialect.STREAM_JSON
    tracking: TrackingStrategy = TrackingStrategy.PROTOCOL

    @property
    def verified(self) -> bool:
        return self.build_args is not None

    def require_verified(self) -> Callable[[CallConfig], list[str]]:
        """Return the argument builder, or raise for unverified platforms.

        Raises:
            PlatformUnavailableError: If the platform has no verified protocol.
        """
        if self.build_args is None:
            raise PlatformUnavailableError(self.platform.value, self.display_name)
        return self.build_args


PLATFORMS: dict[AgentPlatform, PlatformSpec] = {
    AgentPlatform.CLAUDE: PlatformSpec(
        platform=AgentPlatform.CLAUDE,
        display_name="Claude Code",
        binary="claude",
        description="Anthropic Claude Code CLI (claude)",
        build_args=build_claude_args,
    ),
    AgentPlatform.CODEX: PlatformSpec(
        platform=AgentPlatform.CODEX,
        display_name="OpenAI Codex",
        binary="codex",
        description="OpenAI Codex CLI (codex)",
        build_args=build_codex_args,
        dialect=StreamDialect.PLAIN_TEXT,
        tracking=TrackingStrategy.GIT_DIFF,
    ),
    # Kiro's streaming protocol is undocumented; guessing it could silently
    # drop the tool allow-list, so every call fails loudly instead.
    AgentPlatform.KIRO: PlatformSpec(
        platform=AgentPlatform.KIRO,
        display_name="AWS Kiro",
        binary="kiro-cli",
        description="AWS Kiro CLI (kiro-cli)",
        build_args=None,
    ),
}

AI_PLATFORMS: list[dict[str, str]] = [
    {"name": spec.display_name, "value": spec.platform.value, "description": spec.description}
    for spec in PLATFORMS.values()
]


def get_platform(platform: AgentPlatform | str) -> PlatformSpec:
    """Look up a platform by enum member or string value.

    Raises:
        ValueError: If *platform* is not a known platform.
    """
    try:
        key = AgentPlatform(platform)
    except ValueError:
        valid = ", ".join(p.value for p in AgentPlatform)
        raise ValueError(f"Unknown AI platform: {platform!r} (expected one of: {valid})") from None
    return PLATFORMS[key]


def validate_platform_cli(platform: AgentPlatform | str) -> str:
    """Ensure the platform's CLI binary is on PATH and return its location.

    Raises:
        PlatformCLINotFoundError: If the binary cannot be found.
    """
    spec = get_platform(platform)
    location = find_binary(spec.binary)
    if location is None:
        raise PlatformCLINotFoundError(spec.platform.value, spec.binary)
    return location


def is_platform_available(platform: AgentPlatform | str) -> bool:
    """Return ``True`` if the platform's CLI binary is on PATH."""
    try:
        validate_platform_cli(platform)
    except PlatformCLINotFoundError:
        return False
    return True
