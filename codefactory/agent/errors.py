"""Error types raised by the agent layer.

Preflight, process and output failures are distinct classes so callers can
tell "the CLI is missing" apart from "the CLI ran and failed" and from "the
CLI answered with something unusable".
"""

from __future__ import annotations

from typing import Any


class AgentRunnerError(Exception):
    """Base class for every agent runner failure."""

    def __init__(self, message: str, platform: str | None = None):
        self.platform = platform
        super().__init__(message)


class PlatformCLINotFoundError(AgentRunnerError):
    """Raised when a platform's CLI binary is not on PATH."""

    def __init__(self, platform: str, binary: str):
        self.binary = binary
        super().__init__(
            f"{platform} CLI not found: '{binary}' is not on PATH. "
            f"Install it or choose another AI platform.",
            platform=platform,
        )


class PlatformUnavailableError(AgentRunnerError):
    """Raised for platforms whose streaming protocol is not yet supported."""

    def __init__(self, platform: str, display_name: str):
        super().__init__(
            f"{display_name} integration is not available yet: its streaming "
            f"protocol has not been verified. Use another AI platform "
            f"(for example 'claude') instead.",
            platform=platform,
        )


class AgentLaunchError(AgentRunnerError):
    """Raised when the agent subprocess cannot be spawned at all."""

    def __init__(self, binary: str, os_error: OSError, platform: str | None = None):
        self.binary = binary
        self.os_error = os_error
        super().__init__(
            f"Failed to launch '{binary}': {os_error}",
            platform=platform,
        )


class AgentExitError(AgentRunnerError):
    """Raised when the agent subprocess exits with a non-zero code."""

    def __init__(self, binary: str, exit_code: int, platform: str | None = None):
        self.binary = binary
        self.exit_code = exit_code
        super().__init__(
            f"'{binary}' exited with code {exit_code}",
            platform=platform,
        )


class AgentTimeoutError(AgentRunnerError):
    """Raised when an agent call exceeds its hard timeout and is killed."""

    def __init__(self, binary: str, timeout: float, platform: str | None = None):
        self.binary = binary
        self.timeout = timeout
        super().__init__(
            f"'{binary}' timed out after {timeout}s and was killed",
            platform=platform,
        )


class AgentOutputError(AgentRunnerError):
    """Raised when an agent's answer cannot be parsed or fails validation."""

    def __init__(
        self,
        message: str,
        raw_text: str = "",
        payload: Any = None,
        platform: str | None = None,
    ):
        self.raw_text = raw_text
        self.payload = payload
        super().__init__(message, platform=platform)
