"""CodeFactory agent layer.

Launches AI coding agent CLIs, decodes their streaming output and reports
what they changed.

Key classes:
    AgentRunner     - analyze / generate / ask against one platform
    StreamDecoder   - incremental stream-json decoder folding into a RunResult
    GitDiffTracker  - working-tree snapshot diffing for platforms without tool events
    FileWriter      - write-through created/modified tracking
"""

from .errors import (
    AgentExitError,
    AgentLaunchError,
    AgentOutputError,
    AgentRunnerError,
    AgentTimeoutError,
    PlatformCLINotFoundError,
    PlatformUnavailableError,
)
from .stream import RunResult, StreamDecoder, StreamDialect, decode_stream, iter_events
from .process import ProcessOutcome, run_agent_process
from .platforms import (
    AI_PLATFORMS,
    AgentPlatform,
    TrackingStrategy,
    get_platform,
    is_platform_available,
    validate_platform_cli,
)
from .tracker import FileChanges, FileWriter, GitDiffTracker, ProtocolTracker
from .runner import AgentRunner, GenerateResult, create_runner, extract_json

__all__ = [
    # Errors
    "AgentRunnerError",
    "AgentExitError",
    "AgentLaunchError",
    "AgentOutputError",
    "AgentTimeoutError",
    "PlatformCLINotFoundError",
    "PlatformUnavailableError",
    # Stream decoding
    "StreamDecoder",
    "StreamDialect",
    "RunResult",
    "decode_stream",
    "iter_events",
    # Process launching
    "run_agent_process",
    "ProcessOutcome",
    # Platforms
    "AgentPlatform",
    "AI_PLATFORMS",
    "TrackingStrategy",
    "get_platform",
    "is_platform_available",
    "validate_platform_cli",
    # File-change tracking
    "FileChanges",
    "FileWriter",
    "GitDiffTracker",
    "ProtocolTracker",
    # Runner
    "AgentRunner",
    "GenerateResult",
    "create_runner",
    "extract_json",
]
