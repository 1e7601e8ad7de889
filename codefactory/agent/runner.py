"""Agent runner: one subprocess per call, decoded into a structured result.

:class:`AgentRunner` exposes the operations the rest of CodeFactory uses:

* ``analyze`` runs the agent with read-only tools and validates its JSON
  answer against a caller-supplied schema.
* ``generate`` lets the agent write and edit files and reports which files
  it created or modified.
* ``ask`` returns the raw answer to a single tool-less prompt, optionally
  under a hard timeout.

Platform differences live in :mod:`codefactory.agent.platforms`; the call
sequence here is the same for every platform.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codefactory.agent.errors import AgentExitError, AgentOutputError
from codefactory.agent.platforms import AgentPlatform, CallConfig, PlatformSpec, get_platform
from codefactory.agent.process import run_agent_process
from codefactory.agent.stream import RunResult, StreamDecoder
from codefactory.agent.tracker import create_tracker
from codefactory.config import RunnerOptions
from codefactory.utils import format_duration

console = Console()

T = TypeVar("T")

ANALYZE_TOOLS: tuple[str, ...] = ("Read", "Glob", "Grep", "Bash")
GENERATE_TOOLS: tuple[str, ...] = ("Read", "Glob", "Grep", "Write", "Edit", "Bash")

DEFAULT_ANALYZE_TURNS = 20
DEFAULT_GENERATE_TURNS = 30
ASK_TURNS = 1

ANALYZE_SYSTEM_PROMPT = "\n".join(
    [
        "You are a repository analysis assistant.",
        "Analyze the repository and return your findings as structured JSON.",
        "Your final response MUST be valid JSON matching the requested schema.",
        "Do not wrap the JSON in markdown code fences.",
    ]
)

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?[ \t]*\r?\n(.*?)```", re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


@dataclass
class GenerateResult:
    """Files a ``generate`` call created or modified."""

    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)

    def summary(self) -> str:
        lines = [
            f"Files created: {len(self.files_created)}",
            f"Files modified: {len(self.files_modified)}",
        ]
        lines += [f"  + {path}" for path in self.files_created]
        lines += [f"  ~ {path}" for path in self.files_modified]
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------


def _balanced_span(text: str, start: int) -> int | None:
    """Return the index just past the bracket matching ``text[start]``."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]"):
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return index + 1
    return None


def extract_json(text: str) -> str:
    """Pull the JSON payload out of an agent's answer.

    Tries, in order: the first ```` ```json ```` (or unlabelled) fenced
    block, the first balanced ``{...}`` or ``[...]`` span, and finally the
    whole text stripped of surrounding whitespace.
    """
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        return fenced.group(1).strip()

    for index, char in enumerate(text):
        if char in _CLOSERS:
            end = _balanced_span(text, index)
            if end is not None:
                return text[index:end]

    return text.strip()


def parse_structured_output(
    text: str, schema: type[T], platform: str | None = None
) -> T:
    """Extract, parse and validate a JSON answer.

    Raises:
        AgentOutputError: If the payload is not JSON or does not match *schema*.
    """
    payload_text = extract_json(text)
    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError as exc:
        raise AgentOutputError(
            f"Agent response is not valid JSON: {exc}",
            raw_text=text,
            platform=platform,
        ) from exc

    try:
        return TypeAdapter(schema).validate_python(payload)
    except ValidationError as exc:
        raise AgentOutputError(
            f"Agent response does not match the expected schema:\n{exc}",
            raw_text=text,
            payload=payload,
            platform=platform,
        ) from exc


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class AgentRunner:
    """Drives one agent platform's CLI.

    Each call spawns exactly one subprocess with a fresh decoder; no state
    is shared between calls, so independent runners (or concurrent calls on
    different working directories) can run in parallel.
    """

    def __init__(
        self,
        platform: AgentPlatform | str = AgentPlatform.CLAUDE,
        options: RunnerOptions | None = None,
        echo: bool = True,
    ):
        self._spec: PlatformSpec = get_platform(platform)
        self.options = options or RunnerOptions()
        self.echo = echo

    @property
    def platform(self) -> AgentPlatform:
        return self._spec.platform

    @property
    def spec(self) -> PlatformSpec:
        return self._spec

    @property
    def cwd(self) -> Path:
        if self.options.working_directory is not None:
            return Path(self.options.working_directory)
        return Path.cwd()

    async def analyze(self, prompt: str, schema: type[T]) -> T:
        """Run a read-only analysis and validate the JSON answer.

        Raises:
            PlatformUnavailableError: For platforms without a verified protocol.
            AgentLaunchError / AgentExitError: If the process fails.
            AgentOutputError: If the answer cannot be parsed or validated.
        """
        system_prompt = "\n".join(
            part for part in (ANALYZE_SYSTEM_PROMPT, self.options.system_prompt) if part
        )
        run = await self._run(
            CallConfig(
                prompt=prompt,
                max_turns=self.options.max_turns or DEFAULT_ANALYZE_TURNS,
                system_prompt=system_prompt,
                allowed_tools=ANALYZE_TOOLS,
            )
        )
        return parse_structured_output(run.result_text, schema, self.platform.value)

    async def generate(
        self, prompt: str, system_prompt_append: str | None = None
    ) -> GenerateResult:
        """Let the agent change files and report what it created or modified."""
        self._spec.require_verified()
        system_prompt = "\n".join(
            part for part in (self.options.system_prompt, system_prompt_append) if part
        )

        tracker = create_tracker(self._spec.tracking, self.cwd)
        await tracker.begin()
        run = await self._run(
            CallConfig(
                prompt=prompt,
                max_turns=self.options.max_turns or DEFAULT_GENERATE_TURNS,
                system_prompt=system_prompt or None,
                allowed_tools=GENERATE_TOOLS,
            )
        )
        changes = await tracker.finish(run)

        result = GenerateResult(
            files_created=changes.created,
            files_modified=changes.modified,
        )
        if self.echo:
            self._display_result(result, run)
        return result

    async def ask(self, prompt: str, timeout: float | None = None) -> str:
        """Return the agent's raw answer to a single tool-less prompt.

        Raises:
            AgentTimeoutError: If *timeout* elapses; the process is killed.
        """
        run = await self._run(
            CallConfig(prompt=prompt, max_turns=ASK_TURNS),
            timeout=timeout,
            echo=False,
        )
        return run.result_text

    async def _run(
        self,
        call: CallConfig,
        timeout: float | None = None,
        echo: bool | None = None,
    ) -> RunResult:
        build_args = self._spec.require_verified()

        decoder = StreamDecoder(
            dialect=self._spec.dialect,
            echo=self.echo if echo is None else echo,
        )
        outcome = await run_agent_process(
            self._spec.binary,
            build_args(call),
            on_chunk=decoder.feed,
            cwd=self.cwd,
            timeout=timeout,
            platform=self.platform.value,
        )
        run = decoder.close()

        if outcome.exit_code is not None and outcome.exit_code != 0:
            raise AgentExitError(
                self._spec.binary, outcome.exit_code, platform=self.platform.value
            )
        run.duration_seconds = outcome.duration_seconds
        return run

    def _display_result(self, result: GenerateResult, run: RunResult) -> None:
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Key", style="bold")
        table.add_column("Value")

        table.add_row("Platform", self._spec.display_name)
        table.add_row("Duration", format_duration(run.duration_seconds))
        table.add_row("Files Created", str(len(result.files_created)))
        table.add_row("Files Modified", str(len(result.files_modified)))

        console.print(Panel(table, title="Agent Run Complete", border_style="green"))
        if run.result_text:
            console.print(run.result_text, markup=False, highlight=False, style="dim")


def create_runner(
    platform: AgentPlatform | str, options: RunnerOptions | None = None
) -> AgentRunner:
    """Build a runner for *platform* (enum member or string value)."""
    return AgentRunner(platform, options)
