"""Incremental decoding of agent CLI output.

Agent CLIs write newline-delimited JSON (``stream-json``) to stdout. Output
arrives in arbitrarily sized byte chunks, so :class:`StreamDecoder` keeps a
single line buffer: every complete line is parsed and dispatched as soon as
it arrives, the trailing fragment waits for the next chunk, and whatever is
left when the stream closes is dispatched once as the final line. Chunk
boundaries therefore never change the decoded events.

Lines that are not valid JSON, or JSON of an unknown shape, are dropped.
Dispatched events fold into a :class:`RunResult`: the final answer text plus
the files the agent reported writing and editing.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rich.console import Console
from rich.markup import escape

from codefactory.utils import truncate

console = Console()

READ_TOOLS = frozenset({"Read", "Glob", "Grep", "LS"})
WRITE_TOOLS = frozenset({"Write", "FileWrite"})
EDIT_TOOLS = frozenset({"Edit", "MultiEdit", "FileEdit", "FileMultiEdit"})
SHELL_TOOLS = frozenset({"Bash"})

SHELL_DISPLAY_LIMIT = 80
TEXT_LINE_DISPLAY_LIMIT = 100


class StreamDialect(str, Enum):
    """Wire format spoken by an agent CLI on stdout."""

    STREAM_JSON = "stream-json"
    PLAIN_TEXT = "plain-text"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class ToolUseBlock:
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    @property
    def file_path(self) -> str | None:
        value = self.input.get("file_path")
        if isinstance(value, str) and value:
            return value
        return None


ContentBlock = TextBlock | ToolUseBlock


@dataclass(frozen=True)
class AssistantMessage:
    """An assistant turn: display text and tool invocations, in order."""

    content: tuple[ContentBlock, ...] = ()


@dataclass(frozen=True)
class ResultMessage:
    """The run's final answer, optionally with its cost."""

    result: str | None = None
    cost_usd: float | None = None
    subtype: str | None = None


StreamEvent = AssistantMessage | ResultMessage


def _parse_block(raw: Any) -> ContentBlock | None:
    if not isinstance(raw, dict):
        return None
    block_type = raw.get("type")
    if block_type == "text" and isinstance(raw.get("text"), str):
        return TextBlock(text=raw["text"])
    if block_type == "tool_use" and isinstance(raw.get("name"), str):
        tool_input = raw.get("input")
        return ToolUseBlock(
            name=raw["name"],
            input=tool_input if isinstance(tool_input, dict) else {},
        )
    return None


def parse_event(line: str) -> StreamEvent | None:
    """Parse one ``stream-json`` line into an event.

    Returns ``None`` for blank lines, invalid JSON and any event type other
    than ``result`` and ``assistant``.
    """
    if not line.strip():
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    event_type = data.get("type")

    if event_type == "result":
        result = data.get("result")
        cost = data.get("total_cost_usd", data.get("cost_usd"))
        subtype = data.get("subtype")
        return ResultMessage(
            result=result if isinstance(result, str) else None,
            cost_usd=float(cost) if isinstance(cost, (int, float)) else None,
            subtype=subtype if isinstance(subtype, str) else None,
        )

    if event_type == "assistant":
        message = data.get("message")
        raw_content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(raw_content, list):
            return AssistantMessage()
        blocks = (_parse_block(raw) for raw in raw_content)
        return AssistantMessage(content=tuple(b for b in blocks if b is not None))

    return None


# ---------------------------------------------------------------------------
# Line buffering
# ---------------------------------------------------------------------------


class LineBuffer:
    """Reassembles newline-terminated lines from arbitrary chunks.

    Bytes go through an incremental UTF-8 decoder, so a multi-byte character
    split across two chunks is decoded exactly once.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes | str) -> list[str]:
        """Add a chunk and return every line it completed."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return lines

    def close(self) -> str | None:
        """Flush the buffer, returning the unterminated remainder if non-blank."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        return remainder if remainder.strip() else None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class RunResult:
    """Everything one agent invocation produced.

    ``files_created`` and ``files_modified`` keep first-seen order and never
    share a path.
    """

    result_text: str = ""
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------


class StreamDecoder:
    """Folds one agent process's stdout into a :class:`RunResult`.

    A decoder belongs to exactly one subprocess invocation: feed it every
    chunk in arrival order, then call :meth:`close` once. It cannot be
    reused afterwards.
    """

    def __init__(
        self,
        dialect: StreamDialect = StreamDialect.STREAM_JSON,
        echo: bool = True,
    ):
        self.dialect = dialect
        self.echo = echo
        self._lines = LineBuffer()
        self._result_text = ""
        self._text_lines: list[str] = []
        # dicts as insertion-ordered sets
        self._created: dict[str, None] = {}
        self._modified: dict[str, None] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: bytes | str) -> list[StreamEvent]:
        """Consume one chunk; return the events it completed."""
        if self._closed:
            raise RuntimeError("StreamDecoder is closed; create a new one per run")
        events: list[StreamEvent] = []
        for line in self._lines.feed(chunk):
            event = self._dispatch(line)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> RunResult:
        """Dispatch any remaining partial line and return the folded result."""
        if self._closed:
            raise RuntimeError("StreamDecoder.close() called twice")
        remainder = self._lines.close()
        if remainder is not None:
            self._dispatch(remainder)
        self._closed = True

        if self.dialect is StreamDialect.PLAIN_TEXT:
            result_text = "\n".join(self._text_lines).strip()
        else:
            result_text = self._result_text

        # A file written and then edited in the same run counts as created.
        for path in self._created:
            self._modified.pop(path, None)

        return RunResult(
            result_text=result_text,
            files_created=list(self._created),
            files_modified=list(self._modified),
        )

    # -- dispatch --------------------------------------------------------

    def _dispatch(self, line: str) -> StreamEvent | None:
        if self.dialect is StreamDialect.PLAIN_TEXT:
            self._handle_text_line(line)
            return None

        event = parse_event(line)
        if isinstance(event, ResultMessage):
            self._handle_result(event)
        elif isinstance(event, AssistantMessage):
            for block in event.content:
                if isinstance(block, TextBlock):
                    self._show_text(block.text)
                else:
                    self._handle_tool_use(block)
        return event

    def _handle_text_line(self, line: str) -> None:
        if not line.strip():
            return
        self._text_lines.append(line)
        if self.echo:
            console.print(
                f"  [dim]codex: {escape(truncate(line, TEXT_LINE_DISPLAY_LIMIT))}[/dim]"
            )

    def _handle_result(self, event: ResultMessage) -> None:
        if event.result:
            self._result_text = event.result
        if event.cost_usd is not None and self.echo:
            console.print(f"  [dim]Cost: ${event.cost_usd:.4f}[/dim]")

    def _show_text(self, text: str) -> None:
        if self.echo and text:
            console.print(text, markup=False, highlight=False)

    def _handle_tool_use(self, block: ToolUseBlock) -> None:
        path = block.file_path

        if block.name in READ_TOOLS:
            target = path or block.input.get("pattern") or block.input.get("path") or ""
            self._echo(f"  [dim]{block.name}: {escape(str(target))}[/dim]")
        elif block.name in WRITE_TOOLS:
            if path:
                self._created.setdefault(path, None)
                self._echo(f"  [green]✓ Write: {escape(path)}[/green]")
        elif block.name in EDIT_TOOLS:
            if path:
                self._modified.setdefault(path, None)
                self._echo(f"  [yellow]✎ Edit: {escape(path)}[/yellow]")
        elif block.name in SHELL_TOOLS:
            command = block.input.get("command")
            if isinstance(command, str) and command:
                shown = truncate(command, SHELL_DISPLAY_LIMIT)
                self._echo(f"  [dim]$ {escape(shown)}[/dim]")

    def _echo(self, markup: str) -> None:
        if self.echo:
            console.print(markup)


# ---------------------------------------------------------------------------
# Convenience folds
# ---------------------------------------------------------------------------


def iter_events(chunks: Iterable[bytes | str]) -> Iterator[StreamEvent]:
    """Yield every ``stream-json`` event decoded from *chunks*, in order."""
    lines = LineBuffer()
    for chunk in chunks:
        for line in lines.feed(chunk):
            event = parse_event(line)
            if event is not None:
                yield event
    remainder = lines.close()
    if remainder is not None:
        event = parse_event(remainder)
        if event is not None:
            yield event


def decode_stream(
    chunks: Iterable[bytes | str],
    dialect: StreamDialect = StreamDialect.STREAM_JSON,
    echo: bool = False,
) -> RunResult:
    """Fold a complete chunk sequence into a :class:`RunResult`."""
    decoder = StreamDecoder(dialect=dialect, echo=echo)
    for chunk in chunks:
        decoder.feed(chunk)
    return decoder.close()
