"""Branch names for task sessions.

Two forms are produced, both ending in a 6-hex-char hash of the task text
and a timestamp so repeated tasks never reuse a name:

* ``cf/<type>/<kebab-description>-<hash>`` when the agent suggests a name.
* ``cf/<slug>-<hash>`` as the deterministic fallback.

"Add JWT auth" -> "cf/add-jwt-auth-a3f2c1"
"""

from __future__ import annotations

import hashlib
import re
import time

from rich.console import Console

from codefactory.agent.errors import AgentRunnerError
from codefactory.agent.runner import AgentRunner

console = Console()

BRANCH_PREFIX = "cf"
BRANCH_TYPES: tuple[str, ...] = ("feat", "fix", "refactor", "chore", "docs", "test")
MAX_SLUG_LENGTH = 50
MAX_AGENT_BRANCH_LENGTH = 80
BRANCH_NAMING_TIMEOUT = 30.0
HASH_LENGTH = 6

_AGENT_BRANCH = re.compile(
    rf"{BRANCH_PREFIX}/(?:{'|'.join(BRANCH_TYPES)})/[a-z0-9]+(?:-[a-z0-9]+)*"
)


def task_hash(description: str, timestamp: int | None = None) -> str:
    """Short uniqueness hash over the task text and a nanosecond timestamp."""
    if timestamp is None:
        timestamp = time.time_ns()
    digest = hashlib.sha256(f"{description}{timestamp}".encode("utf-8")).hexdigest()
    return digest[:HASH_LENGTH]


def _slug(description: str) -> str:
    slug = re.sub(r"[^a-z0-9\s-]", "", description.lower()).strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug[:MAX_SLUG_LENGTH].strip("-")
    return slug or "task"


def slugify_task(description: str, timestamp: int | None = None) -> str:
    """Derive the fallback branch name ``cf/<slug>-<hash>`` for a task.

    Never fails and never touches the network or a subprocess.
    """
    return f"{BRANCH_PREFIX}/{_slug(description)}-{task_hash(description, timestamp)}"


def branch_naming_prompt(task: str) -> str:
    return "\n".join(
        [
            "Generate a git branch name for this task.",
            "Rules:",
            f"- Format: {BRANCH_PREFIX}/<type>/<kebab-case-description>",
            f"- type must be one of: {', '.join(BRANCH_TYPES)}",
            "- description should be 2-5 words in kebab-case, lowercase, "
            "alphanumeric and hyphens only",
            "- Only output the branch name, nothing else. No backticks, no explanation.",
            "",
            f"Task: {task}",
        ]
    )


def extract_branch_name(output: str) -> str | None:
    """Find a ``cf/<type>/<description>`` name in an agent's answer."""
    match = _AGENT_BRANCH.search(output)
    if match and len(match.group(0)) <= MAX_AGENT_BRANCH_LENGTH:
        return match.group(0)
    return None


async def generate_branch_name(
    task: str,
    runner: AgentRunner | None = None,
    timeout: float = BRANCH_NAMING_TIMEOUT,
    timestamp: int | None = None,
) -> str:
    """Name a task branch, asking the agent first when a runner is given.

    The agent call is bounded by *timeout*. Any failure (process error,
    timeout, unusable answer, unavailable platform) falls back to
    :func:`slugify_task`; this function itself never raises.
    """
    if runner is not None:
        try:
            output = await runner.ask(branch_naming_prompt(task), timeout=timeout)
        except AgentRunnerError as exc:
            console.print(f"[dim]Branch naming fell back to slug: {exc}[/dim]")
        else:
            name = extract_branch_name(output)
            if name:
                return f"{name}-{task_hash(task, timestamp)}"
            console.print("[dim]Agent suggested no usable branch name; using slug.[/dim]")

    return slugify_task(task, timestamp)
