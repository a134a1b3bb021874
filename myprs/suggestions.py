from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .commands import COMMAND_SPECS
from .config import STATUS_LITERALS, RepoRef

MAX_SUGGESTIONS = 8

# Kinds of suggestion
STEM = "stem"  # command name awaiting an argument; keeps a trailing space
FULL = "full"  # complete command line
REPO = "repo"  # complete command naming a configured repository


@dataclass(frozen=True)
class Suggestion:
    text: str
    kind: str
    description: str = ""


def _literal_candidates() -> list[Suggestion]:
    usage = {spec.name: spec.usage for spec in COMMAND_SPECS}
    candidates = [Suggestion(spec.name, FULL, spec.usage) for spec in COMMAND_SPECS if not spec.accepts_args]
    candidates += [
        Suggestion("/repo add ", STEM, "add a repository"),
        Suggestion("/repo rm ", STEM, "remove a repository"),
        Suggestion("/search ", STEM, usage["/search"]),
        Suggestion("/search clear", FULL, "clear the search"),
    ]
    candidates += [Suggestion(f"/status {s}", FULL, usage["/status"]) for s in STATUS_LITERALS]
    return candidates


def suggest(buffer: str, repos: Sequence[RepoRef]) -> list[Suggestion]:
    """Return completions for the command buffer, best first.

    Ordering: a candidate identical to the buffer, then ``/repo rm`` completions
    for configured repositories (in configuration order), then the remaining
    commands sorted lexically. At most `MAX_SUGGESTIONS` entries are returned.

    Args:
        buffer: Current command buffer text.
        repos: Configured repositories; the only source of repo completions.

    Returns:
        Ordered list of suggestions; empty when the buffer is not a command.
    """
    if not buffer.startswith("/"):
        return []
    exact: list[Suggestion] = []
    repo_aware: list[Suggestion] = []
    general: list[Suggestion] = []
    for candidate in _literal_candidates():
        if not candidate.text.startswith(buffer):
            continue
        if candidate.text == buffer:
            # A stem equal to the buffer would complete nothing.
            if candidate.kind != STEM:
                exact.append(candidate)
            continue
        general.append(candidate)
    for repo in repos:
        text = f"/repo rm {repo}"
        if text.startswith(buffer) and text != buffer:
            repo_aware.append(Suggestion(text, REPO, "configured repository"))
        elif text == buffer:
            exact.append(Suggestion(text, REPO, "configured repository"))
    general.sort(key=lambda s: s.text)
    return (exact + repo_aware + general)[:MAX_SUGGESTIONS]


def move_cursor(index: int, delta: int, count: int) -> int:
    """Move a suggestion cursor by `delta`, clamping to ``[0, count - 1]``."""
    if count <= 0:
        return 0
    return max(0, min(count - 1, index + delta))


def apply(suggestion: Suggestion) -> str:
    """Return the command buffer after accepting `suggestion`.

    Stems keep their trailing space so the argument can be typed next; full
    commands leave the cursor at end of line.
    """
    return suggestion.text
