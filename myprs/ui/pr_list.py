from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from rich.text import Text
from textual.widgets import Static

from ..bitbucket import PullRequest
from ..config import RepoRef

HIGHLIGHT_STYLE = "bold yellow on black"


@dataclass(frozen=True)
class Row:
    text: str
    is_header: bool = False
    is_selected: bool = False


def build_rows(groups: Sequence[tuple[RepoRef, Sequence[PullRequest]]], selected: int) -> list[Row]:
    """Flatten repository groups into display rows.

    Each group starts with a ``workspace/repo (N PRs):`` header row, followed
    by one numbered row per PR. `selected` indexes PR rows only (headers are
    skipped) and is clamped to the last PR.

    Args:
        groups: ``(repo, prs)`` pairs in display order.
        selected: Selection index into the flat PR list.

    Returns:
        Rows in display order; exactly one PR row is selected if any exist.
    """
    total = sum(len(prs) for _, prs in groups)
    selected = min(selected, total - 1)
    rows: list[Row] = []
    pr_index = 0
    for repo, prs in groups:
        label = "PR" if len(prs) == 1 else "PRs"
        rows.append(Row(f"{repo} ({len(prs)} {label}):", is_header=True))
        for position, pr in enumerate(prs, start=1):
            rows.append(
                Row(
                    f"  {position}. #{pr.number} [{pr.state}] {pr.title} ({pr.author})",
                    is_selected=pr_index == selected,
                )
            )
            pr_index += 1
    return rows


def empty_message(search: str | None) -> str:
    if search is not None:
        return f"No PRs match search '{search}'. Use /search clear to reset."
    return "No pull requests loaded. Configure credentials, add repos, then run /refresh."


class PRList(Static):
    """Widget rendering the grouped pull request list with the selection highlighted."""

    def show(
        self,
        groups: Sequence[tuple[RepoRef, Sequence[PullRequest]]],
        selected: int,
        search: str | None,
    ) -> None:
        if not groups:
            self.update(empty_message(search))
            return
        text = Text()
        for i, row in enumerate(build_rows(groups, selected)):
            if i:
                text.append("\n")
            if row.is_header:
                text.append(row.text, style="bold")
            elif row.is_selected:
                text.append("> " + row.text.lstrip(), style=HIGHLIGHT_STYLE)
            else:
                text.append(row.text)
        self.update(text)
