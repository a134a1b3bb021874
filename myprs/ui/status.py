from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from textual.widgets import Static

if TYPE_CHECKING:  # For type checking only, not used at runtime
    from ..session import Session

LOG_PANEL_LINES = 6


def status_line(session: Session) -> str:
    """Summary shown above the list: repo count, filter, auth and refresh state."""
    auth = "configured" if session.config.credentials() else "missing"
    text = f"Repos: {len(session.config.repos)} | Status: {session.view.status} | API token auth: {auth}"
    if session.view.search is not None:
        text += f" | Search: {session.view.search}"
    if session.is_refreshing:
        text += " • Refreshing…"
    failed = len(session.store.errors())
    if failed:
        text += f" • {failed} repo(s) failed"
    return text


def tail(lines: Sequence[str], count: int = LOG_PANEL_LINES) -> list[str]:
    """Return the last `count` lines."""
    if count <= 0:
        return []
    return list(lines[-count:])


class StatusBar(Static):
    """One-line session summary."""

    def show(self, session: Session) -> None:
        self.update(status_line(session))


class LogPanel(Static):
    """The most recent session log lines."""

    def show(self, lines: Sequence[str]) -> None:
        self.update("\n".join(tail(lines)))
