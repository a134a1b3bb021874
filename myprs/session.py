from __future__ import annotations

import logging
import webbrowser
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from . import suggestions
from .bitbucket import PullRequest
from .commands import (
    Command,
    Help,
    ParseError,
    Quit,
    Refresh,
    RepoAdd,
    RepoList,
    RepoRemove,
    Search,
    SearchClear,
    SetStatus,
    parse_command,
)
from .config import AppConfig, RepoRef, StatusFilter, save_config
from .errors import PersistError
from .refresh import FetchFunc, FetchResult, RefreshOrchestrator
from .store import PRStore
from .suggestions import Suggestion

logger = logging.getLogger(__name__)

MAX_LOG_LINES = 200

HELP_LINES = (
    "Commands: /repo add <w>/<r>, /repo rm <w>/<r>, /repos, /status <open|merged|declined|all>, "
    "/refresh, /search <text|pr-number>, /search clear, /quit",
    "Tip: type '/' to show command suggestions; use Up/Down + Tab to autocomplete.",
    "Tip: press Enter outside command entry to open the selected PR.",
)

QUIT_KEYS = {"q", "escape", "ctrl+c"}


class Mode(str, Enum):
    NORMAL = "normal"
    COMMAND = "command"


@dataclass
class ViewState:
    """What the user is looking at and typing.

    Attributes:
        status: Active status filter.
        search: Active search term, or None.
        selected: Index into the visible rows.
        mode: NORMAL for list navigation, COMMAND while typing a command.
        buffer: Command buffer text.
        suggestions: Completions for `buffer`.
        suggestion_index: Highlighted suggestion.
    """

    status: StatusFilter = StatusFilter.OPEN
    search: str | None = None
    selected: int = 0
    mode: Mode = Mode.NORMAL
    buffer: str = ""
    suggestions: list[Suggestion] = field(default_factory=list)
    suggestion_index: int = 0


class Session:
    """Owns the configuration, the PR store and the view, and reacts to keys."""

    def __init__(
        self,
        config: AppConfig,
        fetch: FetchFunc,
        save: Callable[[AppConfig], None] = save_config,
        open_url: Callable[[str], object] = webbrowser.open,
    ) -> None:
        """Initialize the session.

        Args:
            config: Loaded configuration; owned and mutated by the session.
            fetch: Coroutine function loading one repository's PRs.
            save: Persists the configuration; may raise `PersistError`.
            open_url: Opens a URL in the user's browser.
        """
        self.config = config
        self.store = PRStore()
        self.view = ViewState(status=config.default_status)
        self.logs: list[str] = []
        self.status_message: str | None = None
        self.should_quit = False
        self.on_change: Callable[[], None] | None = None
        self._save = save
        self._open_url = open_url
        self.refresher = RefreshOrchestrator(fetch, on_result=self._apply_result, on_complete=self._refresh_finished)

    # ---------------- Projection ----------------

    def visible_rows(self) -> list[PullRequest]:
        return self.store.visible_rows(self.view, self.config.repos)

    def grouped_rows(self) -> list[tuple[RepoRef, list[PullRequest]]]:
        return self.store.grouped_rows(self.view, self.config.repos)

    def selected_pr(self) -> PullRequest | None:
        rows = self.visible_rows()
        if not rows:
            return None
        return rows[min(self.view.selected, len(rows) - 1)]

    @property
    def is_refreshing(self) -> bool:
        return self.refresher.is_refreshing

    # ---------------- Input ----------------

    def start(self) -> None:
        """Greet the user and load pull requests. Needs a running event loop."""
        self.log("Type /help for commands.")
        self.request_refresh()

    def handle_key(self, key: str, character: str | None = None) -> None:
        """Dispatch a key press according to the current mode.

        Args:
            key: Key name as reported by the terminal backend ("up", "enter",
                "ctrl+c", "a", ...).
            character: Printable character for the key, if any. Defaults to
                `key` itself for single-character key names.
        """
        if character is None and len(key) == 1:
            character = key
        self.status_message = None
        if self.view.mode is Mode.COMMAND:
            self._handle_command_key(key, character)
        else:
            self._handle_normal_key(key, character)

    def _handle_normal_key(self, key: str, character: str | None) -> None:
        if character == "/":
            self._set_buffer("/")
            self.view.mode = Mode.COMMAND
            return
        handlers: dict[str, Callable[[], None]] = {
            "up": lambda: self._move_selection(-1),
            "down": lambda: self._move_selection(1),
            "enter": self._open_selected,
            "r": self.request_refresh,
        }
        if key in QUIT_KEYS:
            self.quit()
            return
        handler = handlers.get(key)
        if handler:
            handler()

    def _handle_command_key(self, key: str, character: str | None) -> None:
        handlers: dict[str, Callable[[], None]] = {
            "up": lambda: self._move_suggestion(-1),
            "down": lambda: self._move_suggestion(1),
            "tab": self._apply_suggestion,
            "enter": self._submit,
            "backspace": self._backspace,
            "escape": self._leave_command_mode,
            "ctrl+c": self.quit,
        }
        handler = handlers.get(key)
        if handler:
            handler()
            return
        if character and character.isprintable():
            self._set_buffer(self.view.buffer + character)

    def _set_buffer(self, text: str) -> None:
        self.view.buffer = text
        self.view.suggestions = suggestions.suggest(text, self.config.repos)
        self.view.suggestion_index = 0

    def _leave_command_mode(self) -> None:
        self.view.mode = Mode.NORMAL
        self.view.buffer = ""
        self.view.suggestions = []
        self.view.suggestion_index = 0

    def _backspace(self) -> None:
        text = self.view.buffer[:-1]
        if not text:
            self._leave_command_mode()
            return
        self._set_buffer(text)

    def _move_suggestion(self, delta: int) -> None:
        self.view.suggestion_index = suggestions.move_cursor(
            self.view.suggestion_index, delta, len(self.view.suggestions)
        )

    def _apply_suggestion(self) -> None:
        if not self.view.suggestions:
            return
        chosen = self.view.suggestions[min(self.view.suggestion_index, len(self.view.suggestions) - 1)]
        self._set_buffer(suggestions.apply(chosen))

    def _submit(self) -> None:
        line = self.view.buffer
        self._leave_command_mode()
        self.execute(parse_command(line))

    def _move_selection(self, delta: int) -> None:
        count = len(self.visible_rows())
        if count == 0:
            return
        self.view.selected = max(0, min(count - 1, self.view.selected + delta))

    def clamp_selection(self) -> None:
        count = len(self.visible_rows())
        self.view.selected = max(0, min(self.view.selected, count - 1))

    def _open_selected(self) -> None:
        pr = self.selected_pr()
        if pr is None:
            self.log("No pull request selected.")
            return
        try:
            self._open_url(pr.url)
        except webbrowser.Error as e:
            self.fail(f"could not open browser: {e}")
            return
        self.log(f"Opened {pr.repo} PR #{pr.number} in browser.")

    # ---------------- Commands ----------------

    def execute(self, command: Command) -> None:
        """Run a parsed command against this session."""
        _HANDLERS[type(command)](self, command)

    def log(self, message: str) -> None:
        """Append a line to the session log shown in the UI."""
        logger.debug(message)
        self.logs.append(message)
        if len(self.logs) > MAX_LOG_LINES:
            del self.logs[: len(self.logs) - MAX_LOG_LINES]

    def fail(self, reason: str) -> None:
        self.status_message = reason
        self.log(f"Command failed: {reason}")

    def persist(self) -> bool:
        """Save the configuration; failures are logged, never raised.

        Returns:
            True if the configuration was saved.
        """
        try:
            self._save(self.config)
        except PersistError as e:
            logger.warning(f"Persist failed: {e}")
            self.log(f"Failed to save config: {e}")
            return False
        return True

    def quit(self) -> None:
        self.should_quit = True
        self.persist()

    def request_refresh(self) -> bool:
        """Start a background refresh of every configured repository.

        Returns:
            True if a refresh was started; False when there is nothing to fetch
            or one is already running (a different status is queued behind it).
        """
        repos = list(self.config.repos)
        if not repos:
            self.log("No repos configured. Add repos via /repo add <workspace>/<repo>.")
            return False
        if self.refresher.start(repos, self.view.status) is None:
            if self.refresher.has_pending:
                self.log(f"Refresh already in progress. Will refresh with status '{self.view.status}' next.")
            else:
                self.log("Refresh already in progress.")
            return False
        self.log(f"Refreshing {len(repos)} repo(s)...")
        self._notify()
        return True

    def _apply_result(self, result: FetchResult) -> None:
        if result.repo not in self.config.repos:
            logger.debug(f"Ignoring result for removed repo {result.repo}")
            return
        if result.ok:
            self.store.replace(result.repo, result.prs)
        else:
            self.store.record_error(result.repo, result.error or "unknown error")
            self.log(f"Failed loading {result.repo}: {result.error}")
        self.clamp_selection()
        self._notify()

    def _refresh_finished(self, results: list[FetchResult]) -> None:
        results = [r for r in results if r.repo in self.config.repos]
        failed = sum(1 for r in results if not r.ok)
        status = self.refresher.status or self.view.status
        visible = len(self.visible_rows())
        if self.view.search is not None:
            total = len(self.store.visible_rows(ViewState(status=self.view.status), self.config.repos))
            self.log(
                f"Loaded {visible} matching PR(s) out of {total} total with status "
                f"'{status}' across {len(results)} repo(s) | search='{self.view.search}'"
            )
        else:
            self.log(f"Loaded {visible} PR(s) with status '{status}' across {len(results)} repo(s)")
        if failed:
            self.log(f"{failed} repo(s) failed during refresh")
        self.clamp_selection()
        self._notify()

    def _notify(self) -> None:
        if self.on_change:
            self.on_change()


def _do_help(session: Session, _command: Help) -> None:
    for line in HELP_LINES:
        session.log(line)


def _do_repo_add(session: Session, command: RepoAdd) -> None:
    if not session.config.add_repo(command.repo):
        session.log(f"Repo {command.repo} already exists")
        return
    session.persist()
    session.log(f"Added repo {command.repo}. Run /refresh to load its pull requests.")


def _do_repo_remove(session: Session, command: RepoRemove) -> None:
    if not session.config.remove_repo(command.repo):
        session.log(f"Repo {command.repo} not found")
        return
    session.store.discard(command.repo)
    session.clamp_selection()
    session.persist()
    session.log(f"Removed repo {command.repo}")


def _do_repo_list(session: Session, _command: RepoList) -> None:
    if not session.config.repos:
        session.log("No repos configured. Add one with /repo add <workspace>/<repo>.")
        return
    session.log("Configured repos:")
    errors = session.store.errors()
    for repo in session.config.repos:
        suffix = f" (last refresh failed: {errors[repo]})" if repo in errors else ""
        session.log(f"- {repo}{suffix}")


def _do_set_status(session: Session, command: SetStatus) -> None:
    session.view.status = command.status
    session.view.selected = 0
    if session.config.set_status(command.status):
        session.persist()
    session.log(f"Status filter set to {command.status}. Refreshing...")
    session.request_refresh()


def _do_refresh(session: Session, _command: Refresh) -> None:
    session.request_refresh()


def _do_search(session: Session, command: Search) -> None:
    session.view.search = command.term
    session.view.selected = 0
    session.log(f"Search set to '{command.term}'. {len(session.visible_rows())} matching PR(s).")


def _do_search_clear(session: Session, _command: SearchClear) -> None:
    if session.view.search is None:
        session.log("No active search.")
        return
    session.view.search = None
    session.view.selected = 0
    session.log("Search cleared.")


def _do_quit(session: Session, _command: Quit) -> None:
    session.quit()


def _do_parse_error(session: Session, command: ParseError) -> None:
    session.fail(command.reason)


_HANDLERS: dict[type, Callable[[Session, Command], None]] = {
    Help: _do_help,
    RepoAdd: _do_repo_add,
    RepoRemove: _do_repo_remove,
    RepoList: _do_repo_list,
    SetStatus: _do_set_status,
    Refresh: _do_refresh,
    Search: _do_search,
    SearchClear: _do_search_clear,
    Quit: _do_quit,
    ParseError: _do_parse_error,
}
