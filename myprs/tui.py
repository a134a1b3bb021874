from __future__ import annotations

from typing import ClassVar

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical, VerticalScroll
from textual.widgets import Header

from .bitbucket import BitbucketClient
from .config import AppConfig
from .errors import ConfigError
from .session import Mode, Session
from .ui import CommandLine, LogPanel, PRList, StatusBar, SuggestionPopup


class MyPRsApp(App):
    """Textual TUI listing the pull requests you authored across Bitbucket repositories."""

    TITLE = "myprs - Bitbucket PR TUI"

    CSS = """
    #status { height: auto; padding: 0 1; border: round $primary; }
    #prs-scroll { height: 1fr; border: round $primary; }
    #prs { padding: 0 1; }
    #log { height: 8; padding: 0 1; border: round $secondary; }
    #suggestions { height: auto; padding: 0 1; border: round $accent; display: none; }
    #command { height: auto; padding: 0 1; border: round $primary; }
    """

    # Priority bindings reach the session before Textual's own focus/scroll handling.
    BINDINGS: ClassVar[list[Binding]] = [
        Binding("up", "key('up')", "Up", show=False, priority=True),
        Binding("down", "key('down')", "Down", show=False, priority=True),
        Binding("tab", "key('tab')", "Complete", show=False, priority=True),
        Binding("enter", "key('enter')", "Open/Run", show=False, priority=True),
        Binding("ctrl+c", "key('ctrl+c')", "Quit", show=False, priority=True),
    ]

    def __init__(self, config: AppConfig, session: Session | None = None) -> None:
        """Initialize the application.

        Args:
            config: Loaded configuration with credentials.
            session: Pre-built session (used by tests); built from `config`
                with a `BitbucketClient` when omitted.

        Raises:
            ConfigError: If no session is given and credentials are missing.
        """
        super().__init__()
        self.cfg = config
        if session is None:
            credentials = config.credentials()
            if credentials is None:
                raise ConfigError("Missing credentials. Set BITBUCKET_EMAIL and BITBUCKET_API_TOKEN.")
            client = BitbucketClient(config.base_url, *credentials)
            session = Session(config, client.list_my_prs)
        self.session = session
        self.session.on_change = self._render_session
        self._status = StatusBar(id="status")
        self._prs = PRList(id="prs")
        self._log = LogPanel(id="log")
        self._suggestions = SuggestionPopup(id="suggestions")
        self._command = CommandLine(id="command")

    def compose(self) -> ComposeResult:
        """Compose status bar, PR list, log, suggestions and command line."""
        yield Header(show_clock=False)
        with Vertical():
            yield self._status
            with VerticalScroll(id="prs-scroll"):
                yield self._prs
            yield self._log
            yield self._suggestions
            yield self._command

    def on_mount(self) -> None:
        """Load pull requests on startup."""
        self.session.start()
        self._render_session()

    def on_key(self, event) -> None:  # type: ignore[override]
        """Forward every non-bound key to the session."""
        key = getattr(event, "key", None)
        if key is None:
            return
        event.prevent_default()
        event.stop()
        self._dispatch(key, getattr(event, "character", None))

    def action_key(self, key: str) -> None:
        """Forward a bound key to the session."""
        self._dispatch(key, None)

    def _dispatch(self, key: str, character: str | None) -> None:
        self.session.handle_key(key, character)
        if self.session.should_quit:
            self.exit()
            return
        self._render_session()

    def _render_session(self) -> None:
        """Redraw every widget from the session state."""
        session = self.session
        view = session.view
        self._status.show(session)
        self._prs.show(session.grouped_rows(), view.selected, view.search)
        self._log.show(session.logs)
        self._suggestions.show(view.suggestions, view.suggestion_index)
        self._command.show(view.buffer, view.mode is Mode.COMMAND, session.status_message)
