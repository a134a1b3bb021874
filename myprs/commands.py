"""Parsing of the slash commands typed in command-entry mode.

The command set is closed: `Command` is the union of the dataclasses below and
`parse_command` always returns one of them. Unknown or malformed input becomes
a `ParseError` value rather than an exception so callers can report it inline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .config import RepoRef, StatusFilter
from .errors import InputError

REPO_USAGE = "usage: /repo add <workspace>/<repo> | /repo rm <workspace>/<repo>"
STATUS_USAGE = "usage: /status <open|merged|declined|all>"
SEARCH_USAGE = "usage: /search <text|pr-number> | /search clear"


@dataclass(frozen=True)
class CommandSpec:
    name: str
    usage: str
    accepts_args: bool


COMMAND_SPECS: tuple[CommandSpec, ...] = (
    CommandSpec("/help", "show available commands", False),
    CommandSpec("/repo", "add/rm repository entries", True),
    CommandSpec("/repos", "list configured repositories", False),
    CommandSpec("/status", "set status filter", True),
    CommandSpec("/refresh", "reload pull requests", False),
    CommandSpec("/search", "filter PRs by number or text", True),
    CommandSpec("/quit", "exit the app", False),
)


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class RepoAdd:
    repo: RepoRef


@dataclass(frozen=True)
class RepoRemove:
    repo: RepoRef


@dataclass(frozen=True)
class RepoList:
    pass


@dataclass(frozen=True)
class SetStatus:
    status: StatusFilter


@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class Search:
    term: str


@dataclass(frozen=True)
class SearchClear:
    pass


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class ParseError:
    reason: str


Command = Union[Help, RepoAdd, RepoRemove, RepoList, SetStatus, Refresh, Search, SearchClear, Quit, ParseError]

COMMAND_TYPES: tuple[type, ...] = (
    Help,
    RepoAdd,
    RepoRemove,
    RepoList,
    SetStatus,
    Refresh,
    Search,
    SearchClear,
    Quit,
    ParseError,
)

_NO_ARG_COMMANDS = {
    "/help": Help,
    "/repos": RepoList,
    "/refresh": Refresh,
    "/quit": Quit,
}


def parse_command(line: str) -> Command:
    """Turn a typed command line into a `Command`.

    Args:
        line: Raw text from the command buffer.

    Returns:
        The parsed command, or `ParseError` describing why it was rejected.
    """
    text = line.strip()
    if not text.startswith("/"):
        return ParseError("Commands must start with '/'. Try /help.")
    name, *args = text.split()

    if name in _NO_ARG_COMMANDS:
        if args:
            return ParseError(f"{name} takes no arguments")
        return _NO_ARG_COMMANDS[name]()
    if name == "/repo":
        return _parse_repo(args)
    if name == "/status":
        return _parse_status(args)
    if name == "/search":
        return _parse_search(args)
    return ParseError(f"Unknown command '{name}'. Try /help.")


def _parse_repo(args: list[str]) -> Command:
    if len(args) != 2 or args[0] not in ("add", "rm", "remove"):
        return ParseError(REPO_USAGE)
    try:
        repo = RepoRef.parse(args[1])
    except InputError as e:
        return ParseError(str(e))
    if args[0] == "add":
        return RepoAdd(repo)
    return RepoRemove(repo)


def _parse_status(args: list[str]) -> Command:
    if len(args) != 1:
        return ParseError(STATUS_USAGE)
    try:
        return SetStatus(StatusFilter.parse(args[0]))
    except InputError as e:
        return ParseError(str(e))


def _parse_search(args: list[str]) -> Command:
    term = " ".join(args)
    if not term:
        return ParseError(SEARCH_USAGE)
    if term.lower() == "clear":
        return SearchClear()
    return Search(term)
