from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from .bitbucket import PRState, PullRequest
from .config import RepoRef, StatusFilter

_STATUS_STATES = {
    StatusFilter.OPEN: PRState.OPEN,
    StatusFilter.MERGED: PRState.MERGED,
    StatusFilter.DECLINED: PRState.DECLINED,
}


class Filter(Protocol):
    status: StatusFilter
    search: str | None


def matches_status(pr: PullRequest, status: StatusFilter) -> bool:
    """Return True if `pr` passes the status filter (ALL passes everything)."""
    if status is StatusFilter.ALL:
        return True
    return pr.status is _STATUS_STATES[status]


def matches_search(pr: PullRequest, term: str | None) -> bool:
    """Return True if `pr` matches the search term.

    A term made of decimal digits matches the PR number exactly; any other
    term (including other Unicode digits such as superscripts) is a
    case-insensitive substring match over title and description.
    """
    if term is None:
        return True
    query = term.strip()
    if query.isdecimal():
        return pr.number == int(query)
    return query.lower() in f"{pr.title} {pr.description}".lower()


class PRStore:
    """In-memory pull requests keyed by repository, with per-repository errors."""

    def __init__(self) -> None:
        self._prs: dict[RepoRef, tuple[PullRequest, ...]] = {}
        self._errors: dict[RepoRef, str] = {}

    def replace(self, repo: RepoRef, prs: Iterable[PullRequest]) -> None:
        """Swap the records for `repo` with `prs` and clear its error.

        The new tuple is built before the single assignment, so readers see
        either the old or the new set, never a mix.
        """
        self._prs[repo] = tuple(prs)
        self._errors.pop(repo, None)

    def record_error(self, repo: RepoRef, message: str) -> None:
        """Annotate `repo` with a fetch error, keeping its previous records."""
        self._errors[repo] = message

    def discard(self, repo: RepoRef) -> None:
        """Forget records and error for `repo`."""
        self._prs.pop(repo, None)
        self._errors.pop(repo, None)

    def prs_for(self, repo: RepoRef) -> tuple[PullRequest, ...]:
        return self._prs.get(repo, ())

    def errors(self) -> dict[RepoRef, str]:
        return dict(self._errors)

    def total(self) -> int:
        return sum(len(prs) for prs in self._prs.values())

    def grouped_rows(self, view: Filter, repos: Sequence[RepoRef]) -> list[tuple[RepoRef, list[PullRequest]]]:
        """Group matching PRs by repository in `repos` order.

        Repositories without a matching PR are left out of the result (their
        records stay in the store).

        Args:
            view: Active status filter and search term.
            repos: Configured repositories, in display order.

        Returns:
            ``(repo, prs)`` pairs; each list keeps fetch order.
        """
        groups: list[tuple[RepoRef, list[PullRequest]]] = []
        seen: set[RepoRef] = set()
        for repo in repos:
            if repo in seen:
                continue
            seen.add(repo)
            rows = [
                pr
                for pr in self._prs.get(repo, ())
                if matches_status(pr, view.status) and matches_search(pr, view.search)
            ]
            if rows:
                groups.append((repo, rows))
        return groups

    def visible_rows(self, view: Filter, repos: Sequence[RepoRef]) -> list[PullRequest]:
        """Return the flat list of visible PRs, grouped by repository."""
        return [pr for _, rows in self.grouped_rows(view, repos) for pr in rows]
