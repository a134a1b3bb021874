from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from .bitbucket import PullRequest
from .config import RepoRef, StatusFilter

logger = logging.getLogger(__name__)

FetchFunc = Callable[[RepoRef, StatusFilter], Awaitable[list[PullRequest]]]


@dataclass(frozen=True)
class FetchResult:
    """Outcome of fetching one repository.

    Attributes:
        repo: Repository that was fetched.
        prs: Fetched pull requests; empty on failure.
        error: Failure description, or None on success.
    """

    repo: RepoRef
    prs: tuple[PullRequest, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RefreshOrchestrator:
    """Runs concurrent per-repository fetches in the background.

    Each repository result is passed to `on_result` as soon as it arrives;
    `on_complete` receives every result, in input order, once all are done.
    A request made while a refresh is outstanding is coalesced: with the same
    status it is dropped, with a different status it is queued and runs as a
    follow-up pass once the current one finishes.
    """

    def __init__(
        self,
        fetch: FetchFunc,
        on_result: Callable[[FetchResult], None] | None = None,
        on_complete: Callable[[list[FetchResult]], None] | None = None,
    ) -> None:
        self._fetch = fetch
        self._on_result = on_result
        self._on_complete = on_complete
        self._task: asyncio.Task | None = None
        self._status: StatusFilter | None = None
        self._pending: tuple[list[RepoRef], StatusFilter] | None = None

    @property
    def is_refreshing(self) -> bool:
        """True while a scheduled refresh has not finished."""
        return self._task is not None and not self._task.done()

    @property
    def status(self) -> StatusFilter | None:
        """Status of the running (or last) refresh pass."""
        return self._status

    @property
    def has_pending(self) -> bool:
        """True if a follow-up pass is queued behind the running one."""
        return self._pending is not None

    def start(self, repos: Sequence[RepoRef], status: StatusFilter) -> asyncio.Task | None:
        """Schedule a background refresh.

        Must be called from a running event loop.

        Args:
            repos: Repositories to fetch.
            status: Status filter passed to every fetch.

        Returns:
            The task running the refresh, or None if one was already running.
            In that case a different `status` is queued (see `has_pending`).
        """
        if self.is_refreshing:
            if status == self._status:
                self._pending = None
                logger.info("Refresh already in progress; request coalesced")
            else:
                self._pending = (list(repos), status)
                logger.info(f"Refresh already in progress; queued follow-up for status '{status}'")
            return None
        self._status = status
        self._task = asyncio.get_running_loop().create_task(self._run(list(repos), status))
        return self._task

    async def wait(self) -> None:
        """Wait for the outstanding refresh, if any."""
        if self._task is not None:
            await self._task

    async def _run(self, repos: list[RepoRef], status: StatusFilter) -> None:
        while True:
            await self.refresh(repos, status)
            if self._pending is None:
                return
            repos, status = self._pending
            self._pending = None

    async def refresh(self, repos: Sequence[RepoRef], status: StatusFilter) -> list[FetchResult]:
        """Fetch every repository concurrently.

        A failing repository never prevents the others from completing; its
        error is captured in its `FetchResult`.

        Args:
            repos: Repositories to fetch.
            status: Status filter passed to every fetch.

        Returns:
            One `FetchResult` per repository, in the order of `repos`.
        """
        self._status = status
        slots: list[FetchResult | None] = [None] * len(repos)

        async def run(index: int, repo: RepoRef) -> None:
            result = await self._fetch_one(repo, status)
            slots[index] = result
            if self._on_result:
                self._on_result(result)

        await asyncio.gather(*(run(i, repo) for i, repo in enumerate(repos)))
        results = [r for r in slots if r is not None]
        if self._on_complete:
            self._on_complete(results)
        return results

    async def _fetch_one(self, repo: RepoRef, status: StatusFilter) -> FetchResult:
        try:
            prs = await self._fetch(repo, status)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed loading {repo}: {e}")
            return FetchResult(repo=repo, error=str(e) or e.__class__.__name__)
        logger.debug(f"Loaded {len(prs)} PR(s) from {repo}")
        return FetchResult(repo=repo, prs=tuple(prs))
