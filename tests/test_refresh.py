from __future__ import annotations

import asyncio

import pytest

from myprs.bitbucket import PullRequest
from myprs.config import RepoRef, StatusFilter
from myprs.refresh import FetchResult, RefreshOrchestrator

A = RepoRef("w", "a")
B = RepoRef("w", "b")
C = RepoRef("w", "c")


def _pr(repo: RepoRef, number: int) -> PullRequest:
    return PullRequest(
        repo=repo,
        number=number,
        title=f"PR {number}",
        description="",
        state="OPEN",
        author="Me",
        updated_on="",
        url=f"https://bitbucket.org/{repo}/pull-requests/{number}",
    )


@pytest.mark.asyncio
async def test_results_keep_input_order_and_stream_per_repo() -> None:
    delays = {A: 0.03, B: 0.0, C: 0.01}

    async def fetch(repo: RepoRef, status: StatusFilter) -> list[PullRequest]:
        await asyncio.sleep(delays[repo])
        return [_pr(repo, 1)]

    streamed: list[RepoRef] = []
    completed: list[list[FetchResult]] = []
    orchestrator = RefreshOrchestrator(
        fetch, on_result=lambda r: streamed.append(r.repo), on_complete=completed.append
    )

    results = await orchestrator.refresh([A, B, C], StatusFilter.OPEN)

    assert [r.repo for r in results] == [A, B, C]
    # streamed in completion order, not input order
    assert streamed == [B, C, A]
    assert completed == [results]


@pytest.mark.asyncio
async def test_failing_repo_does_not_block_others() -> None:
    async def fetch(repo: RepoRef, status: StatusFilter) -> list[PullRequest]:
        if repo == B:
            raise RuntimeError("boom")
        return [_pr(repo, 5)]

    results = await RefreshOrchestrator(fetch).refresh([A, B], StatusFilter.ALL)

    assert results[0].ok and [p.number for p in results[0].prs] == [5]
    assert not results[1].ok
    assert results[1].error == "boom"
    assert results[1].prs == ()


@pytest.mark.asyncio
async def test_fetch_receives_status() -> None:
    seen: list[StatusFilter] = []

    async def fetch(repo: RepoRef, status: StatusFilter) -> list[PullRequest]:
        seen.append(status)
        return []

    await RefreshOrchestrator(fetch).refresh([A, B], StatusFilter.MERGED)
    assert seen == [StatusFilter.MERGED, StatusFilter.MERGED]


@pytest.mark.asyncio
async def test_second_start_is_coalesced() -> None:
    gate = asyncio.Event()
    calls: list[RepoRef] = []

    async def fetch(repo: RepoRef, status: StatusFilter) -> list[PullRequest]:
        calls.append(repo)
        await gate.wait()
        return []

    orchestrator = RefreshOrchestrator(fetch)
    assert orchestrator.is_refreshing is False

    task = orchestrator.start([A], StatusFilter.OPEN)
    assert task is not None
    assert orchestrator.is_refreshing is True
    assert orchestrator.start([A, B], StatusFilter.OPEN) is None

    gate.set()
    await orchestrator.wait()
    assert orchestrator.is_refreshing is False
    assert calls == [A]

    # a new refresh can start once the previous one finished
    assert orchestrator.start([B], StatusFilter.OPEN) is not None
    await orchestrator.wait()
    assert calls == [A, B]


@pytest.mark.asyncio
async def test_empty_repo_list_completes() -> None:
    async def fetch(repo: RepoRef, status: StatusFilter) -> list[PullRequest]:
        raise AssertionError("not called")

    done: list[list[FetchResult]] = []
    results = await RefreshOrchestrator(fetch, on_complete=done.append).refresh([], StatusFilter.OPEN)
    assert results == []
    assert done == [[]]


@pytest.mark.asyncio
async def test_wait_without_refresh_returns() -> None:
    async def fetch(repo: RepoRef, status: StatusFilter) -> list[PullRequest]:
        return []

    await RefreshOrchestrator(fetch).wait()


@pytest.mark.asyncio
async def test_different_status_is_queued_as_follow_up() -> None:
    gate = asyncio.Event()
    calls: list[tuple[RepoRef, StatusFilter]] = []

    async def fetch(repo: RepoRef, status: StatusFilter) -> list[PullRequest]:
        calls.append((repo, status))
        await gate.wait()
        return []

    passes: list[StatusFilter | None] = []
    orchestrator = RefreshOrchestrator(fetch, on_complete=lambda results: passes.append(orchestrator.status))
    orchestrator.start([A], StatusFilter.OPEN)
    assert orchestrator.start([A, B], StatusFilter.MERGED) is None
    assert orchestrator.has_pending is True

    gate.set()
    await orchestrator.wait()

    assert calls == [(A, StatusFilter.OPEN), (A, StatusFilter.MERGED), (B, StatusFilter.MERGED)]
    assert passes == [StatusFilter.OPEN, StatusFilter.MERGED]
    assert orchestrator.has_pending is False
    assert orchestrator.is_refreshing is False


@pytest.mark.asyncio
async def test_returning_to_running_status_drops_follow_up() -> None:
    gate = asyncio.Event()
    calls: list[StatusFilter] = []

    async def fetch(repo: RepoRef, status: StatusFilter) -> list[PullRequest]:
        calls.append(status)
        await gate.wait()
        return []

    orchestrator = RefreshOrchestrator(fetch)
    orchestrator.start([A], StatusFilter.OPEN)
    orchestrator.start([A], StatusFilter.MERGED)
    orchestrator.start([A], StatusFilter.OPEN)
    assert orchestrator.has_pending is False

    gate.set()
    await orchestrator.wait()
    assert calls == [StatusFilter.OPEN]
