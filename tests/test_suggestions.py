from __future__ import annotations

from myprs.config import RepoRef
from myprs.suggestions import FULL, MAX_SUGGESTIONS, REPO, STEM, apply, move_cursor, suggest


def _texts(buffer: str, repos: list[RepoRef] | None = None) -> list[str]:
    return [s.text for s in suggest(buffer, repos or [])]


def test_no_suggestions_outside_commands() -> None:
    assert suggest("", []) == []
    assert suggest("repo", []) == []


def test_every_suggestion_extends_the_buffer() -> None:
    repos = [RepoRef("w", "a"), RepoRef("w", "b")]
    for buffer in ["/", "/r", "/repo", "/repo rm ", "/st", "/search "]:
        for s in suggest(buffer, repos):
            assert s.text.startswith(buffer)


def test_list_is_capped() -> None:
    repos = [RepoRef("w", f"r{i}") for i in range(20)]
    assert len(suggest("/", repos)) == MAX_SUGGESTIONS


def test_exact_command_ranks_first() -> None:
    texts = _texts("/repo")
    assert texts == ["/repo add ", "/repo rm ", "/repos"]
    texts = _texts("/repos")
    assert texts == ["/repos"]
    assert suggest("/repos", [])[0].kind == FULL


def test_repo_completions_come_before_general_commands() -> None:
    repos = [RepoRef("zeta", "x"), RepoRef("alpha", "y")]
    texts = _texts("/repo", repos)
    # configured order is kept for repo completions
    assert texts[:2] == ["/repo rm zeta/x", "/repo rm alpha/y"]
    assert texts[2:] == ["/repo add ", "/repo rm ", "/repos"]


def test_repo_rm_completes_only_configured_repos() -> None:
    repos = [RepoRef("workspace-a", "repo-1"), RepoRef("other", "repo-2")]
    items = suggest("/repo rm works", repos)
    assert [s.text for s in items] == ["/repo rm workspace-a/repo-1"]
    assert items[0].kind == REPO
    assert suggest("/repo rm nothing", repos) == []


def test_stem_equal_to_buffer_is_dropped() -> None:
    texts = _texts("/repo rm ", [RepoRef("w", "r")])
    assert texts == ["/repo rm w/r"]
    assert _texts("/search ") == ["/search clear"]


def test_status_literals_are_suggested_lexically() -> None:
    assert _texts("/status ") == ["/status all", "/status declined", "/status merged", "/status open"]
    assert _texts("/status m") == ["/status merged"]


def test_stems_keep_trailing_space() -> None:
    stems = [s for s in suggest("/re", []) if s.kind == STEM]
    assert stems and all(s.text.endswith(" ") for s in stems)
    assert apply(stems[0]).endswith(" ")


def test_cursor_clamps_at_both_ends() -> None:
    assert move_cursor(0, -1, 3) == 0
    assert move_cursor(2, 1, 3) == 2
    assert move_cursor(1, 1, 3) == 2
    assert move_cursor(2, -1, 3) == 1
    assert move_cursor(5, 0, 0) == 0
