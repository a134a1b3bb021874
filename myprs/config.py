from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import ConfigError, InputError, PersistError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "myprs"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_BASE_URL = "https://api.bitbucket.org/2.0"


@dataclass(frozen=True)
class RepoRef:
    """A Bitbucket repository identified by workspace and repository slug.

    Attributes:
        workspace: Top-level namespace owning the repository.
        repo: Repository slug inside the workspace.
    """

    workspace: str
    repo: str

    @staticmethod
    def parse(value: str) -> RepoRef:
        """Parse a ``workspace/repo`` string.

        Args:
            value: Text with exactly one ``/`` separating two non-empty parts.

        Returns:
            The parsed `RepoRef`.

        Raises:
            InputError: If the value is not of the form ``workspace/repo``.
        """
        parts = value.split("/")
        if len(parts) != 2:
            raise InputError("repo must be in the form workspace/repo")
        workspace, repo = (p.strip() for p in parts)
        if not workspace or not repo:
            raise InputError("repo must be in the form workspace/repo")
        return RepoRef(workspace, repo)

    def __str__(self) -> str:
        return f"{self.workspace}/{self.repo}"


class StatusFilter(str, Enum):
    """Status filter applied to fetched pull requests."""

    OPEN = "open"
    MERGED = "merged"
    DECLINED = "declined"
    ALL = "all"

    @staticmethod
    def parse(value: str) -> StatusFilter:
        """Parse a status literal case-insensitively.

        Raises:
            InputError: If the value is not one of open|merged|declined|all.
        """
        token = value.strip().lower()
        for status in StatusFilter:
            if status.value == token:
                return status
        raise InputError(f"invalid status '{value}'. expected: open|merged|declined|all")

    @property
    def query_state(self) -> str | None:
        """Bitbucket API state literal, or None when every state is wanted."""
        if self is StatusFilter.ALL:
            return None
        return self.value.upper()

    def __str__(self) -> str:
        return self.value


STATUS_LITERALS: tuple[str, ...] = tuple(s.value for s in StatusFilter)


def _optional_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise InputError(f"{key} must be a string")
    return value


@dataclass
class AppConfig:
    base_url: str = DEFAULT_BASE_URL
    email: str | None = None
    api_token: str | None = None
    repos: list[RepoRef] = field(default_factory=list)
    default_status: StatusFilter = StatusFilter.OPEN

    @staticmethod
    def from_dict(data: dict[str, Any]) -> AppConfig:
        """Create an `AppConfig` instance from a plain dictionary.

        Args:
            data: A mapping parsed from JSON containing optional keys
                `bitbucket_base_url`, `bitbucket_email`, `bitbucket_api_token`,
                `repos` (list of "workspace/repo" strings) and `default_status`.

        Returns:
            A populated `AppConfig` object. Duplicate repositories are dropped.

        Raises:
            InputError: If a value has the wrong type, or a repository or the
                status literal is malformed.
        """
        cfg = AppConfig(
            base_url=_optional_str(data, "bitbucket_base_url") or DEFAULT_BASE_URL,
            email=_optional_str(data, "bitbucket_email"),
            api_token=_optional_str(data, "bitbucket_api_token"),
            default_status=StatusFilter.parse(_optional_str(data, "default_status") or "open"),
        )
        repos = data.get("repos") or []
        if not isinstance(repos, list):
            raise InputError("repos must be a list of workspace/repo strings")
        for raw in repos:
            if not isinstance(raw, str):
                raise InputError(f"repo entry {raw!r} must be a workspace/repo string")
            cfg.add_repo(RepoRef.parse(raw))
        return cfg

    def to_dict(self) -> dict[str, Any]:
        """Serialize this configuration to a JSON-safe dictionary.

        Returns:
            A dictionary suitable for `json.dump`.
        """
        return {
            "bitbucket_base_url": self.base_url,
            "bitbucket_email": self.email,
            "bitbucket_api_token": self.api_token,
            "repos": [str(r) for r in self.repos],
            "default_status": self.default_status.value,
        }

    def credentials(self) -> tuple[str, str] | None:
        """Return ``(email, api_token)`` when both are set, else None."""
        if self.email and self.api_token:
            return self.email, self.api_token
        return None

    def add_repo(self, repo: RepoRef) -> bool:
        """Append a repository unless already present. Returns True if added."""
        if repo in self.repos:
            return False
        self.repos.append(repo)
        return True

    def remove_repo(self, repo: RepoRef) -> bool:
        """Remove a repository. Returns True if it was configured."""
        before = len(self.repos)
        self.repos = [r for r in self.repos if r != repo]
        return before != len(self.repos)

    def set_status(self, status: StatusFilter) -> bool:
        """Change the default status. Returns True if it changed."""
        if self.default_status == status:
            return False
        self.default_status = status
        return True


def ensure_config_dir() -> None:
    """Ensure the configuration directory exists.

    Raises:
        OSError: If the directory cannot be created.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def load_config() -> AppConfig:
    """Load configuration from `CONFIG_PATH`.

    A missing file yields the defaults; nothing is written until the
    configuration changes.

    Returns:
        The loaded `AppConfig` instance.

    Raises:
        ConfigError: If the file cannot be read or does not hold a valid config.
    """
    if not CONFIG_PATH.exists():
        return AppConfig()
    try:
        with CONFIG_PATH.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"failed to read config at {CONFIG_PATH}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"failed to parse config at {CONFIG_PATH}: expected a JSON object")
    try:
        return AppConfig.from_dict(data)
    except InputError as e:
        raise ConfigError(f"invalid config at {CONFIG_PATH}: {e}") from e


def save_config(cfg: AppConfig) -> None:
    """Persist configuration to `CONFIG_PATH` as JSON.

    Args:
        cfg: The configuration to save.

    Raises:
        PersistError: If writing the file fails.
    """
    try:
        ensure_config_dir()
        with CONFIG_PATH.open("w", encoding="utf-8") as f:
            json.dump(cfg.to_dict(), f, indent=2)
    except OSError as e:
        raise PersistError(f"failed to write config at {CONFIG_PATH}: {e}") from e
    logger.debug(f"Saved config to {CONFIG_PATH}")


def _read_env(environ: Mapping[str, str], key: str) -> str | None:
    value = environ.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_repo_list(value: str) -> list[RepoRef]:
    """Parse a comma-separated list of ``workspace/repo`` entries, skipping blanks.

    Raises:
        InputError: If any entry is malformed.
    """
    return [RepoRef.parse(item.strip()) for item in value.split(",") if item.strip()]


def apply_env_and_cli(
    cfg: AppConfig,
    repos: Iterable[str] = (),
    email: str | None = None,
    api_token: str | None = None,
    status: str | None = None,
    base_url: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> bool:
    """Overlay environment variables, then command-line values, onto `cfg`.

    Args:
        cfg: Configuration loaded from disk; mutated in place.
        repos: ``workspace/repo`` values from ``--repo``; appended if new.
        email: ``--email`` value.
        api_token: ``--api-token`` value.
        status: ``--status`` value.
        base_url: ``--base-url`` value.
        environ: Environment mapping, `os.environ` when None.

    Returns:
        True if anything changed and the config should be saved.

    Raises:
        ConfigError: If an environment or command-line value is malformed.
    """
    env = os.environ if environ is None else environ
    changed = False
    try:
        value = _read_env(env, "BITBUCKET_EMAIL")
        if value is not None and value != cfg.email:
            cfg.email = value
            changed = True
        value = _read_env(env, "BITBUCKET_API_TOKEN")
        if value is not None and value != cfg.api_token:
            cfg.api_token = value
            changed = True
        value = _read_env(env, "BITBUCKET_PR_STATUS")
        if value is not None:
            changed |= cfg.set_status(StatusFilter.parse(value))
        value = _read_env(env, "BITBUCKET_BASE_URL")
        if value is not None and value != cfg.base_url:
            cfg.base_url = value
            changed = True
        value = _read_env(env, "BITBUCKET_REPOS")
        if value is not None:
            for repo in parse_repo_list(value):
                changed |= cfg.add_repo(repo)
        workspace = _read_env(env, "BITBUCKET_WORKSPACE")
        repo_name = _read_env(env, "BITBUCKET_REPO")
        if workspace and repo_name:
            changed |= cfg.add_repo(RepoRef(workspace, repo_name))

        if email and email != cfg.email:
            cfg.email = email
            changed = True
        if api_token and api_token != cfg.api_token:
            cfg.api_token = api_token
            changed = True
        if status:
            changed |= cfg.set_status(StatusFilter.parse(status))
        if base_url and base_url != cfg.base_url:
            cfg.base_url = base_url
            changed = True
        for raw in repos:
            changed |= cfg.add_repo(RepoRef.parse(raw))
    except InputError as e:
        raise ConfigError(str(e)) from e
    return changed
