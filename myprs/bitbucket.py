from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .config import RepoRef, StatusFilter
from .errors import FetchError

# Set up logging
logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS_STATUS_CODE = 429
RETRY_AFTER_HEADER = "Retry-After"
PAGE_LENGTH = 50


class PRState(str, Enum):
    OPEN = "OPEN"
    MERGED = "MERGED"
    DECLINED = "DECLINED"
    OTHER = "OTHER"

    @staticmethod
    def from_api(state: str) -> PRState:
        """Map a raw Bitbucket state (e.g. "SUPERSEDED") onto a known state."""
        try:
            return PRState(state.upper())
        except ValueError:
            return PRState.OTHER


@dataclass(frozen=True)
class PullRequest:
    """A pull request authored by the session user.

    Attributes:
        repo: Repository the PR belongs to.
        number: Pull request id, unique within `repo`.
        title: PR title.
        description: PR description text (may be empty).
        state: Raw state reported by the API ("OPEN", "MERGED", ...).
        author: Display name of the PR author.
        updated_on: ISO-8601 timestamp of the last update.
        url: Web URL to the PR.
    """

    repo: RepoRef
    number: int
    title: str
    description: str
    state: str
    author: str
    updated_on: str
    url: str

    @property
    def status(self) -> PRState:
        return PRState.from_api(self.state)


def build_query(author_uuid: str, status: StatusFilter) -> str:
    """Build the Bitbucket ``q`` filter selecting PRs by author and state."""
    terms = [f'author.uuid="{author_uuid}"']
    state = status.query_state
    if state is not None:
        terms.append(f'state="{state}"')
    return " AND ".join(terms)


def parse_pull_request(repo: RepoRef, value: dict[str, Any]) -> PullRequest:
    """Convert one entry of a pull request listing into a `PullRequest`.

    Raises:
        KeyError: If a required field is missing.
    """
    description = value.get("description")
    if description is None:
        description = (value.get("summary") or {}).get("raw")
    author = value.get("author") or {}
    return PullRequest(
        repo=repo,
        number=int(value["id"]),
        title=value["title"],
        description=description or "",
        state=value["state"],
        author=author.get("display_name") or author.get("nickname") or "unknown",
        updated_on=value.get("updated_on", ""),
        url=value["links"]["html"]["href"],
    )


class BitbucketClient:
    """Bitbucket Cloud API client listing the pull requests of the current user."""

    def __init__(self, base_url: str, email: str, api_token: str, max_retries: int = 3) -> None:
        """Initialize the client.

        Args:
            base_url: API root, e.g. "https://api.bitbucket.org/2.0".
            email: Atlassian account email used for basic auth.
            api_token: API token paired with `email`.
            max_retries: Maximum number of retries for failed requests.
        """
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(email, api_token)
        self._headers = {
            "Accept": "application/json",
            "User-Agent": "myprs",
        }
        self._max_retries = max_retries
        self._user_uuid: str | None = None
        self._user_lock = asyncio.Lock()

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """Perform a GET request and return parsed JSON.

        Args:
            url: Absolute endpoint URL.
            params: Optional query parameters.

        Returns:
            The JSON-decoded response body.

        Raises:
            FetchError: On HTTP error statuses, network errors after retries,
                or a body that is not JSON.
        """
        for attempt in range(self._max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=20) as client:
                    r = await client.get(url, headers=self._headers, params=params, auth=self._auth)
                    r.raise_for_status()
                    return r.json()
            except httpx.HTTPStatusError as e:
                status_code = getattr(e.response, "status_code", None)
                if status_code == TOO_MANY_REQUESTS_STATUS_CODE and attempt < self._max_retries:
                    sleep_time = _retry_after(e.response, default=2**attempt)
                    logger.warning(f"Rate limited. Waiting {sleep_time} seconds before retry.")
                    await asyncio.sleep(sleep_time)
                    continue
                code_str = str(status_code if status_code is not None else "unknown")
                logger.error(f"HTTP error {code_str} for URL {url}: {e}")
                raise FetchError(f"HTTP {code_str} from {url}") from e
            except httpx.RequestError as e:
                if attempt < self._max_retries:
                    logger.warning(f"Network error (attempt {attempt + 1}/{self._max_retries + 1}): {e}")
                    await asyncio.sleep(2**attempt)
                    continue
                logger.error(f"Network error after {self._max_retries + 1} attempts: {e}")
                raise FetchError(f"network error: {e}") from e
            except ValueError as e:
                logger.error(f"Invalid JSON from {url}: {e}")
                raise FetchError(f"invalid response from {url}") from e

        raise FetchError("max retries exceeded")

    async def current_user_uuid(self) -> str:
        """Return the uuid of the authenticated user, fetched once per client.

        Raises:
            FetchError: If the user endpoint fails or returns no uuid.
        """
        async with self._user_lock:
            if self._user_uuid is None:
                data = await self._get(f"{self._base_url}/user")
                uuid = data.get("uuid") if isinstance(data, dict) else None
                if not uuid:
                    raise FetchError("current user response has no uuid")
                self._user_uuid = uuid
            return self._user_uuid

    async def list_my_prs(self, repo: RepoRef, status: StatusFilter) -> list[PullRequest]:
        """List pull requests authored by the current user in one repository.

        Args:
            repo: Repository to query.
            status: Status filter; ALL sends no state term.

        Returns:
            Pull requests in API order (most recently updated first).

        Raises:
            FetchError: If the request fails or the payload is malformed.
        """
        author_uuid = await self.current_user_uuid()
        url = f"{self._base_url}/repositories/{repo.workspace}/{repo.repo}/pullrequests"
        params = {
            "sort": "-updated_on",
            "pagelen": PAGE_LENGTH,
            "q": build_query(author_uuid, status),
        }
        data = await self._get(url, params=params)
        try:
            return [parse_pull_request(repo, value) for value in data.get("values", [])]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise FetchError(f"malformed pull request payload for {repo}: {e}") from e


def _retry_after(response: httpx.Response | None, default: float) -> float:
    """Seconds to wait before retrying, from the Retry-After header if parseable."""
    if response is None:
        return default
    raw = response.headers.get(RETRY_AFTER_HEADER)
    try:
        return max(0.0, float(raw)) if raw is not None else default
    except ValueError:
        return default
