"""
GitHub API client used by the contributions sensor
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

import aiohttp

from lifesync.config import (
    GITHUB_API_BASE,
    GITHUB_REQUEST_TIMEOUT,
    GITHUB_TOKEN_KEY,
    GITHUB_USERNAME_KEY,
)
from lifesync.database import KeyValueStore
from lifesync.models import Contributions, GitHubAPIError, TokenPermissions
from lifesync.utils import local_midnight, now_local, parse_iso, relative_label, to_local

logger = logging.getLogger(__name__)


def count_push_commits(event: dict) -> int:
    """Commits carried by one PushEvent."""
    payload = event.get("payload")
    if not isinstance(payload, dict):
        return 1
    size = payload.get("size")
    if isinstance(size, int):
        return size
    commits = payload.get("commits")
    if isinstance(commits, list):
        return len(commits)
    return 1


def summarize_today_events(events: List[dict], now: datetime) -> Contributions:
    """
    Reduce a page of public events to today's contribution counts.
    "Today" starts at local midnight; commits are summed per push.
    """
    midnight = local_midnight(now)
    today = []
    for event in events:
        if not isinstance(event, dict):
            continue
        created = event.get("created_at")
        if not isinstance(created, str):
            continue
        try:
            created_at = to_local(parse_iso(created))
        except ValueError:
            continue
        if created_at >= midnight:
            today.append((created_at, event))

    pushes = [(created_at, event) for created_at, event in today if event.get("type") == "PushEvent"]
    commits = sum(count_push_commits(event) for _, event in pushes)
    repos = {event["repo"]["name"] for _, event in today if (event.get("repo") or {}).get("name")}

    last_commit = "Never"
    if pushes:
        latest = max(created_at for created_at, _ in pushes)
        last_commit = relative_label(latest, now)

    return Contributions(
        commits=commits,
        repos=len(repos),
        last_commit=last_commit,
        push_count=len(pushes),
    )


class GitHubService:
    """
    Thin async client for the GitHub REST API.
    Credentials live in the key-value store and are cached on first read.
    """

    def __init__(self, store: KeyValueStore, base_url: str = GITHUB_API_BASE,
                 timeout: float = GITHUB_REQUEST_TIMEOUT,
                 now: Callable[[], datetime] = now_local):
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.now = now
        self._token: Optional[str] = None
        self._username: Optional[str] = None
        self._session: Optional[aiohttp.ClientSession] = None

    # ==================== CREDENTIALS ====================

    async def set_token(self, token: Optional[str]):
        self._token = token or None
        if token:
            await self.store.set(GITHUB_TOKEN_KEY, token)
        else:
            await self.store.remove(GITHUB_TOKEN_KEY)

    async def get_token(self) -> Optional[str]:
        if self._token is None:
            self._token = await self.store.get(GITHUB_TOKEN_KEY)
        return self._token

    async def set_username(self, username: Optional[str]):
        self._username = username or None
        if username:
            await self.store.set(GITHUB_USERNAME_KEY, username)
        else:
            await self.store.remove(GITHUB_USERNAME_KEY)

    async def get_username(self) -> Optional[str]:
        if self._username is None:
            self._username = await self.store.get(GITHUB_USERNAME_KEY)
        return self._username

    async def is_configured(self) -> bool:
        return bool(await self.get_token() and await self.get_username())

    async def clear_credentials(self):
        await self.set_token(None)
        await self.set_username(None)

    # ==================== REQUESTS ====================

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _api_request(self, endpoint: str, params: Optional[dict] = None) -> Any:
        token = await self.get_token()
        if not token:
            raise GitHubAPIError("GitHub token not configured")

        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "LifeSync-Games",
        }
        session = await self._get_session()
        try:
            async with session.get(f"{self.base_url}{endpoint}", headers=headers, params=params) as response:
                if response.status == 401:
                    raise GitHubAPIError("GitHub token invalid or expired", status=401)
                if response.status == 404:
                    raise GitHubAPIError("GitHub user not found", status=404)
                if response.status >= 400:
                    raise GitHubAPIError(
                        f"API error: {response.status} {response.reason}", status=response.status
                    )
                if response.headers.get("x-ratelimit-remaining") == "0":
                    reset = response.headers.get("x-ratelimit-reset", "unknown")
                    raise GitHubAPIError(f"Rate limit reached, resets at {reset}", status=response.status)
                return await response.json()
        except asyncio.TimeoutError as e:
            raise GitHubAPIError("Request to GitHub timed out") from e
        except aiohttp.ClientError as e:
            raise GitHubAPIError(f"Request to GitHub failed: {e}") from e
        except ValueError as e:
            raise GitHubAPIError(f"Invalid response from GitHub: {e}") from e

    async def get_user_info(self) -> dict:
        return await self._api_request("/user")

    async def get_user_events(self, username: str, page: int = 1, per_page: int = 100) -> List[dict]:
        return await self._api_request(
            f"/users/{username}/events/public",
            params={"page": page, "per_page": per_page},
        )

    async def get_today_contributions(self, username: str) -> Contributions:
        events = await self.get_user_events(username)
        if not isinstance(events, list):
            raise GitHubAPIError("Unexpected events payload from GitHub")
        contributions = summarize_today_events(events, self.now())
        logger.debug(
            f"[GitHub] {contributions.commits} commits in {contributions.push_count} pushes today"
        )
        return contributions

    async def verify_token_permissions(self) -> TokenPermissions:
        """Check that the token is valid, matches the username and can read events."""
        try:
            user_info = await self.get_user_info()
        except GitHubAPIError as e:
            logger.error(f"[GitHub] Error verifying permissions: {e}")
            return TokenPermissions(valid=False, can_read_events=False, message=str(e))

        login = user_info.get("login")
        if not login:
            return TokenPermissions(valid=False, can_read_events=False,
                                    message="Could not read user information")

        username = await self.get_username()
        if username and login.lower() != username.lower():
            return TokenPermissions(
                valid=False,
                can_read_events=False,
                username=login,
                message=f"Username mismatch. The token belongs to: {login}",
            )

        try:
            await self.get_user_events(login, 1, 1)
            can_read_events = True
            message = "Token valid with sufficient permissions"
        except GitHubAPIError as e:
            # Only authorization failures mean the scopes are missing
            can_read_events = e.status not in (401, 403)
            message = str(e) if not can_read_events else f"Token valid; events check failed: {e}"
            logger.warning(f"[GitHub] Cannot read public events: {e}")

        return TokenPermissions(
            valid=can_read_events,
            can_read_events=can_read_events,
            username=login,
            message=message,
        )
