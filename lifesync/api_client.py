"""
Client for the remote LifeSync scoring API
"""

import asyncio
import logging
import re
from typing import Optional

import aiohttp

from lifesync.config import SCORING_GET_ROUTES, SCORING_REQUEST_TIMEOUT, SCORING_USER_ROUTES
from lifesync.models import CategoryPoints, LoginResult, PointsResult

logger = logging.getLogger(__name__)

# Attribute names as stored by the scoring service
ATTRIBUTE_NAMES = {
    "Social": "social",
    "Fisica": "fisica",
    "Afectivo": "afectivo",
    "Cognitivo": "cognitivo",
    "Linguistico": "linguistico",
}


def parse_attributes(attributes) -> CategoryPoints:
    """Map `[{name, data}]` (or `{Name, Data}`) rows onto category totals."""
    points = CategoryPoints()
    if not isinstance(attributes, list):
        return points
    for row in attributes:
        if not isinstance(row, dict):
            continue
        name = row.get("name") or row.get("Name") or ""
        field = ATTRIBUTE_NAMES.get(name)
        if field is None:
            continue
        try:
            value = int(row.get("data") or row.get("Data") or 0)
        except (TypeError, ValueError):
            value = 0
        setattr(points, field, value)
    return points


class ScoringApiClient:
    """Login and points lookup. Failures come back as unsuccessful results."""

    def __init__(self, user_routes: str = SCORING_USER_ROUTES, get_routes: str = SCORING_GET_ROUTES,
                 timeout: float = SCORING_REQUEST_TIMEOUT):
        self.user_routes = user_routes
        self.get_routes = get_routes
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._session

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def login(self, username: str, password: str) -> LoginResult:
        if not username or not password:
            return LoginResult(success=False, error="Username and password are required")

        session = await self._get_session()
        try:
            async with session.get(f"{self.user_routes}player/{username}/{password}") as response:
                if response.status >= 400:
                    return LoginResult(success=False, error="Invalid credentials")
                body = await response.text()
        except asyncio.TimeoutError:
            logger.error("[ScoringAPI] Login timed out")
            return LoginResult(success=False, error="Timeout. Check your internet connection.")
        except aiohttp.ClientError as e:
            logger.error(f"[ScoringAPI] Login failed: {e}")
            return LoginResult(success=False, error="Connection error. Check your internet connection.")

        # The service answers with the player id, possibly wrapped in quotes
        user_id = re.sub(r"\D", "", body.strip())
        if not user_id or user_id == "0":
            return LoginResult(success=False, error="Invalid credentials")
        return LoginResult(success=True, user_id=user_id)

    async def get_points(self, user_id: str) -> PointsResult:
        if not user_id:
            return PointsResult(success=False, error="User id required")

        session = await self._get_session()
        try:
            async with session.get(f"{self.get_routes}player_all_attributes/{user_id}") as response:
                if response.status >= 400:
                    return PointsResult(success=False, error="Could not fetch points")
                attributes = await response.json(content_type=None)
        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            logger.error(f"[ScoringAPI] Error fetching points: {e}")
            return PointsResult(success=False, error="Could not fetch points")

        return PointsResult(success=True, points=parse_attributes(attributes))

    async def check_connection(self) -> bool:
        session = await self._get_session()
        try:
            async with session.get(self.user_routes) as response:
                return response.status < 400
        except (asyncio.TimeoutError, aiohttp.ClientError):
            return False
