"""
Client for the api-sports football fixtures feed.

Only fixture lookup by id is used: the live score check asks for the
current status and goals of the matches in play.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..config import FOOTBALL_API_BASE_URL, FOOTBALL_API_KEY, FOOTBALL_API_TIMEOUT_SECONDS
from ..models.enums import MatchStatus

logger = logging.getLogger(__name__)

IN_PROGRESS_CODES = {"HT", "1H", "2H"}

# The feed rejects more than this many ids in one fixtures request
MAX_IDS_PER_REQUEST = 20


class FootballApiError(Exception):
    pass


@dataclass
class Fixture:
    external_id: int
    status_code: str
    home_goals: Optional[int]
    away_goals: Optional[int]


def map_fixture_status(status_code: Optional[str]) -> MatchStatus:
    if status_code == "FT":
        return MatchStatus.COMPLETED
    if status_code in IN_PROGRESS_CODES:
        return MatchStatus.IN_PROGRESS
    return MatchStatus.SCHEDULED


def parse_fixture(item: Dict[str, Any]) -> Optional[Fixture]:
    """Read one entry of a fixtures response. Incomplete entries give None."""
    fixture = item.get("fixture") or {}
    goals = item.get("goals") or {}
    fixture_id = fixture.get("id")
    if fixture_id is None:
        return None

    return Fixture(
        external_id=int(fixture_id),
        status_code=(fixture.get("status") or {}).get("short") or "",
        home_goals=goals.get("home"),
        away_goals=goals.get("away")
    )


class FootballApiClient:
    def __init__(
        self,
        api_key: Optional[str] = FOOTBALL_API_KEY,
        base_url: str = FOOTBALL_API_BASE_URL,
        timeout: float = FOOTBALL_API_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not api_key:
            logger.warning("FOOTBALL_API_KEY not set; fixture lookups will be rejected by the feed.")
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers={"x-apisports-key": api_key or ""},
            timeout=timeout,
            transport=transport
        )

    async def __aenter__(self) -> "FootballApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = await self.client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as e:
            raise FootballApiError(f"Request to {path} failed: {e}") from e
        except ValueError as e:
            raise FootballApiError(f"Invalid JSON from {path}: {e}") from e

    async def get_fixtures_by_ids(self, external_ids: Iterable[int]) -> List[Fixture]:
        """/fixtures?ids=1-2-3. Ids the feed does not know are simply missing from the result."""
        ids = sorted(set(external_ids))
        fixtures: List[Fixture] = []

        for start in range(0, len(ids), MAX_IDS_PER_REQUEST):
            chunk = ids[start:start + MAX_IDS_PER_REQUEST]
            data = await self._get("/fixtures", {"ids": "-".join(str(i) for i in chunk)})

            if data.get("errors"):
                logger.warning("Feed reported errors for ids %s: %s", chunk, data.get("errors"))

            for item in data.get("response") or []:
                fixture = parse_fixture(item)
                if fixture:
                    fixtures.append(fixture)

        return fixtures
