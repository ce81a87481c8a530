"""
Competitive rank lookups from the player MMR endpoint.
"""

import logging
import math
import threading
from collections.abc import Collection
from dataclasses import dataclass
from typing import Any

from matchsight.core.constants import (
    ASCENDANT_TIER_SHIFT,
    BEFORE_ASCENDANT_SEASONS,
    LEADERBOARD_MIN_TIER,
    Domain,
)
from matchsight.core.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankLookup:
    """Rank data for one player in one season."""

    tier: int = 0
    rr: int = 0
    leaderboard: int = 0
    peak_tier: int = 0
    peak_season_id: str | None = None
    peak_act: str | None = None
    peak_episode: str | None = None
    win_rate: int | None = None
    games_played: int | None = None


def _competitive_seasons(response: Any) -> dict[str, dict[str, Any]]:
    if not isinstance(response, dict):
        return {}
    competitive = (response.get("QueueSkills") or {}).get("competitive") or {}
    seasons = competitive.get("SeasonalInfoBySeasonID") or {}
    return seasons if isinstance(seasons, dict) else {}


def current_rank(season: dict[str, Any] | None) -> tuple[int, int, int]:
    """(tier, rr, leaderboard); placement tiers 0-2 count as unranked."""
    if not season or season.get("CompetitiveTier") is None:
        return 0, 0, 0
    tier = int(season["CompetitiveTier"])
    if tier >= LEADERBOARD_MIN_TIER:
        return tier, int(season.get("RankedRating") or 0), int(season.get("LeaderboardRank") or 0)
    if tier > 2:
        return tier, int(season.get("RankedRating") or 0), 0
    return 0, 0, 0


def peak_rank(
    seasons: dict[str, dict[str, Any]],
    start_tier: int,
    start_season: str | None,
    before_ascendant: Collection[str] = BEFORE_ASCENDANT_SEASONS,
) -> tuple[int, str | None]:
    """
    Highest tier with a win across all seasons.

    Seasons before Ascendant existed numbered tiers above Diamond 3 three
    lower, so those are shifted up before comparing.
    """
    best_tier, best_season = start_tier, start_season
    for season_id, info in seasons.items():
        for key in (info or {}).get("WinsByTier") or {}:
            try:
                tier = int(key)
            except (TypeError, ValueError):
                continue
            if season_id in before_ascendant and tier > 20:
                tier += ASCENDANT_TIER_SHIFT
            if tier > best_tier:
                best_tier, best_season = tier, season_id
    return best_tier, best_season


def win_rate(season: dict[str, Any] | None) -> tuple[int | None, int | None]:
    """(win rate percent, games played); win rate is None without games."""
    if not season:
        return None, None
    games = int(season.get("NumberOfGames") or 0)
    wins = season.get("NumberOfWinsWithPlacements")
    if wins is None or games <= 0:
        return None, games
    return math.floor(int(wins) / games * 100), games


class RankService:
    """
    Reads ``/mmr/v1/players/{id}``; successful responses are kept until
    ``invalidate_cached_responses`` so the current and previous season
    lookups for one player share a request.
    """

    def __init__(self, transport, content=None, before_ascendant: Collection[str] = BEFORE_ASCENDANT_SEASONS):
        self.transport = transport
        self.content = content
        self.before_ascendant = before_ascendant
        self._responses: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _get_request(self, subject: str, timeout: float | None = None) -> dict[str, Any]:
        with self._lock:
            cached = self._responses.get(subject)
        if cached is not None:
            return cached

        response = self.transport.fetch(Domain.PD, f"/mmr/v1/players/{subject}", timeout=timeout)
        if not isinstance(response, dict) or "QueueSkills" not in response:
            code = response.get("errorCode") if isinstance(response, dict) else None
            raise TransportError(f"Rank lookup for {subject} returned no data", error_code=code)

        with self._lock:
            self._responses[subject] = response
        return response

    def invalidate_cached_responses(self) -> None:
        with self._lock:
            self._responses.clear()

    def get_rank(self, subject: str, season_id: str | None, timeout: float | None = None) -> RankLookup:
        """
        Rank for one player in one season.

        Raises:
            TransportError: The MMR endpoint failed; callers degrade
        """
        response = self._get_request(subject, timeout=timeout)
        seasons = _competitive_seasons(response)
        season = seasons.get(season_id) if season_id else None

        tier, rr, leaderboard = current_rank(season)
        peak_tier, peak_season = peak_rank(seasons, tier, season_id, self.before_ascendant)
        rate, games = win_rate(season)

        peak_act = peak_episode = None
        if self.content is not None and peak_season:
            peak_act, peak_episode = self.content.act_episode(peak_season)

        return RankLookup(
            tier=tier,
            rr=rr,
            leaderboard=leaderboard,
            peak_tier=peak_tier,
            peak_season_id=peak_season,
            peak_act=peak_act,
            peak_episode=peak_episode,
            win_rate=rate,
            games_played=games,
        )

    def get_tier(self, subject: str, season_id: str | None, timeout: float | None = None) -> int:
        """Current tier only, for previous-season lookups."""
        response = self._get_request(subject, timeout=timeout)
        season = _competitive_seasons(response).get(season_id) if season_id else None
        return current_rank(season)[0]
