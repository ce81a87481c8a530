"""
Recent-match statistics: K/D and headshot percentage from the player's
latest match in a queue.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any

from matchsight.core.constants import COMPETITIVE_QUEUE, UNRATED_QUEUE, Domain
from matchsight.core.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatsLookup:
    """Stats from one match; ``queue`` is None when nothing was found."""

    kd: float | None = None
    headshot_pct: int | None = None
    ranked_rating_earned: int | None = None
    afk_penalty: int | None = None
    queue: str | None = None

    @property
    def populated(self) -> bool:
        return self.kd is not None or self.headshot_pct is not None


EMPTY_STATS = StatsLookup()


def match_stats(subject: str, match: dict[str, Any]) -> tuple[float, int | None]:
    """
    (kd, headshot %) for one player from a match-details payload.

    K/D is rounded to two places and equals kills when there are no deaths.
    """
    hits = headshots = 0
    for round_result in match.get("roundResults") or []:
        for player in round_result.get("playerStats") or []:
            if player.get("subject") != subject:
                continue
            for damage in player.get("damage") or []:
                head = damage.get("headshots") or 0
                hits += (damage.get("legshots") or 0) + (damage.get("bodyshots") or 0) + head
                headshots += head

    kills = deaths = 0
    for player in match.get("players") or []:
        if player.get("subject") == subject:
            stats = player.get("stats") or {}
            kills = stats.get("kills") or 0
            deaths = stats.get("deaths") or 0
            break

    kd = round(kills / deaths, 2) if deaths > 0 else kills
    hs = math.floor(headshots / hits * 100) if hits > 0 else None
    return kd, hs


class StatsService:
    """Caches populated results per player and queue until invalidated."""

    def __init__(self, transport):
        self.transport = transport
        self._cache: dict[str, StatsLookup] = {}
        self._lock = threading.Lock()

    def invalidate_cached_responses(self) -> None:
        with self._lock:
            self._cache.clear()

    def _fetch_queue(self, subject: str, queue: str, timeout: float | None) -> StatsLookup | None:
        updates = self.transport.fetch(
            Domain.PD,
            f"/mmr/v1/players/{subject}/competitiveupdates?startIndex=0&endIndex=1&queue={queue}",
            timeout=timeout,
        )
        matches = updates.get("Matches") if isinstance(updates, dict) else None
        if not matches:
            return None
        summary = matches[0]
        match_id = summary.get("MatchID")
        if not match_id:
            return None

        details = self.transport.fetch(Domain.PD, f"/match-details/v1/matches/{match_id}", timeout=timeout)
        if not isinstance(details, dict) or details.get("errorCode"):
            return None

        kd, hs = match_stats(subject, details)
        competitive = queue == COMPETITIVE_QUEUE
        return StatsLookup(
            kd=kd,
            headshot_pct=hs,
            ranked_rating_earned=summary.get("RankedRatingEarned") if competitive else None,
            afk_penalty=summary.get("AFKPenalty") if competitive else None,
            queue=queue,
        )

    def get_stats(
        self,
        subject: str,
        queue: str | None = None,
        competitive_only: bool = False,
        timeout: float | None = None,
    ) -> StatsLookup:
        """
        Stats from the player's latest match.

        Competitive-only lookups never fall back to unrated. Otherwise the
        current queue is tried first and the other one second.

        Raises:
            TransportError: Every queue tried failed at the transport level
        """
        key = f"{subject}:competitive-only" if competitive_only else f"{subject}:{queue or ''}"
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        if competitive_only:
            order = [COMPETITIVE_QUEUE]
        elif queue == UNRATED_QUEUE:
            order = [UNRATED_QUEUE, COMPETITIVE_QUEUE]
        else:
            order = [COMPETITIVE_QUEUE, UNRATED_QUEUE]

        last_error: TransportError | None = None
        answered = False
        for candidate in order:
            try:
                result = self._fetch_queue(subject, candidate, timeout)
            except TransportError as e:
                logger.debug(f"Stats lookup for {subject} in {candidate} failed: {e}")
                last_error = e
                continue
            answered = True
            if result is not None and result.populated:
                with self._lock:
                    self._cache[key] = result
                return result

        if last_error is not None and not answered:
            raise last_error
        return EMPTY_STATS
