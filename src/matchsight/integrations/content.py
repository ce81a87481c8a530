"""
Season content: which act is current, which one came before it, and the
act/episode numbers shown next to a peak rank.
"""

import logging
import re
import threading
from typing import Any

from matchsight.core.constants import Domain
from matchsight.core.errors import TransportError

logger = logging.getLogger(__name__)

CONTENT_ENDPOINT = "/content-service/v3/content"

ROMAN_VALUES = {"I": 1, "V": 5, "X": 10, "L": 50, "C": 100}


def roman_to_int(roman: str) -> int | None:
    """Convert a roman numeral; None when it contains other characters."""
    if not roman:
        return None
    total = 0
    previous = 0
    for char in reversed(roman.upper()):
        value = ROMAN_VALUES.get(char)
        if value is None:
            return None
        if value < previous:
            total -= value
        else:
            total += value
        previous = value
    return total


def _has_letter_and_digit(text: str) -> bool:
    return bool(re.search(r"[a-zA-Z]", text)) and bool(re.search(r"\d", text))


def parse_season_number(name: str) -> str | None:
    """
    Number of an act or episode from its display name.

    "ACT III" -> "3", "EPISODE 5" -> "5", "EPISODE V25" -> "v25".
    """
    if not name:
        return None
    number = name.split(" ")[-1]

    if _has_letter_and_digit(number):
        return number.lower()

    if name.startswith("EPISODE"):
        if number.isdigit():
            return str(int(number))
        value = roman_to_int(number)
    elif name.startswith("ACT"):
        value = roman_to_int(number)
        if value is None and number.isdigit():
            value = int(number)
    else:
        value = None
    return str(value) if value is not None else None


def current_season_id(seasons: list[dict[str, Any]]) -> str | None:
    for season in seasons:
        if season.get("IsActive") and season.get("Type") == "act":
            return season.get("ID")
    return None


def previous_season_id(seasons: list[dict[str, Any]]) -> str | None:
    """The act that ended when the current act started."""
    current = None
    for season in seasons:
        if season.get("IsActive") and season.get("Type") == "act":
            current = season
    if current is None:
        return None
    for season in seasons:
        if season.get("Type") == "act" and season.get("EndTime") == current.get("StartTime"):
            return season.get("ID")
    return None


def act_episode(seasons: list[dict[str, Any]], act_id: str) -> tuple[str | None, str | None]:
    """
    Act and episode numbers for an act id.

    Seasons are listed episode first, then its acts, so the episode is the
    last episode seen before the act; it is only confirmed once the next
    episode starts.
    """
    act = None
    episode = None
    if not seasons or not act_id:
        return act, episode

    found = False
    current_episode = seasons[0]
    for season in seasons:
        if str(season.get("ID", "")).lower() == act_id.lower():
            act = parse_season_number(season.get("Name") or "")
            found = True
        if found and season.get("Type") == "episode":
            episode = parse_season_number(current_episode.get("Name") or "")
            break
        if season.get("Type") == "episode":
            current_episode = season
    return act, episode


class ContentService:
    """Caches the season list from the shared content service."""

    def __init__(self, transport):
        self.transport = transport
        self._seasons: list[dict[str, Any]] | None = None
        self._lock = threading.Lock()

    def seasons(self) -> list[dict[str, Any]]:
        with self._lock:
            if self._seasons is not None:
                return self._seasons
        try:
            data = self.transport.fetch(Domain.SHARED, CONTENT_ENDPOINT)
        except TransportError as e:
            logger.warning(f"Content service unavailable: {e}")
            return []
        seasons = data.get("Seasons") if isinstance(data, dict) else None
        if not isinstance(seasons, list):
            logger.warning("Content service returned no seasons")
            return []
        with self._lock:
            self._seasons = seasons
        return seasons

    def refresh(self) -> None:
        with self._lock:
            self._seasons = None

    def current_season_id(self) -> str | None:
        return current_season_id(self.seasons())

    def previous_season_id(self) -> str | None:
        return previous_season_id(self.seasons())

    def act_episode(self, act_id: str) -> tuple[str | None, str | None]:
        return act_episode(self.seasons(), act_id)
