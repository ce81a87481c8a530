"""
Ally Cache: teammates' rank and stats computed during agent select, reused
once the match starts so the same lookups are not repeated.

Entries belong to one match. They are stored under the pregame match id and
only handed out for that same id, so a record from an earlier match is never
spliced into a later one, even across a disconnect.

Written only while processing PREGAME and read while processing INGAME, both
on the loop thread, so no locking is needed.
"""

import logging

from matchsight.core.models import AllyCacheEntry, PlayerRecord

logger = logging.getLogger(__name__)


class AllyCache:
    """Player id -> AllyCacheEntry, for a single match."""

    def __init__(self):
        self._entries: dict[str, AllyCacheEntry] = {}
        self.match_id: str | None = None

    def store(self, record: PlayerRecord, match_id: str | None = None) -> AllyCacheEntry:
        """Cache ``record`` for ``match_id``; entries of any other match are dropped first."""
        if match_id != self.match_id:
            self.clear()
            self.match_id = match_id
        entry = AllyCacheEntry.from_record(record)
        self._entries[record.subject] = entry
        return entry

    def get(self, subject: str, match_id: str | None = None) -> AllyCacheEntry | None:
        if match_id != self.match_id:
            return None
        return self._entries.get(subject)

    def retain(self, match_id: str) -> None:
        """Keep the entries only if they were stored for ``match_id``."""
        if self._entries and self.match_id != match_id:
            logger.info(f"Dropping allies cached for match {self.match_id}; now in {match_id}")
            self.clear()

    def clear(self) -> None:
        if self._entries:
            logger.debug(f"Clearing {len(self._entries)} cached allies")
        self._entries.clear()
        self.match_id = None

    def __contains__(self, subject: object) -> bool:
        return subject in self._entries

    def __len__(self) -> int:
        return len(self._entries)
