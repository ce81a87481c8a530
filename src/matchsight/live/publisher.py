"""
Snapshot Publisher: decides whether a freshly built snapshot is worth
sending to the UI.
"""

import logging
from collections.abc import Callable

from matchsight.core.models import SessionState, Snapshot

logger = logging.getLogger(__name__)


def _selection_key(snapshot: Snapshot) -> tuple:
    return tuple((p.subject, p.character_id, p.selection_state) for p in snapshot.players)


def _menu_key(snapshot: Snapshot) -> dict[str, tuple]:
    return {
        p.subject: (p.rank.tier, p.rank.label, p.stats.win_rate, p.stats_fetched)
        for p in snapshot.players
    }


def should_publish(candidate: Snapshot, previous: Snapshot | None) -> bool:
    """
    Publish rules by phase.

    - Always on the first snapshot and on a state change.
    - PREGAME: only when the ordered (subject, agent, selection) tuples, the
      map, the mode or the player count changed.
    - MENUS: on a roster change, or when any player's tier, rank label, win
      rate or stats-fetched flag changed.
    - INGAME: every tick.
    - Other states: state changes only.
    """
    if previous is None or candidate.state is not previous.state:
        return True

    if candidate.state is SessionState.INGAME:
        return True

    if candidate.state is SessionState.PREGAME:
        return (
            _selection_key(candidate) != _selection_key(previous)
            or candidate.context.map != previous.context.map
            or candidate.context.mode != previous.context.mode
            or len(candidate.players) != len(previous.players)
        )

    if candidate.state is SessionState.MENUS:
        before = _menu_key(previous)
        after = _menu_key(candidate)
        if [p.subject for p in candidate.players] != [p.subject for p in previous.players]:
            return True
        return after != before

    return False


class SnapshotPublisher:
    """
    Holds the last snapshot and forwards the ones that matter.

    Suppressed snapshots still replace the retained one, so the next
    comparison is against the newest data.

    Args:
        sink: Fire-and-forget publish callable; must not block
    """

    def __init__(self, sink: Callable[[Snapshot], None]):
        self.sink = sink
        self.last: Snapshot | None = None
        self.published_count = 0
        self.suppressed_count = 0

    def offer(self, snapshot: Snapshot) -> bool:
        """
        Publish ``snapshot`` if it differs from the last one.

        Returns:
            True if it was handed to the sink
        """
        publish = should_publish(snapshot, self.last)
        self.last = snapshot
        if not publish:
            self.suppressed_count += 1
            return False

        self.published_count += 1
        try:
            self.sink(snapshot)
        except Exception as e:
            logger.error(f"Snapshot sink failed: {e}")
        return True

    def reset(self) -> None:
        self.last = None
