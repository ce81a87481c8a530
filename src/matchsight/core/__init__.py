"""
Matchsight Core - shared types and settings.

This module contains:
- constants: Rank names, game modes, loadout sockets, default cadences
- config: Configuration dataclasses and loaders
- models: Session state, snapshots and player records
- errors: Exception taxonomy
"""

from matchsight.core.errors import DecodeError, MatchsightError, TransportDisconnected, TransportError
from matchsight.core.models import (
    AllyCacheEntry,
    MatchContext,
    PlayerRecord,
    RankInfo,
    SessionState,
    SkinInfo,
    Snapshot,
    StatsInfo,
)

__all__ = [
    "AllyCacheEntry",
    "DecodeError",
    "MatchContext",
    "MatchsightError",
    "PlayerRecord",
    "RankInfo",
    "SessionState",
    "SkinInfo",
    "Snapshot",
    "StatsInfo",
    "TransportDisconnected",
    "TransportError",
]
