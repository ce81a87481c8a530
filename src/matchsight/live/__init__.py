"""
Matchsight Live - the session engine.

This module contains:
- session: Phase detection and the polling loop
- players: Per-player record assembly
- loadouts: Equipped skin resolution
- presence: Presence blob decoding
- publisher: Snapshot de-duplication
- ally_cache: Teammate reuse between agent select and the match
- retry: Failure and patience policy
- push: Phase buffer fed by the notification socket
- service: Loop supervisor
"""

__all__: list[str] = []
