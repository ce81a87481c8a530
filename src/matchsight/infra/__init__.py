"""
Matchsight Infrastructure - threading and system helpers.

This module contains:
- parallel: Settle-all fan-out over a thread pool
- process: Game process and lockfile checks
- channel: Non-blocking snapshot publishing to callbacks
"""

__all__: list[str] = []
