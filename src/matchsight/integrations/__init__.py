"""
Matchsight Integrations - the game client and the services behind it.

This module contains:
- client: Lockfile discovery and authenticated requests
- catalog: Static game data (agents, maps, weapons, skins, borders)
- content: Seasons, acts and episodes
- names: Riot ID lookup and name hiding
- rank: Current, previous and peak competitive rank
- stats: Recent match kd and headshot rate
"""

__all__: list[str] = []
