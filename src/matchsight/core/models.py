"""
Data model for live match snapshots.

Records are frozen dataclasses: a Snapshot is built once per tick and handed
to the publish boundary as-is. Numeric stats stay Optional internally so a
confirmed zero can be told apart from a fetch that never landed; the render
sentinels are only applied in ``to_dict``.
"""

from dataclasses import asdict, dataclass, field, replace
from enum import StrEnum
from typing import Any

from matchsight.core.constants import rank_label

# ============================================================================
# Session state
# ============================================================================


class SessionState(StrEnum):
    """Mutually exclusive phases of the game client."""

    NOT_RUNNING = "NOT_RUNNING"
    DISCONNECTED = "DISCONNECTED"
    MENUS = "MENUS"
    PREGAME = "PREGAME"
    INGAME = "INGAME"

    @classmethod
    def from_phase(cls, phase: str | None) -> "SessionState | None":
        """Map a presence ``sessionLoopState`` string to a state."""
        if not phase:
            return None
        try:
            state = cls(phase.upper())
        except ValueError:
            return None
        return state if state.is_reachable else None

    @property
    def is_reachable(self) -> bool:
        """True for the phases that need a live local API."""
        return self in (SessionState.MENUS, SessionState.PREGAME, SessionState.INGAME)


# ============================================================================
# Match context
# ============================================================================


@dataclass(frozen=True)
class MatchContext:
    """What the session is attached to right now."""

    match_id: str | None = None
    queue_id: str = ""
    mode: str = ""
    map: str = ""
    map_image_url: str | None = None

    @property
    def has_match(self) -> bool:
        return bool(self.match_id) and self.match_id != "0"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ============================================================================
# Player records
# ============================================================================


@dataclass(frozen=True)
class RankInfo:
    """Competitive standing for one player."""

    tier: int = 0
    rr: int = 0
    leaderboard: int = 0
    peak_tier: int = 0
    peak_act: str | None = None
    peak_episode: str | None = None
    previous_tier: int | None = None
    icon_url: str | None = None
    peak_icon_url: str | None = None

    @property
    def label(self) -> str:
        return rank_label(self.tier)

    @property
    def peak_label(self) -> str:
        return rank_label(self.peak_tier)

    @property
    def previous_label(self) -> str:
        return rank_label(self.previous_tier)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier,
            "label": self.label,
            "rr": self.rr,
            "leaderboard": self.leaderboard,
            "peak_tier": self.peak_tier,
            "peak_label": self.peak_label,
            "peak_act": self.peak_act,
            "peak_episode": self.peak_episode,
            "previous_label": self.previous_label,
            "icon_url": self.icon_url,
            "peak_icon_url": self.peak_icon_url,
        }


@dataclass(frozen=True)
class StatsInfo:
    """Recent performance; every field is None until a fetch fills it."""

    kd: float | None = None
    headshot_pct: int | None = None
    win_rate: int | None = None
    games_played: int | None = None
    ranked_rating_earned: int | None = None
    afk_penalty: int | None = None

    @property
    def has_match_stats(self) -> bool:
        return self.kd is not None or self.headshot_pct is not None

    @property
    def is_empty(self) -> bool:
        return all(value is None for value in asdict(self).values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "kd": self.kd if self.kd is not None else 0,
            "headshot_pct": self.headshot_pct if self.headshot_pct is not None else 0,
            "win_rate": self.win_rate,
            "games_played": self.games_played if self.games_played is not None else 0,
            "ranked_rating_earned": (
                self.ranked_rating_earned if self.ranked_rating_earned is not None else "N/A"
            ),
            "afk_penalty": self.afk_penalty if self.afk_penalty is not None else "N/A",
        }


@dataclass(frozen=True)
class SkinInfo:
    """Equipped cosmetic for the selected weapon."""

    name: str = ""
    variant: str | None = None
    level: str | None = None
    image_url: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.name

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PlayerRecord:
    """One row of a published snapshot."""

    subject: str
    name: str = ""
    incognito: bool = False
    character_id: str = ""
    agent_name: str = ""
    agent_image_url: str | None = None
    account_level: int = 0
    hide_account_level: bool = False
    player_card_id: str = ""
    level_border_url: str | None = None
    rank: RankInfo = field(default_factory=RankInfo)
    stats: StatsInfo = field(default_factory=StatsInfo)
    skin: SkinInfo = field(default_factory=SkinInfo)
    team: str | None = None
    selection_state: str = ""
    is_party_member: bool = False
    party_id: str = ""
    is_lobby: bool = False
    # None: not attempted, False: attempted and empty or failed, True: populated
    stats_fetched: bool | None = None
    has_competitive_stats: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "name": self.name,
            "incognito": self.incognito,
            "character_id": self.character_id,
            "agent_name": self.agent_name,
            "agent_image_url": self.agent_image_url,
            "account_level": self.account_level,
            "hide_account_level": self.hide_account_level,
            "player_card_id": self.player_card_id,
            "level_border_url": self.level_border_url,
            "rank": self.rank.to_dict(),
            "stats": self.stats.to_dict(),
            "skin": self.skin.to_dict(),
            "team": self.team,
            "selection_state": self.selection_state,
            "is_party_member": self.is_party_member,
            "party_id": self.party_id,
            "is_lobby": self.is_lobby,
            "stats_fetched": self.stats_fetched,
            "has_competitive_stats": self.has_competitive_stats,
        }


@dataclass(frozen=True)
class AllyCacheEntry:
    """A PlayerRecord without its match-local fields (skin, team, selection)."""

    record: PlayerRecord

    @classmethod
    def from_record(cls, record: PlayerRecord) -> "AllyCacheEntry":
        return cls(record=replace(record, skin=SkinInfo(), team=None, selection_state=""))

    @property
    def subject(self) -> str:
        return self.record.subject

    def apply(
        self,
        skin: SkinInfo | None = None,
        team: str | None = None,
        selection_state: str = "",
    ) -> PlayerRecord:
        """Splice fresh match-local fields onto the cached record."""
        return replace(
            self.record,
            skin=skin or SkinInfo(),
            team=team,
            selection_state=selection_state,
            is_lobby=False,
        )


# ============================================================================
# Snapshot
# ============================================================================


@dataclass(frozen=True)
class Snapshot:
    """One published view of the session."""

    context: MatchContext
    state: SessionState
    players: tuple[PlayerRecord, ...] = ()
    is_lobby: bool = False

    def player(self, subject: str) -> PlayerRecord | None:
        for record in self.players:
            if record.subject == subject:
                return record
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "is_lobby": self.is_lobby,
            "context": self.context.to_dict(),
            "players": [p.to_dict() for p in self.players],
        }


# ============================================================================
# Catalog entries
# ============================================================================


def _dict_items(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


@dataclass(frozen=True)
class ChromaEntry:
    uuid: str
    display_name: str = ""
    full_render: str | None = None
    display_icon: str | None = None


@dataclass(frozen=True)
class SkinLevelEntry:
    uuid: str
    display_name: str | None = None
    display_icon: str | None = None


@dataclass(frozen=True)
class SkinCatalogEntry:
    """A weapon skin with its colorways and upgrade levels."""

    uuid: str
    display_name: str
    display_icon: str | None = None
    chromas: tuple[ChromaEntry, ...] = ()
    levels: tuple[SkinLevelEntry, ...] = ()

    def chroma(self, uuid: str | None) -> ChromaEntry | None:
        if not uuid:
            return None
        wanted = uuid.lower()
        for chroma in self.chromas:
            if chroma.uuid.lower() == wanted:
                return chroma
        return None

    def level(self, uuid: str | None) -> SkinLevelEntry | None:
        if not uuid:
            return None
        wanted = uuid.lower()
        for level in self.levels:
            if level.uuid.lower() == wanted:
                return level
        return None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "SkinCatalogEntry":
        """Build an entry from a catalog service ``weapons/skins`` item."""
        return cls(
            uuid=str(data.get("uuid", "")),
            display_name=data.get("displayName") or "",
            display_icon=data.get("displayIcon"),
            chromas=tuple(
                ChromaEntry(
                    uuid=str(c.get("uuid", "")),
                    display_name=c.get("displayName") or "",
                    full_render=c.get("fullRender"),
                    display_icon=c.get("displayIcon"),
                )
                for c in _dict_items(data.get("chromas"))
            ),
            levels=tuple(
                SkinLevelEntry(
                    uuid=str(lv.get("uuid", "")),
                    display_name=lv.get("displayName"),
                    display_icon=lv.get("displayIcon"),
                )
                for lv in _dict_items(data.get("levels"))
            ),
        )


@dataclass(frozen=True)
class LevelBorder:
    """Account-level border; ``threshold`` is the first level it applies to."""

    threshold: int
    image_url: str
