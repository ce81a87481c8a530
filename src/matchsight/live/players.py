"""
Player Record Builder

Turns roster entries into display records. Rank, previous-season rank and
stats for every player are fetched concurrently and settled together; a
failed fetch degrades that one part of that one record. Teammates seen in
agent select are reused from the Ally Cache once the match starts.
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Any

from matchsight.core.constants import COMPETITIVE_QUEUE, Domain
from matchsight.core.errors import TransportError
from matchsight.core.models import (
    MatchContext,
    PlayerRecord,
    RankInfo,
    SessionState,
    SkinInfo,
    StatsInfo,
)
from matchsight.infra.parallel import Settled, settle_all
from matchsight.integrations.names import fallback_name
from matchsight.integrations.rank import RankLookup
from matchsight.integrations.stats import StatsLookup
from matchsight.live.ally_cache import AllyCache
from matchsight.live.presence import PartyMember

logger = logging.getLogger(__name__)

# Phases with a stable queue to attribute stats to
COMPETITIVE_ONLY_STATES = (SessionState.MENUS, SessionState.PREGAME, SessionState.INGAME)


@dataclass(frozen=True)
class RawPlayer:
    """A roster entry as reported by the pregame, core-game or party feed."""

    subject: str
    character_id: str = ""
    team: str | None = None
    selection_state: str = ""
    incognito: bool = False
    hide_account_level: bool = False
    account_level: int | None = None
    player_card_id: str = ""
    party_id: str = ""

    @classmethod
    def from_match(cls, entry: Mapping[str, Any], team: str | None = None, party_id: str = "") -> "RawPlayer":
        """
        From a ``Players`` entry of a pregame or core-game match.

        Match payloads carry no party; ``party_id`` comes from the player's
        presence when they have one.
        """
        identity = entry.get("PlayerIdentity") or {}
        level = identity.get("AccountLevel")
        return cls(
            subject=entry.get("Subject", ""),
            character_id=(entry.get("CharacterID") or "").lower(),
            team=entry.get("TeamID") or team,
            selection_state=entry.get("CharacterSelectionState") or "",
            incognito=bool(identity.get("Incognito", False)),
            hide_account_level=bool(identity.get("HideAccountLevel", False)),
            account_level=int(level) if level else None,
            player_card_id=identity.get("PlayerCardID") or "",
            party_id=party_id,
        )

    @classmethod
    def from_party_member(cls, member: PartyMember) -> "RawPlayer":
        return cls(
            subject=member.subject,
            account_level=member.account_level or None,
            player_card_id=member.player_card_id,
            party_id=member.party_id,
        )


@dataclass
class BuildContext:
    """Everything a tick knows that applies to all of its players."""

    state: SessionState
    match: MatchContext = field(default_factory=MatchContext)
    skins: Mapping[str, SkinInfo] = field(default_factory=dict)
    names: Mapping[str, str] = field(default_factory=dict)
    party_ids: frozenset[str] = frozenset()
    party_id: str = ""
    previous: Mapping[str, PlayerRecord] = field(default_factory=dict)
    season_id: str | None = None
    previous_season_id: str | None = None
    is_lobby: bool = False


def fetch_account_level(transport, subject: str, timeout: float | None = None) -> int:
    """Account level from the player's XP progress."""
    data = transport.fetch(Domain.PD, f"/account-xp/v1/players/{subject}", timeout=timeout)
    progress = data.get("Progress") if isinstance(data, dict) else None
    level = progress.get("Level") if isinstance(progress, dict) else None
    if not isinstance(level, int):
        raise TransportError(f"No account level for {subject}")
    return level


class PlayerRecordBuilder:
    """
    Assembles PlayerRecords for one tick.

    Args:
        transport: Local API transport
        catalog: Catalog used for agent names, images and level borders
        names: NameResolver applying the hiding policy
        ranks: RankService
        stats: StatsService
        executor: Thread pool for the fan-out
        ally_cache: Cache written in PREGAME and read in INGAME
        timeout: Callable returning the current per-request timeout
    """

    def __init__(
        self,
        transport,
        catalog,
        names,
        ranks,
        stats,
        executor: ThreadPoolExecutor,
        ally_cache: AllyCache,
        timeout: Callable[[], float] = lambda: 5.0,
    ):
        self.transport = transport
        self.catalog = catalog
        self.names = names
        self.ranks = ranks
        self.stats = stats
        self.executor = executor
        self.ally_cache = ally_cache
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def _calls_for(self, player: RawPlayer, ctx: BuildContext, timeout: float) -> dict:
        subject = player.subject
        competitive_only = ctx.state in COMPETITIVE_ONLY_STATES
        calls: dict[tuple[str, str], Callable[[], Any]] = {
            (subject, "rank"): partial(self.ranks.get_rank, subject, ctx.season_id, timeout=timeout),
            (subject, "stats"): partial(
                self.stats.get_stats,
                subject,
                queue=ctx.match.queue_id or None,
                competitive_only=competitive_only,
                timeout=timeout,
            ),
        }
        if ctx.previous_season_id:
            calls[(subject, "previous")] = partial(
                self.ranks.get_tier, subject, ctx.previous_season_id, timeout=timeout
            )
        if ctx.state is SessionState.MENUS and not player.account_level:
            calls[(subject, "level")] = partial(fetch_account_level, self.transport, subject, timeout)
        return calls

    def build_all(self, players: Sequence[RawPlayer], ctx: BuildContext) -> list[PlayerRecord]:
        """
        Build records for a roster, in roster order.

        INGAME players with an Ally Cache entry for this match skip the
        fetches entirely; PREGAME players whose fetches all settled cleanly
        are cached under the pregame match id.
        """
        records: dict[str, PlayerRecord] = {}
        pending: list[RawPlayer] = []

        for player in players:
            entry = (
                self.ally_cache.get(player.subject, ctx.match.match_id)
                if ctx.state is SessionState.INGAME
                else None
            )
            if entry is not None:
                records[player.subject] = entry.apply(
                    skin=ctx.skins.get(player.subject),
                    team=player.team,
                    selection_state=player.selection_state,
                )
            else:
                pending.append(player)

        if pending:
            timeout = self.timeout()
            calls: dict = {}
            for player in pending:
                calls.update(self._calls_for(player, ctx, timeout))
            # Stats may chain two requests, rank may consult the content service
            settled = settle_all(calls, self.executor, timeout=timeout * 3)

            for player in pending:
                outcomes = {kind: result for (subject, kind), result in settled.items() if subject == player.subject}
                try:
                    record = self.assemble(player, ctx, outcomes)
                except Exception as e:
                    logger.error(f"Failed to assemble record for {player.subject}: {e}")
                    record = self.minimal_record(player, ctx)
                    outcomes = {}
                if ctx.state is SessionState.PREGAME and outcomes and all(r.ok for r in outcomes.values()):
                    self.ally_cache.store(record, ctx.match.match_id)
                records[player.subject] = record

        return [records[p.subject] for p in players if p.subject in records]

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _identity(self, player: RawPlayer, ctx: BuildContext) -> dict[str, Any]:
        raw_name = ctx.names.get(player.subject) or fallback_name(player.subject)
        name = self.names.display_name(
            raw_name,
            player.subject,
            player.character_id or None,
            ctx.party_ids,
            player.incognito,
        )
        agent_name = self.catalog.agent_name(player.character_id)
        is_member = player.subject in ctx.party_ids
        return {
            "subject": player.subject,
            "name": name,
            "incognito": player.incognito,
            "character_id": player.character_id,
            "agent_name": agent_name,
            "agent_image_url": self.catalog.agent_image(agent_name),
            "hide_account_level": player.hide_account_level,
            "player_card_id": player.player_card_id,
            "team": player.team,
            "selection_state": player.selection_state,
            "is_party_member": is_member,
            "party_id": player.party_id or (ctx.party_id if is_member else ""),
            "is_lobby": ctx.is_lobby,
            "skin": ctx.skins.get(player.subject) or SkinInfo(),
        }

    def assemble(self, player: RawPlayer, ctx: BuildContext, outcomes: Mapping[str, Settled]) -> PlayerRecord:
        """Combine settled fetches into a record, falling back per part."""
        previous = ctx.previous.get(player.subject)

        rank, win_rate, games = self._rank_part(outcomes.get("rank"), previous)
        previous_tier = self._previous_tier(outcomes.get("previous"), previous)
        rank = replace(
            rank,
            previous_tier=previous_tier,
            icon_url=self.catalog.rank_icon(rank.tier),
            peak_icon_url=self.catalog.rank_icon(rank.peak_tier) if rank.peak_tier else None,
        )

        stats, fetched, competitive = self._stats_part(outcomes.get("stats"), previous)
        stats = replace(stats, win_rate=win_rate, games_played=games)

        level = player.account_level or 0
        level_result = outcomes.get("level")
        if level_result is not None and level_result.ok:
            level = level_result.value
        elif not level and previous is not None:
            level = previous.account_level

        return PlayerRecord(
            **self._identity(player, ctx),
            account_level=level,
            level_border_url=self.catalog.level_border(level) if level else None,
            rank=rank,
            stats=stats,
            stats_fetched=fetched,
            has_competitive_stats=competitive,
        )

    def _rank_part(
        self, result: Settled | None, previous: PlayerRecord | None
    ) -> tuple[RankInfo, int | None, int | None]:
        if result is not None and result.ok:
            lookup: RankLookup = result.value
            rank = RankInfo(
                tier=lookup.tier,
                rr=lookup.rr,
                leaderboard=lookup.leaderboard,
                peak_tier=lookup.peak_tier,
                peak_act=lookup.peak_act,
                peak_episode=lookup.peak_episode,
            )
            return rank, lookup.win_rate, lookup.games_played
        if previous is not None:
            return previous.rank, previous.stats.win_rate, previous.stats.games_played
        return RankInfo(), None, None

    def _previous_tier(self, result: Settled | None, previous: PlayerRecord | None) -> int | None:
        if result is not None and result.ok:
            return result.value
        if previous is not None:
            return previous.rank.previous_tier
        return None

    def _stats_part(
        self, result: Settled | None, previous: PlayerRecord | None
    ) -> tuple[StatsInfo, bool | None, bool | None]:
        if result is None:
            return StatsInfo(), None, None

        lookup: StatsLookup | None = result.value if result.ok else None
        if lookup is not None and lookup.populated:
            stats = StatsInfo(
                kd=lookup.kd,
                headshot_pct=lookup.headshot_pct,
                ranked_rating_earned=lookup.ranked_rating_earned,
                afk_penalty=lookup.afk_penalty,
            )
            return stats, True, lookup.queue == COMPETITIVE_QUEUE

        # Empty or failed: keep the last known values rather than zeroing them
        if previous is not None and previous.stats.has_match_stats:
            return previous.stats, False, previous.has_competitive_stats
        return StatsInfo(), False, False

    def minimal_record(self, player: RawPlayer, ctx: BuildContext) -> PlayerRecord:
        """Identity-only record used when assembly itself failed."""
        previous = ctx.previous.get(player.subject)
        try:
            identity = self._identity(player, ctx)
        except Exception as e:
            logger.error(f"Failed to resolve identity for {player.subject}: {e}")
            identity = {"subject": player.subject, "name": fallback_name(player.subject)}
        if previous is not None:
            identity.update(rank=previous.rank, stats=previous.stats)
        return PlayerRecord(**identity, stats_fetched=False)
