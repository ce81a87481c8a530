"""Tests for player record assembly."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest

from matchsight.core.errors import TransportError
from matchsight.core.models import MatchContext, PlayerRecord, RankInfo, SessionState, SkinInfo, StatsInfo
from matchsight.integrations.names import NameResolver, fallback_name
from matchsight.integrations.rank import RankLookup
from matchsight.integrations.stats import EMPTY_STATS, StatsLookup
from matchsight.live.ally_cache import AllyCache
from matchsight.live.players import BuildContext, PlayerRecordBuilder, RawPlayer, fetch_account_level

from conftest import ALLY, ENEMY, JETT, SELF, FakeTransport


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def ranks():
    service = MagicMock()
    service.get_rank.return_value = RankLookup(tier=15, rr=40, peak_tier=18, win_rate=55, games_played=20)
    service.get_tier.return_value = 12
    return service


@pytest.fixture
def stats():
    service = MagicMock()
    service.get_stats.return_value = StatsLookup(kd=1.25, headshot_pct=22, ranked_rating_earned=-14, queue="competitive")
    return service


@pytest.fixture
def transport():
    fake = FakeTransport()
    fake.routes[f"/account-xp/v1/players/{ALLY}"] = {"Progress": {"Level": 33}}
    return fake


@pytest.fixture
def builder(transport, catalog, ranks, stats, executor):
    names = NameResolver(transport, hide_names=True, agent_names=catalog.agents)
    return PlayerRecordBuilder(transport, catalog, names, ranks, stats, executor, AllyCache(), timeout=lambda: 1.0)


def context(state, **kwargs):
    kwargs.setdefault("season_id", "act-cur")
    kwargs.setdefault("previous_season_id", "act-old")
    return BuildContext(state=state, match=MatchContext(queue_id="competitive"), **kwargs)


class TestRawPlayer:
    def test_from_match(self):
        player = RawPlayer.from_match(
            {
                "Subject": ENEMY,
                "CharacterID": JETT.upper(),
                "CharacterSelectionState": "locked",
                "PlayerIdentity": {"AccountLevel": 120, "Incognito": True, "HideAccountLevel": True},
            },
            team="Blue",
            party_id="p9",
        )
        assert player.character_id == JETT
        assert player.team == "Blue"
        assert player.party_id == "p9"
        assert player.incognito
        assert player.hide_account_level
        assert player.account_level == 120

    def test_team_from_entry_wins(self):
        assert RawPlayer.from_match({"Subject": ENEMY, "TeamID": "Red"}, team="Blue").team == "Red"


class TestBuildAll:
    """Tests for PlayerRecordBuilder.build_all."""

    def test_full_record(self, builder):
        ctx = context(SessionState.PREGAME, names={SELF: "Me#EUW"}, skins={SELF: SkinInfo(name="Prime")})
        player = RawPlayer(subject=SELF, character_id=JETT, account_level=25, team="Blue")

        [record] = builder.build_all([player], ctx)

        assert record.name == "Me#EUW"
        assert record.agent_name == "Jett"
        assert record.agent_image_url == "jett.png"
        assert record.rank.tier == 15
        assert record.rank.peak_tier == 18
        assert record.rank.previous_tier == 12
        assert record.rank.icon_url == "gold1.png"
        assert record.rank.peak_icon_url is None
        assert record.stats.kd == 1.25
        assert record.stats.win_rate == 55
        assert record.stats.games_played == 20
        assert record.stats.ranked_rating_earned == -14
        assert record.stats_fetched is True
        assert record.has_competitive_stats is True
        assert record.level_border_url == "border-b"
        assert record.skin.name == "Prime"

    def test_roster_order_is_kept(self, builder):
        players = [RawPlayer(subject=s) for s in (ENEMY, SELF, ALLY)]
        records = builder.build_all(players, context(SessionState.INGAME))
        assert [r.subject for r in records] == [ENEMY, SELF, ALLY]

    def test_failures_degrade_to_defaults(self, builder, ranks, stats):
        ranks.get_rank.side_effect = TransportError("down")
        ranks.get_tier.side_effect = TransportError("down")
        stats.get_stats.side_effect = TransportError("down")

        [record] = builder.build_all([RawPlayer(subject=SELF)], context(SessionState.INGAME))

        assert record.name == fallback_name(SELF)
        assert record.rank == RankInfo()
        assert record.stats == StatsInfo()
        assert record.stats_fetched is False
        assert record.has_competitive_stats is False
        assert record.to_dict()["stats"]["ranked_rating_earned"] == "N/A"
        assert record.to_dict()["rank"]["label"] == "Unranked"

    def test_failures_keep_last_known_values(self, builder, ranks, stats):
        ranks.get_rank.side_effect = TransportError("down")
        ranks.get_tier.side_effect = TransportError("down")
        stats.get_stats.return_value = EMPTY_STATS
        previous = PlayerRecord(
            subject=SELF,
            rank=RankInfo(tier=20, rr=75, previous_tier=19),
            stats=StatsInfo(kd=1.8, headshot_pct=30, win_rate=51, games_played=40),
            has_competitive_stats=True,
        )

        [record] = builder.build_all([RawPlayer(subject=SELF)], context(SessionState.INGAME, previous={SELF: previous}))

        assert record.rank.tier == 20
        assert record.rank.previous_tier == 19
        assert record.stats.kd == 1.8
        assert record.stats.win_rate == 51
        assert record.stats_fetched is False
        assert record.has_competitive_stats is True

    def test_no_match_history(self, builder, stats):
        stats.get_stats.return_value = EMPTY_STATS

        [record] = builder.build_all([RawPlayer(subject=SELF)], context(SessionState.MENUS))

        assert record.stats.kd is None
        assert record.stats_fetched is False
        assert record.to_dict()["stats"]["kd"] == 0

    def test_unranked_season_without_previous(self, builder, ranks):
        ctx = context(SessionState.INGAME, previous_season_id=None)
        builder.build_all([RawPlayer(subject=SELF)], ctx)
        ranks.get_tier.assert_not_called()


class TestAccountLevel:
    def test_menus_fetch_missing_level(self, builder):
        [record] = builder.build_all([RawPlayer(subject=ALLY)], context(SessionState.MENUS, is_lobby=True))
        assert record.account_level == 33
        assert record.level_border_url == "border-b"
        assert record.is_lobby

    def test_known_level_is_not_fetched(self, builder, transport):
        builder.build_all([RawPlayer(subject=ALLY, account_level=7)], context(SessionState.MENUS))
        assert transport.count(f"/account-xp/v1/players/{ALLY}") == 0

    def test_failed_level_keeps_previous(self, builder):
        previous = PlayerRecord(subject=SELF, account_level=88)
        [record] = builder.build_all(
            [RawPlayer(subject=SELF)], context(SessionState.MENUS, previous={SELF: previous})
        )
        assert record.account_level == 88
        assert record.level_border_url == "border-a"

    def test_no_level_no_border(self, builder):
        [record] = builder.build_all([RawPlayer(subject=SELF)], context(SessionState.INGAME))
        assert record.account_level == 0
        assert record.level_border_url is None

    def test_fetch_account_level(self, transport):
        assert fetch_account_level(transport, ALLY) == 33
        transport.routes[f"/account-xp/v1/players/{SELF}"] = {"Progress": {}}
        with pytest.raises(TransportError):
            fetch_account_level(transport, SELF)


class TestAllyCacheUse:
    """Tests for the agent-select cache."""

    def test_pregame_stores_clean_records(self, builder):
        builder.build_all([RawPlayer(subject=ALLY, team="Blue")], context(SessionState.PREGAME))
        entry = builder.ally_cache.get(ALLY)
        assert entry is not None
        assert entry.record.team is None

    def test_pregame_failure_is_not_cached(self, builder, ranks):
        ranks.get_rank.side_effect = TransportError("down")
        builder.build_all([RawPlayer(subject=ALLY)], context(SessionState.PREGAME))
        assert ALLY not in builder.ally_cache

    def test_ingame_uses_cache_without_fetching(self, builder, ranks, stats):
        builder.ally_cache.store(PlayerRecord(subject=ALLY, name="Friend#1", rank=RankInfo(tier=9)))
        ctx = context(SessionState.INGAME, skins={ALLY: SkinInfo(name="Reaver")})

        [record] = builder.build_all([RawPlayer(subject=ALLY, team="Blue")], ctx)

        ranks.get_rank.assert_not_called()
        stats.get_stats.assert_not_called()
        assert record.rank.tier == 9
        assert record.skin.name == "Reaver"
        assert record.team == "Blue"

    def test_ingame_ignores_cache_of_other_match(self, builder, ranks):
        builder.ally_cache.store(PlayerRecord(subject=ALLY, rank=RankInfo(tier=9)), "match-a")
        ctx = BuildContext(
            state=SessionState.INGAME,
            match=MatchContext(match_id="match-b", queue_id="competitive"),
            season_id="act-cur",
        )

        [record] = builder.build_all([RawPlayer(subject=ALLY)], ctx)

        assert record.rank.tier == 15
        ranks.get_rank.assert_called_once()

    def test_menus_never_reads_cache(self, builder, ranks):
        builder.ally_cache.store(PlayerRecord(subject=ALLY, rank=RankInfo(tier=9)))
        [record] = builder.build_all([RawPlayer(subject=ALLY)], context(SessionState.MENUS))
        assert record.rank.tier == 15
        ranks.get_rank.assert_called_once()


class TestNameHiding:
    def test_incognito_outside_party(self, builder):
        ctx = context(SessionState.INGAME, names={ENEMY: "Secret#1"})
        [record] = builder.build_all([RawPlayer(subject=ENEMY, character_id=JETT, incognito=True)], ctx)
        assert record.name == "Jett"

    def test_incognito_party_member(self, builder):
        ctx = context(SessionState.INGAME, names={ALLY: "Friend#1"}, party_ids=frozenset({SELF, ALLY}), party_id="p1")
        [record] = builder.build_all([RawPlayer(subject=ALLY, character_id=JETT, incognito=True)], ctx)
        assert record.name == "Friend#1"
        assert record.is_party_member
        assert record.party_id == "p1"
