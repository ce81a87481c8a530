"""Shared fakes and fixtures: a scripted transport and a small catalog."""

import base64
import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from matchsight.core.config import LiveConfig, PollingConfig
from matchsight.core.errors import TransportError
from matchsight.core.models import ChromaEntry, LevelBorder, SkinCatalogEntry, SkinLevelEntry
from matchsight.infra.process import TargetProbe
from matchsight.integrations.catalog import Catalog, MapImages, WeaponEntry
from matchsight.integrations.client import Descriptor
from matchsight.integrations.content import ContentService
from matchsight.integrations.names import NameResolver
from matchsight.integrations.rank import RankService
from matchsight.integrations.stats import StatsService
from matchsight.live.ally_cache import AllyCache
from matchsight.live.loadouts import LoadoutResolver
from matchsight.live.players import PlayerRecordBuilder
from matchsight.live.publisher import SnapshotPublisher
from matchsight.live.retry import RetryPolicy
from matchsight.live.session import SessionStateMachine

SELF = "self-0000-1111-2222-333333333333"
ALLY = "ally-0000-1111-2222-333333333333"
ENEMY = "enmy-0000-1111-2222-333333333333"

JETT = "add6443a-41bd-e414-f6ad-e58d267f4e95"
SOVA = "320b2a48-4d9b-a075-30f1-1f93a9b638fa"
OMEN = "8e253930-4c05-31dd-1b6c-968525494517"

VANDAL = "9c82e19d-4575-0200-1a81-3eacf00cf872"
PRIME_SKIN = "prime-vandal-skin"
PRIME_BLUE = "prime-vandal-chroma-blue"
PRIME_LEVEL = "prime-vandal-level-2"

ASCENT_ID = "/Game/Maps/Ascent/Ascent"

SEASONS = [
    {"ID": "ep-1", "Type": "episode", "Name": "EPISODE 1", "IsActive": True},
    {"ID": "act-old", "Type": "act", "Name": "ACT I", "StartTime": "t0", "EndTime": "t1"},
    {"ID": "act-cur", "Type": "act", "Name": "ACT II", "StartTime": "t1", "EndTime": "t2", "IsActive": True},
]


def encode_presence(phase=None, party_id="party-1", queue_id="competitive", level=0, **extra):
    """Base64 presence blob as the local API sends it."""
    data = {
        "isValid": True,
        "matchPresenceData": {"sessionLoopState": phase, "queueId": queue_id},
        "partyPresenceData": {"partyId": party_id, "partyState": "DEFAULT"},
        "playerPresenceData": {"accountLevel": level},
    }
    data.update(extra)
    return base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")


def presence_entry(subject, phase=None, **kwargs):
    return {"puuid": subject, "product": "valorant", "private": encode_presence(phase, **kwargs)}


def mmr_response(tier=15, rr=40, games=10, wins=6, previous_tier=12):
    return {
        "QueueSkills": {
            "competitive": {
                "SeasonalInfoBySeasonID": {
                    "act-cur": {
                        "CompetitiveTier": tier,
                        "RankedRating": rr,
                        "NumberOfGames": games,
                        "NumberOfWinsWithPlacements": wins,
                        "WinsByTier": {str(tier): 1},
                    },
                    "act-old": {"CompetitiveTier": previous_tier, "WinsByTier": {str(previous_tier): 1}},
                }
            }
        }
    }


class FakeTransport:
    """
    Scripted local API.

    ``routes`` maps a path (query string ignored) to a response, an exception
    to raise, or a zero-argument callable.
    """

    def __init__(self, subject=SELF):
        self.subject = subject
        self.present = True
        self.presences = []
        self.routes = {}
        self.calls = []

    def descriptor(self):
        return Descriptor(present=self.present)

    def presence(self, timeout=None):
        self.calls.append(("local", "/chat/v4/presences"))
        if isinstance(self.presences, Exception):
            raise self.presences
        return self.presences

    def fetch(self, domain, path, method="GET", json=None, timeout=None):
        key = path.split("?")[0]
        self.calls.append((str(domain), key))
        if key not in self.routes:
            raise TransportError(f"No route for {key}", status_code=500)
        response = self.routes[key]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return response

    def count(self, path):
        return sum(1 for _, called in self.calls if called == path)

    def network_calls(self):
        return len(self.calls)

    # ------------------------------------------------------------------
    # Scripting helpers
    # ------------------------------------------------------------------

    def add_player(self, subject, name="Player", tag="0000", tier=15, level=30, stats=True):
        self.routes[f"/mmr/v1/players/{subject}"] = mmr_response(tier=tier)
        self.routes[f"/account-xp/v1/players/{subject}"] = {"Progress": {"Level": level}}
        updates = f"/mmr/v1/players/{subject}/competitiveupdates"
        if stats:
            match_id = f"last-{subject[:4]}"
            self.routes[updates] = {"Matches": [{"MatchID": match_id, "RankedRatingEarned": 18, "AFKPenalty": 0}]}
            self.routes[f"/match-details/v1/matches/{match_id}"] = {
                "players": [{"subject": subject, "stats": {"kills": 20, "deaths": 10}}],
                "roundResults": [
                    {"playerStats": [{"subject": subject, "damage": [{"headshots": 5, "bodyshots": 10, "legshots": 5}]}]}
                ],
            }
        else:
            self.routes[updates] = {"Matches": []}
        names = self.routes.setdefault("/name-service/v2/players", [])
        names.append({"Subject": subject, "GameName": name, "TagLine": tag})

    def set_content(self, seasons=None):
        self.routes["/content-service/v3/content"] = {"Seasons": seasons if seasons is not None else SEASONS}

    def set_pregame(self, match_id="pre-1", players=None, loadouts=None):
        self.routes[f"/pregame/v1/players/{self.subject}"] = {"MatchID": match_id}
        self.routes[f"/pregame/v1/matches/{match_id}"] = {
            "ID": match_id,
            "MapID": ASCENT_ID,
            "QueueID": "competitive",
            "Teams": [{"TeamID": "Blue"}],
            "AllyTeam": {"Players": players or []},
        }
        self.routes[f"/pregame/v1/matches/{match_id}/loadouts"] = {"Loadouts": loadouts or []}

    def set_no_pregame(self):
        self.routes[f"/pregame/v1/players/{self.subject}"] = {
            "httpStatus": 404,
            "errorCode": "RESOURCE_NOT_FOUND",
        }

    def set_coregame(self, match_id="core-1", players=None, loadouts=None):
        self.routes[f"/core-game/v1/players/{self.subject}"] = {"MatchID": match_id}
        self.routes[f"/core-game/v1/matches/{match_id}"] = {
            "MatchID": match_id,
            "MapID": ASCENT_ID,
            "Players": players or [],
        }
        self.routes[f"/core-game/v1/matches/{match_id}/loadouts"] = {"Loadouts": loadouts or []}

    def set_no_coregame(self):
        self.routes[f"/core-game/v1/players/{self.subject}"] = {
            "httpStatus": 404,
            "errorCode": "RESOURCE_NOT_FOUND",
        }


def vandal_items(skin=PRIME_SKIN, chroma=PRIME_BLUE, level=PRIME_LEVEL):
    from matchsight.core.constants import CHROMA_SOCKET, LEVEL_SOCKET, SKIN_SOCKET

    return {
        VANDAL: {
            "ID": VANDAL,
            "Sockets": {
                SKIN_SOCKET: {"ID": SKIN_SOCKET, "Item": {"ID": skin}},
                CHROMA_SOCKET: {"ID": CHROMA_SOCKET, "Item": {"ID": chroma}},
                LEVEL_SOCKET: {"ID": LEVEL_SOCKET, "Item": {"ID": level}},
            },
        }
    }


def make_catalog():
    prime = SkinCatalogEntry(
        uuid=PRIME_SKIN,
        display_name="Prime Vandal",
        display_icon="prime.png",
        chromas=(
            ChromaEntry(uuid=PRIME_BLUE, display_name="Prime Vandal (Variant 2 Blue)", full_render="prime-blue.png"),
        ),
        levels=(SkinLevelEntry(uuid=PRIME_LEVEL, display_name="Prime Vandal Level 2"),),
    )
    return Catalog(
        agents={JETT: "Jett", SOVA: "Sova", OMEN: "Omen"},
        agent_images={"Jett": "jett.png", "Sova": "sova.png", "Omen": "omen.png"},
        maps={ASCENT_ID.lower(): "Ascent"},
        map_images={"ascent": MapImages(splash="ascent-splash.png", stylized="ascent-stylized.png")},
        weapons=(WeaponEntry(uuid=VANDAL, display_name="Vandal"),),
        skins={PRIME_SKIN: prime},
        rank_icons={15: "gold1.png"},
        level_borders=(LevelBorder(40, "border-a"), LevelBorder(20, "border-b"), LevelBorder(0, "border-c")),
    )


class Harness:
    """A SessionStateMachine over fakes, plus what it published."""

    def __init__(self, transport, catalog, settings=None, polling=None, push=None, process_running=False):
        self.transport = transport
        self.published = []
        self.phases = []
        self.sleeps = []
        self.process_running = process_running
        self.settings = settings or LiveConfig()
        self.executor = ThreadPoolExecutor(max_workers=4)

        polling = polling or PollingConfig()
        retry = RetryPolicy(
            failure_threshold=polling.failure_threshold,
            max_patience=polling.max_patience,
            base_timeout=polling.fetch_timeout,
            timeout_step=polling.timeout_step,
            max_timeout=polling.max_timeout,
        )
        content = ContentService(transport)
        names = NameResolver(transport, hide_names=True, agent_names=catalog.agents)
        ranks = RankService(transport, content)
        stats = StatsService(transport)
        builder = PlayerRecordBuilder(
            transport, catalog, names, ranks, stats, self.executor, AllyCache(), timeout=retry.timeout
        )
        self.machine = SessionStateMachine(
            transport=transport,
            catalog=catalog,
            probe=TargetProbe(
                lambda: transport.present,
                "Valorant.exe",
                process_check=lambda name: self.process_running,
            ),
            content=content,
            ranks=ranks,
            stats=stats,
            names=names,
            loadouts=LoadoutResolver(transport, catalog),
            builder=builder,
            publisher=SnapshotPublisher(self.published.append),
            push=push,
            settings=lambda: self.settings,
            polling=polling,
            retry=retry,
            on_phase_change=lambda previous, current: self.phases.append((previous, current)),
            sleep=self.sleeps.append,
            clock=lambda: 0.0,
        )

    @property
    def state(self):
        return self.machine.state

    def tick(self, times=1):
        for _ in range(times):
            self.machine.tick()
        return self.machine.state

    def close(self):
        self.executor.shutdown(wait=True)


@pytest.fixture
def catalog():
    return make_catalog()


@pytest.fixture
def transport():
    fake = FakeTransport()
    fake.set_content()
    return fake


@pytest.fixture
def harness(transport, catalog):
    h = Harness(transport, catalog)
    yield h
    h.close()
