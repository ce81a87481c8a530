"""
Matchsight Catalog

Static reference data (agents, maps, weapons, skins, competitive tiers and
level borders) from the public catalog service. ``CatalogProvider`` never
raises: a failed endpoint degrades to empty data and the rest of the
catalog still loads. ``Catalog`` is built once and only read afterwards, so
worker threads share it without locking.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, TypeVar

import requests

from matchsight.core.constants import CATALOG_API_BASE, FALLBACK_AGENTS, PREMIER_QUEUE
from matchsight.core.models import LevelBorder, SessionState, SkinCatalogEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


def _records(data: Any) -> list[dict[str, Any]]:
    """Object items of a list payload; anything else reads as absent."""
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class WeaponEntry:
    uuid: str
    display_name: str


@dataclass(frozen=True)
class MapImages:
    """Artwork for one map."""

    splash: str | None = None
    stylized: str | None = None
    premier: str | None = None


@dataclass(frozen=True)
class Catalog:
    """Read-only lookup tables."""

    agents: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    agent_images: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    maps: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    map_images: Mapping[str, MapImages] = field(default_factory=lambda: _frozen({}))
    weapons: tuple[WeaponEntry, ...] = ()
    skins: Mapping[str, SkinCatalogEntry] = field(default_factory=lambda: _frozen({}))
    rank_icons: Mapping[int, str] = field(default_factory=lambda: _frozen({}))
    level_borders: tuple[LevelBorder, ...] = ()

    @classmethod
    def empty(cls) -> "Catalog":
        return cls()

    def agent_name(self, character_id: str | None) -> str:
        if not character_id:
            return ""
        return self.agents.get(character_id.lower(), "")

    def agent_image(self, agent_name: str) -> str | None:
        return self.agent_images.get(agent_name) if agent_name else None

    def map_name(self, map_id: str | None) -> str:
        if not map_id:
            return ""
        return self.maps.get(map_id.lower(), "")

    def map_image(self, map_name: str, queue_id: str, state: SessionState) -> str | None:
        """
        Pick artwork for the match header.

        Premier queues use the premier art; agent select prefers the stylized
        background; live matches prefer the splash.
        """
        images = self.map_images.get(map_name.lower()) if map_name else None
        if images is None:
            return None
        if queue_id == PREMIER_QUEUE and images.premier:
            return images.premier
        if state is SessionState.PREGAME:
            return images.stylized or images.splash
        return images.splash or images.stylized

    def rank_icon(self, tier: int) -> str | None:
        return self.rank_icons.get(tier)

    def weapon_by_name(self, name: str) -> WeaponEntry | None:
        wanted = name.lower()
        for weapon in self.weapons:
            if weapon.display_name.lower() == wanted:
                return weapon
        return None

    def skin(self, uuid: str | None) -> SkinCatalogEntry | None:
        if not uuid:
            return None
        return self.skins.get(uuid.lower())

    def level_border(self, level: int) -> str | None:
        return level_border_for(self.level_borders, level)


def level_border_for(borders: tuple[LevelBorder, ...] | list[LevelBorder], level: int) -> str | None:
    """
    Border artwork for an account level.

    Args:
        borders: Borders sorted by threshold, highest first

    Returns:
        The first border whose threshold is at or below ``level``, else the
        lowest-threshold border, else None when there are no borders
    """
    if not borders:
        return None
    for border in borders:
        if border.threshold <= level:
            return border.image_url
    return borders[-1].image_url


class CatalogProvider:
    """
    Fetches the catalog service endpoints.

    Example:
        >>> catalog = CatalogProvider().load()
        >>> catalog.agent_name("add6443a-41bd-e414-f6ad-e58d267f4e95")
        'Jett'
    """

    def __init__(
        self,
        base_url: str = CATALOG_API_BASE,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _make_request(self, endpoint: str, params: dict | None = None) -> Any:
        """GET an endpoint and return its ``data`` member, None on failure."""
        url = f"{self.base_url}{endpoint}"
        try:
            response = self._get_session().get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json().get("data")
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.error(f"Catalog request failed for {endpoint}: {e}")
            return None

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def agents(self) -> list[dict[str, Any]]:
        return _records(self._make_request("/agents", params={"isPlayableCharacter": "true"}))

    def maps(self) -> list[dict[str, Any]]:
        return _records(self._make_request("/maps"))

    def weapons(self) -> list[dict[str, Any]]:
        return _records(self._make_request("/weapons"))

    def skins(self) -> dict[str, SkinCatalogEntry]:
        entries = {}
        for item in _records(self._make_request("/weapons/skins")):
            uuid = _text(item.get("uuid"))
            if uuid:
                entries[uuid.lower()] = SkinCatalogEntry.from_api(item)
        return entries

    def rank_icons(self) -> dict[int, str]:
        """Tier -> small icon, from the most recent tier set."""
        tier_sets = _records(self._make_request("/competitivetiers"))
        if not tier_sets:
            return {}
        icons = {}
        for item in _records(tier_sets[-1].get("tiers")):
            tier = _as_int(item.get("tier"))
            icon = _text(item.get("smallIcon"))
            if tier is not None and icon:
                icons[tier] = icon
        return icons

    def level_borders(self) -> list[LevelBorder]:
        """Borders sorted by threshold, highest first."""
        borders = []
        for item in _records(self._make_request("/levelborders")):
            threshold = _as_int(item.get("startingLevel"))
            image = _text(item.get("levelNumberAppearance")) or _text(item.get("smallPlayerCardAppearance"))
            if threshold is None or not image:
                continue
            borders.append(LevelBorder(threshold=threshold, image_url=image))
        borders.sort(key=lambda b: b.threshold, reverse=True)
        return borders

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    @staticmethod
    def _section(name: str, build: Callable[[], T], empty: T) -> T:
        """Run one section's fetch-and-build; a failure empties only that section."""
        try:
            return build()
        except Exception as e:
            logger.error(f"Catalog section '{name}' unusable, leaving it empty: {e}")
            return empty

    def _agent_tables(self) -> tuple[dict[str, str], dict[str, str]]:
        agents: dict[str, str] = {}
        images: dict[str, str] = {}
        for item in self.agents():
            uuid = _text(item.get("uuid"))
            name = _text(item.get("displayName"))
            if uuid and name:
                agents[uuid.lower()] = name
                icon = _text(item.get("displayIcon"))
                if icon:
                    images[name] = icon
        return agents, images

    def _map_tables(self) -> tuple[dict[str, str], dict[str, MapImages]]:
        maps: dict[str, str] = {}
        map_images: dict[str, MapImages] = {}
        for item in self.maps():
            name = _text(item.get("displayName"))
            if not name:
                continue
            url = _text(item.get("mapUrl"))
            if url:
                maps[url.lower()] = name
            images = MapImages(
                splash=_text(item.get("splash")),
                stylized=_text(item.get("stylizedBackgroundImage")),
                premier=_text(item.get("premierBackgroundImage")),
            )
            map_images[name.lower()] = images
            uuid = _text(item.get("uuid"))
            if uuid:
                map_images[uuid.lower()] = images
        return maps, map_images

    def _weapon_table(self) -> tuple[WeaponEntry, ...]:
        return tuple(
            WeaponEntry(uuid=uuid, display_name=_text(item.get("displayName")) or "")
            for item in self.weapons()
            if (uuid := _text(item.get("uuid")))
        )

    def load(self) -> Catalog:
        """Fetch every endpoint and build an immutable catalog."""
        agents, agent_images = self._section("agents", self._agent_tables, ({}, {}))
        if not agents:
            logger.warning("Agent catalog unavailable, using built-in agent names")
            agents = dict(FALLBACK_AGENTS)
        maps, map_images = self._section("maps", self._map_tables, ({}, {}))

        catalog = Catalog(
            agents=_frozen(agents),
            agent_images=_frozen(agent_images),
            maps=_frozen(maps),
            map_images=_frozen(map_images),
            weapons=self._section("weapons", self._weapon_table, ()),
            skins=_frozen(self._section("skins", self.skins, {})),
            rank_icons=_frozen(self._section("rank icons", self.rank_icons, {})),
            level_borders=tuple(self._section("level borders", self.level_borders, [])),
        )
        logger.info(
            f"Catalog loaded: {len(catalog.agents)} agents, {len(catalog.maps)} maps, "
            f"{len(catalog.weapons)} weapons, {len(catalog.skins)} skins"
        )
        return catalog
