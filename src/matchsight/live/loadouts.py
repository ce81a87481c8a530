"""
Loadout Resolver

Works out which skin, colorway and upgrade level each player has equipped on
the selected weapon. The derivation helpers are pure; ``LoadoutResolver``
adds the inventory fetch. A missing inventory, weapon or skin only leaves
that player's skin empty.
"""

import logging
import re
from collections.abc import Sequence
from typing import Any

from matchsight.core.constants import (
    CHROMA_SOCKET,
    DEFAULT_TEAM,
    LEVEL_SOCKET,
    OFFSET_TEAM,
    SKIN_SOCKET,
    Domain,
)
from matchsight.core.errors import TransportError
from matchsight.core.models import SessionState, SkinCatalogEntry, SkinInfo, SkinLevelEntry

logger = logging.getLogger(__name__)

_VARIANT_PATTERN = re.compile(r"\(Variant \d+ (.+)\)")


# ============================================================================
# Name derivation
# ============================================================================


def strip_weapon_name(skin_name: str, weapon_name: str) -> str:
    """ "Prime Vandal" -> "Prime" for the Vandal."""
    return skin_name.replace(f" {weapon_name}", "")


def derive_variant(chroma_name: str, skin_name: str) -> str | None:
    """
    Colorway name from a chroma display name.

    Tried in order: "(Variant N text)", text after the last " - ", text after
    the last "-", last word when the name contains the skin name, and
    finally the whole chroma name.

    Args:
        chroma_name: Chroma display name
        skin_name: Skin display name without the weapon
    """
    if not chroma_name:
        return None
    match = _VARIANT_PATTERN.search(chroma_name)
    if match:
        return match.group(1).strip()
    if " - " in chroma_name:
        return chroma_name.split(" - ")[-1].strip()
    if "-" in chroma_name:
        return chroma_name.split("-")[-1].strip()
    if skin_name and skin_name in chroma_name:
        return chroma_name.split()[-1]
    return chroma_name


def format_variant(variant: str | None, weapon_name: str) -> str:
    """Displayed variant: the weapon name is appended unless already there."""
    if not variant:
        return weapon_name
    if weapon_name.lower() in variant.lower():
        return variant
    return f"{variant} {weapon_name}"


def level_label(level: SkinLevelEntry) -> str:
    """Level display name, else the icon file stem, else the level id."""
    if level.display_name:
        return level.display_name
    if level.display_icon:
        stem = level.display_icon.split("/")[-1].replace(".png", "")
        if stem:
            return stem
    return level.uuid


def inventory_index(position: int, team_id: str, player_count: int, inventory_count: int) -> int:
    """
    Inventory slot for a roster position.

    The second team's slots are shifted by the difference between roster and
    inventory length.
    """
    if team_id == OFFSET_TEAM:
        return position + player_count - inventory_count
    return position


def _socket_item(item: dict[str, Any], socket: str) -> str | None:
    sockets = item.get("Sockets") or {}
    value = ((sockets.get(socket) or {}).get("Item") or {}).get("ID")
    return value or None


def resolve_skin(
    items: dict[str, Any],
    weapon_uuid: str,
    weapon_name: str,
    skins: dict[str, SkinCatalogEntry] | Any,
) -> SkinInfo | None:
    """
    Skin details for one inventory.

    Args:
        items: ``Items`` map of a loadout, keyed by lower-case weapon uuid
        weapon_uuid: Selected weapon id
        weapon_name: Selected weapon display name
        skins: Catalog skins keyed by lower-case uuid

    Returns:
        SkinInfo, or None when no skin is equipped or the skin is unknown
    """
    item = (items or {}).get(weapon_uuid.lower())
    if not isinstance(item, dict):
        return None

    skin_id = _socket_item(item, SKIN_SOCKET)
    if not skin_id:
        return None
    skin = skins.get(skin_id.lower())
    if skin is None:
        return None

    skin_name = strip_weapon_name(skin.display_name, weapon_name)
    chroma = skin.chroma(_socket_item(item, CHROMA_SOCKET))
    variant = derive_variant(chroma.display_name, skin_name) if chroma else None

    level_name = None
    level = skin.level(_socket_item(item, LEVEL_SOCKET))
    if level is not None:
        level_name = level_label(level)

    if variant and chroma is not None:
        image = chroma.full_render or chroma.display_icon or skin.display_icon
    else:
        image = skin.display_icon

    return SkinInfo(
        name=skin_name,
        variant=format_variant(variant, weapon_name),
        level=level_name,
        image_url=image,
    )


# ============================================================================
# Resolver
# ============================================================================


class LoadoutResolver:
    """
    Fetches a match's inventories and resolves each player's skin.

    Example:
        >>> resolver = LoadoutResolver(client, catalog)
        >>> skins = resolver.resolve(match_id, players, "Vandal", SessionState.INGAME)
        >>> skins[subject].variant
        'Blue Vandal'
    """

    def __init__(self, transport, catalog):
        self.transport = transport
        self.catalog = catalog

    def fetch_inventories(self, match_id: str, state: SessionState, timeout: float | None = None) -> list:
        if state is SessionState.PREGAME:
            path = f"/pregame/v1/matches/{match_id}/loadouts"
        else:
            path = f"/core-game/v1/matches/{match_id}/loadouts"
        data = self.transport.fetch(Domain.GLZ, path, timeout=timeout)
        loadouts = data.get("Loadouts") if isinstance(data, dict) else None
        return loadouts if isinstance(loadouts, list) else []

    def resolve(
        self,
        match_id: str,
        players: Sequence[dict[str, Any]],
        weapon: str,
        state: SessionState,
        team_id: str = DEFAULT_TEAM,
        timeout: float | None = None,
    ) -> dict[str, SkinInfo]:
        """
        Skin per player id for the selected weapon.

        Args:
            match_id: Pregame or core-game match id
            players: Roster entries with a ``Subject``
            weapon: Weapon display name, case-insensitive
            state: PREGAME or INGAME; selects endpoint and inventory shape
            team_id: The user's team; "Red" inventories are offset

        Returns:
            Player id -> SkinInfo; players without a resolvable skin are absent
        """
        weapon_entry = self.catalog.weapon_by_name(weapon)
        if weapon_entry is None:
            logger.debug(f"Weapon {weapon!r} not in catalog")
            return {}
        if not self.catalog.skins:
            return {}

        try:
            inventories = self.fetch_inventories(match_id, state, timeout=timeout)
        except TransportError as e:
            logger.warning(f"Failed to fetch loadouts for {match_id}: {e}")
            return {}

        return resolve_inventories(
            inventories,
            players,
            weapon_entry.uuid,
            weapon_entry.display_name,
            self.catalog.skins,
            state,
            team_id,
        )


def resolve_inventories(
    inventories: Sequence[dict[str, Any]],
    players: Sequence[dict[str, Any]],
    weapon_uuid: str,
    weapon_name: str,
    skins,
    state: SessionState,
    team_id: str = DEFAULT_TEAM,
) -> dict[str, SkinInfo]:
    """Match roster positions to inventory slots and resolve each skin."""
    results: dict[str, SkinInfo] = {}
    for position, player in enumerate(players):
        index = inventory_index(position, team_id, len(players), len(inventories))
        if index < 0 or index >= len(inventories):
            continue
        slot = inventories[index] or {}
        inventory = slot if state is SessionState.PREGAME else slot.get("Loadout")
        subject = player.get("Subject")
        if not isinstance(inventory, dict) or not subject:
            continue
        skin = resolve_skin(inventory.get("Items") or {}, weapon_uuid, weapon_name, skins)
        if skin is not None:
            results[subject] = skin
    return results
