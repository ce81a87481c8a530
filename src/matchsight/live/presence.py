"""
Presence Interpreter

Each presence entry carries a base64 encoded JSON blob (``private``) with
the player's session phase, party and queue. Decoding never raises: a blob
that cannot be read comes back as an invalid ``PrivatePresence`` with every
field unknown.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from matchsight.core.constants import (
    CUSTOM_GAME_LABEL,
    CUSTOM_PARTY_STATE,
    CUSTOM_PROVISIONING_FLOW,
    GAMEMODES,
)
from matchsight.core.errors import DecodeError
from matchsight.core.models import SessionState

logger = logging.getLogger(__name__)

OTHER_PRODUCT = "league_of_legends"


@dataclass(frozen=True)
class PrivatePresence:
    """Typed view of a decoded presence blob; None means absent."""

    is_valid: bool = False
    phase: str | None = None
    party_state: str | None = None
    queue_id: str | None = None
    provisioning_flow: str | None = None
    incognito: bool | None = None
    party_id: str | None = None
    account_level: int | None = None
    player_card_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def state(self) -> SessionState | None:
        return SessionState.from_phase(self.phase)

    @property
    def is_custom_game(self) -> bool:
        return self.provisioning_flow == CUSTOM_PROVISIONING_FLOW or self.party_state == CUSTOM_PARTY_STATE


UNKNOWN_PRESENCE = PrivatePresence()


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _phase(data: dict[str, Any]) -> str | None:
    match_data = _section(data, "matchPresenceData")
    return _text(match_data.get("sessionLoopState")) or _text(data.get("sessionLoopState"))


def _party_id(data: dict[str, Any]) -> str | None:
    party_data = _section(data, "partyPresenceData")
    if party_data:
        return _text(party_data.get("partyId"))
    return _text(data.get("partyId"))


def _party_state(data: dict[str, Any]) -> str | None:
    return _text(_section(data, "partyPresenceData").get("partyState")) or _text(data.get("partyState"))


def _queue_id(data: dict[str, Any]) -> str | None:
    match_data = _section(data, "matchPresenceData")
    for source in (match_data, _section(data, "queuePresenceData"), data):
        if "queueId" in source:
            return str(source["queueId"] or "")
    return None


def _provisioning_flow(data: dict[str, Any]) -> str | None:
    match_data = _section(data, "matchPresenceData")
    return _text(match_data.get("provisioningFlow")) or _text(data.get("provisioningFlow"))


def _player_field(data: dict[str, Any], key: str) -> Any:
    player_data = _section(data, "playerPresenceData")
    if key in player_data:
        return player_data[key]
    return data.get(key)


def decode_blob(blob: Any) -> dict[str, Any]:
    """
    Base64 JSON object from a presence ``private`` field.

    Raises:
        DecodeError: When the blob is missing, already JSON text, not valid
            base64 JSON, or not an object
    """
    if not blob or not isinstance(blob, str):
        raise DecodeError("empty presence blob")
    if "{" in blob:
        raise DecodeError("presence blob is plain JSON, expected base64")
    try:
        data = json.loads(base64.b64decode(blob).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise DecodeError(f"presence blob is not base64 JSON: {e}") from e
    if not isinstance(data, dict):
        raise DecodeError(f"presence blob holds {type(data).__name__}, expected an object")
    return data


def decode_presence(blob: str | None) -> PrivatePresence:
    """
    Decode a ``private`` presence blob.

    Args:
        blob: Base64 encoded JSON

    Returns:
        PrivatePresence; ``is_valid`` is False and every field None when the
        blob is missing, already JSON text, or cannot be decoded
    """
    try:
        data = decode_blob(blob)
    except DecodeError as e:
        logger.debug(f"Unreadable presence: {e}")
        return UNKNOWN_PRESENCE

    incognito = _player_field(data, "isIncognito")
    if incognito is None:
        incognito = _player_field(data, "incognito")

    return PrivatePresence(
        is_valid=data.get("isValid") is True,
        phase=_phase(data),
        party_state=_party_state(data),
        queue_id=_queue_id(data),
        provisioning_flow=_provisioning_flow(data),
        incognito=bool(incognito) if incognito is not None else None,
        party_id=_party_id(data),
        account_level=_int(_player_field(data, "accountLevel")),
        player_card_id=_text(_player_field(data, "playerCardId")),
        raw=data,
    )


def is_other_product(presence: dict[str, Any]) -> bool:
    return presence.get("product") == OTHER_PRODUCT or presence.get("championId") is not None


def own_presence(presences: list[dict[str, Any]], subject: str) -> PrivatePresence | None:
    """
    The user's own decoded presence.

    Returns:
        None when the user has no game presence in the list (absent, another
        product, or an empty blob)
    """
    for presence in presences:
        if presence.get("puuid") != subject:
            continue
        if is_other_product(presence):
            return None
        if not presence.get("private"):
            return None
        decoded = decode_presence(presence["private"])
        return decoded if decoded.raw else None
    return None


def presence_phase(presences: list[dict[str, Any]], subject: str) -> SessionState | None:
    """Session phase from the user's own presence, None when ambiguous."""
    private = own_presence(presences, subject)
    if private is None:
        return None
    state = private.state
    if state is None:
        logger.debug(f"Presence has no usable phase: {private.phase!r}")
    return state


def game_mode(private: PrivatePresence | None) -> str:
    """Display label for the queue a presence reports."""
    if private is None:
        return ""
    if private.is_custom_game:
        return CUSTOM_GAME_LABEL
    queue = (private.queue_id or "").lower()
    return GAMEMODES.get(queue, queue.capitalize())


@dataclass(frozen=True)
class PartyMember:
    subject: str
    account_level: int = 0
    player_card_id: str = ""
    party_id: str = ""


def party_members(self_subject: str, presences: list[dict[str, Any]]) -> list[PartyMember]:
    """
    The user plus everyone sharing their party id.

    The user is always first, even without a presence of their own.
    """
    members: list[PartyMember] = []
    seen: set[str] = set()
    party_id = ""

    for presence in presences:
        if presence.get("puuid") == self_subject:
            decoded = decode_presence(presence.get("private"))
            party_id = decoded.party_id or ""
            members.append(
                PartyMember(
                    subject=self_subject,
                    account_level=decoded.account_level or 0,
                    player_card_id=decoded.player_card_id or "",
                    party_id=party_id,
                )
            )
            seen.add(self_subject)
            break

    if self_subject not in seen:
        members.append(PartyMember(subject=self_subject))
        seen.add(self_subject)

    for presence in presences:
        subject = presence.get("puuid")
        if not subject or subject in seen or is_other_product(presence):
            continue
        decoded = decode_presence(presence.get("private"))
        if decoded.party_id is not None and decoded.party_id == party_id:
            members.append(
                PartyMember(
                    subject=subject,
                    account_level=decoded.account_level or 0,
                    player_card_id=decoded.player_card_id or "",
                    party_id=party_id,
                )
            )
            seen.add(subject)

    return members


def party_id_for(subject: str, presences: list[dict[str, Any]]) -> str:
    """Party id from a player's presence, empty when unknown."""
    for presence in presences:
        if presence.get("puuid") == subject:
            return decode_presence(presence.get("private")).party_id or ""
    return ""
