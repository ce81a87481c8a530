"""
Player name lookup and the name-hiding policy.
"""

import logging
from collections.abc import Collection, Iterable, Mapping

from matchsight.core.constants import HIDDEN_PLAYER_NAME, Domain
from matchsight.core.errors import TransportError

logger = logging.getLogger(__name__)

NAME_SERVICE_ENDPOINT = "/name-service/v2/players"


def fallback_name(subject: str) -> str:
    """Shortened id shown when the name service is unavailable."""
    return f"{subject[:8]}..."


class NameResolver:
    """
    Resolves ``GameName#TagLine`` for player ids and decides what to show.

    Args:
        transport: Local API transport
        hide_names: Hide incognito players outside the user's party
        agent_names: Agent id (lower-case) -> display name
    """

    def __init__(self, transport, hide_names: bool = True, agent_names: Mapping[str, str] | None = None):
        self.transport = transport
        self.hide_names = hide_names
        self.agent_names = agent_names or {}
        self._known: dict[str, str] = {}
        self._scope: str | None = None

    def resolve_names(self, subjects: Iterable[str], scope: str | None = None) -> dict[str, str]:
        """
        Look up display names for a batch of player ids.

        Names resolved within one ``scope`` (a match id, or None for the
        menus) are remembered, so only players not seen yet are sent to the
        name service. A new scope starts empty.

        Returns:
            id -> "GameName#TagLine"; ids the service does not answer for map
            to a shortened id
        """
        if scope != self._scope:
            self._known.clear()
            self._scope = scope

        wanted = [s for s in dict.fromkeys(subjects) if isinstance(s, str) and s]
        if not wanted:
            return {}

        names = {subject: self._known.get(subject) or fallback_name(subject) for subject in wanted}
        missing = [subject for subject in wanted if subject not in self._known]
        if not missing:
            return names

        try:
            response = self.transport.fetch(Domain.PD, NAME_SERVICE_ENDPOINT, method="PUT", json=missing)
        except TransportError as e:
            logger.warning(f"Name lookup failed for {len(missing)} players: {e}")
            return names

        if not isinstance(response, list):
            logger.warning(f"Unexpected name service response: {response!r}")
            return names

        for entry in response:
            subject = entry.get("Subject") if isinstance(entry, dict) else None
            if subject and entry.get("GameName"):
                name = f"{entry['GameName']}#{entry.get('TagLine', '')}"
                self._known[subject] = name
                if subject in names:
                    names[subject] = name
        return names

    def display_name(
        self,
        raw: str,
        subject: str,
        agent_id: str | None = None,
        party_ids: Collection[str] = (),
        incognito: bool = False,
    ) -> str:
        """
        Apply the hiding policy to a resolved name.

        Incognito players outside the party are shown as their agent, or as
        a generic placeholder before an agent is picked.
        """
        if not (incognito and self.hide_names) or subject in party_ids:
            return raw
        if agent_id:
            agent = self.agent_names.get(agent_id.lower())
            if agent:
                return agent
        return HIDDEN_PLAYER_NAME
