"""
Push notifications from the local API's event socket.

matchsight does not open the event socket itself. An embedding application
that holds a socket connection to the client passes a ``PushBuffer`` to
``create_session_machine`` and feeds it raw frames through
``handle_message`` (or calls ``report_phase``/``report_disconnect``
directly). The session loop drains the buffer once per tick, so a PREGAME
that lasts less than one presence poll is still seen. Without a buffer the
loop relies on presence polling and the match probes alone.
"""

import json
import logging
import threading
from typing import Any

from matchsight.core.models import SessionState
from matchsight.live.presence import OTHER_PRODUCT, decode_presence

logger = logging.getLogger(__name__)

PRESENCE_EVENT = "OnJsonApiEvent_chat_v4_presences"
PRESENCE_URI = "/chat/v4/presences"


class PushBuffer:
    """
    Latest pushed phase plus the socket's connection state.

    Thread-safe: the socket reader writes, the session loop reads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._phase: SessionState | None = None
        self._disconnected = False

    def report_phase(self, state: SessionState) -> None:
        with self._lock:
            self._phase = state

    def report_disconnect(self) -> None:
        with self._lock:
            self._disconnected = True
            self._phase = None
        logger.info("Push socket disconnected")

    def report_connected(self) -> None:
        with self._lock:
            self._disconnected = False

    @property
    def disconnected(self) -> bool:
        with self._lock:
            return self._disconnected

    def consume_disconnect(self) -> bool:
        """True once per reported disconnect."""
        with self._lock:
            disconnected, self._disconnected = self._disconnected, False
        return disconnected

    def poll_phase(self) -> SessionState | None:
        """Take the phase pushed since the last call, if any."""
        with self._lock:
            phase, self._phase = self._phase, None
        return phase

    def handle_message(self, message: str, subject: str) -> SessionState | None:
        """
        Read a raw socket frame and record the user's phase if it carries one.

        Frames look like ``[8, "<event>", {"uri": ..., "data": {...}}]``.

        Returns:
            The phase recorded, or None
        """
        if not message or len(message) <= 10:
            return None
        try:
            frame = json.loads(message)
        except ValueError as e:
            logger.debug(f"Failed to parse socket message: {e}")
            return None

        if not isinstance(frame, list) or len(frame) < 3 or frame[1] != PRESENCE_EVENT:
            return None
        payload = frame[2]
        if not isinstance(payload, dict) or payload.get("uri") != PRESENCE_URI:
            return None

        presences = (payload.get("data") or {}).get("presences") or []
        state = _phase_for(presences, subject)
        if state is not None:
            self.report_phase(state)
        return state


def _phase_for(presences: list[dict[str, Any]], subject: str) -> SessionState | None:
    for presence in presences:
        if presence.get("puuid") != subject:
            continue
        if presence.get("product") == OTHER_PRODUCT:
            return None
        return decode_presence(presence.get("private")).state
    return None
