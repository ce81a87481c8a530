"""
Session State Machine

Owns the current phase and drives one tick at a time:

1. Gate on the lockfile/process check so an absent client costs no request.
2. Resolve the phase: pushed phase, then the presence poll (which wins on
   conflict), then direct pregame/core-game match-id probes.
3. Apply the transition and its side effects.
4. Build the phase's snapshot and offer it to the publisher.

Nothing raised inside a tick escapes it; failures either count towards the
retry policy or leave the previous snapshot in place.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from matchsight.core.config import LiveConfig, PollingConfig
from matchsight.core.constants import DEFAULT_TEAM, GAMEMODES, Domain
from matchsight.core.errors import TransportDisconnected, TransportError
from matchsight.core.models import MatchContext, SessionState, Snapshot
from matchsight.infra.process import TargetProbe
from matchsight.live.players import BuildContext, PlayerRecordBuilder, RawPlayer
from matchsight.live.presence import game_mode, own_presence, party_id_for, party_members, presence_phase
from matchsight.live.publisher import SnapshotPublisher
from matchsight.live.push import PushBuffer
from matchsight.live.retry import AttemptSchedule, RetryPolicy

logger = logging.getLogger(__name__)

PhaseCallback = Callable[[SessionState | None, SessionState], None]


def _no_match(match_id: str | None) -> bool:
    return not match_id or match_id == "0"


class SessionStateMachine:
    """
    The polling loop's state and per-tick logic.

    Args:
        transport: Local API transport (``descriptor``, ``presence``, ``fetch``, ``subject``)
        catalog: Loaded Catalog
        probe: Lockfile/process check
        content: ContentService for season ids
        ranks: RankService (cache invalidated on MENUS)
        stats: StatsService (cache invalidated on MENUS and new matches)
        names: NameResolver
        loadouts: LoadoutResolver
        builder: PlayerRecordBuilder; its Ally Cache belongs to this machine
        publisher: SnapshotPublisher holding the last snapshot
        push: Optional PushBuffer fed by the notification socket
        settings: Returns the live display settings; called every tick
        polling: Cadences and retry limits
        retry: Retry policy shared with the builder for request timeouts
        on_phase_change: Called with (previous, current) on every transition
        sleep: Sleep function used between ticks and detection attempts
        clock: Monotonic clock for log rate limiting
    """

    def __init__(
        self,
        transport,
        catalog,
        probe: TargetProbe,
        content,
        ranks,
        stats,
        names,
        loadouts,
        builder: PlayerRecordBuilder,
        publisher: SnapshotPublisher,
        push: PushBuffer | None = None,
        settings: Callable[[], LiveConfig] = LiveConfig,
        polling: PollingConfig | None = None,
        retry: RetryPolicy | None = None,
        on_phase_change: PhaseCallback | None = None,
        sleep: Callable[[float], Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.catalog = catalog
        self.probe = probe
        self.content = content
        self.ranks = ranks
        self.stats = stats
        self.names = names
        self.loadouts = loadouts
        self.builder = builder
        self.publisher = publisher
        self.push = push
        self.settings = settings
        self.polling = polling or PollingConfig()
        self.retry = retry or RetryPolicy(
            failure_threshold=self.polling.failure_threshold,
            max_patience=self.polling.max_patience,
            base_timeout=self.polling.fetch_timeout,
            timeout_step=self.polling.timeout_step,
            max_timeout=self.polling.max_timeout,
        )
        self.on_phase_change = on_phase_change

        self.state = SessionState.NOT_RUNNING
        # Last core-game match id seen while INGAME
        self.match_id: str | None = None

        self._sleep = sleep
        self._clock = clock
        self._stop = threading.Event()
        self._tick_lock = threading.Lock()
        self._absent_ticks = 0
        self._last_absent_log: float | None = None

    @property
    def ally_cache(self):
        return self.builder.ally_cache

    # ========================================================================
    # Loop
    # ========================================================================

    def run(self, stop_event: threading.Event | None = None) -> None:
        """Detect the initial phase, then tick until ``stop_event`` is set."""
        if stop_event is not None:
            self._stop = stop_event
        self.detect_initial_state()
        while not self._stop.is_set():
            self.tick()
            self._wait(self.cadence())

    def stop(self) -> None:
        self._stop.set()

    def _wait(self, seconds: float) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
        else:
            self._stop.wait(seconds)

    def cadence(self) -> float:
        """Seconds until the next tick for the current phase."""
        polling = self.polling
        if self.state is SessionState.NOT_RUNNING:
            if self._absent_ticks >= polling.not_running_backoff_after:
                return polling.not_running_backoff_interval
            return polling.not_running_interval
        return {
            SessionState.DISCONNECTED: polling.disconnected_interval,
            SessionState.MENUS: polling.menus_interval,
            SessionState.PREGAME: polling.pregame_interval,
            SessionState.INGAME: polling.ingame_interval,
        }[self.state]

    # ========================================================================
    # Initial detection
    # ========================================================================

    def detect_initial_state(self) -> SessionState:
        """
        Find the phase at startup.

        Polls presence up to ``initial_attempts`` times, then falls back to
        the match-id probes. An absent lockfile and process end detection
        immediately with NOT_RUNNING.
        """
        schedule = AttemptSchedule(self.polling.initial_attempts, self.polling.initial_interval)
        answered = False

        for attempt in schedule:
            if self._stop.is_set():
                break
            status = self.probe.check()
            if not status.present:
                logger.info("Game client not running")
                return self.state
            if status.descriptor_present:
                pushed = self.push.poll_phase() if self.push else None
                presences = self.transport.presence(timeout=self.retry.timeout())
                if presences is not None:
                    answered = True
                    phase = self.resolve_phase(presences, pushed, probe=False)
                    if phase is not None:
                        logger.info(f"Initial phase {phase} after {attempt + 1} attempt(s)")
                        self._transition(phase)
                        return self.state
            logger.debug(f"Initial detection attempt {attempt + 1}/{schedule.attempts} unresolved")
            self._wait(schedule.delay_after(attempt))

        if answered or self.transport.descriptor().present:
            phase = self.probe_phase()
            if phase is not None:
                logger.info(f"Initial phase {phase} from match probes")
                self._transition(phase)
                return self.state

        logger.info("Could not detect a phase; starting from NOT_RUNNING")
        return self.state

    # ========================================================================
    # Phase signals
    # ========================================================================

    def probe_match_id(self, service: str) -> str | None:
        """
        Ask ``pregame`` or ``core-game`` for the user's match id.

        Returns:
            The id, "0" when the service has no match, None when the probe failed
        """
        subject = self.transport.subject
        if not subject:
            return None
        try:
            data = self.transport.fetch(
                Domain.GLZ, f"/{service}/v1/players/{subject}", timeout=self.retry.timeout()
            )
        except TransportDisconnected:
            raise
        except TransportError as e:
            logger.debug(f"{service} match probe failed: {e}")
            return None
        if not isinstance(data, dict):
            return None
        return data.get("MatchID") or "0"

    def probe_phase(self) -> SessionState | None:
        """Phase from the match-id probes alone; None if they could not tell."""
        pregame = self.probe_match_id("pregame")
        if pregame is not None and not _no_match(pregame):
            return SessionState.PREGAME
        ingame = self.probe_match_id("core-game")
        if ingame is not None and not _no_match(ingame):
            return SessionState.INGAME
        if pregame == "0" and ingame == "0":
            return SessionState.MENUS
        return None

    def resolve_phase(
        self,
        presences: list[dict[str, Any]],
        pushed: SessionState | None = None,
        probe: bool = True,
    ) -> SessionState | None:
        """
        Combine this tick's signals into one phase.

        The presence poll wins over a pushed phase. A pushed INGAME straight
        from MENUS is checked against the pregame probe first, since a short
        agent select can be missed between polls.
        """
        subject = self.transport.subject
        polled = presence_phase(presences, subject) if subject else None
        if polled is not None:
            if pushed is not None and pushed is not polled:
                logger.debug(f"Push reported {pushed}, presence reports {polled}; using presence")
            return polled

        if pushed is not None:
            if pushed is SessionState.INGAME and self.state is SessionState.MENUS:
                if not _no_match(self.probe_match_id("pregame")):
                    return SessionState.PREGAME
            return pushed

        return self.probe_phase() if probe else None

    # ========================================================================
    # Tick
    # ========================================================================

    def tick(self) -> None:
        """Run one tick. Never raises; a concurrent call is skipped."""
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Tick already in progress; skipping")
            return
        try:
            self._tick()
        except TransportDisconnected as e:
            logger.warning(f"Transport disconnected in {self.state}: {e}")
            if self.state.is_reachable:
                self._transition(SessionState.DISCONNECTED)
        except Exception as e:
            logger.exception(f"Tick failed in {self.state}: {e}")
        finally:
            self._tick_lock.release()

    def _tick(self) -> None:
        settings = self.settings()
        self.names.hide_names = settings.hide_names

        if self.state is SessionState.NOT_RUNNING:
            self._tick_not_running(settings)
            return

        if not self.transport.descriptor().present:
            self._record_failure("lockfile missing")
            return

        if self.push is not None and self.push.consume_disconnect() and self.state.is_reachable:
            self._transition(SessionState.DISCONNECTED)
            return

        pushed = self.push.poll_phase() if self.push else None
        presences = self.transport.presence(timeout=self.retry.timeout())
        if presences is None:
            self._record_failure("presence poll failed")
            return

        if self.retry.is_patient:
            logger.info(f"Local API answering again after {self.retry.patience} patience retries")
        self.retry.record_success()

        phase = self.resolve_phase(presences, pushed)
        if phase is None:
            if self.state is SessionState.DISCONNECTED:
                logger.debug("Reconnected but phase unresolved; waiting")
                return
            phase = self.state
        self._advance(phase, presences, settings)

    def _tick_not_running(self, settings: LiveConfig) -> None:
        if self.push is not None:
            self.push.consume_disconnect()

        status = self.probe.check()
        if not status.present:
            self._absent_ticks += 1
            self._log_absent()
            return
        self._absent_ticks = 0

        if not status.descriptor_present:
            logger.debug("Game process found, waiting for the lockfile")
            return

        pushed = self.push.poll_phase() if self.push else None
        presences = self.transport.presence(timeout=self.retry.timeout())
        if presences is None:
            logger.debug("Lockfile present but presence not answering yet")
            return

        phase = self.resolve_phase(presences, pushed)
        if phase is None:
            logger.debug("Presence answered without a usable phase")
            return
        self.retry.reset()
        self._advance(phase, presences, settings)

    def _advance(self, phase: SessionState, presences: list[dict[str, Any]], settings: LiveConfig) -> None:
        core_match: str | None = None
        if phase is SessionState.INGAME:
            core_match = self.probe_match_id("core-game")
            if core_match == "0":
                logger.info("Core-game reports no match; returning to menus")
                phase = SessionState.MENUS

        self._transition(phase)

        if phase is SessionState.MENUS:
            snapshot = self._menus_snapshot(presences, settings)
        elif phase is SessionState.PREGAME:
            snapshot = self._pregame_snapshot(presences, settings)
        else:
            snapshot = self._ingame_snapshot(presences, settings, core_match)

        if snapshot is not None:
            self.publisher.offer(snapshot)

    def _record_failure(self, reason: str) -> None:
        """Count a failed probe and decide between waiting and NOT_RUNNING."""
        self.retry.record_failure()
        if not self.retry.threshold_reached:
            logger.debug(
                f"Transient failure {self.retry.failures}/{self.retry.failure_threshold} in {self.state}: {reason}"
            )
            return

        status = self.probe.check()
        if status.present and self.retry.extend_patience():
            logger.info(
                f"Local API not answering ({reason}) but client present; "
                f"waiting ({self.retry.patience}/{self.retry.max_patience}, timeout {self.retry.timeout():.0f}s)"
            )
            return

        if status.present:
            logger.warning(f"Gave up after {self.retry.max_patience} patience retries: {reason}")
        else:
            logger.info(f"Game client gone: {reason}")
        self._transition(SessionState.NOT_RUNNING)

    def _log_absent(self) -> None:
        now = self._clock()
        if self._last_absent_log is None or now - self._last_absent_log >= self.polling.not_running_log_interval:
            logger.info("Game client not running")
            self._last_absent_log = now

    # ========================================================================
    # Transitions
    # ========================================================================

    def _transition(self, new: SessionState) -> None:
        if new is self.state:
            return
        previous = self.state
        logger.info(f"Session {previous} -> {new}")
        self.state = new

        if new is SessionState.MENUS:
            self._enter_menus()
        elif new is SessionState.NOT_RUNNING:
            self.retry.reset()
            self.ally_cache.clear()
            self.match_id = None
            self._absent_ticks = 0
            self._last_absent_log = None

        if not new.is_reachable:
            self.publisher.offer(Snapshot(context=MatchContext(), state=new))

        if self.on_phase_change is not None:
            try:
                self.on_phase_change(previous, new)
            except Exception as e:
                logger.error(f"Phase change callback failed: {e}")

    def _enter_menus(self) -> None:
        self.ally_cache.clear()
        self.match_id = None
        self.ranks.invalidate_cached_responses()
        self.stats.invalidate_cached_responses()
        self.content.refresh()

    def track_match(self, match_id: str) -> None:
        """
        Remember the INGAME match.

        Allies cached during this match's agent select survive; entries from
        any other match are dropped, and a changed id resets the stats cache.
        """
        self.ally_cache.retain(match_id)
        if self.match_id == match_id:
            return
        if self.match_id is not None:
            logger.info(f"New match {self.match_id} -> {match_id}; clearing stats cache")
            self.stats.invalidate_cached_responses()
        else:
            logger.info(f"Tracking match {match_id}")
        self.match_id = match_id

    # ========================================================================
    # Phase work
    # ========================================================================

    def _base_context(self, presences: list[dict[str, Any]]) -> MatchContext:
        private = own_presence(presences, self.transport.subject)
        return MatchContext(
            queue_id=(private.queue_id or "") if private else "",
            mode=game_mode(private),
        )

    def _build_context(self, state: SessionState, match: MatchContext, presences, **kwargs) -> BuildContext:
        members = party_members(self.transport.subject, presences)
        last = self.publisher.last
        return BuildContext(
            state=state,
            match=match,
            party_ids=frozenset(m.subject for m in members),
            party_id=members[0].party_id if members else "",
            previous={p.subject: p for p in last.players} if last is not None else {},
            season_id=self.content.current_season_id(),
            previous_season_id=self.content.previous_season_id(),
            **kwargs,
        )

    def _match_context(self, base: MatchContext, match_id: str, match: dict[str, Any], state: SessionState):
        map_id = (match.get("MapID") or "").lower()
        map_name = self.catalog.map_name(map_id)
        queue_id = match.get("QueueID") or base.queue_id
        mode = base.mode or GAMEMODES.get(queue_id.lower(), queue_id.capitalize())
        return MatchContext(
            match_id=match_id,
            queue_id=queue_id,
            mode=mode,
            map=map_name,
            map_image_url=self.catalog.map_image(map_name or map_id, queue_id, state),
        )

    def _menus_snapshot(self, presences: list[dict[str, Any]], settings: LiveConfig) -> Snapshot:
        context = self._base_context(presences)
        if not settings.show_menus:
            return Snapshot(context=context, state=SessionState.MENUS, is_lobby=True)

        members = party_members(self.transport.subject, presences)
        names = self.names.resolve_names(m.subject for m in members)
        ctx = self._build_context(SessionState.MENUS, context, presences, names=names, is_lobby=True)
        players = self.builder.build_all([RawPlayer.from_party_member(m) for m in members], ctx)
        return Snapshot(context=context, state=SessionState.MENUS, players=tuple(players), is_lobby=True)

    def _pregame_snapshot(self, presences: list[dict[str, Any]], settings: LiveConfig) -> Snapshot | None:
        base = self._base_context(presences)
        match_id = self.probe_match_id("pregame")
        if match_id is None:
            return None
        if _no_match(match_id):
            return Snapshot(context=base, state=SessionState.PREGAME)

        try:
            match = self.transport.fetch(
                Domain.GLZ, f"/pregame/v1/matches/{match_id}", timeout=self.retry.timeout()
            )
        except TransportDisconnected:
            raise
        except TransportError as e:
            logger.warning(f"Failed to fetch pregame match {match_id}: {e}")
            return None
        if not isinstance(match, dict):
            return None

        context = self._match_context(base, match_id, match, SessionState.PREGAME)
        if not settings.show_pregame:
            return Snapshot(context=context, state=SessionState.PREGAME)

        entries = (match.get("AllyTeam") or {}).get("Players") or []
        teams = match.get("Teams") or []
        team_id = (teams[0].get("TeamID") if teams and isinstance(teams[0], dict) else None) or DEFAULT_TEAM

        skins = self.loadouts.resolve(
            match_id, entries, settings.weapon, SessionState.PREGAME, team_id=team_id, timeout=self.retry.timeout()
        )
        raw = [
            RawPlayer.from_match(entry, team=team_id, party_id=party_id_for(entry.get("Subject", ""), presences))
            for entry in entries
        ]
        names = self.names.resolve_names((p.subject for p in raw), scope=match_id)
        ctx = self._build_context(SessionState.PREGAME, context, presences, names=names, skins=skins)
        players = self.builder.build_all(raw, ctx)
        return Snapshot(context=context, state=SessionState.PREGAME, players=tuple(players))

    def _ingame_snapshot(
        self, presences: list[dict[str, Any]], settings: LiveConfig, match_id: str | None
    ) -> Snapshot | None:
        if match_id is None:
            logger.debug("Core-game probe failed; keeping last snapshot")
            return None
        self.track_match(match_id)

        try:
            match = self.transport.fetch(
                Domain.GLZ, f"/core-game/v1/matches/{match_id}", timeout=self.retry.timeout()
            )
        except TransportDisconnected:
            raise
        except TransportError as e:
            logger.warning(f"Failed to fetch match {match_id}: {e}")
            return None
        if not isinstance(match, dict):
            return None

        context = self._match_context(self._base_context(presences), match_id, match, SessionState.INGAME)
        if not settings.show_ingame:
            return Snapshot(context=context, state=SessionState.INGAME)

        entries = match.get("Players") or []
        subject = self.transport.subject
        team_id = next(
            (e.get("TeamID") for e in entries if e.get("Subject") == subject and e.get("TeamID")),
            DEFAULT_TEAM,
        )

        skins = self.loadouts.resolve(
            match_id, entries, settings.weapon, SessionState.INGAME, team_id=team_id, timeout=self.retry.timeout()
        )
        raw = [
            RawPlayer.from_match(entry, party_id=party_id_for(entry.get("Subject", ""), presences))
            for entry in entries
        ]
        names = self.names.resolve_names((p.subject for p in raw), scope=match_id)
        ctx = self._build_context(SessionState.INGAME, context, presences, names=names, skins=skins)
        players = self.builder.build_all(raw, ctx)
        return Snapshot(context=context, state=SessionState.INGAME, players=tuple(players))
