"""
Snapshot channel: the publish boundary between the session loop and its
consumers (the HTTP API, the CLI renderer).

``publish`` never blocks the loop. Events are queued and handed to the
registered callbacks on a processor thread; the latest snapshot and phase are
also kept for pull-style readers.
"""

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass

from matchsight.core.models import SessionState, Snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhaseChange:
    """A session transition."""

    previous: SessionState | None
    current: SessionState


class SnapshotChannel:
    """
    Fan-out of snapshots and phase changes to callbacks.

    Example usage:
        channel = SnapshotChannel()

        @channel.on_snapshot
        def render(snapshot):
            print(snapshot.state, len(snapshot.players))

        channel.start()
        # ... the session loop calls channel.publish(snapshot) ...
        channel.stop()
    """

    def __init__(self, max_pending: int = 64):
        """
        Initialize the channel.

        Args:
            max_pending: Queued events kept before the oldest is dropped
        """
        self._queue: queue.Queue[Snapshot | PhaseChange] = queue.Queue(maxsize=max_pending)
        self._snapshot_callbacks: list[Callable[[Snapshot], None]] = []
        self._phase_callbacks: list[Callable[[PhaseChange], None]] = []
        self._lock = threading.Lock()
        self._latest: Snapshot | None = None
        self._phase: SessionState | None = None
        self._running = False
        self._processor_thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def on_snapshot(self, callback: Callable[[Snapshot], None]) -> Callable:
        """
        Decorator to register a callback for published snapshots.

        Returns:
            The callback function (for decorator chaining)
        """
        self._snapshot_callbacks.append(callback)
        return callback

    def on_phase_change(self, callback: Callable[[PhaseChange], None]) -> Callable:
        """Decorator to register a callback for session transitions."""
        self._phase_callbacks.append(callback)
        return callback

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def publish(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._latest = snapshot
        self._enqueue(snapshot)

    def phase_changed(self, previous: SessionState | None, current: SessionState) -> None:
        with self._lock:
            self._phase = current
        self._enqueue(PhaseChange(previous=previous, current=current))

    def _enqueue(self, event: Snapshot | PhaseChange) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    logger.debug("Channel full, dropped oldest event")
                except queue.Empty:
                    pass

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    @property
    def latest(self) -> Snapshot | None:
        with self._lock:
            return self._latest

    @property
    def phase(self) -> SessionState | None:
        with self._lock:
            return self._phase

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def dispatch(self, event: Snapshot | PhaseChange) -> None:
        """Hand one event to its callbacks; a failing callback is logged."""
        callbacks = self._phase_callbacks if isinstance(event, PhaseChange) else self._snapshot_callbacks
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in callback: {e}")

    def start(self) -> None:
        if self._running:
            logger.warning("Channel is already running")
            return
        self._running = True
        self._processor_thread = threading.Thread(
            target=self._process_events, name="matchsight-channel", daemon=True
        )
        self._processor_thread.start()

    def stop(self) -> None:
        self._running = False
        if self._processor_thread:
            self._processor_thread.join(timeout=5)
            self._processor_thread = None

    def _process_events(self) -> None:
        while self._running:
            try:
                event = self._queue.get(timeout=1)
            except queue.Empty:
                continue
            self.dispatch(event)

    @property
    def is_running(self) -> bool:
        return self._running
