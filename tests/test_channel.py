"""Tests for the snapshot channel."""

import threading

from matchsight.core.models import MatchContext, SessionState, Snapshot
from matchsight.infra.channel import PhaseChange, SnapshotChannel


def make_snapshot(state=SessionState.MENUS, match_id=None):
    return Snapshot(context=MatchContext(match_id=match_id), state=state)


class TestSnapshotChannel:
    """Tests for SnapshotChannel."""

    def test_initialization(self):
        channel = SnapshotChannel()
        assert channel.latest is None
        assert channel.phase is None
        assert not channel.is_running

    def test_publish_keeps_latest(self):
        channel = SnapshotChannel()
        first, second = make_snapshot(match_id="1"), make_snapshot(match_id="2")
        channel.publish(first)
        channel.publish(second)

        assert channel.latest is second
        assert channel.pending == 2

    def test_full_queue_drops_oldest(self):
        channel = SnapshotChannel(max_pending=2)
        for i in range(5):
            channel.publish(make_snapshot(match_id=str(i)))

        assert channel.pending == 2
        assert channel.latest.context.match_id == "4"

    def test_decorators_register_callbacks(self):
        channel = SnapshotChannel()

        @channel.on_snapshot
        def on_snapshot(snapshot):
            pass

        @channel.on_phase_change
        def on_phase(change):
            pass

        assert on_snapshot in channel._snapshot_callbacks
        assert on_phase in channel._phase_callbacks

    def test_dispatch_routes_by_type(self):
        channel = SnapshotChannel()
        snapshots, changes = [], []
        channel.on_snapshot(snapshots.append)
        channel.on_phase_change(changes.append)

        channel.dispatch(make_snapshot())
        channel.dispatch(PhaseChange(SessionState.MENUS, SessionState.PREGAME))

        assert len(snapshots) == 1
        assert changes == [PhaseChange(SessionState.MENUS, SessionState.PREGAME)]

    def test_callback_error_does_not_stop_others(self):
        channel = SnapshotChannel()
        received = []

        @channel.on_snapshot
        def broken(snapshot):
            raise RuntimeError("render failed")

        channel.on_snapshot(received.append)
        channel.dispatch(make_snapshot())

        assert len(received) == 1

    def test_phase_changed_updates_phase(self):
        channel = SnapshotChannel()
        channel.phase_changed(SessionState.NOT_RUNNING, SessionState.MENUS)
        assert channel.phase is SessionState.MENUS

    def test_processor_thread_delivers(self):
        channel = SnapshotChannel()
        delivered = threading.Event()
        channel.on_snapshot(lambda snapshot: delivered.set())

        channel.start()
        try:
            channel.publish(make_snapshot())
            assert delivered.wait(timeout=3)
        finally:
            channel.stop()
        assert not channel.is_running
