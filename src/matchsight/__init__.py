"""
Matchsight - live match overlay data for the Valorant client

Watches the game client's local API and publishes a de-duplicated snapshot of
the current phase (menus, agent select, match) with each player's rank, recent
stats and equipped skin.

Usage:
    from matchsight import SnapshotChannel, LiveService

    channel = SnapshotChannel()

    @channel.on_snapshot
    def show(snapshot):
        print(snapshot.state, [p.name for p in snapshot.players])

    channel.start()
    LiveService(channel=channel).start(blocking=True)
"""

__version__ = "0.1.0"
__author__ = "Matchsight Contributors"


def __getattr__(name):
    """Lazy import so the CLI starts without loading the HTTP stack."""
    if name == "SessionState":
        from matchsight.core.models import SessionState
        return SessionState
    elif name == "Snapshot":
        from matchsight.core.models import Snapshot
        return Snapshot
    elif name == "PlayerRecord":
        from matchsight.core.models import PlayerRecord
        return PlayerRecord
    elif name == "SnapshotChannel":
        from matchsight.infra.channel import SnapshotChannel
        return SnapshotChannel
    elif name == "SessionStateMachine":
        from matchsight.live.session import SessionStateMachine
        return SessionStateMachine
    elif name == "LiveService":
        from matchsight.live.service import LiveService
        return LiveService
    elif name == "create_session_machine":
        from matchsight.live.service import create_session_machine
        return create_session_machine
    raise AttributeError(f"module 'matchsight' has no attribute '{name}'")


__all__ = [
    # Version
    "__version__",
    # Model
    "SessionState",
    "Snapshot",
    "PlayerRecord",
    # Live
    "SnapshotChannel",
    "SessionStateMachine",
    "LiveService",
    "create_session_machine",
]
