"""
Matchsight Web API

Read-only FastAPI view of the live session for UI clients that poll.

Provides:
- Health check
- Current phase and loop status
- Latest published snapshot
- Rank summary for the players in the latest snapshot
"""

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from matchsight import __version__
from matchsight.core.models import SessionState
from matchsight.infra.channel import SnapshotChannel


class StatusResponse(BaseModel):
    """Loop status for ``GET /status``."""

    state: str
    running: bool
    restarts: int = 0
    player_count: int = 0
    match_id: str | None = None


class RankEntry(BaseModel):
    subject: str
    name: str
    agent: str
    tier: int
    label: str
    rr: int
    peak_label: str
    previous_label: str
    leaderboard: int
    icon_url: str | None = None
    peak_icon_url: str | None = None


def create_app(channel: SnapshotChannel, service=None) -> FastAPI:
    """
    Build the API around a channel.

    Args:
        channel: Channel the session loop publishes to
        service: Optional LiveService, reported in ``/status``

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="Matchsight",
        description="Live match state from the local game client",
        version=__version__,
    )

    def current_state() -> SessionState:
        if channel.phase is not None:
            return channel.phase
        latest = channel.latest
        return latest.state if latest is not None else SessionState.NOT_RUNNING

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    @app.get("/status", response_model=StatusResponse)
    async def status():
        latest = channel.latest
        return StatusResponse(
            state=current_state().value,
            running=service.is_running if service is not None else channel.is_running,
            restarts=service.restarts if service is not None else 0,
            player_count=len(latest.players) if latest is not None else 0,
            match_id=latest.context.match_id if latest is not None else None,
        )

    @app.get("/snapshot")
    async def snapshot():
        """The latest published snapshot."""
        latest = channel.latest
        if latest is None:
            raise HTTPException(status_code=404, detail="No snapshot published yet")
        return latest.to_dict()

    @app.get("/ranks", response_model=list[RankEntry])
    async def ranks():
        """Rank summary per player, in snapshot order."""
        latest = channel.latest
        if latest is None:
            return []
        return [
            RankEntry(
                subject=p.subject,
                name=p.name,
                agent=p.agent_name,
                tier=p.rank.tier,
                label=p.rank.label,
                rr=p.rank.rr,
                peak_label=p.rank.peak_label,
                previous_label=p.rank.previous_label,
                leaderboard=p.rank.leaderboard,
                icon_url=p.rank.icon_url,
                peak_icon_url=p.rank.peak_icon_url,
            )
            for p in latest.players
        ]

    return app
