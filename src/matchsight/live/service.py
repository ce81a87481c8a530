"""
Live service: wires the collaborators into a SessionStateMachine and keeps a
loop running on a background thread.

A loop that dies is abandoned, not repaired: after ``restart_delay`` a fresh
machine is built and started. In-flight fetches of the old one finish on
their own and are discarded.
"""

import logging
import threading
from collections.abc import Callable

from matchsight.core.config import MatchsightConfig, get_config
from matchsight.infra.channel import SnapshotChannel
from matchsight.infra.parallel import create_executor
from matchsight.infra.process import TargetProbe
from matchsight.integrations.catalog import Catalog, CatalogProvider
from matchsight.integrations.client import LocalClient
from matchsight.integrations.content import ContentService
from matchsight.integrations.names import NameResolver
from matchsight.integrations.rank import RankService
from matchsight.integrations.stats import StatsService
from matchsight.live.ally_cache import AllyCache
from matchsight.live.loadouts import LoadoutResolver
from matchsight.live.players import PlayerRecordBuilder
from matchsight.live.publisher import SnapshotPublisher
from matchsight.live.push import PushBuffer
from matchsight.live.retry import RetryPolicy
from matchsight.live.session import SessionStateMachine

logger = logging.getLogger(__name__)


def create_session_machine(
    config: MatchsightConfig | None = None,
    channel: SnapshotChannel | None = None,
    transport=None,
    catalog: Catalog | None = None,
    push: PushBuffer | None = None,
) -> SessionStateMachine:
    """
    Build a SessionStateMachine with its own transport, caches and pool.

    Args:
        config: Fixed configuration; when omitted the global config is read
            on every tick so display settings can change while running
        channel: Publish boundary; snapshots are dropped when omitted
        transport: Transport override (defaults to a LocalClient)
        catalog: Preloaded catalog (fetched from the catalog service otherwise)
        push: Optional push buffer fed by a notification socket

    Returns:
        A machine ready for ``run``
    """
    current = config or get_config()
    polling = current.polling

    if transport is None:
        transport = LocalClient(
            lockfile_path=current.client.lockfile_path,
            log_path=current.client.log_path,
            timeout=polling.fetch_timeout,
        )
    if catalog is None:
        catalog = CatalogProvider(current.client.catalog_url, timeout=current.client.catalog_timeout).load()

    content = ContentService(transport)
    ranks = RankService(transport, content)
    stats = StatsService(transport)
    names = NameResolver(transport, hide_names=current.live.hide_names, agent_names=catalog.agents)
    retry = RetryPolicy(
        failure_threshold=polling.failure_threshold,
        max_patience=polling.max_patience,
        base_timeout=polling.fetch_timeout,
        timeout_step=polling.timeout_step,
        max_timeout=polling.max_timeout,
    )
    builder = PlayerRecordBuilder(
        transport,
        catalog,
        names,
        ranks,
        stats,
        executor=create_executor(polling.max_workers),
        ally_cache=AllyCache(),
        timeout=retry.timeout,
    )

    if config is not None:
        settings = lambda: config.live  # noqa: E731
    else:
        settings = lambda: get_config().live  # noqa: E731

    return SessionStateMachine(
        transport=transport,
        catalog=catalog,
        probe=TargetProbe(lambda: transport.descriptor().present, current.client.process_name),
        content=content,
        ranks=ranks,
        stats=stats,
        names=names,
        loadouts=LoadoutResolver(transport, catalog),
        builder=builder,
        publisher=SnapshotPublisher(channel.publish if channel else lambda snapshot: None),
        push=push,
        settings=settings,
        polling=polling,
        retry=retry,
        on_phase_change=channel.phase_changed if channel else None,
    )


class LiveService:
    """
    Runs session loops on a daemon thread, restarting after a fatal error.

    Example usage:
        channel = SnapshotChannel()
        service = LiveService(channel=channel)
        channel.start()
        service.start()
        # ...
        service.stop()
    """

    def __init__(
        self,
        factory: Callable[[], SessionStateMachine] | None = None,
        channel: SnapshotChannel | None = None,
        restart_delay: float | None = None,
        push: PushBuffer | None = None,
    ):
        """
        Initialize the service.

        Args:
            factory: Builds a fresh machine per loop (defaults to create_session_machine)
            channel: Channel handed to the default factory
            restart_delay: Seconds before replacing a dead loop
            push: Buffer fed by the caller's event socket, shared by every
                machine the default factory builds
        """
        self.channel = channel
        self.push = push
        self.factory = factory or (lambda: create_session_machine(channel=channel, push=push))
        self.restart_delay = restart_delay if restart_delay is not None else get_config().polling.restart_delay

        self.machine: SessionStateMachine | None = None
        self.restarts = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self, blocking: bool = False) -> None:
        """
        Start the loop thread.

        Args:
            blocking: If True, blocks until stop() is called
        """
        if self.is_running:
            logger.warning("Live service is already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._supervise, name="matchsight-loop", daemon=True)
        self._thread.start()
        logger.info("Live service started")

        if blocking:
            try:
                while self._thread.is_alive():
                    self._thread.join(timeout=1)
            except KeyboardInterrupt:
                self.stop()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Live service stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def state(self):
        return self.machine.state if self.machine else None

    def _supervise(self) -> None:
        while not self._stop_event.is_set():
            self.machine = None
            try:
                self.machine = self.factory()
                self.machine.run(self._stop_event)
            except Exception as e:
                logger.exception(f"Session loop died: {e}")
            finally:
                if self.machine is not None:
                    self.machine.builder.executor.shutdown(wait=False, cancel_futures=True)

            if self._stop_event.is_set():
                break
            self.restarts += 1
            logger.info(f"Restarting session loop in {self.restart_delay:.0f}s (restart {self.restarts})")
            self._stop_event.wait(self.restart_delay)
