"""
Cheap presence checks for the game client.

These run before any network call: when neither the lockfile nor the game
process exists there is nothing to poll.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)


def is_process_running(process_name: str) -> bool:
    """
    Check whether a process with the given executable name is alive.

    Args:
        process_name: Executable name, compared case-insensitively

    Returns:
        True if at least one matching process exists
    """
    wanted = process_name.lower()
    try:
        for proc in psutil.process_iter(["name"]):
            try:
                name = proc.info["name"]
                if name and name.lower() == wanted:
                    return True
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
    except psutil.Error as e:
        logger.error(f"Process check failed: {e}")
    return False


@dataclass(frozen=True)
class TargetStatus:
    """Result of a descriptor + process check."""

    descriptor_present: bool
    process_running: bool

    @property
    def present(self) -> bool:
        """Either signal is enough to keep waiting for the local API."""
        return self.descriptor_present or self.process_running


class TargetProbe:
    """Combines the lockfile check with the process check."""

    def __init__(
        self,
        descriptor_present: Callable[[], bool],
        process_name: str,
        process_check: Callable[[str], bool] = is_process_running,
    ):
        self._descriptor_present = descriptor_present
        self.process_name = process_name
        self._process_check = process_check

    def check(self) -> TargetStatus:
        return TargetStatus(
            descriptor_present=self._descriptor_present(),
            process_running=self._process_check(self.process_name),
        )

    def process_running(self) -> bool:
        return self._process_check(self.process_name)
