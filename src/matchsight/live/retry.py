"""
Retry and patience policy for presence polls.

Kept free of clocks and sleeps so the session loop can be tested tick by
tick: the loop reports outcomes and asks what to do next.
"""

from dataclasses import dataclass

from matchsight.core import constants


@dataclass
class RetryPolicy:
    """
    Consecutive-failure counter with a bounded patience extension.

    Below ``failure_threshold`` failures are transient. At the threshold the
    loop verifies the descriptor/process; while either is present it extends
    patience (one retry per call, with a longer timeout each time) until
    ``max_patience`` is used up.
    """

    failure_threshold: int = constants.FAILURE_THRESHOLD
    max_patience: int = constants.MAX_PATIENCE_RETRIES
    base_timeout: float = 5.0
    timeout_step: float = 1.0
    max_timeout: float = 15.0

    failures: int = 0
    patience: int = 0

    def record_success(self) -> None:
        self.failures = 0
        self.patience = 0

    def record_failure(self) -> None:
        self.failures += 1

    @property
    def threshold_reached(self) -> bool:
        return self.failures >= self.failure_threshold

    @property
    def is_patient(self) -> bool:
        """True while holding the current phase on patience retries."""
        return self.patience > 0

    @property
    def patience_exhausted(self) -> bool:
        return self.patience >= self.max_patience

    def extend_patience(self) -> bool:
        """
        Use one patience retry.

        Returns:
            False when no patience is left
        """
        if self.patience_exhausted:
            return False
        self.patience += 1
        return True

    def timeout(self) -> float:
        """Per-request timeout, growing with each patience retry."""
        return min(self.base_timeout + self.patience * self.timeout_step, self.max_timeout)

    def reset(self) -> None:
        self.failures = 0
        self.patience = 0


@dataclass
class AttemptSchedule:
    """Fixed number of attempts a fixed interval apart."""

    attempts: int = constants.INITIAL_DETECTION_ATTEMPTS
    interval: float = constants.INITIAL_DETECTION_INTERVAL

    def __iter__(self):
        return iter(range(self.attempts))

    def delay_after(self, attempt: int) -> float:
        """Sleep after ``attempt``; none after the last one."""
        return self.interval if attempt < self.attempts - 1 else 0.0
