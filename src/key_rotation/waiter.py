"""PropagationWaiter: bounded polling across eventual-consistency lag.

Credential stores acknowledge a new credential before the authentication
path honours it. The waiter retries a check at a fixed interval up to a
fixed number of attempts. It cannot tell "not propagated yet" from
"broken"; both simply exhaust the attempts.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from key_rotation.config import DEFAULT_MAX_ATTEMPTS, DEFAULT_POLL_INTERVAL
from key_rotation.errors import VerificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollResult:
    """Outcome of a bounded poll.

    Parameters
    ----------
    succeeded:
        True if the check passed before attempts ran out.
    attempts:
        Number of times the check ran.
    """

    succeeded: bool
    attempts: int

    @property
    def timed_out(self) -> bool:
        return not self.succeeded


class PropagationWaiter:
    """Poll a check with a fixed sleep before every attempt.

    Parameters
    ----------
    sleep:
        Blocking sleep function. Tests pass a no-op to skip real delays.
    """

    def __init__(self, sleep: Optional[Callable[[float], None]] = None) -> None:
        self._sleep = sleep or time.sleep

    def poll_until(
        self,
        check: Callable[[], bool],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> PollResult:
        """Run *check* until it returns True or *max_attempts* is reached.

        A check raising :class:`VerificationError` counts as a failed attempt.

        Raises
        ------
        ValueError
            If *max_attempts* is less than 1 or *interval* is negative.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval < 0:
            raise ValueError("interval must not be negative")

        for attempt in range(1, max_attempts + 1):
            self._sleep(interval)
            try:
                passed = check()
            except VerificationError as exc:
                logger.debug("Attempt %d/%d errored: %s", attempt, max_attempts, exc)
                passed = False
            if passed:
                logger.debug("Check passed on attempt %d/%d", attempt, max_attempts)
                return PollResult(succeeded=True, attempts=attempt)
            logger.debug("Attempt %d/%d failed", attempt, max_attempts)

        return PollResult(succeeded=False, attempts=max_attempts)
