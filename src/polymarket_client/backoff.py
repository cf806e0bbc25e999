"""
Reconnection backoff controller for the streaming session.

Delays grow exponentially from initial_delay, are capped at max_delay and
carry random jitter so many clients do not reconnect in lockstep. The
controller gives up once max_retries retries or max_elapsed seconds of
continuous failure are exceeded.
"""

import logging
import random
import time
from typing import Callable, Optional

from .models.config import BackoffConfig

logger = logging.getLogger(__name__)


class ReconnectionController:
    """Tracks consecutive connection failures and yields retry delays."""

    def __init__(
        self,
        config: Optional[BackoffConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or BackoffConfig()
        self._rng = rng or random.Random()
        self._clock = clock
        self._attempts = 0
        self._failing_since: Optional[float] = None

    @property
    def attempts(self) -> int:
        """Retries handed out since the last successful connection."""
        return self._attempts

    def reset(self) -> None:
        """Forget failures after a successful connection."""
        if self._attempts:
            logger.debug(f"Backoff reset after {self._attempts} retries")
        self._attempts = 0
        self._failing_since = None

    def compute_delay(self, attempt: int) -> float:
        """Jittered delay for the given zero-based retry number."""
        cfg = self.config
        try:
            base = min(cfg.max_delay, cfg.initial_delay * (cfg.multiplier ** attempt))
        except OverflowError:
            # Growth past the float range is already far beyond the cap
            base = cfg.max_delay if cfg.initial_delay else 0.0
        if cfg.jitter:
            base *= 1 + cfg.jitter * (2 * self._rng.random() - 1)
        return max(0.0, min(cfg.max_delay, base))

    def next_delay(self) -> Optional[float]:
        """
        Delay before the next retry.

        Returns:
            Seconds to wait, or None if the retry budget is exhausted
        """
        now = self._clock()
        if self._failing_since is None:
            self._failing_since = now

        cfg = self.config
        if cfg.max_retries is not None and self._attempts >= cfg.max_retries:
            logger.warning(f"Retry budget exhausted after {self._attempts} retries")
            return None
        if cfg.max_elapsed is not None and now - self._failing_since >= cfg.max_elapsed:
            logger.warning(
                f"Retry time budget exhausted after {now - self._failing_since:.1f}s"
            )
            return None

        delay = self.compute_delay(self._attempts)
        self._attempts += 1
        return delay
