"""Sliding-window tokens-per-minute budget for model requests.

The limiter only decides; it never sleeps. Callers act on the returned
Reservation, e.g.::

    while True:
        reservation = limiter.reserve(prompt_tokens)
        if reservation.granted:
            break
        time.sleep(reservation.wait_seconds)
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional, Tuple

_log = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class Reservation:
    granted: bool
    wait_seconds: float = 0.0


@dataclass(frozen=True)
class RateBudget:
    """Read-only snapshot of the current window."""

    window_start: float
    tokens_used_in_window: int
    limit_per_minute: int

    @property
    def remaining(self) -> int:
        return max(self.limit_per_minute - self.tokens_used_in_window, 0)


class RateLimiter:
    """Tracks token usage over the trailing minute and gates new requests."""

    def __init__(
        self,
        limit_per_minute: int,
        min_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit_per_minute <= 0:
            raise ValueError("limit_per_minute must be positive")
        if min_interval < 0:
            raise ValueError("min_interval must not be negative")
        self.limit_per_minute = limit_per_minute
        self.min_interval = min_interval
        self._clock = clock
        self._usage: Deque[Tuple[float, int]] = deque()
        self._last_grant: Optional[float] = None
        self.total_tokens = 0

    def reserve(self, estimated_tokens: int) -> Reservation:
        """Grant and record the tokens now, or report how long to wait first."""
        if estimated_tokens < 0:
            raise ValueError("estimated_tokens must not be negative")
        now = self._clock()
        self._expire(now)

        if self._last_grant is not None and self.min_interval:
            elapsed = now - self._last_grant
            if elapsed < self.min_interval:
                return Reservation(granted=False, wait_seconds=self.min_interval - elapsed)

        used = self._used()
        if used + estimated_tokens <= self.limit_per_minute:
            return self._grant(now, estimated_tokens)

        if estimated_tokens > self.limit_per_minute:
            if not self._usage:
                # Can never fit; let it through alone rather than block forever
                _log.warning(
                    "Request of %d tokens exceeds the %d TPM limit; sending it on an empty window",
                    estimated_tokens,
                    self.limit_per_minute,
                )
                return self._grant(now, estimated_tokens)
            wait = self._usage[-1][0] + WINDOW_SECONDS - now
        else:
            wait = self._wait_until_fits(now, used, estimated_tokens)

        _log.info("TPM limit reached (%d/%d used); wait %.1fs", used, self.limit_per_minute, wait)
        return Reservation(granted=False, wait_seconds=wait)

    def record(self, tokens: int) -> None:
        """Account tokens known only after the call (e.g. the response) without gating."""
        if tokens <= 0:
            return
        now = self._clock()
        self._expire(now)
        self._usage.append((now, tokens))
        self.total_tokens += tokens

    def current_usage(self) -> int:
        self._expire(self._clock())
        return self._used()

    @property
    def budget(self) -> RateBudget:
        now = self._clock()
        self._expire(now)
        window_start = self._usage[0][0] if self._usage else now
        return RateBudget(
            window_start=window_start,
            tokens_used_in_window=self._used(),
            limit_per_minute=self.limit_per_minute,
        )

    def _grant(self, now: float, tokens: int) -> Reservation:
        if tokens:
            self._usage.append((now, tokens))
            self.total_tokens += tokens
        self._last_grant = now
        return Reservation(granted=True)

    def _wait_until_fits(self, now: float, used: int, tokens: int) -> float:
        freed = 0
        for timestamp, amount in self._usage:
            freed += amount
            if used - freed + tokens <= self.limit_per_minute:
                return timestamp + WINDOW_SECONDS - now
        return self._usage[-1][0] + WINDOW_SECONDS - now

    def _expire(self, now: float) -> None:
        while self._usage and now - self._usage[0][0] >= WINDOW_SECONDS:
            self._usage.popleft()

    def _used(self) -> int:
        return sum(amount for _, amount in self._usage)
