"""
Rate limiting module for outfit generation calls.
Enforces a cooldown between consecutive Gemini calls plus a cap on the
number of calls inside a trailing time window. Pure state, no I/O.
"""

import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from closet.config import (
    RATE_LIMIT_COOLDOWN_MS,
    RATE_LIMIT_MAX_CALLS,
    RATE_LIMIT_WINDOW_MS,
    logger,
)

COOLDOWN_REASON = "cooldown"
WINDOW_LIMIT_REASON = "window limit"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RateLimitConfig:
    """Rate limiter settings, all durations in milliseconds."""

    cooldown_ms: int = RATE_LIMIT_COOLDOWN_MS
    max_calls: int = RATE_LIMIT_MAX_CALLS
    window_ms: int = RATE_LIMIT_WINDOW_MS

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.cooldown_ms < 0:
            raise ValueError("cooldown_ms must be >= 0")
        if self.max_calls < 1:
            raise ValueError("max_calls must be >= 1")
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    reason: Optional[str] = None
    wait_time_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RateLimiter:
    """
    Cooldown + sliding window limiter for accepted generation calls.

    Timestamps are only appended by record_call(), which must run exactly
    once per external call actually made. Entries older than the current
    window are pruned lazily when the history is read for writing or status.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._calls: List[int] = []
        # kept apart from the window history: a cooldown may outlast the window
        self._last_call: Optional[int] = None

    def update_config(
        self,
        *,
        cooldown_ms: Optional[int] = None,
        max_calls: Optional[int] = None,
        window_ms: Optional[int] = None,
    ) -> RateLimitConfig:
        """Change settings; history is kept and judged under the new values."""
        updated = RateLimitConfig(
            cooldown_ms=self.config.cooldown_ms if cooldown_ms is None else cooldown_ms,
            max_calls=self.config.max_calls if max_calls is None else max_calls,
            window_ms=self.config.window_ms if window_ms is None else window_ms,
        )
        self.config = updated

        logger.info(f"Rate limiter reconfigured: {asdict(self.config)}")
        return self.config

    def _window_calls(self, now: int) -> List[int]:
        window_ms = self.config.window_ms
        return [ts for ts in self._calls if now - ts < window_ms]

    def _prune(self, now: int) -> None:
        self._calls = self._window_calls(now)

    def can_make_call(self) -> RateLimitDecision:
        """Decide whether a call may be made now. Never mutates state."""
        now = self._clock()
        config = self.config

        if self._last_call is not None:
            since_last = now - self._last_call
            if since_last < config.cooldown_ms:
                return RateLimitDecision(
                    allowed=False,
                    reason=COOLDOWN_REASON,
                    wait_time_ms=config.cooldown_ms - since_last,
                )

        in_window = self._window_calls(now)
        if len(in_window) >= config.max_calls:
            freed_by = in_window[len(in_window) - config.max_calls]
            return RateLimitDecision(
                allowed=False,
                reason=WINDOW_LIMIT_REASON,
                wait_time_ms=max(0, freed_by + config.window_ms - now),
            )

        return RateLimitDecision(allowed=True)

    def record_call(self) -> None:
        now = self._clock()
        self._prune(now)
        self._calls.append(now)
        self._last_call = now
        logger.debug(f"Generation call recorded at {now}")

    def next_available_at(self) -> int:
        """Earliest ms timestamp at which can_make_call() would allow."""
        now = self._clock()
        candidates = [now]

        if self._last_call is not None:
            candidates.append(self._last_call + self.config.cooldown_ms)

        in_window = self._window_calls(now)
        if in_window and len(in_window) >= self.config.max_calls:
            # the call that has to expire to free one slot
            idx = len(in_window) - self.config.max_calls
            candidates.append(in_window[idx] + self.config.window_ms)

        return max(candidates)

    def get_status(self) -> Dict[str, Any]:
        now = self._clock()
        self._prune(now)

        return {
            "calls_in_window": len(self._calls),
            "max_calls": self.config.max_calls,
            "cooldown_ms": self.config.cooldown_ms,
            "window_ms": self.config.window_ms,
            "last_call_at": self._last_call,
            "next_available_at": self.next_available_at(),
        }


__all__ = [
    "COOLDOWN_REASON",
    "WINDOW_LIMIT_REASON",
    "RateLimitConfig",
    "RateLimitDecision",
    "RateLimiter",
]
