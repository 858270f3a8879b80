"""Per-recipient cooldowns and per-channel send pacing.

Two independent throttles keep notifications polite:

- ``RateLimiter`` enforces a minimum interval between two notifications
  to the same recipient on the same channel. Its ``CooldownState`` is an
  explicit object so the orchestrator owns its lifetime and tests can
  inject a fresh one.
- ``SendPacer`` spaces consecutive provider calls on one channel
  (leaky bucket), replacing a fixed sleep between loop iterations.

Both take an injectable clock; the pacer also takes an injectable sleep
so tests run without real delays.
"""

import asyncio
import math
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ecowatch.alerts.config import AlertConfig

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class CooldownState:
    """Process-scoped last-sent timestamps keyed by (recipient, channel).

    Each slot also owns an ``asyncio.Lock``. The dispatcher holds it from
    the cooldown check until the provider answers, so a second attempt
    for the same slot waits and then re-checks against the last
    successful send. The threading lock only guards the dictionaries and
    is never held across an await.
    """

    def __init__(self) -> None:
        self._last_sent: dict[tuple[str, str], float] = {}
        self._slot_locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._last_sent)

    def last_sent(self, key: str, channel: str) -> float | None:
        with self._lock:
            return self._last_sent.get((key, channel))

    def slot_lock(self, key: str, channel: str) -> asyncio.Lock:
        """Lock serializing sends for one (key, channel)."""
        slot = (key, channel)
        with self._lock:
            lock = self._slot_locks.get(slot)
            if lock is None:
                lock = asyncio.Lock()
                self._slot_locks[slot] = lock
            return lock

    def remaining(
        self,
        key: str,
        channel: str,
        min_interval: float,
        now: float,
    ) -> float:
        """Seconds left in the cooldown window (0.0 if sending is allowed)."""
        if min_interval <= 0:
            return 0.0
        with self._lock:
            prev = self._last_sent.get((key, channel))
        if prev is None:
            return 0.0
        return max(0.0, prev + min_interval - now)

    def commit(self, key: str, channel: str, now: float) -> None:
        """Record a successful send."""
        with self._lock:
            self._last_sent[(key, channel)] = now

    def clear(self) -> None:
        with self._lock:
            self._last_sent.clear()


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a cooldown check."""

    allowed: bool
    remaining_minutes: int = 0


class RateLimiter:
    """Cooldown gate applied independently per channel.

    Keys are the user id when known, otherwise the destination address,
    so profile-less sends are still throttled per destination.
    """

    def __init__(
        self,
        config: AlertConfig | None = None,
        state: CooldownState | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._config = config or AlertConfig()
        self._state = state if state is not None else CooldownState()
        self._clock = clock

    @property
    def state(self) -> CooldownState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._config.rate_limit_enabled

    def _interval_seconds(
        self,
        channel: str,
        min_interval_minutes: float | None,
    ) -> float:
        if min_interval_minutes is None:
            min_interval_minutes = self._config.min_interval_minutes(channel)
        return min_interval_minutes * 60.0

    def allow(
        self,
        key: str,
        channel: str,
        min_interval_minutes: float | None = None,
    ) -> bool:
        """Check whether a send would currently be allowed."""
        if not self.enabled:
            return True
        interval = self._interval_seconds(channel, min_interval_minutes)
        return self._state.remaining(key, channel, interval, self._clock()) <= 0

    def remaining_minutes(
        self,
        key: str,
        channel: str,
        min_interval_minutes: float | None = None,
    ) -> int:
        """Whole minutes (rounded up) until the next send is allowed."""
        if not self.enabled:
            return 0
        interval = self._interval_seconds(channel, min_interval_minutes)
        remaining = self._state.remaining(key, channel, interval, self._clock())
        return math.ceil(remaining / 60.0)

    def slot(self, key: str, channel: str) -> asyncio.Lock:
        """Lock to hold across ``check``, the provider call and ``record_sent``."""
        return self._state.slot_lock(key, channel)

    def check(
        self,
        key: str,
        channel: str,
        min_interval_minutes: float | None = None,
    ) -> RateLimitDecision:
        """Check the cooldown for (key, channel).

        Only sends that succeeded count; call under ``slot`` so concurrent
        attempts see each other's outcome.
        """
        if not self.enabled:
            return RateLimitDecision(allowed=True)
        interval = self._interval_seconds(channel, min_interval_minutes)
        remaining = self._state.remaining(key, channel, interval, self._clock())
        if remaining > 0:
            return RateLimitDecision(
                allowed=False,
                remaining_minutes=math.ceil(remaining / 60.0),
            )
        return RateLimitDecision(allowed=True)

    def record_sent(self, key: str, channel: str) -> None:
        """Start the cooldown window for (key, channel)."""
        self._state.commit(key, channel, self._clock())


class SendPacer:
    """Leaky-bucket pacer enforcing a minimum gap between provider calls.

    Each ``wait()`` claims the next free slot before sleeping, so callers
    sharing a pacer are spaced even when they run concurrently.

    Usage:
        pacer = SendPacer(0.1)
        for delivery in batch:
            await pacer.wait()
            await channel.send(...)
    """

    def __init__(
        self,
        interval_seconds: float,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._interval = max(0.0, interval_seconds)
        self._clock = clock
        self._sleep = sleep
        self._next_slot = float("-inf")

    @property
    def interval(self) -> float:
        return self._interval

    async def wait(self) -> float:
        """Wait until the next send slot.

        Returns:
            Seconds slept (0.0 when the slot was already free).
        """
        now = self._clock()
        slot = max(now, self._next_slot)
        self._next_slot = slot + self._interval
        delay = slot - now
        if delay > 0:
            await self._sleep(delay)
        return delay
