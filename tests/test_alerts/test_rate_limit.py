"""Tests for per-recipient cooldowns and send pacing."""

import pytest

from ecowatch.alerts.config import AlertConfig
from ecowatch.alerts.rate_limit import CooldownState, RateLimiter, SendPacer


@pytest.fixture
def limiter(fake_clock):
    return RateLimiter(config=AlertConfig(), state=CooldownState(), clock=fake_clock)


# ── CooldownState ────────────────────────────────────────


class TestCooldownState:
    def test_fresh_slot_has_no_cooldown(self):
        state = CooldownState()
        assert state.remaining("u1", "email", 900, now=0.0) == 0.0
        assert state.last_sent("u1", "email") is None

    def test_commit_starts_window(self):
        state = CooldownState()
        state.commit("u1", "email", now=100.0)
        assert state.last_sent("u1", "email") == 100.0
        assert state.remaining("u1", "email", 900, now=400.0) == 600.0
        assert state.remaining("u1", "email", 900, now=1000.0) == 0.0
        assert len(state) == 1

    def test_zero_interval_never_blocks(self):
        state = CooldownState()
        state.commit("u1", "sms", now=0.0)
        assert state.remaining("u1", "sms", 0, now=0.0) == 0.0

    def test_slot_lock_per_key_and_channel(self):
        state = CooldownState()
        lock = state.slot_lock("u1", "email")
        assert state.slot_lock("u1", "email") is lock
        assert state.slot_lock("u1", "sms") is not lock
        assert state.slot_lock("u2", "email") is not lock

    def test_clear(self):
        state = CooldownState()
        state.commit("u1", "email", now=0.0)
        state.clear()
        assert len(state) == 0


# ── RateLimiter ──────────────────────────────────────────


class TestRateLimiter:
    def test_first_send_allowed(self, limiter):
        decision = limiter.check("u1", "email")
        assert decision.allowed
        assert decision.remaining_minutes == 0

    def test_second_send_within_window_denied(self, limiter, fake_clock):
        limiter.check("u1", "email")
        limiter.record_sent("u1", "email")

        fake_clock.advance(60)
        decision = limiter.check("u1", "email")
        assert not decision.allowed
        assert decision.remaining_minutes == 14

    def test_remaining_minutes_round_up(self, limiter, fake_clock):
        limiter.check("u1", "email")
        limiter.record_sent("u1", "email")

        fake_clock.advance(14 * 60 + 1)
        assert limiter.remaining_minutes("u1", "email") == 1

    def test_allowed_after_window(self, limiter, fake_clock):
        limiter.check("u1", "email")
        limiter.record_sent("u1", "email")

        fake_clock.advance(15 * 60)
        assert limiter.allow("u1", "email")
        assert limiter.check("u1", "email").allowed

    def test_channels_independent(self, limiter):
        limiter.check("u1", "email")
        limiter.record_sent("u1", "email")
        assert limiter.check("u1", "sms").allowed

    def test_recipients_independent(self, limiter):
        limiter.check("u1", "email")
        limiter.record_sent("u1", "email")
        assert limiter.check("u2", "email").allowed

    def test_check_without_send_does_not_start_cooldown(self, limiter):
        assert limiter.check("u1", "sms").allowed
        assert limiter.check("u1", "sms").allowed
        assert limiter.state.last_sent("u1", "sms") is None

    def test_slot_shared_across_limiters(self):
        state = CooldownState()
        first = RateLimiter(state=state)
        second = RateLimiter(state=state)
        assert first.slot("u1", "sms") is second.slot("u1", "sms")

    def test_allow_matches_check(self, limiter):
        assert limiter.allow("u1", "email")
        limiter.record_sent("u1", "email")
        assert not limiter.allow("u1", "email")
        assert not limiter.check("u1", "email").allowed

    def test_custom_interval(self, limiter, fake_clock):
        limiter.check("u1", "email", min_interval_minutes=1)
        limiter.record_sent("u1", "email")
        fake_clock.advance(61)
        assert limiter.check("u1", "email", min_interval_minutes=1).allowed

    def test_per_channel_intervals(self, fake_clock):
        config = AlertConfig(email_min_interval_minutes=5, sms_min_interval_minutes=30)
        limiter = RateLimiter(config=config, clock=fake_clock)
        for channel in ("email", "sms"):
            limiter.check("u1", channel)
            limiter.record_sent("u1", channel)
        assert limiter.remaining_minutes("u1", "email") == 5
        assert limiter.remaining_minutes("u1", "sms") == 30

    def test_disabled(self, fake_clock):
        limiter = RateLimiter(
            config=AlertConfig(rate_limit_enabled=False), clock=fake_clock,
        )
        limiter.check("u1", "email")
        limiter.record_sent("u1", "email")
        assert limiter.check("u1", "email").allowed
        assert limiter.remaining_minutes("u1", "email") == 0

    def test_shared_state(self, fake_clock):
        state = CooldownState()
        first = RateLimiter(state=state, clock=fake_clock)
        second = RateLimiter(state=state, clock=fake_clock)
        first.check("u1", "email")
        first.record_sent("u1", "email")
        assert not second.check("u1", "email").allowed


# ── SendPacer ────────────────────────────────────────────


class TestSendPacer:
    @pytest.fixture
    def sleeps(self):
        return []

    @pytest.fixture
    def fake_sleep(self, sleeps):
        async def _sleep(seconds):
            sleeps.append(seconds)
        return _sleep

    @pytest.mark.asyncio
    async def test_first_call_does_not_sleep(self, fake_clock, fake_sleep, sleeps):
        pacer = SendPacer(0.5, clock=fake_clock, sleep=fake_sleep)
        assert await pacer.wait() == 0.0
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_back_to_back_calls_spaced(self, fake_clock, fake_sleep, sleeps):
        pacer = SendPacer(0.5, clock=fake_clock, sleep=fake_sleep)
        delays = [await pacer.wait() for _ in range(3)]
        assert delays == [0.0, 0.5, 1.0]
        assert sleeps == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_idle_gap_resets(self, fake_clock, fake_sleep, sleeps):
        pacer = SendPacer(0.5, clock=fake_clock, sleep=fake_sleep)
        await pacer.wait()
        fake_clock.advance(2.0)
        assert await pacer.wait() == 0.0
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_zero_interval(self, fake_clock, fake_sleep, sleeps):
        pacer = SendPacer(0.0, clock=fake_clock, sleep=fake_sleep)
        for _ in range(5):
            await pacer.wait()
        assert sleeps == []
        assert pacer.interval == 0.0
