"""Notification dispatcher delivering payloads across channels.

Each channel's deliveries go out strictly one after another, spaced by a
``SendPacer`` to respect provider throughput limits. Different channels
run concurrently because they hit independent providers. Every recipient
is isolated: a cooldown denial, a timeout, or an exception yields a
``SendResult`` for that recipient and the batch carries on.

Pattern: Orchestrator delegating to stateless channels.
"""

import asyncio
import logging
import time

from ecowatch.alerts.channels import NotificationChannel
from ecowatch.alerts.config import AlertConfig
from ecowatch.alerts.rate_limit import Clock, RateLimiter, SendPacer
from ecowatch.alerts.schemas import Delivery, DeliveryReceipt, SendResult
from ecowatch.observability.metrics import MetricsCollector, get_metrics

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Delivers batches of notifications with cooldowns and pacing.

    Args:
        channels: Available delivery channels, keyed by their ``name``.
        rate_limiter: Cooldown gate; one is created from ``config`` if omitted.
        config: Alert configuration (timeouts, pacing intervals).
        pacers: Optional per-channel pacers (tests inject fake sleeps here).
        metrics: Metrics collector; defaults to the global one.
        clock: Monotonic clock used for latency measurement.
    """

    def __init__(
        self,
        channels: list[NotificationChannel],
        rate_limiter: RateLimiter | None = None,
        config: AlertConfig | None = None,
        pacers: dict[str, SendPacer] | None = None,
        metrics: MetricsCollector | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._config = config or AlertConfig()
        self._channels: dict[str, NotificationChannel] = {
            ch.name: ch for ch in channels
        }
        self._rate_limiter = rate_limiter or RateLimiter(self._config)
        self._pacers: dict[str, SendPacer] = dict(pacers or {})
        self._metrics = metrics or get_metrics()
        self._clock = clock

    @property
    def channels(self) -> dict[str, NotificationChannel]:
        """Registered channels (for inspection/testing)."""
        return self._channels

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    def _pacer(self, channel_name: str) -> SendPacer:
        pacer = self._pacers.get(channel_name)
        if pacer is None:
            pacer = SendPacer(self._config.send_interval_seconds(channel_name))
            self._pacers[channel_name] = pacer
        return pacer

    async def dispatch(self, delivery: Delivery) -> SendResult:
        """Send one delivery through its channel.

        Order: channel availability, cooldown check, pacing, then
        a provider call bounded by ``provider_timeout_seconds``. The
        cooldown starts only when the provider accepts the message. A
        concurrent attempt for the same recipient and channel waits for
        this one to finish and is then checked against its outcome.

        Args:
            delivery: Payload, destination, and owning user.

        Returns:
            SendResult for this recipient. Never raises for delivery errors.
        """
        channel = self._channels.get(delivery.channel)
        if channel is None:
            result = SendResult.unavailable("channel_disabled")
            self._metrics.record_notification(delivery.channel, result.status)
            return result
        if not channel.configured:
            result = SendResult.unavailable("no_api_key")
            self._metrics.record_notification(delivery.channel, result.status)
            return result

        key = delivery.rate_limit_key
        async with self._rate_limiter.slot(key, delivery.channel):
            decision = self._rate_limiter.check(key, delivery.channel)
            if not decision.allowed:
                logger.info(
                    "Rate limited %s to %s (%d min remaining)",
                    delivery.channel, delivery.destination, decision.remaining_minutes,
                )
                result = SendResult.rate_limited(decision.remaining_minutes)
                self._metrics.record_notification(delivery.channel, result.status)
                return result

            await self._pacer(delivery.channel).wait()
            start = self._clock()
            try:
                result = await asyncio.wait_for(
                    channel.send(
                        delivery.payload,
                        delivery.destination,
                        delivery.user_id,
                    ),
                    timeout=self._config.provider_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "%s to %s timed out after %.1fs",
                    delivery.channel, delivery.destination,
                    self._config.provider_timeout_seconds,
                )
                result = SendResult.timed_out()
            except Exception as e:
                logger.error(
                    "%s to %s raised: %s", delivery.channel, delivery.destination, e,
                )
                result = SendResult.failed(str(e) or type(e).__name__)
            latency = self._clock() - start

            if result.ok:
                self._rate_limiter.record_sent(key, delivery.channel)
            self._metrics.record_notification(
                delivery.channel, result.status, latency=latency,
            )
            return result

    async def dispatch_channel(
        self,
        channel_name: str,
        deliveries: list[Delivery],
    ) -> list[DeliveryReceipt]:
        """Send deliveries for one channel sequentially.

        A failure for one recipient does not affect delivery to others.
        """
        receipts: list[DeliveryReceipt] = []
        for delivery in deliveries:
            try:
                result = await self.dispatch(delivery)
            except Exception as e:
                logger.error(
                    "Unexpected error dispatching %s to %s: %s",
                    channel_name, delivery.destination, e,
                )
                result = SendResult.failed(str(e) or type(e).__name__)
            receipts.append(DeliveryReceipt(delivery=delivery, result=result))
        return receipts

    async def dispatch_batch(self, deliveries: list[Delivery]) -> list[DeliveryReceipt]:
        """Send a batch across all channels.

        Channels run concurrently with each other, sequentially within.

        Args:
            deliveries: Deliveries for any mix of channels.

        Returns:
            Receipts grouped by channel, in first-seen channel order.
        """
        by_channel: dict[str, list[Delivery]] = {}
        for delivery in deliveries:
            by_channel.setdefault(delivery.channel, []).append(delivery)

        if not by_channel:
            return []

        grouped = await asyncio.gather(*(
            self.dispatch_channel(name, items)
            for name, items in by_channel.items()
        ))

        receipts = [receipt for group in grouped for receipt in group]
        self._record_delivery(receipts)
        return receipts

    def _record_delivery(self, receipts: list[DeliveryReceipt]) -> None:
        """Log per-channel batch results."""
        for name in sorted({r.channel for r in receipts}):
            channel_receipts = [r for r in receipts if r.channel == name]
            sent = sum(1 for r in channel_receipts if r.result.ok)
            failed = len(channel_receipts) - sent

            if failed and not sent:
                logger.warning(
                    "Channel %s delivered none of %d notifications",
                    name, len(channel_receipts),
                )
            elif failed:
                logger.info(
                    "Channel %s partial delivery: sent=%d not_sent=%d",
                    name, sent, failed,
                )
            else:
                logger.debug("Channel %s delivered all %d notifications", name, sent)
