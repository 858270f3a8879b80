"""Alert service orchestrating evaluation, persistence, and notification dispatch.

Entry point for one reading: load alertable users, match locations,
evaluate thresholds, persist alert records in one batch, then hand the
rendered payloads to the dispatcher. Threshold logic lives in stateless
functions in ``triggers.py``; payload rendering in ``templates.py``.

Only store failures (loading preferences/profiles, persisting records)
propagate. Nothing that happens during dispatch escapes this service.
"""

import enum
import logging

from ecowatch.alerts.channels import EmailChannel, SmsChannel
from ecowatch.alerts.config import AlertConfig
from ecowatch.alerts.dispatcher import NotificationDispatcher
from ecowatch.alerts.rate_limit import CooldownState, RateLimiter
from ecowatch.alerts.repository import AlertRepository, PreferenceRepository
from ecowatch.alerts.schemas import (
    AlertRecord,
    Delivery,
    DeliveryReceipt,
    DispatchSummary,
    Reading,
    UserAlertPreference,
    UserProfile,
)
from ecowatch.alerts.templates import NotificationBuilder
from ecowatch.alerts.triggers import evaluate_all
from ecowatch.config.settings import Settings, get_settings
from ecowatch.observability.metrics import MetricsCollector, get_metrics
from ecowatch.storage.database import Database

logger = logging.getLogger(__name__)


class DispatchState(enum.Enum):
    """Orchestrator states for one reading."""
    IDLE = "idle"
    LOADING_PREFERENCES = "loading_preferences"
    MATCHING_AND_EVALUATING = "matching_and_evaluating"
    PERSISTING = "persisting"
    DISPATCHING = "dispatching"
    DONE = "done"


class AlertService:
    """Orchestrator for alert evaluation, persistence, and delivery.

    State machine per reading:
    IDLE → LOADING_PREFERENCES → MATCHING_AND_EVALUATING → PERSISTING
    → DISPATCHING → DONE, with an early DONE when nothing breached.
    """

    def __init__(
        self,
        preference_repo: PreferenceRepository,
        alert_repo: AlertRepository,
        dispatcher: NotificationDispatcher,
        builder: NotificationBuilder | None = None,
        config: AlertConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._config = config or AlertConfig()
        self._preference_repo = preference_repo
        self._alert_repo = alert_repo
        self._dispatcher = dispatcher
        self._builder = builder or NotificationBuilder(
            sms_max_length=self._config.sms_max_length,
        )
        self._metrics = metrics or get_metrics()
        self._state = DispatchState.IDLE

    @property
    def state(self) -> DispatchState:
        """Last transition made by any evaluation on this service.

        Concurrent evaluations interleave here; each one's own progress is
        logged at debug level with its location.
        """
        return self._state

    def _transition(
        self,
        location: str,
        current: DispatchState,
        new: DispatchState,
    ) -> DispatchState:
        logger.debug("Alert evaluation for %s: %s → %s", location, current.value, new.value)
        self._state = new
        return new

    async def evaluate_and_dispatch(self, reading: Reading) -> DispatchSummary:
        """Main entry point: evaluate a reading and notify affected users.

        Args:
            reading: Newly ingested reading.

        Returns:
            Summary with records created and notifications sent per channel.

        Raises:
            Exception: Only when the preference store or alert persistence
                fails. Dispatch problems are reported in the summary.
        """
        state = self._transition(
            reading.location, DispatchState.IDLE, DispatchState.LOADING_PREFERENCES,
        )
        try:
            preferences = await self._preference_repo.load_alertable_preferences()
        except Exception as e:
            logger.error("Failed to load alert preferences: %s", e)
            self._metrics.record_reading("error")
            raise

        state = self._transition(reading.location, state, DispatchState.MATCHING_AND_EVALUATING)
        candidates = evaluate_all(reading, preferences)
        if not candidates:
            self._transition(reading.location, state, DispatchState.DONE)
            self._metrics.record_reading("no_alerts")
            logger.debug(
                "No thresholds crossed at %s (%d users checked)",
                reading.location, len(preferences),
            )
            return DispatchSummary()

        user_ids = sorted({c.user_id for c in candidates})
        try:
            profiles = await self._preference_repo.load_profiles(user_ids)
        except Exception as e:
            logger.error("Failed to load user profiles: %s", e)
            self._metrics.record_reading("error")
            raise

        state = self._transition(reading.location, state, DispatchState.PERSISTING)
        records = [AlertRecord.from_candidate(c) for c in candidates]
        try:
            persisted = await self._alert_repo.persist_batch(records)
        except Exception as e:
            logger.error(
                "Failed to persist %d alert record(s) for %s: %s",
                len(records), reading.location, e,
            )
            self._metrics.record_reading("error")
            raise

        for record in persisted:
            self._metrics.record_alerts_created(record.alert_type)
        logger.info(
            "Created %d alert event(s) for %s across %d user(s)",
            len(persisted), reading.location, len(user_ids),
        )

        # Dispatch notifications (never blocks alert persistence)
        state = self._transition(reading.location, state, DispatchState.DISPATCHING)
        summary = DispatchSummary(created=len(persisted))
        try:
            preference_map = {p.user_id: p for p in preferences}
            deliveries = self._build_deliveries(persisted, preference_map, profiles)
            receipts = await self._dispatcher.dispatch_batch(deliveries)
            summary.receipts = receipts
            summary.email_sent = _count_sent(receipts, "email")
            summary.sms_sent = _count_sent(receipts, "sms")
        except Exception as e:
            logger.error("Notification dispatch failed: %s", e)

        self._transition(reading.location, state, DispatchState.DONE)
        self._metrics.record_reading("alerted")
        logger.info(
            "Alert dispatch for %s: created=%d email_sent=%d sms_sent=%d",
            reading.location, summary.created, summary.email_sent, summary.sms_sent,
        )
        return summary

    def _build_deliveries(
        self,
        records: list[AlertRecord],
        preference_map: dict[str, UserAlertPreference],
        profiles: dict[str, UserProfile],
    ) -> list[Delivery]:
        """Render payloads for each record's enabled, reachable channels.

        A rendering failure for one record skips that record only.
        """
        deliveries: list[Delivery] = []
        for record in records:
            preference = preference_map.get(record.user_id)
            profile = profiles.get(record.user_id)
            if preference is None or profile is None:
                logger.warning("No contact profile for user %s", record.user_id)
                continue

            try:
                notifications = self._builder.build(
                    record.to_candidate(), preference, profile,
                )
            except Exception as e:
                logger.error(
                    "Failed to render %s alert for user %s: %s",
                    record.alert_type, record.user_id, e,
                )
                continue

            if notifications.email is not None and profile.email:
                deliveries.append(Delivery(
                    channel="email",
                    destination=profile.email,
                    payload=notifications.email,
                    user_id=record.user_id,
                    alert_type=record.alert_type,
                ))
            elif preference.email_alerts:
                logger.debug("User %s has email alerts on but no email", record.user_id)

            if notifications.sms is not None and profile.phone:
                deliveries.append(Delivery(
                    channel="sms",
                    destination=profile.phone,
                    payload=notifications.sms,
                    user_id=record.user_id,
                    alert_type=record.alert_type,
                ))
            elif preference.sms_alerts:
                logger.debug("User %s has SMS alerts on but no phone", record.user_id)

        return deliveries


def _count_sent(receipts: list[DeliveryReceipt], channel: str) -> int:
    return sum(1 for r in receipts if r.channel == channel and r.result.ok)


def create_alert_service(
    database: Database,
    settings: Settings | None = None,
    config: AlertConfig | None = None,
    cooldown_state: CooldownState | None = None,
) -> AlertService:
    """Wire an AlertService with database-backed stores and real providers.

    Args:
        database: Connected database.
        settings: Process settings (provider credentials, links).
        config: Alert configuration.
        cooldown_state: Shared cooldown state; a fresh one if omitted.

    Returns:
        Ready-to-use AlertService.
    """
    settings = settings or get_settings()
    config = config or AlertConfig()

    channels = [
        EmailChannel.from_settings(settings, timeout=config.provider_timeout_seconds),
        SmsChannel.from_settings(settings, timeout=config.provider_timeout_seconds),
    ]
    rate_limiter = RateLimiter(config=config, state=cooldown_state or CooldownState())
    dispatcher = NotificationDispatcher(
        channels=channels,
        rate_limiter=rate_limiter,
        config=config,
    )
    builder = NotificationBuilder(
        settings_url=settings.settings_url,
        sms_max_length=config.sms_max_length,
    )
    return AlertService(
        preference_repo=PreferenceRepository(database),
        alert_repo=AlertRepository(database),
        dispatcher=dispatcher,
        builder=builder,
        config=config,
    )
