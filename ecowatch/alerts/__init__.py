"""Alert engine: threshold evaluation and multi-channel notification dispatch.

Components:
- Reading / UserAlertPreference / UserProfile: Inputs to evaluation
- AlertCandidate / AlertRecord: Breaches before and after persistence
- AlertConfig: Pydantic settings for cooldowns, pacing, and timeouts
- is_monitored: Location matcher
- evaluate / evaluate_all: Stateless threshold evaluator
- NotificationBuilder: Email and SMS payload rendering
- RateLimiter / CooldownState / SendPacer: Cooldowns and send pacing
- NotificationChannel / EmailChannel / SmsChannel: Delivery channels
- NotificationDispatcher: Per-channel sequential delivery
- PreferenceRepository / AlertRepository: Store access
- AlertService: Orchestrator for one reading
"""

from ecowatch.alerts.channels import EmailChannel, NotificationChannel, SmsChannel
from ecowatch.alerts.config import AlertConfig
from ecowatch.alerts.dispatcher import NotificationDispatcher
from ecowatch.alerts.locations import is_monitored
from ecowatch.alerts.rate_limit import CooldownState, RateLimiter, SendPacer
from ecowatch.alerts.repository import AlertRepository, PreferenceRepository
from ecowatch.alerts.schemas import (
    VALID_ALERT_TYPES,
    VALID_CHANNELS,
    AlertCandidate,
    AlertRecord,
    AlertType,
    DispatchSummary,
    Reading,
    SendResult,
    UserAlertPreference,
    UserProfile,
)
from ecowatch.alerts.service import AlertService, DispatchState, create_alert_service
from ecowatch.alerts.templates import NotificationBuilder
from ecowatch.alerts.triggers import evaluate, evaluate_all

__all__ = [
    "AlertCandidate",
    "AlertConfig",
    "AlertRecord",
    "AlertRepository",
    "AlertService",
    "AlertType",
    "CooldownState",
    "DispatchState",
    "DispatchSummary",
    "EmailChannel",
    "NotificationBuilder",
    "NotificationChannel",
    "NotificationDispatcher",
    "PreferenceRepository",
    "RateLimiter",
    "Reading",
    "SendPacer",
    "SendResult",
    "SmsChannel",
    "UserAlertPreference",
    "UserProfile",
    "VALID_ALERT_TYPES",
    "VALID_CHANNELS",
    "create_alert_service",
    "evaluate",
    "evaluate_all",
    "is_monitored",
]
