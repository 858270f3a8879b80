"""Schema definitions for readings, user alert settings, and alert records.

``AlertRecord`` maps 1:1 to the ``alert_events`` database table. Each
record represents one metric of one reading that crossed one user's
threshold. The remaining types are in-memory only: readings and
preferences flow in from the ingestion path and the preference store,
payloads and send results flow out to the delivery channels.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

AlertType = Literal["AQI", "HEAT", "HUMIDITY", "NOISE"]

VALID_ALERT_TYPES: frozenset[str] = frozenset({
    "AQI",
    "HEAT",
    "HUMIDITY",
    "NOISE",
})

ChannelName = Literal["email", "sms"]

VALID_CHANNELS: frozenset[str] = frozenset({"email", "sms"})

DeliveryStatus = Literal["sent", "failed", "timeout", "rate_limited", "unavailable"]

VALID_DELIVERY_STATUSES: frozenset[str] = frozenset({
    "sent",
    "failed",
    "timeout",
    "rate_limited",
    "unavailable",
})


@dataclass(frozen=True)
class MetricField:
    """Links an alert type to its reading attribute and preference threshold."""

    alert_type: str
    reading_field: str
    threshold_field: str


METRIC_FIELDS: tuple[MetricField, ...] = (
    MetricField("AQI", "aqi", "aqi_threshold"),
    MetricField("HEAT", "temperature", "temp_threshold"),
    MetricField("HUMIDITY", "humidity", "humidity_threshold"),
    MetricField("NOISE", "noise_level", "noise_threshold"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_metric(value: Any) -> float | None:
    """Convert a loosely typed metric value to float.

    Booleans, NaN, infinities, and anything ``float()`` rejects are
    treated as absent rather than as zero.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return _utcnow()


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class Reading:
    """One timestamped environmental measurement snapshot for a location.

    Attributes:
        location: Free-form location name, normalized upstream.
        recorded_at: When the measurement was taken.
        aqi: Air quality index.
        temperature: Temperature in °C.
        humidity: Relative humidity in %.
        noise_level: Noise in dB.
        latitude: Optional station latitude (persisted only).
        longitude: Optional station longitude (persisted only).
        source: Upstream provider tag (persisted only).
    """

    location: str
    recorded_at: datetime = field(default_factory=_utcnow)
    aqi: float | None = None
    temperature: float | None = None
    humidity: float | None = None
    noise_level: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    source: str | None = None

    def metric(self, reading_field: str) -> float | None:
        """Return a metric value as float, or None when absent or malformed."""
        return coerce_metric(getattr(self, reading_field, None))

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "location": self.location,
            "recorded_at": self.recorded_at.isoformat(),
            "aqi": self.aqi,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "noise_level": self.noise_level,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Reading":
        """Create a Reading from an ingestion payload.

        Numeric strings are coerced; malformed metric values become None.

        Args:
            data: Dictionary with reading fields.

        Returns:
            Reading instance.
        """
        return cls(
            location=str(data.get("location") or "").strip(),
            recorded_at=_parse_timestamp(data.get("recorded_at")),
            aqi=coerce_metric(data.get("aqi")),
            temperature=coerce_metric(data.get("temperature")),
            humidity=coerce_metric(data.get("humidity")),
            noise_level=coerce_metric(data.get("noise_level")),
            latitude=coerce_metric(data.get("latitude")),
            longitude=coerce_metric(data.get("longitude")),
            source=_clean_text(data.get("source")),
        )


@dataclass
class UserAlertPreference:
    """A user's alert configuration from ``user_alert_preferences``.

    A threshold of None means the metric is not monitored; 0 is a real
    threshold. An empty ``monitored_locations`` list means everywhere.
    """

    user_id: str
    aqi_threshold: float | None = None
    temp_threshold: float | None = None
    humidity_threshold: float | None = None
    noise_threshold: float | None = None
    email_alerts: bool = False
    sms_alerts: bool = False
    monitored_locations: list[str] = field(default_factory=list)

    @property
    def has_any_channel(self) -> bool:
        return self.email_alerts or self.sms_alerts

    def threshold_for(self, alert_type: str) -> float | None:
        """Return the configured threshold for an alert type, or None."""
        for metric in METRIC_FIELDS:
            if metric.alert_type == alert_type:
                return coerce_metric(getattr(self, metric.threshold_field))
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserAlertPreference":
        """Create a preference from a store row or dictionary."""
        locations = data.get("monitored_locations") or []
        return cls(
            user_id=str(data["user_id"]),
            aqi_threshold=coerce_metric(data.get("aqi_threshold")),
            temp_threshold=coerce_metric(data.get("temp_threshold")),
            humidity_threshold=coerce_metric(data.get("humidity_threshold")),
            noise_threshold=coerce_metric(data.get("noise_threshold")),
            email_alerts=bool(data.get("email_alerts", False)),
            sms_alerts=bool(data.get("sms_alerts", False)),
            monitored_locations=[str(loc) for loc in locations],
        )


@dataclass
class UserProfile:
    """Contact details for a user. Either method may be missing."""

    user_id: str
    email: str | None = None
    phone: str | None = None

    def __post_init__(self) -> None:
        self.email = _clean_text(self.email)
        self.phone = _clean_text(self.phone)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        return cls(
            user_id=str(data["user_id"]),
            email=data.get("email"),
            phone=data.get("phone"),
        )


@dataclass(frozen=True)
class AlertCandidate:
    """An in-memory, not yet persisted threshold breach.

    Attributes:
        user_id: User whose threshold was crossed.
        alert_type: Which metric breached (AQI, HEAT, HUMIDITY, NOISE).
        value: Observed metric value.
        threshold: The user's configured threshold.
        location: Reading location.
        recorded_at: Reading timestamp.
        message: Pre-rendered human-readable description.
    """

    user_id: str
    alert_type: str
    value: float
    threshold: float
    location: str
    recorded_at: datetime
    message: str

    def __post_init__(self) -> None:
        if self.alert_type not in VALID_ALERT_TYPES:
            raise ValueError(
                f"Invalid alert_type {self.alert_type!r}. "
                f"Must be one of: {sorted(VALID_ALERT_TYPES)}"
            )


@dataclass
class AlertRecord:
    """A persisted alert record from the ``alert_events`` table.

    Append-only: created once per candidate and never updated.
    """

    user_id: str
    alert_type: str
    value: float
    threshold: float
    location: str
    recorded_at: datetime
    message: str
    alert_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.alert_type not in VALID_ALERT_TYPES:
            raise ValueError(
                f"Invalid alert_type {self.alert_type!r}. "
                f"Must be one of: {sorted(VALID_ALERT_TYPES)}"
            )

    @classmethod
    def from_candidate(cls, candidate: AlertCandidate) -> "AlertRecord":
        return cls(
            user_id=candidate.user_id,
            alert_type=candidate.alert_type,
            value=candidate.value,
            threshold=candidate.threshold,
            location=candidate.location,
            recorded_at=candidate.recorded_at,
            message=candidate.message,
        )

    def to_candidate(self) -> AlertCandidate:
        return AlertCandidate(
            user_id=self.user_id,
            alert_type=self.alert_type,
            value=self.value,
            threshold=self.threshold,
            location=self.location,
            recorded_at=self.recorded_at,
            message=self.message,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "type": self.alert_type,
            "value": self.value,
            "threshold": self.threshold,
            "location": self.location,
            "recorded_at": self.recorded_at.isoformat(),
            "message": self.message,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AlertRecord":
        """Create an AlertRecord from a dictionary or database row.

        Args:
            data: Mapping with alert fields. ``type`` and ``alert_type``
                are both accepted for the metric type.

        Returns:
            AlertRecord instance.
        """
        return cls(
            alert_id=str(data.get("alert_id") or uuid.uuid4()),
            user_id=str(data["user_id"]),
            alert_type=data.get("alert_type") or data["type"],
            value=float(data["value"]),
            threshold=float(data["threshold"]),
            location=data["location"],
            recorded_at=_parse_timestamp(data.get("recorded_at")),
            message=data["message"],
            created_at=_parse_timestamp(data.get("created_at")),
        )


@dataclass(frozen=True)
class EmailPayload:
    """Rendered email: subject plus plain-text and HTML bodies."""

    subject: str
    text: str
    html: str


@dataclass(frozen=True)
class SmsPayload:
    """Rendered SMS body (plain text, length-capped)."""

    body: str


@dataclass(frozen=True)
class NotificationSet:
    """Per-channel payloads for one candidate. Missing channels are None."""

    email: EmailPayload | None = None
    sms: SmsPayload | None = None


@dataclass(frozen=True)
class SendResult:
    """Outcome of one delivery attempt.

    ``unavailable`` is the expected result for a channel without provider
    credentials; it is a configuration state, not an exception.
    """

    status: str
    reason: str | None = None
    provider_id: str | None = None
    remaining_minutes: int | None = None

    def __post_init__(self) -> None:
        if self.status not in VALID_DELIVERY_STATUSES:
            raise ValueError(
                f"Invalid status {self.status!r}. "
                f"Must be one of: {sorted(VALID_DELIVERY_STATUSES)}"
            )

    @property
    def ok(self) -> bool:
        return self.status == "sent"

    @classmethod
    def sent(cls, provider_id: str | None = None) -> "SendResult":
        return cls(status="sent", provider_id=provider_id)

    @classmethod
    def failed(cls, reason: str) -> "SendResult":
        return cls(status="failed", reason=reason)

    @classmethod
    def timed_out(cls) -> "SendResult":
        return cls(status="timeout", reason="timeout")

    @classmethod
    def rate_limited(cls, remaining_minutes: int) -> "SendResult":
        return cls(
            status="rate_limited",
            reason="rate_limited",
            remaining_minutes=remaining_minutes,
        )

    @classmethod
    def unavailable(cls, reason: str = "no_api_key") -> "SendResult":
        return cls(status="unavailable", reason=reason)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ok": self.ok}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.provider_id is not None:
            data["provider_id"] = self.provider_id
        if self.remaining_minutes is not None:
            data["remaining_minutes"] = self.remaining_minutes
        return data


@dataclass
class Delivery:
    """One payload addressed to one destination on one channel."""

    channel: str
    destination: str
    payload: EmailPayload | SmsPayload
    user_id: str | None = None
    alert_type: str | None = None

    def __post_init__(self) -> None:
        if self.channel not in VALID_CHANNELS:
            raise ValueError(
                f"Invalid channel {self.channel!r}. "
                f"Must be one of: {sorted(VALID_CHANNELS)}"
            )

    @property
    def rate_limit_key(self) -> str:
        """User id when known, otherwise the destination address."""
        return self.user_id or self.destination


@dataclass
class DeliveryReceipt:
    """A delivery paired with its outcome."""

    delivery: Delivery
    result: SendResult

    @property
    def channel(self) -> str:
        return self.delivery.channel


@dataclass
class DispatchSummary:
    """Result of evaluating and dispatching one reading.

    Attributes:
        created: Alert records persisted.
        email_sent: Emails the provider accepted.
        sms_sent: SMS messages the provider accepted.
        receipts: Every delivery attempt with its outcome.
    """

    created: int = 0
    email_sent: int = 0
    sms_sent: int = 0
    receipts: list[DeliveryReceipt] = field(default_factory=list)

    def to_dict(self) -> dict[str, int]:
        return {
            "created": self.created,
            "email_sent": self.email_sent,
            "sms_sent": self.sms_sent,
        }
