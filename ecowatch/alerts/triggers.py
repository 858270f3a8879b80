"""Stateless threshold evaluation for readings.

Each metric is checked independently against the user's threshold and
yields an AlertCandidate on breach. No I/O, no state; persistence,
rate limiting, and delivery live in AlertService and the dispatcher.
"""

import logging

from ecowatch.alerts.locations import is_monitored
from ecowatch.alerts.schemas import (
    METRIC_FIELDS,
    AlertCandidate,
    MetricField,
    Reading,
    UserAlertPreference,
)

logger = logging.getLogger(__name__)


def format_number(value: float) -> str:
    """Render integral floats without a trailing ``.0``."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.1f}"


def format_breach_message(
    alert_type: str,
    value: float,
    threshold: float,
    location: str,
) -> str:
    """Build the human-readable message stored with an alert record."""
    v = format_number(value)
    t = format_number(threshold)
    if alert_type == "AQI":
        return f"AQI {v} in {location} exceeds threshold {t}"
    if alert_type == "HEAT":
        return f"Temperature {v}°C in {location} exceeds threshold {t}°C"
    if alert_type == "HUMIDITY":
        return f"Humidity {v}% in {location} exceeds threshold {t}%"
    return f"Noise {v} dB in {location} exceeds threshold {t} dB"


def check_metric(
    reading: Reading,
    preference: UserAlertPreference,
    metric: MetricField,
) -> AlertCandidate | None:
    """Check a single metric against the user's threshold.

    Fires when ``value >= threshold``. Returns None when the threshold is
    unset or the reading has no (or a malformed) value for the metric.

    Args:
        reading: Incoming reading.
        preference: User's alert configuration.
        metric: Which metric to check.

    Returns:
        AlertCandidate or None.
    """
    threshold = preference.threshold_for(metric.alert_type)
    if threshold is None:
        return None

    value = reading.metric(metric.reading_field)
    if value is None:
        return None

    if value < threshold:
        return None

    return AlertCandidate(
        user_id=preference.user_id,
        alert_type=metric.alert_type,
        value=value,
        threshold=threshold,
        location=reading.location,
        recorded_at=reading.recorded_at,
        message=format_breach_message(
            metric.alert_type, value, threshold, reading.location,
        ),
    )


def evaluate(
    reading: Reading,
    preference: UserAlertPreference,
) -> list[AlertCandidate]:
    """Run every metric check for one user.

    Metrics are not mutually exclusive: a single reading can breach all
    four thresholds and yield four candidates. A failure while checking
    one metric skips that metric only.

    Args:
        reading: Incoming reading.
        preference: User's alert configuration.

    Returns:
        List of candidates (may be empty).
    """
    candidates: list[AlertCandidate] = []
    for metric in METRIC_FIELDS:
        try:
            candidate = check_metric(reading, preference, metric)
        except (TypeError, ValueError) as e:
            logger.warning(
                "Skipping %s for user %s: %s",
                metric.alert_type, preference.user_id, e,
            )
            continue
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def evaluate_all(
    reading: Reading,
    preferences: list[UserAlertPreference],
) -> list[AlertCandidate]:
    """Evaluate a reading for every user who monitors its location.

    Users whose monitored locations do not match are skipped before any
    threshold is looked at.

    Args:
        reading: Incoming reading.
        preferences: Alertable users' configurations.

    Returns:
        Candidates across all users.
    """
    candidates: list[AlertCandidate] = []
    for preference in preferences:
        try:
            if not is_monitored(reading.location, preference.monitored_locations):
                logger.debug(
                    "User %s does not monitor %s",
                    preference.user_id, reading.location,
                )
                continue
            candidates.extend(evaluate(reading, preference))
        except Exception as e:
            logger.error(
                "Evaluation failed for user %s: %s", preference.user_id, e,
            )
    return candidates
