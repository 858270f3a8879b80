"""Notification payload rendering for alert candidates.

Turns an AlertCandidate into an email (subject, plain text, HTML) and a
compact SMS body. Tone and suggestions follow a per-metric severity band
derived from the observed value; bands are fixed health guidance and are
unrelated to the user's own threshold.

Rendering is pure: no clock reads, no I/O. The same candidate always
yields the same payloads.
"""

import html
from dataclasses import dataclass
from datetime import datetime

from ecowatch.alerts.schemas import (
    AlertCandidate,
    EmailPayload,
    NotificationSet,
    SmsPayload,
    UserAlertPreference,
    UserProfile,
)
from ecowatch.alerts.triggers import format_number

DEFAULT_SETTINGS_URL = "https://ecowatch.local/settings"
DEFAULT_SMS_MAX_LENGTH = 160
_ELLIPSIS = "..."


@dataclass(frozen=True)
class SeverityBand:
    """Messaging tier for values at or above ``min_value``."""

    name: str
    min_value: float
    health_impact: str
    suggestions: tuple[str, ...]


@dataclass(frozen=True)
class MetricProfile:
    """Presentation details for one alert type."""

    alert_type: str
    title: str
    sms_label: str
    unit: str
    sms_unit: str
    color: str
    bands: tuple[SeverityBand, ...]  # highest first; last band is the floor
    quick_tips: tuple[str, ...]

    def band_for(self, value: float) -> SeverityBand:
        for band in self.bands:
            if value >= band.min_value:
                return band
        return self.bands[-1]


_FLOOR = float("-inf")

METRIC_PROFILES: dict[str, MetricProfile] = {
    "AQI": MetricProfile(
        alert_type="AQI",
        title="High Air Quality Index",
        sms_label="AQI",
        unit="AQI",
        sms_unit="",
        color="#dc2626",
        bands=(
            SeverityBand(
                "hazardous", 301,
                "Hazardous air quality. Everyone is at risk of serious health "
                "effects. Avoid all outdoor activity.",
                (
                    "Stay indoors and avoid all outdoor activities",
                    "Wear a certified N95/KN95 mask if you must go outside",
                    "Close all windows to keep indoor air clean",
                    "Run HEPA air purifiers indoors",
                    "Avoid driving; vehicle exhaust adds to outdoor pollution",
                    "Postpone sports, exercise, and outdoor events",
                ),
            ),
            SeverityBand(
                "very_unhealthy", 201,
                "Very unhealthy air quality. Everyone may experience serious "
                "health effects. Outdoor activities should be avoided.",
                (
                    "Minimize time spent outside",
                    "Use an N95 mask for necessary outdoor activities",
                    "Children, elderly, and people with respiratory issues should stay indoors",
                    "Run an air purifier to maintain indoor air quality",
                    "Keep windows closed to reduce outdoor air infiltration",
                    "Avoid strenuous outdoor exercise",
                ),
            ),
            SeverityBand(
                "unhealthy", 151,
                "Unhealthy air quality. Everyone may begin to experience health "
                "effects; sensitive groups may experience more serious effects.",
                (
                    "Sensitive groups should limit outdoor activities",
                    "Wear a mask outdoors, especially children, elderly, and people with asthma",
                    "Avoid heavy workouts outdoors",
                    "Use an air purifier to improve indoor air quality",
                    "Close windows when possible",
                    "Watch vulnerable family members for signs of respiratory distress",
                ),
            ),
            SeverityBand(
                "sensitive", 101,
                "Unhealthy for sensitive groups. People with respiratory "
                "conditions should limit prolonged outdoor exertion.",
                (
                    "Sensitive groups should reduce outdoor activities",
                    "Consider a mask if you have a respiratory condition",
                    "Take breaks during outdoor activities",
                    "Ventilate indoor spaces or use an air purifier",
                    "Watch for coughing or shortness of breath",
                ),
            ),
            SeverityBand(
                "moderate", _FLOOR,
                "Air quality has crossed your personal threshold. Unusually "
                "sensitive people should consider limiting outdoor exertion.",
                (
                    "Check real-time AQI before planning outdoor activities",
                    "Keep inhalers and prescribed medication at hand",
                ),
            ),
        ),
        quick_tips=(
            "Check real-time AQI updates before planning any outdoor activities",
            "Create a clean room at home with sealed windows and an air purifier",
            "Stay well hydrated",
            "Consider working from home to minimize commute exposure",
        ),
    ),
    "HEAT": MetricProfile(
        alert_type="HEAT",
        title="High Temperature Alert",
        sms_label="Temp",
        unit="°C",
        sms_unit="C",
        color="#ea580c",
        bands=(
            SeverityBand(
                "extreme", 40,
                "Extreme heat conditions. High risk of heat stroke and heat "
                "exhaustion. Outdoor activities are dangerous.",
                (
                    "Minimize outdoor exposure",
                    "Drink water constantly to stay hydrated",
                    "Stay in air-conditioned or shaded spaces",
                    "Do not go out during peak heat hours (10 AM - 4 PM)",
                    "Wear lightweight, light-colored, loose-fitting clothes",
                    "Postpone sports, exercise, and outdoor work",
                    "Take cool baths or showers to lower body temperature",
                    "Dizziness, nausea, or headache need immediate medical help",
                ),
            ),
            SeverityBand(
                "high", 35,
                "Dangerous heat levels. Risk of heat-related illness increases "
                "significantly.",
                (
                    "Exercise caution outdoors",
                    "Drink plenty of water throughout the day",
                    "Avoid intense outdoor exercise",
                    "Wear light, loose-fitting clothing",
                    "Seek shade and limit time outdoors",
                    "Check on elderly people and children for heat exhaustion",
                ),
            ),
            SeverityBand(
                "elevated", _FLOOR,
                "High temperatures detected. Extended exposure may cause "
                "discomfort and health issues.",
                (
                    "Stay hydrated",
                    "Prefer shaded or cool indoor spaces during midday",
                ),
            ),
        ),
        quick_tips=(
            "Heat exhaustion signs: heavy sweating, weakness, dizziness, nausea",
            "Never leave children, elderly people, or pets in parked vehicles",
            "Eat light meals",
            "Apply SPF 30+ sunscreen before going outdoors",
        ),
    ),
    "NOISE": MetricProfile(
        alert_type="NOISE",
        title="High Noise Level",
        sms_label="Noise",
        unit="dB",
        sms_unit="dB",
        color="#7c3aed",
        bands=(
            SeverityBand(
                "dangerous", 85,
                "Prolonged exposure above 85 dB can cause permanent hearing "
                "damage. Immediate protection is recommended.",
                (
                    "Limit time in this area",
                    "Wear earplugs or noise-cancelling headphones",
                    "Stay indoors with windows and doors closed",
                    "Use white noise or soft music to mask the noise",
                    "Take regular breaks from the noise exposure",
                ),
            ),
            SeverityBand(
                "elevated", 70,
                "Elevated noise levels. Extended exposure may cause hearing "
                "damage and increased stress.",
                (
                    "Avoid prolonged exposure",
                    "Consider earplugs if staying in the area",
                    "Keep windows closed",
                    "Move to a quieter location if possible",
                ),
            ),
            SeverityBand(
                "moderate", _FLOOR,
                "Noise has crossed your personal threshold.",
                (
                    "Give your ears regular quiet breaks",
                ),
            ),
        ),
        quick_tips=(
            "Safe exposure: 85 dB for 8 hours, 88 dB for 4 hours, 91 dB for 2 hours",
            "Headphones: 60% volume for at most 60 minutes",
            "Chronic noise raises stress hormones and blood pressure",
        ),
    ),
    "HUMIDITY": MetricProfile(
        alert_type="HUMIDITY",
        title="High Humidity Alert",
        sms_label="Humidity",
        unit="%",
        sms_unit="%",
        color="#0891b2",
        bands=(
            SeverityBand(
                "very_high", 80,
                "Very high humidity. Increased discomfort, harder body "
                "temperature regulation, and potential for mold growth.",
                (
                    "Use air conditioning or a dehumidifier indoors",
                    "Check for and prevent mold in damp areas",
                    "Use exhaust fans in bathrooms and kitchens",
                    "Wear breathable, moisture-wicking fabrics",
                ),
            ),
            SeverityBand(
                "high", _FLOOR,
                "High humidity detected. May cause discomfort and affect "
                "people with respiratory conditions.",
                (
                    "Improve ventilation when outdoor humidity is lower",
                    "Avoid overwatering indoor plants",
                ),
            ),
        ),
        quick_tips=(
            "Ideal indoor humidity is 30-50%",
            "Condensation on windows is a sign of high indoor humidity",
        ),
    ),
}


def get_profile(alert_type: str) -> MetricProfile:
    """Look up presentation details for an alert type."""
    try:
        return METRIC_PROFILES[alert_type]
    except KeyError:
        raise ValueError(f"Unknown alert type {alert_type!r}") from None


def severity_band(alert_type: str, value: float) -> SeverityBand:
    """Severity band for an observed value."""
    return get_profile(alert_type).band_for(value)


def generate_suggestions(alert_type: str, value: float) -> list[str]:
    """Recommended actions for an observed value."""
    return list(severity_band(alert_type, value).suggestions)


def build_notifications(
    candidate: AlertCandidate,
    preference: UserAlertPreference,
    profile: UserProfile | None,
) -> NotificationSet:
    """Render payloads with the default settings link and SMS cap."""
    return NotificationBuilder().build(candidate, preference, profile)


def _format_time(value: datetime) -> str:
    text = value.strftime("%d %b %Y, %H:%M")
    if value.tzinfo is not None:
        text += f" {value.tzname()}"
    return text


def _with_unit(value: float, unit: str) -> str:
    number = format_number(value)
    if not unit:
        return number
    if unit in ("%", "°C"):
        return f"{number}{unit}"
    return f"{number} {unit}"


class NotificationBuilder:
    """Renders channel payloads for alert candidates.

    Args:
        settings_url: Link to the alert settings page, shown in emails.
        sms_max_length: Hard cap on SMS body length.
    """

    def __init__(
        self,
        settings_url: str = DEFAULT_SETTINGS_URL,
        sms_max_length: int = DEFAULT_SMS_MAX_LENGTH,
    ) -> None:
        self._settings_url = settings_url
        self._sms_max_length = sms_max_length

    def build(
        self,
        candidate: AlertCandidate,
        preference: UserAlertPreference,
        profile: UserProfile | None,
    ) -> NotificationSet:
        """Build payloads for the channels the user enabled and can receive.

        A channel is included only if the user enabled it and the profile
        has the matching contact method.
        """
        if profile is None:
            return NotificationSet()

        email = None
        if preference.email_alerts and profile.email:
            email = self.build_email(candidate)

        sms = None
        if preference.sms_alerts and profile.phone:
            sms = self.build_sms(candidate)

        return NotificationSet(email=email, sms=sms)

    def build_email(self, candidate: AlertCandidate) -> EmailPayload:
        """Render subject, plain-text, and HTML bodies."""
        profile = get_profile(candidate.alert_type)
        band = profile.band_for(candidate.value)
        subject = f"EcoWatch Alert: {profile.title} in {candidate.location}"
        return EmailPayload(
            subject=subject,
            text=self._render_text(candidate, profile, band),
            html=self._render_html(candidate, profile, band),
        )

    def build_sms(self, candidate: AlertCandidate) -> SmsPayload:
        """Render a short plain SMS body within the length cap."""
        profile = get_profile(candidate.alert_type)
        value = format_number(candidate.value) + profile.sms_unit
        limit = format_number(candidate.threshold) + profile.sms_unit
        header = f"EcoWatch Alert\n{profile.sms_label}: {value} (limit: {limit})\n"
        location_prefix = "Location: "

        room = self._sms_max_length - len(header) - len(location_prefix)
        location = candidate.location
        if len(location) > room and room > len(_ELLIPSIS):
            location = location[: room - len(_ELLIPSIS)] + _ELLIPSIS

        body = header + location_prefix + location
        if len(body) > self._sms_max_length:
            body = body[: self._sms_max_length - len(_ELLIPSIS)] + _ELLIPSIS
        return SmsPayload(body=body)

    def _render_text(
        self,
        candidate: AlertCandidate,
        profile: MetricProfile,
        band: SeverityBand,
    ) -> str:
        actions = "\n".join(
            f"{i}. {s}" for i, s in enumerate(band.suggestions, start=1)
        )
        tips = "\n".join(f"- {t}" for t in profile.quick_tips)
        return (
            f"EcoWatch Alert: {profile.title}\n"
            f"\n"
            f"{candidate.message}\n"
            f"\n"
            f"Current level: {_with_unit(candidate.value, profile.unit)}\n"
            f"Your threshold: {_with_unit(candidate.threshold, profile.unit)}\n"
            f"Location: {candidate.location}\n"
            f"Recorded at: {_format_time(candidate.recorded_at)}\n"
            f"\n"
            f"Health impact:\n{band.health_impact}\n"
            f"\n"
            f"Recommended actions:\n{actions}\n"
            f"\n"
            f"Quick tips:\n{tips}\n"
            f"\n"
            f"---\n"
            f"Manage your alert settings: {self._settings_url}\n"
        )

    def _render_html(
        self,
        candidate: AlertCandidate,
        profile: MetricProfile,
        band: SeverityBand,
    ) -> str:
        esc = html.escape
        actions = "".join(
            f'<li style="margin-bottom: 8px;">{esc(s)}</li>'
            for s in band.suggestions
        )
        tips = "".join(
            f'<li style="margin-bottom: 6px;">{esc(t)}</li>'
            for t in profile.quick_tips
        )
        return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>EcoWatch Alert</title></head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f5f5f5; color: #1e293b;">
  <table width="100%" cellpadding="0" cellspacing="0" style="padding: 20px 0;">
    <tr><td align="center">
      <table width="600" cellpadding="0" cellspacing="0" style="background-color: #ffffff; border-radius: 12px;">
        <tr><td style="background-color: {profile.color}; padding: 24px 40px; text-align: center; color: #ffffff;">
          <h1 style="margin: 0; font-size: 24px;">EcoWatch Alert</h1>
          <p style="margin: 8px 0 0 0; font-size: 16px;">{esc(profile.title)}</p>
        </td></tr>
        <tr><td style="padding: 32px 40px;">
          <p style="font-size: 16px;">{esc(candidate.message)}</p>
          <p style="font-size: 32px; font-weight: 700; color: {profile.color}; margin: 16px 0;">{esc(_with_unit(candidate.value, profile.unit))}</p>
          <p><strong>Location:</strong> {esc(candidate.location)}</p>
          <p><strong>Your threshold:</strong> {esc(_with_unit(candidate.threshold, profile.unit))}</p>
          <p><strong>Recorded at:</strong> {esc(_format_time(candidate.recorded_at))}</p>
          <div style="background-color: #fef3c7; border-left: 4px solid #f59e0b; padding: 16px; margin: 24px 0;">
            <h3 style="margin: 0 0 8px 0; font-size: 16px;">Health impact</h3>
            <p style="margin: 0; font-size: 14px;">{esc(band.health_impact)}</p>
          </div>
          <h3 style="font-size: 16px;">Recommended actions</h3>
          <ul style="padding-left: 20px; font-size: 14px;">{actions}</ul>
          <h4 style="font-size: 14px;">Quick tips</h4>
          <ul style="padding-left: 20px; font-size: 13px;">{tips}</ul>
        </td></tr>
        <tr><td style="background-color: #f8fafc; padding: 24px 40px; text-align: center; font-size: 12px; color: #64748b;">
          <p style="margin: 0 0 8px 0;">You're receiving this because you set alert thresholds in EcoWatch.</p>
          <a href="{esc(self._settings_url, quote=True)}" style="color: #3b82f6;">Manage Alert Settings</a>
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>
"""
