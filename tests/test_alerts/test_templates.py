"""Tests for email and SMS payload rendering."""

from datetime import datetime, timezone

import pytest

from ecowatch.alerts.schemas import AlertCandidate, UserAlertPreference, UserProfile
from ecowatch.alerts.templates import (
    METRIC_PROFILES,
    NotificationBuilder,
    build_notifications,
    generate_suggestions,
    get_profile,
    severity_band,
)
from ecowatch.alerts.triggers import format_breach_message


def _candidate(alert_type="AQI", value=250.0, threshold=200.0, location="Jaipur"):
    return AlertCandidate(
        user_id="user_1",
        alert_type=alert_type,
        value=value,
        threshold=threshold,
        location=location,
        recorded_at=datetime(2026, 2, 7, 12, 30, tzinfo=timezone.utc),
        message=format_breach_message(alert_type, value, threshold, location),
    )


@pytest.fixture
def builder():
    return NotificationBuilder(settings_url="https://ecowatch.test/settings")


# ── Severity bands ───────────────────────────────────────


class TestSeverityBands:
    @pytest.mark.parametrize(
        "alert_type,value,band",
        [
            ("AQI", 350, "hazardous"),
            ("AQI", 301, "hazardous"),
            ("AQI", 250, "very_unhealthy"),
            ("AQI", 160, "unhealthy"),
            ("AQI", 120, "sensitive"),
            ("AQI", 90, "moderate"),
            ("HEAT", 41, "extreme"),
            ("HEAT", 36, "high"),
            ("HEAT", 30, "elevated"),
            ("NOISE", 90, "dangerous"),
            ("NOISE", 75, "elevated"),
            ("NOISE", 60, "moderate"),
            ("HUMIDITY", 85, "very_high"),
            ("HUMIDITY", 70, "high"),
        ],
    )
    def test_band_selection(self, alert_type, value, band):
        assert severity_band(alert_type, value).name == band

    def test_every_type_has_profile(self):
        assert set(METRIC_PROFILES) == {"AQI", "HEAT", "HUMIDITY", "NOISE"}

    def test_suggestions_follow_band(self):
        hazardous = generate_suggestions("AQI", 400)
        moderate = generate_suggestions("AQI", 90)
        assert hazardous
        assert moderate
        assert hazardous != moderate

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown alert type"):
            get_profile("PM25")


# ── Email ────────────────────────────────────────────────


class TestBuildEmail:
    def test_subject(self, builder):
        email = builder.build_email(_candidate())
        assert email.subject == "EcoWatch Alert: High Air Quality Index in Jaipur"

    def test_text_body(self, builder):
        email = builder.build_email(_candidate())
        assert "AQI 250 in Jaipur exceeds threshold 200" in email.text
        assert "Current level: 250 AQI" in email.text
        assert "Your threshold: 200 AQI" in email.text
        assert "07 Feb 2026, 12:30 UTC" in email.text
        assert "https://ecowatch.test/settings" in email.text

    def test_heat_units(self, builder):
        email = builder.build_email(_candidate("HEAT", 42.5, 40))
        assert email.subject == "EcoWatch Alert: High Temperature Alert in Jaipur"
        assert "Current level: 42.5°C" in email.text

    def test_html_contains_suggestions(self, builder):
        candidate = _candidate("NOISE", 90, 85)
        email = builder.build_email(candidate)
        for suggestion in generate_suggestions("NOISE", 90):
            assert suggestion in email.html
        assert "90 dB" in email.html

    def test_html_escapes_location(self, builder):
        email = builder.build_email(_candidate(location="<b>Town</b>"))
        assert "<b>Town</b>" not in email.html
        assert "&lt;b&gt;Town&lt;/b&gt;" in email.html

    def test_deterministic(self, builder):
        candidate = _candidate()
        assert builder.build_email(candidate) == builder.build_email(candidate)


# ── SMS ──────────────────────────────────────────────────


class TestBuildSms:
    def test_aqi_body(self, builder):
        sms = builder.build_sms(_candidate())
        assert sms.body == "EcoWatch Alert\nAQI: 250 (limit: 200)\nLocation: Jaipur"

    def test_heat_body(self, builder):
        sms = builder.build_sms(_candidate("HEAT", 42, 40, "Delhi"))
        assert sms.body == "EcoWatch Alert\nTemp: 42C (limit: 40C)\nLocation: Delhi"

    def test_humidity_and_noise_units(self, builder):
        assert "Humidity: 85% (limit: 80%)" in builder.build_sms(
            _candidate("HUMIDITY", 85, 80)
        ).body
        assert "Noise: 90dB (limit: 85dB)" in builder.build_sms(
            _candidate("NOISE", 90, 85)
        ).body

    def test_long_location_truncated(self, builder):
        sms = builder.build_sms(_candidate(location="Very Long Place " * 20))
        assert len(sms.body) <= 160
        assert sms.body.endswith("...")
        assert sms.body.startswith("EcoWatch Alert\nAQI: 250 (limit: 200)\nLocation: Very")

    def test_tiny_cap_truncates_whole_body(self):
        builder = NotificationBuilder(sms_max_length=40)
        sms = builder.build_sms(_candidate(location="Jaipur Municipal Corporation"))
        assert len(sms.body) == 40
        assert sms.body.endswith("...")

    def test_plain_text_only(self, builder):
        sms = builder.build_sms(_candidate(location="<Jaipur>"))
        assert "<Jaipur>" in sms.body


# ── Channel selection ────────────────────────────────────


class TestBuild:
    def test_email_only(self, builder):
        pref = UserAlertPreference(user_id="user_1", aqi_threshold=200, email_alerts=True)
        profile = UserProfile(user_id="user_1", email="a@b.com", phone="+15551234567")
        result = builder.build(_candidate(), pref, profile)
        assert result.email is not None
        assert result.sms is None

    def test_both_channels(self, builder):
        pref = UserAlertPreference(
            user_id="user_1", aqi_threshold=200, email_alerts=True, sms_alerts=True,
        )
        profile = UserProfile(user_id="user_1", email="a@b.com", phone="+15551234567")
        result = builder.build(_candidate(), pref, profile)
        assert result.email is not None
        assert result.sms is not None

    def test_sms_without_phone(self, builder):
        pref = UserAlertPreference(user_id="user_1", aqi_threshold=200, sms_alerts=True)
        profile = UserProfile(user_id="user_1", email="a@b.com")
        result = builder.build(_candidate(), pref, profile)
        assert result.email is None
        assert result.sms is None

    def test_module_level_helper(self):
        pref = UserAlertPreference(
            user_id="user_1", aqi_threshold=200, email_alerts=True, sms_alerts=True,
        )
        profile = UserProfile(user_id="user_1", phone="+15551234567")
        result = build_notifications(_candidate(), pref, profile)
        assert result.email is None
        assert result.sms.body.startswith("EcoWatch Alert\nAQI: 250")

    def test_no_profile(self, builder):
        pref = UserAlertPreference(user_id="user_1", email_alerts=True, sms_alerts=True)
        result = builder.build(_candidate(), pref, None)
        assert result.email is None
        assert result.sms is None
