"""Tests for the SendGrid email and Twilio SMS channels."""

import base64
import json
from urllib.parse import parse_qs

import httpx
import pytest
import respx

from ecowatch.alerts.channels import (
    SENDGRID_SEND_URL,
    TWILIO_MESSAGES_URL,
    EmailChannel,
    SmsChannel,
    is_valid_phone_number,
)
from ecowatch.alerts.schemas import EmailPayload, SmsPayload

TWILIO_URL = TWILIO_MESSAGES_URL.format(sid="AC123")


@pytest.fixture
def email_payload():
    return EmailPayload(
        subject="EcoWatch Alert: High Air Quality Index in Jaipur",
        text="AQI 250 in Jaipur exceeds threshold 200",
        html="<p>AQI 250 in Jaipur exceeds threshold 200</p>",
    )


@pytest.fixture
def sms_payload():
    return SmsPayload(body="EcoWatch Alert\nAQI: 250 (limit: 200)\nLocation: Jaipur")


@pytest.fixture
def email_channel():
    return EmailChannel(
        api_key="SG.test-key",
        from_email="alerts@ecowatch.test",
        from_name="EcoWatch Alerts",
        reply_to="noreply@ecowatch.test",
        unsubscribe_url="https://ecowatch.test/unsubscribe",
    )


@pytest.fixture
def sms_channel():
    return SmsChannel(
        account_sid="AC123",
        auth_token="auth-token",
        from_number="+15550000000",
    )


# ── Phone validation ─────────────────────────────────────


class TestPhoneValidation:
    @pytest.mark.parametrize("number", ["+15551234567", "+919876543210", "+44"])
    def test_valid(self, number):
        assert is_valid_phone_number(number)

    @pytest.mark.parametrize(
        "number",
        [None, "", "15551234567", "+0123456", "+1 555 123", "+1234567890123456", "abc"],
    )
    def test_invalid(self, number):
        assert not is_valid_phone_number(number)


# ── EmailChannel ─────────────────────────────────────────


class TestEmailChannel:
    def test_name_and_configured(self, email_channel):
        assert email_channel.name == "email"
        assert email_channel.configured

    def test_from_settings(self, test_settings):
        channel = EmailChannel.from_settings(test_settings, timeout=3.0)
        assert channel.configured

    @pytest.mark.asyncio
    @respx.mock
    async def test_successful_send(self, email_channel, email_payload):
        route = respx.post(SENDGRID_SEND_URL).mock(
            return_value=httpx.Response(202, headers={"X-Message-Id": "msg-1"})
        )

        result = await email_channel.send(email_payload, "a@b.com", "user_1")

        assert result.ok
        assert result.provider_id == "msg-1"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer SG.test-key"
        body = json.loads(request.content)
        assert body["personalizations"] == [{"to": [{"email": "a@b.com"}]}]
        assert body["from"] == {"email": "alerts@ecowatch.test", "name": "EcoWatch Alerts"}
        assert body["subject"] == email_payload.subject
        assert [c["type"] for c in body["content"]] == ["text/plain", "text/html"]
        assert body["reply_to"] == {"email": "noreply@ecowatch.test"}
        assert body["headers"]["List-Unsubscribe"] == "<https://ecowatch.test/unsubscribe>"
        assert body["custom_args"] == {"user_id": "user_1"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_provider_error_message(self, email_channel, email_payload):
        respx.post(SENDGRID_SEND_URL).mock(
            return_value=httpx.Response(
                400, json={"errors": [{"message": "Invalid email address"}]},
            )
        )

        result = await email_channel.send(email_payload, "not-an-email")

        assert result.status == "failed"
        assert result.reason == "Invalid email address"

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_error(self, email_channel, email_payload):
        respx.post(SENDGRID_SEND_URL).mock(
            return_value=httpx.Response(500, text="upstream exploded")
        )

        result = await email_channel.send(email_payload, "a@b.com")

        assert result.status == "failed"
        assert result.reason == "HTTP 500"

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self, email_channel, email_payload):
        respx.post(SENDGRID_SEND_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        result = await email_channel.send(email_payload, "a@b.com")

        assert result.status == "timeout"

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error(self, email_channel, email_payload):
        respx.post(SENDGRID_SEND_URL).mock(side_effect=httpx.ConnectError("refused"))

        result = await email_channel.send(email_payload, "a@b.com")

        assert result.status == "failed"
        assert result.reason == "refused"

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_api_key(self, email_payload):
        route = respx.post(SENDGRID_SEND_URL)
        channel = EmailChannel(api_key=None)

        result = await channel.send(email_payload, "a@b.com")

        assert not channel.configured
        assert result.status == "unavailable"
        assert result.reason == "no_api_key"
        assert not route.called

    @pytest.mark.asyncio
    async def test_wrong_payload_type(self, email_channel, sms_payload):
        result = await email_channel.send(sms_payload, "a@b.com")
        assert result.reason == "invalid_payload"


# ── SmsChannel ───────────────────────────────────────────


class TestSmsChannel:
    def test_name_and_configured(self, sms_channel):
        assert sms_channel.name == "sms"
        assert sms_channel.configured

    def test_partial_credentials_not_configured(self):
        channel = SmsChannel(account_sid="AC123", auth_token=None, from_number="+1555")
        assert not channel.configured

    @pytest.mark.asyncio
    @respx.mock
    async def test_successful_send(self, sms_channel, sms_payload):
        route = respx.post(TWILIO_URL).mock(
            return_value=httpx.Response(201, json={"sid": "SM123", "status": "queued"})
        )

        result = await sms_channel.send(sms_payload, "+15551234567", "user_1")

        assert result.ok
        assert result.provider_id == "SM123"
        request = route.calls.last.request
        form = parse_qs(request.content.decode())
        assert form["To"] == ["+15551234567"]
        assert form["From"] == ["+15550000000"]
        assert form["Body"] == [sms_payload.body]
        expected_auth = base64.b64encode(b"AC123:auth-token").decode()
        assert request.headers["Authorization"] == f"Basic {expected_auth}"

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_phone_skips_provider(self, sms_channel, sms_payload):
        route = respx.post(TWILIO_URL)

        result = await sms_channel.send(sms_payload, "98765")

        assert result.status == "failed"
        assert result.reason == "invalid_phone"
        assert not route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_provider_error_message(self, sms_channel, sms_payload):
        respx.post(TWILIO_URL).mock(
            return_value=httpx.Response(
                400, json={"code": 21211, "message": "The 'To' number is not valid."},
            )
        )

        result = await sms_channel.send(sms_payload, "+15551234567")

        assert result.status == "failed"
        assert result.reason == "The 'To' number is not valid."

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self, sms_channel, sms_payload):
        respx.post(TWILIO_URL).mock(side_effect=httpx.ConnectTimeout("slow"))

        result = await sms_channel.send(sms_payload, "+15551234567")

        assert result.status == "timeout"

    @pytest.mark.asyncio
    async def test_not_configured(self, sms_payload):
        channel = SmsChannel(account_sid=None, auth_token=None, from_number=None)
        result = await channel.send(sms_payload, "+15551234567")
        assert result.status == "unavailable"
        assert result.reason == "no_api_key"
