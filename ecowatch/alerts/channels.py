"""Notification channel implementations for alert delivery.

Provides an ABC for notification channels plus concrete implementations
for email (SendGrid v3 API) and SMS (Twilio Messages API). Both talk to
their provider over plain HTTPS with httpx.

Channels never raise for provider trouble: every outcome, including a
missing API key, comes back as a ``SendResult``.
"""

import logging
import re
from abc import ABC, abstractmethod

import httpx

from ecowatch.alerts.schemas import EmailPayload, SendResult, SmsPayload
from ecowatch.config.settings import Settings

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

_E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")


def is_valid_phone_number(phone_number: str | None) -> bool:
    """Basic E.164 check: ``+`` followed by up to 15 digits."""
    if not phone_number:
        return False
    return bool(_E164_RE.match(phone_number))


def _error_message(resp: httpx.Response) -> str:
    """Pull the provider's error message out of a failed response."""
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            message = errors[0].get("message")
            if message:
                return str(message)
        if body.get("message"):
            return str(body["message"])
    return f"HTTP {resp.status_code}"


class NotificationChannel(ABC):
    """Abstract base for notification delivery channels."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this channel ('email' or 'sms')."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        """Whether provider credentials are present."""

    @abstractmethod
    async def send(
        self,
        payload: EmailPayload | SmsPayload,
        destination: str,
        user_id: str | None = None,
    ) -> SendResult:
        """Deliver one payload to one destination.

        Args:
            payload: Rendered notification for this channel.
            destination: Email address or phone number.
            user_id: Owning user, passed through for provider tagging.

        Returns:
            SendResult describing the outcome.
        """


class EmailChannel(NotificationChannel):
    """Delivers alert emails through the SendGrid v3 mail/send endpoint.

    Creates a new ``httpx.AsyncClient`` per call (short-lived, no pooling).
    """

    def __init__(
        self,
        api_key: str | None,
        from_email: str = "no-reply@ecowatch.local",
        from_name: str = "EcoWatch Alerts",
        reply_to: str | None = None,
        unsubscribe_url: str | None = None,
        timeout: float = 10.0,
        url: str = SENDGRID_SEND_URL,
    ) -> None:
        self._api_key = api_key
        self._from_email = from_email
        self._from_name = from_name
        self._reply_to = reply_to
        self._unsubscribe_url = unsubscribe_url
        self._timeout = timeout
        self._url = url

        if not api_key:
            logger.warning("SENDGRID_API_KEY not set; email sending disabled")

    @classmethod
    def from_settings(cls, settings: Settings, timeout: float = 10.0) -> "EmailChannel":
        return cls(
            api_key=settings.sendgrid_api_key,
            from_email=settings.sendgrid_from_email,
            from_name=settings.sendgrid_from_name,
            reply_to=settings.sendgrid_reply_to,
            unsubscribe_url=settings.unsubscribe_url,
            timeout=timeout,
        )

    @property
    def name(self) -> str:
        return "email"

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _build_request(
        self,
        payload: EmailPayload,
        to: str,
        user_id: str | None,
    ) -> dict:
        """Build the SendGrid JSON body."""
        body: dict = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self._from_email, "name": self._from_name},
            "subject": payload.subject,
            "content": [
                {"type": "text/plain", "value": payload.text},
                {"type": "text/html", "value": payload.html},
            ],
            "headers": {
                "X-Priority": "3",
                "Importance": "Normal",
            },
        }
        if self._reply_to:
            body["reply_to"] = {"email": self._reply_to}
        if self._unsubscribe_url:
            body["headers"]["List-Unsubscribe"] = f"<{self._unsubscribe_url}>"
        if user_id:
            body["custom_args"] = {"user_id": user_id}
        return body

    async def send(
        self,
        payload: EmailPayload | SmsPayload,
        destination: str,
        user_id: str | None = None,
    ) -> SendResult:
        if not self.configured:
            logger.warning("Email not sent to %s: API key not set", destination)
            return SendResult.unavailable("no_api_key")
        if not isinstance(payload, EmailPayload):
            return SendResult.failed("invalid_payload")

        request_body = self._build_request(payload, destination, user_id)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    self._url,
                    json=request_body,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                if resp.is_success:
                    logger.info("Email sent to %s", destination)
                    return SendResult.sent(resp.headers.get("X-Message-Id"))
                reason = _error_message(resp)
                logger.warning(
                    "SendGrid returned %d for %s: %s",
                    resp.status_code, destination, reason,
                )
                return SendResult.failed(reason)
        except httpx.TimeoutException:
            logger.warning("SendGrid timed out for %s", destination)
            return SendResult.timed_out()
        except Exception as e:
            logger.warning("SendGrid request failed for %s: %s", destination, e)
            return SendResult.failed(str(e) or type(e).__name__)


class SmsChannel(NotificationChannel):
    """Delivers alert SMS through the Twilio Messages API."""

    def __init__(
        self,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str | None,
        timeout: float = 10.0,
        url_template: str = TWILIO_MESSAGES_URL,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._timeout = timeout
        self._url_template = url_template

        if not self.configured:
            logger.warning(
                "Twilio credentials not configured; SMS alerts disabled "
                "(set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER)"
            )

    @classmethod
    def from_settings(cls, settings: Settings, timeout: float = 10.0) -> "SmsChannel":
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
            timeout=timeout,
        )

    @property
    def name(self) -> str:
        return "sms"

    @property
    def configured(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from_number)

    async def send(
        self,
        payload: EmailPayload | SmsPayload,
        destination: str,
        user_id: str | None = None,
    ) -> SendResult:
        if not self.configured:
            logger.warning("SMS not sent to %s: Twilio not configured", destination)
            return SendResult.unavailable("no_api_key")
        if not isinstance(payload, SmsPayload):
            return SendResult.failed("invalid_payload")
        if not is_valid_phone_number(destination):
            logger.warning("SMS not sent: %r is not an E.164 number", destination)
            return SendResult.failed("invalid_phone")

        url = self._url_template.format(sid=self._account_sid)
        form = {"To": destination, "From": self._from_number, "Body": payload.body}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    url,
                    data=form,
                    auth=(self._account_sid, self._auth_token),
                )
                if resp.is_success:
                    sid = None
                    try:
                        sid = resp.json().get("sid")
                    except ValueError:
                        pass
                    logger.info("SMS sent to %s: %s", destination, sid)
                    return SendResult.sent(sid)
                reason = _error_message(resp)
                logger.warning(
                    "Twilio returned %d for %s: %s",
                    resp.status_code, destination, reason,
                )
                return SendResult.failed(reason)
        except httpx.TimeoutException:
            logger.warning("Twilio timed out for %s", destination)
            return SendResult.timed_out()
        except Exception as e:
            logger.warning("Twilio request failed for %s: %s", destination, e)
            return SendResult.failed(str(e) or type(e).__name__)
