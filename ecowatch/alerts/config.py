"""Alert engine configuration.

Controls per-channel cooldowns, send pacing, provider timeouts, and SMS
length limits. All settings can be overridden via ``ALERTS_*``
environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AlertConfig(BaseSettings):
    """Configuration for alert evaluation and notification dispatch."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Cooldown: minimum spacing between two notifications to one recipient
    rate_limit_enabled: bool = Field(
        default=True,
        description="Global switch for per-recipient cooldowns (off for testing/admin override)",
    )
    email_min_interval_minutes: float = Field(
        default=15.0,
        ge=0.0,
        description="Minutes between two emails to the same user or address",
    )
    sms_min_interval_minutes: float = Field(
        default=15.0,
        ge=0.0,
        description="Minutes between two SMS to the same user or number",
    )

    # Pacing: sequential sends per channel, spaced to respect provider throughput
    email_send_interval_seconds: float = Field(
        default=0.1,
        ge=0.0,
        le=60.0,
        description="Minimum spacing between consecutive email provider calls",
    )
    sms_send_interval_seconds: float = Field(
        default=0.1,
        ge=0.0,
        le=60.0,
        description="Minimum spacing between consecutive SMS provider calls",
    )

    # Provider calls
    provider_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Upper bound on a single provider call",
    )

    # Payloads
    sms_max_length: int = Field(
        default=160,
        ge=40,
        le=1600,
        description="Maximum SMS body length (single GSM segment by default)",
    )

    def min_interval_minutes(self, channel: str) -> float:
        """Cooldown length for a channel."""
        if channel == "sms":
            return self.sms_min_interval_minutes
        return self.email_min_interval_minutes

    def send_interval_seconds(self, channel: str) -> float:
        """Pacing interval for a channel."""
        if channel == "sms":
            return self.sms_send_interval_seconds
        return self.email_send_interval_seconds
