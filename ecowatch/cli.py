"""
Command-line interface for the EcoWatch alert engine.

Provides commands to initialize the database, push a reading through
alert evaluation, preview notification payloads, and run diagnostic
checks.

Usage:
    ecowatch init-db                                 # Initialize database
    ecowatch evaluate --location Jaipur --aqi 250    # Evaluate one reading
    ecowatch preview-email --type AQI --value 250    # Render an alert email
    ecowatch test-sms --to +15551234567              # Send a test SMS
    ecowatch health                                  # Check service health
"""

import asyncio
import json
import sys
from datetime import datetime, timezone

import click

from ecowatch.alerts.schemas import VALID_ALERT_TYPES, AlertCandidate, Reading
from ecowatch.alerts.triggers import format_breach_message
from ecowatch.config.settings import get_settings
from ecowatch.observability.logging import setup_logging
from ecowatch.observability.metrics import get_metrics


def _sample_candidate(
    alert_type: str,
    value: float,
    threshold: float,
    location: str,
) -> AlertCandidate:
    """Build an unpersisted candidate for previews and test sends."""
    return AlertCandidate(
        user_id="cli",
        alert_type=alert_type,
        value=value,
        threshold=threshold,
        location=location,
        recorded_at=datetime.now(timezone.utc),
        message=format_breach_message(alert_type, value, threshold, location),
    )


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """EcoWatch - environmental alert evaluation and notification."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from ecowatch.alerts.repository import AlertRepository
    from ecowatch.alerts.service import create_alert_service
    from ecowatch.ingestion.service import ReadingIngestor
    from ecowatch.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            await AlertRepository(db).create_tables()
            await ReadingIngestor(db, create_alert_service(db)).create_tables()
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--location", required=True, help="Reading location")
@click.option("--aqi", type=float, default=None, help="Air quality index")
@click.option("--temperature", type=float, default=None, help="Temperature in °C")
@click.option("--humidity", type=float, default=None, help="Relative humidity in %")
@click.option("--noise", "noise_level", type=float, default=None, help="Noise level in dB")
@click.option("--store/--no-store", default=False, help="Also persist the reading")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def evaluate(
    location: str,
    aqi: float | None,
    temperature: float | None,
    humidity: float | None,
    noise_level: float | None,
    store: bool,
    metrics: bool,
) -> None:
    """Evaluate one reading and dispatch notifications."""
    from ecowatch.alerts.service import create_alert_service
    from ecowatch.ingestion.service import ReadingIngestor
    from ecowatch.storage.database import Database

    reading = Reading(
        location=location.strip(),
        aqi=aqi,
        temperature=temperature,
        humidity=humidity,
        noise_level=noise_level,
        source="cli",
    )

    async def run():
        if metrics:
            get_metrics().start_server()

        db = Database()
        await db.connect()
        try:
            service = create_alert_service(db)
            if store:
                summary = await ReadingIngestor(db, service).ingest(reading)
                if summary is None:
                    click.echo(click.style("Alert evaluation failed", fg="red"))
                    return 1
            else:
                summary = await service.evaluate_and_dispatch(reading)
        finally:
            await db.close()

        click.echo(f"\nAlert results for {reading.location}:")
        click.echo(f"  created:    {summary.created}")
        click.echo(f"  email_sent: {summary.email_sent}")
        click.echo(f"  sms_sent:   {summary.sms_sent}")

        for receipt in summary.receipts:
            result = receipt.result
            color = "green" if result.ok else "yellow"
            detail = f" ({result.reason})" if result.reason else ""
            click.echo(click.style(
                f"  {receipt.channel:<5} {receipt.delivery.destination}: "
                f"{result.status}{detail}",
                fg=color,
            ))
        return 0

    sys.exit(asyncio.run(run()))


@main.command("preview-email")
@click.option(
    "--type", "alert_type",
    type=click.Choice(sorted(VALID_ALERT_TYPES), case_sensitive=False),
    default="AQI",
    help="Alert type",
)
@click.option("--value", type=float, default=250.0, help="Observed value")
@click.option("--threshold", type=float, default=200.0, help="User threshold")
@click.option("--location", default="Jaipur", help="Reading location")
@click.option(
    "--format", "fmt",
    type=click.Choice(["text", "html", "sms", "json"]),
    default="text",
    help="Which rendering to print",
)
def preview_email(
    alert_type: str,
    value: float,
    threshold: float,
    location: str,
    fmt: str,
) -> None:
    """Render an alert notification without sending it."""
    from ecowatch.alerts.config import AlertConfig
    from ecowatch.alerts.templates import NotificationBuilder

    settings = get_settings()
    builder = NotificationBuilder(
        settings_url=settings.settings_url,
        sms_max_length=AlertConfig().sms_max_length,
    )
    candidate = _sample_candidate(alert_type.upper(), value, threshold, location)

    if fmt == "sms":
        click.echo(builder.build_sms(candidate).body)
        return

    email = builder.build_email(candidate)
    if fmt == "html":
        click.echo(email.html)
    elif fmt == "json":
        click.echo(json.dumps({
            "subject": email.subject,
            "text": email.text,
            "html": email.html,
        }, indent=2, ensure_ascii=False))
    else:
        click.echo(f"Subject: {email.subject}\n")
        click.echo(email.text)


@main.command("test-sms")
@click.option("--to", "to_number", required=True, help="Destination phone number (E.164)")
@click.option(
    "--type", "alert_type",
    type=click.Choice(sorted(VALID_ALERT_TYPES), case_sensitive=False),
    default="AQI",
    help="Alert type",
)
@click.option("--value", type=float, default=250.0, help="Observed value")
@click.option("--threshold", type=float, default=200.0, help="User threshold")
@click.option("--location", default="Jaipur", help="Reading location")
def test_sms(
    to_number: str,
    alert_type: str,
    value: float,
    threshold: float,
    location: str,
) -> None:
    """Send a sample alert SMS through Twilio."""
    from ecowatch.alerts.channels import SmsChannel
    from ecowatch.alerts.config import AlertConfig
    from ecowatch.alerts.templates import NotificationBuilder

    config = AlertConfig()
    channel = SmsChannel.from_settings(
        get_settings(), timeout=config.provider_timeout_seconds,
    )
    builder = NotificationBuilder(sms_max_length=config.sms_max_length)
    candidate = _sample_candidate(alert_type.upper(), value, threshold, location)
    payload = builder.build_sms(candidate)

    async def run():
        return await channel.send(payload, to_number.strip())

    result = asyncio.run(run())
    click.echo(json.dumps(result.to_dict(), indent=2))
    sys.exit(0 if result.ok else 1)


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            from ecowatch.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check providers
        settings = get_settings()
        results["email_configured"] = settings.email_configured
        results["sms_configured"] = settings.sms_configured

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))

        click.echo("-" * 40)

        if results["postgres"]:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
