"""
Reading ingestion - persists readings and hands them to the alert engine.

Alerting is a side effect of ingestion, never a precondition for it:
once the reading row is written, any alert failure is logged and the
reading still counts as ingested.
"""

from ecowatch.alerts.schemas import DispatchSummary, Reading
from ecowatch.alerts.service import AlertService
from ecowatch.observability.logging import bind_context, clear_context, get_logger
from ecowatch.storage.database import Database

logger = get_logger(__name__)

_CREATE_READINGS_SQL = """
CREATE TABLE IF NOT EXISTS environment_readings (
    id          BIGSERIAL PRIMARY KEY,
    location    TEXT NOT NULL,
    aqi         DOUBLE PRECISION,
    temperature DOUBLE PRECISION,
    humidity    DOUBLE PRECISION,
    noise_level DOUBLE PRECISION,
    latitude    DOUBLE PRECISION,
    longitude   DOUBLE PRECISION,
    source      TEXT,
    recorded_at TIMESTAMPTZ NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_environment_readings_location_recorded
    ON environment_readings(location, recorded_at DESC);
"""

_INSERT_READING_SQL = """
INSERT INTO environment_readings (
    location, aqi, temperature, humidity, noise_level,
    latitude, longitude, source, recorded_at
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
RETURNING id
"""


class ReadingIngestor:
    """
    Stores incoming readings and triggers alert evaluation.

    Usage:
        ingestor = ReadingIngestor(db, create_alert_service(db))
        summary = await ingestor.ingest(Reading(location="Jaipur", aqi=250))
    """

    def __init__(self, database: Database, alert_service: AlertService):
        self._db = database
        self._alert_service = alert_service

    async def create_tables(self) -> None:
        """Create the readings table if it doesn't exist."""
        await self._db.execute(_CREATE_READINGS_SQL)
        logger.info("Readings table ready")

    async def ingest(self, reading: Reading) -> DispatchSummary | None:
        """
        Persist a reading, then evaluate alerts for it.

        Args:
            reading: Normalized reading from an upstream provider

        Returns:
            Alert summary, or None if alert evaluation failed

        Raises:
            Exception: If the reading itself cannot be stored
        """
        if not reading.location:
            raise ValueError("Reading location is required")

        reading_id = await self._db.fetchval(
            _INSERT_READING_SQL,
            reading.location,
            reading.aqi,
            reading.temperature,
            reading.humidity,
            reading.noise_level,
            reading.latitude,
            reading.longitude,
            reading.source,
            reading.recorded_at,
        )

        bind_context(location=reading.location, reading_id=reading_id)
        try:
            summary = await self._alert_service.evaluate_and_dispatch(reading)
        except Exception as e:
            logger.error("Alert evaluation failed", error=str(e))
            return None
        finally:
            clear_context()

        if summary.created:
            logger.info("Reading triggered alerts", **summary.to_dict())
        return summary
