"""Repositories for user alert preferences, profiles, and alert records.

``PreferenceRepository`` is the read-only gateway to per-user alert
configuration and contact details. ``AlertRepository`` appends
``AlertRecord`` rows to ``alert_events`` and serves the read queries the
alert center and dashboard use.

Store errors propagate: an unreachable store is fatal for the reading
being evaluated.
"""

import logging
from datetime import datetime
from typing import Any

from ecowatch.alerts.schemas import AlertRecord, UserAlertPreference, UserProfile
from ecowatch.storage.database import Database

logger = logging.getLogger(__name__)

# SQL for table creation
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS user_alert_preferences (
    user_id             TEXT PRIMARY KEY,
    aqi_threshold       DOUBLE PRECISION,
    temp_threshold      DOUBLE PRECISION,
    humidity_threshold  DOUBLE PRECISION,
    noise_threshold     DOUBLE PRECISION,
    email_alerts        BOOLEAN NOT NULL DEFAULT FALSE,
    sms_alerts          BOOLEAN NOT NULL DEFAULT FALSE,
    monitored_locations TEXT[] NOT NULL DEFAULT '{}',
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS user_profiles (
    user_id    TEXT PRIMARY KEY,
    email      TEXT,
    phone      TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS alert_events (
    alert_id    UUID PRIMARY KEY,
    user_id     TEXT NOT NULL,
    type        TEXT NOT NULL,
    value       DOUBLE PRECISION NOT NULL,
    threshold   DOUBLE PRECISION NOT NULL,
    location    TEXT NOT NULL,
    message     TEXT NOT NULL,
    recorded_at TIMESTAMPTZ NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_alert_events_user_created
    ON alert_events(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_alert_events_created
    ON alert_events(created_at DESC);
"""

_SELECT_ALERTABLE_SQL = """
SELECT user_id, aqi_threshold, temp_threshold, humidity_threshold,
       noise_threshold, email_alerts, sms_alerts, monitored_locations
FROM user_alert_preferences
WHERE email_alerts OR sms_alerts
"""

_SELECT_PROFILES_SQL = """
SELECT user_id, email, phone
FROM user_profiles
WHERE user_id = ANY($1::text[])
"""

_INSERT_ALERT_SQL = """
INSERT INTO alert_events (
    alert_id, user_id, type, value, threshold,
    location, message, recorded_at, created_at
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
"""


class PreferenceRepository:
    """Read-only access to alert preferences and contact profiles."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def load_alertable_preferences(self) -> list[UserAlertPreference]:
        """Load every user with at least one channel enabled.

        Returns:
            Preferences, one per user.
        """
        rows = await self._db.fetch(_SELECT_ALERTABLE_SQL)
        return [UserAlertPreference.from_dict(dict(row)) for row in rows]

    async def load_profiles(self, user_ids: list[str]) -> dict[str, UserProfile]:
        """Load contact profiles for a set of users.

        Args:
            user_ids: Users to look up. Unknown ids are simply absent.

        Returns:
            Mapping of user_id to profile.
        """
        if not user_ids:
            return {}
        rows = await self._db.fetch(_SELECT_PROFILES_SQL, list(user_ids))
        profiles = [UserProfile.from_dict(dict(row)) for row in rows]
        return {p.user_id: p for p in profiles}


class AlertRepository:
    """Repository for append-only alert record persistence and querying."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_tables(self) -> None:
        """Create alert tables and indexes if they don't exist."""
        await self._db.execute(_CREATE_TABLES_SQL)
        logger.info("Alert tables ready")

    async def persist_batch(self, records: list[AlertRecord]) -> list[AlertRecord]:
        """Insert all records for one reading in a single transaction.

        All or nothing: any failure rolls back the whole batch and
        propagates to the caller.

        Args:
            records: Records to persist.

        Returns:
            The persisted records.
        """
        if not records:
            return []

        rows = [
            (
                r.alert_id,
                r.user_id,
                r.alert_type,
                r.value,
                r.threshold,
                r.location,
                r.message,
                r.recorded_at,
                r.created_at,
            )
            for r in records
        ]
        async with self._db.transaction() as conn:
            await conn.executemany(_INSERT_ALERT_SQL, rows)

        logger.info("Persisted %d alert record(s)", len(records))
        return records

    async def get_recent(
        self,
        *,
        user_id: str | None = None,
        alert_type: str | None = None,
        location: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AlertRecord]:
        """Get recent alert records with optional filtering.

        Args:
            user_id: Filter by user.
            alert_type: Filter by metric type.
            location: Filter by exact location.
            limit: Maximum records to return.
            offset: Offset for pagination.

        Returns:
            Records ordered by created_at descending.
        """
        conditions: list[str] = []
        params: list[Any] = []
        param_idx = 1

        if user_id is not None:
            conditions.append(f"user_id = ${param_idx}")
            params.append(user_id)
            param_idx += 1

        if alert_type is not None:
            conditions.append(f"type = ${param_idx}")
            params.append(alert_type)
            param_idx += 1

        if location is not None:
            conditions.append(f"location = ${param_idx}")
            params.append(location)
            param_idx += 1

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        sql = f"""
            SELECT * FROM alert_events
            {where_clause}
            ORDER BY created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
        """
        params.extend([limit, offset])

        rows = await self._db.fetch(sql, *params)
        return [_row_to_record(row) for row in rows]

    async def count_since(self, since: datetime, user_id: str | None = None) -> int:
        """Count alert records created at or after ``since``.

        Backs the dashboard's "alerts today" figure.
        """
        if user_id is None:
            sql = "SELECT COUNT(*) FROM alert_events WHERE created_at >= $1"
            count = await self._db.fetchval(sql, since)
        else:
            sql = (
                "SELECT COUNT(*) FROM alert_events "
                "WHERE created_at >= $1 AND user_id = $2"
            )
            count = await self._db.fetchval(sql, since, user_id)
        return count or 0


def _row_to_record(row: Any) -> AlertRecord:
    """Convert an asyncpg Record to an AlertRecord."""
    data = dict(row)
    data["alert_id"] = str(data["alert_id"])
    return AlertRecord.from_dict(data)
