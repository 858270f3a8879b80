"""Storage layer - PostgreSQL connection management."""

from ecowatch.storage.database import Database

__all__ = ["Database"]
