"""Reading ingestion with the alerting hook."""

from ecowatch.ingestion.service import ReadingIngestor

__all__ = ["ReadingIngestor"]
