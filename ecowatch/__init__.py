"""EcoWatch environmental alert evaluation and notification dispatch."""

__version__ = "0.1.0"
