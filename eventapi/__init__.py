"""HTTP API for recording and querying user events stored in PostgreSQL."""

__version__ = "0.1.0"