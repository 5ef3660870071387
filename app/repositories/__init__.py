"""
app/repositories package marker.
"""

from app.repositories.telemetry_repository import (
    ENTITY_KINDS,
    VARIABLE_CODES,
    SqlTelemetryRepository,
    TelemetrySource,
)

__all__ = [
    "ENTITY_KINDS",
    "SqlTelemetryRepository",
    "TelemetrySource",
    "VARIABLE_CODES",
]
