"""Exceptions raised by the fleet scheduler."""


class SchedulingError(Exception):
    """Base class for scheduler errors."""


class ConfigurationError(SchedulingError, ValueError):
    """Raised when a schedule configuration is malformed."""


class InvalidTelemetryError(SchedulingError, ValueError):
    """Raised when a real-time telemetry entry is malformed."""


class TelemetryFetchError(SchedulingError):
    """Raised when a telemetry feed cannot be fetched or decoded."""
