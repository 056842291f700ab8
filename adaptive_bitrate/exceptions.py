"""Custom exceptions for the adaptive bitrate controller."""


class AdaptiveBitrateError(Exception):
    """Base exception for all adaptive bitrate errors."""

    pass


class StatsSourceError(AdaptiveBitrateError):
    """Error fetching a telemetry sample from the transport."""

    pass


class MalformedSampleError(StatsSourceError):
    """Telemetry sample with negative, non-finite or non-numeric fields."""

    pass


class ActuationError(AdaptiveBitrateError):
    """Encoder rejected a bitrate reconfiguration."""

    pass


class ConfigurationError(AdaptiveBitrateError):
    """Error in controller or service configuration."""

    pass
