"""Internal interfaces for adaptive bitrate components.

Abstract Base Classes (ABCs) defining the contracts with the transport
statistics source and the encoder control surface.
"""

from adaptive_bitrate.interfaces.encoder import IEncoderControl
from adaptive_bitrate.interfaces.metrics import IMetricsCollector
from adaptive_bitrate.interfaces.stats_source import ITransportStatsSource

__all__ = [
    # Collaborators consumed by the controller
    "ITransportStatsSource",
    "IEncoderControl",
    # Metrics
    "IMetricsCollector",
]
