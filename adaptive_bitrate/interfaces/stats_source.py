"""Transport statistics source interface."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from adaptive_bitrate.transport_sample import TransportSample


class ITransportStatsSource(ABC):
    """Produces raw telemetry samples for the active transport session."""

    @abstractmethod
    def sample(self) -> "TransportSample":
        """Fetch one telemetry sample.

        Returns:
            TransportSample for the current session state

        Raises:
            StatsSourceError: If counters are unavailable
            MalformedSampleError: If counters cannot be interpreted

        Called from a worker thread once per sampler period. Must not block
        indefinitely; timing out is the implementation's responsibility.
        """
        pass
