"""Transport telemetry sample data structure."""

import math
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Mapping

from adaptive_bitrate.exceptions import MalformedSampleError

# Raw counter names accepted by from_mapping(), including the names the
# SRT statistics API reports them under.
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "rtt_ms": ("rtt_ms", "rtt", "msRTT"),
    "send_buffer_occupancy": ("send_buffer_occupancy", "buffer_size", "pktSndBuf"),
    "throughput_mbps": ("throughput_mbps", "throughput", "mbpsBandwidth"),
    "packet_loss_percent": ("packet_loss_percent", "packet_loss"),
    "ack_count": ("ack_count", "pktRecvACKTotal"),
}

# SRT reports loss as packet counters, not a percentage
_LOST_PACKETS = "pktSndLoss"
_SENT_PACKETS = "pktSent"


def _loss_percent(lost: Any, sent: Any) -> float:
    """Percentage of sent packets reported lost (0 when nothing was sent)."""
    try:
        lost = float(lost or 0)
        sent = float(sent or 0)
    except (TypeError, ValueError) as e:
        raise MalformedSampleError(f"Invalid loss counters: {lost!r}/{sent!r}") from e
    if sent <= 0:
        return 0.0
    return min(100.0, lost * 100.0 / sent)


@dataclass(frozen=True)
class TransportSample:
    """One telemetry reading for the active transport session.

    Attributes:
        rtt_ms: Round-trip time in milliseconds
        send_buffer_occupancy: Packets held in the send buffer
        throughput_mbps: Measured throughput in Mbps
        packet_loss_percent: Send loss percentage
        ack_count: Cumulative acknowledgment count (liveness only)
        timestamp: Capture time (seconds since epoch)
    """

    rtt_ms: int = 0
    send_buffer_occupancy: int = 0
    throughput_mbps: float = 0.0
    packet_loss_percent: float = 0.0
    ack_count: int = 0
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        """Reject samples the smoother cannot digest."""
        for name in ("rtt_ms", "send_buffer_occupancy", "ack_count"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise MalformedSampleError(f"{name} must be an integer, got {value!r}")
            if value < 0:
                raise MalformedSampleError(f"{name} must be >= 0, got {value}")

        for name in ("throughput_mbps", "packet_loss_percent"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise MalformedSampleError(f"{name} must be numeric, got {value!r}")
            if not math.isfinite(value) or value < 0:
                raise MalformedSampleError(f"{name} must be finite and >= 0, got {value}")

    @classmethod
    def from_mapping(
        cls, raw: Mapping[str, Any], timestamp: float | None = None
    ) -> "TransportSample":
        """Create a sample from raw transport counters.

        Missing counters default to zero. Without a precomputed loss
        percentage, loss is derived from the `pktSndLoss` and `pktSent`
        packet counters.

        Args:
            raw: Counter name to value mapping
            timestamp: Capture time, defaults to now

        Returns:
            Validated TransportSample

        Raises:
            MalformedSampleError: If a counter cannot be converted
        """
        values: dict[str, Any] = {}
        for name, aliases in _FIELD_ALIASES.items():
            value = next((raw[a] for a in aliases if raw.get(a) is not None), 0)
            try:
                if name in ("throughput_mbps", "packet_loss_percent"):
                    values[name] = float(value)
                else:
                    values[name] = int(value)
            except (TypeError, ValueError, OverflowError) as e:
                raise MalformedSampleError(f"Invalid {name}: {value!r}") from e

        loss_aliases = _FIELD_ALIASES["packet_loss_percent"]
        if not any(raw.get(a) is not None for a in loss_aliases):
            values["packet_loss_percent"] = _loss_percent(
                raw.get(_LOST_PACKETS), raw.get(_SENT_PACKETS)
            )

        return cls(
            timestamp=time.time() if timestamp is None else timestamp, **values
        )

    def to_json(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        data = asdict(self)
        data["timestamp_iso"] = datetime.fromtimestamp(self.timestamp).isoformat()
        return data
