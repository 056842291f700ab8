"""Configuration management for the adaptive bitrate controller.

Service settings are loaded and validated from environment variables using
Pydantic settings. The runtime controller limits live in ControllerConfig,
which clamps instead of rejecting so that `configure()` never fails.
"""

from dataclasses import dataclass
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings

from adaptive_bitrate.exceptions import ConfigurationError

# Bitrate limits (bps)
MIN_FLOOR_BPS = 300_000
DEFAULT_MAX_BITRATE_BPS = 6_000_000
ABS_MAX_BITRATE_BPS = 30_000_000

# Latency budget limits (ms)
MIN_LATENCY_MS = 100
MAX_LATENCY_MS = 10_000
DEFAULT_LATENCY_MS = 2000

QualityName = Literal["EXCELLENT", "GOOD", "FAIR", "POOR", "CRITICAL"]


def _clamp(value: int, low: int, high: int) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Expected an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ConfigurationError(f"Expected an integer, got {value!r}") from e
    return max(low, min(number, high))


@dataclass(frozen=True)
class ControllerConfig:
    """Bitrate range and latency budget used by the decision engine.

    Attributes:
        min_bitrate_bps: Lowest bitrate the controller may emit
        max_bitrate_bps: Highest bitrate the controller may emit
        latency_ms: End-to-end latency budget of the transport session
    """

    min_bitrate_bps: int = MIN_FLOOR_BPS
    max_bitrate_bps: int = DEFAULT_MAX_BITRATE_BPS
    latency_ms: int = DEFAULT_LATENCY_MS

    @classmethod
    def clamped(
        cls, min_bitrate_bps: int, max_bitrate_bps: int, latency_ms: int
    ) -> "ControllerConfig":
        """Build a config with every value forced into its legal range.

        Args:
            min_bitrate_bps: Requested minimum bitrate
            max_bitrate_bps: Requested maximum bitrate
            latency_ms: Requested latency budget

        Returns:
            ControllerConfig satisfying
            MIN_FLOOR <= min <= max <= ABS_MAX and 100 <= latency <= 10000

        Raises:
            ConfigurationError: If a value is not an integer
        """
        min_bps = _clamp(min_bitrate_bps, MIN_FLOOR_BPS, ABS_MAX_BITRATE_BPS)
        max_bps = _clamp(max_bitrate_bps, min_bps, ABS_MAX_BITRATE_BPS)
        latency = _clamp(latency_ms, MIN_LATENCY_MS, MAX_LATENCY_MS)
        return cls(
            min_bitrate_bps=min_bps, max_bitrate_bps=max_bps, latency_ms=latency
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "min_bitrate_bps": self.min_bitrate_bps,
            "max_bitrate_bps": self.max_bitrate_bps,
            "latency_ms": self.latency_ms,
        }


class AdaptiveBitrateSettings(BaseSettings):
    """Service configuration loaded from environment variables."""

    # Server settings
    env: Literal["development", "production", "test"] = Field(
        default="development", alias="ABR_ENV"
    )
    host: str = Field(default="0.0.0.0", alias="ABR_HOST")
    port: int = Field(default=8000, alias="ABR_PORT", ge=1024, le=65535)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", alias="ABR_LOG_LEVEL"
    )

    # Controller limits
    min_bitrate_bps: int = Field(
        default=MIN_FLOOR_BPS,
        alias="ABR_MIN_BITRATE",
        ge=MIN_FLOOR_BPS,
        le=ABS_MAX_BITRATE_BPS,
    )
    max_bitrate_bps: int = Field(
        default=DEFAULT_MAX_BITRATE_BPS,
        alias="ABR_MAX_BITRATE",
        ge=MIN_FLOOR_BPS,
        le=ABS_MAX_BITRATE_BPS,
    )
    latency_ms: int = Field(
        default=DEFAULT_LATENCY_MS,
        alias="ABR_LATENCY_MS",
        ge=MIN_LATENCY_MS,
        le=MAX_LATENCY_MS,
    )

    # Loop timing
    sample_interval_ms: int = Field(
        default=50, alias="ABR_SAMPLE_INTERVAL_MS", ge=5, le=5000
    )
    decision_interval_ms: int = Field(
        default=20, alias="ABR_DECISION_INTERVAL_MS", ge=5, le=5000
    )
    actuation_cooldown_ms: int = Field(
        default=5000, alias="ABR_ACTUATION_COOLDOWN_MS", ge=0, le=60_000
    )
    ack_timeout_ms: int = Field(
        default=6000, alias="ABR_ACK_TIMEOUT_MS", ge=500, le=60_000
    )

    # Service behaviour
    autostart: bool = Field(default=True, alias="ABR_AUTOSTART")
    simulated_quality: QualityName = Field(
        default="GOOD", alias="ABR_SIMULATED_QUALITY"
    )

    @field_validator("max_bitrate_bps")
    @classmethod
    def validate_bitrate_range(cls, v: int, info: ValidationInfo) -> int:
        """Validate that the maximum bitrate is not below the minimum."""
        min_bps = info.data.get("min_bitrate_bps")
        if min_bps is not None and v < min_bps:
            raise ValueError(
                f"max_bitrate_bps ({v}) must be >= min_bitrate_bps ({min_bps})"
            )
        return v

    def controller_config(self) -> ControllerConfig:
        """Initial controller limits derived from the settings."""
        return ControllerConfig.clamped(
            self.min_bitrate_bps, self.max_bitrate_bps, self.latency_ms
        )

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# Singleton settings instance
_settings: AdaptiveBitrateSettings | None = None


def get_settings() -> AdaptiveBitrateSettings:
    """Get the global settings instance.

    Returns:
        AdaptiveBitrateSettings: Settings singleton
    """
    global _settings
    if _settings is None:
        _settings = AdaptiveBitrateSettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
