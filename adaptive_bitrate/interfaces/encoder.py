"""Encoder control surface interface."""

from abc import ABC, abstractmethod


class IEncoderControl(ABC):
    """Live encoder whose target bitrate the actuator adjusts."""

    @property
    @abstractmethod
    def supports_live_update(self) -> bool:
        """Whether bitrate can change without pausing the stream.

        Returns:
            True if set_bitrate() is safe while streaming
        """
        pass

    @abstractmethod
    def is_streaming(self) -> bool:
        """Check if the encoder is currently pushing a stream.

        Returns:
            True if streaming, False otherwise
        """
        pass

    @abstractmethod
    async def set_bitrate(self, bitrate_bps: int) -> None:
        """Reconfigure the encoder target bitrate.

        Args:
            bitrate_bps: New target bitrate in bits per second

        Raises:
            ActuationError: If the encoder rejects the configuration
        """
        pass

    @abstractmethod
    async def pause(self) -> None:
        """Pause the stream without tearing down the session."""
        pass

    @abstractmethod
    async def resume(self) -> None:
        """Resume a stream paused with pause()."""
        pass
