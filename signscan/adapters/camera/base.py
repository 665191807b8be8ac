from abc import ABC, abstractmethod
from typing import Optional, Tuple

from signscan.orchestrator.contracts import StreamConstraints


class CameraHandle(ABC):
    """A live video source. Owned by exactly one CaptureSession."""

    @abstractmethod
    async def wait_first_frame(self) -> None:
        """Return once a decodable frame exists. Raises CaptureError otherwise."""
        ...

    async def refresh(self) -> None:
        """Pull a newer frame from the device into the cache read by grab_jpeg()."""
        return None

    @abstractmethod
    def frame_size(self) -> Tuple[int, int]:
        """(width, height) of the latest frame; (0, 0) before the first frame."""
        ...

    @abstractmethod
    def grab_jpeg(self, quality: int = 90) -> Optional[bytes]:
        """Encode the cached frame at native resolution without touching the device. None on failure."""
        ...

    @abstractmethod
    def release(self) -> None:
        """Stop the device. Must be idempotent."""
        ...

    @property
    @abstractmethod
    def released(self) -> bool:
        ...


class CameraAdapter(ABC):
    @abstractmethod
    async def acquire(self, constraints: StreamConstraints) -> CameraHandle:
        """Open the device. Raises CaptureError with a device error code on failure."""
        ...
