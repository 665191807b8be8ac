"""Mock camera: serves a fixed frame (or a ref jpg from data/refs/) without hardware.

Behaviour is scriptable so the capture lifecycle can be exercised in tests:
acquisition failures, slow acquisition, late first frame, frame size.
"""
import asyncio
import random
from pathlib import Path
from typing import Optional, Tuple, List

from signscan.adapters.camera.base import CameraAdapter, CameraHandle
from signscan.orchestrator.contracts import StreamConstraints
from signscan.orchestrator.errors import CaptureError

REFS_DIR = Path(__file__).parent.parent.parent / "data" / "refs"

# smallest valid-looking JPEG marker pair, enough for pipelines that never decode
_PLACEHOLDER_JPEG = b"\xff\xd8\xff\xe0mock-frame\xff\xd9"


class MockHandle(CameraHandle):
    def __init__(self, camera: "MockCamera", frame_bytes: bytes):
        self._camera = camera
        self._bytes = frame_bytes
        self._ready = False
        self._released = False
        self.refreshes = 0

    async def wait_first_frame(self) -> None:
        if self._camera.first_frame_delay:
            await asyncio.sleep(self._camera.first_frame_delay)
        if self._camera.frame_error is not None:
            raise CaptureError(self._camera.frame_error, "mock first frame failure")
        self._ready = not self._camera.deliver_no_frame

    async def refresh(self) -> None:
        if self._ready and not self._released:
            self.refreshes += 1

    def frame_size(self) -> Tuple[int, int]:
        if not self._ready or self._released:
            return 0, 0
        return self._camera.frame_size

    def grab_jpeg(self, quality: int = 90) -> Optional[bytes]:
        if not self._ready or self._released:
            return None
        return self._bytes

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._camera.live_handles -= 1
        self._camera.status.log("mock_camera: released")

    @property
    def released(self) -> bool:
        return self._released


class MockCamera(CameraAdapter):
    def __init__(self, status_store, frame_size: Tuple[int, int] = (1280, 720),
                 frame_bytes: bytes | None = None):
        self.status = status_store
        self.frame_size = frame_size
        self.frame_bytes = frame_bytes
        # scripting knobs
        self.acquire_error: Optional[str] = None
        self.frame_error: Optional[str] = None
        self.acquire_delay = 0.0
        self.first_frame_delay = 0.0
        self.deliver_no_frame = False
        # bookkeeping for leak checks
        self.live_handles = 0
        self.max_live_handles = 0
        self.handles: List[MockHandle] = []

    def _next_frame(self) -> bytes:
        if self.frame_bytes is not None:
            return self.frame_bytes
        jpegs = list(REFS_DIR.glob("*.jpg"))
        if not jpegs:
            return _PLACEHOLDER_JPEG
        chosen = random.choice(jpegs)
        self.status.log(f"mock_camera: serving {chosen.name}")
        return chosen.read_bytes()

    async def acquire(self, constraints: StreamConstraints) -> CameraHandle:
        if self.acquire_delay:
            await asyncio.sleep(self.acquire_delay)
        if self.acquire_error is not None:
            self.status.log(f"mock_camera: acquire fails with {self.acquire_error}")
            raise CaptureError(self.acquire_error, "mock acquisition failure")
        handle = MockHandle(self, self._next_frame())
        self.live_handles += 1
        self.max_live_handles = max(self.max_live_handles, self.live_handles)
        self.handles.append(handle)
        self.status.log(f"mock_camera: acquired {self.frame_size[0]}x{self.frame_size[1]}")
        return handle
