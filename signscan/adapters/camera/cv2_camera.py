"""
OpenCV webcam adapter.
CAMERA_INDEX env var (default 0) selects the webcam device.
FIRST_FRAME_TIMEOUT_S env var (default 5) bounds the wait for the first frame.

OpenCV has no facing-mode or permission API, so failures are classified from the
Linux device node: missing -> not found, unreadable -> access denied,
present but refusing to open -> busy.

Every cap.read() runs in the default executor. grab_jpeg() only encodes the
frame cached by the last read, so it is safe to call on the event loop.
"""
import asyncio
import os
import sys
from pathlib import Path
from typing import Optional, Tuple

import cv2

from signscan.adapters.camera.base import CameraAdapter, CameraHandle
from signscan.orchestrator import errors
from signscan.orchestrator.contracts import StreamConstraints
from signscan.orchestrator.errors import CaptureError

_POLL_S = 0.05


class CV2Handle(CameraHandle):
    def __init__(self, status_store, cap, index: int, first_frame_timeout: float):
        self.status = status_store
        self._cap = cap
        self._index = index
        self._timeout = first_frame_timeout
        self._frame = None
        self._reading = False
        self._released = False

    async def wait_first_frame(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        while True:
            if self._released:
                raise CaptureError(errors.ERR_DEVICE_UNAVAILABLE, "released before first frame")
            await self._read_off_loop()
            if self._released:
                raise CaptureError(errors.ERR_DEVICE_UNAVAILABLE, "released before first frame")
            if self._frame is not None:
                h, w = self._frame.shape[:2]
                self.status.log(f"cv2_camera: first frame {w}x{h} on device {self._index}")
                return
            if loop.time() >= deadline:
                raise CaptureError(errors.ERR_DEVICE_UNAVAILABLE,
                                   f"no frame from device {self._index} within {self._timeout}s")
            await asyncio.sleep(_POLL_S)

    async def refresh(self) -> None:
        # a read already in flight will update the cached frame itself
        if self._released or self._reading:
            return
        await self._read_off_loop()

    async def _read_off_loop(self):
        """cap.read() blocks until the driver hands over a frame, so it runs in the executor."""
        loop = asyncio.get_running_loop()
        self._reading = True
        try:
            ok, frame = await loop.run_in_executor(None, self._cap.read)
        finally:
            self._reading = False
            # release() during an in-flight read is deferred to here
            if self._released:
                self._cap.release()
        if ok and frame is not None and frame.size and not self._released:
            self._frame = frame

    def frame_size(self) -> Tuple[int, int]:
        if self._frame is None:
            return 0, 0
        h, w = self._frame.shape[:2]
        return w, h

    def grab_jpeg(self, quality: int = 90) -> Optional[bytes]:
        if self._released or self._frame is None:
            return None
        ok, buf = cv2.imencode(".jpg", self._frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ok:
            self.status.log("cv2_camera: jpeg encode failed")
            return None
        return bytes(buf)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if not self._reading:
            self._cap.release()
        self.status.log(f"cv2_camera: released device {self._index}")

    @property
    def released(self) -> bool:
        return self._released


class CV2Camera(CameraAdapter):
    def __init__(self, status_store, index: int | None = None, first_frame_timeout: float | None = None):
        self.status = status_store
        self._index = index if index is not None else int(os.getenv("CAMERA_INDEX", "0"))
        self._timeout = (first_frame_timeout if first_frame_timeout is not None
                         else float(os.getenv("FIRST_FRAME_TIMEOUT_S", "5")))

    def _check_node(self):
        if not sys.platform.startswith("linux"):
            return
        node = Path(f"/dev/video{self._index}")
        if not node.exists():
            raise CaptureError(errors.ERR_DEVICE_NOT_FOUND, f"{node} does not exist")
        if not os.access(node, os.R_OK | os.W_OK):
            raise CaptureError(errors.ERR_DEVICE_ACCESS_DENIED, f"no read/write permission on {node}")

    def _open(self, constraints: StreamConstraints):
        cap = cv2.VideoCapture(self._index)
        if cap.isOpened():
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.ideal_width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.ideal_height)
        return cap

    async def acquire(self, constraints: StreamConstraints) -> CameraHandle:
        self._check_node()
        self.status.log(
            f"cv2_camera: opening device {self._index} "
            f"ideal={constraints.ideal_width}x{constraints.ideal_height} facing={constraints.facing}"
        )
        loop = asyncio.get_running_loop()
        try:
            cap = await loop.run_in_executor(None, self._open, constraints)
        except cv2.error as e:
            raise CaptureError(errors.ERR_DEVICE_UNAVAILABLE, str(e)) from e
        if not cap.isOpened():
            cap.release()
            code = errors.ERR_DEVICE_BUSY if sys.platform.startswith("linux") else errors.ERR_DEVICE_UNAVAILABLE
            self.status.log(f"cv2_camera: failed to open device {self._index} ({code})")
            raise CaptureError(code, f"device {self._index} did not open")
        return CV2Handle(self.status, cap, self._index, self._timeout)
