"""
Capture lifecycle: idle -> acquiring -> streaming -> idle, with error as a
retryable side state.

The session is the only owner of a camera handle. Every transition out of
acquiring/streaming releases whatever handle it holds, and an acquisition that
finishes after it was superseded (cancel() or a newer start()) is released
without touching state.
"""
import asyncio
from typing import Callable, Optional

from signscan.adapters.camera.base import CameraAdapter, CameraHandle
from signscan.orchestrator import errors, phases
from signscan.orchestrator.contracts import CaptureState, ImageBuffer, StreamConstraints
from signscan.orchestrator.errors import CaptureError

JPEG_QUALITY = 90


class CaptureSession:
    def __init__(self, camera: CameraAdapter, status_store,
                 on_capture: Optional[Callable[[ImageBuffer], None]] = None,
                 constraints: StreamConstraints | None = None):
        self.camera = camera
        self.status = status_store
        self.on_capture = on_capture
        self.constraints = constraints or StreamConstraints()
        self.phase: phases.CapturePhase = phases.IDLE
        self.last_error: Optional[str] = None
        self._handle: Optional[CameraHandle] = None       # live, streaming only
        self._provisional: Optional[CameraHandle] = None  # acquiring only
        self._generation = 0

    @property
    def is_loading(self) -> bool:
        return self.phase == phases.ACQUIRING

    @property
    def holds_device(self) -> bool:
        return self._handle is not None or self._provisional is not None

    def state(self) -> CaptureState:
        return CaptureState(
            phase=self.phase,
            is_loading=self.is_loading,
            error_code=self.last_error,
            error_message=errors.message_for(self.last_error) if self.last_error else None,
        )

    # ── Transitions ────────────────────────────────────────────────────────

    async def start(self) -> CaptureState:
        """Acquire the camera and wait for the first frame. Retry is always allowed."""
        self._release_all()
        self._generation += 1
        gen = self._generation
        self.last_error = None
        self.phase = phases.ACQUIRING
        self.status.log(f"capture: start gen={gen}")

        handle: Optional[CameraHandle] = None
        try:
            handle = await self.camera.acquire(self.constraints)
            if gen != self._generation:
                self._discard_late(handle, gen)
                return self.state()
            self._provisional = handle
            await handle.wait_first_frame()
        except asyncio.CancelledError:
            if handle is not None:
                handle.release()
            if gen == self._generation:
                self._provisional = None
                self.phase = phases.IDLE
            raise
        except CaptureError as e:
            self._acquire_failed(gen, handle, e.code, e.detail)
            return self.state()
        except Exception as e:
            self._acquire_failed(gen, handle, errors.ERR_DEVICE_UNAVAILABLE, f"{type(e).__name__}: {e}")
            return self.state()

        if gen != self._generation:
            self._discard_late(handle, gen)
            return self.state()

        self._provisional = None
        self._handle = handle
        self.phase = phases.STREAMING
        self.status.log(f"capture: streaming gen={gen}")
        self.status.success("Camera started successfully!")
        return self.state()

    def cancel(self) -> CaptureState:
        """Stop immediately, whatever the acquisition progress. Emits nothing."""
        if self.phase in (phases.ACQUIRING, phases.STREAMING):
            self._generation += 1
            self.status.log(f"capture: cancel from {self.phase}")
        self._release_all()
        if self.phase != phases.ERROR:
            self.phase = phases.IDLE
        return self.state()

    def capture(self) -> Optional[ImageBuffer]:
        """One-shot frame grab. Emits through on_capture, then tears the device down."""
        if self.phase != phases.STREAMING or self._handle is None:
            self.status.log(f"capture: rejected in phase {self.phase}")
            self.status.error(errors.ERR_FRAME_NOT_READY, f"capture() in {self.phase}")
            return None

        width, height = self._handle.frame_size()
        if width <= 0 or height <= 0:
            self.status.error(errors.ERR_FRAME_NOT_READY, "frame has no size yet")
            return None
        data = self._handle.grab_jpeg(JPEG_QUALITY)
        if not data:
            self.status.error(errors.ERR_FRAME_NOT_READY, "frame grab failed")
            return None
        width, height = self._handle.frame_size()

        image = ImageBuffer(data=data, source=phases.CAPTURED, width=width, height=height)
        self.status.log(f"capture: frame {width}x{height} ({len(data)} bytes)")
        try:
            if self.on_capture is not None:
                self.on_capture(image)
        except Exception as e:
            # the image is still returned and the device still released
            self.status.log(f"capture: on_capture failed {type(e).__name__}: {e}")
        finally:
            self._generation += 1
            self._release_all()
            self.phase = phases.IDLE
        self.status.success("Signature captured successfully!")
        return image

    async def refresh_frame(self):
        """Read a fresh frame off the device so the next capture/preview is current."""
        if self.phase != phases.STREAMING or self._handle is None:
            return
        await self._handle.refresh()

    def preview(self) -> Optional[bytes]:
        """Latest frame for a live preview; leaves the stream running."""
        if self.phase != phases.STREAMING or self._handle is None:
            return None
        return self._handle.grab_jpeg(JPEG_QUALITY)

    # ── Internal helpers ──────────────────────────────────────────────────

    def _acquire_failed(self, gen: int, handle: Optional[CameraHandle], code: str, detail: str):
        if handle is not None:
            handle.release()
        if gen != self._generation:
            self.status.log(f"capture: stale failure gen={gen} ignored ({code})")
            return
        self._provisional = None
        self.phase = phases.ERROR
        self.last_error = code
        self.status.error(code, detail)

    def _discard_late(self, handle: CameraHandle, gen: int):
        handle.release()
        self.status.log(f"capture: late acquisition gen={gen} discarded")

    def _release_all(self):
        for h in (self._handle, self._provisional):
            if h is not None:
                h.release()
        self._handle = None
        self._provisional = None
