from typing import Iterator, Optional

from signscan.adapters.upload import load_upload
from signscan.orchestrator import errors, phases
from signscan.orchestrator.capture_session import CaptureSession
from signscan.orchestrator.contracts import (
    CaptureState, ImageBuffer, JobSnapshot, ReferenceRecord, ScanResult,
)
from signscan.orchestrator.errors import CaptureError
from signscan.orchestrator.recognition_job import RecognitionJob
from signscan.services.repository import ReferenceRepository, new_reference


class Orchestrator:
    """Scan flow glue: capture/upload -> current image -> recognition against the repository."""

    def __init__(self, capture: CaptureSession, job: RecognitionJob,
                 repository: ReferenceRepository, status_store):
        self.capture = capture
        self.job = job
        self.repository = repository
        self.status = status_store
        self.current_image: Optional[ImageBuffer] = None
        self.capture.on_capture = self._accept_image

    # ── Image acquisition ──────────────────────────────────────────────────

    async def start_capture(self, retake: bool = False) -> CaptureState:
        if retake:
            self.status.log("orchestrator: retake, dropping current image")
            self.current_image = None
            self._discard_analysis()
        return await self.capture.start()

    def cancel_capture(self) -> CaptureState:
        return self.capture.cancel()

    def take_shot(self) -> ScanResult:
        image = self.capture.capture()
        if image is None:
            return ScanResult(ok=False, error_code=errors.ERR_FRAME_NOT_READY)
        return ScanResult(ok=True, image=image)

    def _load(self, data: bytes, content_type: str | None, filename: str = "") -> ScanResult:
        try:
            image = load_upload(data, content_type, filename)
        except CaptureError as e:
            self.status.error(e.code, e.detail)
            return ScanResult(ok=False, error_code=e.code)
        return ScanResult(ok=True, image=image)

    def upload(self, data: bytes, content_type: str | None, filename: str = "") -> ScanResult:
        """Selected file becomes the current image. Invalid files change nothing."""
        rr = self._load(data, content_type, filename)
        if rr.ok:
            self._accept_image(rr.image)
            self.status.success("Image uploaded successfully!")
        return rr

    def upload_reference_image(self, data: bytes, content_type: str | None) -> ScanResult:
        """Validate a reference sample without touching the current image."""
        return self._load(data, content_type, "reference")

    def _accept_image(self, image: ImageBuffer):
        self.current_image = image
        self.status.signatures_scanned += 1
        self.status.log(f"orchestrator: new {image.source} image {image.width}x{image.height}")
        self._discard_analysis()

    def _discard_analysis(self):
        if self.job.phase == phases.RUNNING:
            self.status.log("orchestrator: analysis running, keeping it")
            return
        self.job.reset()

    # ── Recognition ─────────────────────────────────────────────────────────

    def _reference_snapshot(self) -> Iterator[ReferenceRecord]:
        # read lazily so storage failures surface inside the job as REFERENCES_UNAVAILABLE
        yield from self.repository.list()

    async def analyze(self) -> JobSnapshot:
        await self.job.analyze(self.current_image, self._reference_snapshot())
        return self.job.snapshot()

    def reset_analysis(self) -> bool:
        return self.job.reset()

    # ── Reference database ──────────────────────────────────────────────────

    def add_reference(self, label: str, category: str, image: Optional[ImageBuffer]) -> dict:
        try:
            record = new_reference(label, category, image)
            self.repository.append(record)
        except CaptureError as e:
            self.status.error(e.code, e.detail)
            return {"ok": False, "error_code": e.code}
        except errors.ReferencesUnavailable as e:
            self.status.error(errors.ERR_REFERENCES_UNAVAILABLE, str(e))
            return {"ok": False, "error_code": errors.ERR_REFERENCES_UNAVAILABLE}
        self.status.success(f"'{record.label}' added to database successfully!")
        return {"ok": True, "record": record}

    def remove_reference(self, reference_id: str) -> bool:
        try:
            removed = self.repository.remove(reference_id)
        except errors.ReferencesUnavailable as e:
            self.status.error(errors.ERR_REFERENCES_UNAVAILABLE, str(e))
            return False
        if removed:
            forget = getattr(self.job.scorer, "forget", None)
            if forget is not None:
                forget(reference_id)
            self.status.success("Reference removed from database")
        return removed
