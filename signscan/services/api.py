import base64
import binascii
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response

from signscan.adapters.vision.random_scorer import RandomScorer
from signscan.orchestrator import errors, phases
from signscan.orchestrator.capture_session import CaptureSession
from signscan.orchestrator.contracts import (
    BAND_TEXT, FEATURE_TAGS, FEATURE_TEXT, CaptureState, ImageBuffer, JobSnapshot, ReferenceRecord,
)
from signscan.orchestrator.recognition_job import CONFIDENCE_THRESHOLD, RecognitionJob
from signscan.orchestrator.state_machine import Orchestrator
from signscan.services.models import (
    AnalysisOut, CaptureStateOut, ImageOut, MatchOut, NoticeOut, ReferenceIn,
    ReferenceOut, ReferenceResponse, ShotResponse, StatsOut, StatusResponse,
    UploadRequest, UploadResponse,
)
from signscan.services.repository import JsonReferenceRepository
from signscan.services.status_store import StatusStore

load_dotenv(dotenv_path="signscan/.env", override=False)

app = FastAPI(title="signscan")

# Every endpoint is async def, so capture/job transitions never run in the threadpool.

status = StatusStore()

# Camera adapter: CAMERA_ADAPTER = cv2 | mock  (default: cv2)
camera_adapter = os.getenv("CAMERA_ADAPTER", "cv2").lower()
if camera_adapter == "mock":
    from signscan.adapters.camera.mock_camera import MockCamera
    camera = MockCamera(status)
else:
    from signscan.adapters.camera.cv2_camera import CV2Camera
    camera = CV2Camera(status)
status.log(f"camera adapter: {type(camera).__name__}")

# Scorer: SCORER = random | features  (default: random)
scorer_name = os.getenv("SCORER", "random").lower()
if scorer_name == "features":
    from signscan.adapters.vision.feature_scorer import FeatureScorer
    scorer = FeatureScorer(status)
else:
    seed = os.getenv("SCORER_SEED")
    scorer = RandomScorer(status, seed=int(seed) if seed else None)
status.log(f"scorer: {type(scorer).__name__}")

references_path = Path(os.getenv("REFERENCES_PATH", "signscan/data/references.json"))
repository = JsonReferenceRepository(status, references_path)
status.log(f"repository: {references_path}")

capture = CaptureSession(camera, status)
job = RecognitionJob(
    scorer,
    status,
    threshold=float(os.getenv("CONFIDENCE_THRESHOLD", str(CONFIDENCE_THRESHOLD))),
    step_delay=float(os.getenv("ANALYSIS_STEP_DELAY_S", "0.2")),
)
orch = Orchestrator(capture=capture, job=job, repository=repository, status_store=status)


# ── Response helpers ────────────────────────────────────────────────────────

def _capture_out(s: CaptureState) -> CaptureStateOut:
    return CaptureStateOut(phase=s.phase, is_loading=s.is_loading,
                           error_code=s.error_code, error_message=s.error_message,
                           recoverable=errors.is_recoverable(s.error_code) if s.error_code else None)


def _image_out(img: ImageBuffer | None) -> ImageOut | None:
    if img is None:
        return None
    return ImageOut(source=img.source, width=img.width, height=img.height,
                    content_type=img.content_type, size_bytes=len(img.data))


def _analysis_out(snap: JobSnapshot) -> AnalysisOut:
    message = None
    if snap.phase == phases.NO_MATCH:
        message = "No matching signature found."
    elif snap.phase == phases.FAILED and snap.error_code:
        message = errors.message_for(snap.error_code)
    results = [
        MatchOut(
            reference_id=r.reference_id,
            label=r.label,
            category=r.category,
            confidence=round(r.confidence, 2),
            band=r.band,
            band_text=BAND_TEXT[r.band],
            matched_features=[t for t in FEATURE_TAGS if t in r.matched_features],
            matched_feature_text=[FEATURE_TEXT[t] for t in FEATURE_TAGS if t in r.matched_features],
        )
        for r in snap.results
    ]
    return AnalysisOut(phase=snap.phase, progress=round(snap.progress, 1), results=results,
                       error_code=snap.error_code, message=message,
                       recoverable=errors.is_recoverable(snap.error_code) if snap.error_code else None,
                       reference_count=snap.reference_count)


def _reference_out(r: ReferenceRecord) -> ReferenceOut:
    return ReferenceOut(id=r.id, label=r.label, category=r.category,
                        created_at=r.created_at.isoformat(),
                        width=r.reference_image.width, height=r.reference_image.height)


def _decode_b64(data: str) -> bytes | None:
    if "," in data and data.startswith("data:"):
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return None


def _reference_count() -> int:
    try:
        return len(repository.list())
    except errors.ReferencesUnavailable:
        return 0


# ── Status ──────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    checks = {"api": True, "camera_adapter": type(camera).__name__, "scorer": type(scorer).__name__}
    try:
        checks["references"] = len(repository.list())
        checks["references_ok"] = True
    except errors.ReferencesUnavailable as e:
        checks["references_ok"] = False
        checks["references_error"] = str(e)
    checks["all_ok"] = checks["api"] and checks["references_ok"]
    return checks


@app.get("/status", response_model=StatusResponse)
async def get_status():
    return StatusResponse(
        capture=_capture_out(capture.state()),
        analysis=_analysis_out(job.snapshot()),
        image=_image_out(orch.current_image),
        stats=StatsOut(
            signatures_scanned=status.signatures_scanned,
            references=_reference_count(),
            last_best_confidence=status.last_best_confidence,
        ),
        notices=[NoticeOut(level=n.level, message=n.message, code=n.code) for n in status.notices[-10:]],
        logs=status.logs,
    )


# ── Capture ─────────────────────────────────────────────────────────────────

@app.post("/capture/start", response_model=CaptureStateOut)
async def capture_start(retake: bool = False):
    """Open the camera and wait for the first frame.
    Another request may cancel while this one is still waiting.
    """
    return _capture_out(await orch.start_capture(retake=retake))


@app.post("/capture/cancel", response_model=CaptureStateOut)
async def capture_cancel():
    return _capture_out(orch.cancel_capture())


@app.post("/capture/shot", response_model=ShotResponse)
async def capture_shot():
    await capture.refresh_frame()
    rr = orch.take_shot()
    return ShotResponse(
        ok=rr.ok,
        capture=_capture_out(capture.state()),
        image=_image_out(rr.image),
        error_code=rr.error_code,
        error=errors.message_for(rr.error_code) if rr.error_code else None,
    )


@app.get("/capture/preview")
async def capture_preview():
    await capture.refresh_frame()
    frame = capture.preview()
    if frame is None:
        return JSONResponse(status_code=409, content={
            "ok": False,
            "error_code": errors.ERR_FRAME_NOT_READY,
            "error": errors.message_for(errors.ERR_FRAME_NOT_READY),
        })
    return Response(content=frame, media_type="image/jpeg")


@app.post("/upload", response_model=UploadResponse)
async def upload(req: UploadRequest):
    data = _decode_b64(req.image)
    if data is None:
        status.error(errors.ERR_INVALID_UPLOAD, "base64 decode failed")
        return UploadResponse(ok=False, error_code=errors.ERR_INVALID_UPLOAD,
                              error=errors.message_for(errors.ERR_INVALID_UPLOAD))
    rr = orch.upload(data, req.content_type, req.filename)
    return UploadResponse(
        ok=rr.ok,
        image=_image_out(rr.image),
        error_code=rr.error_code,
        error=errors.message_for(rr.error_code) if rr.error_code else None,
    )


# ── Analysis ────────────────────────────────────────────────────────────────

@app.post("/analyze", response_model=AnalysisOut)
async def analyze():
    """Run recognition on the current image. Poll GET /analysis for progress."""
    return _analysis_out(await orch.analyze())


@app.get("/analysis", response_model=AnalysisOut)
async def get_analysis():
    return _analysis_out(job.snapshot())


@app.post("/analysis/reset")
async def analysis_reset():
    ok = orch.reset_analysis()
    return {"ok": ok, "error_code": None if ok else errors.ERR_BUSY}


# ── Reference database ──────────────────────────────────────────────────────

@app.get("/references")
async def list_references():
    try:
        records = repository.list()
    except errors.ReferencesUnavailable:
        return {"ok": False, "error_code": errors.ERR_REFERENCES_UNAVAILABLE, "references": []}
    return {"ok": True, "references": [_reference_out(r) for r in records]}


@app.post("/references", response_model=ReferenceResponse)
async def add_reference(req: ReferenceIn):
    data = _decode_b64(req.image)
    image = None
    if data:
        rr = orch.upload_reference_image(data, req.content_type)
        if not rr.ok:
            return ReferenceResponse(ok=False, error_code=rr.error_code,
                                     error=errors.message_for(rr.error_code))
        image = rr.image
    res = orch.add_reference(req.label, req.category, image)
    if not res["ok"]:
        return ReferenceResponse(ok=False, error_code=res["error_code"],
                                 error=errors.message_for(res["error_code"]))
    return ReferenceResponse(ok=True, reference=_reference_out(res["record"]))


@app.delete("/references/{reference_id}")
async def remove_reference(reference_id: str):
    return {"ok": orch.remove_reference(reference_id)}
