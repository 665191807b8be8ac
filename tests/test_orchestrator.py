import pytest

from conftest import FAKE_JPEG, FixedScorer, make_reference
from signscan.orchestrator import errors, phases
from signscan.orchestrator.capture_session import CaptureSession
from signscan.orchestrator.contracts import ImageBuffer
from signscan.orchestrator.errors import ReferencesUnavailable
from signscan.orchestrator.recognition_job import RecognitionJob
from signscan.orchestrator.state_machine import Orchestrator
from signscan.services.repository import InMemoryReferenceRepository, JsonReferenceRepository


class BrokenRepository(InMemoryReferenceRepository):
    def list(self):
        raise ReferencesUnavailable("storage offline")


@pytest.fixture
def repository():
    return InMemoryReferenceRepository([make_reference("a"), make_reference("b")])


@pytest.fixture
def scorer():
    return FixedScorer({"a": 40, "b": 85}, features={"b": ["length", "curvature"]})


@pytest.fixture
def orch(camera, status, repository, scorer):
    capture = CaptureSession(camera, status)
    job = RecognitionJob(scorer, status)
    return Orchestrator(capture=capture, job=job, repository=repository, status_store=status)


@pytest.mark.asyncio
async def test_capture_then_analyze(orch, camera, status):
    await orch.start_capture()
    shot = orch.take_shot()

    assert shot.ok
    assert orch.current_image is shot.image
    assert status.signatures_scanned == 1
    assert camera.live_handles == 0

    snap = await orch.analyze()

    assert snap.phase == phases.SUCCEEDED
    assert [r.reference_id for r in snap.results] == ["b", "a"]
    assert snap.results[0].matched_features == frozenset({"length", "curvature"})
    assert snap.results[0].band == "high"
    assert snap.reference_count == 2


@pytest.mark.asyncio
async def test_shot_without_stream(orch):
    shot = orch.take_shot()

    assert not shot.ok
    assert shot.error_code == errors.ERR_FRAME_NOT_READY
    assert orch.current_image is None


@pytest.mark.asyncio
async def test_invalid_upload_changes_nothing(orch, status):
    await orch.start_capture()
    before = orch.capture.state()

    rr = orch.upload(b"hello", "text/plain", "notes.txt")

    assert not rr.ok
    assert rr.error_code == errors.ERR_INVALID_UPLOAD
    assert rr.image is None
    assert orch.current_image is None
    assert orch.capture.state() == before
    assert status.last_notice.code == errors.ERR_INVALID_UPLOAD
    assert status.signatures_scanned == 0


@pytest.mark.asyncio
async def test_new_image_discards_previous_analysis(orch):
    orch.upload(FAKE_JPEG, "image/jpeg", "one.jpg")
    await orch.analyze()
    assert orch.job.phase == phases.SUCCEEDED

    orch.upload(FAKE_JPEG, "image/jpeg", "two.jpg")

    assert orch.job.phase == phases.IDLE
    assert orch.job.results == ()
    assert orch.job.progress == 0.0


@pytest.mark.asyncio
async def test_retake_drops_current_image(orch):
    orch.upload(FAKE_JPEG, "image/jpeg", "one.jpg")

    state = await orch.start_capture(retake=True)

    assert state.phase == phases.STREAMING
    assert orch.current_image is None


@pytest.mark.asyncio
async def test_analyze_without_image(orch, status):
    snap = await orch.analyze()

    assert snap.phase == phases.IDLE
    assert status.last_notice.code == errors.ERR_NO_IMAGE


@pytest.mark.asyncio
async def test_repository_failure_is_classified(camera, status, scorer):
    job = RecognitionJob(scorer, status)
    orch = Orchestrator(CaptureSession(camera, status), job, BrokenRepository(), status)
    orch.upload(FAKE_JPEG, "image/jpeg", "sig.jpg")

    snap = await orch.analyze()

    assert snap.phase == phases.FAILED
    assert snap.error_code == errors.ERR_REFERENCES_UNAVAILABLE


@pytest.mark.asyncio
async def test_empty_repository_is_failure(camera, status, scorer):
    job = RecognitionJob(scorer, status)
    orch = Orchestrator(CaptureSession(camera, status), job, InMemoryReferenceRepository(), status)
    orch.upload(FAKE_JPEG, "image/jpeg", "sig.jpg")

    snap = await orch.analyze()

    assert snap.phase == phases.FAILED
    assert snap.error_code == errors.ERR_EMPTY_REFERENCE_SET


def test_add_and_remove_reference(orch, repository):
    image = ImageBuffer(data=FAKE_JPEG, source="uploaded")

    res = orch.add_reference("Dr. New", "Oncology", image)
    assert res["ok"]
    new_id = res["record"].id
    assert new_id in [r.id for r in repository.list()]

    assert orch.remove_reference(new_id) is True
    assert orch.remove_reference(new_id) is False


def test_add_reference_requires_fields(orch, status):
    res = orch.add_reference("", "Oncology", None)

    assert res == {"ok": False, "error_code": errors.ERR_INVALID_REFERENCE}
    assert status.last_notice.code == errors.ERR_INVALID_REFERENCE


def test_reference_write_failure_is_classified(camera, status, scorer, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    repo = JsonReferenceRepository(status, blocker / "refs.json")
    orch = Orchestrator(CaptureSession(camera, status), RecognitionJob(scorer, status), repo, status)

    res = orch.add_reference("Dr. New", "Oncology", ImageBuffer(data=FAKE_JPEG, source="uploaded"))

    assert res == {"ok": False, "error_code": errors.ERR_REFERENCES_UNAVAILABLE}
    assert status.last_notice.code == errors.ERR_REFERENCES_UNAVAILABLE
