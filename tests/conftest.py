"""Shared pytest fixtures for the signscan test suite."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from signscan.adapters.camera.mock_camera import MockCamera
from signscan.adapters.vision.base import SignatureScorer
from signscan.orchestrator.capture_session import CaptureSession
from signscan.orchestrator.contracts import ImageBuffer, ReferenceRecord, Score
from signscan.services.status_store import StatusStore

FAKE_JPEG = b"\xff\xd8\xff\xe0test-frame\xff\xd9"


class FixedScorer(SignatureScorer):
    """Returns a preset confidence per reference id."""

    def __init__(self, confidences: dict, features: dict | None = None):
        self.confidences = confidences
        self.features = features or {}
        self.calls = []

    def score(self, image, reference):
        self.calls.append(reference.id)
        return Score(
            confidence=self.confidences[reference.id],
            features=frozenset(self.features.get(reference.id, ())),
        )


def make_reference(ref_id: str, label: str | None = None, category: str = "General",
                   data: bytes = FAKE_JPEG) -> ReferenceRecord:
    return ReferenceRecord(
        id=ref_id,
        label=label or f"Dr. {ref_id}",
        category=category,
        reference_image=ImageBuffer(data=data, source="uploaded"),
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def references_scored(*confidences):
    """(references, scorer) with references r0, r1, ... scored at the given confidences."""
    refs = [make_reference(f"r{i}") for i in range(len(confidences))]
    scorer = FixedScorer({r.id: c for r, c in zip(refs, confidences)})
    return refs, scorer


@pytest.fixture
def status() -> StatusStore:
    return StatusStore()


@pytest.fixture
def camera(status) -> MockCamera:
    return MockCamera(status, frame_size=(640, 480), frame_bytes=FAKE_JPEG)


@pytest.fixture
def captured() -> list:
    return []


@pytest.fixture
def session(camera, status, captured) -> CaptureSession:
    return CaptureSession(camera, status, on_capture=captured.append)


@pytest.fixture
def sample_image() -> ImageBuffer:
    return ImageBuffer(data=FAKE_JPEG, source="captured", width=640, height=480)
