import base64
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Literal, FrozenSet, Tuple

from signscan.orchestrator.phases import CapturePhase, JobPhase, ImageSource

FeatureTag = Literal[
    "stroke_width",
    "spacing_pattern",
    "length",
    "curvature",
    "pressure_variation",
    "letter_formation",
]

FEATURE_TAGS: Tuple[FeatureTag, ...] = (
    "stroke_width",
    "spacing_pattern",
    "length",
    "curvature",
    "pressure_variation",
    "letter_formation",
)

FEATURE_TEXT = {
    "stroke_width": "Stroke width similarity",
    "spacing_pattern": "Letter spacing pattern",
    "length": "Signature length",
    "curvature": "Curve characteristics",
    "pressure_variation": "Pressure variation",
    "letter_formation": "Letter formation style",
}

ConfidenceBand = Literal["high", "possible", "low"]

BAND_TEXT = {
    "high": "High Match",
    "possible": "Possible Match",
    "low": "Low Match",
}


def confidence_band(confidence: float) -> ConfidenceBand:
    if confidence >= 80:
        return "high"
    if confidence >= 60:
        return "possible"
    return "low"


@dataclass(frozen=True)
class ImageBuffer:
    data: bytes                     # encoded image payload (JPEG from camera, anything from upload)
    source: ImageSource
    width: Optional[int] = None
    height: Optional[int] = None
    content_type: str = "image/jpeg"

    def to_data_url(self) -> str:
        b64 = base64.standard_b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{b64}"

    @classmethod
    def from_data_url(cls, url: str, source: ImageSource,
                      width: Optional[int] = None, height: Optional[int] = None) -> "ImageBuffer":
        header, _, b64 = url.partition(",")
        if not header.startswith("data:") or not header.endswith(";base64"):
            raise ValueError("not a base64 data url")
        content_type = header[len("data:"):-len(";base64")] or "application/octet-stream"
        return cls(data=base64.b64decode(b64), source=source, width=width, height=height,
                   content_type=content_type)


@dataclass(frozen=True)
class ReferenceRecord:
    id: str
    label: str                      # display name, e.g. "Dr. Jane Smith"
    category: str                   # free text, e.g. specialty
    reference_image: ImageBuffer
    created_at: datetime


@dataclass(frozen=True)
class Score:
    confidence: float               # 0..100
    features: FrozenSet[FeatureTag] = frozenset()


@dataclass(frozen=True)
class MatchResult:
    reference_id: str
    label: str
    category: str
    confidence: float
    matched_features: FrozenSet[FeatureTag] = frozenset()

    @property
    def band(self) -> ConfidenceBand:
        return confidence_band(self.confidence)


@dataclass(frozen=True)
class StreamConstraints:
    facing: Literal["environment", "user"] = "environment"
    ideal_width: int = 1280
    ideal_height: int = 720
    audio: bool = False


@dataclass(frozen=True)
class Notice:
    level: Literal["success", "error", "info"]
    message: str
    code: Optional[str] = None


@dataclass(frozen=True)
class CaptureState:
    phase: CapturePhase
    is_loading: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class JobSnapshot:
    phase: JobPhase
    progress: float
    results: Tuple[MatchResult, ...] = ()
    error_code: Optional[str] = None
    reference_count: int = 0


@dataclass
class ScanResult:
    ok: bool
    image: Optional[ImageBuffer] = None
    error_code: Optional[str] = None
