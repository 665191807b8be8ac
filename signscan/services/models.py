from pydantic import BaseModel
from typing import Literal, Optional

CapturePhaseOut = Literal["idle", "acquiring", "streaming", "error"]
JobPhaseOut = Literal["idle", "running", "succeeded", "no_match", "failed"]


class CaptureStateOut(BaseModel):
    phase: CapturePhaseOut
    is_loading: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    recoverable: Optional[bool] = None   # set with error_code: can start() fix it


class ImageOut(BaseModel):
    source: Literal["captured", "uploaded"]
    width: Optional[int] = None
    height: Optional[int] = None
    content_type: str
    size_bytes: int


class MatchOut(BaseModel):
    reference_id: str
    label: str
    category: str
    confidence: float
    band: Literal["high", "possible", "low"]
    band_text: str
    matched_features: list[str]
    matched_feature_text: list[str] = []


class AnalysisOut(BaseModel):
    phase: JobPhaseOut
    progress: float
    results: list[MatchOut] = []
    error_code: Optional[str] = None
    message: Optional[str] = None     # user-facing text for no_match / failed
    recoverable: Optional[bool] = None
    reference_count: int = 0


class NoticeOut(BaseModel):
    level: Literal["success", "error", "info"]
    message: str
    code: Optional[str] = None


class StatsOut(BaseModel):
    signatures_scanned: int
    references: int
    last_best_confidence: Optional[float] = None


class StatusResponse(BaseModel):
    capture: CaptureStateOut
    analysis: AnalysisOut
    image: Optional[ImageOut] = None
    stats: StatsOut
    notices: list[NoticeOut]
    logs: list[str]


class ShotResponse(BaseModel):
    ok: bool
    capture: CaptureStateOut
    image: Optional[ImageOut] = None
    error_code: Optional[str] = None
    error: Optional[str] = None


class UploadRequest(BaseModel):
    image: str  # base64
    content_type: str
    filename: str = ""


class UploadResponse(BaseModel):
    ok: bool
    image: Optional[ImageOut] = None
    error_code: Optional[str] = None
    error: Optional[str] = None


class ReferenceIn(BaseModel):
    label: str
    category: str
    image: str  # base64
    content_type: str = "image/jpeg"


class ReferenceOut(BaseModel):
    id: str
    label: str
    category: str
    created_at: str
    width: Optional[int] = None
    height: Optional[int] = None


class ReferenceResponse(BaseModel):
    ok: bool
    reference: Optional[ReferenceOut] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
