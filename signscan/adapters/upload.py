"""File upload adapter: turns a user-selected file into the same ImageBuffer the camera produces."""
from typing import Optional, Tuple

import cv2
import numpy as np

from signscan.orchestrator import errors, phases
from signscan.orchestrator.contracts import ImageBuffer
from signscan.orchestrator.errors import CaptureError


def measure(data: bytes) -> Tuple[Optional[int], Optional[int]]:
    """(width, height) if the payload decodes, (None, None) otherwise."""
    arr = np.frombuffer(data, dtype=np.uint8)
    try:
        img = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED)
    except cv2.error:
        return None, None
    if img is None:
        return None, None
    h, w = img.shape[:2]
    return w, h


def load_upload(data: bytes, content_type: str | None, filename: str = "") -> ImageBuffer:
    """Validate by content type and wrap. Raises CaptureError(INVALID_UPLOAD)."""
    content_type = (content_type or "").strip().lower()
    if not content_type.startswith("image/"):
        raise CaptureError(errors.ERR_INVALID_UPLOAD, f"{filename or 'file'} has type '{content_type}'")
    if not data:
        raise CaptureError(errors.ERR_INVALID_UPLOAD, f"{filename or 'file'} is empty")
    width, height = measure(data)
    return ImageBuffer(data=data, source=phases.UPLOADED, width=width, height=height,
                       content_type=content_type)
