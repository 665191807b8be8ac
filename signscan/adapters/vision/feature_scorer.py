"""
OpenCV signature comparison, no ML model.

Pipeline:
  1. Decode to grayscale, Otsu-threshold to an ink mask (ink = dark strokes)
  2. Crop to the ink bounding box so framing and paper margins don't matter
  3. Extract one measurement per feature tag:
       stroke_width        mean stroke thickness relative to signature height
       spacing_pattern     share of empty columns (gaps between letters/words)
       length              bounding box aspect ratio (long vs compact signatures)
       curvature           polygon vertices per 100px of contour
       pressure_variation  spread of ink intensity
       letter_formation    correlation of the normalised ink masks
  4. Similarity per feature in [0, 1]; weighted mean -> confidence 0..100
  5. Features with similarity >= FEATURE_TAG_MIN are reported as matched

Reference features are cached per reference id. ~5ms per comparison on 720p input.
"""
from typing import Dict, Optional

import cv2
import numpy as np

from signscan.adapters.vision.base import SignatureScorer
from signscan.orchestrator.contracts import ImageBuffer, ReferenceRecord, Score
from signscan.orchestrator.errors import ReferencesUnavailable

# Weights sum to 1.0; letter formation carries the most identity
WEIGHTS = {
    "stroke_width": 0.15,
    "spacing_pattern": 0.15,
    "length": 0.15,
    "curvature": 0.15,
    "pressure_variation": 0.10,
    "letter_formation": 0.30,
}
FEATURE_TAG_MIN = 0.7

SHAPE_SIZE = (128, 32)   # (w, h) for the letter formation comparison
MIN_INK_PIXELS = 30
MIN_CONTRAST = 24      # grey levels between paper and ink


# ── Image helpers ───────────────────────────────────────────────────────────

def _bytes_to_gray(image_bytes: bytes):
    arr = np.frombuffer(image_bytes, dtype=np.uint8)
    if arr.size == 0:
        return None
    try:
        return cv2.imdecode(arr, cv2.IMREAD_GRAYSCALE)
    except cv2.error:
        return None


def _ink_crop(gray):
    """Return (gray_crop, mask_crop) around the ink, or None if there is no ink."""
    if int(gray.max()) - int(gray.min()) < MIN_CONTRAST:
        return None
    blur = cv2.GaussianBlur(gray, (3, 3), 0)
    _, mask = cv2.threshold(blur, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    pts = cv2.findNonZero(mask)
    if pts is None or len(pts) < MIN_INK_PIXELS:
        return None
    x, y, w, h = cv2.boundingRect(pts)
    return gray[y:y+h, x:x+w], mask[y:y+h, x:x+w]


# ── Feature extraction ──────────────────────────────────────────────────────

def extract_features(gray) -> Optional[dict]:
    crop = _ink_crop(gray)
    if crop is None:
        return None
    g, mask = crop
    h, w = mask.shape[:2]
    ink = mask > 0
    ink_area = float(ink.sum())

    contours, _ = cv2.findContours(mask, cv2.RETR_LIST, cv2.CHAIN_APPROX_NONE)
    perimeter = sum(cv2.arcLength(c, True) for c in contours) or 1.0
    vertices = sum(len(cv2.approxPolyDP(c, 2.0, True)) for c in contours)

    # Stroke thickness ~ 2 * area / perimeter for thin shapes
    stroke = (2.0 * ink_area / perimeter) / h

    col_has_ink = ink.any(axis=0)
    gap_ratio = 1.0 - float(col_has_ink.sum()) / w

    shape = cv2.resize(mask, SHAPE_SIZE, interpolation=cv2.INTER_AREA).astype(np.float32) / 255.0

    return {
        "stroke_width": stroke,
        "spacing_pattern": gap_ratio,
        "length": w / h,
        "curvature": 100.0 * vertices / perimeter,
        "pressure_variation": float(g[ink].std()) / 255.0,
        "shape": shape,
    }


def _ratio_similarity(a: float, b: float) -> float:
    """1.0 for equal values, falling with relative difference."""
    hi = max(abs(a), abs(b))
    if hi < 1e-6:
        return 1.0
    return float(np.clip(1.0 - abs(a - b) / hi, 0.0, 1.0))


def _shape_similarity(a, b) -> float:
    fa, fb = a.ravel(), b.ravel()
    if fa.std() < 1e-6 or fb.std() < 1e-6:
        return 1.0 if np.allclose(fa, fb) else 0.0
    corr = float(np.corrcoef(fa, fb)[0, 1])
    return float(np.clip(corr, 0.0, 1.0))


def compare_features(query: dict, ref: dict) -> Dict[str, float]:
    sims = {
        k: _ratio_similarity(query[k], ref[k])
        for k in WEIGHTS if k != "letter_formation"
    }
    sims["letter_formation"] = _shape_similarity(query["shape"], ref["shape"])
    return sims


# ── Scorer ──────────────────────────────────────────────────────────────────

class FeatureScorer(SignatureScorer):
    def __init__(self, status_store):
        self.status = status_store
        self._ref_feats: Dict[str, dict] = {}
        self._query_key: Optional[int] = None
        self._query_feats: Optional[dict] = None

    def _query_features(self, image: ImageBuffer) -> Optional[dict]:
        key = hash(image.data)
        if key != self._query_key:
            gray = _bytes_to_gray(image.data)
            if gray is None:
                raise ValueError("query image could not be decoded")
            self._query_feats = extract_features(gray)
            self._query_key = key
            if self._query_feats is None:
                self.status.log("feature_scorer: no ink found in query image")
        return self._query_feats

    def _reference_features(self, ref: ReferenceRecord) -> Optional[dict]:
        if ref.id in self._ref_feats:
            return self._ref_feats[ref.id]
        gray = _bytes_to_gray(ref.reference_image.data)
        if gray is None:
            raise ReferencesUnavailable(f"reference image for '{ref.label}' could not be decoded")
        feats = extract_features(gray)
        if feats is not None:
            self._ref_feats[ref.id] = feats
        return feats

    def forget(self, reference_id: str):
        self._ref_feats.pop(reference_id, None)

    def score(self, image: ImageBuffer, reference: ReferenceRecord) -> Score:
        query = self._query_features(image)
        ref = self._reference_features(reference)
        if query is None or ref is None:
            self.status.log(f"feature_scorer: {reference.label} has no comparable ink, conf=0")
            return Score(confidence=0.0)

        sims = compare_features(query, ref)
        conf = 100.0 * sum(WEIGHTS[k] * sims[k] for k in WEIGHTS)
        tags = frozenset(k for k, s in sims.items() if s >= FEATURE_TAG_MIN)
        self.status.log(
            f"feature_scorer: {reference.label} conf={conf:.1f}"
            f"  shape={sims['letter_formation']:.2f}"
            f"  stroke={sims['stroke_width']:.2f}"
            f"  tags={len(tags)}"
        )
        return Score(confidence=float(np.clip(conf, 0.0, 100.0)), features=tags)
