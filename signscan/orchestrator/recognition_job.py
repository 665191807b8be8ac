"""
Recognition job: scores one image against a snapshot of the reference set.

idle --analyze--> running --> succeeded | no_match | failed
Terminal phases go back to idle with reset(), or straight to running with a
new analyze(). A running job cannot be reset.
"""
import asyncio
import math
from typing import Callable, Iterable, Optional, Tuple

from signscan.adapters.vision.base import SignatureScorer
from signscan.orchestrator import errors, phases
from signscan.orchestrator.contracts import ImageBuffer, JobSnapshot, MatchResult, ReferenceRecord
from signscan.orchestrator.errors import ReferencesUnavailable

CONFIDENCE_THRESHOLD = 60.0

# intermediate progress never reaches 100; only completion does
_MAX_INTERMEDIATE = 99.0


class RecognitionJob:
    def __init__(self, scorer: SignatureScorer, status_store,
                 threshold: float = CONFIDENCE_THRESHOLD, step_delay: float = 0.0,
                 on_progress: Optional[Callable[[float], None]] = None):
        self.scorer = scorer
        self.status = status_store
        self.threshold = threshold
        self.step_delay = step_delay
        self.on_progress = on_progress
        self.phase: phases.JobPhase = phases.IDLE
        self.progress = 0.0
        self.results: Tuple[MatchResult, ...] = ()
        self.error_code: Optional[str] = None
        self.reference_count = 0

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            phase=self.phase,
            progress=self.progress,
            results=self.results,
            error_code=self.error_code,
            reference_count=self.reference_count,
        )

    async def analyze(self, image: Optional[ImageBuffer],
                      references: Iterable[ReferenceRecord]) -> phases.JobPhase:
        if image is None:
            self.status.error(errors.ERR_NO_IMAGE)
            return self.phase
        if self.phase == phases.RUNNING:
            self.status.error(errors.ERR_BUSY, "analyze() while running")
            return self.phase

        self._clear()
        self.phase = phases.RUNNING
        self.status.log(f"recognition: start image={image.width}x{image.height} src={image.source}")

        try:
            snapshot = list(references)
        except Exception as e:
            return self._fail(errors.ERR_REFERENCES_UNAVAILABLE, f"{type(e).__name__}: {e}")
        self.reference_count = len(snapshot)
        if not snapshot:
            return self._fail(errors.ERR_EMPTY_REFERENCE_SET)

        try:
            scores = await self.scorer.score_all(image, snapshot, self._report_progress, self.step_delay)
        except asyncio.CancelledError:
            self.status.log("recognition: cancelled, back to idle")
            self._clear()
            raise
        except ReferencesUnavailable as e:
            return self._fail(errors.ERR_REFERENCES_UNAVAILABLE, str(e))
        except Exception as e:
            return self._fail(errors.ERR_SCORING_FAILURE, f"{type(e).__name__}: {e}")
        if len(scores) != len(snapshot):
            return self._fail(errors.ERR_SCORING_FAILURE,
                              f"{len(scores)} scores for {len(snapshot)} references")
        bad = [ref.id for ref, s in zip(snapshot, scores) if not math.isfinite(s.confidence)]
        if bad:
            return self._fail(errors.ERR_SCORING_FAILURE, f"non-finite confidence for {bad}")

        self._set_progress(100.0)

        scored = [
            MatchResult(
                reference_id=ref.id,
                label=ref.label,
                category=ref.category,
                confidence=_clamp(s.confidence),
                matched_features=frozenset(s.features),
            )
            for ref, s in zip(snapshot, scores)
        ]
        # stable: equal confidences keep reference order
        ranked = sorted(scored, key=lambda r: r.confidence, reverse=True)
        best = ranked[0]
        self.status.last_best_confidence = best.confidence

        if best.confidence < self.threshold:
            self.phase = phases.NO_MATCH
            self.status.log(f"recognition: no match, best={best.label} conf={best.confidence:.1f}")
            self.status.notify_info("No matching signature found.")
            return self.phase

        self.results = tuple(ranked)
        self.phase = phases.SUCCEEDED
        self.status.log(
            f"recognition: done best={best.label} conf={best.confidence:.1f} n={len(ranked)}"
        )
        self.status.success("Signature analysis completed!")
        return self.phase

    def reset(self) -> bool:
        """'Analyze again': drop results and progress. Rejected while running."""
        if self.phase == phases.RUNNING:
            self.status.error(errors.ERR_BUSY, "reset() while running")
            return False
        if self.phase in phases.TERMINAL_JOB_PHASES:
            self.status.log(f"recognition: reset from {self.phase}")
        self._clear()
        self.phase = phases.IDLE
        return True

    # ── Internal helpers ──────────────────────────────────────────────────

    def _report_progress(self, value: float):
        if value is None or math.isnan(value):
            return
        self._set_progress(min(float(value), _MAX_INTERMEDIATE))

    def _set_progress(self, value: float):
        if self.phase != phases.RUNNING or value <= self.progress:
            return
        self.progress = value
        if self.on_progress is not None:
            self.on_progress(value)

    def _fail(self, code: str, detail: str = "") -> phases.JobPhase:
        self.results = ()
        self.error_code = code
        self.phase = phases.FAILED
        self.status.error(code, detail)
        return self.phase

    def _clear(self):
        self.phase = phases.IDLE
        self.progress = 0.0
        self.results = ()
        self.error_code = None
        self.reference_count = 0


def _clamp(confidence: float) -> float:
    return max(0.0, min(100.0, float(confidence)))
