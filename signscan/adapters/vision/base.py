import asyncio
from typing import Callable, Sequence, List

from signscan.orchestrator.contracts import ImageBuffer, ReferenceRecord, Score


class SignatureScorer:
    def score(self, image: ImageBuffer, reference: ReferenceRecord) -> Score:
        """Compare one query image with one reference. Confidence 0..100."""
        raise NotImplementedError

    async def score_all(self, image: ImageBuffer, references: Sequence[ReferenceRecord],
                        on_progress: Callable[[float], None], step_delay: float = 0.0) -> List[Score]:
        """Score every reference in order, reporting progress after each one.

        Yields to the event loop between references so observers can poll progress.
        """
        scores: List[Score] = []
        total = len(references)
        for i, ref in enumerate(references, start=1):
            scores.append(self.score(image, ref))
            on_progress(100.0 * i / total)
            await asyncio.sleep(step_delay)
        return scores
