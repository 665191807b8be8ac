import random

from signscan.adapters.vision.base import SignatureScorer
from signscan.orchestrator.contracts import FEATURE_TAGS, ImageBuffer, ReferenceRecord, Score

# Placeholder analysis: the first four tags, as the original demo UI showed them
_DEMO_TAGS = FEATURE_TAGS[:4]


class RandomScorer(SignatureScorer):
    """Pseudo-random confidences in [20, 95). Stands in until a real comparison is configured."""

    def __init__(self, status_store, seed: int | None = None):
        self.status = status_store
        self._rng = random.Random(seed)

    def score(self, image: ImageBuffer, reference: ReferenceRecord) -> Score:
        conf = max(20.0, self._rng.random() * 95)
        tags = frozenset(_DEMO_TAGS[: self._rng.randint(1, len(_DEMO_TAGS))])
        self.status.log(f"random_scorer: {reference.label} conf={conf:.1f}")
        return Score(confidence=conf, features=tags)
