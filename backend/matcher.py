from typing import Protocol, Sequence

import numpy as np

from backend.models import Identity, Match


class Matcher(Protocol):
    def score(self, probe: Sequence[float], candidates: Sequence[Identity]) -> list[Match]:
        """Score ``probe`` against each candidate it can compare.

        Candidates the matcher cannot compare are left out. An empty list means
        no match. Acceptance is decided by the caller.
        """
        raise NotImplementedError


class CosineMatcher:
    """Cosine similarity between the probe and each same-length template.

    Scores lie in [-1, 1]; 1.0 is an identical direction. Zero-norm vectors
    never match, and neither does a score that comes out non-finite.
    """

    def score(self, probe: Sequence[float], candidates: Sequence[Identity]) -> list[Match]:
        if len(probe) == 0:
            return []
        probe_vec = _peak_scaled(np.asarray(probe, dtype=np.float64)[np.newaxis, :])[0]
        probe_norm = float(np.linalg.norm(probe_vec))
        if not probe_norm > 0.0:
            return []

        comparable = [c for c in candidates if len(c.template) == probe_vec.shape[0]]
        if not comparable:
            return []

        gallery = _peak_scaled(np.asarray([c.template for c in comparable], dtype=np.float64))
        norms = np.linalg.norm(gallery, axis=1)
        valid = norms > 0.0
        if not valid.any():
            return []

        similarities = (gallery[valid] @ probe_vec) / (norms[valid] * probe_norm)
        kept = [c for c, ok in zip(comparable, valid) if ok]
        return [
            Match(identity_id=c.id, score=float(np.clip(s, -1.0, 1.0)))
            for c, s in zip(kept, similarities)
            if np.isfinite(s)
        ]


def _peak_scaled(rows: np.ndarray) -> np.ndarray:
    # rows divided by their max |x|, so the squares in the norm stay finite
    peaks = np.max(np.abs(rows), axis=1, keepdims=True)
    return np.divide(rows, peaks, out=np.zeros_like(rows), where=peaks > 0.0)
