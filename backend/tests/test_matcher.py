from datetime import datetime, timezone

import numpy as np
import pytest

from backend.matcher import CosineMatcher
from backend.models import Identity


def _identity(identity_id, template):
    return Identity(
        id=identity_id,
        display_name=identity_id,
        template=tuple(float(x) for x in template),
        enrolled_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def _scores(matches):
    return {m.identity_id: m.score for m in matches}


def test_scores_are_cosine_similarities():
    matcher = CosineMatcher()
    candidates = [
        _identity("same", [1, 0, 0]),
        _identity("scaled", [3, 0, 0]),
        _identity("orthogonal", [0, 1, 0]),
        _identity("opposite", [-1, 0, 0]),
    ]

    scores = _scores(matcher.score([2, 0, 0], candidates))

    assert scores["same"] == pytest.approx(1.0)
    assert scores["scaled"] == pytest.approx(1.0)
    assert scores["orthogonal"] == pytest.approx(0.0)
    assert scores["opposite"] == pytest.approx(-1.0)


def test_noisy_probe_scores_its_own_template_highest():
    rng = np.random.default_rng(7)
    gallery = {f"id{i}": rng.normal(size=128) for i in range(5)}
    probe = gallery["id3"] + 0.05 * rng.normal(size=128)

    scores = _scores(CosineMatcher().score(probe.tolist(), [_identity(k, v) for k, v in gallery.items()]))

    assert max(scores, key=scores.get) == "id3"
    assert scores["id3"] > 0.99


def test_templates_of_other_lengths_are_skipped():
    matcher = CosineMatcher()
    candidates = [_identity("short", [1, 0]), _identity("match", [1, 0, 0])]
    assert [m.identity_id for m in matcher.score([1, 0, 0], candidates)] == ["match"]


def test_zero_vectors_never_match():
    matcher = CosineMatcher()
    assert matcher.score([0, 0, 0], [_identity("a", [1, 0, 0])]) == []
    assert matcher.score([1, 0, 0], [_identity("a", [0, 0, 0])]) == []


def test_no_candidates():
    assert CosineMatcher().score([1.0, 2.0], []) == []


def test_huge_feature_values_keep_their_direction():
    matcher = CosineMatcher()
    candidates = [_identity("huge", [1e200] * 120), _identity("mixed", [1e-200] * 60 + [1e200] * 60)]

    opposite = _scores(matcher.score([-1e200] * 120, candidates))
    same = _scores(matcher.score([1e200] * 120, candidates))

    assert opposite["huge"] == pytest.approx(-1.0)
    assert same["huge"] == pytest.approx(1.0)
    assert same["mixed"] == pytest.approx(np.sqrt(0.5))
    assert all(np.isfinite(s) for s in [*opposite.values(), *same.values()])


def test_empty_probe_scores_nothing():
    assert CosineMatcher().score([], [_identity("a", [1, 0, 0])]) == []
