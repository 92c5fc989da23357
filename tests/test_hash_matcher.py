import cv2
import numpy as np
import pytest

from draftsight.vision.hash_matcher import AdaptiveThreshold, HashMatcher, compute_hash, hash_similarity
from draftsight.vision.preprocess import hash_variants, prepare_for_hash


def _card(seed: int) -> np.ndarray:
    """Synthetic card art: a few filled shapes on a gradient, deterministic per seed."""
    rng = np.random.default_rng(seed)
    img = np.zeros((240, 180, 3), dtype=np.uint8)
    img[:] = np.linspace(30, 200, 180, dtype=np.uint8)[None, :, None]
    for _ in range(6):
        x, y = int(rng.integers(10, 150)), int(rng.integers(10, 210))
        color = tuple(int(c) for c in rng.integers(0, 256, size=3))
        cv2.circle(img, (x, y), int(rng.integers(8, 40)), color, -1)
    return img


def test_similarity_reflexive_symmetric_and_length_guard():
    a = "f0e1d2c3b4a59687"
    b = "f0e1d2c3b4a5968f"
    assert hash_similarity(a, a) == pytest.approx(1.0)
    assert hash_similarity(a, b) == pytest.approx(hash_similarity(b, a))
    assert hash_similarity(a, a + "0") == 0.0
    assert hash_similarity("", "") == 0.0


def test_similarity_blends_positions_and_chunks():
    a = "0" * 16
    b = "1" + "0" * 15
    # 15/16 positions equal; chunk size 4, three of four chunks equal
    assert hash_similarity(a, b) == pytest.approx(0.7 * 15 / 16 + 0.3 * 12 / 16)


def test_vectorised_scores_match_scalar_similarity():
    rng = np.random.default_rng(3)
    table = {f"C{i}": "".join(rng.choice(list("0123456789abcdef"), size=64)) for i in range(25)}
    matcher = HashMatcher(table)
    query = table["C4"][:60] + "ffff"
    ids, scores = matcher._scores(query)
    for card_id, score in zip(ids, scores):
        assert score == pytest.approx(hash_similarity(query, table[card_id]))


def test_match_identifies_reference_card():
    a, b = _card(1), _card(2)
    table = {
        "CARD_A": compute_hash(prepare_for_hash(a)),
        "CARD_B": compute_hash(prepare_for_hash(b)),
    }
    matcher = HashMatcher(table)
    assert matcher.ready
    result = matcher.match(a)
    assert result.card_id == "CARD_A"
    assert result.confidence == pytest.approx(1.0)
    assert result.ranking[0][0] == "CARD_A"
    assert {cid for cid, _ in result.ranking} == {"CARD_A", "CARD_B"}


def test_unequal_length_hashes_never_match():
    a = _card(1)
    short = compute_hash(prepare_for_hash(a), hash_size=8)
    matcher = HashMatcher({"CARD_A": short})
    result = matcher.match(a)
    assert result.card_id is None
    assert result.confidence == 0.0


def test_empty_table_is_not_ready():
    matcher = HashMatcher({})
    assert not matcher.ready
    result = matcher.match(_card(1))
    assert result.card_id is None and result.confidence == 0.0


def test_below_threshold_is_unmatched():
    thr = AdaptiveThreshold(start=0.6)
    matcher = HashMatcher({"CARD_X": "0" * 64}, threshold=thr)
    result = matcher.match(_card(5))
    assert result.card_id is None
    assert result.ranking[0][0] == "CARD_X"
    assert result.ranking[0][1] < 0.6


def test_variants_count_is_bounded():
    img = _card(1)
    assert list(hash_variants(img, 2)) == ["base", "extra_sharp"]
    assert len(hash_variants(img, 10)) == 4
    assert len(hash_variants(img, 0)) == 2


def test_small_captures_are_upscaled():
    small = cv2.resize(_card(1), (60, 80))
    assert prepare_for_hash(small).shape == (240, 180)


def test_threshold_lowers_on_poor_window_and_respects_floor():
    thr = AdaptiveThreshold(start=0.2, window=4)
    for _ in range(4):
        thr.record(0.05)
    assert thr.get() == pytest.approx(0.15)
    for _ in range(40):
        thr.record(0.0)
    assert thr.get() == pytest.approx(0.1)


def test_threshold_rises_on_strong_window_and_respects_ceiling():
    thr = AdaptiveThreshold(start=0.35, window=3)
    for _ in range(3):
        thr.record(0.9)
    assert thr.get() == pytest.approx(0.4)
    for _ in range(60):
        thr.record(1.0)
    assert thr.get() == pytest.approx(0.6)


def test_threshold_set_is_clamped():
    thr = AdaptiveThreshold()
    thr.set(0.95)
    assert thr.get() == pytest.approx(0.6)
    thr.set(-1)
    assert thr.get() == pytest.approx(0.1)
