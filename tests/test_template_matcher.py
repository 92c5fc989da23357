import cv2
import numpy as np
import pytest

from draftsight.data.cards import CardRecord, ReferenceStore
from draftsight.features.detection.identifier import resolve_icon_candidate
from draftsight.vision.template_matcher import IconMatch, IconTemplateMatcher, icon_similarity


def _icons(keys, seed=11):
    rng = np.random.default_rng(seed)
    return {k: rng.integers(0, 256, size=(30, 30, 3), dtype=np.uint8) for k in keys}


def test_icon_similarity_bounds():
    a = np.full((30, 30, 3), 100, dtype=np.uint8)
    assert icon_similarity(a, a) == 1.0
    b = a.copy()
    b[:15] = 255
    assert icon_similarity(a, b) == pytest.approx(0.5)


def test_cost_icon_classified_after_rescale():
    cost = _icons(range(11))
    matcher = IconTemplateMatcher(cost_templates=cost)
    capture = cv2.resize(cost[7], (60, 60), interpolation=cv2.INTER_NEAREST)
    result = matcher.match_cost(capture)
    assert result.matched
    assert result.value == 7
    assert result.confidence == pytest.approx(1.0)


def test_noisy_icon_still_matches():
    rarity = _icons(["common", "rare", "epic", "legendary"])
    matcher = IconTemplateMatcher(rarity_templates=rarity)
    noise = np.random.default_rng(0).integers(-10, 11, size=(30, 30, 3))
    capture = np.clip(rarity["epic"].astype(np.int32) + noise, 0, 255).astype(np.uint8)
    result = matcher.match_rarity(capture)
    assert result.matched and result.value == "epic"


def test_unknown_icon_rejected():
    matcher = IconTemplateMatcher(cost_templates=_icons(range(11)))
    stranger = _icons(["x"], seed=99)["x"]
    result = matcher.match_cost(stranger)
    assert not result.matched
    assert result.value is None
    assert result.confidence < 0.7


def test_missing_templates_not_ready():
    matcher = IconTemplateMatcher()
    assert not matcher.ready
    assert matcher.match_cost(np.zeros((30, 30, 3), dtype=np.uint8)) == IconMatch.empty("cost")


def _store():
    return ReferenceStore([
        CardRecord("A", "Alpha", cost=3, rarity="rare"),
        CardRecord("B", "Beta", cost=3, rarity="common"),
        CardRecord("C", "Gamma", cost=3, rarity="common"),
        CardRecord("D", "Delta", cost=5, rarity="epic"),
    ])


def test_icon_candidate_prefers_hash_ranking():
    cost = IconMatch("cost", 3, 0.9, True)
    rarity = IconMatch("rarity", "common", 0.8, True)
    card_id, conf = resolve_icon_candidate(_store(), cost, rarity, [("D", 0.5), ("C", 0.4), ("B", 0.3)])
    assert card_id == "C"
    assert conf == pytest.approx(0.85)


def test_icon_candidate_unique_without_ranking():
    cost = IconMatch("cost", 5, 0.9, True)
    card_id, conf = resolve_icon_candidate(_store(), cost, IconMatch.empty("rarity"))
    assert card_id == "D"
    assert conf == pytest.approx(0.9)


def test_icon_candidate_ambiguous_is_empty():
    cost = IconMatch("cost", 3, 0.9, True)
    assert resolve_icon_candidate(_store(), cost, IconMatch.empty("rarity")) == (None, 0.0)
    assert resolve_icon_candidate(_store(), IconMatch.empty("cost"), IconMatch.empty("rarity")) == (None, 0.0)
