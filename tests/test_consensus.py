import pytest

from draftsight.vision.consensus import MatchCandidate, combine


def c(method, card_id, conf, region=0):
    return MatchCandidate(region, card_id, conf, method)


def test_all_methods_agree_floor():
    result = combine([c("hash", "A", 0.6), c("template", "A", 0.7), c("text", "A", 0.8)])
    assert result.card_id == "A"
    assert result.rule == "all_agree"
    assert result.confidence == pytest.approx(0.95)


def test_all_agree_keeps_higher_mean():
    result = combine([c("hash", "A", 0.99), c("text", "A", 0.97)])
    assert result.confidence == pytest.approx(0.98)


def test_strong_hash_is_trusted_over_disagreement():
    result = combine([c("hash", "A", 0.9), c("template", "B", 0.95), c("text", "B", 0.95)])
    assert result.card_id == "A"
    assert result.rule == "hash_trusted"


def test_secondary_agreement_beats_weak_hash():
    result = combine([c("hash", "A", 0.55), c("template", "B", 0.9), c("text", "B", 0.8)])
    assert result.card_id == "B"
    assert result.rule == "secondary_agree"
    assert result.confidence == pytest.approx(0.85)


def test_secondary_agreement_needs_margin():
    # pair mean 0.75 does not beat 0.7 + 0.15; vote decides
    result = combine([c("hash", "A", 0.7), c("template", "B", 0.75), c("text", "B", 0.75)])
    assert result.rule == "vote"
    assert result.card_id == "B"


def test_weighted_vote_with_missing_method():
    result = combine([c("hash", "A", 0.6), c("template", "B", 0.7), c("text", None, 0.0)])
    assert result.card_id == "B"
    assert result.rule == "vote"


def test_vote_tie_broken_by_mean():
    result = combine([c("text", "A", 0.5), c("text", "A", 0.5), c("template", "B", 1.0)])
    assert result.card_id == "B"


def test_nothing_confident_is_unidentified():
    result = combine([c("hash", "A", 0.3), c("template", "B", 0.4), c("text", "C", 0.2)])
    assert result.card_id is None
    assert result.confidence == 0.0
    assert not result.identified


def test_not_ready_matchers_contribute_nothing():
    result = combine([c("hash", "A", 0.6)])
    assert result.card_id == "A"
    assert combine([]).card_id is None


def test_candidate_confidence_is_clamped():
    assert c("hash", "A", 1.5).confidence == 1.0
    assert c("hash", "A", -0.2).confidence == 0.0
    assert c("hash", None, 0.8).confidence == 0.0
    with pytest.raises(ValueError):
        MatchCandidate(0, "A", 0.5, "ocr")
