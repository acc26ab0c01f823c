from __future__ import annotations

import pytest

from core.models import AdTemplate
from core.template_matcher import (
    STRATEGY_FIELDS,
    clamp_threshold,
    detect_template,
    field_coverage_score,
    jaccard,
    ngram_score,
    ngrams,
    normalize_text,
    rank_templates,
    score_template,
    to_half_width,
)


def test_half_width_maps_full_width_ascii_and_ideographic_space() -> None:
    assert to_half_width("ＡＢＣ　１２３！") == "ABC 123!"


@pytest.mark.parametrize(
    "raw",
    ["Price: 100 USD!!", "ＰＲＩＣＥ：１００", "  mixed 中文 Text ，标点。", "", "🚀🚀🚀"],
)
def test_normalize_is_idempotent(raw: str) -> None:
    once = normalize_text(raw)
    assert normalize_text(once) == once


def test_normalize_keeps_letters_digits_and_cjk() -> None:
    assert normalize_text("Contact: WX-123 联系方式！") == "contactwx123联系方式"


def test_ngrams_cap_size_at_text_length() -> None:
    assert ngrams("ab", 3) == {"ab"}
    assert ngrams("", 3) == set()
    assert ngrams("abcd", 3) == {"abc", "bcd"}


def test_jaccard_is_symmetric_and_handles_empty_sets() -> None:
    a = {"abc", "bcd", "cde"}
    b = {"bcd", "xyz"}
    assert jaccard(a, b) == jaccard(b, a) == pytest.approx(1 / 4)
    assert jaccard(set(), set()) == 1.0
    assert jaccard(a, set()) == 0.0


def test_ngram_score_is_one_for_identical_text() -> None:
    text = "Selling a bike, price 100, contact @seller"
    assert ngram_score(text, text) == 1.0
    assert ngram_score(text, "completely unrelated words") == ngram_score("completely unrelated words", text)


def test_field_coverage_counts_labels_present() -> None:
    content = "Price:\nContact：\nLocation:"
    assert field_coverage_score("price 100, contact wx", content) == pytest.approx(2 / 3)
    assert field_coverage_score("nothing relevant", content) == 0.0
    assert field_coverage_score("anything", "") == 0.0


def test_field_coverage_is_monotonic_in_added_labels() -> None:
    content = "price:\ncontact:\nlocation:"
    scores = [
        field_coverage_score(text, content)
        for text in ["hello", "price 1", "price 1 contact 2", "price 1 contact 2 location 3"]
    ]
    assert scores == sorted(scores)
    assert all(0.0 <= score <= 1.0 for score in scores)


def test_scenario_field_coverage_template_matches() -> None:
    template = AdTemplate(name="sale", content="price:\ncontact:", threshold=0.5)

    verdict = detect_template("price:100 contact:wx123", [template], 0.6, strategy=STRATEGY_FIELDS)

    assert verdict.matched is True
    assert verdict.name == "sale"
    assert verdict.score == 1.0


def test_detect_picks_single_best_template() -> None:
    templates = [
        AdTemplate(name="weak", content="buy cheap likes", threshold=0.1),
        AdTemplate(name="strong", content="buy cheap followers now", threshold=0.9),
    ]

    # The best template fails its own strict threshold; weaker ones are not consulted.
    verdict = detect_template("buy cheap followers today", templates, 0.6)

    assert verdict.matched is False


def test_detect_uses_default_threshold_when_template_has_none() -> None:
    templates = [AdTemplate(name="promo", content="buy cheap followers now")]

    assert detect_template("buy cheap followers now", templates, 0.6).matched is True
    assert detect_template("buy cheap followers now", templates, 1.0).matched is True
    assert detect_template("something else entirely", templates, 0.6).matched is False


def test_detect_ignores_empty_text_and_empty_catalog() -> None:
    templates = [AdTemplate(name="promo", content="buy now")]
    assert detect_template("!!!  ", templates, 0.0).matched is False
    assert detect_template("buy now", [], 0.0).matched is False


def test_unknown_strategy_raises() -> None:
    with pytest.raises(ValueError):
        score_template("text", AdTemplate(name="x", content="text"), strategy="regex")


@pytest.mark.parametrize(
    "raw, expected",
    [(0.5, 0.5), (-1, 0.0), (7, 1.0), ("0.25", 0.25), ("junk", 0.6), (None, 0.6), (float("nan"), 0.6)],
)
def test_clamp_threshold(raw, expected) -> None:
    assert clamp_threshold(raw) == expected


def test_rank_templates_orders_by_ngram_score() -> None:
    templates = [
        AdTemplate(name="far", content="weather report tomorrow"),
        AdTemplate(name="near", content="selling bike price contact", threshold=0.4),
    ]

    ranked = rank_templates("selling bike, price 50, contact me", templates, 0.6)

    assert [item.name for item in ranked] == ["near", "far"]
    assert ranked[0].threshold == 0.4
    assert ranked[1].threshold == 0.6
