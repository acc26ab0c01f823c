"""Template normalization and similarity scoring (core domain).

Matching is a cheap lexical heuristic: texts are reduced to a compact
signature of letters and digits, then compared against each advertisement
template either by character n-gram overlap or by field-label coverage.
"""

from __future__ import annotations

import math
import unicodedata
from dataclasses import dataclass
from typing import Iterable, List, Optional

from core.models import DEFAULT_THRESHOLD, AdTemplate

STRATEGY_NGRAM = "ngram"
STRATEGY_FIELDS = "fields"
STRATEGIES = (STRATEGY_NGRAM, STRATEGY_FIELDS)

_FULL_WIDTH_START = 0xFF01
_FULL_WIDTH_END = 0xFF5E
_FULL_WIDTH_OFFSET = 0xFEE0
_IDEOGRAPHIC_SPACE = "　"


@dataclass(frozen=True)
class MatchVerdict:
    """Outcome of a template check."""

    matched: bool
    name: Optional[str] = None
    score: Optional[float] = None


@dataclass(frozen=True)
class TemplateScore:
    """Per-template scores under both strategies, used by the test command."""

    name: str
    ngram: float
    fields: float
    threshold: float


def to_half_width(text: str) -> str:
    """Map full-width ASCII variants and the ideographic space to half-width."""

    chars = []
    for ch in text:
        code = ord(ch)
        if _FULL_WIDTH_START <= code <= _FULL_WIDTH_END:
            chars.append(chr(code - _FULL_WIDTH_OFFSET))
        elif ch == _IDEOGRAPHIC_SPACE:
            chars.append(" ")
        else:
            chars.append(ch)
    return "".join(chars)


def normalize_text(text: str) -> str:
    """Return a signature insensitive to width, case, spacing and punctuation.

    Only characters whose Unicode category is a letter or a number survive,
    which keeps CJK ideographs (category Lo) alongside Latin letters.
    """

    lowered = to_half_width(text or "").lower()
    return "".join(ch for ch in lowered if unicodedata.category(ch)[0] in ("L", "N"))


def ngrams(text: str, n: int) -> set[str]:
    if not text:
        return set()
    size = max(1, min(n, len(text)))
    return {text[i : i + size] for i in range(len(text) - size + 1)}


def jaccard(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 1.0
    union = len(a | b)
    if union == 0:
        return 0.0
    return len(a & b) / union


def _gram_size(normalized: str) -> int:
    return 3 if len(normalized) >= 3 else 2


def ngram_score(candidate: str, content: str) -> float:
    """Jaccard similarity of character n-grams of both normalized texts."""

    left = normalize_text(candidate)
    right = normalize_text(content)
    return jaccard(ngrams(left, _gram_size(left)), ngrams(right, _gram_size(right)))


def field_labels(content: str) -> List[str]:
    """Split template content into normalized field labels."""

    labels: List[str] = []
    for line in (content or "").splitlines():
        bare = line.strip().rstrip(":：").strip()
        label = normalize_text(bare)
        if label:
            labels.append(label)
    return labels


def field_coverage_score(candidate: str, content: str) -> float:
    """Share of template field labels present in the candidate text."""

    labels = field_labels(content)
    if not labels:
        return 0.0
    normalized = normalize_text(candidate)
    found = sum(1 for label in labels if label in normalized)
    return found / len(labels)


def clamp_threshold(value, default: float = DEFAULT_THRESHOLD) -> float:
    """Clamp a threshold into [0, 1], falling back to default on junk input."""

    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(1.0, max(0.0, number))


def resolve_threshold(template: AdTemplate, default_threshold: float) -> float:
    if template.threshold is None:
        return clamp_threshold(default_threshold)
    return clamp_threshold(template.threshold, clamp_threshold(default_threshold))


def score_template(text: str, template: AdTemplate, strategy: str = STRATEGY_NGRAM) -> float:
    if strategy == STRATEGY_NGRAM:
        return ngram_score(text, template.content)
    if strategy == STRATEGY_FIELDS:
        return field_coverage_score(text, template.content)
    raise ValueError(f"Unsupported match strategy: {strategy}")


def detect_template(
    text: str,
    templates: Iterable[AdTemplate],
    default_threshold: float = DEFAULT_THRESHOLD,
    strategy: str = STRATEGY_NGRAM,
) -> MatchVerdict:
    """Return the best-scoring template if it clears its own threshold.

    Only the single highest-scoring template is considered; ties keep the
    earliest one in catalog order.
    """

    if not normalize_text(text):
        return MatchVerdict(matched=False)

    best: Optional[AdTemplate] = None
    best_score = -1.0
    for template in templates:
        score = score_template(text, template, strategy)
        if score > best_score:
            best, best_score = template, score

    if best is None:
        return MatchVerdict(matched=False)
    if best_score >= resolve_threshold(best, default_threshold):
        return MatchVerdict(matched=True, name=best.name, score=round(best_score, 3))
    return MatchVerdict(matched=False)


def rank_templates(
    text: str,
    templates: Iterable[AdTemplate],
    default_threshold: float = DEFAULT_THRESHOLD,
) -> List[TemplateScore]:
    """Score every template under both strategies, best n-gram score first."""

    scores = [
        TemplateScore(
            name=template.name,
            ngram=round(ngram_score(text, template.content), 3),
            fields=round(field_coverage_score(text, template.content), 3),
            threshold=resolve_threshold(template, default_threshold),
        )
        for template in templates
    ]
    return sorted(scores, key=lambda item: item.ngram, reverse=True)
