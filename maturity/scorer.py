"""Scoring engine: weighted per-category averages and an overall maturity score.

For every answered question the answer is multiplied by the question weight and
accumulated per category::

    category_score = sum(answer * weight) / sum(weight)

A category without any weight mass has no score at all. It is left out of the
result mapping and out of the overall mean (it is *not* counted as zero). The
overall score is the plain arithmetic mean of the defined category scores.

Scores are kept exact. Rounding happens only for display, via
:func:`maturity.catalog.display_score`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Mapping

from maturity.catalog import CATEGORIES, MAX_SCORE, MIN_SCORE, CategoryDef, QuestionDef, display_score
from maturity.errors import InvalidAnswerValue, MissingCatalog

log = logging.getLogger(__name__)

AnswerPolicy = Literal["strict", "clamp"]


@dataclass
class ScoreResult:
    """Output of :func:`score_answers`."""
    category_scores: dict[str, float]
    overall_score: float | None
    weight_totals: dict[str, int] = field(default_factory=dict)
    answered: dict[str, int] = field(default_factory=dict)
    ignored: list[str] = field(default_factory=list)
    answers: dict[str, int] = field(default_factory=dict)

    def display(self) -> dict[str, Any]:
        return {
            "category_scores": {k: display_score(v) for k, v in self.category_scores.items()},
            "overall_score": display_score(self.overall_score),
        }


# ---------------------------------------------------------------------------
# Answer validation
# ---------------------------------------------------------------------------


def _coerce_answer(question_id: str, value: Any) -> int:
    """Turn a raw answer into an int, rejecting anything non-integral."""
    if isinstance(value, bool):
        raise InvalidAnswerValue(question_id, value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidAnswerValue(question_id, value)


def validate_answer(question_id: str, value: Any, policy: AnswerPolicy = "strict") -> int:
    """Validate one answer under the given policy.

    ``strict`` rejects values outside [1, 5]; ``clamp`` pulls them into range.
    Non-integral values are rejected under both policies.
    """
    answer = _coerce_answer(question_id, value)
    if MIN_SCORE <= answer <= MAX_SCORE:
        return answer
    if policy == "clamp":
        clamped = max(MIN_SCORE, min(MAX_SCORE, answer))
        log.info("Clamped answer %s for %s to %s", answer, question_id, clamped)
        return clamped
    raise InvalidAnswerValue(question_id, value)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def score_answers(
    answers: Mapping[str, Any],
    questions: Iterable[QuestionDef] | None,
    categories: Iterable[CategoryDef] = CATEGORIES,
    policy: AnswerPolicy = "strict",
) -> ScoreResult:
    """Score one respondent's answers.

    Args:
        answers: ``{question_id: raw answer}``.
        questions: The *active* question catalog. ``None`` or empty raises
            :class:`MissingCatalog`.
        categories: Known categories. Questions pointing elsewhere are ignored.
        policy: ``strict`` or ``clamp`` handling of out-of-range answers.
    """
    catalog = {q.id: q for q in (questions or ())}
    if not catalog:
        raise MissingCatalog("Active question catalog is empty or could not be loaded")
    known = [c.key for c in categories]
    known_set = set(known)

    # Answers to unknown or retired questions are dropped before validation
    ignored = [
        qid for qid in answers
        if qid not in catalog or catalog[qid].category_key not in known_set
    ]
    validated = {
        qid: validate_answer(qid, raw, policy)
        for qid, raw in answers.items()
        if qid not in ignored
    }

    weighted: dict[str, float] = {}
    weights: dict[str, int] = {}
    counts: dict[str, int] = {}

    for qid, answer in validated.items():
        question = catalog[qid]
        key = question.category_key
        weighted[key] = weighted.get(key, 0.0) + answer * question.weight
        weights[key] = weights.get(key, 0) + question.weight
        counts[key] = counts.get(key, 0) + 1

    if ignored:
        log.debug("Ignored %d answers without an active question/category: %s", len(ignored), ignored)

    # Keep category order stable (catalog order) for downstream consumers
    category_scores = {
        key: weighted[key] / weights[key]
        for key in known
        if weights.get(key, 0) > 0
    }
    overall = (
        sum(category_scores.values()) / len(category_scores)
        if category_scores else None
    )
    return ScoreResult(
        category_scores=category_scores,
        overall_score=overall,
        weight_totals={k: weights[k] for k in category_scores},
        answered={k: counts[k] for k in category_scores},
        ignored=ignored,
        answers=validated,
    )


# ---------------------------------------------------------------------------
# Labels (computed from exact scores)
# ---------------------------------------------------------------------------

_LEVELS: list[tuple[float, str]] = [
    (4.5, "Optimized"),
    (3.5, "Standardized"),
    (2.5, "Structured"),
    (1.5, "Basic"),
]

_GRADES: list[tuple[float, str]] = [
    (4.5, "A+"), (4.0, "A"), (3.5, "B+"), (3.0, "B"),
    (2.5, "C+"), (2.0, "C"), (1.5, "D+"),
]


def maturity_level(score: float) -> str:
    for cutoff, label in _LEVELS:
        if score >= cutoff:
            return label
    return "Initial"


def grade(score: float) -> str:
    for cutoff, label in _GRADES:
        if score >= cutoff:
            return label
    return "D"
