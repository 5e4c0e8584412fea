from __future__ import annotations

import pytest

from maturity.catalog import DEFAULT_QUESTIONS, QuestionDef, display_score
from maturity.errors import InvalidAnswerValue, MissingCatalog
from maturity.scorer import grade, maturity_level, score_answers, validate_answer

QUESTIONS = [
    QuestionDef("planning_1", "planning", "Forecasts", 4),
    QuestionDef("planning_2", "planning", "Accuracy", 3),
    QuestionDef("procurement_1", "procurement", "Suppliers", 3),
    QuestionDef("inventory_1", "inventory", "ABC", 3),
]


class TestWeightedMean:
    def test_weighted_category_score(self):
        result = score_answers({"planning_1": 5, "planning_2": 4}, QUESTIONS)
        # (5*4 + 4*3) / (4 + 3)
        assert result.category_scores["planning"] == pytest.approx(32 / 7)
        assert result.weight_totals["planning"] == 7
        assert result.answered["planning"] == 2

    def test_scores_are_not_rounded(self):
        result = score_answers({"planning_1": 5, "planning_2": 4}, QUESTIONS)
        assert result.category_scores["planning"] != 4.6
        assert result.display()["category_scores"]["planning"] == 4.6

    def test_overall_is_mean_of_categories(self):
        result = score_answers({"planning_1": 5, "procurement_1": 4}, QUESTIONS)
        assert result.overall_score == pytest.approx(4.5)


class TestExclusionRule:
    def test_unanswered_category_is_absent_not_zero(self):
        result = score_answers({"planning_1": 5, "planning_2": 5, "procurement_1": 4}, QUESTIONS)
        assert set(result.category_scores) == {"planning", "procurement"}
        assert "inventory" not in result.category_scores
        assert result.overall_score == pytest.approx(4.5)

    def test_no_answers_gives_no_overall(self):
        result = score_answers({}, QUESTIONS)
        assert result.category_scores == {}
        assert result.overall_score is None

    def test_unknown_question_is_ignored(self):
        result = score_answers({"planning_1": 3, "retired_9": 5}, QUESTIONS)
        assert result.ignored == ["retired_9"]
        assert result.category_scores == {"planning": 3.0}

    @pytest.mark.parametrize("value", [9, "n/a", None])
    def test_bad_answer_to_unknown_question_is_ignored(self, value):
        result = score_answers({"planning_1": 4, "retired_q": value}, QUESTIONS)
        assert result.category_scores == {"planning": 4.0}
        assert result.ignored == ["retired_q"]
        assert result.answers == {"planning_1": 4}

    def test_bad_answer_in_unknown_category_is_ignored(self):
        questions = QUESTIONS + [QuestionDef("quality_1", "quality", "Audits", 3)]
        result = score_answers({"quality_1": "n/a", "planning_1": 2}, questions)
        assert result.ignored == ["quality_1"]
        assert result.overall_score == pytest.approx(2.0)

    def test_question_in_unknown_category_is_ignored(self):
        questions = QUESTIONS + [QuestionDef("quality_1", "quality", "Audits", 3)]
        result = score_answers({"quality_1": 5, "planning_1": 2}, questions)
        assert "quality" not in result.category_scores
        assert result.overall_score == pytest.approx(2.0)

    def test_catalog_order_is_kept(self):
        answers = {q.id: 3 for q in DEFAULT_QUESTIONS}
        result = score_answers(answers, DEFAULT_QUESTIONS)
        assert list(result.category_scores) == [
            "planning", "procurement", "inventory", "production", "logistics", "integration",
        ]


class TestValidation:
    def test_empty_catalog_raises(self):
        with pytest.raises(MissingCatalog):
            score_answers({"planning_1": 3}, [])

    def test_none_catalog_raises(self):
        with pytest.raises(MissingCatalog):
            score_answers({"planning_1": 3}, None)

    @pytest.mark.parametrize("value", [0, 6, -1, 2.5, "abc", None, True])
    def test_strict_rejects(self, value):
        with pytest.raises(InvalidAnswerValue) as exc_info:
            score_answers({"planning_1": value}, QUESTIONS)
        assert exc_info.value.question_id == "planning_1"

    def test_clamp_pulls_into_range(self):
        assert validate_answer("q", 9, policy="clamp") == 5
        assert validate_answer("q", 0, policy="clamp") == 1

    def test_clamped_values_are_returned(self):
        result = score_answers({"planning_1": 9, "planning_2": 0}, QUESTIONS, policy="clamp")
        assert result.answers == {"planning_1": 5, "planning_2": 1}

    def test_clamp_still_rejects_non_integral(self):
        with pytest.raises(InvalidAnswerValue):
            validate_answer("q", 3.5, policy="clamp")

    def test_integral_float_and_string_accepted(self):
        assert validate_answer("q", 4.0) == 4
        assert validate_answer("q", " 2 ") == 2

    def test_invalid_answer_rejects_whole_submission(self):
        with pytest.raises(InvalidAnswerValue):
            score_answers({"planning_1": 5, "planning_2": 7}, QUESTIONS)


class TestLabels:
    @pytest.mark.parametrize("score,level", [
        (4.5, "Optimized"), (4.49, "Standardized"), (3.5, "Standardized"),
        (2.5, "Structured"), (1.5, "Basic"), (1.49, "Initial"),
    ])
    def test_maturity_level(self, score, level):
        assert maturity_level(score) == level

    @pytest.mark.parametrize("score,expected", [
        (4.5, "A+"), (4.0, "A"), (3.7, "B+"), (3.0, "B"), (2.6, "C+"), (2.0, "C"), (1.5, "D+"), (1.0, "D"),
    ])
    def test_grade(self, score, expected):
        assert grade(score) == expected

    def test_level_uses_exact_score(self):
        # 3.46 displays as 3.5 but is still below the cut-off
        assert display_score(3.46) == 3.5
        assert maturity_level(3.46) == "Structured"

    def test_display_rounds_half_up(self):
        assert display_score(2.25) == 2.3
        assert display_score(2.35) == 2.4
        assert display_score(None) is None
