from __future__ import annotations

import pytest
from sqlalchemy import func, select

from maturity import services
from maturity.catalog import DEFAULT_QUESTIONS
from maturity.errors import InvalidAnswerValue, MissingCatalog, MissingScores, NotFound
from maturity.models import AIRoadmapItem, Answer, CategoryScore, ImprovementPlan, Question, SurveyResult
from maturity.schemas import PlanEntryUpdate, QuestionCreate, QuestionUpdate, RespondentProfile, StructuredNarrative

ALL_THREES = {q.id: 3 for q in DEFAULT_QUESTIONS}


def profile(email="ops@acme.test", company="Acme", industry="food"):
    return RespondentProfile(name="Kim", email=email, company=company, industry=industry, company_size="small")


def count(session, model):
    return session.execute(select(func.count()).select_from(model)).scalar()


class TestCatalog:
    def test_seeded_questions_load(self, session):
        questions = services.load_active_questions(session)
        assert len(questions) == len(DEFAULT_QUESTIONS)
        assert {q.category_key for q in questions} == {
            "planning", "procurement", "inventory", "production", "logistics", "integration",
        }

    def test_empty_catalog_raises(self, session):
        session.query(Question).update({Question.active: False})
        session.commit()
        with pytest.raises(MissingCatalog):
            services.load_active_questions(session)


class TestSubmission:
    def test_creates_result_answers_and_scores(self, session, settings):
        out = services.submit_survey(session, profile(), ALL_THREES, settings)
        assert out.created is True
        assert out.overall_score == pytest.approx(3.0)
        assert count(session, Answer) == len(DEFAULT_QUESTIONS)
        assert count(session, CategoryScore) == 6
        row = session.get(SurveyResult, out.result_id)
        assert row.industry == "food"
        assert row.email == "ops@acme.test"

    def test_resubmission_replaces_not_duplicates(self, session, settings):
        first = services.submit_survey(session, profile(), ALL_THREES, settings)
        second = services.submit_survey(
            session, profile(email=" OPS@acme.test "), {"planning_1": 5, "planning_2": 1}, settings,
        )
        assert second.result_id == first.result_id
        assert second.created is False
        assert count(session, SurveyResult) == 1
        assert count(session, Answer) == 2
        assert services.get_category_scores(session, first.result_id) == {"planning": pytest.approx(23 / 7)}

    def test_resubmission_is_idempotent(self, session, settings):
        a = services.submit_survey(session, profile(), ALL_THREES, settings)
        b = services.submit_survey(session, profile(), ALL_THREES, settings)
        assert a.category_scores == b.category_scores
        assert count(session, CategoryScore) == 6

    def test_resubmission_drops_generated_content(self, session, settings):
        out = services.submit_survey(session, profile(), ALL_THREES, settings)
        row = session.get(SurveyResult, out.result_id)
        row.narrative_json = '{"executive_summary": "old"}'
        session.add(AIRoadmapItem(survey_result_id=out.result_id, phase="short", title="old"))
        session.commit()

        services.submit_survey(session, profile(), ALL_THREES, settings)
        assert session.get(SurveyResult, out.result_id).narrative_json is None
        assert count(session, AIRoadmapItem) == 0

    def test_anonymous_submissions_are_separate(self, session, settings):
        services.submit_survey(session, profile(email=""), ALL_THREES, settings)
        services.submit_survey(session, profile(email=""), ALL_THREES, settings)
        assert count(session, SurveyResult) == 2

    def test_different_company_is_a_new_result(self, session, settings):
        services.submit_survey(session, profile(company="Acme"), ALL_THREES, settings)
        services.submit_survey(session, profile(company="Acme Logistics"), ALL_THREES, settings)
        assert count(session, SurveyResult) == 2

    def test_invalid_answer_writes_nothing(self, session, settings):
        with pytest.raises(InvalidAnswerValue):
            services.submit_survey(session, profile(), {"planning_1": 9}, settings)
        assert count(session, SurveyResult) == 0

    def test_clamp_policy(self, session, settings):
        clamp = settings.model_copy(update={"answer_policy": "clamp"})
        out = services.submit_survey(session, profile(), {"planning_1": 9}, clamp)
        assert out.category_scores == {"planning": 5.0}
        assert session.execute(select(Answer.answer_value)).scalar() == 5

    def test_unknown_questions_not_stored(self, session, settings):
        services.submit_survey(session, profile(), {"planning_1": 4, "gone_1": 2}, settings)
        assert count(session, Answer) == 1

    def test_bad_answer_to_retired_question_does_not_abort(self, session, settings):
        session.get(Question, "planning_2").active = False
        session.commit()
        out = services.submit_survey(
            session, profile(), {"planning_1": 4, "planning_2": 9, "gone_1": "n/a"}, settings,
        )
        assert out.category_scores == {"planning": 4.0}
        assert session.execute(select(Answer.question_id)).scalars().all() == ["planning_1"]


class TestBenchmark:
    def test_population_and_report(self, session, settings):
        ids = []
        for n in range(6):
            out = services.submit_survey(session, profile(email=f"u{n}@x.test"), {"planning_1": n % 5 + 1}, settings)
            ids.append(out.result_id)
        population = services.load_population(session)
        assert len(population) == 6
        assert {p.industry for p in population} == {"food"}

        report = services.run_benchmark(session, ids[0], settings, industry="food")
        assert report.cohort_fallback is False
        assert report.total_sample_count == 6
        assert report.is_sufficient is False
        assert report.categories[0].category_key == "planning"

    def test_unknown_result(self, session, settings):
        with pytest.raises(NotFound):
            services.run_benchmark(session, 999, settings)


class TestImprovementPlan:
    def test_persisted_in_ranking_order(self, session, settings):
        out = services.submit_survey(session, profile(), {q.id: 2 for q in DEFAULT_QUESTIONS}, settings)
        generated = services.generate_improvement_plan(session, out.result_id)
        session.commit()
        listed = services.list_plan_entries(session, out.result_id)
        assert [e.framework_item_id for e in listed] == [e.framework_item_id for e in generated]
        assert [e.priority_order for e in listed] == sorted(e.priority_order for e in listed)
        assert all(e.status == "pending" for e in listed)

    def test_regeneration_replaces(self, session, settings):
        out = services.submit_survey(session, profile(), {q.id: 2 for q in DEFAULT_QUESTIONS}, settings)
        services.generate_improvement_plan(session, out.result_id)
        entries = services.generate_improvement_plan(session, out.result_id)
        session.commit()
        assert count(session, ImprovementPlan) == len(entries)

    def test_result_without_scores(self, session, settings):
        row = SurveyResult(company="Empty")
        session.add(row)
        session.commit()
        with pytest.raises(MissingScores):
            services.generate_improvement_plan(session, row.id)

    def test_update_tracking_fields(self, session, settings):
        out = services.submit_survey(session, profile(), {q.id: 2 for q in DEFAULT_QUESTIONS}, settings)
        entry = services.generate_improvement_plan(session, out.result_id)[0]
        updated = services.update_plan_entry(
            session, entry.id, PlanEntryUpdate(status="in_progress", progress=40, assigned_to="Lee"),
        )
        assert updated.status == "in_progress"
        assert updated.progress == 40
        assert session.get(ImprovementPlan, entry.id).assigned_to == "Lee"

    def test_update_missing_entry(self, session):
        with pytest.raises(NotFound):
            services.update_plan_entry(session, 404, PlanEntryUpdate(progress=10))


class TestNarrativeStore:
    def _narrative(self):
        return StructuredNarrative.model_validate({
            "executive_summary": "Summary", "priority_matrix": {"high_impact_low_effort": ["A"]},
        })

    def test_round_trip_and_clear(self, session, settings):
        out = services.submit_survey(session, profile(), ALL_THREES, settings)
        store = services.SqlNarrativeStore(session)
        assert store.load_narrative(out.result_id) is None
        assert store.save_narrative(out.result_id, self._narrative()).ok
        assert store.load_narrative(out.result_id) == self._narrative()
        assert session.get(SurveyResult, out.result_id).narrative_generated_at is not None
        assert store.clear_narrative(out.result_id).ok
        assert store.load_narrative(out.result_id) is None

    def test_save_for_missing_result(self, session):
        result = services.SqlNarrativeStore(session).save_narrative(12345, self._narrative())
        assert result.ok is False
        assert "not found" in result.error

    def test_unreadable_blob_is_a_miss(self, session, settings):
        out = services.submit_survey(session, profile(), ALL_THREES, settings)
        session.get(SurveyResult, out.result_id).narrative_json = "{not json"
        session.commit()
        assert services.SqlNarrativeStore(session).load_narrative(out.result_id) is None


class TestQuestionAdmin:
    def test_add_question(self, session):
        q = services.add_question(session, QuestionCreate(
            question_id="planning_5", category_key="planning", question="Scenario planning is used."))
        session.commit()
        assert q["weight"] == 3
        assert any(d.id == "planning_5" for d in services.load_active_questions(session))

    def test_add_duplicate_or_unknown_category(self, session):
        with pytest.raises(ValueError):
            services.add_question(session, QuestionCreate(question_id="planning_1", category_key="planning", question="x"))
        with pytest.raises(ValueError):
            services.add_question(session, QuestionCreate(question_id="new_1", category_key="quality", question="x"))

    def test_update_and_deactivate(self, session):
        services.update_question(session, "planning_1", QuestionUpdate(weight=5, category_key="logistics"))
        q = services.deactivate_question(session, "planning_2")
        session.commit()
        assert q["active"] is False
        active = {d.id: d for d in services.load_active_questions(session)}
        assert "planning_2" not in active
        assert active["planning_1"].weight == 5
        assert active["planning_1"].category_key == "logistics"
        assert len(services.list_questions(session, include_inactive=True)) == len(DEFAULT_QUESTIONS)

    def test_update_missing(self, session):
        with pytest.raises(NotFound):
            services.update_question(session, "nope", QuestionUpdate(weight=2))


class TestReporting:
    def test_survey_details(self, session, settings):
        out = services.submit_survey(session, profile(), {"planning_1": 5, "logistics_1": 2}, settings)
        details = services.survey_details(session, out.result_id)
        assert [d["category_key"] for d in details] == ["planning", "logistics"]
        assert details[0]["questions"][0] == {
            "question_id": "planning_1", "question": DEFAULT_QUESTIONS[0].text, "weight": 4, "answer": 5,
        }

    def test_report_payload(self, session, settings):
        out = services.submit_survey(session, profile(), {"planning_1": 5, "planning_2": 4}, settings)
        services.generate_improvement_plan(session, out.result_id)
        session.commit()
        payload = services.build_report_payload(session, out.result_id, settings)
        assert payload["overall"]["display"] == 4.6
        assert payload["overall"]["grade"] == "A+"
        assert payload["categories"][0]["level"] == "Optimized"
        assert payload["respondent"]["company"] == "Acme"
        assert payload["benchmark"]["total_sample_count"] == 1
        assert payload["narrative"] is None

    def test_list_results_newest_first(self, session, settings):
        first = services.submit_survey(session, profile(company="Acme"), {"planning_1": 4}, settings)
        second = services.submit_survey(session, profile(company="Beta"), {"planning_1": 2, "logistics_1": 4}, settings)
        listing = services.list_results(session)
        assert [r["result_id"] for r in listing["results"]] == [second.result_id, first.result_id]
        assert listing["results"][0]["category_scores"] == {"planning": 2.0, "logistics": 4.0}
        assert listing["results"][1]["overall"]["grade"] == "A"
        assert listing["stats"] == {"total": 2, "scored": 2, "avg_score": pytest.approx(3.5)}

    def test_list_results_empty(self, session):
        assert services.list_results(session) == {
            "results": [], "stats": {"total": 0, "scored": 0, "avg_score": None},
        }
