"""Storage-backed operations shared by the CLI and any embedding application."""
from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Mapping

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from maturity.benchmark import PopulationRow, compute_benchmark
from maturity.catalog import CATEGORY_KEYS, QuestionDef, category_name, display_score
from maturity.config import Settings
from maturity.errors import MissingCatalog, MissingScores, NotFound
from maturity.models import AIRoadmapItem, Answer, Category, CategoryScore, ImprovementPlan, Question, SurveyResult
from maturity.narrative import StoreResult
from maturity.recommender import recommend
from maturity.schemas import (
    BenchmarkReport, PlanEntryOut, PlanEntryUpdate, QuestionCreate, QuestionUpdate,
    RespondentProfile, StructuredNarrative, SubmissionOut,
)
from maturity.scorer import grade, maturity_level, score_answers
from maturity.utils import json_dump, json_parse

log = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "company", "phone", "industry", "company_size")
PLAN_UPDATE_FIELDS = ("status", "progress", "assigned_to", "notes")


def apply_updates(obj, updates: dict[str, Any], fields: tuple[str, ...]) -> None:
    """Apply non-None values from updates dict to an ORM object."""
    for field in fields:
        val = updates.get(field)
        if val is not None:
            setattr(obj, field, val)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def load_active_questions(session: Session) -> list[QuestionDef]:
    """Active questions as scoring definitions. Raises MissingCatalog if none can be loaded."""
    try:
        rows = session.execute(
            select(Question, Category.key)
            .join(Category, Question.category_id == Category.id)
            .where(Question.active.is_(True))
            .order_by(Question.category_id, Question.id)
        ).all()
    except SQLAlchemyError as exc:
        raise MissingCatalog(f"Question catalog could not be loaded: {exc}") from exc
    if not rows:
        raise MissingCatalog("No active questions in the catalog")
    return [QuestionDef(id=q.id, category_key=key, text=q.question, weight=q.weight) for q, key in rows]


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


def get_result(session: Session, result_id: int) -> SurveyResult:
    result = session.get(SurveyResult, result_id)
    if result is None:
        raise NotFound("Survey result", result_id)
    return result


def find_result(session: Session, email: str, company: str) -> SurveyResult | None:
    if not email:
        return None
    return session.execute(
        select(SurveyResult).where(SurveyResult.email == email, SurveyResult.company == company)
    ).scalar_one_or_none()


def profile_of(result: SurveyResult) -> RespondentProfile:
    return RespondentProfile(
        name=result.name, email=result.email or "", company=result.company, phone=result.phone,
        industry=result.industry, company_size=result.company_size,
    )


def clear_generated(session: Session, result: SurveyResult) -> None:
    """Drop the cached narrative and AI roadmap of a result (caller must commit)."""
    result.narrative_json = None
    result.narrative_generated_at = None
    session.execute(delete(AIRoadmapItem).where(AIRoadmapItem.survey_result_id == result.id))


def submit_survey(
    session: Session,
    profile: RespondentProfile,
    answers: Mapping[str, Any],
    settings: Settings,
) -> SubmissionOut:
    """Score answers and store them for the respondent, in one transaction.

    A respondent is identified by (email, company). Submitting again replaces
    every answer and category score of the existing result instead of adding a
    second result; its cached narrative and roadmap are dropped. Answers are
    validated before anything is written.
    """
    questions = load_active_questions(session)
    scored = score_answers(answers, questions, policy=settings.answer_policy)

    try:
        result = find_result(session, profile.email, profile.company)
        created = result is None
        if created:
            result = SurveyResult(email=profile.email or None)
            session.add(result)
        apply_updates(result, profile.model_dump(), PROFILE_FIELDS)
        result.overall_score = scored.overall_score
        result.updated_at = datetime.now(UTC)
        session.flush()

        if not created:
            session.execute(delete(Answer).where(Answer.survey_result_id == result.id))
            session.execute(delete(CategoryScore).where(CategoryScore.survey_result_id == result.id))
            clear_generated(session, result)
        for qid, value in scored.answers.items():
            session.add(Answer(survey_result_id=result.id, question_id=qid, answer_value=value))
        for key, score in scored.category_scores.items():
            session.add(CategoryScore(survey_result_id=result.id, category=key, score=score))
        session.commit()
    except Exception:
        session.rollback()
        raise

    log.info("%s survey result %s (overall %s)", "Created" if created else "Replaced",
             result.id, display_score(scored.overall_score))
    return SubmissionOut(
        result_id=result.id,
        created=created,
        overall_score=scored.overall_score,
        category_scores=scored.category_scores,
    )


def get_category_scores(session: Session, result_id: int) -> dict[str, float]:
    """Stored category scores of a result, in catalog order."""
    rows = session.execute(
        select(CategoryScore).where(CategoryScore.survey_result_id == result_id)
    ).scalars().all()
    found = {r.category: r.score for r in rows}
    ordered = {k: found[k] for k in CATEGORY_KEYS if k in found}
    ordered.update({k: v for k, v in sorted(found.items()) if k not in ordered})
    return ordered


# ---------------------------------------------------------------------------
# Benchmark
# ---------------------------------------------------------------------------


def load_population(session: Session) -> list[PopulationRow]:
    rows = session.execute(
        select(CategoryScore.survey_result_id, CategoryScore.category, CategoryScore.score,
               SurveyResult.industry, SurveyResult.company_size)
        .join(SurveyResult, CategoryScore.survey_result_id == SurveyResult.id)
    ).all()
    return [PopulationRow(*r) for r in rows]


def run_benchmark(
    session: Session,
    result_id: int,
    settings: Settings,
    industry: str | None = None,
    company_size: str | None = None,
) -> BenchmarkReport:
    get_result(session, result_id)
    return compute_benchmark(
        get_category_scores(session, result_id),
        load_population(session),
        settings,
        industry=industry,
        company_size=company_size,
    )


# ---------------------------------------------------------------------------
# Improvement plan
# ---------------------------------------------------------------------------


def _plan_out(row: ImprovementPlan) -> PlanEntryOut:
    return PlanEntryOut(
        id=row.id, survey_result_id=row.survey_result_id,
        framework_item_id=row.framework_item_id, area=row.area, area_key=row.area_key,
        category=row.category, category_key=row.category_key,
        title=row.title, description=row.description,
        actions=json_parse(row.actions_json, []), kpis=json_parse(row.kpis_json, []),
        priority=row.priority, display_order=row.display_order, priority_order=row.priority_order,
        status=row.status, progress=row.progress,
    )


def generate_improvement_plan(session: Session, result_id: int) -> list[PlanEntryOut]:
    """Recommend from the stored scores and replace the result's plan (caller must commit)."""
    result = get_result(session, result_id)
    scores = get_category_scores(session, result_id)
    if not scores:
        raise MissingScores(f"Survey result {result_id} has no category scores")
    recs = recommend(scores, result.overall_score)

    session.execute(delete(ImprovementPlan).where(ImprovementPlan.survey_result_id == result_id))
    rows = []
    for rec in recs:
        d = rec.to_dict()
        row = ImprovementPlan(
            survey_result_id=result_id,
            framework_item_id=d["framework_item_id"], area=d["area"], area_key=d["area_key"],
            category=d["category"], category_key=d["category_key"],
            title=d["title"], description=d["description"],
            actions_json=json_dump(d["actions"]), kpis_json=json_dump(d["kpis"]),
            priority=d["priority"], display_order=d["display_order"], priority_order=d["priority_order"],
        )
        session.add(row)
        rows.append(row)
    session.flush()
    return [_plan_out(r) for r in rows]


def list_plan_entries(session: Session, result_id: int) -> list[PlanEntryOut]:
    rows = session.execute(
        select(ImprovementPlan)
        .where(ImprovementPlan.survey_result_id == result_id)
        .order_by(ImprovementPlan.priority_order, ImprovementPlan.id)
    ).scalars().all()
    return [_plan_out(r) for r in rows]


def update_plan_entry(session: Session, entry_id: int, update: PlanEntryUpdate) -> PlanEntryOut:
    """Update tracking fields of one plan entry (caller must commit)."""
    row = session.get(ImprovementPlan, entry_id)
    if row is None:
        raise NotFound("Plan entry", entry_id)
    apply_updates(row, update.model_dump(), PLAN_UPDATE_FIELDS)
    row.updated_at = datetime.now(UTC)
    session.flush()
    return _plan_out(row)


# ---------------------------------------------------------------------------
# Narrative store
# ---------------------------------------------------------------------------


class SqlNarrativeStore:
    """Narrative persistence on the ``survey_results`` row; every write commits."""

    def __init__(self, session: Session):
        self.session = session

    def load_narrative(self, result_id: int) -> StructuredNarrative | None:
        result = self.session.get(SurveyResult, result_id)
        if result is None or not result.narrative_json:
            return None
        try:
            return StructuredNarrative.model_validate_json(result.narrative_json)
        except ValidationError as exc:
            log.warning("Ignoring unreadable stored narrative for result %s: %s", result_id, exc.error_count())
            return None

    def save_narrative(self, result_id: int, narrative: StructuredNarrative) -> StoreResult:
        try:
            result = self.session.get(SurveyResult, result_id)
            if result is None:
                return StoreResult(False, f"Survey result {result_id} not found")
            result.narrative_json = narrative.model_dump_json()
            result.narrative_generated_at = datetime.now(UTC)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            return StoreResult(False, str(exc))
        return StoreResult(True)

    def clear_narrative(self, result_id: int) -> StoreResult:
        try:
            result = self.session.get(SurveyResult, result_id)
            if result is None:
                return StoreResult(False, f"Survey result {result_id} not found")
            result.narrative_json = None
            result.narrative_generated_at = None
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            return StoreResult(False, str(exc))
        return StoreResult(True)


# ---------------------------------------------------------------------------
# Question administration
# ---------------------------------------------------------------------------


def _category_id(session: Session, key: str) -> int:
    cat = session.execute(select(Category).where(Category.key == key)).scalar_one_or_none()
    if cat is None:
        raise ValueError(f"Unknown category: {key!r}")
    return cat.id


def question_summary(q: Question) -> dict:
    return {
        "question_id": q.id, "category_key": q.category.key, "question": q.question,
        "weight": q.weight, "active": q.active,
    }


def list_questions(session: Session, include_inactive: bool = False) -> list[dict]:
    stmt = select(Question).order_by(Question.category_id, Question.id)
    if not include_inactive:
        stmt = stmt.where(Question.active.is_(True))
    return [question_summary(q) for q in session.execute(stmt).scalars()]


def add_question(session: Session, body: QuestionCreate) -> dict:
    """Add a question (caller must commit)."""
    if session.get(Question, body.question_id) is not None:
        raise ValueError(f"Question {body.question_id!r} already exists")
    q = Question(
        id=body.question_id, category_id=_category_id(session, body.category_key),
        question=body.question, weight=body.weight, active=True,
    )
    session.add(q)
    session.flush()
    return question_summary(q)


def update_question(session: Session, question_id: str, body: QuestionUpdate) -> dict:
    """Edit a question (caller must commit). Scores already stored are not recomputed."""
    q = session.get(Question, question_id)
    if q is None:
        raise NotFound("Question", question_id)
    updates = body.model_dump()
    if body.category_key is not None:
        q.category_id = _category_id(session, body.category_key)
    apply_updates(q, updates, ("question", "weight", "active"))
    session.flush()
    return question_summary(q)


def deactivate_question(session: Session, question_id: str) -> dict:
    """Questions are deactivated, never deleted (caller must commit)."""
    return update_question(session, question_id, QuestionUpdate(active=False))


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def list_results(session: Session) -> dict:
    """Every stored result, newest first, with its category scores and totals."""
    results = session.execute(
        select(SurveyResult).order_by(SurveyResult.created_at.desc(), SurveyResult.id.desc())
    ).scalars().all()
    rows = []
    for r in results:
        rows.append({
            "result_id": r.id, "name": r.name, "email": r.email, "company": r.company,
            "industry": r.industry, "company_size": r.company_size,
            "overall": _score_entry(r.overall_score),
            "category_scores": get_category_scores(session, r.id),
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "updated_at": r.updated_at.isoformat() if r.updated_at else None,
        })
    scored = [r.overall_score for r in results if r.overall_score is not None]
    return {
        "results": rows,
        "stats": {
            "total": len(results),
            "scored": len(scored),
            "avg_score": sum(scored) / len(scored) if scored else None,
        },
    }


def survey_details(session: Session, result_id: int) -> list[dict]:
    """Per-category breakdown of every stored answer with its question and weight."""
    get_result(session, result_id)
    scores = get_category_scores(session, result_id)
    rows = session.execute(
        select(Answer, Question, Category.key)
        .join(Question, Answer.question_id == Question.id)
        .join(Category, Question.category_id == Category.id)
        .where(Answer.survey_result_id == result_id)
        .order_by(Question.category_id, Question.id)
    ).all()
    by_cat: dict[str, list[dict]] = {}
    for ans, q, key in rows:
        by_cat.setdefault(key, []).append({
            "question_id": q.id, "question": q.question, "weight": q.weight, "answer": ans.answer_value,
        })
    keys = [k for k in CATEGORY_KEYS if k in by_cat or k in scores]
    return [
        {"category_key": k, "category_name": category_name(k), "score": scores.get(k),
         "questions": by_cat.get(k, [])}
        for k in keys
    ]


def _score_entry(score: float | None) -> dict:
    if score is None:
        return {"score": None, "display": None, "level": None, "grade": None}
    return {"score": score, "display": display_score(score), "level": maturity_level(score), "grade": grade(score)}


def build_report_payload(
    session: Session,
    result_id: int,
    settings: Settings,
    narrative: StructuredNarrative | None = None,
) -> dict:
    """Plain-data report for rendering or notification collaborators."""
    result = get_result(session, result_id)
    scores = get_category_scores(session, result_id)
    benchmark = run_benchmark(session, result_id, settings, industry=result.industry,
                              company_size=result.company_size)
    return {
        "result_id": result.id,
        "respondent": profile_of(result).model_dump(),
        "created_at": result.created_at.isoformat() if result.created_at else None,
        "updated_at": result.updated_at.isoformat() if result.updated_at else None,
        "overall": _score_entry(result.overall_score),
        "categories": [
            {"category_key": k, "category_name": category_name(k), **_score_entry(v)}
            for k, v in scores.items()
        ],
        "benchmark": benchmark.model_dump(),
        "plan": [e.model_dump() for e in list_plan_entries(session, result_id)],
        "narrative": narrative.model_dump() if narrative is not None else None,
    }
