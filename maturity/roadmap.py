"""Phased improvement roadmap (short / mid / long term) and progress feedback.

The roadmap is generated once per survey result and stored as
:class:`~maturity.models.AIRoadmapItem` rows. When generation fails, a
deterministic roadmap is derived from the recommendation engine instead
(high -> short, medium -> mid, low -> long); that fallback is not stored so a
later call can still produce the generated version.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from maturity.catalog import IMPROVEMENT_ITEMS, category_name, display_score, round_half_up
from maturity.config import Settings
from maturity.errors import GenerationError, MalformedResponse
from maturity.llm import parse_json_response
from maturity.models import AIRoadmapItem
from maturity.narrative import SYSTEM_PROMPT, Source, weakest_categories
from maturity.recommender import recommend
from maturity.schemas import ProgressFeedback, RespondentProfile, RoadmapItem, RoadmapResponse, StructuredNarrative
from maturity.utils import json_dump, json_parse

log = logging.getLogger(__name__)

WEAK_BELOW = 3.5
MAX_FRAMEWORK_REFS = 10

PHASE_BY_PRIORITY = {"high": "short", "medium": "mid", "low": "long"}
PHASE_LABELS = {
    "short": "Short term (1-3 months)",
    "mid": "Mid term (3-6 months)",
    "long": "Long term (6-12 months)",
}

ROADMAP_INSTRUCTIONS = """\
Respond with ONLY valid JSON of this shape:
{
  "plans": [
    {
      "phase": "short",
      "phase_label": "Short term (1-3 months)",
      "category_key": "<category key>",
      "title": "<task title>",
      "description": "<2-3 sentences>",
      "actions": ["<concrete step 1>", "<step 2>", "<step 3>"],
      "kpis": ["<KPI 1>", "<KPI 2>"],
      "expected_outcomes": ["<outcome 1>", "<outcome 2>"],
      "priority": "high",
      "estimated_budget": "<no cost | small budget | public funding>",
      "estimated_effort": "<e.g. one person, 2 hours per week>"
    }
  ]
}

Guidelines:
- short: 3-5 items, minimal or no cost, can start immediately
- mid: 3-4 items, process improvement or system introduction
- long: 2-3 items, strategic transformation and digitalization
- 8-12 items in total
- actions must be concrete enough for a practitioner to execute directly
- give priority "high" to the lowest-scoring areas first
"""


@dataclass
class RoadmapOutcome:
    items: list[RoadmapItem]
    source: Source

    @property
    def cached(self) -> bool:
        return self.source == "cached"

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"


def framework_references(category_scores: Mapping[str, float]) -> list[str]:
    """Catalog items triggered by the scores, formatted as prompt context."""
    refs = []
    for item in IMPROVEMENT_ITEMS:
        score = category_scores.get(item.category_key)
        if score is None or score > item.score_threshold:
            continue
        refs.append(f"- [{item.area}] {item.title}: {item.description} (actions: {', '.join(item.actions[:3])})")
        if len(refs) >= MAX_FRAMEWORK_REFS:
            break
    return refs


def build_roadmap_prompt(
    category_scores: Mapping[str, float],
    overall_score: float | None,
    profile: RespondentProfile | None = None,
    narrative: StructuredNarrative | None = None,
) -> str:
    weak = [k for k, v in category_scores.items() if v < WEAK_BELOW]
    if not weak:
        weak = weakest_categories(category_scores, 2)
    overall = display_score(overall_score)

    profile = profile or RespondentProfile()
    lines = [
        "Build a tailored three-phase (short / mid / long term) improvement plan "
        "from this supply-chain diagnosis.",
        "",
        "COMPANY",
        f"- Company: {profile.company or 'not provided'}",
        f"- Industry: {profile.industry or 'not provided'}",
        f"- Size: {profile.company_size or 'SME'}",
        f"- Overall score: {'n/a' if overall is None else f'{overall:.1f}'}/5.0",
        "",
        "WEAK AREAS",
    ]
    lines += [f"- {category_name(k)} [{k}]: {display_score(category_scores[k]):.1f}" for k in weak]
    if narrative is not None:
        quick = ", ".join(narrative.priority_matrix.high_impact_low_effort[:3]) or "none"
        lines += ["", "ANALYSIS SUMMARY", narrative.executive_summary, f"Priorities: {quick}"]
    refs = framework_references(category_scores)
    lines += ["", "REFERENCE FRAMEWORK ITEMS", *(refs or ["none"]), "", ROADMAP_INSTRUCTIONS]
    return "\n".join(lines)


def fallback_roadmap(category_scores: Mapping[str, float], overall_score: float | None) -> list[RoadmapItem]:
    """Roadmap built from the recommendation engine, one entry per recommended item."""
    items = []
    for idx, rec in enumerate(recommend(category_scores, overall_score)):
        phase = PHASE_BY_PRIORITY[rec.priority]
        it = rec.item
        items.append(RoadmapItem(
            phase=phase,
            phase_label=PHASE_LABELS[phase],
            category_key=it.category_key,
            title=it.title,
            description=it.description,
            actions=list(it.actions),
            kpis=list(it.kpis),
            priority=rec.priority,
            order_index=idx,
            checked_actions=[False] * len(it.actions),
        ))
    return items


def _row_to_item(row: AIRoadmapItem) -> RoadmapItem:
    return RoadmapItem(
        phase=row.phase,
        phase_label=row.phase_label,
        category_key=row.category_key,
        title=row.title,
        description=row.description,
        actions=json_parse(row.actions_json, []),
        kpis=json_parse(row.kpis_json, []),
        expected_outcomes=json_parse(row.expected_outcomes_json, []),
        priority=row.priority,
        estimated_budget=row.estimated_budget,
        estimated_effort=row.estimated_effort,
        order_index=row.order_index,
        status=row.status,
        progress=row.progress,
        checked_actions=json_parse(row.checked_actions_json, []),
    )


def load_roadmap(session: Session, result_id: int) -> list[RoadmapItem]:
    rows = session.execute(
        select(AIRoadmapItem)
        .where(AIRoadmapItem.survey_result_id == result_id)
        .order_by(AIRoadmapItem.order_index)
    ).scalars().all()
    return [_row_to_item(r) for r in rows]


def replace_roadmap(session: Session, result_id: int, items: list[RoadmapItem]) -> None:
    """Replace all roadmap rows of a result (caller must commit)."""
    session.execute(delete(AIRoadmapItem).where(AIRoadmapItem.survey_result_id == result_id))
    for it in items:
        session.add(AIRoadmapItem(
            survey_result_id=result_id,
            phase=it.phase,
            phase_label=it.phase_label,
            category_key=it.category_key,
            title=it.title,
            description=it.description,
            actions_json=json_dump(it.actions),
            kpis_json=json_dump(it.kpis),
            expected_outcomes_json=json_dump(it.expected_outcomes),
            priority=it.priority,
            estimated_budget=it.estimated_budget,
            estimated_effort=it.estimated_effort,
            order_index=it.order_index,
            status=it.status,
            progress=it.progress,
            checked_actions_json=json_dump(it.checked_actions),
        ))
    session.flush()


class RoadmapPlanner:
    """Get-or-generate front for the phased roadmap of one survey result."""

    def __init__(self, generator: Any, settings: Settings):
        self.generator = generator
        self.settings = settings

    async def get_or_generate(
        self,
        session: Session,
        result_id: int,
        category_scores: Mapping[str, float],
        overall_score: float | None,
        profile: RespondentProfile | None = None,
        narrative: StructuredNarrative | None = None,
    ) -> RoadmapOutcome:
        existing = load_roadmap(session, result_id)
        if existing:
            return RoadmapOutcome(existing, "cached")

        if self.generator is None:
            log.info("No generator configured; using fallback roadmap for result %s", result_id)
            return RoadmapOutcome(fallback_roadmap(category_scores, overall_score), "fallback")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_roadmap_prompt(category_scores, overall_score, profile, narrative)},
        ]
        try:
            text = await self.generator.complete(
                messages,
                max_tokens=self.settings.roadmap_max_tokens,
                temperature=self.settings.roadmap_temperature,
                json_mode=True,
            )
            items = _validate_plans(text)
        except GenerationError as exc:
            log.warning("Roadmap generation failed for result %s (%s): %s",
                        result_id, type(exc).__name__, exc)
            return RoadmapOutcome(fallback_roadmap(category_scores, overall_score), "fallback")

        replace_roadmap(session, result_id, items)
        return RoadmapOutcome(items, "generated")


def _validate_plans(text: str) -> list[RoadmapItem]:
    data = parse_json_response(text)
    try:
        plans = RoadmapResponse.model_validate(data).plans
    except ValidationError as exc:
        raise MalformedResponse(f"Roadmap does not match the expected shape: {exc.error_count()} errors") from exc
    if not plans:
        raise MalformedResponse("Roadmap response contained no plans")
    for idx, plan in enumerate(plans):
        plan.order_index = idx
        plan.status = "pending"
        plan.progress = 0
        plan.checked_actions = [False] * len(plan.actions)
        if not plan.phase_label:
            plan.phase_label = PHASE_LABELS[plan.phase]
    return plans


# ---------------------------------------------------------------------------
# Progress feedback
# ---------------------------------------------------------------------------


def _feedback_prompt(
    completed_actions: int, total_actions: int, completed_tasks: int, total_tasks: int,
    recently_completed: str | None, current_focus: str | None, percentage: int, celebrate: bool,
) -> str:
    lines = [
        "Progress of the respondent's supply-chain improvement work:",
        f"- Overall progress: {completed_actions}/{total_actions} actions done ({percentage}%)",
        f"- Tasks completed: {completed_tasks}/{total_tasks}",
        f"- Recently completed: {recently_completed or 'none'}",
        f"- Currently working on: {current_focus or 'none'}",
    ]
    if celebrate:
        lines.append("Every task is complete. Congratulate them and suggest the next step.")
    lines += [
        "",
        "Respond with ONLY valid JSON:",
        '{"message": "<2-3 encouraging sentences>", "next_suggestion": "<one concrete sentence>", '
        f'"is_celebration": {json.dumps(celebrate)}}}',
    ]
    return "\n".join(lines)


def fallback_feedback(percentage: int, celebrate: bool) -> ProgressFeedback:
    if celebrate:
        message = ("Congratulations! Every improvement task is complete. "
                   "Regular monitoring and continuous improvement are what matter now.")
    else:
        message = f"Good progress! {percentage}% done. Keep going."
    return ProgressFeedback(
        message=message,
        next_suggestion="Review the next action items and start on one.",
        is_celebration=celebrate,
    )


async def progress_feedback(
    generator: Any,
    completed_actions: int,
    total_actions: int,
    completed_tasks: int,
    total_tasks: int,
    recently_completed: str | None = None,
    current_focus: str | None = None,
    settings: Settings | None = None,
) -> ProgressFeedback:
    """Short encouragement message for roadmap progress. Never raises on generation failure."""
    settings = settings or Settings()
    percentage = int(round_half_up(completed_actions / total_actions * 100)) if total_actions > 0 else 0
    celebrate = completed_tasks > 0 and completed_tasks == total_tasks
    if generator is None:
        return fallback_feedback(percentage, celebrate)

    messages = [
        {"role": "system", "content": SYSTEM_PROMPT + "\nKeep the reply short and encouraging."},
        {"role": "user", "content": _feedback_prompt(
            completed_actions, total_actions, completed_tasks, total_tasks,
            recently_completed, current_focus, percentage, celebrate,
        )},
    ]
    try:
        text = await generator.complete(
            messages,
            max_tokens=settings.feedback_max_tokens,
            temperature=settings.feedback_temperature,
            json_mode=True,
        )
        data = parse_json_response(text)
        feedback = ProgressFeedback.model_validate({**data, "is_celebration": celebrate})
    except GenerationError as exc:
        log.warning("Progress feedback generation failed: %s", exc)
        return fallback_feedback(percentage, celebrate)
    except ValidationError as exc:
        log.warning("Progress feedback malformed (%d validation errors)", exc.error_count())
        return fallback_feedback(percentage, celebrate)
    return feedback
