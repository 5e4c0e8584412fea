from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from maturity.config import Settings
from maturity.errors import GenerationUnavailable
from maturity.models import AIRoadmapItem, SurveyResult
from maturity.recommender import recommend
from maturity.roadmap import (
    MAX_FRAMEWORK_REFS, PHASE_BY_PRIORITY, RoadmapPlanner, build_roadmap_prompt,
    fallback_roadmap, framework_references, load_roadmap, progress_feedback,
)
from maturity.schemas import RespondentProfile

SCORES = {"planning": 2.0, "procurement": 2.8, "integration": 3.2, "production": 4.1}
OVERALL = sum(SCORES.values()) / len(SCORES)

PLANS = {"plans": [
    {"phase": "short", "category_key": "planning", "title": "Weekly forecast review",
     "actions": ["Set agenda", "Invite sales"], "kpis": ["MAPE"], "priority": "high"},
    {"phase": "long", "phase_label": "Long term", "category_key": "integration", "title": "ERP rollout",
     "actions": ["Select vendor"], "priority": "low"},
]}


def generator(reply=None, side_effect=None):
    gen = MagicMock()
    gen.complete = AsyncMock(return_value=reply, side_effect=side_effect)
    return gen


@pytest.fixture()
def result_id(session):
    row = SurveyResult(company="Acme", industry="food", overall_score=OVERALL)
    session.add(row)
    session.commit()
    return row.id


class TestRoadmapPlanner:
    @pytest.mark.asyncio
    async def test_generated_then_cached(self, session, result_id):
        gen = generator(json.dumps(PLANS))
        planner = RoadmapPlanner(gen, Settings())

        first = await planner.get_or_generate(session, result_id, SCORES, OVERALL)
        session.commit()
        second = await planner.get_or_generate(session, result_id, SCORES, OVERALL)

        assert first.source == "generated"
        assert second.cached
        gen.complete.assert_awaited_once()
        assert [i.title for i in second.items] == ["Weekly forecast review", "ERP rollout"]
        assert second.items[0].checked_actions == [False, False]
        assert second.items[0].phase_label == "Short term (1-3 months)"
        assert second.items[1].phase_label == "Long term"
        assert [i.order_index for i in second.items] == [0, 1]

    @pytest.mark.asyncio
    async def test_stored_text_keeps_non_ascii(self, session, result_id):
        plans = {"plans": [{"phase": "short", "title": "Prognose-Überprüfung", "actions": ["Absatzplanung prüfen"]}]}
        await RoadmapPlanner(generator(json.dumps(plans)), Settings()).get_or_generate(
            session, result_id, SCORES, OVERALL)
        row = session.execute(select(AIRoadmapItem)).scalar_one()
        assert row.actions_json == '["Absatzplanung prüfen"]'
        assert row.checked_actions_json == "[false]"

    @pytest.mark.asyncio
    async def test_generation_options(self, session, result_id):
        gen = generator(json.dumps(PLANS))
        await RoadmapPlanner(gen, Settings(roadmap_max_tokens=999)).get_or_generate(
            session, result_id, SCORES, OVERALL)
        assert gen.complete.await_args.kwargs["max_tokens"] == 999
        assert gen.complete.await_args.kwargs["json_mode"] is True

    @pytest.mark.asyncio
    async def test_failure_gives_unstored_fallback(self, session, result_id):
        gen = generator(side_effect=GenerationUnavailable("timeout"))
        outcome = await RoadmapPlanner(gen, Settings()).get_or_generate(session, result_id, SCORES, OVERALL)
        assert outcome.is_fallback
        assert outcome.items == fallback_roadmap(SCORES, OVERALL)
        assert load_roadmap(session, result_id) == []

    @pytest.mark.asyncio
    async def test_empty_plans_is_malformed(self, session, result_id):
        gen = generator(json.dumps({"plans": []}))
        outcome = await RoadmapPlanner(gen, Settings()).get_or_generate(session, result_id, SCORES, OVERALL)
        assert outcome.is_fallback

    @pytest.mark.asyncio
    async def test_bad_phase_is_malformed(self, session, result_id):
        gen = generator(json.dumps({"plans": [{"phase": "someday", "title": "x"}]}))
        outcome = await RoadmapPlanner(gen, Settings()).get_or_generate(session, result_id, SCORES, OVERALL)
        assert outcome.is_fallback

    @pytest.mark.asyncio
    async def test_no_generator(self, session, result_id):
        outcome = await RoadmapPlanner(None, Settings()).get_or_generate(session, result_id, SCORES, OVERALL)
        assert outcome.source == "fallback"


class TestFallbackRoadmap:
    def test_phase_follows_priority(self):
        recs = recommend(SCORES, OVERALL)
        items = fallback_roadmap(SCORES, OVERALL)
        assert len(items) == len(recs)
        for rec, item in zip(recs, items):
            assert item.phase == PHASE_BY_PRIORITY[rec.priority]
            assert item.title == rec.item.title


class TestPrompt:
    def test_weak_areas_and_references(self):
        prompt = build_roadmap_prompt(SCORES, OVERALL, RespondentProfile(company="Acme", industry="food"))
        assert "Planning Management [planning]: 2.0" in prompt
        assert "Integration Management [integration]: 3.2" in prompt
        assert "[production]" not in prompt
        assert "Industry: food" in prompt

    def test_reference_cap(self):
        refs = framework_references({k: 1.0 for k in ("planning", "procurement", "production", "logistics", "integration")})
        assert len(refs) == MAX_FRAMEWORK_REFS


class TestProgressFeedback:
    @pytest.mark.asyncio
    async def test_fallback_percentage(self):
        fb = await progress_feedback(None, 1, 3, 0, 4)
        assert "33%" in fb.message
        assert fb.is_celebration is False

    @pytest.mark.asyncio
    async def test_celebration(self):
        fb = await progress_feedback(None, 10, 10, 4, 4)
        assert fb.is_celebration is True
        assert fb.message.startswith("Congratulations")

    @pytest.mark.asyncio
    async def test_zero_tasks_is_not_a_celebration(self):
        fb = await progress_feedback(None, 0, 0, 0, 0)
        assert fb.is_celebration is False
        assert "0%" in fb.message

    @pytest.mark.asyncio
    async def test_generated(self):
        gen = generator(json.dumps({"message": "Nice work.", "next_suggestion": "Start ABC.", "is_celebration": True}))
        fb = await progress_feedback(gen, 2, 8, 1, 4, recently_completed="S&OP kickoff")
        assert fb.message == "Nice work."
        # celebration is decided locally, not by the generator
        assert fb.is_celebration is False
        assert "S&OP kickoff" in gen.complete.await_args.args[0][1]["content"]

    @pytest.mark.asyncio
    async def test_generation_failure(self):
        gen = generator(side_effect=GenerationUnavailable("down"))
        fb = await progress_feedback(gen, 5, 10, 1, 4)
        assert "50%" in fb.message

    @pytest.mark.asyncio
    async def test_malformed_reply(self):
        gen = generator(json.dumps({"next_suggestion": "no message"}))
        fb = await progress_feedback(gen, 5, 10, 1, 4)
        assert fb.message.startswith("Good progress")
