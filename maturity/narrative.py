"""AI narrative cache: a structured written diagnosis, generated at most once per result.

Protocol
--------
1. A narrative already stored for the result is returned as-is; the generator
   is not called.
2. Otherwise a deterministic prompt is built from the score vector (plus the
   benchmark and respondent profile when given) and the generator is called
   exactly once in JSON mode.
3. The reply is validated as a :class:`StructuredNarrative`. Any generation
   failure (unavailable, malformed) yields a deterministic fallback narrative
   instead of an error. Fallbacks are never stored.
4. A generated narrative is saved once through the store. A failed save is
   logged and the narrative is still returned.

With ``serialize_generation`` enabled, concurrent requests for the same result
inside one process wait on a per-result lock and share one generation.
"""
from __future__ import annotations

import asyncio
import logging
import statistics
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Literal, Mapping, Protocol

from pydantic import ValidationError

from maturity.catalog import CATEGORY_KEYS, IMPROVEMENT_ITEMS, STRATEGIC_AREA, category_name, display_score
from maturity.config import Settings
from maturity.errors import GenerationError, MalformedResponse, MissingScores
from maturity.llm import parse_json_response
from maturity.schemas import (
    BenchmarkReport, CategoryAnalysis, PriorityMatrix, RespondentProfile, StructuredNarrative,
)
from maturity.scorer import maturity_level

log = logging.getLogger(__name__)

Source = Literal["cached", "generated", "fallback"]

SYSTEM_PROMPT = """\
You are a senior supply-chain management consultant with twenty years of \
experience helping small and mid-sized manufacturers optimize their supply \
chains. You know the SCOR model, Lean/Six Sigma and digital transformation, \
and you propose practical solutions that respect limited budgets and staff.

Principles:
1. Give only concrete, actionable advice. No generic statements.
2. Always account for the company's budget and staffing constraints.
3. Quote the respondent's actual scores when explaining.
4. Prefer free or low-cost tooling (spreadsheets, open-source ERP) first.
5. Point to public support programmes for digitalization where relevant.
6. Recommend a staged approach: document the process, manage it in a \
spreadsheet, then introduce a system.
"""

NARRATIVE_INSTRUCTIONS = """\
Respond with ONLY valid JSON of this shape:
{
  "executive_summary": "<3-4 sentences>",
  "overall_assessment": "<one paragraph>",
  "category_analyses": [
    {
      "category_key": "<key>",
      "category_name": "<name>",
      "score": <float>,
      "benchmark_avg": <float or null>,
      "percentile": <number or null>,
      "root_causes": ["<cause>", "..."],
      "impact": "<business impact>",
      "quick_wins": ["<action>", "..."],
      "next_level_gap": "<what it takes to reach the next maturity level>"
    }
  ],
  "priority_matrix": {
    "high_impact_low_effort": ["..."],
    "high_impact_high_effort": ["..."],
    "low_impact_low_effort": ["..."],
    "low_impact_high_effort": ["..."]
  },
  "interdependencies": ["<how one area affects another>", "..."],
  "industry_context": "<implications for the respondent's industry>"
}
"""

GENERIC_INTERDEPENDENCIES = (
    "Better planning directly improves the efficiency of inventory and production management.",
    "A structured procurement process is the key lever for lowering total supply-chain cost.",
    "Integrated data sharing is a precondition for improving every other area.",
)

DEFAULT_MATRIX = PriorityMatrix(
    high_impact_low_effort=["Document core processes", "Classify inventory (ABC)", "Define supplier evaluation criteria"],
    high_impact_high_effort=["Introduce an ERP system", "Establish an S&OP process"],
    low_impact_low_effort=["Standardize report templates"],
    low_impact_high_effort=[],
)

_BUCKET_BY_PRIORITY = {
    "high": "high_impact_low_effort",
    "medium": "high_impact_high_effort",
    "low": "low_impact_low_effort",
}
_BUCKET_LIMIT = 3
_WEAKEST_COUNT = 3
_NEXT_LEVEL = [(1.5, "Basic"), (2.5, "Structured"), (3.5, "Standardized"), (4.5, "Optimized")]


# ---------------------------------------------------------------------------
# Store collaborator
# ---------------------------------------------------------------------------


@dataclass
class StoreResult:
    """Outcome of a narrative store write."""
    ok: bool
    error: str | None = None


class NarrativeStore(Protocol):
    def load_narrative(self, result_id: int) -> StructuredNarrative | None: ...
    def save_narrative(self, result_id: int, narrative: StructuredNarrative) -> StoreResult: ...
    def clear_narrative(self, result_id: int) -> StoreResult: ...


@dataclass
class NarrativeOutcome:
    narrative: StructuredNarrative
    source: Source

    @property
    def cached(self) -> bool:
        return self.source == "cached"

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"


# ---------------------------------------------------------------------------
# Prompt & fallback (pure)
# ---------------------------------------------------------------------------


def _ordered_scores(category_scores: Mapping[str, float]) -> list[tuple[str, float]]:
    """Scores in catalog order, unknown keys last (sorted)."""
    known = [(k, category_scores[k]) for k in CATEGORY_KEYS if k in category_scores]
    extra = sorted((k, v) for k, v in category_scores.items() if k not in CATEGORY_KEYS)
    return known + extra


def weakest_categories(category_scores: Mapping[str, float], n: int = _WEAKEST_COUNT) -> list[str]:
    ordered = _ordered_scores(category_scores)
    # sorted() is stable: equal scores keep catalog order
    return [k for k, _ in sorted(ordered, key=lambda kv: kv[1])[:n]]


def _fmt(score: float | None) -> str:
    shown = display_score(score)
    return "n/a" if shown is None else f"{shown:.1f}"


def build_narrative_prompt(
    category_scores: Mapping[str, float],
    overall_score: float | None,
    benchmark: BenchmarkReport | None = None,
    profile: RespondentProfile | None = None,
) -> str:
    """Assemble the user prompt. Identical inputs always give identical text."""
    ordered = _ordered_scores(category_scores)
    weakest_key, weakest_score = min(ordered, key=lambda kv: kv[1])
    strongest_key, strongest_score = max(ordered, key=lambda kv: kv[1])
    spread = statistics.pstdev([s for _, s in ordered]) if len(ordered) > 1 else 0.0

    lines = ["Supply-chain maturity diagnosis to analyse.", ""]
    if profile is not None:
        lines += [
            "COMPANY PROFILE",
            f"- Company: {profile.company or 'not provided'}",
            f"- Industry: {profile.industry or 'not provided'}",
            f"- Company size: {profile.company_size or 'not provided'}",
            "",
        ]
    overall_label = maturity_level(overall_score) if overall_score is not None else "n/a"
    lines += [f"OVERALL SCORE: {_fmt(overall_score)}/5.0 ({overall_label})", "", "CATEGORY SCORES"]
    for key, score in ordered:
        lines.append(f"- {category_name(key)} [{key}]: {_fmt(score)}/5.0 ({maturity_level(score)})")
    lines += [
        "",
        f"WEAKEST CATEGORY: {category_name(weakest_key)} ({_fmt(weakest_score)})",
        f"STRONGEST CATEGORY: {category_name(strongest_key)} ({_fmt(strongest_score)})",
        f"SCORE SPREAD (std dev across categories): {spread:.2f}",
    ]

    if benchmark is not None and benchmark.categories:
        lines += ["", f"BENCHMARK (industry: {benchmark.industry}, {benchmark.total_sample_count} companies)"]
        for cat in benchmark.categories:
            if cat.gap is None:
                continue
            sign = "+" if cat.gap >= 0 else ""
            lines.append(
                f"- {cat.category_name}: average {cat.avg_score:.2f}, difference {sign}{cat.gap:.2f}, "
                f"ahead of {cat.percentile}% of peers"
            )
        if not benchmark.is_sufficient:
            lines.append("(Benchmark population is small; treat comparisons as preliminary.)")

    lines += ["", NARRATIVE_INSTRUCTIONS]
    return "\n".join(lines)


def _next_level_gap(score: float) -> str:
    for cutoff, label in _NEXT_LEVEL:
        if score < cutoff:
            return f"Raise the score from {_fmt(score)} to {cutoff:.1f} to reach the {label} level."
    return "Already at the highest maturity level; focus on sustaining it."


def fallback_narrative(
    category_scores: Mapping[str, float],
    overall_score: float | None,
    benchmark: BenchmarkReport | None = None,
) -> StructuredNarrative:
    """Deterministic narrative derived from the score vector and the improvement catalog."""
    weakest = weakest_categories(category_scores)
    bench = {c.category_key: c for c in benchmark.categories} if benchmark else {}

    buckets: dict[str, list[str]] = {b: [] for b in _BUCKET_BY_PRIORITY.values()}
    for key in weakest:
        for item in IMPROVEMENT_ITEMS:
            if item.category_key != key or item.area_key == STRATEGIC_AREA:
                continue
            bucket = buckets[_BUCKET_BY_PRIORITY[item.priority]]
            if len(bucket) < _BUCKET_LIMIT and item.title not in bucket:
                bucket.append(item.title)
    if any(buckets.values()):
        matrix = PriorityMatrix(**buckets)
    else:
        matrix = DEFAULT_MATRIX.model_copy(deep=True)

    analyses = []
    for key, score in _ordered_scores(category_scores):
        first = next((i for i in IMPROVEMENT_ITEMS if i.category_key == key), None)
        b = bench.get(key)
        analyses.append(CategoryAnalysis(
            category_key=key,
            category_name=category_name(key),
            score=score,
            benchmark_avg=b.avg_score if b else None,
            percentile=b.percentile if b else None,
            quick_wins=list(first.actions[:2]) if first else [],
            next_level_gap=_next_level_gap(score),
        ))

    weak_names = ", ".join(category_name(k) for k in weakest)
    if overall_score is not None:
        summary = (
            f"Overall supply-chain maturity is {_fmt(overall_score)}/5.0 "
            f"({maturity_level(overall_score)}). The areas needing the most attention are {weak_names}."
        )
    else:
        summary = f"The areas needing the most attention are {weak_names}."
    return StructuredNarrative(
        executive_summary=summary,
        overall_assessment=(
            "Several areas leave room for improvement. A staged approach, starting with "
            "documented processes, can raise overall maturity step by step."
        ),
        category_analyses=analyses,
        priority_matrix=matrix,
        interdependencies=list(GENERIC_INTERDEPENDENCIES),
        industry_context="Generate the AI analysis for industry-specific implications.",
    )


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class NarrativeCache:
    """Get-or-generate front for structured narratives.

    Narratives are cached per survey result. Without a result id nothing is
    read from or written to the store.
    """

    def __init__(self, generator: Any, store: NarrativeStore, settings: Settings):
        self.generator = generator
        self.store = store
        self.settings = settings
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_users: dict[int, int] = {}

    @asynccontextmanager
    async def _locked(self, result_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(result_id, asyncio.Lock())
        self._lock_users[result_id] = self._lock_users.get(result_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[result_id] -= 1
            if not self._lock_users[result_id]:
                del self._lock_users[result_id]
                del self._locks[result_id]

    async def get_or_generate(
        self,
        result_id: int | None,
        category_scores: Mapping[str, float],
        overall_score: float | None,
        benchmark: BenchmarkReport | None = None,
        profile: RespondentProfile | None = None,
    ) -> NarrativeOutcome:
        if not category_scores:
            raise MissingScores("Category scores are required to build a narrative")

        if result_id is None:
            return await self._generate(None, category_scores, overall_score, benchmark, profile)

        cached = self.store.load_narrative(result_id)
        if cached is not None:
            return NarrativeOutcome(cached, "cached")

        if not self.settings.serialize_generation:
            return await self._generate(result_id, category_scores, overall_score, benchmark, profile)

        async with self._locked(result_id):
            # Another waiter may have finished while we were queued
            cached = self.store.load_narrative(result_id)
            if cached is not None:
                return NarrativeOutcome(cached, "cached")
            return await self._generate(result_id, category_scores, overall_score, benchmark, profile)

    async def _generate(
        self,
        result_id: int | None,
        category_scores: Mapping[str, float],
        overall_score: float | None,
        benchmark: BenchmarkReport | None,
        profile: RespondentProfile | None,
    ) -> NarrativeOutcome:
        if self.generator is None:
            log.info("No generator configured; using fallback narrative for result %s", result_id)
            return NarrativeOutcome(fallback_narrative(category_scores, overall_score, benchmark), "fallback")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_narrative_prompt(category_scores, overall_score, benchmark, profile)},
        ]
        try:
            text = await self.generator.complete(
                messages,
                max_tokens=self.settings.narrative_max_tokens,
                temperature=self.settings.narrative_temperature,
                json_mode=True,
            )
            narrative = _validate(text)
        except GenerationError as exc:
            log.warning("Narrative generation failed for result %s (%s): %s",
                        result_id, type(exc).__name__, exc)
            return NarrativeOutcome(fallback_narrative(category_scores, overall_score, benchmark), "fallback")

        if result_id is not None:
            saved = self.store.save_narrative(result_id, narrative)
            if not saved.ok:
                log.warning("Could not store narrative for result %s: %s", result_id, saved.error)
        return NarrativeOutcome(narrative, "generated")

    def invalidate(self, result_id: int) -> StoreResult:
        outcome = self.store.clear_narrative(result_id)
        if not outcome.ok:
            log.warning("Could not clear narrative for result %s: %s", result_id, outcome.error)
        return outcome


def _validate(text: str) -> StructuredNarrative:
    data = parse_json_response(text)
    try:
        return StructuredNarrative.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponse(f"Narrative does not match the expected shape: {exc.error_count()} errors") from exc
