"""Pydantic data shapes exchanged with collaborators (storage, reporting, generation)."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

Priority = Literal["high", "medium", "low"]


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class RespondentProfile(BaseModel):
    name: str = ""
    email: str = ""
    company: str = ""
    phone: str = ""
    industry: str | None = None
    company_size: str | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("company")
    @classmethod
    def strip_company(cls, v: str) -> str:
        return v.strip()


class SubmissionOut(BaseModel):
    result_id: int
    created: bool
    overall_score: float | None
    category_scores: dict[str, float]


# ---------------------------------------------------------------------------
# Benchmark
# ---------------------------------------------------------------------------


class BenchmarkCategory(BaseModel):
    category_key: str
    category_name: str
    user_score: float | None = None
    avg_score: float | None = None
    sample_count: int = 0
    percentile: int | None = None  # share of cohort strictly below, higher is better
    top_percent: int | None = None  # rank from the top ("top X%")
    gap: float | None = None


class BenchmarkReport(BaseModel):
    categories: list[BenchmarkCategory] = []
    total_sample_count: int = 0
    industry: str = "All"
    company_size: str = "All"
    cohort_fallback: bool = False
    is_sufficient: bool = False
    message: str | None = None


# ---------------------------------------------------------------------------
# Recommendation plan
# ---------------------------------------------------------------------------


class PlanEntryOut(BaseModel):
    id: int | None = None
    survey_result_id: int | None = None
    framework_item_id: str
    area: str
    area_key: str
    category: str
    category_key: str
    title: str
    description: str
    actions: list[str]
    kpis: list[str]
    priority: Priority
    display_order: int
    priority_order: int
    status: str = "pending"
    progress: int = 0


class PlanEntryUpdate(BaseModel):
    status: Literal["pending", "in_progress", "completed"] | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    assigned_to: str | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Structured narrative
# ---------------------------------------------------------------------------


class CategoryAnalysis(BaseModel):
    category_key: str
    category_name: str = ""
    score: float
    benchmark_avg: float | None = None
    percentile: float | None = None
    root_causes: list[str] = []
    impact: str = ""
    quick_wins: list[str] = []
    next_level_gap: str = ""


class PriorityMatrix(BaseModel):
    high_impact_low_effort: list[str] = []
    high_impact_high_effort: list[str] = []
    low_impact_low_effort: list[str] = []
    low_impact_high_effort: list[str] = []


class StructuredNarrative(BaseModel):
    executive_summary: str
    overall_assessment: str = ""
    category_analyses: list[CategoryAnalysis] = []
    priority_matrix: PriorityMatrix
    interdependencies: list[str] = []
    industry_context: str = ""


# ---------------------------------------------------------------------------
# AI roadmap & progress feedback
# ---------------------------------------------------------------------------


class RoadmapItem(BaseModel):
    phase: Literal["short", "mid", "long"]
    phase_label: str = ""
    category_key: str = ""
    title: str
    description: str = ""
    actions: list[str] = []
    kpis: list[str] = []
    expected_outcomes: list[str] = []
    priority: Priority = "medium"
    estimated_budget: str = ""
    estimated_effort: str = ""
    order_index: int = 0
    status: str = "pending"
    progress: int = 0
    checked_actions: list[bool] = []


class RoadmapResponse(BaseModel):
    plans: list[RoadmapItem]


class ProgressFeedback(BaseModel):
    message: str
    next_suggestion: str = ""
    is_celebration: bool = False


# ---------------------------------------------------------------------------
# Question administration
# ---------------------------------------------------------------------------


class QuestionCreate(BaseModel):
    question_id: str
    category_key: str
    question: str
    weight: int = Field(default=3, ge=1)


class QuestionUpdate(BaseModel):
    category_key: str | None = None
    question: str | None = None
    weight: int | None = Field(default=None, ge=1)
    active: bool | None = None
