from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), default="")

    questions: Mapped[list[Question]] = relationship("Question", back_populates="category")


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)  # e.g. "planning_1"
    category_id: Mapped[int] = mapped_column(Integer, ForeignKey("categories.id"), nullable=False)
    question: Mapped[str] = mapped_column(Text, default="")
    weight: Mapped[int] = mapped_column(Integer, default=3)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    category: Mapped[Category] = relationship("Category", back_populates="questions")


class SurveyResult(Base):
    __tablename__ = "survey_results"
    # Declared respondent identity: a second submission for the same pair updates this row
    __table_args__ = (UniqueConstraint("email", "company", name="uq_survey_results_identity"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    email: Mapped[str | None] = mapped_column(String(300), nullable=True)
    company: Mapped[str] = mapped_column(String(300), default="")
    phone: Mapped[str] = mapped_column(String(50), default="")
    industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
    company_size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    overall_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    narrative_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    narrative_generated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    answers: Mapped[list[Answer]] = relationship("Answer", back_populates="result", cascade="all, delete-orphan")
    category_scores: Mapped[list[CategoryScore]] = relationship(
        "CategoryScore", back_populates="result", cascade="all, delete-orphan",
    )
    plans: Mapped[list[ImprovementPlan]] = relationship(
        "ImprovementPlan", back_populates="result", cascade="all, delete-orphan",
        order_by="ImprovementPlan.priority_order",
    )
    roadmap: Mapped[list[AIRoadmapItem]] = relationship(
        "AIRoadmapItem", back_populates="result", cascade="all, delete-orphan",
        order_by="AIRoadmapItem.order_index",
    )


class Answer(Base):
    __tablename__ = "survey_answers"
    __table_args__ = (UniqueConstraint("survey_result_id", "question_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    survey_result_id: Mapped[int] = mapped_column(Integer, ForeignKey("survey_results.id"), nullable=False)
    question_id: Mapped[str] = mapped_column(String(50), nullable=False)
    answer_value: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    result: Mapped[SurveyResult] = relationship("SurveyResult", back_populates="answers")


class CategoryScore(Base):
    __tablename__ = "category_scores"
    __table_args__ = (UniqueConstraint("survey_result_id", "category"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    survey_result_id: Mapped[int] = mapped_column(Integer, ForeignKey("survey_results.id"), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)  # category key
    score: Mapped[float] = mapped_column(Float, nullable=False)
    max_score: Mapped[int] = mapped_column(Integer, default=5)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    result: Mapped[SurveyResult] = relationship("SurveyResult", back_populates="category_scores")


class ImprovementPlan(Base):
    __tablename__ = "improvement_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    survey_result_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("survey_results.id"), nullable=True)
    framework_item_id: Mapped[str] = mapped_column(String(50), default="")
    area: Mapped[str] = mapped_column(String(200), default="")
    area_key: Mapped[str] = mapped_column(String(50), default="")
    category: Mapped[str] = mapped_column(String(200), default="")
    category_key: Mapped[str] = mapped_column(String(50), default="")
    title: Mapped[str] = mapped_column(String(300), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    actions_json: Mapped[str] = mapped_column(Text, default="[]")
    kpis_json: Mapped[str] = mapped_column(Text, default="[]")
    priority: Mapped[str] = mapped_column(String(10), default="medium")  # high | medium | low
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    priority_order: Mapped[int] = mapped_column(Integer, default=200)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending | in_progress | completed
    progress: Mapped[int] = mapped_column(Integer, default=0)
    assigned_to: Mapped[str] = mapped_column(String(200), default="")
    notes: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    result: Mapped[SurveyResult | None] = relationship("SurveyResult", back_populates="plans")


class AIRoadmapItem(Base):
    __tablename__ = "ai_roadmap_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    survey_result_id: Mapped[int] = mapped_column(Integer, ForeignKey("survey_results.id"), nullable=False)
    phase: Mapped[str] = mapped_column(String(10), nullable=False)  # short | mid | long
    phase_label: Mapped[str] = mapped_column(String(100), default="")
    category_key: Mapped[str] = mapped_column(String(50), default="")
    title: Mapped[str] = mapped_column(String(300), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    actions_json: Mapped[str] = mapped_column(Text, default="[]")
    kpis_json: Mapped[str] = mapped_column(Text, default="[]")
    expected_outcomes_json: Mapped[str] = mapped_column(Text, default="[]")
    priority: Mapped[str] = mapped_column(String(10), default="medium")
    estimated_budget: Mapped[str] = mapped_column(String(200), default="")
    estimated_effort: Mapped[str] = mapped_column(String(200), default="")
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    progress: Mapped[int] = mapped_column(Integer, default=0)
    checked_actions_json: Mapped[str] = mapped_column(Text, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    result: Mapped[SurveyResult] = relationship("SurveyResult", back_populates="roadmap")
