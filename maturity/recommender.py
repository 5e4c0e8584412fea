"""Recommendation engine: turn category scores into a ranked improvement plan.

Steps
-----
1. Select every catalog item whose category score is defined and at or below
   the item's threshold.
2. Re-prioritize: a category score <= 2.0 forces ``high``; a score in
   (2.0, 3.0] bumps ``low`` to ``medium``; priorities are never demoted.
3. When the overall score is <= 3.0, add every strategic-tier item that was not
   already selected, forced to ``high``.
4. Stable sort by tier (high, medium, low), keeping catalog order within a tier.
5. Assign ``display_order`` and ``priority_order = weight * 100 + index`` so a
   store sorting by ``priority_order`` reproduces the in-memory order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from maturity.catalog import IMPROVEMENT_ITEMS, STRATEGIC_AREA, ImprovementItem
from maturity.errors import MissingScores

log = logging.getLogger(__name__)

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}
PRIORITY_WEIGHT = {"high": 1, "medium": 2, "low": 3}

FORCE_HIGH_AT = 2.0
BUMP_LOW_AT = 3.0
STRATEGIC_OVERALL_AT = 3.0


@dataclass
class RecommendedItem:
    item: ImprovementItem
    priority: str
    display_order: int = 0
    priority_order: int = 0
    reason: str = "threshold"  # threshold | strategic

    @property
    def id(self) -> str:
        return self.item.id

    def to_dict(self) -> dict[str, Any]:
        it = self.item
        return {
            "framework_item_id": it.id, "area": it.area, "area_key": it.area_key,
            "category": it.category, "category_key": it.category_key,
            "title": it.title, "description": it.description,
            "actions": list(it.actions), "kpis": list(it.kpis),
            "priority": self.priority, "catalog_priority": it.priority,
            "display_order": self.display_order, "priority_order": self.priority_order,
            "reason": self.reason,
        }


def adjust_priority(declared: str, category_score: float) -> str:
    """Escalate ``declared`` priority for weak categories; never demote."""
    if category_score <= FORCE_HIGH_AT:
        return "high"
    if category_score <= BUMP_LOW_AT and declared == "low":
        return "medium"
    return declared


def recommend(
    category_scores: Mapping[str, float],
    overall_score: float | None,
    catalog: Iterable[ImprovementItem] = IMPROVEMENT_ITEMS,
) -> list[RecommendedItem]:
    """Build the ordered improvement plan.

    Raises:
        MissingScores: ``category_scores`` is empty.
    """
    if not category_scores:
        raise MissingScores("Category scores are required to build an improvement plan")
    catalog = list(catalog)

    selected: list[RecommendedItem] = []
    seen: set[str] = set()
    for item in catalog:
        score = category_scores.get(item.category_key)
        if score is None or score > item.score_threshold or item.id in seen:
            continue
        selected.append(RecommendedItem(item=item, priority=adjust_priority(item.priority, score)))
        seen.add(item.id)

    if overall_score is not None and overall_score <= STRATEGIC_OVERALL_AT:
        for item in catalog:
            if item.area_key == STRATEGIC_AREA and item.id not in seen:
                selected.append(RecommendedItem(item=item, priority="high", reason="strategic"))
                seen.add(item.id)

    # sorted() is stable, so catalog order survives inside each tier
    ranked = sorted(selected, key=lambda r: PRIORITY_RANK[r.priority])
    for idx, rec in enumerate(ranked):
        rec.display_order = idx
        rec.priority_order = PRIORITY_WEIGHT[rec.priority] * 100 + idx

    log.debug("Recommended %d of %d catalog items", len(ranked), len(catalog))
    return ranked
