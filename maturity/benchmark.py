"""Benchmark engine: compare one respondent's category scores with stored results.

Cohort selection
----------------
An industry filter narrows the population only when the filtered slice holds at
least ``min_cohort_support`` distinct results. Otherwise the filter is dropped
and the full population is used, so no benchmark is ever computed on a
statistically meaningless slice.

Percentiles
-----------
``percentile`` is the share of cohort samples *strictly below* the respondent,
in whole percent (round half up). Higher is better, and it never decreases when
the respondent's score increases. ``top_percent = 100 - percentile`` is the same
standing expressed as a rank from the top ("top 20%").
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from maturity.catalog import CATEGORY_KEYS, category_name, round_half_up
from maturity.config import Settings
from maturity.schemas import BenchmarkCategory, BenchmarkReport

log = logging.getLogger(__name__)

ALL_LABEL = "All"
NO_DATA_MESSAGE = "No comparison data is available yet."


@dataclass(frozen=True)
class PopulationRow:
    """One stored category score of one historical survey result."""
    result_id: int
    category: str
    score: float
    industry: str | None = None
    company_size: str | None = None


def _distinct_results(rows: Iterable[PopulationRow]) -> int:
    return len({r.result_id for r in rows})


def select_cohort(
    population: list[PopulationRow],
    industry: str | None,
    min_support: int,
) -> tuple[list[PopulationRow], bool]:
    """Return ``(rows, fell_back)`` for the requested industry cohort."""
    if not industry:
        return population, False
    filtered = [r for r in population if r.industry == industry]
    support = _distinct_results(filtered)
    if support < min_support:
        log.info(
            "Industry %r has %d results (< %d); benchmarking against full population",
            industry, support, min_support,
        )
        return population, True
    return filtered, False


def percentile_below(samples: list[float], user_score: float) -> int:
    """Share of samples strictly below ``user_score``, in whole percent."""
    below = sum(1 for s in samples if s < user_score)
    return int(round_half_up(below / len(samples) * 100))


def _ordered_keys(keys: Iterable[str]) -> list[str]:
    keys = set(keys)
    known = [k for k in CATEGORY_KEYS if k in keys]
    return known + sorted(keys - set(known))


def compute_benchmark(
    user_scores: Mapping[str, float],
    population: Iterable[PopulationRow],
    settings: Settings,
    industry: str | None = None,
    company_size: str | None = None,
) -> BenchmarkReport:
    """Benchmark ``user_scores`` against the stored population.

    Args:
        user_scores: ``{category_key: score}`` for the respondent (may be empty).
        population: Every stored category score, one row per result per category.
        settings: Supplies ``min_cohort_support`` and ``sufficiency_size``.
        industry: Optional cohort filter.
        company_size: Reported alongside the result; not used for filtering.
    """
    population = list(population)
    labels = {"industry": industry or ALL_LABEL, "company_size": company_size or ALL_LABEL}

    if not population:
        return BenchmarkReport(
            categories=[], total_sample_count=0, is_sufficient=False,
            message=NO_DATA_MESSAGE, **labels,
        )

    rows, fell_back = select_cohort(population, industry, settings.min_cohort_support)

    samples: dict[str, list[float]] = {}
    for r in rows:
        samples.setdefault(r.category, []).append(float(r.score))

    categories: list[BenchmarkCategory] = []
    for key in _ordered_keys(set(samples) | set(user_scores)):
        cohort = samples.get(key, [])
        user = user_scores.get(key)
        entry = BenchmarkCategory(
            category_key=key,
            category_name=category_name(key),
            user_score=user,
            sample_count=len(cohort),
        )
        if cohort:
            avg = sum(cohort) / len(cohort)
            entry.avg_score = round_half_up(avg, 2)
            if user is not None:
                pct = percentile_below(cohort, user)
                entry.percentile = pct
                entry.top_percent = 100 - pct
                entry.gap = round_half_up(user - avg, 2)
        categories.append(entry)

    total = _distinct_results(rows)
    sufficient = total >= settings.sufficiency_size
    message = None
    if not sufficient:
        message = (
            f"Comparing against {total} companies. Results become more reliable "
            f"once {settings.sufficiency_size} or more are available."
        )

    return BenchmarkReport(
        categories=categories,
        total_sample_count=total,
        cohort_fallback=fell_back,
        is_sufficient=sufficient,
        message=message,
        **labels,
    )
