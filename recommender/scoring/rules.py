"""Deterministic scoring rules driven only by the item and the criteria."""
from __future__ import annotations

from ..recommendations.models import CatalogItem, Criteria, StrategyResult
from .base import NO_MATCH

# (upper bound on price / budget, points, label)
BUDGET_BANDS: list[tuple[float, int, str]] = [
    (1.0, 40, "Within budget"),
    (1.15, 20, "Slightly over budget"),
    (1.25, 5, "Moderately over budget"),
]

# (upper bound on capacity / guests, points, label)
CAPACITY_BANDS: list[tuple[float, int, str]] = [
    (1.2, 25, "Perfect capacity fit"),
    (1.5, 15, "Good capacity fit"),
]
CAPACITY_FALLBACK_POINTS = 5

THEME_BASE_POINTS = 15
THEME_STEP_POINTS = 5
THEME_MAX_POINTS = 25

PREFERENCE_POINTS = 5


def _mentions(item: CatalogItem, needle: str) -> bool:
    name, description = item.searchable_text
    return needle in name or needle in description


class CategoryStrategy:
    name = "category"
    points = 40

    def score(self, item: CatalogItem, criteria: Criteria) -> StrategyResult:
        if criteria.type and item.category == criteria.type:
            return StrategyResult(points=self.points, justification=f"Type match (+{self.points})")
        return NO_MATCH


class BudgetStrategy:
    name = "budget"

    def score(self, item: CatalogItem, criteria: Criteria) -> StrategyResult:
        if not criteria.budget or criteria.budget <= 0:
            return NO_MATCH
        ratio = item.price / criteria.budget
        for upper, points, label in BUDGET_BANDS:
            if ratio <= upper:
                return StrategyResult(points=points, justification=f"{label} (+{points})")
        return NO_MATCH


class CapacityStrategy:
    """Rewards venues sized close to the guest count; undersized items get nothing."""

    name = "capacity"

    def score(self, item: CatalogItem, criteria: Criteria) -> StrategyResult:
        guests = criteria.guests
        if not guests or guests <= 0 or item.capacity < guests:
            return NO_MATCH
        for multiple, points, label in CAPACITY_BANDS:
            if item.capacity <= guests * multiple:
                return StrategyResult(points=points, justification=f"{label} (+{points})")
        return StrategyResult(
            points=CAPACITY_FALLBACK_POINTS,
            justification=f"Can accommodate {guests} guests (+{CAPACITY_FALLBACK_POINTS})",
        )


class ThemeStrategy:
    name = "theme"

    def score(self, item: CatalogItem, criteria: Criteria) -> StrategyResult:
        if not criteria.theme:
            return NO_MATCH
        themes = [t.strip().lower() for t in criteria.theme.split(",")]
        matched = [t for t in themes if t and _mentions(item, t)]
        if not matched:
            return NO_MATCH
        points = min(THEME_BASE_POINTS + (len(matched) - 1) * THEME_STEP_POINTS, THEME_MAX_POINTS)
        return StrategyResult(
            points=points,
            justification=f"Theme match: {', '.join(matched)} (+{points})",
        )


class PreferenceStrategy:
    name = "preference"

    def score(self, item: CatalogItem, criteria: Criteria) -> StrategyResult:
        if not criteria.preferences:
            return NO_MATCH
        matched = sum(1 for pref in criteria.preferences if _mentions(item, pref.lower()))
        if matched == 0:
            return NO_MATCH
        points = matched * PREFERENCE_POINTS
        return StrategyResult(
            points=points,
            justification=f"{matched} preference match(es) (+{points})",
        )
