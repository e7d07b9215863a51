from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..recommendations.models import CatalogItem, Criteria, StrategyResult

NO_MATCH = StrategyResult(points=0, justification="")


@runtime_checkable
class ScoringStrategy(Protocol):
    """
    One independent scoring rule.

    Implementations must not mutate shared state visible to other
    strategies, and must return ``NO_MATCH`` when the criterion they
    look at is absent.
    """

    name: str

    def score(self, item: CatalogItem, criteria: Criteria) -> StrategyResult:
        ...
