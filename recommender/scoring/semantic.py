from __future__ import annotations

import logging

from ..errors import ExternalDependencyError
from ..llm.groq_client import SemanticScorer
from ..recommendations.models import CatalogItem, Criteria, StrategyResult
from .base import NO_MATCH, ScoringStrategy
from .popularity import PopularityStatsProvider, PopularityStrategy
from .rules import (
    BudgetStrategy,
    CapacityStrategy,
    CategoryStrategy,
    PreferenceStrategy,
    ThemeStrategy,
)

logger = logging.getLogger(__name__)


class SemanticStrategy:
    """
    LLM-rated bonus of up to +30 for free-text theme/preference fit.

    Only consulted when the criteria carry a theme or preferences. Any
    scorer failure maps to ``NO_MATCH``; this method never raises.
    """

    name = "semantic"

    def __init__(self, scorer: SemanticScorer):
        self.scorer = scorer

    def score(self, item: CatalogItem, criteria: Criteria) -> StrategyResult:
        if not self.scorer.available or not criteria.has_free_text:
            return NO_MATCH
        try:
            rating = self.scorer.rate(item, criteria)
        except ExternalDependencyError as exc:
            logger.warning(
                "Semantic scoring failed for item %s: %s %s",
                item.id, exc.message, exc.details,
            )
            return NO_MATCH
        except Exception:
            logger.warning("Semantic scoring failed for item %s", item.id, exc_info=True)
            return NO_MATCH
        if rating.score == 0:
            return NO_MATCH
        return StrategyResult(
            points=rating.score,
            justification=f"AI match: {rating.reason} (+{rating.score})",
        )


def default_strategies(
    popularity: PopularityStatsProvider,
    scorer: SemanticScorer,
) -> list[ScoringStrategy]:
    """The standard registry; list order is evaluation and justification order."""
    return [
        CategoryStrategy(),
        BudgetStrategy(),
        CapacityStrategy(),
        ThemeStrategy(),
        PreferenceStrategy(),
        PopularityStrategy(popularity),
        SemanticStrategy(scorer),
    ]
