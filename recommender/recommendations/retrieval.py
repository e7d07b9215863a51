from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Iterable, Mapping, Sequence, Union

from ..errors import CandidateSourceError, RankingCancelledError
from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import SemanticScorer
from ..scoring.base import NO_MATCH, ScoringStrategy
from ..scoring.popularity import PopularityStatsProvider, StatsSource
from ..scoring.semantic import default_strategies
from .cache import InMemoryCacheBackend, ResultCache, build_result_cache
from .config import DEFAULT_RECOMMENDER_CONFIG, RecommenderConfig
from .data_store import CatalogSource
from .models import CatalogItem, Criteria, RankedEntry, StrategyResult

logger = logging.getLogger(__name__)

_CANCEL_POLL_SECONDS = 0.05

CriteriaLike = Union[Criteria, Mapping[str, Any]]


def _as_criteria(criteria: CriteriaLike) -> Criteria:
    if isinstance(criteria, Criteria):
        return criteria
    return Criteria.model_validate(dict(criteria))


def format_results(entries: Sequence[RankedEntry], limit: int | None = None) -> list[dict[str, Any]]:
    """Public best-first projection of a ranking, truncated to *limit*."""
    selected = entries if limit is None else entries[:max(0, limit)]
    return [entry.to_public() for entry in selected]


class RankingOrchestrator:
    """
    Scores every candidate with every registered strategy and sorts best-first.

    Candidates are evaluated on a bounded thread pool. A failing strategy
    contributes zero for that item only. Items with equal totals keep
    their candidate order.
    """

    def __init__(
        self,
        strategies: Iterable[ScoringStrategy],
        cache: ResultCache | None = None,
        catalog: CatalogSource | None = None,
        config: RecommenderConfig = DEFAULT_RECOMMENDER_CONFIG,
    ):
        self.strategies = list(strategies)
        self.cache = cache if cache is not None else ResultCache(config=config)
        self.catalog = catalog
        self.config = config

    # ── Public API ───────────────────────────────────────────────────────

    def rank(
        self,
        criteria: CriteriaLike,
        candidates: Iterable[CatalogItem],
        cancel: threading.Event | None = None,
    ) -> list[RankedEntry]:
        items = list(candidates)
        return self._rank(_as_criteria(criteria), lambda _: items, cancel)

    def recommend(
        self,
        criteria: CriteriaLike,
        limit: int | None = None,
        cancel: threading.Event | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch candidates from the catalog, rank them and return the top *limit*."""
        ranked = self._rank(_as_criteria(criteria), self._fetch_candidates, cancel)
        return format_results(ranked, limit if limit is not None else self.config.default_limit)

    def invalidate(self, criteria: CriteriaLike) -> bool:
        return self.cache.forget(criteria)

    def stats(self) -> dict[str, Any]:
        return self.cache.stats()

    # ── Internals ────────────────────────────────────────────────────────

    def _rank(
        self,
        criteria: Criteria,
        load_candidates: Callable[[Criteria], list[CatalogItem]],
        cancel: threading.Event | None,
    ) -> list[RankedEntry]:
        start_time = time.time()

        cached = self.cache.get(criteria)
        if cached is not None:
            return cached

        candidates = load_candidates(criteria)
        ranked = self._evaluate(criteria, candidates, cancel)
        self.cache.put(criteria, ranked)

        elapsed_ms = round((time.time() - start_time) * 1000, 1)
        logger.info(
            "Ranked %d candidates with %d strategies in %sms",
            len(candidates), len(self.strategies), elapsed_ms,
        )
        return ranked

    def _fetch_candidates(self, criteria: Criteria) -> list[CatalogItem]:
        if self.catalog is None:
            raise CandidateSourceError("no catalog source configured")
        try:
            return list(self.catalog.list_candidates(criteria.model_dump(exclude_none=True)))
        except CandidateSourceError:
            raise
        except Exception as exc:
            raise CandidateSourceError("failed to load candidates", {"error": str(exc)}) from exc

    def _evaluate(
        self,
        criteria: Criteria,
        candidates: list[CatalogItem],
        cancel: threading.Event | None,
    ) -> list[RankedEntry]:
        if not candidates:
            return []
        if cancel is not None and cancel.is_set():
            raise RankingCancelledError("ranking cancelled before evaluation")

        workers = max(1, min(self.config.max_workers, len(candidates)))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ranking")
        try:
            futures = [executor.submit(self._score_item, item, criteria) for item in candidates]
            entries = [self._wait(future, cancel) for future in futures]
        finally:
            # Pending work is dropped; in-flight calls finish in the background
            executor.shutdown(wait=False, cancel_futures=True)

        # sorted() is stable, so ties keep candidate order
        return sorted(entries, key=lambda e: e.total_score, reverse=True)

    @staticmethod
    def _wait(future: Future, cancel: threading.Event | None) -> RankedEntry:
        if cancel is None:
            return future.result()
        while True:
            if cancel.is_set():
                raise RankingCancelledError("ranking cancelled by caller")
            try:
                return future.result(timeout=_CANCEL_POLL_SECONDS)
            except FuturesTimeoutError:
                continue

    def _score_item(self, item: CatalogItem, criteria: Criteria) -> RankedEntry:
        total = 0
        justifications: list[str] = []
        for strategy in self.strategies:
            result = self._run_strategy(strategy, item, criteria)
            total += result.points
            if result.justification:
                justifications.append(result.justification)
        return RankedEntry(item=item, total_score=total, justifications=tuple(justifications))

    @staticmethod
    def _run_strategy(
        strategy: ScoringStrategy,
        item: CatalogItem,
        criteria: Criteria,
    ) -> StrategyResult:
        try:
            return strategy.score(item, criteria)
        except Exception:
            logger.warning(
                "Strategy %s failed for item %s, scoring it as zero",
                getattr(strategy, "name", type(strategy).__name__), item.id,
                exc_info=True,
            )
            return NO_MATCH


def build_orchestrator(
    catalog: CatalogSource,
    stats_source: StatsSource,
    config: RecommenderConfig = DEFAULT_RECOMMENDER_CONFIG,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> RankingOrchestrator:
    """Wire the default strategy registry with its cache tiers."""
    popularity = PopularityStatsProvider(
        stats_source, InMemoryCacheBackend(max_entries=config.cache_max_entries), config
    )
    scorer = SemanticScorer(llm_config, InMemoryCacheBackend(max_entries=config.cache_max_entries))
    return RankingOrchestrator(
        default_strategies(popularity, scorer),
        cache=build_result_cache(config),
        catalog=catalog,
        config=config,
    )
