from __future__ import annotations

import logging
from typing import Protocol

from ..recommendations.cache import InMemoryCacheBackend
from ..recommendations.config import DEFAULT_RECOMMENDER_CONFIG, RecommenderConfig
from ..recommendations.models import CatalogItem, Criteria, PopularityStat, StrategyResult

logger = logging.getLogger(__name__)


class StatsSource(Protocol):
    def get_booking_count(self, item_id: int) -> int: ...

    def get_review_stats(self, item_id: int) -> tuple[int, float]:
        """Return ``(review_count, average_rating)``."""
        ...


class PopularityStatsProvider:
    """
    Per-item booking and review aggregates, cached for ``popularity_ttl`` seconds.

    Concurrent refreshes of the same item may both hit the source; the last
    write wins, which is fine since both computed the same aggregate.
    """

    def __init__(
        self,
        source: StatsSource,
        cache: InMemoryCacheBackend | None = None,
        config: RecommenderConfig = DEFAULT_RECOMMENDER_CONFIG,
    ):
        self.source = source
        self.cache = cache if cache is not None else InMemoryCacheBackend()
        self.ttl = config.popularity_ttl

    @staticmethod
    def _key(item_id: int) -> str:
        return f"pkg_stats_{item_id}"

    def get(self, item_id: int) -> PopularityStat:
        key = self._key(item_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        booking_count = self.source.get_booking_count(item_id)
        review_count, avg_rating = self.source.get_review_stats(item_id)
        stat = PopularityStat(
            item_id=item_id,
            booking_count=booking_count,
            review_count=review_count,
            average_rating=round(avg_rating, 1) if review_count > 0 else 0.0,
        )
        self.cache.set(key, stat, self.ttl)
        logger.debug("Refreshed popularity stats for item %s", item_id)
        return stat

    def invalidate(self, item_id: int) -> None:
        self.cache.delete(self._key(item_id))


class PopularityStrategy:
    """
    Booking volume (up to +15) plus review rating (up to +10).

    The top rating band needs at least two reviews so a single 5-star
    review cannot carry an item.
    """

    name = "popularity"

    def __init__(self, provider: PopularityStatsProvider):
        self.provider = provider

    def score(self, item: CatalogItem, criteria: Criteria) -> StrategyResult:
        stat = self.provider.get(item.id)
        points = 0
        notes: list[str] = []

        bookings = stat.booking_count
        if bookings >= 10:
            points += 15
            notes.append(f"Very popular ({bookings} bookings, +15)")
        elif bookings >= 5:
            points += 10
            notes.append(f"Popular ({bookings} bookings, +10)")
        elif bookings >= 2:
            points += 5
            notes.append(f"Booked {bookings} times (+5)")

        rating = stat.average_rating
        reviews = stat.review_count
        if reviews >= 2 and rating >= 4.5:
            points += 10
            notes.append(f"Highly rated ({rating}★, +10)")
        elif reviews >= 1 and rating >= 3.5:
            points += 6
            notes.append(f"Well rated ({rating}★, +6)")
        elif reviews >= 1 and rating >= 2.5:
            points += 3
            notes.append(f"Rated {rating}★ (+3)")

        return StrategyResult(points=points, justification=", ".join(notes))
