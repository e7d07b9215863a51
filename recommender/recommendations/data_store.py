"""pandas adapters that feed catalog items and booking/review aggregates to the engine."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

import pandas as pd

from .models import CatalogItem

CATALOG_COLUMNS = ["id", "name", "category", "price", "capacity", "description", "inclusions"]


class CatalogSource(Protocol):
    def list_candidates(self, filter_hints: dict[str, Any]) -> list[CatalogItem]: ...


class DataFrameCatalog:
    """
    Catalog backed by a DataFrame with ``CATALOG_COLUMNS``.

    Filter hints are advisory; every package is a candidate because no
    strategy disqualifies an item.
    """

    def __init__(self, df: pd.DataFrame):
        missing = [c for c in CATALOG_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"catalog is missing columns: {missing}")
        self._df = df

    @classmethod
    def from_csv(cls, path: Path | str) -> "DataFrameCatalog":
        return cls(pd.read_csv(Path(path)))

    def list_candidates(self, filter_hints: dict[str, Any] | None = None) -> list[CatalogItem]:
        df = self._df
        df = df.assign(
            name=df["name"].fillna(""),
            category=df["category"].fillna(""),
            description=df["description"].fillna(""),
            inclusions=df["inclusions"].fillna(""),
            price=df["price"].fillna(0.0),
        )
        return [
            CatalogItem(
                id=int(row.id),
                name=str(row.name),
                category=str(row.category),
                price=float(row.price),
                capacity=int(row.capacity),
                description=str(row.description),
                inclusions=str(row.inclusions),
            )
            for row in df[CATALOG_COLUMNS].itertuples(index=False)
        ]


class DataFrameStatsSource:
    """
    Booking and review aggregates computed from raw rows.

    ``bookings`` needs an ``item_id`` column; ``reviews`` needs ``item_id``
    and ``rating``.
    """

    def __init__(self, bookings: pd.DataFrame, reviews: pd.DataFrame):
        self._bookings = bookings
        self._reviews = reviews

    def get_booking_count(self, item_id: int) -> int:
        return int((self._bookings["item_id"] == item_id).sum())

    def get_review_stats(self, item_id: int) -> tuple[int, float]:
        ratings = self._reviews.loc[self._reviews["item_id"] == item_id, "rating"].dropna()
        if ratings.empty:
            return 0, 0.0
        return int(ratings.size), round(float(ratings.mean()), 1)
