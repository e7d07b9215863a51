from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


def _default_workers() -> int:
    return os.cpu_count() or 4


@dataclass(frozen=True)
class RecommenderConfig:
    """
    Tunables for the ranking engine and its cache tiers.
    """

    result_ttl: int = 3600  # 1 hour
    popularity_ttl: int = 3600
    key_prefix: str = "recommendations_"
    max_workers: int = field(default_factory=_default_workers)
    default_limit: int = 5
    cache_max_entries: int = 10_000
    redis_url: str = os.getenv("RECOMMENDER_REDIS_URL", "")


DEFAULT_RECOMMENDER_CONFIG = RecommenderConfig()
