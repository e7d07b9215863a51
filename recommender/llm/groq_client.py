from __future__ import annotations

import hashlib
import json
import logging
import math
import re
import threading

from groq import Groq

from ..errors import ExternalDependencyError
from ..recommendations.cache import InMemoryCacheBackend
from ..recommendations.models import CatalogItem, Criteria, SemanticScore
from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

MAX_SEMANTIC_SCORE = 30

SYSTEM_PROMPT = (
    "You are an event planning expert. "
    "Given an event package and a client's preferences, rate how well the "
    "package semantically matches them on a scale of 0-30.\n"
    "Consider:\n"
    "- How well the package theme/vibe matches the requested theme (0-15 points)\n"
    "- How well the inclusions and description match the specific preferences (0-15 points)\n\n"
    "Return ONLY valid JSON in this exact format:\n"
    '{"score": <number 0-30>, "reason": "<one short sentence explaining the match>"}'
)

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def _build_user_message(item: CatalogItem, criteria: Criteria) -> str:
    preferences = ", ".join(criteria.preferences) if criteria.preferences else "none"
    lines = [
        "## Event Package",
        f"- Name: {item.name}",
        f"- Category: {item.category}",
        f"- Description: {item.description}",
        f"- Price: {item.price:,.2f}",
        f"- Capacity: {item.capacity} guests",
        f"- Inclusions: {item.inclusions}",
        "",
        "## Client Preferences",
        f"- Event Type: {criteria.type or 'any event'}",
        f"- Theme/Motif: {criteria.theme or 'not specified'}",
        f"- Specific Preferences: {preferences}",
    ]
    return "\n".join(lines)


def parse_score(content: str) -> SemanticScore:
    """Parse the model's JSON reply, tolerating markdown code fences."""
    cleaned = _FENCE_RE.sub("", content).replace("```", "").strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ExternalDependencyError("semantic score is not valid JSON", {"raw": content}) from exc
    if not isinstance(parsed, dict) or parsed.get("score") is None:
        raise ExternalDependencyError("semantic score missing from response", {"raw": content})
    try:
        raw_score = float(parsed["score"])
    except (TypeError, ValueError) as exc:
        raise ExternalDependencyError("semantic score is not numeric", {"raw": content}) from exc
    if not math.isfinite(raw_score):
        raise ExternalDependencyError("semantic score is not finite", {"raw": content})
    score = max(0, min(MAX_SEMANTIC_SCORE, int(raw_score)))
    reason = str(parsed.get("reason") or "AI-analyzed match").strip()
    return SemanticScore(score=score, reason=reason)


class SemanticScorer:
    """
    Thin Groq client that rates item/criteria fit on a 0-30 scale.

    Successful ratings are cached for ``config.cache_ttl`` seconds. At most
    ``config.max_concurrent_calls`` requests are in flight at once; further
    callers wait for a slot. Every failure is raised as
    ``ExternalDependencyError``.
    """

    def __init__(
        self,
        config: LLMConfig = DEFAULT_LLM_CONFIG,
        cache: InMemoryCacheBackend | None = None,
    ):
        self.config = config
        self.cache = cache if cache is not None else InMemoryCacheBackend()
        self._slots = threading.BoundedSemaphore(max(1, config.max_concurrent_calls))

    @property
    def available(self) -> bool:
        return self.config.available

    @staticmethod
    def cache_key(item: CatalogItem, criteria: Criteria) -> str:
        subset = json.dumps(
            {
                "theme": criteria.theme or "",
                "preferences": sorted(criteria.preferences),
                "type": criteria.type or "",
            },
            sort_keys=True,
        )
        return "ai_score_" + hashlib.sha256(f"{item.id}:{subset}".encode()).hexdigest()

    def rate(self, item: CatalogItem, criteria: Criteria) -> SemanticScore:
        if not self.available:
            raise ExternalDependencyError("semantic scorer is not configured")

        key = self.cache_key(item, criteria)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Semantic score cache hit for item %s", item.id)
            return cached

        with self._slots:
            content = self._complete(_build_user_message(item, criteria))
        result = parse_score(content)
        self.cache.set(key, result, self.config.cache_ttl)
        return result

    def _complete(self, user_message: str) -> str:
        try:
            client = Groq(api_key=self.config.api_key, timeout=self.config.timeout, max_retries=0)
            response = client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_message},
                ],
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
            )
            return response.choices[0].message.content or ""
        except Exception as exc:
            raise ExternalDependencyError("Groq request failed", {"error": str(exc)}) from exc

