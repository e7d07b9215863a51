from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {value!r}") from exc
    if not number.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return number


class Criteria(BaseModel):
    """
    A client's filter/preference profile.

    Inputs are normalized on construction so that equal meanings produce
    equal models: strings are trimmed (blank becomes None), numbers given as
    int, float or numeric string collapse to one type, and ``preferences``
    is trimmed and de-duplicated.
    """

    model_config = ConfigDict(frozen=True)

    type: str | None = None
    budget: float | None = Field(default=None, ge=0.0)
    guests: int | None = Field(default=None, ge=1)
    theme: str | None = None
    preferences: list[str] = Field(default_factory=list)

    @field_validator("type", "theme", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("budget", mode="before")
    @classmethod
    def _coerce_budget(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return float(_to_decimal(value))

    @field_validator("guests", mode="before")
    @classmethod
    def _coerce_guests(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        number = _to_decimal(value)
        if number != number.to_integral_value():
            raise ValueError(f"guests must be a whole number: {value!r}")
        return int(number)

    @field_validator("preferences", mode="before")
    @classmethod
    def _clean_preferences(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        cleaned: list[str] = []
        for pref in value:
            pref = str(pref).strip()
            if pref and pref not in cleaned:
                cleaned.append(pref)
        return cleaned

    @property
    def has_free_text(self) -> bool:
        return bool(self.theme) or bool(self.preferences)


class CatalogItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    category: str = ""
    price: float = Field(default=0.0, ge=0.0)
    capacity: int = Field(default=1, ge=1)
    description: str = ""
    inclusions: str = ""

    @property
    def searchable_text(self) -> tuple[str, str]:
        """Lower-cased name and description used by keyword strategies."""
        return self.name.lower(), self.description.lower()


class StrategyResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    points: int = Field(default=0, ge=0)
    justification: str = ""


class RankedEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: CatalogItem
    total_score: int
    justifications: tuple[str, ...] = ()

    def to_public(self) -> dict[str, Any]:
        return {
            "item_id": self.item.id,
            "name": self.item.name,
            "price": self.item.price,
            "total_score": self.total_score,
            "justifications": list(self.justifications),
        }


class PopularityStat(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: int
    booking_count: int = Field(default=0, ge=0)
    review_count: int = Field(default=0, ge=0)
    average_rating: float = Field(default=0.0, ge=0.0, le=5.0)


class SemanticScore(BaseModel):
    """A clamped rating returned by the semantic scorer."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=30)
    reason: str = ""
