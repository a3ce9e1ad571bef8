from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union


T = TypeVar("T")

MACRO_FIELDS = ("calories", "protein", "fat", "carbs")


def _require_non_empty(value: str, field_name: str) -> None:
    if not value or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string")


def _require_non_negative(value: float, field_name: str) -> None:
    if value < 0:
        raise ValueError(f"{field_name} must be non-negative")


class ErrorKind(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    OVERLOADED = "OVERLOADED"
    ACCESS_DENIED = "ACCESS_DENIED"
    NOT_FOUND = "NOT_FOUND"
    MALFORMED_OUTPUT = "MALFORMED_OUTPUT"
    UNKNOWN = "UNKNOWN"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.RATE_LIMITED, ErrorKind.OVERLOADED)

    @property
    def tier_unavailable(self) -> bool:
        return self in (ErrorKind.ACCESS_DENIED, ErrorKind.NOT_FOUND)


@dataclass(frozen=True)
class MacroProfile:
    calories: float = 0.0
    protein: float = 0.0
    fat: float = 0.0
    carbs: float = 0.0

    def __post_init__(self) -> None:
        for name in MACRO_FIELDS:
            _require_non_negative(getattr(self, name), name)

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class FoodItem:
    name: str
    weight_grams: float
    macros: MacroProfile
    confidence: float

    def __post_init__(self) -> None:
        _require_non_empty(self.name, "name")
        _require_non_negative(self.weight_grams, "weight_grams")
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError("confidence must be between 0.0 and 1.0")

    @property
    def confidence_band(self) -> str:
        if self.confidence >= 0.8:
            return "high"
        if self.confidence >= 0.5:
            return "medium"
        return "low"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "weightGrams": self.weight_grams,
            "macros": self.macros.to_dict(),
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class AnalysisResult:
    items: tuple[FoodItem, ...] = ()
    total: MacroProfile = field(default_factory=MacroProfile)
    summary: str = ""
    model_tier: str | None = None
    model_label: str | None = None

    def __post_init__(self) -> None:
        # Accept any sequence but always store an immutable tuple.
        object.__setattr__(self, "items", tuple(self.items))

    @property
    def item_names(self) -> list[str]:
        return [item.name for item in self.items]

    def to_payload(self) -> dict[str, Any]:
        """Wire shape shared with the inference capability (no tier metadata)."""
        return {
            "items": [item.to_dict() for item in self.items],
            "total": self.total.to_dict(),
            "summary": self.summary,
        }

    def to_dict(self) -> dict[str, Any]:
        payload = self.to_payload()
        payload["modelTier"] = self.model_tier
        payload["modelLabel"] = self.model_label
        return payload


@dataclass(frozen=True)
class ErrorDescriptor:
    kind: ErrorKind
    user_message: str
    technical_detail: str = ""


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: ErrorDescriptor

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


Result = Union[Ok[T], Err]
