from __future__ import annotations

import json
import math
from typing import Any

from mealscan.errors import MalformedOutputError
from mealscan.models import MACRO_FIELDS, AnalysisResult, FoodItem, MacroProfile


def parse_payload(text: str) -> dict[str, Any]:
    if not text or not text.strip():
        raise MalformedOutputError("analysis response was empty")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedOutputError("analysis response was not valid JSON") from exc
    if not isinstance(data, dict):
        raise MalformedOutputError("analysis response must be a JSON object")
    return data


def _number(value: Any, field_name: str) -> float:
    # bool is an int subclass but never a valid quantity
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedOutputError(f"{field_name} must be a number")
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise MalformedOutputError(f"{field_name} must be a finite number")
    return number


def _non_negative(value: Any, field_name: str) -> float:
    number = _number(value, field_name)
    if number < 0:
        raise MalformedOutputError(f"{field_name} must be non-negative")
    return number


def _macros(raw: Any, field_name: str) -> MacroProfile:
    if not isinstance(raw, dict):
        raise MalformedOutputError(f"{field_name} must be an object")
    values: dict[str, float] = {}
    for name in MACRO_FIELDS:
        if name not in raw:
            raise MalformedOutputError(f"{field_name}.{name} is missing")
        values[name] = _non_negative(raw[name], f"{field_name}.{name}")
    return MacroProfile(**values)


def _item(raw: Any, index: int) -> FoodItem:
    prefix = f"items[{index}]"
    if not isinstance(raw, dict):
        raise MalformedOutputError(f"{prefix} must be an object")
    for key in ("name", "weightGrams", "macros", "confidence"):
        if key not in raw:
            raise MalformedOutputError(f"{prefix}.{key} is missing")

    name = raw["name"]
    if not isinstance(name, str) or not name.strip():
        raise MalformedOutputError(f"{prefix}.name must be a non-empty string")

    confidence = _number(raw["confidence"], f"{prefix}.confidence")
    confidence = min(max(confidence, 0.0), 1.0)

    return FoodItem(
        name=name.strip(),
        weight_grams=_non_negative(raw["weightGrams"], f"{prefix}.weightGrams"),
        macros=_macros(raw["macros"], f"{prefix}.macros"),
        confidence=confidence,
    )


def validate(raw: str | dict[str, Any], model_tier: str | None = None) -> AnalysisResult:
    """Turn a raw capability response into a checked ``AnalysisResult``.

    Raises ``MalformedOutputError`` on any missing field or wrong type.
    Confidence outside [0, 1] is clamped, not rejected.
    """
    data = parse_payload(raw) if isinstance(raw, str) else raw
    if not isinstance(data, dict):
        raise MalformedOutputError("analysis response must be a JSON object")

    for key in ("items", "total", "summary"):
        if key not in data:
            raise MalformedOutputError(f"{key} is missing")

    items = data["items"]
    if not isinstance(items, list):
        raise MalformedOutputError("items must be a list")

    summary = data["summary"]
    if not isinstance(summary, str):
        raise MalformedOutputError("summary must be a string")

    return AnalysisResult(
        items=tuple(_item(item, idx) for idx, item in enumerate(items)),
        total=_macros(data["total"], "total"),
        summary=summary.strip(),
        model_tier=model_tier,
    )
