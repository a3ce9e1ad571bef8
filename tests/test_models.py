import pytest

from mealscan.models import AnalysisResult, Err, ErrorDescriptor, ErrorKind, FoodItem, MacroProfile, Ok


def _item(name: str = "Bread", confidence: float = 0.9) -> FoodItem:
    return FoodItem(
        name=name,
        weight_grams=40,
        macros=MacroProfile(calories=100, protein=3, fat=1, carbs=20),
        confidence=confidence,
    )


def test_macro_profile_non_negative() -> None:
    with pytest.raises(ValueError):
        MacroProfile(calories=100, protein=-1, fat=5, carbs=10)


def test_food_item_requires_name() -> None:
    with pytest.raises(ValueError):
        _item(name="   ")


def test_food_item_confidence_range() -> None:
    with pytest.raises(ValueError):
        _item(confidence=1.5)


def test_food_item_rejects_negative_weight() -> None:
    with pytest.raises(ValueError):
        FoodItem(name="Soup", weight_grams=-5, macros=MacroProfile(), confidence=0.5)


@pytest.mark.parametrize(
    "confidence, band", [(0.95, "high"), (0.8, "high"), (0.6, "medium"), (0.49, "low")]
)
def test_food_item_confidence_band(confidence: float, band: str) -> None:
    assert _item(confidence=confidence).confidence_band == band


def test_analysis_result_payload_uses_wire_names() -> None:
    result = AnalysisResult(
        items=[_item()],
        total=MacroProfile(calories=100, protein=3, fat=1, carbs=20),
        summary="One slice of bread",
        model_tier="fast",
        model_label="Gemini 2.5 Flash",
    )

    payload = result.to_payload()
    assert isinstance(result.items, tuple)
    assert payload["items"][0]["weightGrams"] == 40
    assert payload["total"]["calories"] == 100
    assert "modelTier" not in payload
    assert result.to_dict()["modelTier"] == "fast"
    assert result.item_names == ["Bread"]


def test_error_kind_policy_flags() -> None:
    assert ErrorKind.RATE_LIMITED.retryable
    assert ErrorKind.OVERLOADED.retryable
    assert not ErrorKind.MALFORMED_OUTPUT.retryable
    assert ErrorKind.ACCESS_DENIED.tier_unavailable
    assert ErrorKind.NOT_FOUND.tier_unavailable
    assert not ErrorKind.UNKNOWN.tier_unavailable


def test_tagged_results() -> None:
    descriptor = ErrorDescriptor(kind=ErrorKind.UNKNOWN, user_message="oops")
    assert Ok(1).ok
    assert not Err(descriptor).ok
    assert Err(descriptor).kind is ErrorKind.UNKNOWN
