from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from mealscan.models import AnalysisResult


def _macro_schema() -> dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {
            "calories": {"type": "NUMBER", "description": "Total calories (kcal)"},
            "protein": {"type": "NUMBER", "description": "Protein in grams"},
            "fat": {"type": "NUMBER", "description": "Fat in grams"},
            "carbs": {"type": "NUMBER", "description": "Carbohydrates in grams"},
        },
        "required": ["calories", "protein", "fat", "carbs"],
    }


FOOD_ITEM_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "name": {"type": "STRING", "description": "Name of the food item"},
        "weightGrams": {"type": "NUMBER", "description": "Estimated weight in grams"},
        "macros": _macro_schema(),
        "confidence": {
            "type": "NUMBER",
            "description": "Confidence between 0.0 and 1.0 that the item is identified correctly",
        },
    },
    "required": ["name", "weightGrams", "macros", "confidence"],
}

ANALYSIS_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "items": {
            "type": "ARRAY",
            "items": FOOD_ITEM_SCHEMA,
            "description": "List of identified food items",
        },
        "total": _macro_schema(),
        "summary": {
            "type": "STRING",
            "description": "A brief summary of what was found and the total nutritional value",
        },
    },
    "required": ["items", "total", "summary"],
}


@dataclass(frozen=True)
class Task:
    instruction: str
    media: bytes | None = None
    mime_type: str | None = None

    def __post_init__(self) -> None:
        if self.media is not None and not self.mime_type:
            raise ValueError("mime_type is required for binary payloads")

    @property
    def has_media(self) -> bool:
        return self.media is not None


def build_image_task(image_bytes: bytes, mime_type: str, language: str = "English") -> Task:
    instruction = (
        "Analyze this photo of food. If you see packaging or labels "
        "(for example 'Zero Sugar', 'Diet', '0 kcal'), take them into account.\n"
        "Identify every dish or ingredient, estimate its weight in grams and "
        "calculate calories, protein, fat and carbohydrates.\n"
        "Give a confidence from 0.0 to 1.0 for each item. Be as precise as possible.\n"
        f"Return JSON only. Use {language} for item names and the summary."
    )
    return Task(instruction=instruction, media=image_bytes, mime_type=mime_type)


def build_text_task(description: str, language: str = "English") -> Task:
    instruction = (
        f'Analyze this text: "{description}".\n'
        "The user describes what they ate. List the dishes or products, their "
        "weight (estimate an average portion if none is given) and calculate "
        "calories, protein, fat and carbohydrates.\n"
        "Return JSON using the same structure as for photo analysis.\n"
        f"Use {language} for item names and the summary."
    )
    return Task(instruction=instruction)


def build_correction_task(
    previous: AnalysisResult,
    correction: str,
    language: str = "English",
) -> Task:
    serialized = json.dumps(previous.to_payload(), ensure_ascii=False)
    instruction = (
        "Original food analysis (JSON):\n"
        f"{serialized}\n\n"
        "Correction from the user:\n"
        f'"{correction}"\n\n'
        "Task:\n"
        "1. Work out what the user wants to change: the weight or name of an "
        "existing item, removing an item, or adding an item. Resolve references "
        "such as 'the bread' against the item list above.\n"
        "2. Recalculate the macros of the affected items and the total.\n"
        "3. Return the full updated JSON object in the same format, including "
        "confidence (estimate it for new items, keep or adjust it for existing ones).\n"
        "4. In 'summary' describe what was changed.\n"
        f"Use {language} for item names and the summary."
    )
    return Task(instruction=instruction)


def build_transcription_task(audio_bytes: bytes, mime_type: str, language: str = "English") -> Task:
    instruction = (
        "Transcribe this audio strictly verbatim. The audio contains corrections "
        f"for a food analysis, spoken in {language}."
    )
    return Task(instruction=instruction, media=audio_bytes, mime_type=mime_type)
