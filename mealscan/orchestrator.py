from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Sequence

from mealscan.config import Settings
from mealscan.errors import AnalysisError, localize
from mealscan.gemini import InferenceClient
from mealscan.models import AnalysisResult, Err, MacroProfile, Result
from mealscan.prompts import (
    ANALYSIS_SCHEMA,
    Task,
    build_correction_task,
    build_image_task,
    build_text_task,
    build_transcription_task,
)
from mealscan.retry import RetryPolicy, Sleep, execute_with_retry
from mealscan.tiers import ACCURACY, FAST, FallbackChain, ModelTier
from mealscan.validator import validate


logger = logging.getLogger(__name__)


def default_tiers(settings: Settings) -> tuple[ModelTier, ModelTier]:
    return (
        ModelTier(name=ACCURACY, model=settings.accuracy_model, label="Gemini 3.0 Pro"),
        ModelTier(name=FAST, model=settings.fast_model, label="Gemini 2.5 Flash"),
    )


class AnalysisOrchestrator:
    """Analysis operations used by the session: image, text, correction, voice.

    Every public method returns a fresh value or raises ``AnalysisError``
    carrying a localized ``ErrorDescriptor``.
    """

    def __init__(
        self,
        client: InferenceClient,
        settings: Settings,
        *,
        tiers: Sequence[ModelTier] | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.settings = settings
        self.tiers = tuple(tiers) if tiers is not None else default_tiers(settings)
        if not self.tiers:
            raise ValueError("at least one model tier is required")
        self.policy = RetryPolicy(
            max_attempts=settings.max_attempts,
            initial_delay=settings.initial_delay,
        )
        self.chain = FallbackChain(self.policy, sleep=sleep)
        self._sleep = sleep

    @property
    def fast_tier(self) -> ModelTier:
        for tier in self.tiers:
            if tier.name == FAST:
                return tier
        return self.tiers[-1]

    def _unwrap(self, outcome: Result) -> Any:
        if isinstance(outcome, Err):
            raise AnalysisError(localize(outcome.error, self.settings.locale))
        return outcome.value

    async def _run(self, task: Task, tiers: Sequence[ModelTier]) -> AnalysisResult:
        async def call(tier: ModelTier) -> AnalysisResult:
            raw = await self.client.infer(tier, task, ANALYSIS_SCHEMA)
            result = validate(raw, model_tier=tier.name)
            return replace(result, model_label=tier.display_name)

        return self._unwrap(await self.chain.invoke(call, tiers))

    async def analyze_image(self, image_bytes: bytes, mime_type: str) -> AnalysisResult:
        if not mime_type:
            raise ValueError("mime_type is required")
        task = build_image_task(image_bytes, mime_type, self.settings.language)
        return await self._run(task, self.tiers)

    async def analyze_text(self, description: str) -> AnalysisResult:
        text = description.strip()
        if not text:
            logger.debug("Empty meal description, returning an empty analysis")
            tier = self.fast_tier
            return AnalysisResult(
                items=(),
                total=MacroProfile(),
                summary="",
                model_tier=tier.name,
                model_label=tier.display_name,
            )
        task = build_text_task(text, self.settings.language)
        result = await self._run(task, (self.fast_tier,))
        return replace(result, model_label=f"{result.model_label} (Text)")

    async def recalculate(self, previous: AnalysisResult, correction: str) -> AnalysisResult:
        text = correction.strip()
        if not text:
            raise ValueError("correction text must be non-empty")
        logger.info("Recalculating %d items with a correction", len(previous.items))
        task = build_correction_task(previous, text, self.settings.language)
        return await self._run(task, self.tiers)

    async def transcribe(self, audio_bytes: bytes, mime_type: str) -> str:
        if not mime_type:
            raise ValueError("mime_type is required")
        task = build_transcription_task(audio_bytes, mime_type, self.settings.language)
        tier = self.fast_tier

        async def call() -> str:
            return await self.client.transcribe(tier, task)

        outcome = await execute_with_retry(
            call,
            self.policy.max_attempts,
            self.policy.initial_delay,
            sleep=self._sleep,
        )
        text = self._unwrap(outcome)
        return str(text or "").strip()
