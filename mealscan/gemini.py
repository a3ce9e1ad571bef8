from __future__ import annotations

import base64
import logging
from typing import Any, Protocol

import httpx

from mealscan.config import Settings
from mealscan.errors import ConfigurationError, InferenceFailure, MalformedOutputError
from mealscan.prompts import Task
from mealscan.tiers import ModelTier


logger = logging.getLogger(__name__)


class InferenceClient(Protocol):
    async def infer(self, tier: ModelTier, task: Task, output_schema: dict[str, Any]) -> str:
        ...

    async def transcribe(self, tier: ModelTier, task: Task) -> str:
        ...


def _extract_text_from_gemini_response(payload: dict[str, Any]) -> str:
    candidates = payload.get("candidates", [])
    if not isinstance(candidates, list) or not candidates:
        feedback = payload.get("promptFeedback", {})
        reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        if reason:
            raise MalformedOutputError(f"response blocked: {reason}")
        raise MalformedOutputError("response missing candidates")
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        raise MalformedOutputError("response candidate must be an object")
    content = candidate.get("content", {})
    if content and not isinstance(content, dict):
        raise MalformedOutputError("response candidate content must be an object")
    parts = content.get("parts", []) if isinstance(content, dict) else []
    if not isinstance(parts, list):
        raise MalformedOutputError("response content parts must be a list")
    texts: list[str] = []
    for part in parts:
        if isinstance(part, dict) and "text" in part:
            texts.append(str(part["text"]))
    return "\n".join(texts).strip()


def _failure_from_response(response: httpx.Response) -> InferenceFailure:
    message = response.reason_phrase or "request failed"
    status: str | None = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        message = str(error.get("message") or message)
        raw_status = error.get("status")
        status = str(raw_status) if raw_status else None
    return InferenceFailure(message, status_code=response.status_code, status=status)


def _build_contents(task: Task) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    if task.media is not None:
        encoded = base64.b64encode(task.media).decode("ascii")
        parts.append({"inlineData": {"mimeType": task.mime_type, "data": encoded}})
    parts.append({"text": task.instruction})
    return [{"role": "user", "parts": parts}]


class GeminiClient:
    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport

    async def _generate(self, tier: ModelTier, payload: dict[str, Any]) -> str:
        if not self.settings.api_key:
            raise ConfigurationError("API key is missing in the application configuration")

        url = f"{self.settings.api_base}/models/{tier.model}:generateContent"
        headers = {"x-goog-api-key": self.settings.api_key}
        timeout = httpx.Timeout(self.settings.timeout)
        logger.debug("POST %s", url)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, json=payload, headers=headers)
            except httpx.TransportError as exc:
                raise InferenceFailure(f"{type(exc).__name__}: {exc}") from exc
        if response.status_code >= 400:
            raise _failure_from_response(response)
        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedOutputError("response body was not valid JSON") from exc
        if not isinstance(body, dict):
            raise MalformedOutputError("response body must be a JSON object")
        return _extract_text_from_gemini_response(body)

    async def infer(self, tier: ModelTier, task: Task, output_schema: dict[str, Any]) -> str:
        payload = {
            "contents": _build_contents(task),
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": output_schema,
            },
        }
        text = await self._generate(tier, payload)
        if not text:
            raise MalformedOutputError(f"No response from {tier.display_name}")
        return text

    async def transcribe(self, tier: ModelTier, task: Task) -> str:
        if task.media is None:
            raise ValueError("transcription task requires audio bytes")
        return await self._generate(tier, {"contents": _build_contents(task)})
