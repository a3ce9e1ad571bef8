from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Union

from mealscan.errors import AnalysisError
from mealscan.models import AnalysisResult, ErrorDescriptor
from mealscan.orchestrator import AnalysisOrchestrator


logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    IDLE = "IDLE"
    ANALYZING_IMAGE = "ANALYZING_IMAGE"
    RESULT_VIEW = "RESULT_VIEW"
    PROCESSING_CORRECTION = "PROCESSING_CORRECTION"
    ERROR = "ERROR"


BUSY_STATES = frozenset({LifecycleState.ANALYZING_IMAGE, LifecycleState.PROCESSING_CORRECTION})


@dataclass(frozen=True)
class SessionState:
    lifecycle: LifecycleState = LifecycleState.IDLE
    current_result: AnalysisResult | None = None
    pending_correction_text: str = ""
    last_error: ErrorDescriptor | None = None

    @property
    def busy(self) -> bool:
        return self.lifecycle in BUSY_STATES


class SessionBusyError(RuntimeError):
    pass


class InvalidTransitionError(RuntimeError):
    pass


@dataclass(frozen=True)
class ImageSubmitted:
    pass


@dataclass(frozen=True)
class AnalysisSucceeded:
    result: AnalysisResult


@dataclass(frozen=True)
class AnalysisFailed:
    error: ErrorDescriptor


@dataclass(frozen=True)
class CorrectionTextChanged:
    text: str


@dataclass(frozen=True)
class CorrectionSubmitted:
    pass


@dataclass(frozen=True)
class CorrectionSucceeded:
    result: AnalysisResult


@dataclass(frozen=True)
class CorrectionFailed:
    error: ErrorDescriptor


@dataclass(frozen=True)
class VoiceSubmitted:
    pass


@dataclass(frozen=True)
class TranscriptionSucceeded:
    text: str


@dataclass(frozen=True)
class TranscriptionFailed:
    error: ErrorDescriptor


@dataclass(frozen=True)
class ResetRequested:
    pass


Event = Union[
    ImageSubmitted,
    AnalysisSucceeded,
    AnalysisFailed,
    CorrectionTextChanged,
    CorrectionSubmitted,
    CorrectionSucceeded,
    CorrectionFailed,
    VoiceSubmitted,
    TranscriptionSucceeded,
    TranscriptionFailed,
    ResetRequested,
]


def _invalid(state: SessionState, event: Event) -> InvalidTransitionError:
    return InvalidTransitionError(
        f"{type(event).__name__} is not allowed in {state.lifecycle.value}"
    )


def transition(state: SessionState, event: Event) -> SessionState:
    """Return the state that follows ``event``; never mutates ``state``.

    Intents arriving while an operation is in flight raise
    ``SessionBusyError``; events that make no sense for the current
    lifecycle raise ``InvalidTransitionError``.
    """
    lifecycle = state.lifecycle

    if isinstance(event, ResetRequested):
        return SessionState()

    if isinstance(event, (ImageSubmitted, CorrectionSubmitted, VoiceSubmitted, CorrectionTextChanged)):
        if state.busy:
            raise SessionBusyError(f"an operation is already running ({lifecycle.value})")

    if isinstance(event, ImageSubmitted):
        if lifecycle is not LifecycleState.IDLE:
            raise _invalid(state, event)
        return replace(state, lifecycle=LifecycleState.ANALYZING_IMAGE, last_error=None)

    if isinstance(event, AnalysisSucceeded):
        if lifecycle is not LifecycleState.ANALYZING_IMAGE:
            raise _invalid(state, event)
        return replace(state, lifecycle=LifecycleState.RESULT_VIEW, current_result=event.result)

    if isinstance(event, AnalysisFailed):
        if lifecycle is not LifecycleState.ANALYZING_IMAGE:
            raise _invalid(state, event)
        return replace(state, lifecycle=LifecycleState.ERROR, last_error=event.error)

    if isinstance(event, CorrectionTextChanged):
        if lifecycle is not LifecycleState.RESULT_VIEW:
            raise _invalid(state, event)
        return replace(state, pending_correction_text=event.text)

    if isinstance(event, (CorrectionSubmitted, VoiceSubmitted)):
        if lifecycle is not LifecycleState.RESULT_VIEW or state.current_result is None:
            raise _invalid(state, event)
        return replace(state, lifecycle=LifecycleState.PROCESSING_CORRECTION, last_error=None)

    if lifecycle is not LifecycleState.PROCESSING_CORRECTION:
        raise _invalid(state, event)

    if isinstance(event, CorrectionSucceeded):
        return replace(
            state,
            lifecycle=LifecycleState.RESULT_VIEW,
            current_result=event.result,
            pending_correction_text="",
        )
    if isinstance(event, TranscriptionSucceeded):
        return replace(state, lifecycle=LifecycleState.RESULT_VIEW, pending_correction_text=event.text)
    if isinstance(event, (CorrectionFailed, TranscriptionFailed)):
        # The previous result stays on screen; only the banner changes.
        return replace(state, lifecycle=LifecycleState.RESULT_VIEW, last_error=event.error)

    raise _invalid(state, event)


class SessionStateMachine:
    """Single owner of the session state for one user.

    A reset while a call is in flight bumps the generation; the late
    outcome of that call is then dropped instead of applied.
    """

    def __init__(self, orchestrator: AnalysisOrchestrator) -> None:
        self.orchestrator = orchestrator
        self._state = SessionState()
        self._generation = 0

    @property
    def state(self) -> SessionState:
        """Current state; ``SessionState`` is frozen, so callers may keep it."""
        return self._state

    def _apply(self, event: Event) -> SessionState:
        previous = self._state.lifecycle
        self._state = transition(self._state, event)
        if self._state.lifecycle is not previous:
            logger.debug("%s -> %s on %s", previous.value, self._state.lifecycle.value, type(event).__name__)
        return self._state

    def _settle(self, generation: int, event: Event) -> SessionState:
        if generation != self._generation:
            logger.info("Discarding %s from a session that was reset", type(event).__name__)
            return self._state
        return self._apply(event)

    async def submit_image(self, image_bytes: bytes, mime_type: str) -> SessionState:
        if not mime_type:
            raise ValueError("mime_type is required")
        self._apply(ImageSubmitted())
        generation = self._generation
        try:
            result = await self.orchestrator.analyze_image(image_bytes, mime_type)
        except AnalysisError as exc:
            return self._settle(generation, AnalysisFailed(exc.descriptor))
        return self._settle(generation, AnalysisSucceeded(result))

    def set_correction_text(self, text: str) -> SessionState:
        return self._apply(CorrectionTextChanged(text))

    async def submit_correction(self, text: str | None = None) -> SessionState:
        if text is not None:
            self.set_correction_text(text)
        correction = self._state.pending_correction_text.strip()
        if not correction:
            return self._state
        previous = self._state.current_result
        self._apply(CorrectionSubmitted())
        generation = self._generation
        try:
            result = await self.orchestrator.recalculate(previous, correction)
        except AnalysisError as exc:
            return self._settle(generation, CorrectionFailed(exc.descriptor))
        return self._settle(generation, CorrectionSucceeded(result))

    async def submit_voice_correction(self, audio_bytes: bytes, mime_type: str) -> SessionState:
        if not mime_type:
            raise ValueError("mime_type is required")
        self._apply(VoiceSubmitted())
        generation = self._generation
        try:
            text = await self.orchestrator.transcribe(audio_bytes, mime_type)
        except AnalysisError as exc:
            return self._settle(generation, TranscriptionFailed(exc.descriptor))
        return self._settle(generation, TranscriptionSucceeded(text))

    def reset(self) -> SessionState:
        if self._state.busy:
            logger.info("Reset while %s is in flight", self._state.lifecycle.value)
        self._generation += 1
        return self._apply(ResetRequested())
