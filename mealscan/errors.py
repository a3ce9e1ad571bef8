from __future__ import annotations

from dataclasses import replace
from typing import Any

from mealscan.models import ErrorDescriptor, ErrorKind


STATUS_CODE_KINDS: dict[int, ErrorKind] = {
    429: ErrorKind.RATE_LIMITED,
    503: ErrorKind.OVERLOADED,
    403: ErrorKind.ACCESS_DENIED,
    404: ErrorKind.NOT_FOUND,
}

# Canonical status strings reported in the error body of the inference API.
STATUS_NAME_KINDS: dict[str, ErrorKind] = {
    "RESOURCE_EXHAUSTED": ErrorKind.RATE_LIMITED,
    "UNAVAILABLE": ErrorKind.OVERLOADED,
    "PERMISSION_DENIED": ErrorKind.ACCESS_DENIED,
    "NOT_FOUND": ErrorKind.NOT_FOUND,
}

# Best-effort degrade path, checked in order against the lowercased message.
MESSAGE_HINTS: tuple[tuple[str, ErrorKind], ...] = (
    ("429", ErrorKind.RATE_LIMITED),
    ("resource_exhausted", ErrorKind.RATE_LIMITED),
    ("quota", ErrorKind.RATE_LIMITED),
    ("rate limit", ErrorKind.RATE_LIMITED),
    ("503", ErrorKind.OVERLOADED),
    ("overloaded", ErrorKind.OVERLOADED),
    ("403", ErrorKind.ACCESS_DENIED),
    ("permission_denied", ErrorKind.ACCESS_DENIED),
    ("404", ErrorKind.NOT_FOUND),
    ("not found", ErrorKind.NOT_FOUND),
)

USER_MESSAGES: dict[str, dict[ErrorKind, str]] = {
    "en": {
        ErrorKind.RATE_LIMITED: "Too many requests. Please try again later.",
        ErrorKind.OVERLOADED: "The service is temporarily overloaded. Try again in a minute.",
        ErrorKind.ACCESS_DENIED: (
            "Access denied. Check that the inference API is enabled for your key."
        ),
        ErrorKind.NOT_FOUND: "The analysis model is not available right now.",
        ErrorKind.MALFORMED_OUTPUT: (
            "The analysis came back incomplete. Please try again."
        ),
        ErrorKind.UNKNOWN: "Something went wrong while processing your data. Please try again.",
    },
    "ru": {
        ErrorKind.RATE_LIMITED: "Превышено количество запросов. Пожалуйста, повторите попытку позже.",
        ErrorKind.OVERLOADED: "Сервер временно перегружен. Повторите попытку через минуту.",
        ErrorKind.ACCESS_DENIED: (
            "Ошибка доступа (403). Проверьте, включен ли API и не заблокирован ли ваш ключ."
        ),
        ErrorKind.NOT_FOUND: "Модель анализа сейчас недоступна.",
        ErrorKind.MALFORMED_OUTPUT: "Получен неполный результат анализа. Попробуйте еще раз.",
        ErrorKind.UNKNOWN: "Произошла ошибка при обработке данных. Попробуйте еще раз.",
    },
}

CONFIGURATION_MESSAGES: dict[str, str] = {
    "en": "Service configuration error. Contact the administrator.",
    "ru": "Ошибка конфигурации сервиса. Обратитесь к администратору.",
}

DEFAULT_LOCALE = "en"


class InferenceFailure(Exception):
    """Failure reported by the inference capability (or on the way to it)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        status: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.status = status

    @property
    def detail(self) -> str:
        parts: list[str] = []
        if self.status_code is not None:
            parts.append(str(self.status_code))
        if self.status:
            parts.append(self.status)
        prefix = " ".join(parts)
        if prefix:
            return f"{prefix}: {self.message}"
        return self.message


class MalformedOutputError(InferenceFailure):
    pass


class ConfigurationError(InferenceFailure):
    pass


class AnalysisError(Exception):
    def __init__(self, descriptor: ErrorDescriptor) -> None:
        super().__init__(descriptor.technical_detail or descriptor.user_message)
        self.descriptor = descriptor

    @property
    def kind(self) -> ErrorKind:
        return self.descriptor.kind


def classify(failure: BaseException) -> ErrorKind:
    if isinstance(failure, MalformedOutputError):
        return ErrorKind.MALFORMED_OUTPUT

    status_code = getattr(failure, "status_code", None)
    if isinstance(status_code, int) and status_code in STATUS_CODE_KINDS:
        return STATUS_CODE_KINDS[status_code]

    status = getattr(failure, "status", None)
    if isinstance(status, str) and status.upper() in STATUS_NAME_KINDS:
        return STATUS_NAME_KINDS[status.upper()]

    # Any structured signal we did not recognise is not second-guessed by text.
    if status_code is not None or status:
        return ErrorKind.UNKNOWN

    message = str(getattr(failure, "message", None) or failure).lower()
    for needle, kind in MESSAGE_HINTS:
        if needle in message:
            return kind
    return ErrorKind.UNKNOWN


def _catalogue(locale: str) -> str:
    return locale if locale in USER_MESSAGES else DEFAULT_LOCALE


def user_message(kind: ErrorKind, locale: str = DEFAULT_LOCALE) -> str:
    return USER_MESSAGES[_catalogue(locale)][kind]


def technical_detail(failure: BaseException) -> str:
    if isinstance(failure, InferenceFailure):
        return failure.detail
    text = str(failure)
    name = type(failure).__name__
    return f"{name}: {text}" if text else name


def describe(failure: BaseException, locale: str = DEFAULT_LOCALE) -> ErrorDescriptor:
    kind = classify(failure)
    if isinstance(failure, ConfigurationError):
        message = CONFIGURATION_MESSAGES[_catalogue(locale)]
    else:
        message = user_message(kind, locale)
    return ErrorDescriptor(
        kind=kind,
        user_message=message,
        technical_detail=technical_detail(failure),
    )


def localize(descriptor: ErrorDescriptor, locale: str) -> ErrorDescriptor:
    if locale == DEFAULT_LOCALE or _catalogue(locale) == DEFAULT_LOCALE:
        return descriptor
    if descriptor.user_message == CONFIGURATION_MESSAGES[DEFAULT_LOCALE]:
        return replace(descriptor, user_message=CONFIGURATION_MESSAGES[locale])
    return replace(descriptor, user_message=user_message(descriptor.kind, locale))


def error_envelope(descriptor: ErrorDescriptor) -> dict[str, Any]:
    return {
        "error": {
            "code": descriptor.kind.value,
            "message": descriptor.user_message,
            "details": descriptor.technical_detail,
        }
    }
