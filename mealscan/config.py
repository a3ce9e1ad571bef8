from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_ACCURACY_MODEL = "gemini-3-pro-preview"
DEFAULT_FAST_MODEL = "gemini-2.5-flash"

SUPPORTED_LOCALES = ("en", "ru")

_ENV_LOADED = False


def _ensure_env_loaded() -> None:
    global _ENV_LOADED
    if not _ENV_LOADED:
        load_dotenv()
        _ENV_LOADED = True


@dataclass
class Settings:
    api_key: str
    api_base: str = DEFAULT_API_BASE
    accuracy_model: str = DEFAULT_ACCURACY_MODEL
    fast_model: str = DEFAULT_FAST_MODEL
    max_attempts: int = 4
    initial_delay: float = 1.0
    timeout: float = 60.0
    language: str = "English"
    locale: str = "en"

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("MEALSCAN_MAX_ATTEMPTS must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("MEALSCAN_INITIAL_DELAY must be non-negative")
        if self.timeout <= 0:
            raise ValueError("MEALSCAN_TIMEOUT must be greater than 0")
        if self.locale not in SUPPORTED_LOCALES:
            supported = ", ".join(SUPPORTED_LOCALES)
            raise ValueError(f"Unsupported MEALSCAN_LOCALE: {self.locale}. Supported: {supported}")


def _env(name: str, default: str) -> str:
    return os.environ.get(name, "").strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc


def get_settings() -> Settings:
    _ensure_env_loaded()
    api_key = os.environ.get("LLM_API_KEY", "").strip()
    if not api_key:
        raise ValueError("LLM_API_KEY is required")
    return Settings(
        api_key=api_key,
        api_base=_env("LLM_API_BASE", DEFAULT_API_BASE).rstrip("/"),
        accuracy_model=_env("MEALSCAN_ACCURACY_MODEL", DEFAULT_ACCURACY_MODEL),
        fast_model=_env("MEALSCAN_FAST_MODEL", DEFAULT_FAST_MODEL),
        max_attempts=_env_int("MEALSCAN_MAX_ATTEMPTS", 4),
        initial_delay=_env_float("MEALSCAN_INITIAL_DELAY", 1.0),
        timeout=_env_float("MEALSCAN_TIMEOUT", 60.0),
        language=_env("MEALSCAN_LANGUAGE", "English"),
        locale=_env("MEALSCAN_LOCALE", "en").lower(),
    )
