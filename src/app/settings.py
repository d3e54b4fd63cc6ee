"""Configuration helpers for the review scheduler runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.scheduling import ReviewCountPolicy, SchedulerEngine


DEFAULT_MODEL = "gpt-5-mini"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_PREFERENCES_PATH = "data/preferences.json"


def _read_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _read_int(name: str, default: int, minimum: int = 1) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer.") from exc
    if value < minimum:
        raise RuntimeError(f"{name} must be at least {minimum}.")
    return value


def _read_float(name: str, default: float) -> float:
    try:
        value = float(os.getenv(name, str(default)))
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number.") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive.")
    return value


@dataclass(frozen=True)
class AppSettings:
    """Strongly typed application settings loaded from environment variables."""

    app_name: str
    app_env: str
    log_level: str
    openai_api_key: str
    openai_base_url: Optional[str]
    question_model: str
    fallback_model: Optional[str]
    code_model: Optional[str]
    llm_timeout_seconds: float
    scheduler_engine: SchedulerEngine
    review_count_policy: ReviewCountPolicy
    session_timezone: ZoneInfo
    question_cache_ttl: Optional[timedelta]
    ai_queue_max_size: int
    pregenerate_enabled: bool
    pregenerate_interval_minutes: int
    pregenerate_max_questions: int
    preferences_path: Path

    @classmethod
    def from_env(cls) -> AppSettings:
        """Construct settings directly from environment variables."""
        app_name = os.getenv("APP_NAME", "Review Scheduler")
        app_env = os.getenv("APP_ENV", "development")
        log_level = os.getenv("LOG_LEVEL", "INFO")
        openai_api_key = os.getenv("OPENAI_API_KEY")

        if not openai_api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable is required to generate questions.")

        question_model = os.getenv("QUESTION_MODEL", DEFAULT_MODEL)
        fallback_model = os.getenv("FALLBACK_MODEL") or None
        code_model = os.getenv("CODE_MODEL") or None

        raw_engine = os.getenv("SCHEDULER_ENGINE", SchedulerEngine.ADAPTIVE.value).strip().lower()
        try:
            scheduler_engine = SchedulerEngine(raw_engine)
        except ValueError as exc:
            choices = ", ".join(engine.value for engine in SchedulerEngine)
            raise RuntimeError(f"SCHEDULER_ENGINE must be one of: {choices}.") from exc

        raw_policy = os.getenv("REVIEW_COUNT_POLICY", ReviewCountPolicy.ON_SUCCESS.value).strip().lower()
        try:
            review_count_policy = ReviewCountPolicy(raw_policy)
        except ValueError as exc:
            choices = ", ".join(policy.value for policy in ReviewCountPolicy)
            raise RuntimeError(f"REVIEW_COUNT_POLICY must be one of: {choices}.") from exc

        timezone_name = os.getenv("SESSION_TIMEZONE", "UTC")
        try:
            session_timezone = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise RuntimeError(f"SESSION_TIMEZONE {timezone_name!r} is not a known timezone.") from exc

        question_cache_ttl: Optional[timedelta] = None
        raw_ttl = os.getenv("QUESTION_CACHE_TTL_MS")
        if raw_ttl:
            question_cache_ttl = timedelta(milliseconds=_read_int("QUESTION_CACHE_TTL_MS", 0))

        return cls(
            app_name=app_name,
            app_env=app_env,
            log_level=log_level,
            openai_api_key=openai_api_key,
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            question_model=question_model,
            fallback_model=fallback_model,
            code_model=code_model,
            llm_timeout_seconds=_read_float("LLM_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            scheduler_engine=scheduler_engine,
            review_count_policy=review_count_policy,
            session_timezone=session_timezone,
            question_cache_ttl=question_cache_ttl,
            ai_queue_max_size=_read_int("AI_QUEUE_MAX_SIZE", 100),
            pregenerate_enabled=_read_bool("PREGENERATE_ENABLED", True),
            pregenerate_interval_minutes=_read_int("PREGENERATE_INTERVAL_MINUTES", 60),
            pregenerate_max_questions=_read_int("PREGENERATE_MAX_QUESTIONS", 20),
            preferences_path=Path(os.getenv("PREFERENCES_PATH", DEFAULT_PREFERENCES_PATH)),
        )
