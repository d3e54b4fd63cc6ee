"""Bootstrap logic for running the review scheduler."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from src.app.preferences import PreferencesStore
from src.app.settings import AppSettings
from src.db import get_session_factory, run_migrations_if_needed
from src.review import QuestionPreGenerator, ReviewWorkflow
from src.services import AIJobQueue, QuestionService, build_openai_client
from src.services.ai_queue import build_question_executor, job_timeouts_for


LOGGER = logging.getLogger(__name__)


def _configure_logging(log_level: str) -> None:
    """Set up project-wide logging configuration."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        level=log_level,
    )


def build_workflow(settings: AppSettings, queue: AIJobQueue) -> ReviewWorkflow:
    """Wire the orchestrator to the database and the configured engine."""
    preferences = PreferencesStore(settings.preferences_path)
    preferences.load()
    return ReviewWorkflow(
        get_session_factory(),
        queue,
        engine=settings.scheduler_engine,
        policy=settings.review_count_policy,
        preferences=preferences,
        cache_ttl=settings.question_cache_ttl,
        session_timezone=settings.session_timezone,
    )


def build_queue(settings: AppSettings) -> AIJobQueue:
    openai_client = build_openai_client(
        settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.llm_timeout_seconds,
    )
    service = QuestionService(
        openai_client,
        settings.question_model,
        fallback_model=settings.fallback_model,
        timeout=settings.llm_timeout_seconds,
        code_model=settings.code_model,
    )
    return AIJobQueue(
        build_question_executor(service),
        max_size=settings.ai_queue_max_size,
        timeouts=job_timeouts_for(settings.llm_timeout_seconds),
    )


async def serve(settings: AppSettings) -> None:
    """Run the job queue and, when enabled, the pre-generation loop until cancelled."""
    queue = build_queue(settings)
    workflow = build_workflow(settings, queue)
    queue.start()

    try:
        if settings.pregenerate_enabled:
            pregenerator = QuestionPreGenerator(workflow, max_questions=settings.pregenerate_max_questions)
            await pregenerator.run_forever(timedelta(minutes=settings.pregenerate_interval_minutes))
        else:
            LOGGER.info("Question pre-generation is disabled; waiting for cancellation.")
            await asyncio.Event().wait()
    finally:
        await queue.stop()


def run_app(settings: AppSettings) -> None:
    """Start the scheduler runtime using the provided settings."""
    _configure_logging(settings.log_level)
    print(f"{settings.app_name} is running in {settings.app_env} mode.")

    try:
        run_migrations_if_needed()
    except Exception:
        LOGGER.exception("Database migrations failed. Aborting startup.")
        raise

    LOGGER.info(
        "Starting %s in %s mode with the %s engine.",
        settings.app_name,
        settings.app_env,
        settings.scheduler_engine.value,
    )
    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        LOGGER.info("Shutting down %s.", settings.app_name)
