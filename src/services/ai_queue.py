"""Bounded priority queue that serialises LLM work through a single consumer."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from .question_service import QuestionService


LOGGER = logging.getLogger(__name__)


class JobType(str, Enum):
    GENERATE_QUESTION = "generate-question"
    EVALUATE_ANSWER = "evaluate-answer"
    GENERATE_HINT = "generate-hint"
    PRE_GENERATE = "pre-generate"


class JobPriority(IntEnum):
    """Lower values run first."""

    HIGH = 1
    NORMAL = 5
    LOW = 10


DEFAULT_JOB_TIMEOUTS: Mapping[JobType, float] = {
    JobType.GENERATE_QUESTION: 30.0,
    JobType.EVALUATE_ANSWER: 20.0,
    JobType.GENERATE_HINT: 15.0,
    JobType.PRE_GENERATE: 60.0,
}
JOB_TIMEOUT_MARGIN_SECONDS = 5.0


def job_timeouts_for(llm_timeout_seconds: float, margin: float = JOB_TIMEOUT_MARGIN_SECONDS) -> Dict[JobType, float]:
    """Job timeouts that outlast a primary call plus one fallback-model retry.

    The service has to give up first so its degraded answer reaches the caller
    instead of a queue timeout.
    """
    worst_case = 2 * llm_timeout_seconds + margin
    return {job_type: max(default, worst_case) for job_type, default in DEFAULT_JOB_TIMEOUTS.items()}


@dataclass(eq=False)
class Job:
    type: JobType
    data: Dict[str, Any]
    priority: JobPriority
    future: "asyncio.Future[Any]"
    id: str = field(default_factory=lambda: f"job_{uuid.uuid4().hex[:12]}")
    status: str = "pending"
    error: Optional[str] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    @property
    def duration(self) -> float:
        """Seconds spent processing, zero until the job starts."""
        if self.started_at is None:
            return 0.0
        end = self.completed_at if self.completed_at is not None else time.monotonic()
        return end - self.started_at


@dataclass(slots=True)
class QueueStats:
    total_processed: int
    total_failed: int
    queue_size: int
    average_duration: float
    current_job: Optional[str]


JobExecutor = Callable[[Job], Awaitable[Any]]


class AIJobQueue:
    """Priority work queue with one worker task.

    ``submit`` waits for room when the queue is full, then waits for the job's
    result. Jobs of equal priority run in submission order.
    """

    def __init__(
        self,
        executor: JobExecutor,
        max_size: int = 100,
        timeouts: Optional[Mapping[JobType, float]] = None,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be a positive integer.")
        self._executor = executor
        self._queue: "asyncio.PriorityQueue[tuple[int, int, Job]]" = asyncio.PriorityQueue(maxsize=max_size)
        self._timeouts = dict(DEFAULT_JOB_TIMEOUTS if timeouts is None else timeouts)
        self._sequence = itertools.count()
        self._worker: Optional[asyncio.Task[None]] = None
        self._current: Optional[Job] = None
        self._processed = 0
        self._failed = 0
        self._total_time = 0.0

    @property
    def timeouts(self) -> Mapping[JobType, float]:
        return dict(self._timeouts)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="ai-job-queue")
        LOGGER.info("AI job queue worker started.")

    async def stop(self) -> None:
        """Stop the worker and fail every job still waiting."""
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self.clear()

    def clear(self) -> int:
        """Drop pending jobs; their callers receive ``asyncio.CancelledError``."""
        dropped = 0
        while True:
            try:
                _, _, job = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            job.future.cancel()
            self._queue.task_done()
            dropped += 1
        if dropped:
            LOGGER.info("Dropped %s pending AI job(s).", dropped)
        return dropped

    async def submit(
        self,
        job_type: JobType,
        data: Dict[str, Any],
        priority: JobPriority = JobPriority.NORMAL,
    ) -> Any:
        """Enqueue a job and return its result once the worker has run it."""
        self.start()
        loop = asyncio.get_running_loop()
        job = Job(type=job_type, data=data, priority=priority, future=loop.create_future())
        await self._queue.put((int(priority), next(self._sequence), job))
        LOGGER.debug(
            "Queued %s (%s, priority %s); %s job(s) waiting.",
            job.id,
            job.type.value,
            int(priority),
            self._queue.qsize(),
        )
        return await job.future

    async def _run(self) -> None:
        while True:
            _, _, job = await self._queue.get()
            try:
                await self._process(job)
            finally:
                self._queue.task_done()

    async def _process(self, job: Job) -> None:
        if job.future.done():
            return

        self._current = job
        job.status = "processing"
        job.started_at = time.monotonic()
        timeout = self._timeouts.get(job.type, 30.0)
        try:
            result = await asyncio.wait_for(self._executor(job), timeout=timeout)
        except asyncio.CancelledError:
            job.future.cancel()
            raise
        except Exception as exc:
            job.status = "failed"
            job.error = str(exc) or exc.__class__.__name__
            job.completed_at = time.monotonic()
            self._failed += 1
            LOGGER.warning("AI job %s (%s) failed: %s", job.id, job.type.value, job.error)
            if not job.future.done():
                job.future.set_exception(exc)
        else:
            job.status = "completed"
            job.completed_at = time.monotonic()
            self._processed += 1
            self._total_time += job.duration
            LOGGER.debug("AI job %s finished in %.2fs.", job.id, job.duration)
            if not job.future.done():
                job.future.set_result(result)
        finally:
            self._current = None

    def stats(self) -> QueueStats:
        average = self._total_time / self._processed if self._processed else 0.0
        return QueueStats(
            total_processed=self._processed,
            total_failed=self._failed,
            queue_size=self._queue.qsize(),
            average_duration=round(average, 3),
            current_job=self._current.id if self._current is not None else None,
        )


def build_question_executor(service: QuestionService) -> JobExecutor:
    """Route queued jobs to the matching ``QuestionService`` call."""

    async def execute(job: Job) -> Any:
        if job.type in (JobType.GENERATE_QUESTION, JobType.PRE_GENERATE):
            return await service.generate_question(job.data["note"])
        if job.type is JobType.EVALUATE_ANSWER:
            return await service.evaluate_answer(
                job.data["question"],
                job.data["user_answer"],
                job.data["context"],
            )
        if job.type is JobType.GENERATE_HINT:
            return await service.generate_hint(job.data["note"])
        raise ValueError(f"Unknown job type: {job.type}")

    return execute
