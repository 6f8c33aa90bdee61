import asyncio
import json
import logging
from typing import Optional, Set

from aiokafka import AIOKafkaConsumer
from pydantic import ValidationError

from app.core.config import JOBS_TOPIC, MAX_ATTEMPTS, settings
from app.core.observability import claim_jobs_consumed_total, claim_jobs_failed_total
from app.core.schemas import JobResult, JobState, VerificationJob
from app.kafka.producer import JobPublisher
from app.services.dispatch.runner import JobRunner

logger = logging.getLogger("worker")


def retry_delay(attempt: int, base: Optional[float] = None) -> float:
    """Exponential backoff: base, 2*base, 4*base, ... for attempts 0, 1, 2, ..."""
    base = settings.RETRY_BACKOFF_BASE_S if base is None else base
    return base * (2**attempt)


class VerificationJobConsumer:
    """
    Queue consumer for verification jobs.
    Runs up to `concurrency` jobs at once, retries failures with exponential
    backoff, and dead-letters jobs that exhaust their attempts.
    """

    def __init__(
        self,
        consumer: AIOKafkaConsumer,
        publisher: JobPublisher,
        runner: JobRunner,
        concurrency: Optional[int] = None,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.consumer = consumer
        self.publisher = publisher
        self.runner = runner
        self.max_attempts = max_attempts
        self.semaphore = asyncio.Semaphore(concurrency or settings.WORKER_CONCURRENCY)
        self._tasks: Set[asyncio.Task] = set()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def start_loop(self):
        logger.info("Verification consumer started on topic %s", JOBS_TOPIC)

        async for msg in self.consumer:
            job = await self.decode(msg.value)
            if job is None:
                continue
            claim_jobs_consumed_total.inc()
            await self.semaphore.acquire()
            self._spawn(self._run_with_slot(job))

    async def decode(self, raw: bytes) -> Optional[VerificationJob]:
        payload = None
        try:
            payload = json.loads(raw.decode("utf-8"))
            return VerificationJob(**payload)
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.error("Invalid job received: %s", e)
            try:
                await self.publisher.publish_dlq(payload if isinstance(payload, dict) else {"raw": repr(raw)}, str(e))
            except Exception as dlq_error:
                logger.warning("Could not dead-letter invalid job: %s", dlq_error)
            return None

    async def _run_with_slot(self, job: VerificationJob):
        try:
            await self.handle(job)
        finally:
            self.semaphore.release()

    async def handle(self, job: VerificationJob) -> JobState:
        try:
            event = await self.runner.execute(job)
        except Exception as e:
            logger.exception("Worker error on job %s (attempt %d): %s", job.job_id, job.attempt, e)
            return await self.on_failure(job, e)

        state = await self.runner.deliver(job, event, mode="queued")
        try:
            await self.publisher.publish_result(
                JobResult(
                    job_id=job.job_id,
                    session_id=job.session_id,
                    transcript=event.transcript,
                    claims=event.claims,
                    status=state.value,
                )
            )
        except Exception as e:
            logger.warning("Could not publish result for job %s: %s", job.job_id, e)
        logger.info("Job %s completed for session %s", job.job_id, job.session_id)
        return state

    async def on_failure(self, job: VerificationJob, error: Exception) -> JobState:
        if job.attempt + 1 < self.max_attempts:
            claim_jobs_failed_total.labels(terminal="false").inc()
            retry_job = job.model_copy(update={"attempt": job.attempt + 1})
            delay = retry_delay(job.attempt)
            logger.warning("Retrying job %s in %.1fs (attempt %d)", job.job_id, delay, retry_job.attempt)
            self._spawn(self.requeue_later(retry_job, delay))
            return JobState.FAILED_RETRY

        try:
            await self.publisher.publish_dlq(job.model_dump(mode="json"), f"Max attempts exceeded: {error}")
        except Exception as e:
            logger.warning("Could not dead-letter job %s: %s", job.job_id, e)
        return await self.runner.fail(job, str(error))

    async def requeue_later(self, job: VerificationJob, delay: float):
        await asyncio.sleep(delay)
        try:
            await self.publisher.enqueue(job)
        except Exception as e:
            logger.error("Requeue of job %s failed, running it here: %s", job.job_id, e)
            await self.handle(job)

    async def drain(self):
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
