"""
Dispatch orchestrator.

Every verification request goes RECEIVED -> RATE_CHECK -> one of
REJECTED / QUEUED / INLINE. The broker connection state is owned here and
selects which Dispatcher receives the job:

  UP   -> QueuedDispatcher (durable Kafka topic, consumer retries with backoff)
  DOWN -> InlineDispatcher (fire-and-forget task on this event loop)

A failed push flips the state to DOWN and the same job runs inline, so a job
is never lost because the broker went away.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set

from app.core.logger import get_logger
from app.core.observability import (
    broker_up,
    claim_inline_fallback_total,
    claim_jobs_rejected_total,
    kafka_send_failures_total,
)
from app.core.rate_limit import SessionRateLimiter
from app.core.schemas import JobState, VerificationJob
from app.services.dispatch.runner import JobRunner

logger = get_logger(__name__)


class BrokerState(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


class Dispatcher(Protocol):
    mode: str

    async def dispatch(self, job: VerificationJob) -> None: ...


class JobQueue(Protocol):
    async def enqueue(self, job: VerificationJob) -> None: ...


class QueuedDispatcher:
    mode = "queued"

    def __init__(self, queue: JobQueue) -> None:
        self.queue = queue

    async def dispatch(self, job: VerificationJob) -> None:
        await self.queue.enqueue(job)


class InlineDispatcher:
    mode = "inline"

    def __init__(self, runner: JobRunner) -> None:
        self.runner = runner
        self._tasks: Set[asyncio.Task] = set()

    async def dispatch(self, job: VerificationJob) -> None:
        task = asyncio.create_task(self.runner.run(job, mode=self.mode))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> List[Any]:
        """Wait for every running inline job (tests and shutdown)."""
        if not self._tasks:
            return []
        return await asyncio.gather(*list(self._tasks), return_exceptions=True)


Reconnector = Callable[[], Awaitable[Optional[QueuedDispatcher]]]


class DispatchOrchestrator:
    def __init__(
        self,
        runner: JobRunner,
        limiter: SessionRateLimiter,
        queued: Optional[QueuedDispatcher] = None,
        reconnect: Optional[Reconnector] = None,
    ) -> None:
        self.runner = runner
        self.limiter = limiter
        self.inline = InlineDispatcher(runner)
        self.queued: Optional[QueuedDispatcher] = None
        self.reconnect = reconnect
        self._state = BrokerState.DOWN
        broker_up.set(0)
        if queued is not None:
            self.mark_up(queued)

    @property
    def state(self) -> BrokerState:
        return self._state

    def mark_up(self, queued: QueuedDispatcher) -> None:
        self.queued = queued
        if self._state != BrokerState.UP:
            logger.info("[Dispatch] Broker state DOWN -> UP. Jobs will be queued")
        self._state = BrokerState.UP
        broker_up.set(1)

    def mark_down(self, reason: str) -> None:
        if self._state != BrokerState.DOWN:
            logger.warning(f"[Dispatch] Broker state UP -> DOWN ({reason}). Jobs will run inline")
        self._state = BrokerState.DOWN
        broker_up.set(0)

    def _select(self) -> Dispatcher:
        if self._state == BrokerState.UP and self.queued is not None:
            return self.queued
        return self.inline

    async def submit(self, session_id: str, transcript: str, context: Optional[List[str]] = None) -> JobState:
        """
        Accept a verification request. Returns the state the request ended
        up in: REJECTED, QUEUED or INLINE. Never raises for broker failures.
        """
        if not self.limiter.allow(session_id):
            claim_jobs_rejected_total.inc()
            logger.info(f"[Dispatch] Rate limit exceeded for session {session_id}. Dropping request")
            return JobState.REJECTED

        job = VerificationJob(session_id=session_id, claim_text=transcript, prior_context=list(context or []))
        dispatcher = self._select()
        if dispatcher is self.queued:
            try:
                await dispatcher.dispatch(job)
                logger.info(f"[Dispatch] Job {job.job_id} queued for session {session_id}")
                return JobState.QUEUED
            except Exception as e:
                kafka_send_failures_total.inc()
                self.mark_down(f"push failed: {e}")

        claim_inline_fallback_total.inc()
        await self.inline.dispatch(job)
        logger.info(f"[Dispatch] Job {job.job_id} running inline for session {session_id}")
        return JobState.INLINE

    async def probe_broker(self) -> BrokerState:
        """Try to reconnect while DOWN. Failures keep the state DOWN."""
        if self._state == BrokerState.UP or self.reconnect is None:
            return self._state
        try:
            queued = await self.reconnect()
        except Exception as e:
            logger.info(f"[Dispatch] Broker still unreachable: {e}")
            return self._state
        if queued is not None:
            self.mark_up(queued)
        return self._state

    def snapshot(self) -> Dict[str, Any]:
        return {
            "broker_state": self._state.value,
            "mode": self._select().mode,
            "inline_in_flight": self.inline.in_flight,
            "tracked_sessions": self.limiter.tracked_sessions,
        }
