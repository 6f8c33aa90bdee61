import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

import app.kafka as kafka_module
import app.kafka.consumer as consumer_module
from app.core.schemas import ClaimsVerifiedEvent, JobResult, JobState, VerificationJob
from app.kafka.consumer import VerificationJobConsumer, retry_delay
from app.services.dispatch.orchestrator import BrokerState, QueuedDispatcher
from app.services.dispatch.runner import TERMINAL_ERROR_MESSAGE
from tests.fakes import FakeRetriever, FakeSocket, build_services

CLAIM = "The Eiffel Tower is in Paris"


class _BrokenRetriever(FakeRetriever):
    async def retrieve(self, claim, canonical=None):  # noqa: ANN001
        raise RuntimeError("retrieval exploded")


class _FakeKafkaConsumer:
    """Async-iterable stand-in for AIOKafkaConsumer."""

    def __init__(self, payloads) -> None:  # noqa: ANN001
        self.messages = [SimpleNamespace(value=p) for p in payloads]

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message


class _SlowRunner:
    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.executed = []

    async def execute(self, job):  # noqa: ANN001
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        self.executed.append(job.job_id)
        return ClaimsVerifiedEvent(transcript=job.claim_text)

    async def deliver(self, job, event, mode):  # noqa: ANN001
        return JobState.DELIVERED

    async def fail(self, job, reason):  # noqa: ANN001
        return JobState.FAILED_TERMINAL


def _publisher() -> AsyncMock:
    return AsyncMock()


def _encode(job: VerificationJob) -> bytes:
    return job.model_dump_json().encode("utf-8")


def test_retry_delay_doubles_per_attempt():
    assert [retry_delay(a, base=1.0) for a in range(3)] == [1.0, 2.0, 4.0]
    assert retry_delay(0) == 1.0


@pytest.mark.asyncio
async def test_successful_job_is_delivered_and_published(services):
    socket = FakeSocket()
    services.hub.register("s1", socket)
    publisher = _publisher()
    consumer = VerificationJobConsumer(None, publisher, services.orchestrator.runner)

    state = await consumer.handle(VerificationJob(session_id="s1", claim_text=CLAIM))

    assert state == JobState.DELIVERED
    assert len(socket.events("claims-verified")) == 1
    result = publisher.publish_result.await_args.args[0]
    assert isinstance(result, JobResult)
    assert result.session_id == "s1"
    assert result.status == "DELIVERED"
    assert result.claims[0].verdict == "true"


@pytest.mark.asyncio
async def test_result_publish_failure_does_not_fail_job(services):
    services.hub.register("s1", FakeSocket())
    publisher = _publisher()
    publisher.publish_result.side_effect = ConnectionError("broker gone")
    consumer = VerificationJobConsumer(None, publisher, services.orchestrator.runner)

    assert await consumer.handle(VerificationJob(session_id="s1", claim_text=CLAIM)) == JobState.DELIVERED


@pytest.mark.asyncio
async def test_failed_job_is_requeued_with_next_attempt(monkeypatch):
    monkeypatch.setattr(consumer_module, "retry_delay", lambda attempt: 0)
    services = build_services(_BrokenRetriever())
    socket = FakeSocket()
    services.hub.register("s1", socket)
    publisher = _publisher()
    consumer = VerificationJobConsumer(None, publisher, services.orchestrator.runner)
    job = VerificationJob(session_id="s1", claim_text=CLAIM)

    state = await consumer.handle(job)
    await consumer.drain()

    assert state == JobState.FAILED_RETRY
    retried = publisher.enqueue.await_args.args[0]
    assert retried.job_id == job.job_id
    assert retried.attempt == 1
    publisher.publish_dlq.assert_not_awaited()
    assert socket.sent == []


@pytest.mark.asyncio
async def test_exhausted_job_is_dead_lettered_and_reported():
    services = build_services(_BrokenRetriever())
    socket = FakeSocket()
    services.hub.register("s1", socket)
    publisher = _publisher()
    consumer = VerificationJobConsumer(None, publisher, services.orchestrator.runner, max_attempts=3)
    job = VerificationJob(session_id="s1", claim_text=CLAIM, attempt=2)

    state = await consumer.handle(job)

    assert state == JobState.FAILED_TERMINAL
    publisher.enqueue.assert_not_awaited()
    payload, reason = publisher.publish_dlq.await_args.args
    assert payload["job_id"] == job.job_id
    assert "Max attempts exceeded" in reason
    assert socket.events("error") == [{"type": "error", "data": {"message": TERMINAL_ERROR_MESSAGE}}]


@pytest.mark.asyncio
async def test_invalid_messages_go_to_dead_letter_topic():
    publisher = _publisher()
    consumer = VerificationJobConsumer(None, publisher, _SlowRunner())

    assert await consumer.decode(b"not json") is None
    assert await consumer.decode(json.dumps({"claim_text": "no session"}).encode()) is None

    first, second = publisher.publish_dlq.await_args_list
    assert "raw" in first.args[0]
    assert second.args[0] == {"claim_text": "no session"}


@pytest.mark.asyncio
async def test_loop_bounds_concurrent_jobs():
    jobs = [VerificationJob(session_id=f"s{i}", claim_text=CLAIM) for i in range(4)]
    runner = _SlowRunner()
    consumer = VerificationJobConsumer(
        _FakeKafkaConsumer([_encode(j) for j in jobs] + [b"garbage"]),
        _publisher(),
        runner,
        concurrency=2,
    )

    await consumer.start_loop()
    await consumer.drain()

    assert sorted(runner.executed) == sorted(j.job_id for j in jobs)
    assert runner.peak == 2
    consumer.publisher.publish_dlq.assert_awaited_once()


@pytest.mark.asyncio
async def test_loop_survives_dead_letter_failure():
    job = VerificationJob(session_id="s1", claim_text=CLAIM)
    runner = _SlowRunner()
    publisher = _publisher()
    publisher.publish_dlq.side_effect = ConnectionError("broker gone")
    consumer = VerificationJobConsumer(_FakeKafkaConsumer([b"not json", _encode(job)]), publisher, runner)

    await consumer.start_loop()
    await consumer.drain()

    assert runner.executed == [job.job_id]
    publisher.publish_dlq.assert_awaited_once()


class _CrashingJobConsumer:
    async def start_loop(self):
        raise RuntimeError("fetch failed")


@pytest.mark.asyncio
async def test_dead_consumer_loop_reports_its_error(monkeypatch):
    monkeypatch.setattr(kafka_module, "_job_consumer", _CrashingJobConsumer())
    monkeypatch.setattr(kafka_module, "_consumer_task", None)
    seen = []

    await kafka_module.start_consumer_loop(on_exit=seen.append)
    with pytest.raises(RuntimeError):
        await kafka_module._consumer_task
    await asyncio.sleep(0)

    assert len(seen) == 1
    assert str(seen[0]) == "fetch failed"


@pytest.mark.asyncio
async def test_consumer_loop_exit_marks_broker_down(services):
    from app.main import consumer_loop_watcher

    orchestrator = services.orchestrator
    orchestrator.mark_up(QueuedDispatcher(_publisher()))

    consumer_loop_watcher(orchestrator)(RuntimeError("fetch failed"))

    assert orchestrator.state == BrokerState.DOWN
    assert orchestrator.snapshot()["mode"] == "inline"
