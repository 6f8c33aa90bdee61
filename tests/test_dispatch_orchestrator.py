import pytest

from app.core.rate_limit import SessionRateLimiter
from app.core.schemas import JobState
from app.services.delivery.channel import SessionHub
from app.services.dispatch.orchestrator import BrokerState, DispatchOrchestrator, QueuedDispatcher
from app.services.dispatch.runner import TERMINAL_ERROR_MESSAGE
from tests.fakes import FakeRetriever, FakeSocket, build_services

CLAIM = "The Eiffel Tower is in Paris"


class _FakeQueue:
    def __init__(self, error: Exception | None = None) -> None:
        self.jobs = []
        self.error = error

    async def enqueue(self, job):  # noqa: ANN001
        if self.error is not None:
            raise self.error
        self.jobs.append(job)


class _BrokenRetriever(FakeRetriever):
    async def retrieve(self, claim, canonical=None):  # noqa: ANN001
        raise RuntimeError("retrieval exploded")


def _connect(services, session_id: str = "s1") -> FakeSocket:  # noqa: ANN001
    socket = FakeSocket()
    services.hub.register(session_id, socket)
    return socket


def _orchestrator(services, queued=None, reconnect=None) -> DispatchOrchestrator:  # noqa: ANN001
    return DispatchOrchestrator(
        services.orchestrator.runner,
        SessionRateLimiter(max_requests=5, window=60.0),
        queued=queued,
        reconnect=reconnect,
    )


@pytest.mark.asyncio
async def test_broker_down_runs_job_inline(services):
    socket = _connect(services)

    state = await services.orchestrator.submit("s1", CLAIM)
    await services.orchestrator.inline.drain()

    assert state == JobState.INLINE
    assert services.orchestrator.state == BrokerState.DOWN
    verified = socket.events("claims-verified")
    assert len(verified) == 1
    assert verified[0]["data"]["transcript"] == CLAIM
    assert verified[0]["data"]["claims"][0]["verdict"] == "true"


@pytest.mark.asyncio
async def test_sixth_request_in_window_is_rejected(services):
    socket = _connect(services)

    states = [await services.orchestrator.submit("s1", CLAIM) for _ in range(6)]
    await services.orchestrator.inline.drain()

    assert states[:5] == [JobState.INLINE] * 5
    assert states[5] == JobState.REJECTED
    assert len(socket.events("claims-verified")) == 5
    assert socket.events("error") == []


@pytest.mark.asyncio
async def test_rate_limit_is_per_session(services):
    _connect(services, "s1")
    _connect(services, "s2")

    for _ in range(5):
        await services.orchestrator.submit("s1", CLAIM)

    assert await services.orchestrator.submit("s1", CLAIM) == JobState.REJECTED
    assert await services.orchestrator.submit("s2", CLAIM) == JobState.INLINE
    await services.orchestrator.inline.drain()


@pytest.mark.asyncio
async def test_broker_up_queues_job(services):
    queue = _FakeQueue()
    orchestrator = _orchestrator(services, queued=QueuedDispatcher(queue))

    state = await orchestrator.submit("s1", CLAIM, ["earlier"])

    assert state == JobState.QUEUED
    assert orchestrator.state == BrokerState.UP
    assert queue.jobs[0].session_id == "s1"
    assert queue.jobs[0].claim_text == CLAIM
    assert queue.jobs[0].prior_context == ["earlier"]
    assert queue.jobs[0].attempt == 0
    assert orchestrator.inline.in_flight == 0


@pytest.mark.asyncio
async def test_failed_push_flips_to_inline(services):
    socket = _connect(services)
    orchestrator = _orchestrator(services, queued=QueuedDispatcher(_FakeQueue(ConnectionError("broker gone"))))

    state = await orchestrator.submit("s1", CLAIM)
    await orchestrator.inline.drain()

    assert state == JobState.INLINE
    assert orchestrator.state == BrokerState.DOWN
    assert len(socket.events("claims-verified")) == 1

    assert await orchestrator.submit("s1", CLAIM) == JobState.INLINE
    await orchestrator.inline.drain()


@pytest.mark.asyncio
async def test_inline_failure_delivers_error_event():
    services = build_services(_BrokenRetriever())
    socket = _connect(services)

    await services.orchestrator.submit("s1", CLAIM)
    await services.orchestrator.inline.drain()

    assert socket.events("claims-verified") == []
    assert socket.events("error") == [{"type": "error", "data": {"message": TERMINAL_ERROR_MESSAGE}}]


@pytest.mark.asyncio
async def test_verified_claims_are_broadcast_as_live_updates(services):
    speaker = _connect(services, "s1")
    listener = _connect(services, "s2")

    await services.orchestrator.submit("s1", CLAIM)
    await services.orchestrator.inline.drain()

    assert listener.events("claims-verified") == []
    updates = listener.events("live-update")
    assert len(updates) == 1
    assert updates[0]["data"]["transcript"] == CLAIM
    assert updates[0]["data"]["claims"][0]["claim"] == CLAIM
    assert [m["type"] for m in speaker.sent] == ["claims-verified", "live-update"]


@pytest.mark.asyncio
async def test_transcript_without_claims_still_answers(services):
    speaker = _connect(services, "s1")
    listener = _connect(services, "s2")

    await services.orchestrator.submit("s1", "Hi everyone, I think pizza is great")
    await services.orchestrator.inline.drain()

    assert speaker.events("claims-verified")[0]["data"]["claims"] == []
    assert speaker.events("live-update") == []
    assert listener.sent == []


@pytest.mark.asyncio
async def test_probe_reconnects_while_down(services):
    queue = _FakeQueue()

    async def reconnect():
        return QueuedDispatcher(queue)

    orchestrator = _orchestrator(services, reconnect=reconnect)
    assert orchestrator.snapshot()["mode"] == "inline"

    assert await orchestrator.probe_broker() == BrokerState.UP
    assert await orchestrator.submit("s1", CLAIM) == JobState.QUEUED
    assert len(queue.jobs) == 1
    assert orchestrator.snapshot()["mode"] == "queued"


@pytest.mark.asyncio
async def test_failed_probe_stays_down(services):
    calls = []

    async def reconnect():
        calls.append(1)
        raise ConnectionError("still down")

    orchestrator = _orchestrator(services, reconnect=reconnect)

    assert await orchestrator.probe_broker() == BrokerState.DOWN
    assert await orchestrator.probe_broker() == BrokerState.DOWN
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_probe_is_skipped_while_up(services):
    async def reconnect():
        raise AssertionError("should not reconnect while UP")

    orchestrator = _orchestrator(services, queued=QueuedDispatcher(_FakeQueue()), reconnect=reconnect)

    assert await orchestrator.probe_broker() == BrokerState.UP


def test_snapshot_reports_dispatch_state(services):
    snapshot = services.orchestrator.snapshot()

    assert snapshot == {
        "broker_state": "DOWN",
        "mode": "inline",
        "inline_in_flight": 0,
        "tracked_sessions": 0,
    }


@pytest.mark.asyncio
async def test_emit_to_unknown_session_is_dropped():
    hub = SessionHub(context_size=3)

    assert await hub.emit("ghost", "claims-verified", {"claims": []}) is False


@pytest.mark.asyncio
async def test_failing_socket_is_unregistered():
    hub = SessionHub(context_size=3)
    hub.register("s1", FakeSocket(fail=True))
    healthy = FakeSocket()
    hub.register("s2", healthy)

    assert await hub.broadcast("live-update", {"claims": []}) == 1
    assert not hub.is_connected("s1")
    assert hub.active_sessions == 1
    assert len(healthy.sent) == 1


def test_session_context_keeps_last_three_transcripts():
    hub = SessionHub(context_size=3)
    hub.register("s1", FakeSocket())

    for text in ["one", "two", "three", "four"]:
        hub.remember("s1", text)

    assert hub.context("s1") == ["two", "three", "four"]
    hub.unregister("s1")
    assert hub.context("s1") == []
