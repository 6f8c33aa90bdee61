import asyncio
import inspect
from contextlib import asynccontextmanager
from typing import Any, Callable, List, Optional

from fastapi import FastAPI

from app.core.config import settings
from app.core.container import Services, get_services, set_services
from app.core.logger import get_logger
from app.core.observability import setup_tracing
from app.core.rate_limit import SessionRateLimiter
from app.kafka import cleanup_kafka_services, init_kafka_services, start_consumer_loop
from app.routers.admin import router as admin_router
from app.routers.session import router as session_router
from app.services.cache.result_cache import ResultCache
from app.services.delivery.channel import SessionHub
from app.services.dispatch.orchestrator import DispatchOrchestrator, QueuedDispatcher
from app.services.dispatch.runner import JobRunner
from app.services.evidence.retrieval import EvidenceRetriever
from app.services.llms.groq_service import GroqService
from app.services.pipeline.verifier import ClaimVerifier
from app.services.verdict.aggregator import EvidenceAggregator
from app.services.verdict.overrides import FactOverrideTable

logger = get_logger(__name__)

_background_tasks: List[asyncio.Task] = []


def consumer_loop_watcher(orchestrator: DispatchOrchestrator) -> Callable[[Optional[BaseException]], None]:
    """Flip the orchestrator to DOWN when the consumer loop stops, so the broker gets reconnected."""

    def _on_exit(error: Optional[BaseException]) -> None:
        orchestrator.mark_down(f"consumer loop stopped: {error}" if error else "consumer loop stopped")

    return _on_exit


async def connect_broker(
    runner: JobRunner, on_loop_exit: Optional[Callable[[Optional[BaseException]], None]] = None
) -> QueuedDispatcher:
    """(Re)build the Kafka producer/consumer pair and start consuming."""
    await cleanup_kafka_services()
    publisher, _ = await init_kafka_services(runner)
    await start_consumer_loop(on_exit=on_loop_exit)
    return QueuedDispatcher(publisher)


def build_services() -> Services:
    cache = ResultCache(max_size=settings.CACHE_MAX_SIZE, ttl=settings.CACHE_TTL_S)
    limiter = SessionRateLimiter(max_requests=settings.SESSION_RATE_LIMIT, window=settings.SESSION_RATE_WINDOW_S)
    hub = SessionHub()

    reasoning: Optional[GroqService] = None
    if GroqService.is_configured():
        reasoning = GroqService()
        logger.info(f"[Main] Reasoning service enabled: {reasoning.model}")
    else:
        logger.warning("[Main] GROQ_API_KEY not configured. Verdicts use overrides and heuristics only")

    aggregator = EvidenceAggregator(reasoning=reasoning, overrides=FactOverrideTable.load())
    verifier = ClaimVerifier(cache=cache, retriever=EvidenceRetriever.from_settings(), aggregator=aggregator)
    runner = JobRunner(verifier, hub)

    async def reconnect() -> Optional[QueuedDispatcher]:
        return await connect_broker(runner, on_loop_exit=consumer_loop_watcher(orchestrator))

    orchestrator = DispatchOrchestrator(runner, limiter, reconnect=reconnect if settings.KAFKA_ENABLED else None)
    return Services(cache=cache, limiter=limiter, hub=hub, verifier=verifier, orchestrator=orchestrator)


async def run_periodically(interval: float, name: str, fn: Callable[[], Any]) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            result = fn()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"[Maintenance] {name} failed: {e}")


async def startup_event() -> None:
    """Wire services, connect to Kafka and start maintenance tasks."""
    services = build_services()
    set_services(services)

    logger.warning(
        "[Main] Result cache and session rate limits are per-process. "
        "Multiple instances do not share verdicts or rate windows"
    )

    if settings.KAFKA_ENABLED:
        try:
            orchestrator = services.orchestrator
            queued = await connect_broker(orchestrator.runner, on_loop_exit=consumer_loop_watcher(orchestrator))
            orchestrator.mark_up(queued)
            logger.info("[Main] Kafka services initialized and consumer loop started")
        except Exception as e:
            logger.error(f"[Main] Failed to initialize Kafka services: {e}. Running jobs inline")
            # Don't raise - the orchestrator stays DOWN and runs jobs inline (graceful degradation)
    else:
        logger.info("[Main] Kafka disabled. Running jobs inline")

    _background_tasks.extend(
        [
            asyncio.create_task(
                run_periodically(settings.CACHE_CLEANUP_INTERVAL_S, "cache cleanup", services.cache.cleanup)
            ),
            asyncio.create_task(
                run_periodically(settings.RATE_SWEEP_INTERVAL_S, "rate window sweep", services.limiter.sweep)
            ),
            asyncio.create_task(
                run_periodically(
                    settings.BROKER_RECONNECT_INTERVAL_S, "broker probe", services.orchestrator.probe_broker
                )
            ),
        ]
    )


async def shutdown_event() -> None:
    """Cleanup on app shutdown."""
    for task in _background_tasks:
        task.cancel()
    await asyncio.gather(*_background_tasks, return_exceptions=True)
    _background_tasks.clear()

    try:
        await cleanup_kafka_services()
        logger.info("[Main] Kafka services cleaned up")
    except Exception as e:
        logger.warning(f"[Main] Error during Kafka cleanup: {e}")

    services = get_services()
    if services is not None:
        await services.orchestrator.inline.drain()
    set_services(None)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await startup_event()
    try:
        yield
    finally:
        await shutdown_event()


app = FastAPI(title="Claim Verification Worker", version="1.0.0", lifespan=lifespan)

if settings.OTEL_ENABLED:
    setup_tracing(app)

app.include_router(admin_router)
app.include_router(session_router)

logger.info("Claim Verification Worker initialized")
