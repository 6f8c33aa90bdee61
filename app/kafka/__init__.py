"""
Kafka lifecycle for the claim worker.

One producer (jobs, results, dead letters) and one consumer on JOBS_TOPIC,
held as module globals so main.py can (re)connect and tear them down while
the dispatch orchestrator flips between queued and inline execution.
"""

import asyncio
from typing import Any, Callable, Optional

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer

from app.core.config import settings
from app.core.logger import get_logger
from app.kafka.consumer import VerificationJobConsumer
from app.kafka.producer import JobPublisher
from app.services.dispatch.runner import JobRunner

logger = get_logger(__name__)

# Global instances
_consumer: Optional[AIOKafkaConsumer] = None
_producer: Optional[AIOKafkaProducer] = None
_job_consumer: Optional[VerificationJobConsumer] = None
_consumer_task: Optional[asyncio.Task] = None


async def init_kafka_services(runner: JobRunner) -> tuple[JobPublisher, VerificationJobConsumer]:
    """
    Start the producer and the jobs consumer.

    Returns:
        Tuple of (JobPublisher, VerificationJobConsumer). On failure every
        started client is stopped again and the error is re-raised.
    """
    global _consumer, _producer, _job_consumer

    try:
        _producer = AIOKafkaProducer(
            bootstrap_servers=settings.KAFKA_BOOTSTRAP,
            client_id="claim-worker-producer",
            acks="all",
        )
        await _producer.start()

        _consumer = AIOKafkaConsumer(
            settings.JOBS_TOPIC,
            bootstrap_servers=settings.KAFKA_BOOTSTRAP,
            group_id=settings.WORKER_GROUP_ID,
            client_id="claim-worker-consumer",
            auto_offset_reset="earliest",
            enable_auto_commit=True,
            session_timeout_ms=settings.CONSUMER_TIMEOUT_MS,
        )
        await _consumer.start()
    except Exception as e:
        logger.error(f"[KafkaInit] Could not reach broker at {settings.KAFKA_BOOTSTRAP}: {e}")
        await cleanup_kafka_services()
        raise

    publisher = JobPublisher(_producer)
    _job_consumer = VerificationJobConsumer(_consumer, publisher, runner)
    logger.info(
        f"[KafkaInit] Connected to {settings.KAFKA_BOOTSTRAP} "
        f"(group={settings.WORKER_GROUP_ID}, topic={settings.JOBS_TOPIC})"
    )
    return publisher, _job_consumer


async def start_consumer_loop(on_exit: Optional[Callable[[Optional[BaseException]], None]] = None):
    """
    Run the jobs consumer as a background task.

    `on_exit` is called with the error (or None) when the loop stops on its
    own. Cancellation from cleanup_kafka_services does not trigger it.
    """
    global _consumer_task

    if _job_consumer is None:
        raise RuntimeError("Kafka services not initialized. Call init_kafka_services() first.")

    def _on_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[KafkaInit] Consumer loop died: {error}")
        else:
            logger.warning("[KafkaInit] Consumer loop ended")
        if on_exit is not None:
            on_exit(error)

    _consumer_task = asyncio.create_task(_job_consumer.start_loop())
    _consumer_task.add_done_callback(_on_done)
    logger.info("[KafkaInit] Consumer loop started")


async def _stop_client(client: Any, name: str) -> None:
    try:
        await client.stop()
        logger.info(f"[KafkaCleanup] {name} stopped")
    except Exception as e:
        logger.warning(f"[KafkaCleanup] Error stopping {name.lower()}: {e}")


async def cleanup_kafka_services():
    """Cancel the consumer loop, let running jobs finish, stop both clients."""
    global _consumer, _producer, _job_consumer, _consumer_task

    task, _consumer_task = _consumer_task, None
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("[KafkaCleanup] Consumer loop cancelled")
        except Exception as e:
            logger.warning(f"[KafkaCleanup] Consumer loop ended with error: {e}")

    if _job_consumer is not None:
        await _job_consumer.drain()
        _job_consumer = None

    consumer, _consumer = _consumer, None
    if consumer is not None:
        await _stop_client(consumer, "Consumer")

    producer, _producer = _producer, None
    if producer is not None:
        await _stop_client(producer, "Producer")
