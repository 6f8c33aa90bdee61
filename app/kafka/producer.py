import json

from aiokafka import AIOKafkaProducer

from app.core.config import DLQ_TOPIC, JOBS_TOPIC, RESULTS_TOPIC
from app.core.schemas import JobResult, VerificationJob


class JobPublisher:
    def __init__(self, producer: AIOKafkaProducer):
        self.producer = producer

    async def enqueue(self, job: VerificationJob):
        await self.producer.send_and_wait(
            JOBS_TOPIC, job.model_dump_json().encode("utf-8"), key=job.session_id.encode("utf-8")
        )

    async def publish_result(self, result: JobResult):
        await self.producer.send_and_wait(RESULTS_TOPIC, result.model_dump_json().encode("utf-8"))

    async def publish_dlq(self, job_payload: dict, reason: str):
        await self.producer.send_and_wait(
            DLQ_TOPIC, json.dumps({"reason": reason, "job": job_payload}, default=str).encode("utf-8")
        )
