import os
import time
from contextlib import contextmanager

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

claim_jobs_consumed_total = Counter("claim_jobs_consumed_total", "Verification jobs consumed from the queue")
claim_jobs_completed_total = Counter("claim_jobs_completed_total", "Verification jobs delivered", ["mode"])
claim_jobs_failed_total = Counter("claim_jobs_failed_total", "Verification job failures", ["terminal"])
claim_jobs_rejected_total = Counter("claim_jobs_rejected_total", "Requests dropped by the session rate limiter")
claim_inline_fallback_total = Counter("claim_inline_fallback_total", "Jobs executed inline instead of queued")
kafka_send_failures_total = Counter("kafka_send_failures_total", "Kafka send failures")
cache_lookups_total = Counter("claim_cache_lookups_total", "Result cache lookups", ["outcome"])
cache_evictions_total = Counter("claim_cache_evictions_total", "Result cache evictions")
external_calls_total = Counter(
    "claim_external_calls_total",
    "External dependency calls by provider and status",
    ["provider", "status"],
)
stage_duration_seconds = Histogram(
    "claim_stage_duration_seconds",
    "Pipeline stage duration seconds",
    ["stage"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 15, 30),
)
jobs_in_flight = Gauge("claim_jobs_in_flight", "Verification jobs currently running", ["mode"])
broker_up = Gauge("claim_broker_up", "1 when the job broker is reachable")

_TRACING_INITIALIZED = False


def setup_tracing(app) -> None:
    global _TRACING_INITIALIZED
    if _TRACING_INITIALIZED:
        return
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://otel-collector:4317")
    service_name = os.getenv("OTEL_SERVICE_NAME", "claim-worker")
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
    _TRACING_INITIALIZED = True


@contextmanager
def stage_timer(stage: str):
    start = time.perf_counter()
    try:
        yield
    finally:
        stage_duration_seconds.labels(stage=stage).observe(time.perf_counter() - start)


def metrics_payload() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
