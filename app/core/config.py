from typing import ClassVar, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Reasoning service (Groq)
    GROQ_API_KEY: Optional[str] = Field(default=None)
    GROQ_MODEL: str = Field(default="llama-3.3-70b-versatile", description="Groq chat model used for verdicts")
    REASONING_TIMEOUT_S: float = Field(default=15.0, description="Per-call timeout for the reasoning service")
    REASONING_COOLDOWN_S: float = Field(default=60.0, description="Cooldown after the reasoning service rate-limits us")

    # Evidence providers
    GOOGLE_API_KEY: Optional[str] = Field(default=None)
    GOOGLE_CSE_ID: Optional[str] = Field(default=None)
    SEARCH_TIMEOUT_S: float = Field(default=5.0, description="Per-call timeout for Google Custom Search")
    WIKIPEDIA_ENABLED: bool = Field(default=True, description="Query Wikipedia for encyclopedic evidence")
    WIKIPEDIA_TIMEOUT_S: float = Field(default=5.0, description="Per-call timeout for Wikipedia lookups")

    # Kafka
    KAFKA_ENABLED: bool = Field(default=True, description="Try to connect to Kafka at startup")
    KAFKA_BOOTSTRAP: str = Field(default="localhost:9092", description="Kafka bootstrap servers")
    JOBS_TOPIC: str = Field(default="claims.verify", description="Kafka topic for verification jobs")
    RESULTS_TOPIC: str = Field(default="claims.results", description="Kafka topic for completed job results")
    DLQ_TOPIC: str = Field(default="claims.failed", description="Kafka topic for dead letter queue")
    WORKER_GROUP_ID: str = Field(default="claim-workers", description="Consumer group ID for this worker")
    MAX_JOB_ATTEMPTS: int = Field(default=3, description="Maximum number of attempts for a queued job")
    RETRY_BACKOFF_BASE_S: float = Field(default=1.0, description="First retry delay; doubles on every attempt")
    WORKER_CONCURRENCY: int = Field(default=5, description="Maximum queued jobs processed at once")
    CONSUMER_TIMEOUT_MS: int = Field(default=10000, description="Consumer session timeout in milliseconds")
    BROKER_RECONNECT_INTERVAL_S: float = Field(default=30.0, description="Reconnect probe interval while DOWN")

    # Result cache
    CACHE_MAX_SIZE: int = Field(default=1000, description="Maximum cached verdicts")
    CACHE_TTL_S: float = Field(default=24 * 60 * 60, description="Cache entry time-to-live in seconds")
    CACHE_CLEANUP_INTERVAL_S: float = Field(default=60.0, description="Expired-entry sweep interval")

    # Per-session rate limiting
    SESSION_RATE_LIMIT: int = Field(default=5, description="Verification requests allowed per window")
    SESSION_RATE_WINDOW_S: float = Field(default=60.0, description="Sliding window length in seconds")
    RATE_SWEEP_INTERVAL_S: float = Field(default=60.0, description="Idle-session sweep interval")

    # Claim extraction
    CLAIM_MIN_SCORE: int = Field(default=30, description="Minimum verifiability score for a candidate claim")
    CLAIM_MAX_COUNT: int = Field(default=20, description="Maximum candidate claims per transcript")
    MIN_TRANSCRIPT_CHARS: int = Field(default=10, description="Shorter final transcripts are ignored")
    SESSION_CONTEXT_SIZE: int = Field(default=3, description="Finalized transcripts kept as session context")

    # Tracing
    OTEL_ENABLED: bool = Field(default=False, description="Enable OpenTelemetry FastAPI instrumentation")

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()

# Module-level constants for the Kafka layer
MAX_ATTEMPTS = settings.MAX_JOB_ATTEMPTS
JOBS_TOPIC = settings.JOBS_TOPIC
RESULTS_TOPIC = settings.RESULTS_TOPIC
DLQ_TOPIC = settings.DLQ_TOPIC
