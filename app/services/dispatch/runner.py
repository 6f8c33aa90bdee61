from app.core.logger import get_logger
from app.core.observability import claim_jobs_completed_total, claim_jobs_failed_total, jobs_in_flight, stage_timer
from app.core.schemas import ClaimsVerifiedEvent, JobState, VerificationJob
from app.services.delivery.channel import CLAIMS_VERIFIED, LIVE_UPDATE, SessionHub
from app.services.pipeline.verifier import ClaimVerifier

logger = get_logger(__name__)

TERMINAL_ERROR_MESSAGE = "Claim verification failed. Please try again."


class JobRunner:
    """
    Runs one verification job and delivers its outcome.

    Shared by the inline dispatcher and the queue consumer so that both modes
    emit exactly the same events.
    """

    def __init__(self, verifier: ClaimVerifier, hub: SessionHub) -> None:
        self.verifier = verifier
        self.hub = hub

    async def execute(self, job: VerificationJob) -> ClaimsVerifiedEvent:
        with stage_timer("job"):
            return await self.verifier.process_transcript(job.claim_text, context=job.prior_context)

    async def deliver(self, job: VerificationJob, event: ClaimsVerifiedEvent, mode: str) -> JobState:
        payload = event.model_dump(mode="json")
        await self.hub.emit(job.session_id, CLAIMS_VERIFIED, payload)
        if event.claims:
            await self.hub.broadcast(LIVE_UPDATE, {"transcript": payload["transcript"], "claims": payload["claims"]})
        claim_jobs_completed_total.labels(mode=mode).inc()
        logger.info(f"[JobRunner] Job {job.job_id} delivered ({len(event.claims)} claims, mode={mode})")
        return JobState.DELIVERED

    async def fail(self, job: VerificationJob, reason: str) -> JobState:
        claim_jobs_failed_total.labels(terminal="true").inc()
        logger.error(f"[JobRunner] Job {job.job_id} failed terminally: {reason}")
        await self.hub.deliver_error(job.session_id, TERMINAL_ERROR_MESSAGE)
        return JobState.FAILED_TERMINAL

    async def run(self, job: VerificationJob, mode: str = "inline") -> JobState:
        """Execute and deliver; any failure becomes an error event to the session."""
        jobs_in_flight.labels(mode=mode).inc()
        try:
            event = await self.execute(job)
        except Exception as e:
            return await self.fail(job, str(e))
        finally:
            jobs_in_flight.labels(mode=mode).dec()
        return await self.deliver(job, event, mode)
