"""
Batch orchestration.

Backlogs of unverified bookings are sent to the provider's batch API as one
job, at a discount and on the provider's schedule. Results are reconciled
later through the same interpreter the real-time path uses, one item at a
time, so a crash part way through loses nothing already written.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from config import (
    BATCH_DISCOUNT,
    BATCH_JOB_TYPE,
    BATCH_RETENTION_DAYS,
    CORRELATION_PREFIX,
    ESTIMATED_COST_PER_VERIFICATION,
)
from .interpreter import ResultInterpreter
from .request_builder import RequestBuilder
from .run_pipeline import attach_name_comparison
from .schemas import BatchItem, BatchItemOutcome, BatchJob, BatchStatus, BookingRecord
from .stores import BookingStore, JobStore
from .vision import VisionModelService

logger = logging.getLogger(__name__)


def to_correlation_string(correlation_id: str) -> str:
    return f"{CORRELATION_PREFIX}{correlation_id}"


def from_correlation_string(custom_id: str) -> str:
    if not custom_id.startswith(CORRELATION_PREFIX) or len(custom_id) == len(CORRELATION_PREFIX):
        raise ValueError(f"Unrecognized correlation id: {custom_id!r}")
    return custom_id[len(CORRELATION_PREFIX):]


def estimate_cost(request_count: int) -> float:
    return round(request_count * ESTIMATED_COST_PER_VERIFICATION * BATCH_DISCOUNT, 4)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchOrchestrator:

    def __init__(self, vision: VisionModelService, job_store: JobStore, booking_store: BookingStore,
                 builder: Optional[RequestBuilder] = None,
                 interpreter: Optional[ResultInterpreter] = None):
        self.vision = vision
        self.job_store = job_store
        self.booking_store = booking_store
        self.builder = builder or RequestBuilder()
        self.interpreter = interpreter or ResultInterpreter()

    def create_job(self, items: List[BatchItem], as_of: Optional[date] = None) -> BatchJob:
        """Submit one provider job covering every item and record it."""
        if not items:
            raise ValueError("A batch needs at least one item")

        requests = [
            (
                to_correlation_string(item.correlation_id),
                self.builder.build(item.front_image, item.back_image, item.jurisdiction_hint, as_of).primary,
            )
            for item in items
        ]
        submitted = self.vision.submit_batch(requests, metadata={"type": BATCH_JOB_TYPE})

        created_at = _utcnow()
        job = BatchJob(
            id=submitted.id,
            type=BATCH_JOB_TYPE,
            status=BatchStatus.PROCESSING,
            total_requests=len(items),
            estimated_cost=estimate_cost(len(items)),
            created_at=created_at,
            expires_at=created_at + timedelta(days=BATCH_RETENTION_DAYS),
        )
        self.job_store.create(job)
        logger.info("Created batch job %s with %d verifications (est. $%.4f)",
                    job.id, job.total_requests, job.estimated_cost)
        return job

    def sync_status(self, job_id: str) -> BatchJob:
        """Mirror the provider's current counts onto the stored job."""
        job = self.job_store.get(job_id)
        status = self.vision.retrieve_batch(job_id)
        job.total_requests = status.total or job.total_requests
        job.completed_requests = status.completed
        job.failed_requests = status.failed
        if status.ended:
            job.status = BatchStatus.ENDED
        self.job_store.update(job)
        logger.info("Batch %s: %d/%d completed, %d failed, ended=%s",
                    job_id, job.completed_requests, job.total_requests, job.failed_requests, status.ended)
        return job

    def reconcile(self, job_id: str, as_of: Optional[date] = None) -> BatchJob:
        """Write every finished item back to its booking; failures are counted, not raised."""
        job = self.job_store.get(job_id)
        status = self.vision.retrieve_batch(job_id)
        if not status.ended:
            logger.info("Batch %s has not ended yet; nothing to reconcile", job_id)
            return job

        succeeded = failed = 0
        for outcome in self.vision.iter_batch_results(job_id):
            try:
                self._reconcile_item(outcome, as_of)
                succeeded += 1
            except Exception as e:
                failed += 1
                logger.warning("Batch %s item %r failed: %s", job_id, outcome.custom_id, e)

        job.status = BatchStatus.ENDED
        job.completed_requests = succeeded
        job.failed_requests = failed
        job.completed_at = _utcnow()
        self.job_store.update(job)
        logger.info("Reconciled batch %s: %d succeeded, %d failed", job_id, succeeded, failed)
        return job

    def _reconcile_item(self, outcome: BatchItemOutcome, as_of: Optional[date]) -> None:
        booking_id = from_correlation_string(outcome.custom_id)
        if not outcome.succeeded or outcome.output is None:
            raise RuntimeError(outcome.error or "provider reported failure")

        booking = self.booking_store.get(booking_id)
        if booking is None:
            raise LookupError(f"Booking {booking_id} not found")

        result = self.interpreter.interpret(outcome.output, booking.license_state, as_of)
        if not result.success:
            raise ValueError(result.error or "uninterpretable output")

        result = attach_name_comparison(result, booking.guest_name)
        self.booking_store.save_verification(booking_id, result, _utcnow(), f"{result.model}:batch")

    def find_backlog(self, limit: Optional[int] = None) -> List[BookingRecord]:
        return self.booking_store.find_unverified(limit)

    def backlog_items(self, limit: Optional[int] = None) -> List[BatchItem]:
        """Backlog bookings shaped as batch items, ready for create_job."""
        return [
            BatchItem(
                correlation_id=booking.id,
                front_image=booking.license_front_url,
                back_image=booking.license_back_url,
                jurisdiction_hint=booking.license_state,
            )
            for booking in self.find_backlog(limit)
        ]
