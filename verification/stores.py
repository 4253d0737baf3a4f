"""
Persistence boundaries.

The booking database and job tracking table belong to the surrounding
system. These interfaces describe the reads and writes the verification
core makes; the in-memory versions back local runs and tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from .schemas import BatchJob, BookingRecord, VerificationResult


class BookingStore(ABC):
    @abstractmethod
    def get(self, booking_id: str) -> Optional[BookingRecord]:
        raise NotImplementedError

    @abstractmethod
    def save_verification(self, booking_id: str, result: VerificationResult,
                          verified_at: datetime, model: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def find_unverified(self, limit: Optional[int] = None) -> List[BookingRecord]:
        """Bookings with license photos submitted but no verification result."""
        raise NotImplementedError


class JobStore(ABC):
    @abstractmethod
    def create(self, job: BatchJob) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, job_id: str) -> BatchJob:
        raise NotImplementedError

    @abstractmethod
    def update(self, job: BatchJob) -> None:
        raise NotImplementedError


class InMemoryBookingStore(BookingStore):
    def __init__(self, bookings: Optional[List[BookingRecord]] = None):
        self._bookings: Dict[str, BookingRecord] = {b.id: b for b in bookings or []}

    def add(self, booking: BookingRecord) -> None:
        self._bookings[booking.id] = booking

    def get(self, booking_id: str) -> Optional[BookingRecord]:
        return self._bookings.get(booking_id)

    def save_verification(self, booking_id: str, result: VerificationResult,
                          verified_at: datetime, model: str) -> None:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise KeyError(f"Unknown booking: {booking_id}")
        self._bookings[booking_id] = booking.model_copy(update={
            "verification_result": result,
            "verification_score": result.confidence,
            "verified_at": verified_at,
            "verification_model": model,
        })

    def find_unverified(self, limit: Optional[int] = None) -> List[BookingRecord]:
        pending = [
            b for b in self._bookings.values()
            if b.has_documents and b.verification_result is None
        ]
        return pending[:limit] if limit is not None else pending


class InMemoryJobStore(JobStore):
    def __init__(self):
        self._jobs: Dict[str, BatchJob] = {}

    def create(self, job: BatchJob) -> None:
        self._jobs[job.id] = job.model_copy()

    def get(self, job_id: str) -> BatchJob:
        if job_id not in self._jobs:
            raise KeyError(f"Unknown batch job: {job_id}")
        return self._jobs[job_id].model_copy()

    def update(self, job: BatchJob) -> None:
        if job.id not in self._jobs:
            raise KeyError(f"Unknown batch job: {job.id}")
        self._jobs[job.id] = job.model_copy()
