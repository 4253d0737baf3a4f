import copy
import json
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest

from config import Settings
from verification.request_builder import RequestBuilder
from verification.schemas import (
    AnalysisRequest,
    BatchItemOutcome,
    BookingRecord,
    ProviderBatchStatus,
    RawOutput,
)
from verification.stores import InMemoryBookingStore, InMemoryJobStore
from verification.vision import VisionModelService

AS_OF = date(2026, 10, 17)
FRONT_URL = "https://images.example.com/licenses/front.jpg"
BACK_URL = "https://images.example.com/licenses/back.jpg"

BASE_PAYLOAD: Dict[str, Any] = {
    "document_type": "drivers_license",
    "confidence": 92,
    "extracted_fields": {
        "full_name": {"value": "JOHN ALLEN DOE", "confidence": 95, "raw_text": "DOE JOHN ALLEN"},
        "date_of_birth": {"value": "1986-03-01", "confidence": 96, "raw_text": "03/01/1986"},
        "expiration_date": {"value": "2030-03-01", "confidence": 94, "raw_text": "03/01/2030"},
        "license_number": {"value": "D12345678", "confidence": 93, "raw_text": "D12345678"},
        "issuing_jurisdiction": {"value": "AZ", "confidence": 99, "raw_text": "ARIZONA"},
        "address": {"value": "123 MAIN ST PHOENIX AZ 85001", "confidence": 88, "raw_text": "123 MAIN ST"},
    },
    "security_features": {
        "detected": ["ghost portrait", "state seal hologram"],
        "not_detected": ["microprint border"],
        "obscured": [],
        "assessment": "PASS",
    },
    "photo_quality": {
        "lighting": "good",
        "angle": "slight_tilt",
        "focus": "clear",
        "glare": "minor",
        "cropping": "full_card",
    },
    "jurisdiction_checks": {
        "format_valid": True,
        "expiration_normal": True,
        "card_orientation": "horizontal",
        "real_id_compliant": True,
        "notes": "",
    },
    "is_expired": False,
    "is_authentic": True,
    "critical_flags": [],
    "informational_flags": [],
}


def make_payload(**overrides: Any) -> Dict[str, Any]:
    payload = copy.deepcopy(BASE_PAYLOAD)
    fields = overrides.pop("fields", {})
    for name, value in fields.items():
        payload["extracted_fields"][name].update(value)
    payload.update(overrides)
    return payload


def raw_output(payload: Any, model: str = "gpt-4.1-mini") -> RawOutput:
    text = payload if isinstance(payload, str) or payload is None else json.dumps(payload)
    return RawOutput(text=text, model=model)


class FakeVisionService(VisionModelService):
    """Returns canned outputs in order; exceptions in the queue are raised."""

    def __init__(self, responses: Iterable[Any] = (),
                 batch_outcomes: Iterable[BatchItemOutcome] = (),
                 batch_ended: bool = True):
        self.responses: List[Any] = list(responses)
        self.requests: List[AnalysisRequest] = []
        self.batch_outcomes = list(batch_outcomes)
        self.batch_ended = batch_ended
        self.submitted: List[Tuple[str, AnalysisRequest]] = []
        self.metadata: Optional[Dict[str, str]] = None

    def analyze(self, request: AnalysisRequest) -> RawOutput:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, RawOutput):
            return response
        return raw_output(response, model=request.model)

    def submit_batch(self, items, metadata=None) -> ProviderBatchStatus:
        self.submitted = list(items)
        self.metadata = metadata
        return ProviderBatchStatus(id="batch_abc123", ended=False, total=len(self.submitted))

    def retrieve_batch(self, batch_id: str) -> ProviderBatchStatus:
        failed = sum(1 for o in self.batch_outcomes if not o.succeeded)
        return ProviderBatchStatus(
            id=batch_id,
            ended=self.batch_ended,
            total=len(self.batch_outcomes),
            completed=len(self.batch_outcomes) - failed,
            failed=failed,
        )

    def iter_batch_results(self, batch_id: str):
        for outcome in self.batch_outcomes:
            yield outcome


@pytest.fixture
def settings() -> Settings:
    return Settings(OPENAI_API_KEY="sk-test", OPENAI_MODEL="gpt-4.1-mini", ESCALATION_MODEL="o4-mini")


@pytest.fixture
def builder(settings) -> RequestBuilder:
    return RequestBuilder(settings)


@pytest.fixture
def booking_store() -> InMemoryBookingStore:
    return InMemoryBookingStore([
        BookingRecord(id="b1", guest_name="John Doe", license_front_url=FRONT_URL,
                      license_back_url=BACK_URL, license_state="AZ"),
        BookingRecord(id="b2", guest_name="Maria Garcia", license_front_url=FRONT_URL, license_state="CA"),
        BookingRecord(id="b3", guest_name="Sam Lee", license_front_url=FRONT_URL, license_state="TX"),
        BookingRecord(id="b4", guest_name="Ana Ruiz", license_front_url=FRONT_URL),
        BookingRecord(id="no-docs", guest_name="Pat Kim"),
    ])


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()
