import pytest

from conftest import AS_OF, BACK_URL, FRONT_URL, FakeVisionService, make_payload
from verification.run_pipeline import attach_name_comparison, run_pipeline, verify_booking
from verification.schemas import ImageBlock, VerificationResult
from verification.stores import BookingStore, JobStore


def test_arizona_license_without_printed_expiration(builder):
    payload = make_payload(fields={"expiration_date": {"value": None, "raw_text": ""}})
    vision = FakeVisionService([payload])

    result = run_pipeline(vision, FRONT_URL, BACK_URL, jurisdiction_hint="AZ", as_of=AS_OF, builder=builder)

    request = vision.requests[0]
    assert len([b for b in request.content if isinstance(b, ImageBlock)]) == 2
    assert "date of birth + 65 years" in request.content[-1].text
    assert result.data.expiration_date == "2051-03-01"
    assert result.data.expiration_computed is True
    assert result.is_expired is False
    assert result.is_valid is True
    assert result.name_comparison is None


def test_booking_name_is_compared(builder):
    vision = FakeVisionService([make_payload()])
    result = run_pipeline(vision, FRONT_URL, booking_name="John Doe", as_of=AS_OF, builder=builder)
    assert result.name_comparison.match is True
    assert result.name_comparison.strategy == "natural_order"


def test_name_comparison_skipped_for_failures():
    failed = VerificationResult.failure("no response")
    assert attach_name_comparison(failed, "John Doe") is failed
    ok = VerificationResult(success=True, confidence=90)
    assert attach_name_comparison(ok, None) is ok
    assert attach_name_comparison(ok, "").name_comparison is None


def test_verify_booking_persists_result(booking_store, builder):
    vision = FakeVisionService([make_payload()])

    result = verify_booking("b1", booking_store, vision, as_of=AS_OF, builder=builder)

    booking = booking_store.get("b1")
    assert booking.verification_result == result
    assert booking.verification_score == 92
    assert booking.verification_model == "gpt-4.1-mini"
    assert booking.verified_at is not None
    assert result.name_comparison.match is True
    assert "Arizona (AZ)" in vision.requests[0].content[-1].text


def test_verify_booking_records_escalated_path(booking_store, builder):
    vision = FakeVisionService([make_payload(confidence=50), make_payload(confidence=80)])
    verify_booking("b2", booking_store, vision, as_of=AS_OF, builder=builder)
    assert booking_store.get("b2").verification_model == "o4-mini+escalated"


def test_failed_verification_stays_in_backlog(booking_store, builder):
    vision = FakeVisionService([ConnectionError("reset by peer")])

    result = verify_booking("b1", booking_store, vision, as_of=AS_OF, builder=builder)

    assert result.success is False
    assert booking_store.get("b1").verification_result is None
    assert "b1" in [b.id for b in booking_store.find_unverified()]


def test_verify_booking_unknown_or_without_documents(booking_store, builder):
    vision = FakeVisionService()
    with pytest.raises(KeyError):
        verify_booking("missing", booking_store, vision, builder=builder)
    with pytest.raises(ValueError):
        verify_booking("no-docs", booking_store, vision, builder=builder)
    assert vision.requests == []


def test_incomplete_store_cannot_be_constructed():
    class ReadOnlyBookings(BookingStore):
        def get(self, booking_id):
            return None

    with pytest.raises(TypeError):
        ReadOnlyBookings()
    with pytest.raises(TypeError):
        JobStore()
