import logging
from datetime import date, datetime, timezone
from typing import Optional

from .extractor import DocumentExtractor
from .name_match import compare_names
from .request_builder import RequestBuilder
from .schemas import VerificationResult
from .stores import BookingStore
from .vision import VisionModelService

logger = logging.getLogger(__name__)


def attach_name_comparison(result: VerificationResult, booking_name: Optional[str]) -> VerificationResult:
    """Compare the license name with the reservation name, when both exist."""
    if not booking_name or not result.success:
        return result
    comparison = compare_names(result.data.full_name, booking_name)
    if not comparison.match:
        logger.info("Name mismatch: %s", comparison.mismatch_details)
    return result.model_copy(update={"name_comparison": comparison})


def run_pipeline(vision: VisionModelService,
                 front_image: str,
                 back_image: Optional[str] = None,
                 jurisdiction_hint: Optional[str] = None,
                 booking_name: Optional[str] = None,
                 as_of: Optional[date] = None,
                 builder: Optional[RequestBuilder] = None) -> VerificationResult:
    """
    Verify one driver's license synchronously.

    Args:
        vision: Vision model service to analyze with
        front_image: Front of the license (URL, data URL or local path)
        back_image: Optional back of the license
        jurisdiction_hint: Issuing state code or name, if the caller knows it
        booking_name: Reservation name to compare against the license name
        as_of: Date expiration is judged against; defaults to today

    Returns:
        VerificationResult. Provider and parsing failures come back as
        ``success=False`` results, never as exceptions.
    """
    builder = builder or RequestBuilder()
    extractor = DocumentExtractor(vision)

    request = builder.build(front_image, back_image, jurisdiction_hint, as_of)
    result = extractor.verify(request)
    return attach_name_comparison(result, booking_name)


def verify_booking(booking_id: str,
                   booking_store: BookingStore,
                   vision: VisionModelService,
                   as_of: Optional[date] = None,
                   builder: Optional[RequestBuilder] = None) -> VerificationResult:
    """Verify the license photos on a booking and write the result back to it."""
    booking = booking_store.get(booking_id)
    if booking is None:
        raise KeyError(f"Unknown booking: {booking_id}")
    if not booking.has_documents:
        raise ValueError(f"Booking {booking_id} has no license photos")

    result = run_pipeline(
        vision,
        front_image=booking.license_front_url,
        back_image=booking.license_back_url,
        jurisdiction_hint=booking.license_state,
        booking_name=booking.guest_name,
        as_of=as_of,
        builder=builder,
    )

    # Failed attempts stay in the backlog so the next batch retries them
    if result.success:
        booking_store.save_verification(booking_id, result, datetime.now(timezone.utc), result.model_path)
    else:
        logger.warning("Verification of booking %s failed: %s", booking_id, result.error)
    return result
