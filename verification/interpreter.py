import json
import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from config import MINIMUM_RENTAL_AGE
from .jurisdictions import add_years, age_based_expiration, get_profile
from .name_match import parse_name
from .schemas import (
    FIELD_NAMES,
    PHOTO_QUALITY_SCALES,
    Assessment,
    DocumentType,
    ExtractedField,
    ExtractedFields,
    JurisdictionAssessment,
    PhotoQualityAssessment,
    RawOutput,
    SecurityFeatureAssessment,
    VerificationData,
    VerificationResult,
)

logger = logging.getLogger(__name__)

NO_TEXT_FLAG = "Vision model response contained no text content"
DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y", "%Y/%m/%d")

WRONG_DOCUMENT_FLAGS = {
    DocumentType.IDENTIFICATION_CARD: "Document is an identification card, not a driver's license",
    DocumentType.OTHER: "Document is not a driver's license",
}


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Find the first complete JSON object in model output.

    Structured output parses directly; free-form reasoning output may wrap the
    object in prose or code fences, so each '{' is tried in turn.
    """
    stripped = text.strip()
    try:
        parsed = json.loads(stripped)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    start = stripped.find("{")
    while start != -1:
        try:
            parsed, _ = decoder.raw_decode(stripped, start)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass
        start = stripped.find("{", start + 1)
    raise ValueError("No JSON object found in model output")


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def to_bool(val: Any) -> Optional[bool]:
    if isinstance(val, bool):
        return val
    if val is None:
        return None
    if isinstance(val, (int, float)):
        return bool(val)
    s = str(val).strip().lower()
    if s in ("true", "yes", "y", "1"):
        return True
    if s in ("false", "no", "n", "0"):
        return False
    return None


def to_confidence(val: Any) -> int:
    """Coerce a 0-100 confidence; fractions like 0.92 are read as 92."""
    if val is None or isinstance(val, bool):
        return 0
    try:
        v = float(str(val).strip().replace('%', ''))
    except ValueError:
        return 0
    if not math.isfinite(v):
        return 0
    if isinstance(val, float) and 0 < v < 1:
        v = v * 100
    return int(round(max(0.0, min(100.0, v))))


def is_of_age(dob: Optional[date], as_of: date) -> bool:
    if dob is None or dob > as_of:
        return False
    return add_years(dob, MINIMUM_RENTAL_AGE) <= as_of


def _str_list(val: Any) -> List[str]:
    if not isinstance(val, list):
        return []
    return [str(v) for v in val if v is not None and str(v).strip()]


def _text(val: Any) -> Optional[str]:
    if val is None:
        return None
    s = str(val).strip()
    return s or None


def _field(val: Any) -> ExtractedField:
    if not isinstance(val, dict):
        return ExtractedField(value=_text(val))
    return ExtractedField(
        value=_text(val.get("value")),
        confidence=to_confidence(val.get("confidence")),
        raw_text=_text(val.get("raw_text")),
    )


def _enum(enum_cls, val: Any, default=None):
    try:
        return enum_cls(str(val).strip()) if val is not None else default
    except ValueError:
        return default


class ResultInterpreter:
    """
    Turns raw vision model output into a VerificationResult.

    Never raises for bad model output; anything unusable becomes a failure
    result with a single critical flag.
    """

    def interpret(self, raw: RawOutput, jurisdiction_hint: Optional[str] = None,
                  as_of: Optional[date] = None, escalated: bool = False) -> VerificationResult:
        if not raw.text or not raw.text.strip():
            return VerificationResult.failure(NO_TEXT_FLAG, model=raw.model)
        try:
            payload = extract_json_object(raw.text)
        except ValueError as e:
            logger.warning("Unparseable vision output from %s: %s", raw.model, e)
            return VerificationResult.failure(f"Unparseable vision model response: {e}", model=raw.model)
        try:
            return self.from_payload(payload, jurisdiction_hint, as_of or date.today(),
                                     model=raw.model, escalated=escalated)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Malformed vision output from %s: %s", raw.model, e)
            return VerificationResult.failure(f"Malformed vision model response: {e}", model=raw.model)

    def from_payload(self, payload: Dict[str, Any], jurisdiction_hint: Optional[str],
                     as_of: date, model: str = "", escalated: bool = False) -> VerificationResult:
        raw_fields = payload.get("extracted_fields")
        if raw_fields is None:
            raw_fields = {}
        elif not isinstance(raw_fields, dict):
            raise TypeError(f"extracted_fields must be an object, got {type(raw_fields).__name__}")
        fields = ExtractedFields(**{name: _field(raw_fields.get(name)) for name in FIELD_NAMES})

        critical_flags = _str_list(payload.get("critical_flags"))
        informational_flags = _str_list(payload.get("informational_flags"))

        document_type = _enum(DocumentType, payload.get("document_type"))
        wrong_document = WRONG_DOCUMENT_FLAGS.get(document_type)
        if wrong_document and wrong_document not in critical_flags:
            critical_flags.append(wrong_document)

        jurisdiction = jurisdiction_hint or fields.issuing_jurisdiction.value
        dob = parse_date(fields.date_of_birth.value)
        expiration, computed = self.resolve_expiration(fields, jurisdiction, dob)
        if expiration is not None:
            is_expired = expiration < as_of
        else:
            is_expired = bool(to_bool(payload.get("is_expired")))

        parsed = parse_name(fields.full_name.value)
        data = VerificationData(
            full_name=fields.full_name.value,
            first_name=parsed.first or None,
            last_name=parsed.last or None,
            date_of_birth=dob.isoformat() if dob else fields.date_of_birth.value,
            license_number=fields.license_number.value,
            expiration_date=expiration.isoformat() if expiration else fields.expiration_date.value,
            issuing_jurisdiction=fields.issuing_jurisdiction.value,
            address=fields.address.value,
            expiration_computed=computed,
        )

        return VerificationResult(
            success=True,
            confidence=to_confidence(payload.get("confidence")),
            document_type=document_type,
            data=data,
            extracted_fields=fields,
            security_features=self._security(payload.get("security_features")),
            photo_quality=self._photo_quality(payload.get("photo_quality")),
            jurisdiction_checks=self._jurisdiction_checks(payload.get("jurisdiction_checks")),
            is_expired=is_expired,
            is_authentic=bool(to_bool(payload.get("is_authentic"))),
            age_valid=is_of_age(dob, as_of),
            critical_flags=critical_flags,
            informational_flags=informational_flags,
            model=model,
            escalated=escalated,
        )

    @staticmethod
    def resolve_expiration(fields: ExtractedFields, jurisdiction: Optional[str],
                           dob: Optional[date]):
        """Printed expiration if readable, else the jurisdiction's age-based date."""
        printed = parse_date(fields.expiration_date.value)
        if printed is not None:
            return printed, False
        profile = get_profile(jurisdiction)
        if dob is not None and profile.age_based:
            computed = age_based_expiration(profile, dob)
            if computed is not None:
                return computed, True
        return None, False

    @staticmethod
    def _security(val: Any) -> SecurityFeatureAssessment:
        val = val if isinstance(val, dict) else {}
        assessment = val.get("assessment")
        return SecurityFeatureAssessment(
            detected=_str_list(val.get("detected")),
            not_detected=_str_list(val.get("not_detected")),
            obscured=_str_list(val.get("obscured")),
            assessment=_enum(Assessment, assessment.upper() if isinstance(assessment, str) else None,
                             Assessment.REVIEW),
        )

    @staticmethod
    def _photo_quality(val: Any) -> PhotoQualityAssessment:
        val = val if isinstance(val, dict) else {}
        ratings = {}
        for name, scale in PHOTO_QUALITY_SCALES.items():
            rating = val.get(name)
            ratings[name] = rating if rating in scale else None
        return PhotoQualityAssessment(**ratings)

    @staticmethod
    def _jurisdiction_checks(val: Any) -> JurisdictionAssessment:
        val = val if isinstance(val, dict) else {}
        return JurisdictionAssessment(
            format_valid=bool(to_bool(val.get("format_valid"))),
            expiration_normal=bool(to_bool(val.get("expiration_normal"))),
            card_orientation=_text(val.get("card_orientation")),
            real_id_compliant=to_bool(val.get("real_id_compliant")),
            notes=_text(val.get("notes")) or "",
        )
