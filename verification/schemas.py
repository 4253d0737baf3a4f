from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from config import VALIDITY_CONFIDENCE_THRESHOLD


# ------------------------
# Request content
# ------------------------
class TextBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImageBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["image"] = "image"
    url: str
    label: str = ""


ContentBlock = Annotated[Union[TextBlock, ImageBlock], Field(discriminator="type")]


class AnalysisRequest(BaseModel):
    """One call to the vision model: a cacheable instruction prefix plus per-document content."""

    model_config = ConfigDict(frozen=True)

    system_prompt: str
    content: List[ContentBlock]
    model: str
    max_output_tokens: int
    # None means schema-constrained decoding without extended reasoning
    reasoning_effort: Optional[str] = None
    output_schema: Optional[Dict[str, Any]] = None

    @property
    def structured(self) -> bool:
        return self.output_schema is not None


class VerificationRequest(BaseModel):
    """Everything needed to verify one document and interpret the answer."""

    model_config = ConfigDict(frozen=True)

    primary: AnalysisRequest
    escalation: AnalysisRequest
    jurisdiction_hint: Optional[str] = None
    as_of: date


class RawOutput(BaseModel):
    """What came back from the vision model, before any interpretation."""

    text: Optional[str] = None
    model: str = ""
    usage: Dict[str, int] = Field(default_factory=dict)


# ------------------------
# Extraction
# ------------------------
class ExtractedField(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: Optional[str] = None
    confidence: int = 0
    raw_text: Optional[str] = None


class ExtractedFields(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: ExtractedField = ExtractedField()
    date_of_birth: ExtractedField = ExtractedField()
    expiration_date: ExtractedField = ExtractedField()
    license_number: ExtractedField = ExtractedField()
    issuing_jurisdiction: ExtractedField = ExtractedField()
    address: ExtractedField = ExtractedField()


FIELD_NAMES = tuple(ExtractedFields.model_fields)


class Assessment(str, Enum):
    PASS = "PASS"
    REVIEW = "REVIEW"
    FAIL = "FAIL"


class SecurityFeatureAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    detected: List[str] = Field(default_factory=list)
    not_detected: List[str] = Field(default_factory=list)
    obscured: List[str] = Field(default_factory=list)
    assessment: Assessment = Assessment.REVIEW


PHOTO_QUALITY_SCALES: Dict[str, List[str]] = {
    "lighting": ["good", "adequate", "poor"],
    "angle": ["straight", "slight_tilt", "severe_tilt"],
    "focus": ["clear", "slightly_blurry", "blurry"],
    "glare": ["none", "minor", "severe"],
    "cropping": ["full_card", "partial", "cut_off"],
}


class PhotoQualityAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    lighting: Optional[str] = None
    angle: Optional[str] = None
    focus: Optional[str] = None
    glare: Optional[str] = None
    cropping: Optional[str] = None


class JurisdictionAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    format_valid: bool = False
    expiration_normal: bool = False
    card_orientation: Optional[str] = None
    real_id_compliant: Optional[bool] = None
    notes: str = ""


class DocumentType(str, Enum):
    DRIVERS_LICENSE = "drivers_license"
    IDENTIFICATION_CARD = "identification_card"
    OTHER = "other"


# ------------------------
# Name matching
# ------------------------
class ParsedName(BaseModel):
    model_config = ConfigDict(frozen=True)

    first: str = ""
    middle: str = ""
    last: str = ""
    raw: str = ""


class NameComparisonResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    match: bool
    document_parsed: ParsedName
    booking_parsed: ParsedName
    strategy: Optional[str] = None
    mismatch_details: Optional[str] = None


# ------------------------
# Verification result
# ------------------------
class VerificationData(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[str] = None
    license_number: Optional[str] = None
    expiration_date: Optional[str] = None
    issuing_jurisdiction: Optional[str] = None
    address: Optional[str] = None
    # True when the expiration date was derived from a jurisdiction rule
    expiration_computed: bool = False


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    confidence: int = 0
    document_type: Optional[DocumentType] = None
    data: VerificationData = VerificationData()
    extracted_fields: ExtractedFields = ExtractedFields()
    security_features: SecurityFeatureAssessment = SecurityFeatureAssessment()
    photo_quality: PhotoQualityAssessment = PhotoQualityAssessment()
    jurisdiction_checks: JurisdictionAssessment = JurisdictionAssessment()
    is_expired: bool = False
    is_authentic: bool = False
    age_valid: bool = False
    critical_flags: List[str] = Field(default_factory=list)
    informational_flags: List[str] = Field(default_factory=list)
    name_comparison: Optional[NameComparisonResult] = None
    model: str = ""
    escalated: bool = False
    error: Optional[str] = None

    @computed_field
    @property
    def red_flags(self) -> List[str]:
        return list(self.critical_flags) + list(self.informational_flags)

    @computed_field
    @property
    def is_valid(self) -> bool:
        return (
            self.is_authentic
            and not self.is_expired
            and self.confidence >= VALIDITY_CONFIDENCE_THRESHOLD
        )

    @property
    def model_path(self) -> str:
        return f"{self.model}+escalated" if self.escalated else self.model

    @classmethod
    def failure(cls, reason: str, model: str = "") -> "VerificationResult":
        return cls(success=False, confidence=0, critical_flags=[reason], error=reason, model=model)


# ------------------------
# Batch
# ------------------------
class BatchStatus(str, Enum):
    PROCESSING = "processing"
    ENDED = "ended"


class BatchItem(BaseModel):
    correlation_id: str
    front_image: str
    back_image: Optional[str] = None
    jurisdiction_hint: Optional[str] = None


class BatchJob(BaseModel):
    id: str
    type: str
    status: BatchStatus = BatchStatus.PROCESSING
    total_requests: int = 0
    completed_requests: int = 0
    failed_requests: int = 0
    estimated_cost: float = 0.0
    created_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime] = None


class ProviderBatchStatus(BaseModel):
    """Point-in-time state of a job as reported by the provider."""

    id: str
    ended: bool
    total: int = 0
    completed: int = 0
    failed: int = 0


class BatchItemOutcome(BaseModel):
    custom_id: str
    succeeded: bool
    output: Optional[RawOutput] = None
    error: Optional[str] = None


# ------------------------
# Bookings
# ------------------------
class BookingRecord(BaseModel):
    id: str
    guest_name: Optional[str] = None
    license_front_url: Optional[str] = None
    license_back_url: Optional[str] = None
    license_state: Optional[str] = None
    verification_result: Optional[VerificationResult] = None
    verification_score: Optional[int] = None
    verified_at: Optional[datetime] = None
    verification_model: Optional[str] = None

    @property
    def has_documents(self) -> bool:
        return bool(self.license_front_url)
