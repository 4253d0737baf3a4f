import json
from datetime import date
from typing import Any, Dict, List, Optional

from config import Settings, get_settings
from .images import ImageTransformService
from .jurisdictions import render_reference, render_rules
from .schemas import (
    FIELD_NAMES,
    PHOTO_QUALITY_SCALES,
    AnalysisRequest,
    Assessment,
    ContentBlock,
    DocumentType,
    ImageBlock,
    TextBlock,
    VerificationRequest,
)

SYSTEM_PROMPT = """
You are a driver's license verification system for a car rental marketplace.
You examine phone photos of a US driver's license, extract the identity fields,
assess authenticity and photo quality, and report anomalies.

PHOTO CONDITIONS:
- These are ordinary phone-camera photos. Mild blur, glare, shadows, tilt,
  wear, scratches and lamination reflections are expected.
- NEVER raise a flag for ordinary photo artifacts. Describe them only in photo_quality.
- A security feature you cannot see may simply be below the photo's resolution.
  Put it in not_detected or obscured; absence alone is not suspicious.

DOCUMENT TYPE:
- The words "NOT VALID FOR OFFICIAL FEDERAL PURPOSES" or "FEDERAL LIMITS APPLY"
  are normal boilerplate on non-REAL ID licenses. NEVER flag them.
- A card that says "IDENTIFICATION CARD" (or "ID CARD") instead of
  "DRIVER LICENSE" is not a driving credential. Set document_type to
  "identification_card" and add a critical flag. This is a hard rejection.

EXPIRATION:
- Report expiration_date exactly as printed, as YYYY-MM-DD.
- NEVER invent an expiration date that is not printed on the card.
- If the expiration field is blank and the jurisdiction rules define an
  age-based expiration, compute it (date of birth + the stated age) to decide
  is_expired, and say so in jurisdiction_checks.notes. Leave expiration_date.value empty.

NAMES:
- full_name.value must be in natural order: "FIRST MIDDLE LAST", whatever the
  field order on the card. Keep the literal text in full_name.raw_text.

FLAGS:
- critical_flags: blocking problems only (wrong document type, signs of
  tampering or fabrication, unreadable identity fields, photo of a screen or photocopy).
- informational_flags: anything a reviewer should see but that does not disqualify.

CONFIDENCE:
- confidence is 0-100 for the overall assessment; each field carries its own
  0-100 confidence even when its value is empty.
""".strip()

ESCALATION_INSTRUCTIONS = """
A first review of this license was not confident. Re-examine every image
carefully, reason about each field, then answer with exactly one JSON object
that conforms to the schema below. Do not wrap it in prose.
""".strip()


def _nullable(kind: str) -> Dict[str, Any]:
    return {"type": [kind, "null"]}


def _strict_object(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def _string_list() -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}}


def build_output_schema() -> Dict[str, Any]:
    """Strict JSON schema every model answer must conform to"""
    extracted_field = _strict_object({
        "value": _nullable("string"),
        "confidence": {"type": "integer", "minimum": 0, "maximum": 100},
        "raw_text": _nullable("string"),
    })
    return _strict_object({
        "document_type": {"type": "string", "enum": [t.value for t in DocumentType]},
        "confidence": {"type": "integer", "minimum": 0, "maximum": 100},
        "extracted_fields": _strict_object({name: extracted_field for name in FIELD_NAMES}),
        "security_features": _strict_object({
            "detected": _string_list(),
            "not_detected": _string_list(),
            "obscured": _string_list(),
            "assessment": {"type": "string", "enum": [a.value for a in Assessment]},
        }),
        "photo_quality": _strict_object({
            name: {"type": "string", "enum": scale}
            for name, scale in PHOTO_QUALITY_SCALES.items()
        }),
        "jurisdiction_checks": _strict_object({
            "format_valid": {"type": "boolean"},
            "expiration_normal": {"type": "boolean"},
            "card_orientation": {"type": "string", "enum": ["horizontal", "vertical"]},
            "real_id_compliant": _nullable("boolean"),
            "notes": {"type": "string"},
        }),
        "is_expired": {"type": "boolean"},
        "is_authentic": {"type": "boolean"},
        "critical_flags": _string_list(),
        "informational_flags": _string_list(),
    })


class RequestBuilder:
    """
    Assembles the request for one license: images first (front, then back),
    then the per-document instructions, with a stable system prefix that can
    be cached across requests.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 image_transformer: Optional[ImageTransformService] = None):
        self.settings = settings or get_settings()
        self.image_transformer = image_transformer or ImageTransformService(self.settings)
        self.output_schema = build_output_schema()
        self.system_prompt = f"{SYSTEM_PROMPT}\n\n{render_reference()}"

    def build_content(self, front_image: str, back_image: Optional[str],
                      jurisdiction_hint: Optional[str], as_of: date) -> List[ContentBlock]:
        content: List[ContentBlock] = [
            TextBlock(text="FRONT of license:"),
            ImageBlock(url=self.image_transformer.transform(front_image), label="front"),
        ]
        if back_image:
            content.append(TextBlock(text="BACK of license:"))
            content.append(ImageBlock(url=self.image_transformer.transform(back_image), label="back"))
        content.append(TextBlock(text=self.build_instructions(jurisdiction_hint, as_of, bool(back_image))))
        return content

    def build_instructions(self, jurisdiction_hint: Optional[str], as_of: date, has_back: bool) -> str:
        sides = "front and back" if has_back else "front only"
        return "\n\n".join([
            f"Today's date is {as_of.isoformat()}. Use it to decide whether the license is expired.",
            f"Images provided: {sides}.",
            render_rules(jurisdiction_hint),
            "Analyze the license above and fill in every field of the response schema.",
        ])

    def build(self, front_image: str, back_image: Optional[str] = None,
              jurisdiction_hint: Optional[str] = None,
              as_of: Optional[date] = None) -> VerificationRequest:
        as_of = as_of or date.today()
        content = self.build_content(front_image, back_image, jurisdiction_hint, as_of)

        primary = AnalysisRequest(
            system_prompt=self.system_prompt,
            content=content,
            model=self.settings.OPENAI_MODEL,
            max_output_tokens=self.settings.PRIMARY_MAX_TOKENS,
            output_schema=self.output_schema,
        )
        escalation = AnalysisRequest(
            system_prompt=self.system_prompt,
            content=content + [TextBlock(text=self.escalation_suffix())],
            model=self.settings.ESCALATION_MODEL,
            max_output_tokens=self.settings.ESCALATION_MAX_TOKENS,
            reasoning_effort=self.settings.ESCALATION_REASONING_EFFORT,
        )
        return VerificationRequest(
            primary=primary,
            escalation=escalation,
            jurisdiction_hint=jurisdiction_hint,
            as_of=as_of,
        )

    def escalation_suffix(self) -> str:
        return f"{ESCALATION_INSTRUCTIONS}\n\n{json.dumps(self.output_schema, indent=2)}"
