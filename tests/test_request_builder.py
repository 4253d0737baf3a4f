import json

from conftest import AS_OF, BACK_URL, FRONT_URL
from verification.request_builder import build_output_schema
from verification.schemas import FIELD_NAMES, ImageBlock, TextBlock


def _walk_objects(schema):
    if schema.get("type") == "object":
        yield schema
        for child in schema["properties"].values():
            yield from _walk_objects(child)


def test_images_precede_instructions_front_before_back(builder):
    request = builder.build(FRONT_URL, BACK_URL, "AZ", AS_OF)
    content = request.primary.content

    images = [b for b in content if isinstance(b, ImageBlock)]
    assert [b.label for b in images] == ["front", "back"]
    assert [b.url for b in images] == [FRONT_URL, BACK_URL]

    last_image = max(i for i, b in enumerate(content) if isinstance(b, ImageBlock))
    instructions = content[-1]
    assert isinstance(instructions, TextBlock)
    assert last_image < len(content) - 1
    assert "2026-10-17" in instructions.text
    assert "Arizona (AZ)" in instructions.text


def test_front_only(builder):
    request = builder.build(FRONT_URL, None, None, AS_OF)
    images = [b for b in request.primary.content if isinstance(b, ImageBlock)]
    assert len(images) == 1
    assert "front only" in request.primary.content[-1].text
    assert "generic 4-8 year validity" in request.primary.content[-1].text


def test_primary_and_escalation_passes(builder, settings):
    request = builder.build(FRONT_URL, BACK_URL, "AZ", AS_OF)

    assert request.primary.structured
    assert request.primary.reasoning_effort is None
    assert request.primary.model == settings.OPENAI_MODEL

    assert not request.escalation.structured
    assert request.escalation.reasoning_effort == settings.ESCALATION_REASONING_EFFORT
    assert request.escalation.max_output_tokens > request.primary.max_output_tokens
    assert request.escalation.content[:-1] == request.primary.content
    assert '"extracted_fields"' in request.escalation.content[-1].text

    assert request.jurisdiction_hint == "AZ"
    assert request.as_of == AS_OF


def test_system_prompt_policy(builder):
    prompt = builder.system_prompt
    assert "NOT VALID FOR OFFICIAL FEDERAL PURPOSES" in prompt
    assert "IDENTIFICATION CARD" in prompt
    assert "NEVER invent an expiration date" in prompt
    assert "FIRST MIDDLE LAST" in prompt
    assert "JURISDICTION REFERENCE" in prompt


def test_cloudinary_images_are_transformed(builder):
    url = "https://res.cloudinary.com/demo/image/upload/v1/licenses/front.jpg"
    request = builder.build(url, None, None, AS_OF)
    image = next(b for b in request.primary.content if isinstance(b, ImageBlock))
    assert "/image/upload/c_limit,w_1600,h_1600,q_85,f_jpg/v1/licenses/front.jpg" in image.url


def test_output_schema_is_strict():
    schema = build_output_schema()
    for obj in _walk_objects(schema):
        assert obj["additionalProperties"] is False
        assert set(obj["required"]) == set(obj["properties"])
    assert set(schema["properties"]["extracted_fields"]["properties"]) == set(FIELD_NAMES)
    json.dumps(schema)


def test_output_schema_enumerates_ordinals():
    props = build_output_schema()["properties"]
    quality = props["photo_quality"]["properties"]
    assert quality["glare"]["enum"] == ["none", "minor", "severe"]
    assert quality["cropping"]["enum"] == ["full_card", "partial", "cut_off"]
    assert props["security_features"]["properties"]["assessment"]["enum"] == ["PASS", "REVIEW", "FAIL"]
    assert "identification_card" in props["document_type"]["enum"]
