import json

import pytest

from conftest import AS_OF, BACK_URL, FRONT_URL, FakeVisionService, make_payload
from verification.extractor import DocumentExtractor, should_escalate
from verification.schemas import RawOutput, VerificationResult


@pytest.fixture
def request_(builder):
    return builder.build(FRONT_URL, BACK_URL, "AZ", AS_OF)


def _free_form(payload):
    return f"After careful review:\n{json.dumps(payload)}\nThat is my assessment."


def test_confident_primary_does_not_escalate(request_):
    vision = FakeVisionService([make_payload(confidence=88)])
    result = DocumentExtractor(vision).verify(request_)

    assert result.confidence == 88
    assert result.escalated is False
    assert len(vision.requests) == 1
    assert vision.requests[0] is request_.primary


@pytest.mark.parametrize("confidence", [0, 30, 69])
def test_never_escalates_with_critical_flags(request_, confidence):
    payload = make_payload(confidence=confidence, critical_flags=["Photo of a screen"])
    vision = FakeVisionService([payload])
    result = DocumentExtractor(vision).verify(request_)

    assert len(vision.requests) == 1
    assert result.confidence == confidence
    assert result.critical_flags == ["Photo of a screen"]


def test_identification_card_blocks_escalation(request_):
    vision = FakeVisionService([make_payload(confidence=40, document_type="identification_card")])
    DocumentExtractor(vision).verify(request_)
    assert len(vision.requests) == 1


def test_low_confidence_escalates_and_higher_result_wins(request_):
    vision = FakeVisionService([
        make_payload(confidence=55),
        _free_form(make_payload(confidence=84, informational_flags=["Minor wear"])),
    ])
    result = DocumentExtractor(vision).verify(request_)

    assert len(vision.requests) == 2
    assert vision.requests[1] is request_.escalation
    assert result.escalated is True
    assert result.confidence == 84
    assert result.model == "o4-mini"
    assert result.model_path == "o4-mini+escalated"
    assert result.informational_flags == ["Minor wear"]


def test_tie_keeps_primary(request_):
    vision = FakeVisionService([
        make_payload(confidence=65, informational_flags=["primary"]),
        _free_form(make_payload(confidence=65, informational_flags=["escalated"])),
    ])
    result = DocumentExtractor(vision).verify(request_)

    assert len(vision.requests) == 2
    assert result.escalated is False
    assert result.informational_flags == ["primary"]


def test_lower_escalated_confidence_keeps_primary(request_):
    vision = FakeVisionService([make_payload(confidence=60), _free_form(make_payload(confidence=45))])
    result = DocumentExtractor(vision).verify(request_)
    assert result.confidence == 60
    assert result.escalated is False


def test_escalation_transport_error_is_swallowed(request_):
    vision = FakeVisionService([make_payload(confidence=50), TimeoutError("read timed out")])
    result = DocumentExtractor(vision).verify(request_)

    assert result.success is True
    assert result.confidence == 50
    assert result.error is None


def test_unparseable_escalation_keeps_primary(request_):
    vision = FakeVisionService([make_payload(confidence=50), "I am not able to read this card."])
    result = DocumentExtractor(vision).verify(request_)
    assert result.success is True
    assert result.confidence == 50
    assert result.critical_flags == []


def test_at_most_one_escalation(request_):
    vision = FakeVisionService([make_payload(confidence=20), _free_form(make_payload(confidence=30))])
    result = DocumentExtractor(vision).verify(request_)
    assert len(vision.requests) == 2
    assert result.confidence == 30


def test_primary_transport_failure_becomes_result(request_):
    vision = FakeVisionService([ConnectionError("connection reset")])
    result = DocumentExtractor(vision).verify(request_)

    assert result.success is False
    assert result.confidence == 0
    assert len(result.critical_flags) == 1
    assert "connection reset" in result.critical_flags[0]
    assert len(vision.requests) == 1


def test_primary_without_text_does_not_escalate(request_):
    vision = FakeVisionService([RawOutput(text=None, model="gpt-4.1-mini")])
    result = DocumentExtractor(vision).verify(request_)
    assert result.success is False
    assert len(vision.requests) == 1


def test_should_escalate():
    assert should_escalate(VerificationResult(success=True, confidence=69))
    assert not should_escalate(VerificationResult(success=True, confidence=70))
    assert not should_escalate(VerificationResult(success=True, confidence=10, critical_flags=["x"]))
    assert not should_escalate(VerificationResult.failure("boom"))


@pytest.mark.parametrize("extracted_fields", [["JOHN DOE"], "JOHN DOE", 42])
def test_misshapen_primary_output_becomes_failure(request_, extracted_fields):
    vision = FakeVisionService([make_payload(extracted_fields=extracted_fields)])
    result = DocumentExtractor(vision).verify(request_)

    assert result.success is False
    assert result.confidence == 0
    assert "Malformed" in result.error
    assert len(vision.requests) == 1


def test_misshapen_escalation_output_keeps_primary(request_):
    vision = FakeVisionService([
        make_payload(confidence=50),
        _free_form(make_payload(confidence=90, extracted_fields="garbled")),
    ])
    result = DocumentExtractor(vision).verify(request_)

    assert len(vision.requests) == 2
    assert result.success is True
    assert result.confidence == 50
    assert result.escalated is False
