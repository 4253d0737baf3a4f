import logging
from typing import Optional

from config import ESCALATION_CONFIDENCE_THRESHOLD
from .interpreter import ResultInterpreter
from .schemas import VerificationRequest, VerificationResult
from .vision import VisionModelService

logger = logging.getLogger(__name__)


def should_escalate(result: VerificationResult) -> bool:
    """Low confidence with no critical flags: the model is unsure, not alarmed."""
    return (
        result.success
        and result.confidence < ESCALATION_CONFIDENCE_THRESHOLD
        and not result.critical_flags
    )


class DocumentExtractor:
    """
    Runs a verification request against the vision model.

    A schema-constrained primary pass always runs first. When it comes back
    unsure without raising anything critical, one reasoning pass is tried and
    kept only if it is strictly more confident.
    """

    def __init__(self, vision: VisionModelService, interpreter: Optional[ResultInterpreter] = None):
        self.vision = vision
        self.interpreter = interpreter or ResultInterpreter()

    def verify(self, request: VerificationRequest) -> VerificationResult:
        try:
            raw = self.vision.analyze(request.primary)
        except Exception as e:
            logger.error("Primary license analysis failed: %s", e)
            return VerificationResult.failure(f"Vision model request failed: {e}", model=request.primary.model)

        result = self.interpreter.interpret(raw, request.jurisdiction_hint, request.as_of)
        if not should_escalate(result):
            return result
        return self.escalate(request, result)

    def escalate(self, request: VerificationRequest, primary: VerificationResult) -> VerificationResult:
        logger.info(
            "Escalating license analysis: confidence %d below %d with no critical flags",
            primary.confidence, ESCALATION_CONFIDENCE_THRESHOLD,
        )
        try:
            raw = self.vision.analyze(request.escalation)
            escalated = self.interpreter.interpret(raw, request.jurisdiction_hint, request.as_of, escalated=True)
        except Exception as e:
            logger.warning("Escalated analysis failed, keeping primary result: %s", e)
            return primary

        if escalated.success and escalated.confidence > primary.confidence:
            logger.info("Escalation raised confidence %d -> %d", primary.confidence, escalated.confidence)
            return escalated

        logger.info(
            "Escalation did not improve confidence (%d vs %d), keeping primary result",
            escalated.confidence, primary.confidence,
        )
        return primary
