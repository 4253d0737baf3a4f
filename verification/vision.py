"""
Vision model service.

The model is treated as an oracle behind a narrow interface: it takes an
``AnalysisRequest`` and hands back ``RawOutput``. Every policy decision
(thresholds, escalation, flag severity) lives outside this module.
"""

import io
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Tuple

from openai import OpenAI

from config import Settings, get_settings
from .schemas import (
    AnalysisRequest,
    BatchItemOutcome,
    ContentBlock,
    ImageBlock,
    ProviderBatchStatus,
    RawOutput,
    TextBlock,
)

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_ENDPOINT = "/v1/chat/completions"
ENDED_BATCH_STATUSES = {"completed", "failed", "expired", "cancelled"}


class ConfigurationError(RuntimeError):
    """Raised when a service is constructed without the credentials it needs."""


class VisionModelService(ABC):
    """Interface every vision backend (and every test double) implements."""

    @abstractmethod
    def analyze(self, request: AnalysisRequest) -> RawOutput:
        raise NotImplementedError

    @abstractmethod
    def submit_batch(self, items: List[Tuple[str, AnalysisRequest]],
                     metadata: Optional[Dict[str, str]] = None) -> ProviderBatchStatus:
        raise NotImplementedError

    @abstractmethod
    def retrieve_batch(self, batch_id: str) -> ProviderBatchStatus:
        raise NotImplementedError

    @abstractmethod
    def iter_batch_results(self, batch_id: str) -> Iterator[BatchItemOutcome]:
        raise NotImplementedError


def to_openai_part(block: ContentBlock) -> Dict[str, Any]:
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, ImageBlock):
        return {"type": "image_url", "image_url": {"url": block.url, "detail": "high"}}
    raise TypeError(f"Unsupported content block: {type(block).__name__}")


def build_chat_body(request: AnalysisRequest) -> Dict[str, Any]:
    """Chat completions body shared by the real-time and batch paths"""
    body: Dict[str, Any] = {
        "model": request.model,
        "messages": [
            {"role": "system", "content": request.system_prompt},
            {"role": "user", "content": [to_openai_part(b) for b in request.content]},
        ],
        "max_completion_tokens": request.max_output_tokens,
    }
    if request.reasoning_effort:
        body["reasoning_effort"] = request.reasoning_effort
    else:
        body["temperature"] = 0
    if request.output_schema is not None:
        body["response_format"] = {
            "type": "json_schema",
            "json_schema": {
                "name": "license_verification",
                "strict": True,
                "schema": request.output_schema,
            },
        }
    return body


def usage_from(usage: Any) -> Dict[str, int]:
    """Flatten token accounting from either an SDK object or a batch JSON dict"""
    if usage is None:
        return {}
    if not isinstance(usage, dict):
        usage = usage.model_dump()
    prompt_details = usage.get("prompt_tokens_details") or {}
    completion_details = usage.get("completion_tokens_details") or {}
    return {
        "prompt_tokens": usage.get("prompt_tokens") or 0,
        "completion_tokens": usage.get("completion_tokens") or 0,
        "cached_tokens": prompt_details.get("cached_tokens") or 0,
        "reasoning_tokens": completion_details.get("reasoning_tokens") or 0,
    }


def log_usage(raw: RawOutput, path: str) -> None:
    usage = raw.usage
    prompt_tokens = usage.get("prompt_tokens", 0)
    cached = usage.get("cached_tokens", 0)
    hit_rate = (cached / prompt_tokens) if prompt_tokens else 0.0
    logger.info(
        "vision usage path=%s model=%s prompt=%d cached=%d (%.0f%%) completion=%d reasoning=%d",
        path, raw.model, prompt_tokens, cached, hit_rate * 100,
        usage.get("completion_tokens", 0), usage.get("reasoning_tokens", 0),
    )


class OpenAIVisionService(VisionModelService):
    """
    Vision model service backed by the OpenAI chat completions and batch APIs
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[OpenAI] = None):
        settings = settings or get_settings()
        if client is None:
            if not settings.OPENAI_API_KEY:
                raise ConfigurationError("OPENAI_API_KEY is not set; license verification cannot run")
            client = OpenAI(api_key=settings.OPENAI_API_KEY)
        self.client = client
        self.completion_window = settings.BATCH_COMPLETION_WINDOW

    def analyze(self, request: AnalysisRequest) -> RawOutput:
        response = self.client.chat.completions.create(**build_chat_body(request))
        text = None
        if response.choices:
            text = response.choices[0].message.content
        raw = RawOutput(text=text, model=response.model or request.model, usage=usage_from(response.usage))
        log_usage(raw, "structured" if request.structured else "reasoning")
        return raw

    # ------------------------
    # Batch API
    # ------------------------
    def submit_batch(self, items: List[Tuple[str, AnalysisRequest]],
                     metadata: Optional[Dict[str, str]] = None) -> ProviderBatchStatus:
        lines = [
            json.dumps({
                "custom_id": custom_id,
                "method": "POST",
                "url": CHAT_COMPLETIONS_ENDPOINT,
                "body": build_chat_body(request),
            })
            for custom_id, request in items
        ]
        payload = io.BytesIO("\n".join(lines).encode("utf-8"))
        input_file = self.client.files.create(file=("verifications.jsonl", payload), purpose="batch")
        batch = self.client.batches.create(
            input_file_id=input_file.id,
            endpoint=CHAT_COMPLETIONS_ENDPOINT,
            completion_window=self.completion_window,
            metadata=metadata,
        )
        return self._status(batch)

    def retrieve_batch(self, batch_id: str) -> ProviderBatchStatus:
        return self._status(self.client.batches.retrieve(batch_id))

    def iter_batch_results(self, batch_id: str) -> Iterator[BatchItemOutcome]:
        batch = self.client.batches.retrieve(batch_id)
        for file_id in (batch.output_file_id, batch.error_file_id):
            if not file_id:
                continue
            content = self.client.files.content(file_id).text
            for line in content.splitlines():
                if line.strip():
                    yield self._parse_result_line(line)

    def _parse_result_line(self, line: str) -> BatchItemOutcome:
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            return BatchItemOutcome(custom_id="", succeeded=False, error=f"Malformed result line: {e}")

        custom_id = record.get("custom_id") or ""
        error = record.get("error")
        response = record.get("response") or {}
        if error or response.get("status_code") != 200:
            message = (error or {}).get("message") if isinstance(error, dict) else error
            return BatchItemOutcome(
                custom_id=custom_id,
                succeeded=False,
                error=message or f"HTTP {response.get('status_code')}",
            )

        body = response.get("body") or {}
        choices = body.get("choices") or []
        text = choices[0].get("message", {}).get("content") if choices else None
        output = RawOutput(text=text, model=body.get("model", ""), usage=usage_from(body.get("usage")))
        return BatchItemOutcome(custom_id=custom_id, succeeded=True, output=output)

    @staticmethod
    def _status(batch: Any) -> ProviderBatchStatus:
        counts = batch.request_counts
        return ProviderBatchStatus(
            id=batch.id,
            ended=batch.status in ENDED_BATCH_STATUSES,
            total=counts.total if counts else 0,
            completed=counts.completed if counts else 0,
            failed=counts.failed if counts else 0,
        )
