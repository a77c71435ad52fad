"""Generative ranking service client and output validation.

The model is treated as an untrusted text source: every call is time-bounded,
every response goes through explicit JSON extraction and schema validation,
and any failure surfaces as ``UpstreamError`` or a ``Rejected`` result so the
pipeline can fall back to local scoring.
"""

import json
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, TypeVar, Union

from google import genai
from google.genai import types
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as SchemaValidationError

from src.api.exceptions import UpstreamError
from src.api.metrics import metrics_service

# Configure module logger
logger = logging.getLogger(__name__)

T = TypeVar("T")

_CODE_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CODE_FENCE_CLOSE = re.compile(r"\s*```$")

# Shared pool for bounded-duration model calls
_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="llm-call")


class GenerativeRanker(Protocol):
    """Text-in, text-out generative model."""

    def generate(self, prompt: str) -> str:
        ...


def call_with_timeout(fn: Callable[[], T], timeout_seconds: Optional[float]) -> T:
    """Run ``fn`` and give up after ``timeout_seconds``.

    An expired call is reported as ``UpstreamError``, exactly like a transport
    failure. The abandoned call keeps running in its worker thread.
    """
    if timeout_seconds is None:
        return fn()

    future = _executor.submit(fn)
    try:
        return future.result(timeout=timeout_seconds)
    except FutureTimeoutError as e:
        future.cancel()
        raise UpstreamError(
            f"Generative service did not answer within {timeout_seconds}s", e
        ) from e


class GeminiRanker:
    """Gemini-backed ``GenerativeRanker``."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash",
        timeout_seconds: Optional[float] = 20.0,
        client: Optional[genai.Client] = None,
    ):
        if client is None and not api_key:
            raise ValueError("GEMINI_API_KEY not set")

        self.client = client or genai.Client(api_key=api_key)
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.config = types.GenerateContentConfig(temperature=0.0)

    def _generate_content(self, prompt: str) -> str:
        response = self.client.models.generate_content(
            model=self.model,
            contents=prompt,
            config=self.config,
        )
        return response.text or ""

    def generate(self, prompt: str) -> str:
        start_time = time.time()
        try:
            text = call_with_timeout(
                lambda: self._generate_content(prompt), self.timeout_seconds
            )
        except UpstreamError:
            metrics_service.record_model_call(success=False)
            raise
        except Exception as e:
            metrics_service.record_model_call(success=False)
            logger.error(
                "Generative service call failed",
                extra={
                    "model": self.model,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise UpstreamError("Generative service call failed", e) from e

        metrics_service.record_model_call(success=True)
        logger.debug(
            "Generative service answered",
            extra={
                "model": self.model,
                "latency_ms": round((time.time() - start_time) * 1000, 2),
                "response_chars": len(text),
            },
        )

        if not text.strip():
            raise UpstreamError("Generative service returned an empty response")
        return text


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```/```json fence, if any."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _CODE_FENCE_OPEN.sub("", cleaned)
        cleaned = _CODE_FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def extract_json_array(text: str) -> Any:
    """Parse the span from the first ``[`` to the last ``]``.

    Tolerates prose before and after the array.

    Raises:
        ValueError: If no bracketed span exists or it is not valid JSON.
    """
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end < start:
        raise ValueError("No JSON array found in model response")
    return json.loads(text[start:end + 1])


class ModelPick(BaseModel):
    """One entry of the model's ranked answer."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    price: float = Field(..., gt=0, strict=True)
    sodium: str = Field(..., pattern=r"^\d+(\.\d+)?mg$")
    sugar: str = Field(..., pattern=r"^\d+(\.\d+)?g$")
    reasoning: str = Field(..., min_length=1)


_picks_adapter = TypeAdapter(List[ModelPick])


@dataclass(frozen=True)
class Validated:
    picks: List[ModelPick]


@dataclass(frozen=True)
class Rejected:
    reason: str


ValidationOutcome = Union[Validated, Rejected]


def validate_picks(text: str) -> ValidationOutcome:
    """Validate a raw ranking answer as a whole.

    A single bad entry rejects the entire answer.
    """
    try:
        payload = extract_json_array(text)
    except ValueError as e:
        return Rejected(f"Unparseable model response: {e}")

    try:
        picks = _picks_adapter.validate_python(payload)
    except SchemaValidationError as e:
        return Rejected(f"Schema validation failed: {e.error_count()} error(s)")

    return Validated(picks)
