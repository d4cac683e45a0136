import asyncio
import base64
import json
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple, TypeVar

import httpx
from genkit.ai import Genkit
from genkit.plugins.google_genai import GoogleAI

# Import from centralized config
from ideabank.config import (
    GEMINI_KEY,
    GEMINI_REASONING_FALLBACK_MODEL,
    GEMINI_VISION_MODEL,
    logger,
)
from ideabank.core.prompt_templates import build_vision_analysis_prompt

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
GENKIT_MODEL_PREFIX = "googleai/"

BACKOFF_SECONDS = (2, 4, 8)
MAX_RETRIES = 3

T = TypeVar("T")

_ai: Optional[Genkit] = None


def _get_ai() -> Genkit:
    """Get or create the Genkit instance used for text generation."""
    global _ai

    if _ai is None:
        _ai = Genkit(plugins=[GoogleAI(api_key=GEMINI_KEY)])
        logger.info(f"Genkit initialized with API key: {bool(GEMINI_KEY)}")

    return _ai


class GeminiAPIError(Exception):
    """Non-recoverable failure talking to the Gemini API."""


class LLMRateLimitError(GeminiAPIError):
    """Rate limiting persisted through every retry."""


@dataclass(slots=True)
class GenerationResult:
    text: str
    model: str


def _status_code(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    code = getattr(exc, "status_code", None)
    return code if isinstance(code, int) else None


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for HTTP 429 and quota/rate-limit style provider errors."""
    if isinstance(exc, LLMRateLimitError) or _status_code(exc) == 429:
        return True
    message = str(exc).lower()
    return any(
        marker in message
        for marker in ("429", "rate limit", "rate_limit", "quota", "resource_exhausted")
    )


def is_retryable_error(exc: BaseException) -> bool:
    if is_rate_limit_error(exc):
        return True
    if _status_code(exc) in (500, 503):
        return True
    message = str(exc).lower()
    return "unavailable" in message or "overloaded" in message


def _retry_after_seconds(exc: BaseException) -> Optional[float]:
    if not isinstance(exc, httpx.HTTPStatusError):
        return None
    value = exc.response.headers.get("retry-after")
    try:
        return float(value) if value else None
    except ValueError:
        return None


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    label: str,
    max_retries: int = MAX_RETRIES,
    backoff: Tuple[float, ...] = BACKOFF_SECONDS,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` retrying transient provider errors with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory
        label: Name used in logs
        max_retries: Retries after the first attempt
        backoff: Base delays per retry, jitter of up to 1s is added
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        The operation's result

    Raises:
        LLMRateLimitError: If rate limiting persists through every retry
        Exception: Any non-retryable error from ``operation``
    """
    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable_error(exc):
                raise
            if attempt >= max_retries:
                if is_rate_limit_error(exc):
                    raise LLMRateLimitError(
                        f"{label} rate limit exceeded (429) after {max_retries} retries"
                    ) from exc
                raise

            base = backoff[min(attempt, len(backoff) - 1)]
            wait = _retry_after_seconds(exc) or base + random.uniform(0, 1)
            logger.warning(
                f"{label} transient error, retrying in {wait:.1f}s "
                f"(attempt {attempt + 1}/{max_retries}): {exc}"
            )
            await sleep(wait)

    raise GeminiAPIError(f"{label} exhausted retries")  # pragma: no cover


class GeminiLLMClient:
    """Text generation through Genkit with retry and a fallback model."""

    def __init__(
        self,
        *,
        fallback_model: Optional[str] = GEMINI_REASONING_FALLBACK_MODEL,
        ai: Optional[Genkit] = None,
    ) -> None:
        self.fallback_model = fallback_model
        self._ai = ai

    def _genkit(self) -> Genkit:
        return self._ai or _get_ai()

    async def _generate_once(
        self, model: str, prompt: str, config: Optional[Dict[str, Any]]
    ) -> GenerationResult:
        response = await self._genkit().generate(
            model=f"{GENKIT_MODEL_PREFIX}{model}",
            prompt=prompt,
            config=config or {},
        )
        text = response.text or ""
        if not text.strip():
            raise GeminiAPIError(f"Gemini model {model} returned no text output")
        return GenerationResult(text=text, model=model)

    async def generate(
        self,
        model: str,
        prompt_parts: Sequence[str],
        config: Optional[Dict[str, Any]] = None,
    ) -> GenerationResult:
        prompt = "\n\n".join(part for part in prompt_parts if part)
        logger.info(
            "LLM generation requested",
            extra={"model": model, "prompt_length": len(prompt)},
        )

        try:
            return await call_with_retry(
                lambda: self._generate_once(model, prompt, config),
                label=f"Gemini {model}",
            )
        except LLMRateLimitError:
            raise
        except Exception as exc:
            if not self.fallback_model or self.fallback_model == model:
                raise
            logger.warning(
                f"Gemini {model} failed, falling back to {self.fallback_model}: {exc}"
            )
            return await call_with_retry(
                lambda: self._generate_once(self.fallback_model, prompt, config),
                label=f"Gemini {self.fallback_model}",
            )


class GeminiVisionClient:
    """Product image analysis via a direct Gemini REST call with inline image data."""

    def __init__(self, *, model: str = GEMINI_VISION_MODEL, timeout: float = 120.0) -> None:
        self.model = model
        self.timeout = timeout

    async def analyze(
        self, image_b64: str, subject_name: str, *, mime_type: str = "image/jpeg"
    ) -> Dict[str, Any]:
        """
        Analyze a product photo.

        Args:
            image_b64: Base64 image payload
            subject_name: Product name given to the model as a hint
            mime_type: Image MIME type

        Returns:
            The decoded JSON object produced by the model

        Raises:
            GeminiAPIError: If the API call fails or returns no usable JSON
        """
        payload = {
            "contents": [
                {
                    "parts": [
                        {"inline_data": {"mime_type": mime_type, "data": image_b64}},
                        {"text": build_vision_analysis_prompt(subject_name)},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": 0.3,
                "maxOutputTokens": 2048,
                "responseMimeType": "application/json",
            },
        }

        async def _post() -> Dict[str, Any]:
            headers = {"Content-Type": "application/json"}
            if GEMINI_KEY:
                headers["x-goog-api-key"] = GEMINI_KEY
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{GEMINI_API_BASE}/{self.model}:generateContent",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                return response.json()

        try:
            api_result = await call_with_retry(_post, label=f"Gemini vision {self.model}")
        except httpx.HTTPStatusError as exc:
            raise GeminiAPIError(
                f"Gemini vision HTTP error: {exc.response.status_code} - {exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            raise GeminiAPIError(f"Network error calling Gemini vision: {exc}") from exc

        return _extract_json(_candidate_text(api_result))


def _candidate_text(api_result: Dict[str, Any]) -> str:
    if "candidates" not in api_result or not api_result["candidates"]:
        raise GeminiAPIError("Gemini API returned no candidates")

    candidate = api_result["candidates"][0]
    if "content" not in candidate or "parts" not in candidate["content"]:
        raise GeminiAPIError("Invalid Gemini API response structure")

    result_text = "".join(
        part["text"] for part in candidate["content"]["parts"] if "text" in part
    )
    if not result_text:
        raise GeminiAPIError("Gemini response contained no text output")
    return result_text


def _is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


async def fetch_and_encode(reference: str, timeout: float = 60.0) -> str:
    """Return a base64-encoded representation of the supplied image reference."""

    if _is_url(reference):
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(reference)
                response.raise_for_status()
                return base64.b64encode(response.content).decode("utf-8")
        except httpx.HTTPStatusError as exc:
            raise GeminiAPIError(
                f"Failed to fetch image from {reference}: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise GeminiAPIError(f"Network error fetching {reference}: {exc}") from exc

    if reference.startswith("data:"):
        try:
            return reference.split(",", 1)[1]
        except IndexError as exc:
            raise GeminiAPIError("Invalid data URI provided for image input") from exc

    cleaned = reference.strip()
    if not cleaned:
        raise GeminiAPIError("Empty base64 image input provided")

    try:
        base64.b64decode(cleaned, validate=True)
    except ValueError as exc:
        raise GeminiAPIError("Provided image string is not valid base64") from exc

    return cleaned


def _extract_json(raw_text: str) -> Dict[str, Any]:
    """Attempt to parse a JSON object from the model's text output."""

    cleaned = raw_text.strip()

    if cleaned.startswith("```"):
        first_newline = cleaned.find("\n")
        if first_newline > 0:
            cleaned = cleaned[first_newline + 1 :]
        if cleaned.endswith("```"):
            cleaned = cleaned[:-3]
        cleaned = cleaned.strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            raise GeminiAPIError("Gemini response did not contain a JSON object")
        try:
            data = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as exc:
            raise GeminiAPIError(f"Unable to decode Gemini JSON output: {exc}") from exc

    if not isinstance(data, dict):
        raise GeminiAPIError("Gemini JSON output is not an object")
    return data


__all__ = [
    "GeminiAPIError",
    "GeminiLLMClient",
    "GeminiVisionClient",
    "GenerationResult",
    "LLMRateLimitError",
    "call_with_retry",
    "fetch_and_encode",
    "is_rate_limit_error",
]
