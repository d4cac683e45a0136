"""Tests for Gemini client helpers: retry policy, fallback and output decoding."""

from types import SimpleNamespace

import httpx
import pytest

from ideabank.core.gemini import (
    GeminiAPIError,
    GeminiLLMClient,
    LLMRateLimitError,
    _candidate_text,
    _extract_json,
    call_with_retry,
    fetch_and_encode,
    is_rate_limit_error,
    is_retryable_error,
)
from ideabank.core.knowledge_base import GeminiKnowledgeBaseClient, _citations


def _http_error(status, headers=None):
    request = httpx.Request("POST", "https://example.com")
    response = httpx.Response(status, request=request, headers=headers or {})
    return httpx.HTTPStatusError("error", request=request, response=response)


class FlakyOperation:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestErrorClassification:
    def test_rate_limit_errors(self):
        assert is_rate_limit_error(_http_error(429))
        assert is_rate_limit_error(RuntimeError("RESOURCE_EXHAUSTED: quota"))
        assert not is_rate_limit_error(RuntimeError("bad request"))

    def test_retryable_errors(self):
        assert is_retryable_error(_http_error(503))
        assert is_retryable_error(RuntimeError("model is overloaded"))
        assert not is_retryable_error(_http_error(400))


class TestCallWithRetry:
    def setup_method(self):
        self.waits = []

    async def _sleep(self, seconds):
        self.waits.append(seconds)

    @pytest.mark.asyncio
    async def test_retries_transient_errors_with_backoff(self):
        operation = FlakyOperation([_http_error(503), _http_error(503)])

        result = await call_with_retry(operation, label="test", sleep=self._sleep)

        assert result == "ok"
        assert operation.calls == 3
        assert 2 <= self.waits[0] <= 3
        assert 4 <= self.waits[1] <= 5

    @pytest.mark.asyncio
    async def test_honours_retry_after(self):
        operation = FlakyOperation([_http_error(429, {"retry-after": "7"})])

        await call_with_retry(operation, label="test", sleep=self._sleep)

        assert self.waits == [7.0]

    @pytest.mark.asyncio
    async def test_persistent_rate_limit_raises(self):
        operation = FlakyOperation([_http_error(429)] * 4)

        with pytest.raises(LLMRateLimitError):
            await call_with_retry(operation, label="test", sleep=self._sleep)

        assert operation.calls == 4
        assert len(self.waits) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_raised_immediately(self):
        operation = FlakyOperation([ValueError("bad prompt")])

        with pytest.raises(ValueError):
            await call_with_retry(operation, label="test", sleep=self._sleep)

        assert operation.calls == 1
        assert self.waits == []


class FakeGenkit:
    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.models = []

    async def generate(self, model, prompt, config):
        self.models.append(model)
        outcome = self.outcomes[model]
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(text=outcome)


class TestGeminiLLMClient:
    @pytest.mark.asyncio
    async def test_generate_joins_prompt_parts(self):
        ai = FakeGenkit({"googleai/primary": "[]"})
        client = GeminiLLMClient(fallback_model=None, ai=ai)

        result = await client.generate("primary", ["a", "b"])

        assert result.text == "[]"
        assert result.model == "primary"

    @pytest.mark.asyncio
    async def test_falls_back_on_non_retryable_failure(self):
        ai = FakeGenkit({"googleai/primary": ValueError("invalid"), "googleai/backup": "[]"})
        client = GeminiLLMClient(fallback_model="backup", ai=ai)

        result = await client.generate("primary", ["prompt"])

        assert result.model == "backup"
        assert ai.models == ["googleai/primary", "googleai/backup"]

    @pytest.mark.asyncio
    async def test_empty_output_without_fallback_raises(self):
        ai = FakeGenkit({"googleai/primary": "   "})
        client = GeminiLLMClient(fallback_model=None, ai=ai)

        with pytest.raises(GeminiAPIError):
            await client.generate("primary", ["prompt"])


class TestOutputDecoding:
    def test_candidate_text(self):
        result = {"candidates": [{"content": {"parts": [{"text": "a"}, {"inline": 1}, {"text": "b"}]}}]}

        assert _candidate_text(result) == "ab"

    def test_candidate_text_without_candidates(self):
        with pytest.raises(GeminiAPIError):
            _candidate_text({"candidates": []})

    def test_extract_json_from_fence(self):
        assert _extract_json('```json\n{"category": "tile"}\n```') == {"category": "tile"}

    def test_extract_json_from_prose(self):
        assert _extract_json('Result: {"style": "rustic"} done') == {"style": "rustic"}

    def test_extract_json_rejects_arrays(self):
        with pytest.raises(GeminiAPIError):
            _extract_json("[1, 2]")


class TestFetchAndEncode:
    @pytest.mark.asyncio
    async def test_data_uri(self):
        assert await fetch_and_encode("data:image/png;base64,aGVsbG8=") == "aGVsbG8="

    @pytest.mark.asyncio
    async def test_plain_base64(self):
        assert await fetch_and_encode(" aGVsbG8= ") == "aGVsbG8="

    @pytest.mark.asyncio
    async def test_invalid_base64(self):
        with pytest.raises(GeminiAPIError):
            await fetch_and_encode("not base64!")


class TestKnowledgeBase:
    @pytest.mark.asyncio
    async def test_unconfigured_store_returns_none(self):
        client = GeminiKnowledgeBaseClient(store_name=None)

        assert client.configured is False
        assert await client.query("flooring ads") is None

    def test_citations_are_deduplicated(self):
        grounding = {
            "groundingChunks": [
                {"retrievedContext": {"title": "guide.pdf"}},
                {"retrievedContext": {"uri": "store/doc-2"}},
                {"retrievedContext": {"title": "guide.pdf"}},
                {},
            ]
        }

        assert _citations(grounding) == ["guide.pdf", "store/doc-2"]
