"""Knowledge-base retrieval through the Gemini File Search tool."""

from typing import Any, Dict, List, Optional

import httpx

from ideabank.config import GEMINI_FILE_SEARCH_STORE, GEMINI_KB_MODEL, GEMINI_KEY, logger
from ideabank.core.gemini import GEMINI_API_BASE, GeminiAPIError, call_with_retry
from ideabank.core.prompt_sanitizer import sanitize_kb_content
from ideabank.models import KnowledgeBaseResult


class GeminiKnowledgeBaseClient:
    """Queries a File Search store and returns grounded context with citations."""

    def __init__(
        self,
        *,
        store_name: Optional[str] = GEMINI_FILE_SEARCH_STORE,
        model: str = GEMINI_KB_MODEL,
        timeout: float = 60.0,
    ) -> None:
        self.store_name = store_name
        self.model = model
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.store_name and GEMINI_KEY)

    async def query(self, text: str, *, max_results: int = 5) -> Optional[KnowledgeBaseResult]:
        """
        Retrieve knowledge-base context relevant to ``text``.

        Returns None when no store is configured or nothing relevant was found.
        """
        if not self.configured:
            logger.debug("Knowledge base not configured, skipping query")
            return None

        payload = {
            "contents": [
                {
                    "parts": [
                        {
                            "text": (
                                "Using only the documents in the knowledge base, summarize "
                                f"at most {max_results} relevant advertising insights for: {text}"
                            )
                        }
                    ]
                }
            ],
            "tools": [{"fileSearch": {"fileSearchStoreNames": [self.store_name]}}],
            "generationConfig": {"temperature": 0.2, "maxOutputTokens": 2048},
        }

        async def _post() -> Dict[str, Any]:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{GEMINI_API_BASE}/{self.model}:generateContent",
                    json=payload,
                    headers={
                        "Content-Type": "application/json",
                        "x-goog-api-key": GEMINI_KEY or "",
                    },
                )
                response.raise_for_status()
                return response.json()

        try:
            api_result = await call_with_retry(_post, label="Gemini file search")
        except httpx.HTTPStatusError as exc:
            raise GeminiAPIError(
                f"File search HTTP error: {exc.response.status_code} - {exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            raise GeminiAPIError(f"Network error calling file search: {exc}") from exc

        candidates = api_result.get("candidates") or []
        if not candidates:
            return None

        candidate = candidates[0]
        parts = candidate.get("content", {}).get("parts", [])
        context = "".join(part.get("text", "") for part in parts)
        if not context.strip():
            return None

        result = KnowledgeBaseResult(
            context=sanitize_kb_content(context),
            citations=_citations(candidate.get("groundingMetadata") or {}),
        )
        logger.info(
            "Knowledge base query completed",
            extra={"context_length": len(result.context), "citations": len(result.citations)},
        )
        return result


def _citations(grounding: Dict[str, Any]) -> List[str]:
    citations: List[str] = []
    for chunk in grounding.get("groundingChunks", []):
        context = chunk.get("retrievedContext") or {}
        title = context.get("title") or context.get("uri")
        if title and title not in citations:
            citations.append(title)
    return citations
