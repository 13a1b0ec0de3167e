from typing import Optional

import httpx

from arsychat.logging_config import get_logger
from arsychat.services.llm.base import CompletionError, CompletionProvider, LLMResponse, extract_content

logger = get_logger("llm.arsychat")


class ArsyChatProvider(CompletionProvider):
    """Completion gateway exposing one OpenAI-shaped endpoint per model slug."""

    def __init__(self, api_base: str, timeout: float = 60.0, client: Optional[httpx.AsyncClient] = None):
        self.api_base = api_base.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def endpoint(self, slug: str) -> str:
        return f"{self.api_base}/{slug}/v1/chat/completions"

    async def generate(self, prompt: str, slug: str) -> LLMResponse:
        logger.debug(f"Completion request: slug={slug}, prompt_len={len(prompt)}")

        try:
            response = await self._client.get(self.endpoint(slug), params={"prompt": prompt})
        except httpx.HTTPError as e:
            raise CompletionError(f"Completion backend unreachable: {e!r}") from e

        logger.debug(f"Completion response status: {response.status_code}")

        if response.status_code != 200:
            logger.error(f"Completion backend error: {response.text[:300]}")
            raise CompletionError(f"Completion API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise CompletionError("Completion API returned invalid JSON") from e

        content = extract_content(data)
        logger.debug(f"Completion content: {content[:100] if content else 'EMPTY'}")

        return LLMResponse(
            content=content,
            model=data.get("model", slug) if isinstance(data, dict) else slug,
            usage=data.get("usage") if isinstance(data, dict) else None,
        )
