import asyncio
from typing import Optional

from arsychat.logging_config import get_logger
from arsychat.services.llm.base import CompletionError, CompletionProvider
from arsychat.services.model_registry import ModelRegistry
from arsychat.services.result import BACKEND_UNAVAILABLE, EMPTY_REPLY, NOT_CONFIGURED, Result

logger = get_logger("completion_service")

NO_REPLY_TEXT = "❌ AI Error."
BACKEND_UNAVAILABLE_TEXT = "❌ Server Error."


async def generate_reply(
    provider: CompletionProvider,
    registry: ModelRegistry,
    text: str,
    alias: Optional[str],
    max_attempts: int = 2,
    retry_backoff_seconds: float = 0.5,
    sleep_func=asyncio.sleep,
) -> Result[str]:
    """Send ``text`` to the backend for ``alias`` (or the default model).

    Transport failures are retried with exponential backoff. An answer without
    reply content is final and not retried.
    """
    model = registry.resolve(alias)
    if model is None:
        return Result.failure(f"No model for alias {alias!r} and no default", NOT_CONFIGURED)

    attempts = max(max_attempts, 1)
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            response = await provider.generate(text, model.backend_slug)
        except CompletionError as e:
            last_error = str(e)
            logger.warning(
                "Completion attempt failed",
                extra={"context": {"model": model.alias, "attempt": attempt, "error": last_error}},
            )
            if attempt < attempts:
                await sleep_func(retry_backoff_seconds * (2 ** (attempt - 1)))
            continue

        if not response.content:
            return Result.failure("Backend returned no reply", EMPTY_REPLY)
        return Result.success(response.content)

    return Result.failure(last_error or "Completion backend unavailable", BACKEND_UNAVAILABLE)


def reply_text(result: Result[str]) -> str:
    """User-visible text for a completion outcome."""
    if result.is_error(BACKEND_UNAVAILABLE):
        return BACKEND_UNAVAILABLE_TEXT
    return result.unwrap_or(NO_REPLY_TEXT)
