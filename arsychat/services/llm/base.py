from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class CompletionError(Exception):
    """Backend unreachable, non-2xx or not JSON. An empty reply is not an error."""


class CompletionProvider(ABC):
    """Stateless prompt -> reply backend."""

    @abstractmethod
    async def generate(self, prompt: str, slug: str) -> LLMResponse:
        """Generate a reply from the backend routed by ``slug``."""
        pass

    async def aclose(self) -> None:
        return None


def extract_content(data) -> str:
    """``choices[0].message.content`` or an empty string for any other shape."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    choice = choices[0]
    if not isinstance(choice, dict):
        return ""
    message = choice.get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    return content if isinstance(content, str) else ""
