from arsychat.services.llm.arsychat_provider import ArsyChatProvider
from arsychat.services.llm.base import CompletionError, CompletionProvider, LLMResponse

__all__ = ["ArsyChatProvider", "CompletionError", "CompletionProvider", "LLMResponse"]
