from proposal_bot.config import settings
from proposal_bot.services.llm.base import LLMProvider, LLMProviderError, LLMResponse
from proposal_bot.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMProviderError", "LLMResponse", "OpenAIProvider", "get_default_provider"]


def get_default_provider() -> LLMProvider:
    return OpenAIProvider(
        api_key=settings.openai_api_key,
        default_model=settings.openai_model,
        transcribe_model=settings.openai_transcribe_model,
    )
