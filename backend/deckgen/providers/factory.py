from deckgen.config import Settings
from deckgen.providers.anthropic_provider import AnthropicProvider
from deckgen.providers.base import BaseContentProvider
from deckgen.providers.mock_provider import MockProvider
from deckgen.providers.openai_provider import OpenAIProvider


def get_content_provider(settings: Settings, name: str | None = None) -> BaseContentProvider:
    candidate = (name or settings.default_content_provider).lower()

    if candidate == "openai" and settings.openai_api_key:
        return OpenAIProvider(settings.openai_api_key, model=settings.openai_model, preview_chars=settings.log_preview_chars)
    if candidate == "anthropic" and settings.anthropic_api_key:
        return AnthropicProvider(
            settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.anthropic_max_tokens,
            preview_chars=settings.log_preview_chars,
        )

    return MockProvider()
