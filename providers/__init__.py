"""Model providers for branchchat.

Every provider implements the same contract (generate, stream,
get_capabilities); ``build_router`` wires the configured ones together.
"""

from .base import (
    AuthenticationError,
    BaseProvider,
    InvalidPromptError,
    ProviderError,
    RateLimitError,
    UnknownProviderError,
)
from .openai_provider import OpenAIProvider, OpenRouterProvider
from .router import ProviderRouter


def build_router(settings) -> ProviderRouter:
    """Register the OpenAI and OpenRouter providers from settings."""
    common = {"max_tokens": settings.max_tokens, "temperature": settings.temperature}
    factories = {
        "openai": lambda: OpenAIProvider(
            settings.openai_api_key,
            model=settings.model,
            image_model=settings.image_model,
            **common,
        ),
        "openrouter": lambda: OpenRouterProvider(
            settings.openrouter_api_key,
            model=settings.openrouter_model,
            **common,
        ),
    }
    return ProviderRouter(factories, default=settings.default_provider)
