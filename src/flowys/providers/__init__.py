"""LLM providers for ai nodes."""
from flowys.config import Settings

from .anthropic import AnthropicProvider
from .base import LLMProvider, LLMResponse, LLMUsage, PromptMessage
from .openai import OpenAIProvider

PROVIDER_CLASSES: dict[str, type[LLMProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}


def default_providers(settings: Settings | None = None) -> dict[str, LLMProvider]:
    """One instance of every built-in provider."""
    return {name: cls(settings) for name, cls in PROVIDER_CLASSES.items()}


def get_provider(name: str, settings: Settings | None = None) -> LLMProvider:
    """Instantiate a built-in provider by name."""
    try:
        provider_cls = PROVIDER_CLASSES[name]
    except KeyError:
        raise ValueError(f"Unknown provider: {name}") from None
    return provider_cls(settings)


__all__ = [
    "AnthropicProvider",
    "LLMProvider",
    "LLMResponse",
    "LLMUsage",
    "OpenAIProvider",
    "PromptMessage",
    "PROVIDER_CLASSES",
    "default_providers",
    "get_provider",
]
