from __future__ import annotations

from prwarden_core.config import ConfigError
from prwarden_core.providers.anthropic import AnthropicReviewer
from prwarden_core.providers.base import BaseReviewer
from prwarden_core.providers.openai import OpenAIReviewer


def get_reviewer(config: dict) -> BaseReviewer:
    """Construct the configured AI backend. Called once at process start."""
    provider = config.get("ai_provider", "openai")
    model = config.get("ai_model")
    timeout = config.get("ai_timeout", 60)
    if provider in ("anthropic", "claude"):
        return AnthropicReviewer(api_key=config["anthropic_api_key"], model=model, timeout=timeout)
    if provider == "openai":
        return OpenAIReviewer(
            api_key=config["openai_api_key"],
            organization=config.get("openai_organization"),
            model=model,
            timeout=timeout,
        )
    raise ConfigError(f"Unknown AI provider: {provider!r}. Choose 'openai' or 'anthropic'.")
