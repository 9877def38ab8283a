from __future__ import annotations

from prwarden_core.providers.base import BaseReviewer, ProviderError


class AnthropicProviderError(ProviderError):
    provider = "Anthropic"


class AnthropicReviewer(BaseReviewer):
    MODEL = "claude-sonnet-4-20250514"
    # temperature=0.3 for Anthropic, slightly higher than OpenAI's review
    # setting to allow more natural phrasing while keeping the JSON stable.
    TEMPERATURE = 0.3
    REPLY_TEMPERATURE = 0.3
    error_class = AnthropicProviderError

    def __init__(self, api_key: str, model: str | None = None, timeout: float = 60):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'prwarden[anthropic]'"
            )
        self.client = Anthropic(api_key=api_key, timeout=timeout)
        self.model = model or self.MODEL

    def _call_api(self, system_prompt: str, user_prompt: str, *, max_tokens: int, temperature: float) -> str:
        # Imported inside the method because the anthropic package is optional;
        # __init__ already validated it is installed before we reach here.
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
