from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from prwarden_core.providers.base import BaseReviewer, ProviderError


class OpenAIProviderError(ProviderError):
    provider = "OpenAI"


class OpenAIReviewer(BaseReviewer):
    MODEL = "gpt-4o"
    # temperature=0.1 for reviews: GPT-4o drifts from the JSON schema more
    # often at higher temperatures.
    TEMPERATURE = 0.1
    REPLY_TEMPERATURE = 0.3
    error_class = OpenAIProviderError

    def __init__(self, api_key: str, organization: str | None = None, model: str | None = None, timeout: float = 60):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install 'prwarden[openai]'"
            )
        self.client = _OpenAI(api_key=api_key, organization=organization, timeout=timeout)
        self.model = model or self.MODEL

    def _call_api(self, system_prompt: str, user_prompt: str, *, max_tokens: int, temperature: float) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content or ""
