import os

import anthropic
from anthropic import Anthropic

from interview_engine.core.logging import span

from .base import Provider
from .exceptions import (
    OverloadedError,
    ProviderConnectionError,
    ProviderResponseError,
    extract_content_from_response,
)

OVERLOADED_STATUS = 529


class ProviderImpl(Provider):
    vendor = "anthropic"

    def __init__(self, model: str, max_tokens: int = 2000):
        self.model = model
        self.max_tokens = max_tokens
        self.client = Anthropic(
            api_key=os.environ.get("ANTHROPIC_API_KEY"),
        )

    def complete(self, prompt: str, system: str | None = None) -> str:
        kwargs = {}
        if system:
            kwargs["system"] = system

        with span(
            "llm.complete",
            component="provider",
            operation="complete",
            provider=self.vendor,
            model=self.model,
            prompt_len=len(prompt),
        ):
            try:
                response = self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    messages=[{"role": "user", "content": prompt}],
                    **kwargs,
                )
            except anthropic.RateLimitError as e:
                raise OverloadedError(str(e)) from e
            except anthropic.APIStatusError as e:
                if e.status_code == OVERLOADED_STATUS:
                    raise OverloadedError(str(e)) from e
                raise
            except anthropic.APIConnectionError as e:
                raise ProviderConnectionError(str(e)) from e

            content = extract_content_from_response(response, self.vendor)
            if not content:
                raise ProviderResponseError("Empty response from Anthropic")
            return content
