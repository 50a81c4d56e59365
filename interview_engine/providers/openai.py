import os

import openai
from openai import OpenAI

from interview_engine.core.logging import span

from .base import Provider
from .exceptions import (
    OverloadedError,
    ProviderConnectionError,
    ProviderResponseError,
    extract_content_from_response,
)


class ProviderImpl(Provider):
    vendor = "openai"

    def __init__(self, model: str):
        self.model = model
        self.client = OpenAI(
            api_key=os.environ.get("OPENAI_API_KEY"),
        )

    def complete(self, prompt: str, system: str | None = None) -> str:
        with span(
            "llm.complete",
            component="provider",
            operation="complete",
            provider=self.vendor,
            model=self.model,
            prompt_len=len(prompt),
        ):
            try:
                response = self.client.responses.create(
                    model=self.model,
                    input=prompt,
                    instructions=system,
                    temperature=0.7,
                )
            except openai.RateLimitError as e:
                raise OverloadedError(str(e)) from e
            except openai.APIConnectionError as e:
                raise ProviderConnectionError(str(e)) from e

            content = extract_content_from_response(response, self.vendor)
            if not content:
                raise ProviderResponseError("Empty response from OpenAI")
            return content
