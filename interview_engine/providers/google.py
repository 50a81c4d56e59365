import os

from google import genai

from interview_engine.core.logging import span

from .base import Provider
from .exceptions import ProviderResponseError, extract_content_from_response


class ProviderImpl(Provider):
    vendor = "google"

    def __init__(self, model: str):
        self.model = model
        self.client = genai.Client(api_key=os.environ.get("GEMINI_API_KEY"))

    def complete(self, prompt: str, system: str | None = None) -> str:
        # Create the full prompt with system instructions
        full_prompt = f"{system}\n\n{prompt}" if system else prompt

        with span(
            "llm.complete",
            component="provider",
            operation="complete",
            provider=self.vendor,
            model=self.model,
            prompt_len=len(full_prompt),
        ):
            response = self.client.models.generate_content(model=self.model, contents=full_prompt)

            content = extract_content_from_response(response, self.vendor)
            if not content:
                raise ProviderResponseError("Empty response from Google Gemini")
            return content
