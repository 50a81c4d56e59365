class Provider:
    """Language model service: one prompt in, raw text out.

    Structured parsing and fallbacks live with the callers (question generator and
    answer grader), which wrap every call in `handle_provider_operation`.
    """

    vendor: str = "unknown"
    model: str = ""

    @staticmethod
    def from_id(model_id: str) -> "Provider":
        # parse like "openai:gpt-4o-mini" / "anthropic:claude-3-5-haiku-latest" / "google:gemini-2.0-flash"
        if ":" not in model_id:
            raise ValueError(
                f"Model ID must be in format 'vendor:model', got: '{model_id}'. "
                f"Use 'google:gemini-2.0-flash' or similar."
            )

        vendor, model = model_id.split(":", 1)

        # Import mapping to avoid inline imports
        provider_map = {
            "openai": lambda: __import__("interview_engine.providers.openai", fromlist=["ProviderImpl"]),
            "anthropic": lambda: __import__("interview_engine.providers.anthropic", fromlist=["ProviderImpl"]),
            "google": lambda: __import__("interview_engine.providers.google", fromlist=["ProviderImpl"]),
        }

        if vendor not in provider_map:
            raise ValueError(f"Unknown provider '{vendor}'")

        impl = provider_map[vendor]()
        return impl.ProviderImpl(model)

    def complete(self, prompt: str, system: str | None = None) -> str:
        """Send one prompt and return the reply text."""
        raise NotImplementedError
