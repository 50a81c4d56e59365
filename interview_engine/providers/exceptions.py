import json
import logging
import random
import re
import time
from collections.abc import Callable
from typing import Any, Literal, TypeVar

from pydantic import ValidationError

from interview_engine.core.constants import DEFAULT_MAX_RETRIES
from interview_engine.core.logging import log_event

T = TypeVar("T")

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


class ProviderError(Exception):
    """Base exception for provider operations."""

    pass


class ProviderConnectionError(ProviderError):
    """Raised when provider connection fails."""

    pass


class ProviderResponseError(ProviderError):
    """Raised when provider returns invalid response."""

    pass


class ProviderParseError(ProviderError):
    """Raised when response cannot be parsed."""

    pass


class OverloadedError(ProviderError):
    """Raised when provider is overloaded (429/529 errors)."""

    pass


def retry_with_exponential_backoff(
    operation_func: Callable[[], T],
    max_retries: int = 5,
    base_delay: float = 0.5,
    max_delay: float = 30.0,
) -> T:
    """
    Retry operation with exponential backoff.

    Args:
        operation_func: Function to execute that may raise OverloadedError
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries

    Returns:
        Result from operation_func

    Raises:
        OverloadedError: If all retries exhausted
    """
    for attempt in range(max_retries):
        try:
            return operation_func()
        except OverloadedError:
            if attempt == max_retries - 1:
                raise
            # Exponential backoff with jitter (+/- 10%)
            delay = min(base_delay * (2**attempt), max_delay)
            jitter = delay * random.uniform(-0.1, 0.1)
            time.sleep(max(0, delay + jitter))
    raise OverloadedError("Max retries exceeded")


def handle_provider_operation(
    operation: str,
    provider: str,
    model: str,
    operation_func: Callable[[], T],
    fallback_factory: Callable[[], T],
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> T:
    """
    Execute a provider operation with unified exception handling.

    Every failure category ends in the fallback so that no model error escapes the
    engine. Overload errors are retried with backoff first.

    Args:
        operation: The operation being performed (e.g., "generate_questions")
        provider: The provider name (e.g., "openai", "anthropic")
        model: The model being used
        operation_func: Function to execute that may raise exceptions
        fallback_factory: Function that creates fallback response on error
        max_retries: Retry budget for overload errors

    Returns:
        Result from operation_func or fallback response on error
    """
    try:
        return operation_func()
    except ValidationError as e:
        # Model output did not match the expected schema
        log_event(
            "llm.validation_error",
            component="provider",
            operation=operation,
            provider=provider,
            model=model,
            error_type="ValidationError",
            error_msg=str(e),
            level=logging.WARNING,
        )
        return fallback_factory()
    except OverloadedError as e:
        log_event(
            "llm.overloaded_error",
            component="provider",
            operation=operation,
            provider=provider,
            model=model,
            error_type="OverloadedError",
            error_msg=str(e),
            level=logging.WARNING,
        )
        try:
            return retry_with_exponential_backoff(operation_func, max_retries=max_retries)
        except Exception as retry_error:  # noqa: BLE001 : any failure after retries falls back
            log_event(
                "llm.using_fallback",
                component="provider",
                operation=operation,
                reason="overloaded_retries_exhausted",
                error_type=type(retry_error).__name__,
                level=logging.WARNING,
            )
            return fallback_factory()
    except (ProviderParseError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        # JSON/data parsing errors
        log_event(
            "llm.parse_error",
            component="provider",
            operation=operation,
            provider=provider,
            model=model,
            error_type=type(e).__name__,
            error_msg=str(e),
            level=logging.WARNING,
        )
        return fallback_factory()
    except Exception as e:  # noqa: BLE001 : network, quota and SDK errors all fall back
        log_event(
            "llm.provider_error",
            component="provider",
            operation=operation,
            provider=provider,
            model=model,
            error_type=type(e).__name__,
            error_msg=str(e),
            level=logging.WARNING,
        )
        return fallback_factory()


def _find_balanced(content: str, opener: str, closer: str) -> str | None:
    """Return the first balanced opener...closer span, ignoring brackets inside strings."""
    start = content.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(content)):
            char = content[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    return content[start : index + 1]
        start = content.find(opener, start + 1)
    return None


def extract_json_text(content: str, expect: Literal["object", "array"] = "object") -> str | None:
    """Locate the JSON payload inside a reply that may carry prose or code fences."""
    opener, closer = ("{", "}") if expect == "object" else ("[", "]")
    return _find_balanced(content, opener, closer)


def parse_json_response(
    content: str,
    expect: Literal["object", "array"] = "object",
    error_context: dict[str, Any] | None = None,
) -> Any:
    """
    Parse a JSON object or array out of a model reply.

    Tries the whole reply first, then the first balanced bracket span, then the
    same span with stray control characters replaced by spaces.

    Raises:
        ProviderParseError: If no JSON of the expected shape can be recovered
    """
    if not content or not content.strip():
        raise ProviderParseError("Empty response content")

    expected_type = dict if expect == "object" else list

    try:
        data = json.loads(content)
        if isinstance(data, expected_type):
            return data
    except json.JSONDecodeError:
        pass

    candidate = extract_json_text(content, expect)
    if candidate is not None:
        for attempt in (candidate, _CONTROL_CHARS.sub(" ", candidate)):
            try:
                data = json.loads(attempt)
            except json.JSONDecodeError:
                continue
            if isinstance(data, expected_type):
                return data

    context = error_context or {}
    log_event(
        "llm.json_parse_error",
        component="provider",
        operation=context.get("operation", "unknown"),
        provider=context.get("provider", "unknown"),
        model=context.get("model", "unknown"),
        expect=expect,
        content_length=len(content),
        level=logging.DEBUG,
    )
    raise ProviderParseError(f"No JSON {expect} found in response")


def extract_content_from_response(response: Any, provider: str) -> str:
    """
    Extract text content from provider-specific response format.

    Raises:
        ProviderResponseError: If content extraction fails
    """
    try:
        if provider == "openai":
            return getattr(response, "output_text", "") or ""
        elif provider == "anthropic":
            content = ""
            if hasattr(response, "content") and response.content:
                for block in response.content:
                    if hasattr(block, "type") and block.type == "text":
                        content += block.text
            return content
        elif provider == "google":
            return getattr(response, "text", "") or ""
        else:
            raise ProviderResponseError(f"Unknown provider: {provider}")
    except (AttributeError, TypeError) as e:
        raise ProviderResponseError(f"Failed to extract content: {e}") from e
