from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Iterable, Iterator, Optional, Sequence, TypeVar

from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AuthenticationError,
    BadRequestError,
    OpenAI,
    RateLimitError,
)
from pydantic import BaseModel

from azubi_tracker.config import AppConfig

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MAX_OUTPUT_TOKENS = 1200
_BACKOFF_FACTOR = 1.6
_CODE_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)

ParsedModelT = TypeVar("ParsedModelT", bound=BaseModel)


class LLMError(RuntimeError):
    """Raised when an OpenAI call fails or returns an invalid payload."""


class MissingCredentialsError(LLMError):
    """Raised when no API key is configured; the user has to open the settings."""


def get_openai_client(config: AppConfig) -> Optional[OpenAI]:
    """Create an OpenAI client from the session configuration."""

    if not config.openai_api_key:
        return None

    client_kwargs: dict[str, str] = {"api_key": config.openai_api_key}
    if config.openai_base_url:
        client_kwargs["base_url"] = config.openai_base_url

    return OpenAI(**client_kwargs)  # type: ignore[arg-type]


def require_client(client: Optional[OpenAI]) -> OpenAI:
    if client is None:
        raise MissingCredentialsError("No API key available. Please set one in the settings.")
    return client


def _responses_resource(client: OpenAI, timeout: float) -> Any:
    return client.responses.with_options(timeout=timeout)  # type: ignore[attr-defined]


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences some models wrap around JSON."""

    return _CODE_FENCE_PATTERN.sub("", text).strip()


def parse_json_payload(text: str | None) -> Any:
    """Decode a JSON payload, tolerating surrounding code fences."""

    cleaned = strip_code_fences(text or "")
    return json.loads(cleaned or "null")


def _with_retries(call: Any, *, max_attempts: int) -> Any:
    attempts = 0
    delay = 1.0
    last_error: Exception | None = None

    while attempts < max_attempts:
        try:
            return call()
        except (APITimeoutError, APIConnectionError, RateLimitError) as exc:
            last_error = exc
            attempts += 1
            if attempts >= max_attempts:
                break
            LOGGER.warning("OpenAI attempt %s failed: %s", attempts, exc)
            time.sleep(delay)
            delay *= _BACKOFF_FACTOR
        except AuthenticationError as exc:
            raise MissingCredentialsError("The configured API key was rejected.") from exc
        except (BadRequestError, APIError) as exc:
            raise LLMError("OpenAI API rejected the request.") from exc
        except LLMError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise LLMError("Unexpected error during OpenAI call.") from exc

    raise LLMError("OpenAI request failed after retries.") from last_error


def request_structured_response(
    *,
    client: OpenAI,
    model: str,
    messages: Sequence[dict[str, object] | str],
    response_model: type[ParsedModelT],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    tools: Optional[Iterable[object]] = None,
) -> ParsedModelT:
    """Call the Responses API with structured outputs and retries."""

    parse_kwargs: dict[str, object] = {}
    if tools is not None:
        parse_kwargs["tools"] = tools

    def _call() -> ParsedModelT:
        response = _responses_resource(client, timeout).parse(
            model=model,
            input=list(messages),
            text_format=response_model,
            max_output_tokens=max_output_tokens,
            **parse_kwargs,
        )
        parsed = response.output_parsed
        if parsed is None:
            raise LLMError("No structured content returned by the model.")
        return parsed

    return _with_retries(_call, max_attempts=max_attempts)


def request_json_text(
    *,
    client: OpenAI,
    model: str,
    messages: Sequence[dict[str, object] | str],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
) -> str:
    """Ask for a JSON object and return the raw text; parsing is left to the caller."""

    def _call() -> str:
        response = _responses_resource(client, timeout).create(
            model=model,
            input=list(messages),
            text={"format": {"type": "json_object"}},
            max_output_tokens=max_output_tokens,
        )
        return response.output_text or ""

    return _with_retries(_call, max_attempts=max_attempts)


def stream_text(
    *,
    client: OpenAI,
    model: str,
    instructions: str,
    messages: Sequence[dict[str, object]],
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Iterator[str]:
    """Yield text deltas of a streamed response."""

    try:
        stream = _responses_resource(client, timeout).create(
            model=model,
            instructions=instructions,
            input=list(messages),
            stream=True,
        )
    except AuthenticationError as exc:
        raise MissingCredentialsError("The configured API key was rejected.") from exc
    except (APITimeoutError, APIConnectionError, RateLimitError, APIError) as exc:
        raise LLMError("OpenAI streaming request failed.") from exc

    try:
        for event in stream:
            if getattr(event, "type", "") == "response.output_text.delta":
                delta = getattr(event, "delta", "")
                if delta:
                    yield delta
    except (APITimeoutError, APIConnectionError, APIError) as exc:
        raise LLMError("OpenAI stream was interrupted.") from exc
    finally:
        close = getattr(stream, "close", None)
        if callable(close):
            close()


__all__ = [
    "DEFAULT_MAX_OUTPUT_TOKENS",
    "DEFAULT_TIMEOUT_SECONDS",
    "LLMError",
    "MissingCredentialsError",
    "get_openai_client",
    "parse_json_payload",
    "request_json_text",
    "request_structured_response",
    "require_client",
    "stream_text",
    "strip_code_fences",
]
