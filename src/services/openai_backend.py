"""Thin OpenAI wrapper implementing the ``TextGenerator`` capability."""
from __future__ import annotations

from typing import Any, Callable, Optional

import openai
from openai import OpenAI

from src.errors import ExternalServiceError
from src.utils.retry import call_with_retry

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def is_transient_openai_error(exc: BaseException) -> bool:
    if isinstance(exc, _TRANSIENT_ERRORS):
        return True
    status = getattr(exc, "status_code", None)
    return isinstance(exc, openai.APIStatusError) and isinstance(status, int) and status >= 500


def call_llm(*, client: Any, prompt: str, model: str) -> str:
    """Single Chat Completions round trip returning the message text."""
    completion = client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": prompt}],
        temperature=0,
    )
    content = completion.choices[0].message.content
    if content is None:
        raise RuntimeError("OpenAI Chat returned empty content")
    return content


class OpenAITextGenerator:
    """``TextGenerator`` backed by OpenAI Chat Completions."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        max_attempts: int = 3,
        retry_multiplier: float = 0.5,
        client_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self.model = model
        self.max_attempts = max_attempts
        self.retry_multiplier = retry_multiplier
        factory = client_factory or OpenAI
        # retries are owned by tenacity, not the SDK
        self._client = factory(api_key=api_key, timeout=timeout, max_retries=0)

    def generate(self, prompt: str) -> str:
        try:
            return call_with_retry(
                lambda: call_llm(client=self._client, prompt=prompt, model=self.model),
                service="openai",
                is_transient=is_transient_openai_error,
                max_attempts=self.max_attempts,
                multiplier=self.retry_multiplier,
            )
        except openai.OpenAIError as exc:
            raise ExternalServiceError(f"OpenAI request failed: {exc}") from exc
        except RuntimeError as exc:
            raise ExternalServiceError(str(exc)) from exc


__all__ = ["OpenAITextGenerator", "call_llm", "is_transient_openai_error"]
