from __future__ import annotations

import types

import httpx
import openai
import pytest

from src.errors import ExternalServiceError
from src.services.openai_backend import OpenAITextGenerator, call_llm, is_transient_openai_error


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return types.SimpleNamespace(
            choices=[types.SimpleNamespace(message=types.SimpleNamespace(content=outcome))]
        )


class FakeClient:
    def __init__(self, outcomes, **kwargs):
        self.kwargs = kwargs
        self.completions = FakeCompletions(outcomes)
        self.chat = types.SimpleNamespace(completions=self.completions)


def _factory(outcomes):
    holder = {}

    def build(**kwargs):
        holder["client"] = FakeClient(outcomes, **kwargs)
        return holder["client"]

    return build, holder


def _connection_error():
    return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.test/v1/chat/completions"))


def test_call_llm_sends_single_user_message():
    client = FakeClient(['{"pages": []}'])
    assert call_llm(client=client, prompt="tag these", model="gpt-test") == '{"pages": []}'
    kwargs = client.completions.calls[0]
    assert kwargs["model"] == "gpt-test"
    assert kwargs["temperature"] == 0
    assert kwargs["messages"] == [{"role": "user", "content": "tag these"}]


def test_call_llm_empty_content_raises():
    with pytest.raises(RuntimeError):
        call_llm(client=FakeClient([None]), prompt="p", model="m")


def test_generator_disables_sdk_retries_and_retries_transient_errors():
    build, holder = _factory([_connection_error(), "done"])
    generator = OpenAITextGenerator(
        api_key="sk-test", model="gpt-test", max_attempts=3, retry_multiplier=0.001, client_factory=build
    )
    assert holder["client"].kwargs["max_retries"] == 0
    assert holder["client"].kwargs["api_key"] == "sk-test"
    assert generator.generate("prompt") == "done"
    assert len(holder["client"].completions.calls) == 2


def test_generator_maps_exhausted_retries_to_external_service_error():
    build, _ = _factory([_connection_error(), _connection_error()])
    generator = OpenAITextGenerator(api_key="sk-test", max_attempts=2, retry_multiplier=0.001, client_factory=build)
    with pytest.raises(ExternalServiceError) as excinfo:
        generator.generate("prompt")
    assert excinfo.value.kind == "external_service_error"


def test_generator_maps_empty_content():
    build, _ = _factory([None])
    generator = OpenAITextGenerator(api_key="sk-test", max_attempts=3, client_factory=build)
    with pytest.raises(ExternalServiceError):
        generator.generate("prompt")


def test_api_key_required():
    with pytest.raises(ValueError):
        OpenAITextGenerator(api_key="")


def test_transient_classification():
    assert is_transient_openai_error(_connection_error())
    assert not is_transient_openai_error(ValueError("nope"))
