"""Unit tests for completion providers and the provider registry. No network: httpx.MockTransport and patches."""
import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from support_chain.config import LLMConfig
from support_chain.errors import CompletionError, ConfigError
from support_chain.services.llm_provider import (
    LLMProvider,
    OllamaProvider,
    TogetherProvider,
    VertexAIProvider,
    get_llm_provider,
    register_provider,
)
from support_chain.services.usage import total_usage

API_URL = "https://api.together.test/v1/chat/completions"


def _together(handler) -> TogetherProvider:
    return TogetherProvider(
        api_key="test-key",
        model="meta-llama/Llama-3-70b-chat-hf",
        api_url=API_URL,
        top_p=0.9,
        stop=("<|eot_id|>", "<|end_of_text|>"),
        transport=httpx.MockTransport(handler),
    )


def _completion(content, usage=None) -> dict:
    body = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    if usage is not None:
        body["usage"] = usage
    return body


def test_together_success_request_and_stripped_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion("  Billing Issue: fee.  \n", {"prompt_tokens": 12, "completion_tokens": 4}))

    provider = _together(handler)
    text, usage = asyncio.run(provider.complete_with_usage("Pick one", temperature=0.3, max_output_tokens=150))

    assert text == "Billing Issue: fee."
    assert usage == {"provider": "together", "model": "meta-llama/Llama-3-70b-chat-hf", "input_tokens": 12, "output_tokens": 4}
    assert seen["auth"] == "Bearer test-key"
    assert seen["url"] == API_URL
    body = seen["body"]
    assert body["model"] == "meta-llama/Llama-3-70b-chat-hf"
    assert body["messages"] == [{"role": "user", "content": "Pick one"}]
    assert body["temperature"] == 0.3
    assert body["max_tokens"] == 150
    assert body["top_p"] == 0.9
    assert body["stop"] == ["<|eot_id|>", "<|end_of_text|>"]


def test_together_complete_returns_text_only():
    provider = _together(lambda request: httpx.Response(200, json=_completion("hello")))
    assert asyncio.run(provider.complete("hi", temperature=0.5, max_output_tokens=300)) == "hello"


def test_together_non_success_status():
    provider = _together(lambda request: httpx.Response(401, json={"error": {"message": "invalid api key"}}))
    with pytest.raises(CompletionError) as exc_info:
        asyncio.run(provider.complete("hi", temperature=0.3, max_output_tokens=10))
    err = exc_info.value
    assert err.status_code == 401
    assert "Together AI API error: 401" in str(err)
    assert "invalid api key" in str(err)


@pytest.mark.parametrize(
    "body",
    [
        {"choices": []},
        {"choices": [{"message": {}}]},
        {"unexpected": True},
        _completion(None),
        _completion("   "),
    ],
)
def test_together_malformed_or_empty_body(body):
    provider = _together(lambda request: httpx.Response(200, json=body))
    with pytest.raises(CompletionError):
        asyncio.run(provider.complete("hi", temperature=0.3, max_output_tokens=10))


def test_together_non_json_body():
    provider = _together(lambda request: httpx.Response(200, text="<html>gateway</html>"))
    with pytest.raises(CompletionError) as exc_info:
        asyncio.run(provider.complete("hi", temperature=0.3, max_output_tokens=10))
    assert "not JSON" in str(exc_info.value)


def test_together_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = _together(handler)
    with pytest.raises(CompletionError) as exc_info:
        asyncio.run(provider.complete("hi", temperature=0.3, max_output_tokens=10))
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_together_no_caching():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=_completion("same"))

    provider = _together(handler)

    async def twice():
        await provider.complete("same prompt", temperature=0.3, max_output_tokens=10)
        await provider.complete("same prompt", temperature=0.3, max_output_tokens=10)

    asyncio.run(twice())
    assert len(calls) == 2


def test_ollama_options_and_usage():
    with patch(
        "support_chain.services.llm_provider._ollama_request",
        return_value=(None, {"response": " intent \n", "prompt_eval_count": 7, "eval_count": 3}),
    ) as mock_request:
        provider = OllamaProvider(base_url="http://ollama:11434", model="llama3.1:8b", stop=("<|eot_id|>",))
        text, usage = asyncio.run(provider.complete_with_usage("p", temperature=0.5, max_output_tokens=300))
    assert text == "intent"
    assert usage["input_tokens"] == 7
    assert usage["output_tokens"] == 3
    base_url, model, prompt, options, _timeout = mock_request.call_args.args
    assert base_url == "http://ollama:11434"
    assert options == {"temperature": 0.5, "num_predict": 300, "top_p": 0.9, "stop": ["<|eot_id|>"]}


def test_ollama_error():
    with patch("support_chain.services.llm_provider._ollama_request", return_value=("Ollama API error: 500 - boom", None)):
        with pytest.raises(CompletionError, match="Ollama API error: 500"):
            asyncio.run(OllamaProvider().complete("p", temperature=0.3, max_output_tokens=10))


def test_vertex_generation_config():
    with patch(
        "support_chain.services.llm_provider._vertex_generate_sync",
        return_value=("ok", {"provider": "vertex", "model": "gemini-2.5-flash", "input_tokens": 1, "output_tokens": 1}),
    ) as mock_generate:
        provider = VertexAIProvider(project_id="proj", model="gemini-2.5-flash", stop=("<|eot_id|>",))
        text = asyncio.run(provider.complete("p", temperature=0.3, max_output_tokens=200))
    assert text == "ok"
    project_id, location, model, prompt, gen_config = mock_generate.call_args.args
    assert (project_id, location, model, prompt) == ("proj", "us-central1", "gemini-2.5-flash", "p")
    assert gen_config == {"temperature": 0.3, "max_output_tokens": 200, "top_p": 0.9, "stop_sequences": ["<|eot_id|>"]}


def test_default_complete_with_usage_reports_zero():
    class Minimal(LLMProvider):
        name = "minimal"
        model = "m1"

        async def complete(self, prompt, temperature, max_output_tokens):
            return "x"

    text, usage = asyncio.run(Minimal().complete_with_usage("p", temperature=0.3, max_output_tokens=5))
    assert text == "x"
    assert usage == {"provider": "minimal", "model": "m1", "input_tokens": 0, "output_tokens": 0}
    assert total_usage([usage, usage]) == (0, 0)


def test_get_llm_provider_together():
    provider = get_llm_provider(LLMConfig(api_key="k", model="mistralai/Mixtral-8x7B-Instruct-v0.1"))
    assert isinstance(provider, TogetherProvider)
    assert provider.model == "mistralai/Mixtral-8x7B-Instruct-v0.1"
    assert provider.stop == ["<|eot_id|>", "<|end_of_text|>"]


@pytest.mark.parametrize("key", [None, "", "   ", "YOUR_TOGETHER_API_KEY_HERE"])
def test_get_llm_provider_together_requires_key(key):
    with pytest.raises(ConfigError):
        get_llm_provider(LLMConfig(api_key=key))


def test_get_llm_provider_ollama_and_vertex():
    assert isinstance(get_llm_provider(LLMConfig(provider="ollama", model="llama3.1:8b")), OllamaProvider)
    with pytest.raises(ConfigError):
        get_llm_provider(LLMConfig(provider="vertex"))
    vertex = get_llm_provider(LLMConfig(provider="vertex", vertex_project_id="proj", model="gemini-2.5-flash"))
    assert isinstance(vertex, VertexAIProvider)
    assert vertex.project_id == "proj"


def test_get_llm_provider_unknown():
    with pytest.raises(ValueError, match="Unknown LLM provider"):
        get_llm_provider(LLMConfig(provider="openai"))  # type: ignore[arg-type]


def test_register_provider():
    class Stub(LLMProvider):
        name = "stub"

        async def complete(self, prompt, temperature, max_output_tokens):
            return "stub"

    register_provider("  Stub ", lambda config: Stub())
    assert isinstance(get_llm_provider(LLMConfig(provider="stub")), Stub)  # type: ignore[arg-type]
