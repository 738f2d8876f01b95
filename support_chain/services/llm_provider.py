"""LLM providers for the chain's completion calls (Together AI, Ollama, Vertex AI).

Every provider exposes complete(prompt, temperature, max_output_tokens) -> stripped text and
raises CompletionError on any failure. No retries, no caching: each call is one round trip.
"""
from abc import ABC, abstractmethod
import asyncio
import json
import logging
import time
import urllib.error
import urllib.request
from typing import Any, Callable, Dict

import httpx

from support_chain.config import LLMConfig
from support_chain.errors import CompletionError, ConfigError
from support_chain.services.usage import LLMUsageDict, usage_dict, zero_usage
from support_chain.trace_log import trace_calls, trace_entered

logger = logging.getLogger(__name__)

_PROVIDER_REGISTRY: Dict[str, Callable[[LLMConfig], "LLMProvider"]] = {}


def register_provider(name: str, factory: Callable[[LLMConfig], "LLMProvider"]) -> None:
    name = (name or "").lower().strip()
    if name:
        _PROVIDER_REGISTRY[name] = factory


class LLMProvider(ABC):
    name: str = "base"
    model: str = ""

    @abstractmethod
    async def complete(self, prompt: str, temperature: float, max_output_tokens: int) -> str:
        pass

    async def complete_with_usage(
        self, prompt: str, temperature: float, max_output_tokens: int
    ) -> tuple[str, LLMUsageDict]:
        """Complete and return (text, usage). Default: call complete() and return empty usage."""
        text = await self.complete(prompt, temperature=temperature, max_output_tokens=max_output_tokens)
        return (text, zero_usage(self.name, self.model))


def _require_text(raw: Any, provider: str) -> str:
    """Strip generated text; a missing or blank completion is a failed call."""
    if not isinstance(raw, str):
        raise CompletionError(f"{provider}: malformed response (no text content)")
    text = raw.strip()
    if not text:
        raise CompletionError(f"{provider}: empty completion")
    return text


def _parse_chat_completion(data: Any, model: str) -> tuple[str, LLMUsageDict]:
    """Read choices[0].message.content and usage from an OpenAI-style chat completion body."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise CompletionError(f"Together AI: malformed response body ({type(e).__name__}: {e})") from e
    text = _require_text(content, "Together AI")
    u = data.get("usage") or {}
    usage = usage_dict(
        provider="together",
        model=model,
        input_tokens=int(u.get("prompt_tokens", 0) or 0),
        output_tokens=int(u.get("completion_tokens", 0) or 0),
    )
    return (text, usage)


class TogetherProvider(LLMProvider):
    """Together AI chat completions (OpenAI-compatible) over httpx."""

    name = "together"

    def __init__(
        self,
        api_key: str,
        model: str,
        api_url: str,
        top_p: float = 0.9,
        stop: tuple[str, ...] = (),
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.top_p = top_p
        self.stop = list(stop)
        self.timeout_seconds = timeout_seconds
        # Tests inject httpx.MockTransport here
        self._transport = transport

    def _payload(self, prompt: str, temperature: float, max_output_tokens: int) -> dict:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_output_tokens,
            "top_p": self.top_p,
        }
        if self.stop:
            payload["stop"] = self.stop
        return payload

    async def complete(self, prompt: str, temperature: float, max_output_tokens: int) -> str:
        text, _ = await self.complete_with_usage(prompt, temperature=temperature, max_output_tokens=max_output_tokens)
        return text

    @trace_calls("services.llm_provider.together.complete_with_usage")
    async def complete_with_usage(
        self, prompt: str, temperature: float, max_output_tokens: int
    ) -> tuple[str, LLMUsageDict]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = self._payload(prompt, temperature, max_output_tokens)
        t0 = time.perf_counter()
        logger.debug("[together] POST model=%s prompt_len=%d temperature=%s max_tokens=%d",
                     self.model, len(prompt), temperature, max_output_tokens)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                resp = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error("[together] request failed: %s (elapsed=%.1fs)", e, time.perf_counter() - t0)
            raise CompletionError(f"Together AI request failed: {e}") from e

        if not resp.is_success:
            body = resp.text
            logger.error("[together] API error %s: %s", resp.status_code, body[:200])
            raise CompletionError(
                f"Together AI API error: {resp.status_code} - {body}",
                status_code=resp.status_code,
                body=body,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise CompletionError(f"Together AI: response is not JSON: {resp.text[:200]}", body=resp.text) from e
        text, usage = _parse_chat_completion(data, self.model)
        logger.debug("[together] returned len=%d (elapsed=%.1fs)", len(text), time.perf_counter() - t0)
        return (text, usage)


def _ollama_request(
    base_url: str, model: str, prompt: str, options: dict, timeout: float
) -> tuple[str | None, dict | None]:
    """Blocking /api/generate call. Returns (error, body)."""
    req_data = {"model": model, "prompt": prompt, "stream": False, "options": options}
    data = json.dumps(req_data).encode("utf-8")
    req = urllib.request.Request(
        f"{base_url.rstrip('/')}/api/generate",
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            body = resp.read().decode("utf-8")
        try:
            return (None, json.loads(body))
        except json.JSONDecodeError:
            return (f"Ollama returned non-JSON body: {body[:200]}", None)
    except urllib.error.HTTPError as e:
        try:
            err_body = e.read().decode("utf-8")
        except Exception:
            err_body = ""
        return (f"Ollama API error: {e.code} - {err_body}", None)
    except Exception as e:
        return (str(e), None)


class OllamaProvider(LLMProvider):
    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        top_p: float = 0.9,
        stop: tuple[str, ...] = (),
        timeout_seconds: float = 60.0,
    ):
        self.base_url = base_url
        self.model = model
        self.top_p = top_p
        self.stop = list(stop)
        self.timeout_seconds = timeout_seconds

    async def complete(self, prompt: str, temperature: float, max_output_tokens: int) -> str:
        text, _ = await self.complete_with_usage(prompt, temperature=temperature, max_output_tokens=max_output_tokens)
        return text

    @trace_calls("services.llm_provider.ollama.complete_with_usage")
    async def complete_with_usage(
        self, prompt: str, temperature: float, max_output_tokens: int
    ) -> tuple[str, LLMUsageDict]:
        opts: dict[str, Any] = {"temperature": temperature, "num_predict": max_output_tokens, "top_p": self.top_p}
        if self.stop:
            opts["stop"] = self.stop
        err, body = await asyncio.to_thread(
            _ollama_request, self.base_url, self.model, prompt, opts, self.timeout_seconds
        )
        if err:
            logger.error("[ollama] %s", err)
            raise CompletionError(err)
        text = _require_text((body or {}).get("response"), "Ollama")
        usage = usage_dict(
            provider="ollama",
            model=self.model,
            input_tokens=int(body.get("prompt_eval_count", 0) or 0),
            output_tokens=int(body.get("eval_count", 0) or 0),
        )
        return (text, usage)


def _vertex_generate_sync(
    project_id: str, location: str, model_name: str, prompt: str, gen_config: dict
) -> tuple[str, LLMUsageDict]:
    t0 = time.perf_counter()
    try:
        import vertexai
        from vertexai.generative_models import GenerativeModel
    except ImportError:
        raise ConfigError(
            "Vertex AI requires: pip install google-cloud-aiplatform"
        ) from None
    vertexai.init(project=project_id, location=location)
    logger.info("[vertex] calling generate_content model=%s prompt_len=%d", model_name, len(prompt))
    model = GenerativeModel(model_name)
    try:
        response = model.generate_content(prompt, generation_config=gen_config)
        raw = response.text
    except Exception as e:
        logger.error("[vertex] generate_content raised: %s (elapsed=%.1fs)", e, time.perf_counter() - t0)
        raise CompletionError(f"Vertex AI generate_content failed: {e}") from e
    logger.info("[vertex] generate_content returned (elapsed=%.1fs)", time.perf_counter() - t0)
    text = _require_text(raw, "Vertex AI")
    usage = zero_usage("vertex", model_name)
    um = getattr(response, "usage_metadata", None)
    if um is not None:
        usage = usage_dict(
            provider="vertex",
            model=model_name,
            input_tokens=int(getattr(um, "prompt_token_count", 0) or 0),
            output_tokens=int(getattr(um, "candidates_token_count", 0) or 0),
        )
    return (text, usage)


class VertexAIProvider(LLMProvider):
    name = "vertex"

    def __init__(
        self,
        project_id: str,
        location: str = "us-central1",
        model: str = "gemini-2.5-flash",
        top_p: float = 0.9,
        stop: tuple[str, ...] = (),
    ):
        self.project_id = project_id
        self.location = location
        self.model = model
        self.top_p = top_p
        self.stop = list(stop)

    def _generation_config(self, temperature: float, max_output_tokens: int) -> dict:
        config: dict[str, Any] = {
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
            "top_p": self.top_p,
        }
        if self.stop:
            config["stop_sequences"] = self.stop
        return config

    async def complete(self, prompt: str, temperature: float, max_output_tokens: int) -> str:
        text, _ = await self.complete_with_usage(prompt, temperature=temperature, max_output_tokens=max_output_tokens)
        return text

    @trace_calls("services.llm_provider.vertex.complete_with_usage")
    async def complete_with_usage(
        self, prompt: str, temperature: float, max_output_tokens: int
    ) -> tuple[str, LLMUsageDict]:
        gen_config = self._generation_config(temperature, max_output_tokens)
        return await asyncio.to_thread(
            _vertex_generate_sync, self.project_id, self.location, self.model, prompt, gen_config
        )


def _together_factory(config: LLMConfig) -> LLMProvider:
    if not config.has_api_key():
        raise ConfigError("TOGETHER_API_KEY is not set")
    return TogetherProvider(
        api_key=(config.api_key or "").strip(),
        model=config.model,
        api_url=config.api_url,
        top_p=config.top_p,
        stop=config.stop,
        timeout_seconds=config.timeout_seconds,
    )


def _ollama_factory(config: LLMConfig) -> LLMProvider:
    return OllamaProvider(
        base_url=config.ollama_base_url,
        model=config.model,
        top_p=config.top_p,
        stop=config.stop,
        timeout_seconds=config.timeout_seconds,
    )


def _vertex_factory(config: LLMConfig) -> LLMProvider:
    project_id = (config.vertex_project_id or "").strip()
    if not project_id:
        raise ConfigError("VERTEX_PROJECT_ID is not set")
    return VertexAIProvider(
        project_id=project_id,
        location=config.vertex_location,
        model=config.model,
        top_p=config.top_p,
        stop=config.stop,
    )


register_provider("together", _together_factory)
register_provider("ollama", _ollama_factory)
register_provider("vertex", _vertex_factory)


def get_llm_provider(config: LLMConfig) -> LLMProvider:
    """Build the provider named by config.provider. Raises ValueError for unknown names."""
    trace_entered("services.llm_provider.get_llm_provider", provider=config.provider)
    provider_name = (config.provider or "together").lower()
    factory = _PROVIDER_REGISTRY.get(provider_name)
    if factory:
        return factory(config)
    raise ValueError(f"Unknown LLM provider: {config.provider}. Use together, ollama or vertex.")
