"""Config from environment. Single place for provider, credentials, deadlines and batch pacing.

Values are read once by get_config() into frozen dataclasses and passed explicitly to the
provider and the orchestrator; nothing downstream reads os.environ.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv

from support_chain.trace_log import reset_trace_cache, trace_exited

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

TOGETHER_API_URL = "https://api.together.xyz/v1/chat/completions"
TOGETHER_DEFAULT_MODEL = "meta-llama/Llama-3-70b-chat-hf"
DEFAULT_STOP = ("<|eot_id|>", "<|end_of_text|>")
API_KEY_PLACEHOLDER = "YOUR_TOGETHER_API_KEY_HERE"

ProviderName = Literal["together", "ollama", "vertex"]


@dataclass(frozen=True)
class LLMConfig:
    """Completion service settings. Default: Together AI chat completions."""
    provider: ProviderName = "together"
    model: str = TOGETHER_DEFAULT_MODEL
    api_key: str | None = field(default=None, repr=False)
    api_url: str = TOGETHER_API_URL
    top_p: float = 0.9
    stop: tuple[str, ...] = DEFAULT_STOP
    # Transport timeout for one HTTP request (seconds)
    timeout_seconds: float = 60.0
    # Ollama
    ollama_base_url: str = "http://localhost:11434"
    # Vertex
    vertex_project_id: str | None = None
    vertex_location: str = "us-central1"

    def has_api_key(self) -> bool:
        key = (self.api_key or "").strip()
        return bool(key) and key != API_KEY_PLACEHOLDER


@dataclass(frozen=True)
class ChainConfig:
    """All chain factors. Env overrides: CHAIN_*, TOGETHER_*, OLLAMA_*, VERTEX_*."""
    llm: LLMConfig = field(default_factory=LLMConfig)
    # Deadline per stage call; None disables it
    stage_timeout_seconds: float | None = 90.0
    batch_delay_seconds: float = 2.0
    # Fail when stage 3 does not name a known category (otherwise use the raw name)
    strict_categories: bool = True


def _env(key: str, default: str = "") -> str:
    return (os.getenv(key) or default).strip()


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", key, os.getenv(key), default)
        return default


def _env_optional_float(key: str, default: float | None) -> float | None:
    raw = _env(key)
    if not raw:
        return default
    if raw.lower() in ("none", "off", "0"):
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", key, raw, default)
        return default


def _env_bool(key: str, default: bool) -> bool:
    raw = _env(key).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_stop(key: str) -> tuple[str, ...]:
    raw = os.getenv(key)
    if raw is None:
        return DEFAULT_STOP
    return tuple(s.strip() for s in raw.split(",") if s.strip())


def load_env(root: Path | None = None) -> None:
    """Load <root>/.env if present. Variables already set in the process win.

    Clears the cached trace flag afterwards, so CHAIN_DEBUG_TRACE set only in .env takes effect.
    """
    env_file = (root or _PROJECT_ROOT) / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)
        logger.debug("Loaded env from %s", env_file)
    reset_trace_cache()


def default_model(provider: str) -> str:
    if provider == "ollama":
        return _env("OLLAMA_MODEL") or "llama3.1:8b"
    if provider == "vertex":
        return _env("VERTEX_MODEL") or "gemini-2.5-flash"
    return TOGETHER_DEFAULT_MODEL


def get_config(load_dotenv_file: bool = True) -> ChainConfig:
    """Build ChainConfig from env (and .env unless load_dotenv_file is False)."""
    if load_dotenv_file:
        load_env()
    provider = (_env("CHAIN_LLM_PROVIDER") or _env("LLM_PROVIDER") or "together").lower()
    llm = LLMConfig(
        provider=provider,  # type: ignore[arg-type]
        model=_env("CHAIN_LLM_MODEL") or default_model(provider),
        api_key=_env("TOGETHER_API_KEY") or None,
        api_url=_env("TOGETHER_API_URL") or TOGETHER_API_URL,
        top_p=_env_float("CHAIN_LLM_TOP_P", 0.9),
        stop=_env_stop("CHAIN_LLM_STOP"),
        timeout_seconds=_env_float("CHAIN_LLM_TIMEOUT_SECONDS", 60.0),
        ollama_base_url=_env("OLLAMA_BASE_URL") or "http://localhost:11434",
        vertex_project_id=_env("VERTEX_PROJECT_ID") or None,
        vertex_location=_env("VERTEX_LOCATION") or "us-central1",
    )
    config = ChainConfig(
        llm=llm,
        stage_timeout_seconds=_env_optional_float("CHAIN_STAGE_TIMEOUT_SECONDS", 90.0),
        batch_delay_seconds=max(0.0, _env_float("CHAIN_BATCH_DELAY_SECONDS", 2.0)),
        strict_categories=_env_bool("CHAIN_STRICT_CATEGORIES", True),
    )
    trace_exited("config.get_config", provider=llm.provider, strict_categories=config.strict_categories)
    return config
