"""Bank customer support prompt chain: five ordered LLM stages from query to reply."""

from support_chain.config import ChainConfig, LLMConfig, get_config
from support_chain.errors import (
    CategoryNotRecognizedError,
    ChainError,
    CompletionError,
    ConfigError,
    StageFailedError,
)
from support_chain.pipeline import ChainOrchestrator, PipelineResult

__all__ = [
    "CategoryNotRecognizedError",
    "ChainConfig",
    "ChainError",
    "ChainOrchestrator",
    "CompletionError",
    "ConfigError",
    "LLMConfig",
    "PipelineResult",
    "StageFailedError",
    "get_config",
]
