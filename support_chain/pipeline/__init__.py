"""Pipeline: stage definitions, prompts, context and the orchestrator for the support chain."""

from support_chain.pipeline.context import ChainContext, ChainRun, PipelineResult
from support_chain.pipeline.orchestrator import ChainOrchestrator

__all__ = ["ChainContext", "ChainOrchestrator", "ChainRun", "PipelineResult"]
