"""Chain context: the query plus every stage output so far. Also the result types returned to callers.

A ChainContext is never modified. Recording a stage output returns a new context with one
more entry, so the context handed to stage k holds exactly the outputs of stages 1..k-1.
"""
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, NamedTuple

from support_chain.pipeline.categories import CategorySelection
from support_chain.pipeline.stages import STAGES
from support_chain.services.usage import LLMUsageDict


def _empty_outputs() -> Mapping[str, str]:
    return MappingProxyType({})


@dataclass(frozen=True)
class ChainContext:
    """Context passed from stage to stage. Owned by one chain execution."""

    query: str
    """Original customer query (stripped)."""
    outputs: Mapping[str, str] = field(default_factory=_empty_outputs)
    """Stage name -> generated text, in completion order."""
    category_name: str | None = None
    """Short category label derived from the selected_category output; set between stages 3 and 4."""

    def get(self, stage: str) -> str:
        try:
            return self.outputs[stage]
        except KeyError:
            raise KeyError(f"stage {stage!r} has not produced output yet") from None

    def has(self, stage: str) -> bool:
        return stage in self.outputs

    def completed(self) -> list[str]:
        return list(self.outputs)

    def with_output(self, stage: str, text: str) -> "ChainContext":
        if stage not in STAGES:
            raise ValueError(f"unknown stage {stage!r}")
        if stage in self.outputs:
            raise ValueError(f"stage {stage!r} already has output")
        expected = STAGES[len(self.outputs)]
        if stage != expected:
            raise ValueError(f"stage {stage!r} out of order; next stage is {expected!r}")
        outputs = dict(self.outputs)
        outputs[stage] = text
        return replace(self, outputs=MappingProxyType(outputs))

    def with_category_name(self, name: str) -> "ChainContext":
        return replace(self, category_name=name)


class PipelineResult(NamedTuple):
    """Ordered outputs of one chain execution: always exactly five texts."""

    intent: str
    categories: str
    selected_category: str
    details: str
    response: str

    @classmethod
    def from_context(cls, ctx: ChainContext) -> "PipelineResult":
        return cls(*(ctx.get(stage) for stage in STAGES))


@dataclass(frozen=True)
class ChainRun:
    """PipelineResult plus what the orchestrator learned along the way."""

    result: PipelineResult
    context: ChainContext
    category_name: str
    selection: CategorySelection | None = None
    """None only when category validation is off and the name matched nothing."""
    usages: tuple[LLMUsageDict, ...] = ()
    duration_ms: int = 0
