"""Orchestrator: runs the five stages in order for one query.

intent -> categories -> selected_category -> [category name] -> details -> response

Each stage's prompt is built from the context left by the stages before it, so the stages
run strictly one after another. A failed completion aborts the chain: no later stage runs,
no partial result is returned, nothing is retried.
"""
import asyncio
import logging
import time
from collections.abc import Callable

from support_chain.config import ChainConfig
from support_chain.errors import CategoryNotRecognizedError, StageFailedError
from support_chain.pipeline.categories import CategorySelection, extract_category_name, parse_selection
from support_chain.pipeline.context import ChainContext, ChainRun, PipelineResult
from support_chain.pipeline.prompts import STAGE_SPECS, StageSpec
from support_chain.pipeline.stages import CATEGORY_SELECTION, DETAIL_EXTRACTION, STAGE_LABELS, ordinal
from support_chain.services.llm_provider import LLMProvider
from support_chain.services.usage import LLMUsageDict
from support_chain.trace_log import elapsed_ms, trace_entered, trace_exited

logger = logging.getLogger(__name__)

Emitter = Callable[[str], None]


def _emit(emitter: Emitter | None, chunk: str) -> None:
    if emitter and chunk.strip():
        emitter(chunk.strip())


class ChainOrchestrator:
    """Owns the fixed stage sequence. Holds no per-query state, so one instance can serve concurrent runs."""

    def __init__(self, provider: LLMProvider, config: ChainConfig | None = None):
        self.provider = provider
        self.config = config or ChainConfig()

    async def run(self, query: str, emitter: Emitter | None = None) -> PipelineResult:
        """Run all five stages; return [intent, categories, selected_category, details, response]."""
        chain_run = await self.execute(query, emitter=emitter)
        return chain_run.result

    def run_sync(self, query: str, emitter: Emitter | None = None) -> PipelineResult:
        return asyncio.run(self.run(query, emitter=emitter))

    async def execute(self, query: str, emitter: Emitter | None = None) -> ChainRun:
        """Run the chain and return the result with resolved category, final context and usage."""
        text = (query or "").strip()
        if not text:
            raise ValueError("query must not be empty")
        t0 = time.perf_counter()
        trace_entered("pipeline.orchestrator.execute", query_len=len(text))
        logger.info("[chain] processing query: %s", text[:80])

        ctx = ChainContext(query=text)
        usages: list[LLMUsageDict] = []
        selection: CategorySelection | None = None

        for spec in STAGE_SPECS:
            if spec.name == DETAIL_EXTRACTION:
                selection, category_name = self._resolve_category(ctx.get(CATEGORY_SELECTION))
                ctx = ctx.with_category_name(category_name)
            output, usage = await self._run_stage(spec, ctx, emitter)
            ctx = ctx.with_output(spec.name, output)
            usages.append(usage)

        duration_ms = elapsed_ms(t0)
        logger.info("[chain] completed %d stages in %dms", len(usages), duration_ms)
        trace_exited("pipeline.orchestrator.execute", ms=duration_ms, category=ctx.category_name)
        return ChainRun(
            result=PipelineResult.from_context(ctx),
            context=ctx,
            category_name=ctx.category_name or "",
            selection=selection,
            usages=tuple(usages),
            duration_ms=duration_ms,
        )

    async def _run_stage(
        self, spec: StageSpec, ctx: ChainContext, emitter: Emitter | None
    ) -> tuple[str, LLMUsageDict]:
        n = ordinal(spec.name)
        label = STAGE_LABELS[spec.name]
        _emit(emitter, f"[Stage {n}] {label}...")
        prompt = spec.build_prompt(ctx)
        trace_entered(f"pipeline.stage.{spec.name}", ordinal=n, prompt_len=len(prompt))
        t0 = time.perf_counter()
        timeout = self.config.stage_timeout_seconds
        call = self.provider.complete_with_usage(
            prompt, temperature=spec.temperature, max_output_tokens=spec.max_output_tokens
        )
        try:
            if timeout is None:
                output, usage = await call
            else:
                output, usage = await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error("[chain] stage %d (%s) timed out after %.1fs", n, spec.name, timeout)
            cause = TimeoutError(f"no completion within {timeout:g}s")
            raise StageFailedError(spec.name, n, cause) from e
        except Exception as e:
            logger.error("[chain] stage %d (%s) failed: %s", n, spec.name, e)
            raise StageFailedError(spec.name, n, e) from e

        logger.info("[chain] stage %d (%s) done len=%d", n, spec.name, len(output))
        trace_exited(f"pipeline.stage.{spec.name}", ms=elapsed_ms(t0), output_len=len(output))
        _emit(emitter, f"{label}: {output}")
        return (output, usage)

    def _resolve_category(self, selected_category: str) -> tuple[CategorySelection | None, str]:
        """Turn stage 3 text into (selection, category name for stage 4)."""
        try:
            selection = parse_selection(selected_category)
        except CategoryNotRecognizedError as e:
            if self.config.strict_categories:
                logger.error("[chain] %s", e)
                raise
            name = extract_category_name(selected_category)
            logger.warning("[chain] category %r not in vocabulary; using it as-is", name)
            return (None, name)
        return (selection, selection.category)
