"""Batch runner: iterate queries in order → orchestrator.execute per query → collect outcomes.

A fixed delay is awaited between successive queries (not after the last) to stay under the
provider's rate limits. Each query runs inside its own isolation boundary: a ChainError is
recorded on that query's outcome and the batch moves on, unless fail_fast is set.
"""
import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from support_chain.errors import ChainError
from support_chain.pipeline.context import ChainRun, PipelineResult
from support_chain.pipeline.orchestrator import ChainOrchestrator, Emitter
from support_chain.trace_log import trace_entered, trace_exited

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryOutcome:
    """Result or error for one query of a batch."""

    index: int
    query: str
    run: ChainRun | None = None
    error: ChainError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.run is not None

    @property
    def result(self) -> PipelineResult | None:
        return self.run.result if self.run else None


async def run_batch(
    orchestrator: ChainOrchestrator,
    queries: Sequence[str],
    *,
    delay_seconds: float = 2.0,
    fail_fast: bool = False,
    on_outcome: Callable[[QueryOutcome], None] | None = None,
    emitter: Emitter | None = None,
    stop: asyncio.Event | None = None,
) -> list[QueryOutcome]:
    """Run each query through the chain, in order. Returns one outcome per query that was started.

    fail_fast=True re-raises the first ChainError instead of recording it (whole batch aborts).
    stop: when set, no further queries are started.
    """
    trace_entered("batch.run.run_batch", n_queries=len(queries))
    outcomes: list[QueryOutcome] = []
    for i, query in enumerate(queries):
        if stop is not None and stop.is_set():
            logger.info("[batch] stop requested; skipping %d remaining queries", len(queries) - i)
            break
        logger.info("[batch] query %d of %d", i + 1, len(queries))
        try:
            chain_run = await orchestrator.execute(query, emitter=emitter)
            outcome = QueryOutcome(index=i, query=query, run=chain_run)
        except ChainError as e:
            if fail_fast:
                logger.error("[batch] query %d failed, aborting batch: %s", i + 1, e)
                raise
            logger.warning("[batch] query %d failed: %s", i + 1, e)
            outcome = QueryOutcome(index=i, query=query, error=e)
        outcomes.append(outcome)
        if on_outcome:
            on_outcome(outcome)

        if i < len(queries) - 1 and delay_seconds > 0:
            logger.info("[batch] waiting %.1fs before next query", delay_seconds)
            await asyncio.sleep(delay_seconds)

    failed = sum(1 for o in outcomes if not o.ok)
    logger.info("[batch] done: %d succeeded, %d failed", len(outcomes) - failed, failed)
    trace_exited("batch.run.run_batch", succeeded=len(outcomes) - failed, failed=failed)
    return outcomes
