"""Batch runner: one chain execution per query, paced, with per-query failure isolation."""

from support_chain.batch.run import QueryOutcome, run_batch

__all__ = ["QueryOutcome", "run_batch"]
