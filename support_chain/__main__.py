"""Entry point for: python -m support_chain [QUERY ...]

Runs each query (default: the five reference bank queries) through the chain and prints
every stage's output. Exit code 1 if configuration is incomplete or any query failed.
"""
import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from support_chain.batch import QueryOutcome, run_batch
from support_chain.config import ChainConfig, default_model, get_config
from support_chain.errors import ChainError, ConfigError
from support_chain.pipeline import ChainOrchestrator
from support_chain.pipeline.stages import STAGE_LABELS, STAGES
from support_chain.services.llm_provider import get_llm_provider
from support_chain.services.usage import total_usage

logger = logging.getLogger("support_chain")

DEMO_QUERIES = [
    "I was charged $50 fee yesterday and I don't know why",
    "I want to open a savings account",
    "I can't log into my online banking",
    "Where is my pending transaction from Amazon?",
    "My debit card is not working at ATMs",
]

RULE = "=" * 80


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="support_chain",
        description="Run bank customer queries through the 5-stage support prompt chain.",
    )
    parser.add_argument("queries", nargs="*", help="Customer queries (default: built-in demo queries)")
    parser.add_argument("--delay", type=float, default=None, help="Seconds between queries (default: config)")
    parser.add_argument("--provider", choices=["together", "ollama", "vertex"], default=None)
    parser.add_argument("--model", default=None, help="Model id for the provider")
    parser.add_argument("--fail-fast", action="store_true", help="Stop the batch at the first failed query")
    parser.add_argument("--lenient-categories", action="store_true",
                        help="Accept a selected category outside the known list instead of failing")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def _apply_overrides(config: ChainConfig, args: argparse.Namespace) -> ChainConfig:
    llm = config.llm
    if args.provider:
        llm = replace(llm, provider=args.provider, model=default_model(args.provider))
    if args.model:
        llm = replace(llm, model=args.model)
    config = replace(config, llm=llm)
    if args.delay is not None:
        config = replace(config, batch_delay_seconds=max(0.0, args.delay))
    if args.lenient_categories:
        config = replace(config, strict_categories=False)
    return config


def _print_missing_key_help() -> None:
    print("\nERROR: Please set your Together AI API key!", file=sys.stderr)
    print("\nOptions:", file=sys.stderr)
    print('1. Set environment variable: export TOGETHER_API_KEY="your-key-here"', file=sys.stderr)
    print("2. Add TOGETHER_API_KEY=... to a .env file in the project root", file=sys.stderr)
    print("\nGet your API key from: https://api.together.xyz/settings/api-keys\n", file=sys.stderr)


def _print_outcome(outcome: QueryOutcome, total: int) -> None:
    print(f"\n{'#' * 80}")
    print(f"TEST CASE {outcome.index + 1} of {total}: {outcome.query}")
    print("#" * 80)
    if not outcome.ok:
        print(f"\nFAILED: {outcome.error}")
        return
    chain_run = outcome.run
    print("\nSUMMARY OF ALL STAGES:")
    print("-" * 80)
    for n, (stage, text) in enumerate(zip(STAGES, chain_run.result), start=1):
        print(f"\nStage {n} - {STAGE_LABELS[stage]}:")
        print(text)
    tokens_in, tokens_out = total_usage(list(chain_run.usages))
    print(f"\n(category={chain_run.category_name!r} tokens_in={tokens_in} tokens_out={tokens_out} "
          f"duration_ms={chain_run.duration_ms})")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [support_chain] %(levelname)s %(message)s",
    )
    config = _apply_overrides(get_config(), args)
    try:
        provider = get_llm_provider(config.llm)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        if config.llm.provider == "together":
            _print_missing_key_help()
        return 1
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1

    queries = args.queries or DEMO_QUERIES
    print(RULE)
    print("BANK CUSTOMER SUPPORT PROMPT CHAIN")
    print(f"Provider: {config.llm.provider}  Model: {config.llm.model}")
    print(RULE)

    orchestrator = ChainOrchestrator(provider, config)
    try:
        outcomes = asyncio.run(
            run_batch(
                orchestrator,
                queries,
                delay_seconds=config.batch_delay_seconds,
                fail_fast=args.fail_fast,
                on_outcome=lambda o: _print_outcome(o, len(queries)),
            )
        )
    except (ChainError, ValueError) as e:
        logger.error("Batch aborted: %s", e)
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1

    failed = [o for o in outcomes if not o.ok]
    print(f"\n{RULE}")
    if failed or len(outcomes) < len(queries):
        print(f"{len(outcomes) - len(failed)} of {len(queries)} queries completed; {len(failed)} failed.")
        print("\nTroubleshooting:")
        print("- Check your API key is valid")
        print("- Verify you have credits in your provider account")
        print("- Check your internet connection")
        print(RULE)
        return 1
    print("ALL QUERIES COMPLETED SUCCESSFULLY")
    print(RULE)
    return 0


if __name__ == "__main__":
    sys.exit(main())
