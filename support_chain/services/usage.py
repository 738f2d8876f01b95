"""Usage type for LLM token tracking, one record per completion call."""
from typing import TypedDict


class LLMUsageDict(TypedDict, total=False):
    """Per-call LLM usage: provider, model, input/output tokens."""
    provider: str
    model: str
    input_tokens: int
    output_tokens: int


def usage_dict(provider: str, model: str, input_tokens: int, output_tokens: int) -> LLMUsageDict:
    return LLMUsageDict(
        provider=provider,
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


def zero_usage(provider: str = "", model: str = "") -> LLMUsageDict:
    """Usage with zero tokens (provider does not report usage)."""
    return usage_dict(provider=provider, model=model, input_tokens=0, output_tokens=0)


def total_usage(usages: list[LLMUsageDict]) -> tuple[int, int]:
    """Sum (input_tokens, output_tokens) over a list of usage records."""
    return (
        sum(int(u.get("input_tokens", 0) or 0) for u in usages),
        sum(int(u.get("output_tokens", 0) or 0) for u in usages),
    )
