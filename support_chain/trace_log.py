"""
Trace mode: follow one query through the chain, stage by stage and call by call.

On when CHAIN_DEBUG_TRACE (or DEBUG_TRACE) is 1, true, yes or on. Lines go to this module's
logger at INFO:

  [trace] config.get_config exited provider='together' strict_categories=True
  [trace] pipeline.stage.intent entered ordinal=1 prompt_len=312
  [trace] services.llm_provider.together.complete_with_usage exited ms=842
  [trace] pipeline.stage.intent exited ms=845 output_len=96

The flag may live in .env. config.load_env() merges .env into os.environ and then clears the
cached flag, so the next check sees the merged value.
"""
import inspect
import logging
import os
import time
from functools import wraps
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

TRACE_ENV_KEYS = ("CHAIN_DEBUG_TRACE", "DEBUG_TRACE")
_ON_VALUES = ("1", "true", "yes", "on")
_TRACE_ENABLED: bool | None = None


def is_trace_enabled() -> bool:
    """True if trace mode is on. Cached until reset_trace_cache()."""
    global _TRACE_ENABLED
    if _TRACE_ENABLED is None:
        _TRACE_ENABLED = any(
            (os.environ.get(key) or "").strip().lower() in _ON_VALUES for key in TRACE_ENV_KEYS
        )
    return _TRACE_ENABLED


def reset_trace_cache() -> None:
    """Forget the cached flag; called whenever the environment may have changed."""
    global _TRACE_ENABLED
    _TRACE_ENABLED = None


def trace_log(component: str, event: str, **fields: Any) -> None:
    if not is_trace_enabled():
        return
    line = f"[trace] {component} {event}"
    if fields:
        line += " " + " ".join(f"{k}={v!r}" for k, v in fields.items())
    logger.info(line)


def trace_entered(component: str, **fields: Any) -> None:
    trace_log(component, "entered", **fields)


def trace_exited(component: str, **fields: Any) -> None:
    trace_log(component, "exited", **fields)


def elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


F = TypeVar("F", bound=Callable[..., Any])


def trace_calls(component: str) -> Callable[[F], F]:
    """
    Decorator: entered / exited ms=N / raised error=Name around a call.
    Coroutine functions are timed until the awaited result, so provider latency shows up.
    """

    def raised(t0: float, e: Exception) -> None:
        trace_log(component, "raised", ms=elapsed_ms(t0), error=type(e).__name__, message=str(e)[:80])

    def decorator(f: F) -> F:
        if inspect.iscoroutinefunction(f):

            @wraps(f)
            async def async_wrapped(*args: Any, **kwargs: Any) -> Any:
                trace_entered(component)
                t0 = time.perf_counter()
                try:
                    out = await f(*args, **kwargs)
                except Exception as e:
                    raised(t0, e)
                    raise
                trace_exited(component, ms=elapsed_ms(t0))
                return out

            return async_wrapped  # type: ignore[return-value]

        @wraps(f)
        def wrapped(*args: Any, **kwargs: Any) -> Any:
            trace_entered(component)
            t0 = time.perf_counter()
            try:
                out = f(*args, **kwargs)
            except Exception as e:
                raised(t0, e)
                raise
            trace_exited(component, ms=elapsed_ms(t0))
            return out

        return wrapped  # type: ignore[return-value]

    return decorator
