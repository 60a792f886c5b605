"""Anthropic model construction and deadline-bounded invocation.

Every model call in the service goes through :func:`call_with_timeout`, so a
stuck request surfaces as :class:`AITimeoutError` and the caller can fall
back to deterministic text instead of hanging the request.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TypeVar

from langchain_anthropic import ChatAnthropic

from intake.config import AI_TIMEOUT_SECONDS, ANTHROPIC_API_KEY
from intake.services.metrics import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A call that outlives its deadline keeps its worker until the HTTP client
# gives up; the pool bounds how many of those can pile up.
_AI_EXECUTOR = ThreadPoolExecutor(max_workers=8, thread_name_prefix="ai-call")


class AITimeoutError(Exception):
    """Raised when a model call does not finish within its deadline."""


def ai_configured() -> bool:
    return bool(ANTHROPIC_API_KEY)


def build_chat_model(model: str, *, temperature: float, max_tokens: int) -> ChatAnthropic:
    """Build a ChatAnthropic client with the service-wide timeout."""
    return ChatAnthropic(
        model=model,
        api_key=ANTHROPIC_API_KEY,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=AI_TIMEOUT_SECONDS,
        max_retries=1,
    )


def call_with_timeout(
    fn: Callable[..., T],
    *args,
    operation: str,
    timeout: float | None = None,
    **kwargs,
) -> T:
    """Run ``fn(*args, **kwargs)`` on the AI pool and wait at most *timeout*.

    Records an ``anthropic`` metric for *operation*.  Exceptions raised by
    *fn* propagate unchanged; an expired deadline raises ``AITimeoutError``.
    """
    deadline = AI_TIMEOUT_SECONDS if timeout is None else timeout
    t0 = time.perf_counter()
    future = _AI_EXECUTOR.submit(fn, *args, **kwargs)
    try:
        result = future.result(timeout=deadline)
    except FutureTimeoutError as exc:
        future.cancel()
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_failure("anthropic", operation, error_type="AITimeoutError", latency_ms=elapsed)
        logger.warning("%s exceeded %.1fs deadline", operation, deadline)
        raise AITimeoutError(f"{operation} timed out after {deadline:.1f}s") from exc
    except Exception as exc:
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_failure("anthropic", operation, error_type=type(exc).__name__, latency_ms=elapsed)
        raise

    elapsed = (time.perf_counter() - t0) * 1000
    metrics.record_success("anthropic", operation, latency_ms=elapsed)
    return result
