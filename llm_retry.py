# llm_retry.py — exponential backoff shared by every LLM transport

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from llm_errors import LLMTransportError
from structured_log import log_event

T = TypeVar("T")


def status_of(exc: BaseException) -> Optional[int]:
    """Best-effort HTTP status from SDK exceptions (openai, azure-core, google-api-core)."""
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_retryable_status(status: Optional[int]) -> bool:
    return status is not None and (status >= 500 or status == 429)


async def with_retries(
    attempt: Callable[[], Awaitable[T]],
    is_retryable: Callable[[BaseException], bool],
    *,
    max_retries: int = 3,
    initial_delay_ms: int = 1000,
    label: str = "llm",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `attempt` until it succeeds, at most 1 + max_retries times.

    Errors the predicate rejects propagate unchanged after the attempt that
    raised them. Once the retry budget is spent the last error is wrapped in
    an LLMTransportError naming the attempt count.
    """
    delay_ms = initial_delay_ms
    attempts = 0

    while True:
        attempts += 1
        try:
            log_event("INFO", "llm_attempt", client=label, attempt=attempts)
            return await attempt()
        except Exception as e:
            retryable = is_retryable(e)
            log_event(
                "WARNING", "llm_attempt_failed", client=label, attempt=attempts,
                retryable=retryable, status=status_of(e), error=str(e),
            )
            if not retryable:
                if isinstance(e, LLMTransportError):
                    e.attempts = attempts
                raise
            if attempts > max_retries:
                raise LLMTransportError(
                    f"API request failed after {attempts} attempts: {e}",
                    status_code=status_of(e),
                    attempts=attempts,
                    retryable=True,
                ) from e
            log_event("INFO", "llm_retry", client=label, attempt=attempts, wait_ms=delay_ms)
            await sleep(delay_ms / 1000)
            delay_ms *= 2
