"""Retry driver for producer invocations."""
import inspect
import logging
from typing import Any, Callable, Optional

from tenacity import AsyncRetrying, TryAgain, retry_never, wait_none

from .core import Invocation, RetryPredicate

logger = logging.getLogger("enhance.retry")


async def run_with_retry(
    producer: Callable[..., Any],
    invocation: Invocation,
    predicate: Optional[RetryPredicate] = None,
) -> Any:
    """
    Call ``producer`` with the invocation's parameters until it succeeds or
    ``predicate(error, attempt)`` declines another attempt.

    ``attempt`` is 1-based and counts the attempt that just failed. The
    predicate may return an awaitable, which is awaited, so it can sleep
    before retrying. There is no built-in cap or delay: only an explicit
    ``TryAgain`` makes tenacity loop, anything else is re-raised unchanged.
    """
    retrying = AsyncRetrying(retry=retry_never, wait=wait_none(), reraise=True)
    async for attempt in retrying:
        with attempt:
            invocation.attempt = attempt.retry_state.attempt_number
            try:
                result = producer(*invocation.args, **invocation.kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as exc:
                if predicate is None:
                    raise
                decision = predicate(exc, invocation.attempt)
                if inspect.isawaitable(decision):
                    decision = await decision
                if not decision:
                    raise
                logger.info(
                    f"Retrying {getattr(producer, '__qualname__', producer)} "
                    f"for {invocation.key} (attempt {invocation.attempt} failed: {exc})"
                )
                raise TryAgain from exc
