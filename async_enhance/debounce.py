"""
Debounce scheduling: collapse a burst of calls into one delayed invocation.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .core import Invocation, Scope

logger = logging.getLogger("enhance.debounce")


@dataclass
class _Burst:
    """Calls collected for one scope key since its timer was (re)started."""
    invocation: Invocation
    timer: Optional[asyncio.TimerHandle] = None
    waiters: List[asyncio.Future] = field(default_factory=list)


class DebounceScheduler:
    """
    Delays invocations until calls for a scope key go quiet for ``delay``
    seconds, then runs ``run`` once with the most recent call and settles
    every caller of the burst with that single outcome.
    """

    def __init__(
        self,
        delay: float,
        scope: Scope,
        run: Callable[[Invocation], Awaitable[Any]],
    ):
        self.delay = delay
        self.scope = scope
        self._run = run
        self._bursts: Dict[str, _Burst] = {}
        self._running: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.delay >= 0

    def submit(self, invocation: Invocation) -> asyncio.Future:
        """
        Join ``invocation`` to its scope key's burst and restart the timer.

        Returns:
            Future settled with the outcome of the burst's single invocation
        """
        loop = asyncio.get_running_loop()
        scope_key = self.scope.key_for(invocation.key)

        burst = self._bursts.get(scope_key)
        if burst is None:
            burst = _Burst(invocation=invocation)
            self._bursts[scope_key] = burst
        else:
            burst.timer.cancel()
            burst.invocation = invocation

        waiter = loop.create_future()
        burst.waiters.append(waiter)
        burst.timer = loop.call_later(self.delay, self._fire, scope_key)
        logger.debug(
            f"Debouncing {scope_key} (waiters: {len(burst.waiters)})"
        )
        return waiter

    def _fire(self, scope_key: str) -> None:
        burst = self._bursts.pop(scope_key)
        logger.debug(
            f"Debounce fired for {scope_key} with {len(burst.waiters)} waiters"
        )
        task = asyncio.ensure_future(self._run(burst.invocation))
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        task.add_done_callback(lambda done: fan_out(done, burst.waiters))

    @property
    def pending_keys(self) -> List[str]:
        return list(self._bursts.keys())

    @property
    def running_count(self) -> int:
        """Fired invocations that have not settled yet."""
        return len(self._running)

    def close(self) -> None:
        """Drop every pending burst, cancelling its timer and waiters."""
        for burst in self._bursts.values():
            burst.timer.cancel()
            for waiter in burst.waiters:
                waiter.cancel()
        self._bursts.clear()


def fan_out(task: asyncio.Future, waiters: List[asyncio.Future]) -> None:
    """Deliver one outcome to every waiter that is still pending."""
    if task.cancelled():
        for waiter in waiters:
            waiter.cancel()
        return

    error = task.exception()
    for waiter in waiters:
        if waiter.done():
            continue
        if error is not None:
            waiter.set_exception(error)
        else:
            waiter.set_result(task.result())
