"""
Take-latest coalescing.

When invocations for the same key overlap, every caller settles with the
outcome of the most recently started one. All invocations still run to
completion; only their results are discarded.
"""
import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .core import Invocation, KeyGeneratorFn
from .keys import KeyGenerator

logger = logging.getLogger("enhance.take_latest")


class TakeLatestCoalescer:
    """
    Per-key groups of overlapping invocations.

    A group stays open while any of its invocations is unsettled. Once a
    full wait over the group finishes without the group growing, it is
    closed (detached from the registry) and the newest invocation's
    outcome is handed to every member.
    """

    def __init__(self):
        self._groups: Dict[str, List[Tuple[Invocation, asyncio.Future]]] = {}

    async def run(
        self,
        scope_key: str,
        invocation: Invocation,
        work: Awaitable[Any],
    ) -> Tuple[Invocation, Any]:
        """
        Run ``work`` as part of ``scope_key``'s group.

        Returns:
            (latest_invocation, value) of the group's newest member

        Raises:
            Exception: the newest member's error, unchanged
        """
        task = asyncio.ensure_future(work)
        group = self._groups.setdefault(scope_key, [])
        group.append((invocation, task))
        if len(group) > 1:
            logger.debug(f"Overlapping call for {scope_key} (group size: {len(group)})")

        await asyncio.wait([task])

        while True:
            size = len(group)
            await asyncio.wait([t for _, t in group])
            if len(group) == size:
                break

        # Own outcome is superseded by the newest member's
        if not task.cancelled():
            task.exception()

        if self._groups.get(scope_key) is group:
            del self._groups[scope_key]

        latest_invocation, latest = group[-1]
        if latest is not task:
            logger.debug(f"Superseded result for {scope_key} by newer call")
        return latest_invocation, latest.result()

    @property
    def active_keys(self) -> List[str]:
        return list(self._groups.keys())


def take_latest(
    producer: Callable[..., Awaitable[Any]],
    key_generator: Optional[KeyGeneratorFn] = None,
) -> Callable[..., Awaitable[Any]]:
    """
    Wrap ``producer`` so overlapping calls with the same key all resolve
    with the newest call's outcome.

    Example:
        search = take_latest(search_api, lambda args, kwargs: "search")
        r1 = asyncio.ensure_future(search("a"))
        r2 = asyncio.ensure_future(search("ab"))
        # r1 and r2 both resolve with the "ab" results
    """
    coalescer = TakeLatestCoalescer()
    keys = KeyGenerator(key_generator)

    @functools.wraps(producer)
    async def wrapper(*args, **kwargs):
        invocation = Invocation(args=args, kwargs=kwargs, key=keys(args, kwargs))
        _, value = await coalescer.run(
            invocation.key, invocation, producer(*args, **kwargs)
        )
        return value

    return wrapper
