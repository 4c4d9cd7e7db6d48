"""
Single-flight request coalescing.

While an invocation for a scope key is in flight, later calls for the same
key are linked to its future instead of starting another producer call.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from .core import Scope

logger = logging.getLogger("enhance.coalescer")


class SingleFlight:
    """
    Registry of in-flight futures, at most one per scope key.

    Pattern:
    - First call for a key starts the invocation and registers its future
    - Later calls for the key are linked to that future, never handed it
    - The entry is dropped as soon as the future settles, success or not

    Usage:
        flights = SingleFlight(Scope.PARAMETERS)
        future = flights.get(key)
        if future is None:
            future = start_invocation()
            flights.track(key, future)
    """

    def __init__(self, scope: Scope = Scope.FUNCTION):
        self.scope = scope
        self._in_flight: Dict[str, asyncio.Future] = {}

    def get(self, key: str) -> Optional[asyncio.Future]:
        """Return the live future for ``key``'s scope, if any."""
        scope_key = self.scope.key_for(key)
        future = self._in_flight.get(scope_key)
        if future is not None:
            logger.debug(f"Joining in-flight call for {scope_key}")
        return future

    def track(self, key: str, future: asyncio.Future) -> None:
        """Register ``future`` as the in-flight call for ``key``'s scope."""
        scope_key = self.scope.key_for(key)
        self._in_flight[scope_key] = future
        logger.debug(f"Initiating call for {scope_key}")

        def release(done: asyncio.Future) -> None:
            if self._in_flight.get(scope_key) is done:
                del self._in_flight[scope_key]

        future.add_done_callback(release)

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight calls."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "active_requests": len(self._in_flight),
            "active_keys": list(self._in_flight.keys()),
        }
