"""
Core data structures and option types for the enhancement engine.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from config.settings import settings


# Reserved registry key used by FUNCTION scope
FUNCTION_SCOPE_KEY = "__function__"

KeyGeneratorFn = Callable[[Tuple[Any, ...], Dict[str, Any]], str]
RetryPredicate = Callable[[BaseException, int], Union[bool, Awaitable[bool]]]


class Scope(Enum):
    """Granularity at which debounce, single-flight and take-latest apply."""
    FUNCTION = "function"       # one shared slot for the whole producer
    PARAMETERS = "parameters"   # one slot per call key

    def key_for(self, key: str) -> str:
        """Registry key for a call with the given cache key."""
        if self is Scope.FUNCTION:
            return FUNCTION_SCOPE_KEY
        return key


@dataclass
class CacheEntry:
    """
    A cached producer result with the monotonic time it was fetched at.
    """
    data: Any
    fetched_at: float

    def age_seconds(self, now: float) -> float:
        """Seconds since data was fetched."""
        return now - self.fetched_at

    def is_fresh(self, ttl: float, now: float) -> bool:
        """Check if data is within ``ttl``. A negative ttl never expires."""
        if ttl < 0:
            return True
        return self.age_seconds(now) < ttl


@dataclass
class Invocation:
    """One logical producer call."""
    args: Tuple[Any, ...]
    kwargs: Dict[str, Any]
    key: str
    attempt: int = 1


@dataclass
class CacheOptions:
    """
    Caching behaviour.

    Attributes:
        ttl: Freshness window in seconds, negative disables expiry
        capacity: LRU bound, zero or negative means unbounded
        key_generator: Override for deriving a key from call parameters
        swr: Serve cached data and revalidate in the background
    """
    ttl: float = field(default_factory=lambda: settings.default_ttl_seconds)
    capacity: int = field(default_factory=lambda: settings.default_capacity)
    key_generator: Optional[KeyGeneratorFn] = None
    swr: bool = False

    @property
    def enabled(self) -> bool:
        return self.ttl >= 0 or self.capacity > 0


@dataclass
class DebounceOptions:
    """
    Debounce behaviour.

    Attributes:
        time: Coalescing delay in seconds, negative disables debounce
        scope: Whether bursts are tracked per function or per key
        take_latest: Settle overlapping invocations with the newest outcome
    """
    time: float = -1
    scope: Scope = Scope.FUNCTION
    take_latest: bool = False

    @property
    def enabled(self) -> bool:
        return self.time >= 0


@dataclass
class SingleOptions:
    """Single-flight behaviour."""
    enabled: bool = False
    scope: Scope = Scope.FUNCTION


@dataclass
class Hooks:
    """
    Notification callbacks.

    before_run() fires right before a fresh producer invocation starts.
    on_background_update_start(stale) fires when an SWR refresh begins.
    on_background_update(value, error) fires when it settles; exactly one
    of the two arguments is None.
    """
    before_run: Optional[Callable[[], Any]] = None
    on_background_update_start: Optional[Callable[[Any], Any]] = None
    on_background_update: Optional[
        Callable[[Any, Optional[BaseException]], Any]
    ] = None
