"""
Main enhancement orchestration.

Composes caching, stale-while-revalidate, single-flight, debounce,
take-latest and retry around one producer, in that precedence order.
"""
import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .coalescer import SingleFlight
from .core import (
    CacheOptions,
    DebounceOptions,
    Hooks,
    Invocation,
    RetryPredicate,
    SingleOptions,
)
from .debounce import DebounceScheduler, fan_out
from .keys import KeyGenerator
from .retry import run_with_retry
from .store import CacheStore
from .take_latest import TakeLatestCoalescer

logger = logging.getLogger("enhance.enhancer")


class EnhancedFunction:
    """
    Callable wrapper around an async producer with:
    - TTL and LRU bounded result caching
    - Stale-while-revalidate background refresh
    - Single-flight sharing of in-flight calls
    - Debounce, optionally combined with take-latest
    - Predicate driven retry

    Calling it returns an ``asyncio.Future``; it must be called while an
    event loop is running. Every instance owns its own cache and registries.
    """

    def __init__(
        self,
        producer: Callable[..., Awaitable[Any]],
        cache: Optional[CacheOptions] = None,
        debounce: Optional[DebounceOptions] = None,
        single: Optional[SingleOptions] = None,
        retry: Optional[RetryPredicate] = None,
        hooks: Optional[Hooks] = None,
    ):
        if not callable(producer):
            raise TypeError(f"producer must be callable, got {producer!r}")

        self._producer = producer
        self._cache_options = cache or CacheOptions()
        self._debounce_options = debounce or DebounceOptions()
        self._single_options = single or SingleOptions()
        self._retry = retry
        self._hooks = hooks or Hooks()

        self._keys = KeyGenerator(self._cache_options.key_generator)
        self._store = CacheStore(
            ttl=self._cache_options.ttl,
            capacity=self._cache_options.capacity,
        )
        self._single = SingleFlight(self._single_options.scope)
        self._debouncer = DebounceScheduler(
            delay=self._debounce_options.time,
            scope=self._debounce_options.scope,
            run=self._run_fresh,
        )
        self._take_latest = (
            TakeLatestCoalescer() if self._debounce_options.take_latest else None
        )
        self._running: Set[asyncio.Task] = set()
        self._background: Set[asyncio.Task] = set()

        self._stats = {
            "calls": 0,
            "hits_fresh": 0,
            "hits_stale": 0,
            "joined_in_flight": 0,
            "invocations": 0,
            "revalidations": 0,
            "revalidation_failures": 0,
        }

        functools.update_wrapper(self, producer, updated=())

        if self._single_options.enabled and self._debouncer.enabled:
            logger.warning(
                f"Single-flight is ignored for "
                f"{getattr(producer, '__qualname__', producer)} "
                f"because debounce is enabled"
            )

    def __call__(self, *args, **kwargs) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        self._stats["calls"] += 1

        key = self._keys(args, kwargs)
        invocation = Invocation(args=args, kwargs=kwargs, key=key)

        if self._store.ttl_enabled:
            self._store.schedule_sweep()

        entry = self._store.lookup(key)
        if entry is not None:
            if self._cache_options.swr:
                return self._serve_stale(invocation, entry.data)
            logger.debug(f"CACHE HIT: {key}")
            self._stats["hits_fresh"] += 1
            return _resolved(loop, entry.data)

        use_single = self._single_options.enabled and not self._debouncer.enabled
        if use_single:
            in_flight = self._single.get(key)
            if in_flight is not None:
                self._stats["joined_in_flight"] += 1
                return _linked(loop, in_flight)

        if self._debouncer.enabled:
            return self._debouncer.submit(invocation)

        task = asyncio.ensure_future(self._run_fresh(invocation))
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        # The registry holds the task itself; callers only see linked futures
        if use_single:
            self._single.track(key, task)
        return _linked(loop, task)

    async def _run_fresh(self, invocation: Invocation) -> Any:
        """Run a fresh invocation and write its result through to the cache."""
        if self._hooks.before_run is not None:
            self._hooks.before_run()
        self._stats["invocations"] += 1

        source, value = await self._invoke(invocation)
        self._store.write(source.key, value)
        return value

    async def _invoke(self, invocation: Invocation):
        """
        Retry driver, wrapped by take-latest when enabled.

        Returns:
            (source_invocation, value), where source is the invocation whose
            producer call actually yielded ``value``
        """
        work = run_with_retry(self._producer, invocation, self._retry)
        if self._take_latest is None:
            return invocation, await work
        scope_key = self._debounce_options.scope.key_for(invocation.key)
        return await self._take_latest.run(scope_key, invocation, work)

    def _serve_stale(self, invocation: Invocation, stale: Any) -> asyncio.Future:
        """Hand back cached data now and refresh it in the background."""
        logger.debug(f"CACHE HIT (revalidating): {invocation.key}")
        self._stats["hits_stale"] += 1
        future = _resolved(asyncio.get_running_loop(), stale)

        self._notify(self._hooks.on_background_update_start, stale)
        task = asyncio.ensure_future(self._revalidate(invocation))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return future

    async def _revalidate(self, invocation: Invocation) -> None:
        try:
            source, value = await self._invoke(invocation)
        except Exception as e:
            self._stats["revalidation_failures"] += 1
            logger.warning(f"Background revalidation failed: {invocation.key} - {e}")
            self._notify(self._hooks.on_background_update, None, e)
            return

        self._store.write(source.key, value, force=True)
        self._stats["revalidations"] += 1
        logger.debug(f"Background revalidation complete: {invocation.key}")
        self._notify(self._hooks.on_background_update, value, None)

    def _notify(self, hook: Optional[Callable[..., Any]], *args) -> None:
        if hook is None:
            return
        try:
            hook(*args)
        except Exception:
            logger.exception(f"Hook {getattr(hook, '__name__', hook)} failed")

    def clear_cache(self, *args, **kwargs) -> int:
        """
        Without arguments, wipe the whole cache. With arguments, remove only
        the entry for exactly those call parameters.

        Returns:
            Number of entries removed
        """
        if not args and not kwargs:
            return self._store.clear()
        return int(self._store.delete(self._keys(args, kwargs)))

    def close(self) -> None:
        """Cancel pending timers and debounced calls. Running calls finish."""
        self._store.close()
        self._debouncer.close()

    def get_stats(self) -> Dict[str, Any]:
        """Get call and cache statistics."""
        lookups = self._stats["calls"] - self._stats["joined_in_flight"]
        hits = self._stats["hits_fresh"] + self._stats["hits_stale"]
        hit_rate = (hits / lookups * 100) if lookups > 0 else 0
        return {
            **self._stats,
            "hit_rate_percent": round(hit_rate, 1),
            "cache": self._store.get_stats(),
            "single_flight": self._single.get_stats(),
            "debouncing_keys": self._debouncer.pending_keys,
            "running_count": len(self._running) + self._debouncer.running_count,
            "revalidating_count": len(self._background),
        }


def _resolved(loop: asyncio.AbstractEventLoop, value: Any) -> asyncio.Future:
    future = loop.create_future()
    future.set_result(value)
    return future


def _linked(loop: asyncio.AbstractEventLoop, source: asyncio.Future) -> asyncio.Future:
    """Per-caller future settled from ``source``; cancelling it leaves ``source`` alone."""
    future = loop.create_future()
    source.add_done_callback(lambda done: fan_out(done, [future]))
    return future


def enhance(
    producer: Optional[Callable[..., Awaitable[Any]]] = None,
    *,
    cache: Optional[CacheOptions] = None,
    debounce: Optional[DebounceOptions] = None,
    single: Optional[SingleOptions] = None,
    retry: Optional[RetryPredicate] = None,
    hooks: Optional[Hooks] = None,
):
    """
    Wrap ``producer`` in an EnhancedFunction.

    Usable directly or as a decorator:

        fetch_user = enhance(fetch_user, cache=CacheOptions(ttl=300))

        @enhance(single=SingleOptions(enabled=True))
        async def load_config(): ...
    """
    def wrap(fn: Callable[..., Awaitable[Any]]) -> EnhancedFunction:
        return EnhancedFunction(
            fn,
            cache=cache,
            debounce=debounce,
            single=single,
            retry=retry,
            hooks=hooks,
        )

    if producer is None:
        return wrap
    return wrap(producer)
