"""
Async producer enhancement: caching, stale-while-revalidate, debounce,
single-flight, take-latest and retry.
"""
from .core import (
    CacheEntry,
    CacheOptions,
    DebounceOptions,
    FUNCTION_SCOPE_KEY,
    Hooks,
    Invocation,
    Scope,
    SingleOptions,
)
from .keys import KeyGenerator, default_key_generator
from .lru import LRUCache
from .store import CacheStore
from .coalescer import SingleFlight
from .debounce import DebounceScheduler
from .take_latest import TakeLatestCoalescer, take_latest
from .retry import run_with_retry
from .enhancer import EnhancedFunction, enhance
from .logging_setup import configure_logging

__all__ = [
    # Core types
    "CacheEntry",
    "CacheOptions",
    "DebounceOptions",
    "FUNCTION_SCOPE_KEY",
    "Hooks",
    "Invocation",
    "Scope",
    "SingleOptions",
    # Keys and storage
    "KeyGenerator",
    "default_key_generator",
    "LRUCache",
    "CacheStore",
    # Coalescing
    "SingleFlight",
    "DebounceScheduler",
    "TakeLatestCoalescer",
    "take_latest",
    # Retry
    "run_with_retry",
    # Entry point
    "EnhancedFunction",
    "enhance",
    "configure_logging",
]
