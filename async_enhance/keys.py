"""
Cache key derivation from call parameters.

The default strategy serializes ``[args, kwargs]`` as canonical JSON, so
equal-by-value parameter lists map to the same key. Parameters that cannot
be serialized (cyclic structures, arbitrary objects) do not raise: the
generator logs a warning and returns ``settings.fallback_key``. Every such
call then shares ONE cache entry and ONE coalescing slot, so producers that
take non-JSON arguments should supply their own key generator.

JSON also erases some type distinctions: a tuple and a list with the same
items give the same key, and so do ``{1: x}`` and ``{"1": x}``. Such calls
share a cache entry. This mirrors plain JSON serialization of the arguments;
a custom key generator is the way to tell them apart.
"""
import json
import logging
from typing import Any, Dict, Optional, Tuple

from config.settings import settings
from .core import KeyGeneratorFn

logger = logging.getLogger("enhance.keys")


def default_key_generator(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
    """Serialize call parameters into a deterministic string."""
    return json.dumps(
        [list(args), kwargs],
        sort_keys=True,
        separators=(",", ":"),
    )


class KeyGenerator:
    """Derives call keys, recovering from serialization failures."""

    def __init__(self, generate: Optional[KeyGeneratorFn] = None):
        self._generate = generate or default_key_generator

    def __call__(self, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
        try:
            return self._generate(args, kwargs)
        except Exception as e:
            logger.warning(
                f"Failed to serialize call parameters ({e}); "
                f"falling back to shared key {settings.fallback_key!r}"
            )
            return settings.fallback_key
