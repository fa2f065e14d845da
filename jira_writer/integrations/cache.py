"""Session cache for Jira metadata.

Projects, issue types and create-metadata rarely change while an operation
runs, so they are fetched once per orchestrator run and dropped at its end.
The cache is never shared between runs.

Concurrency Model:
    Uses threading.Lock for access. Performs deepcopy outside the lock to
    minimize contention, and stores/returns copies so callers cannot
    corrupt cached data.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetadataKey:
    """Cache key: a metadata kind plus its parameters."""

    kind: str
    params: tuple[str, ...] = ()

    def __str__(self) -> str:
        return ":".join((self.kind, *self.params))


class SessionCache:
    """In-memory key-value cache scoped to one run."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: MetadataKey) -> Any | None:
        """Return a copy of the cached value, or None."""
        with self._lock:
            key_str = str(key)
            if key_str not in self._values:
                self.misses += 1
                return None
            self.hits += 1
            value = self._values[key_str]
        logger.debug(f"Cache hit for {key}")
        return copy.deepcopy(value)

    def set(self, key: MetadataKey, value: Any) -> None:
        stored = copy.deepcopy(value)
        with self._lock:
            self._values[str(key)] = stored
        logger.debug(f"Cached {key}")

    def __contains__(self, key: MetadataKey) -> bool:
        with self._lock:
            return str(key) in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    async def get_or_load(
        self,
        key: MetadataKey,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value, calling loader on a miss.

        Loader errors propagate and nothing is cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        self.set(key, value)
        return copy.deepcopy(value)

    def clear(self) -> None:
        """Drop every entry (end of run)."""
        with self._lock:
            count = len(self._values)
            self._values.clear()
        logger.debug(f"Cleared {count} cached metadata entries")


__all__ = [
    "MetadataKey",
    "SessionCache",
]
