"""Read-through descriptor cache keyed by type identity."""

import logging
import threading
from typing import Callable, Hashable

from pydantic import BaseModel

from structured_conversion.schema.descriptor import SchemaDescriptor, descriptor_from_model

logger = logging.getLogger(__name__)


class CacheStats(BaseModel):
    """Snapshot of cache counters."""

    size: int
    hits: int
    misses: int
    hit_rate: float


class SchemaCache:
    """
    Concurrent read-through cache of schema descriptors.

    Each key is built at most once: concurrent first users of the same key
    wait on a per-key lock while a single writer runs the builder. The cache
    is owned by the host application and injected where needed.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, SchemaDescriptor] = {}
        self._key_locks: dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> SchemaDescriptor | None:
        """Return the cached descriptor for key without building it."""
        return self._entries.get(key)

    def get_or_build(
        self, key: Hashable, builder: Callable[[], SchemaDescriptor]
    ) -> SchemaDescriptor:
        """
        Return the descriptor for key, building it once on first use.

        Args:
            key (Hashable): Cache key, usually the model class.
            builder (Callable[[], SchemaDescriptor]): Invoked on a miss.

        Returns:
            SchemaDescriptor: Cached descriptor.
        """
        descriptor = self._entries.get(key)
        if descriptor is not None:
            self._record(hit=True)
            return descriptor

        with self._guard:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            descriptor = self._entries.get(key)
            if descriptor is not None:
                self._record(hit=True)
                return descriptor
            self._record(hit=False)
            descriptor = builder()
            self._entries[key] = descriptor
            logger.debug("Cached descriptor %s for key %r", descriptor.name, key)
        return descriptor

    def descriptor_for(self, model: type[BaseModel]) -> SchemaDescriptor:
        """Return the descriptor for a pydantic model class."""
        return self.get_or_build(model, lambda: descriptor_from_model(model))

    def clear(self) -> None:
        with self._guard:
            self._entries.clear()
            self._key_locks.clear()

    def stats(self) -> CacheStats:
        with self._guard:
            total = self._hits + self._misses
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                hit_rate=round(self._hits / total, 4) if total else 0.0,
            )

    def _record(self, hit: bool) -> None:
        with self._guard:
            if hit:
                self._hits += 1
            else:
                self._misses += 1
