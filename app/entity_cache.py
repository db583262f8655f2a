"""
Entity Cache Module
Keyed in-memory caches for authors, publications, categories and cover images

Fetches are coalesced: while a key is being loaded every other caller waits on
the same future, so there is at most one outstanding upstream request per key.
"""

import threading
import logging
from concurrent.futures import Executor, Future
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

Loader = Callable[[str], Optional[V]]


class EntityCache(Generic[V]):
    """
    Thread-safe ID-keyed cache with request coalescing

    A loader returning None means "not found": nothing is cached and the next
    lookup will try again.
    """

    def __init__(self, name: str, executor: Optional[Executor] = None):
        self.name = name
        self._executor = executor
        self._data: Dict[str, V] = {}
        self._inflight: Dict[str, Future] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    @property
    def size(self) -> int:
        return len(self)

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            return self._data.get(key)

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def set(self, key: str, value: V):
        with self._lock:
            self._data[key] = value

    def update(self, items: Iterable[Tuple[str, V]]):
        with self._lock:
            for key, value in items:
                self._data[key] = value

    def values(self) -> List[V]:
        with self._lock:
            return list(self._data.values())

    def items(self) -> List[Tuple[str, V]]:
        with self._lock:
            return list(self._data.items())

    def is_loading(self, key: str) -> bool:
        with self._lock:
            return key in self._inflight

    def clear(self):
        """Drop every entry; fetches still in flight will not repopulate the cache"""
        with self._lock:
            self._data.clear()
            self._inflight.clear()
            self._generation += 1
        logger.debug(f"{self.name} cache cleared")

    def _claim(self, key: str) -> Tuple[Optional[Future], bool, int]:
        """
        Returns (future, owner, generation). future is None when the value is
        already cached; owner is True when the caller must run the loader.
        """
        with self._lock:
            if key in self._data:
                return None, False, self._generation
            future = self._inflight.get(key)
            if future is not None:
                return future, False, self._generation
            future = Future()
            self._inflight[key] = future
            return future, True, self._generation

    def _load(self, key: str, future: Future, generation: int, loader: Loader) -> Optional[V]:
        try:
            value = loader(key)
        except Exception as e:
            with self._lock:
                if self._inflight.get(key) is future:
                    del self._inflight[key]
            future.set_exception(e)
            raise

        with self._lock:
            if generation == self._generation and value is not None:
                self._data[key] = value
            if self._inflight.get(key) is future:
                del self._inflight[key]
        future.set_result(value)
        return value

    def get_or_fetch(self, key: str, loader: Loader) -> Optional[V]:
        """Return the cached value, loading it (once, across threads) on a miss"""
        future, owner, generation = self._claim(key)
        if future is None:
            return self.get(key)
        if not owner:
            return future.result()
        return self._load(key, future, generation, loader)

    def schedule(self, key: str, loader: Loader) -> Optional[Future]:
        """
        Fire-and-forget background load of a missing key.

        Failures are logged and swallowed. Returns the future tracking the
        fetch, or None when nothing was scheduled.
        """
        if self._executor is None:
            return None
        future, owner, generation = self._claim(key)
        if future is None or not owner:
            return future

        def run():
            try:
                self._load(key, future, generation, loader)
            except Exception as e:
                logger.warning(f"Background {self.name} fetch failed for {key}: {e}")

        try:
            self._executor.submit(run)
        except RuntimeError as e:
            # executor already shut down
            with self._lock:
                if self._inflight.get(key) is future:
                    del self._inflight[key]
            future.set_exception(e)
            logger.warning(f"Background {self.name} fetch not scheduled for {key}: {e}")
            return None
        return future

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {"name": self.name, "size": len(self._data), "loading": len(self._inflight)}
