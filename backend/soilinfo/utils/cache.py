import time
from enum import Enum
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from cachetools import TTLCache

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_FAILURE_KEY = "failure"


class CacheState(str, Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"


class LoadOnceCache(Generic[T]):
    """Holds one lazily loaded value for the life of the process.

    A successful load is kept forever. A failed load serves ``fallback()``
    and is remembered for ``retry_after`` seconds, after which the next
    access tries the loader again.
    """

    def __init__(
        self,
        loader: Callable[[], T],
        fallback: Callable[[], T],
        retry_after: float = 300,
        timer: Callable[[], float] = time.monotonic,
        name: str = "value",
    ):
        self._loader = loader
        self._fallback = fallback
        self._value: Optional[T] = None
        self._loaded = False
        self._failures: TTLCache = TTLCache(maxsize=1, ttl=retry_after, timer=timer)
        self.name = name
        self.stats = {
            'hits': 0,
            'loads': 0,
            'failures': 0,
        }

    @property
    def state(self) -> CacheState:
        if self._loaded:
            return CacheState.LOADED
        if _FAILURE_KEY in self._failures:
            return CacheState.LOAD_FAILED
        return CacheState.EMPTY

    def get(self) -> T:
        """Return the cached value, loading it first if needed. Never raises."""
        if self._loaded:
            self.stats['hits'] += 1
            return self._value  # type: ignore[return-value]

        if _FAILURE_KEY in self._failures:
            self.stats['hits'] += 1
            return self._fallback()

        self.stats['loads'] += 1
        try:
            value = self._loader()
        except Exception as exc:
            self.stats['failures'] += 1
            self._failures[_FAILURE_KEY] = str(exc)
            logger.warning(f"Could not load {self.name}; serving empty data: {exc}")
            return self._fallback()

        self._value = value
        self._loaded = True
        logger.info(f"Loaded {self.name}")
        return value

    def clear(self) -> None:
        """Forget the loaded value and any remembered failure."""
        self._value = None
        self._loaded = False
        self._failures.clear()
        logger.info(f"Cache for {self.name} cleared")

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'state': self.state.value,
            'last_error': self._failures.get(_FAILURE_KEY),
        }
