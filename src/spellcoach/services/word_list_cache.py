"""Caller-owned cache of a learner's word bank snapshot."""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, Hashable, Optional, TypeVar

from spellcoach.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class WordListCache(Generic[T]):
    """Holds one payload for one key within a freshness window."""
    max_age_seconds: float = field(default_factory=lambda: settings.session.word_list_cache_seconds)
    key: Optional[Hashable] = None
    timestamp: Optional[float] = None
    payload: Optional[T] = None
    clock: Callable[[], float] = time.monotonic

    def is_fresh(self, key: Hashable) -> bool:
        if self.timestamp is None or self.key != key:
            return False
        return self.clock() - self.timestamp < self.max_age_seconds

    def get(self, key: Hashable) -> Optional[T]:
        return self.payload if self.is_fresh(key) else None

    def store(self, key: Hashable, payload: T) -> T:
        self.key = key
        self.payload = payload
        self.timestamp = self.clock()
        return payload

    def invalidate(self) -> None:
        self.key = None
        self.payload = None
        self.timestamp = None

    def get_or_load(self, key: Hashable, loader: Callable[[], T]) -> T:
        cached = self.get(key)
        if cached is not None:
            return cached
        logger.debug(f"Loading word list for {key!r}")
        return self.store(key, loader())

    def force_refresh(self, key: Hashable, loader: Callable[[], T]) -> T:
        """Drop whatever is cached and load again."""
        self.invalidate()
        return self.store(key, loader())
