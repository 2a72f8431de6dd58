import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Set, Tuple

POSTS_TAG = "posts:all"


class TaggedCache:
    """In-memory response cache whose entries can be evicted by tag.

    Entries expire after ``ttl_seconds`` and at most ``max_entries`` are
    kept; the least recently used entry goes first. Mutating operations
    evict every entry carrying a tag instead of tracking individual keys.
    Each tag has a generation that eviction bumps, so a value computed
    before an eviction is never stored after it.
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        enabled: bool = True,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, str, Any]]" = OrderedDict()
        self._tags: Dict[str, Set[str]] = {}
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()

    def _drop(self, key: str):
        _, tag, _ = self._entries.pop(key)
        keys = self._tags.get(tag)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._tags[tag]

    def _purge_expired(self, now: float):
        expired = [key for key, (expires_at, _, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            self._drop(key)

    def generation(self, tag: str) -> int:
        with self._lock:
            return self._generations.get(tag, 0)

    def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, _, value = entry
            if expires_at <= self._clock():
                self._drop(key)
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any, tag: str, generation: Optional[int] = None) -> bool:
        """Store ``value``; refused when ``tag`` was evicted since ``generation``."""
        if not self.enabled:
            return False
        with self._lock:
            if generation is not None and self._generations.get(tag, 0) != generation:
                return False
            now = self._clock()
            if key in self._entries:
                self._drop(key)
            if len(self._entries) >= self.max_entries:
                self._purge_expired(now)
            while self._entries and len(self._entries) >= self.max_entries:
                self._drop(next(iter(self._entries)))
            self._entries[key] = (now + self.ttl_seconds, tag, value)
            self._tags.setdefault(tag, set()).add(key)
            return True

    def get_or_set(self, key: str, tag: str, factory: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is None:
            generation = self.generation(tag)
            value = factory()
            self.set(key, value, tag, generation=generation)
        return value

    def evict_tag(self, tag: str) -> int:
        with self._lock:
            self._generations[tag] = self._generations.get(tag, 0) + 1
            keys = self._tags.pop(tag, set())
            for key in keys:
                self._entries.pop(key, None)
            return len(keys)

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._tags.clear()

    def __len__(self):
        return len(self._entries)
