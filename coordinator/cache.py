import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

_MISSING = object()


class ActorCache:
    """Values cached per actor for ``ttl`` seconds.

    Keys are ``(actor, name)`` pairs, so one actor's numbers are never served
    to another.
    """

    def __init__(self, ttl: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[Tuple[Hashable, str], Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, actor: Hashable, name: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            entry = self._entries.get((actor, name), _MISSING)
            if entry is _MISSING:
                return default
            stored_at, value = entry
            if self.clock() - stored_at >= self.ttl:
                del self._entries[(actor, name)]
                return default
            return value

    def set(self, actor: Hashable, name: str, value: Any) -> None:
        with self._lock:
            self._entries[(actor, name)] = (self.clock(), value)

    def invalidate(self, actor: Hashable) -> None:
        with self._lock:
            for key in [key for key in self._entries if key[0] == actor]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
