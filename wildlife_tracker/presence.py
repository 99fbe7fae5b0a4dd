"""In-process tracker of recently active users."""

import threading
import time
from typing import Callable, Dict, Set


class OnlineUsersTracker:
    """
    Remembers when each user was last seen.

    A user is online while the last sighting of them is younger than
    ``ttl_seconds``. Safe to share between request threads.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def touch(self, username: str) -> None:
        with self._lock:
            self._last_seen[username] = self._clock()

    def forget(self, username: str) -> None:
        with self._lock:
            self._last_seen.pop(username, None)

    def get_online_users(self) -> Set[str]:
        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            expired = [name for name, seen in self._last_seen.items() if seen < cutoff]
            for name in expired:
                del self._last_seen[name]
            return set(self._last_seen)
