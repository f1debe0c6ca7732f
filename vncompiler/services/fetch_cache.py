"""
Fetch cache - URL -> content map shared by every compile on one resolver
"""
from __future__ import annotations

import threading
from typing import Dict, Optional


class FetchCache:
    """Thread-safe in-process cache of fetched dependency content.

    Owned by a single DependencyResolver; pass the same instance to several
    resolvers to share it. Not persisted.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, url: str) -> Optional[str]:
        if not self.enabled:
            return None
        with self._lock:
            return self._entries.get(url)

    def put(self, url: str, content: str) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[url] = content

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
