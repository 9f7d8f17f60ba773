"""
In-process key/value store backing the statistics read-through cache.
"""

from typing import Any, Dict, Hashable, Tuple


class CacheStore:
    """
    Unbounded, process-wide memoization table.

    All operations are synchronous and never suspend, so callers running on a
    single event loop cannot observe a partially applied operation. There is
    no expiry and no eviction: entries leave only through ``delete`` or
    ``clear``.

    ``get`` returns ``None`` both for missing keys and for keys holding a
    falsy value (``[]``, ``{}``, ``0``, ``""``). Callers that need to tell the
    two apart use ``lookup`` or ``has``.
    """

    def __init__(self):
        self._entries: Dict[Hashable, Any] = {}

    def set(self, key: Hashable, value: Any) -> None:
        """Insert or replace the value stored under ``key``."""
        self._entries[key] = value

    def get(self, key: Hashable) -> Any:
        """Return the stored value, or ``None`` when absent or falsy."""
        return self._entries.get(key) or None

    def lookup(self, key: Hashable) -> Tuple[Any, bool]:
        """Return ``(value, found)``; ``found`` is the only miss signal."""
        if key in self._entries:
            return self._entries[key], True
        return None, False

    def has(self, key: Hashable) -> bool:
        """Return True when ``key`` is present, whatever its value."""
        return key in self._entries

    def delete(self, key: Hashable) -> None:
        """Remove ``key`` if present."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Return the entry count and a snapshot of keys in insertion order."""
        return {
            "size": len(self._entries),
            "keys": list(self._entries.keys()),
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.has(key)
