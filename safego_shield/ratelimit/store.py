"""Sharded in-memory store of fixed-window counters."""

from __future__ import annotations

import threading
import zlib
from dataclasses import dataclass, replace
from typing import Iterator

DEFAULT_SHARDS = 64


@dataclass
class WindowEntry:
    """Counter state for one (category, actor) pair."""

    count: int
    window_start: int
    blocked_until: int | None = None

    def is_blocked(self, now: int) -> bool:
        return self.blocked_until is not None and self.blocked_until > now


def make_key(category: str, actor_key: str) -> str:
    return f"{category}:{actor_key}"


def split_key(key: str) -> tuple[str, str]:
    """Split a composite key into (category, actor_key)."""
    category, _, actor_key = key.partition(":")
    return category, actor_key


class _Shard:
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: dict[str, WindowEntry] = {}


class WindowStore:
    """Window entries spread over independently locked shards.

    Callers that read-modify-write an entry must hold ``lock_for(key)``
    for the whole sequence. ``get``/``set``/``delete`` do not lock on their
    own so they can be composed inside that critical section.

    NOTE: Process-local state - every worker process enforces its own quota.
    """

    def __init__(self, shards: int = DEFAULT_SHARDS):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._shards = [_Shard() for _ in range(shards)]

    def _shard(self, key: str) -> _Shard:
        # crc32: stable across processes
        return self._shards[zlib.crc32(key.encode("utf-8")) % len(self._shards)]

    def lock_for(self, key: str) -> threading.Lock:
        return self._shard(key).lock

    def get(self, key: str) -> WindowEntry | None:
        return self._shard(key).entries.get(key)

    def set(self, key: str, entry: WindowEntry) -> None:
        self._shard(key).entries[key] = entry

    def delete(self, key: str) -> None:
        self._shard(key).entries.pop(key, None)

    def items(self) -> Iterator[tuple[str, WindowEntry]]:
        """Yield copies of all entries, one shard snapshot at a time."""
        for shard in self._shards:
            with shard.lock:
                snapshot = [(key, replace(entry)) for key, entry in shard.entries.items()]
            yield from snapshot

    def __len__(self) -> int:
        return sum(len(shard.entries) for shard in self._shards)
