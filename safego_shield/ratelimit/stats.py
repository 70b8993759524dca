"""Read-only aggregation over the window store for dashboards."""

from __future__ import annotations

from dataclasses import dataclass, field

from safego_shield.ratelimit.categories import Category
from safego_shield.ratelimit.store import WindowStore, split_key


@dataclass
class RateLimitStats:
    active_windows: int = 0
    blocked_actors: int = 0
    by_category: dict[str, int] = field(
        default_factory=lambda: {c.value: 0 for c in Category}
    )


def collect_stats(store: WindowStore, now: int) -> RateLimitStats:
    """Scan every entry; O(n) and uncached, so keep it off hot paths."""
    stats = RateLimitStats()
    for key, entry in store.items():
        stats.active_windows += 1
        if entry.is_blocked(now):
            stats.blocked_actors += 1
        category = Category.parse(split_key(key)[0])
        stats.by_category[category.value] += 1
    return stats
