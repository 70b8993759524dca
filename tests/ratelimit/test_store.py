"""Tests for the sharded window store."""

from __future__ import annotations

import pytest

from safego_shield.ratelimit.store import WindowEntry, WindowStore, make_key, split_key


def test_get_set_delete(store: WindowStore):
    key = make_key("payment", "user:42")
    assert store.get(key) is None

    store.set(key, WindowEntry(count=1, window_start=1000))
    assert store.get(key) == WindowEntry(count=1, window_start=1000)
    assert len(store) == 1

    store.delete(key)
    assert store.get(key) is None
    assert len(store) == 0


def test_delete_missing_key_is_noop(store: WindowStore):
    store.delete("auth:ip:10.0.0.1")
    assert len(store) == 0


def test_items_returns_copies(store: WindowStore):
    key = make_key("maps", "ip:10.0.0.1")
    store.set(key, WindowEntry(count=1, window_start=0))

    snapshot = dict(store.items())
    snapshot[key].count = 99

    assert store.get(key).count == 1


def test_items_spans_all_shards():
    store = WindowStore(shards=4)
    keys = {make_key("default", f"ip:10.0.0.{i}") for i in range(50)}
    for key in keys:
        store.set(key, WindowEntry(count=1, window_start=0))

    assert {key for key, _ in store.items()} == keys


def test_lock_is_stable_per_key(store: WindowStore):
    key = make_key("auth", "user:7")
    assert store.lock_for(key) is store.lock_for(key)


def test_single_shard_shares_one_lock():
    store = WindowStore(shards=1)
    assert store.lock_for("a:1") is store.lock_for("b:2")


def test_rejects_zero_shards():
    with pytest.raises(ValueError):
        WindowStore(shards=0)


def test_split_key_keeps_actor_colons():
    assert split_key("payment:user:42") == ("payment", "user:42")
    assert split_key("auth:ip:::1") == ("auth", "ip:::1")


def test_entry_block_state():
    entry = WindowEntry(count=5, window_start=0, blocked_until=100)
    assert entry.is_blocked(99)
    assert not entry.is_blocked(100)
    assert not WindowEntry(count=1, window_start=0).is_blocked(0)
