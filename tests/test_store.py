"""Tests for MemoryStore."""

import pytest

from hierarchical_memory.core.store import MemoryStore
from hierarchical_memory.types import (
    InvalidCoverageError,
    ItemNotFoundError,
    MessageItem,
    SummaryItem,
)


def _summary(text="summary", level=1):
    return SummaryItem(id=0, level=level, text=text, covers=())


@pytest.fixture
def store():
    s = MemoryStore("alice")
    for i in range(4):
        s.append("user" if i % 2 == 0 else "assistant", f"message number {i + 1}")
    return s


def test_append_ids_monotonic(store):
    assert store.active_ids() == [1, 2, 3, 4]
    assert store.next_id == 5
    items = store.all_items()
    assert all(isinstance(i, MessageItem) for i in items)
    assert all(a.created_at <= b.created_at for a, b in zip(items, items[1:]))


def test_append_tracks_counters(store):
    assert store.message_count == 4
    assert store.message_chars == 4 * len("message number 1")
    assert store.active_chars() == store.message_chars


def test_append_sets_owner_and_tags():
    s = MemoryStore("bob")
    item_id = s.append("user", "hello", tags=("greeting",))
    item = s.require(item_id)
    assert item.owner_entity_id == "bob"
    assert item.tags == ("greeting",)


def test_get_unknown_returns_none(store):
    assert store.get(99) is None


def test_require_unknown_raises(store):
    with pytest.raises(ItemNotFoundError):
        store.require(99)


def test_replace_with_summary_takes_first_position(store):
    summary_id = store.replace_with_summary([2, 3], _summary())
    assert summary_id == 5
    assert store.active_ids() == [1, 5, 4]
    committed = store.require(5)
    assert committed.covers == (2, 3)
    assert store.covered_by(2) == 5
    assert not store.is_active(2)
    assert store.get(2) is not None


def test_replace_orders_covers_by_position(store):
    store.replace_with_summary([2, 1], _summary())
    assert store.require(5).covers == (1, 2)


def test_active_chars_after_summary(store):
    store.replace_with_summary([1, 2], _summary("s" * 5))
    assert store.active_chars() == 5 + 2 * len("message number 1")


@pytest.mark.parametrize("covered", [[], [1, 1], [1, 99], [1, 3]])
def test_replace_rejects_invalid_coverage(store, covered):
    before = store.active_ids()
    with pytest.raises(InvalidCoverageError):
        store.replace_with_summary(covered, _summary())
    assert store.active_ids() == before
    assert store.next_id == 5


def test_replace_rejects_already_covered(store):
    store.replace_with_summary([1, 2], _summary())
    with pytest.raises(InvalidCoverageError):
        store.replace_with_summary([2, 3], _summary())


def test_raw_since_compression(store):
    assert store.raw_since_compression == 4
    store.replace_with_summary([1, 2], _summary())
    assert store.raw_since_compression == 2
    store.replace_with_summary([3, 4], _summary())
    assert store.raw_since_compression == 0


def test_active_summaries_by_level(store):
    store.replace_with_summary([1, 2], _summary())
    store.replace_with_summary([3, 4], _summary())
    store.replace_with_summary([5, 6], _summary(level=2))
    assert [s.id for s in store.active_summaries()] == [7]
    assert store.active_summaries(1) == []
    assert [s.id for s in store.active_summaries(2)] == [7]
    assert len(store) == 7


def test_restore_rebuilds_coverage(store):
    store.replace_with_summary([1, 2], _summary())
    restored = MemoryStore.restore(
        "alice",
        items=store.all_items(),
        active_ids=store.active_ids(),
        next_id=store.next_id,
        message_count=store.message_count,
        message_chars=store.message_chars,
    )
    assert restored.active_ids() == [5, 3, 4]
    assert restored.covered_by(1) == 5
    assert restored.append("user", "next") == 6
