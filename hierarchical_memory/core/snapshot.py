"""Snapshot export, JSON conversion and structural validation on import."""

from __future__ import annotations

import logging
from typing import Any

from .budget import BudgetManager
from .store import MemoryStore
from .tag_index import TagIndex
from ..storage.helpers import dt_to_str, str_to_dt
from ..types import (
    BudgetState,
    CorruptStateError,
    EntityProfile,
    ItemId,
    MemoryItem,
    MemorySnapshot,
    MessageItem,
    SummaryItem,
    TagEntry,
    utcnow,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1"


def export_snapshot(store: MemoryStore, budget: BudgetManager, tag_index: TagIndex) -> MemorySnapshot:
    """Capture every item (active and covered), the active order, budget and index."""
    budget.recompute(store)
    return MemorySnapshot(
        entity_id=store.entity_id,
        items=store.all_items(),
        active_ids=store.active_ids(),
        budget=budget.snapshot(),
        tags={
            tag: TagEntry(tag=tag, item_ids=set(entry.item_ids), frequency=entry.frequency)
            for tag, entry in tag_index.entries().items()
        },
        next_id=store.next_id,
        message_count=store.message_count,
        message_chars=store.message_chars,
        version=SNAPSHOT_VERSION,
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_snapshot(snapshot: MemorySnapshot, max_level: int) -> None:
    """Raise CorruptStateError if *snapshot* violates any structural invariant."""
    items: dict[ItemId, MemoryItem] = {}
    for item in snapshot.items:
        if item.id in items:
            raise CorruptStateError(f"Duplicate item id {item.id}")
        if item.id < 1:
            raise CorruptStateError(f"Invalid item id {item.id}")
        items[item.id] = item

    if items and snapshot.next_id <= max(items):
        raise CorruptStateError(
            f"next_id {snapshot.next_id} does not exceed highest item id {max(items)}"
        )

    ordered = [items[i] for i in sorted(items)]
    for prev, item in zip(ordered, ordered[1:]):
        if item.created_at < prev.created_at:
            raise CorruptStateError(f"Item {item.id} is older than item {prev.id}")

    messages = [i for i in ordered if isinstance(i, MessageItem)]
    for message in messages:
        if message.owner_entity_id != snapshot.entity_id:
            raise CorruptStateError(
                f"Message {message.id} belongs to {message.owner_entity_id!r}, "
                f"not {snapshot.entity_id!r}"
            )

    covered_by = _validate_covers(items, max_level)
    _validate_acyclic(items)
    _validate_active(snapshot, items, covered_by)

    current = sum(items[i].char_count for i in snapshot.active_ids)
    if snapshot.budget.current_chars != current:
        raise CorruptStateError(
            f"Budget records {snapshot.budget.current_chars} chars, active items hold {current}"
        )
    if snapshot.message_count != len(messages):
        raise CorruptStateError(
            f"message_count {snapshot.message_count} != {len(messages)} stored messages"
        )
    message_chars = sum(m.char_count for m in messages)
    if snapshot.message_chars != message_chars:
        raise CorruptStateError(
            f"message_chars {snapshot.message_chars} != {message_chars} stored characters"
        )

    _validate_tags(snapshot, items)


def _validate_covers(items: dict[ItemId, MemoryItem], max_level: int) -> dict[ItemId, ItemId]:
    covered_by: dict[ItemId, ItemId] = {}
    for item in items.values():
        if not isinstance(item, SummaryItem):
            continue
        if not item.covers:
            raise CorruptStateError(f"Summary {item.id} covers nothing")
        if any(a >= b for a, b in zip(item.covers, item.covers[1:])):
            raise CorruptStateError(
                f"Summary {item.id} covers {list(item.covers)} out of creation order"
            )
        if not 1 <= item.level <= max_level:
            raise CorruptStateError(f"Summary {item.id} has level {item.level} outside 1..{max_level}")
        if not 0.0 <= item.authority <= 1.0:
            raise CorruptStateError(f"Summary {item.id} has authority {item.authority}")

        for covered_id in item.covers:
            if covered_id == item.id:
                raise CorruptStateError(f"Summary {item.id} covers itself")
            covered = items.get(covered_id)
            if covered is None:
                raise CorruptStateError(f"Summary {item.id} covers unknown item {covered_id}")
            if covered_id in covered_by:
                raise CorruptStateError(
                    f"Item {covered_id} covered by both {covered_by[covered_id]} and {item.id}"
                )
            covered_by[covered_id] = item.id

            if item.level == 1:
                if not isinstance(covered, MessageItem):
                    raise CorruptStateError(f"L1 summary {item.id} covers non-message {covered_id}")
            elif not isinstance(covered, SummaryItem) or not (
                covered.level == item.level - 1
                or (covered.level == item.level == max_level)
            ):
                raise CorruptStateError(
                    f"L{item.level} summary {item.id} covers item {covered_id} of the wrong level"
                )
    return covered_by


def _validate_acyclic(items: dict[ItemId, MemoryItem]) -> None:
    # 0 = unvisited, 1 = on stack, 2 = done
    state: dict[ItemId, int] = {}

    for root in items:
        if state.get(root):
            continue
        stack: list[tuple[ItemId, int]] = [(root, 0)]
        state[root] = 1
        while stack:
            node, pos = stack[-1]
            item = items[node]
            covers = item.covers if isinstance(item, SummaryItem) else ()
            if pos < len(covers):
                stack[-1] = (node, pos + 1)
                child = covers[pos]
                if state.get(child) == 1:
                    raise CorruptStateError(f"Cover cycle through items {node} and {child}")
                if not state.get(child):
                    state[child] = 1
                    stack.append((child, 0))
            else:
                state[node] = 2
                stack.pop()

    for item in items.values():
        if isinstance(item, SummaryItem):
            for covered_id in item.covers:
                if covered_id > item.id:
                    raise CorruptStateError(
                        f"Summary {item.id} covers item {covered_id} created after it"
                    )


def _first_message_id(item_id: ItemId, items: dict[ItemId, MemoryItem]) -> ItemId:
    item = items[item_id]
    while isinstance(item, SummaryItem):
        item = items[item.covers[0]]
    return item.id


def _validate_active(
    snapshot: MemorySnapshot,
    items: dict[ItemId, MemoryItem],
    covered_by: dict[ItemId, ItemId],
) -> None:
    active = snapshot.active_ids
    if len(set(active)) != len(active):
        raise CorruptStateError("Active list contains duplicates")
    expected = set(items) - set(covered_by)
    if set(active) != expected:
        missing = sorted(expected - set(active))
        extra = sorted(set(active) - expected)
        raise CorruptStateError(
            f"Active set does not match uncovered items (missing {missing}, unexpected {extra})"
        )
    firsts = [_first_message_id(i, items) for i in active]
    if firsts != sorted(firsts):
        raise CorruptStateError("Active list is not in chronological order")


def _validate_tags(snapshot: MemorySnapshot, items: dict[ItemId, MemoryItem]) -> None:
    rebuilt: dict[str, set[ItemId]] = {}
    for item_id in snapshot.active_ids:
        for tag in items[item_id].tags:
            if not isinstance(tag, str):
                raise CorruptStateError(f"Item {item_id} has non-string tag {tag!r}")
            rebuilt.setdefault(tag, set()).add(item_id)

    recorded = {tag: set(entry.item_ids) for tag, entry in snapshot.tags.items()}
    if recorded != rebuilt:
        stale = sorted(map(str, set(recorded) ^ set(rebuilt)))
        raise CorruptStateError(
            f"Tag index does not match active item tags (differs on {stale or 'members'})"
        )
    for tag, entry in snapshot.tags.items():
        if entry.tag != tag:
            raise CorruptStateError(f"Tag entry {entry.tag!r} stored under {tag!r}")
        if entry.frequency < len(entry.item_ids):
            raise CorruptStateError(
                f"Tag {tag!r} frequency {entry.frequency} below {len(entry.item_ids)} members"
            )


# ---------------------------------------------------------------------------
# JSON conversion
# ---------------------------------------------------------------------------

def item_to_dict(item: MemoryItem) -> dict:
    if isinstance(item, MessageItem):
        return {
            "kind": "message",
            "id": item.id,
            "role": item.role,
            "text": item.text,
            "owner_entity_id": item.owner_entity_id,
            "created_at": dt_to_str(item.created_at),
            "tags": list(item.tags),
        }
    return {
        "kind": "summary",
        "id": item.id,
        "level": item.level,
        "text": item.text,
        "covers": list(item.covers),
        "topics": list(item.topics),
        "authority": item.authority,
        "created_at": dt_to_str(item.created_at),
        "source": item.source,
        "original_chars": item.original_chars,
    }


def _str_tuple(values: Any, what: str) -> tuple[str, ...]:
    if not isinstance(values, (list, tuple)) or not all(isinstance(v, str) for v in values):
        raise CorruptStateError(f"{what} must be a list of strings, got {values!r}")
    return tuple(values)


def item_from_dict(data: dict) -> MemoryItem:
    kind = data.get("kind")
    if kind == "message":
        if data["role"] not in ("user", "assistant"):
            raise CorruptStateError(f"Message {data['id']} has unknown role {data['role']!r}")
        return MessageItem(
            id=int(data["id"]),
            role=data["role"],
            text=str(data["text"]),
            owner_entity_id=str(data["owner_entity_id"]),
            created_at=str_to_dt(data["created_at"]),
            tags=_str_tuple(data.get("tags", []), f"Message {data['id']} tags"),
        )
    if kind == "summary":
        return SummaryItem(
            id=int(data["id"]),
            level=int(data["level"]),
            text=str(data["text"]),
            covers=tuple(int(c) for c in data["covers"]),
            topics=_str_tuple(data.get("topics", []), f"Summary {data['id']} topics"),
            authority=float(data.get("authority", 0.5)),
            created_at=str_to_dt(data["created_at"]),
            source=data.get("source", "llm"),
            original_chars=int(data.get("original_chars", 0)),
        )
    raise CorruptStateError(f"Unknown item kind: {kind!r}")


def snapshot_to_dict(snapshot: MemorySnapshot) -> dict:
    return {
        "version": snapshot.version,
        "entity_id": snapshot.entity_id,
        "saved_at": dt_to_str(snapshot.saved_at),
        "next_id": snapshot.next_id,
        "message_count": snapshot.message_count,
        "message_chars": snapshot.message_chars,
        "budget": {
            "max_chars": snapshot.budget.max_chars,
            "current_chars": snapshot.budget.current_chars,
        },
        "items": [item_to_dict(item) for item in snapshot.items],
        "active_ids": list(snapshot.active_ids),
        "tags": [
            {"tag": e.tag, "item_ids": sorted(e.item_ids), "frequency": e.frequency}
            for e in snapshot.tags.values()
        ],
    }


def _tag_entry_from_dict(data: dict) -> TagEntry:
    if not isinstance(data["tag"], str):
        raise CorruptStateError(f"Tag entry name must be a string, got {data['tag']!r}")
    return TagEntry(
        tag=data["tag"],
        item_ids={int(i) for i in data.get("item_ids", [])},
        frequency=int(data.get("frequency", 0)),
    )


def snapshot_from_dict(data: dict[str, Any]) -> MemorySnapshot:
    """Parse a snapshot dict. Malformed input raises CorruptStateError."""
    try:
        budget = data.get("budget", {})
        return MemorySnapshot(
            entity_id=str(data["entity_id"]),
            items=[item_from_dict(d) for d in data.get("items", [])],
            active_ids=[int(i) for i in data.get("active_ids", [])],
            budget=BudgetState(
                max_chars=int(budget.get("max_chars", 0)),
                current_chars=int(budget.get("current_chars", 0)),
            ),
            tags={entry.tag: entry for entry in map(_tag_entry_from_dict, data.get("tags", []))},
            next_id=int(data.get("next_id", 1)),
            message_count=int(data.get("message_count", 0)),
            message_chars=int(data.get("message_chars", 0)),
            version=str(data.get("version", SNAPSHOT_VERSION)),
            saved_at=str_to_dt(data["saved_at"]) if "saved_at" in data else utcnow(),
        )
    except CorruptStateError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise CorruptStateError(f"Malformed snapshot: {e}") from e


def profile_to_dict(profile: EntityProfile) -> dict:
    return {
        "entity_id": profile.entity_id,
        "saved_at": dt_to_str(profile.saved_at),
        "memory": snapshot_to_dict(profile.memory),
        "emotions": profile.emotions,
    }


def profile_from_dict(data: dict[str, Any]) -> EntityProfile:
    try:
        return EntityProfile(
            entity_id=str(data["entity_id"]),
            memory=snapshot_from_dict(data["memory"]),
            emotions=dict(data.get("emotions", {})),
            saved_at=str_to_dt(data["saved_at"]) if "saved_at" in data else utcnow(),
        )
    except CorruptStateError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise CorruptStateError(f"Malformed profile: {e}") from e
