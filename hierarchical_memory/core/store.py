"""MemoryStore: ordered collection of messages and the summaries that replace them."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from ..types import (
    InvalidCoverageError,
    ItemId,
    ItemNotFoundError,
    MemoryItem,
    MessageItem,
    Role,
    SummaryItem,
    utcnow,
)

logger = logging.getLogger(__name__)


class MemoryStore:
    """Owns identity and lifecycle of every memory item for one entity.

    Items are never deleted. A summary commit marks the items it covers as
    inactive and takes the position of the first of them in the active
    sequence, so ``list_active()`` stays oldest-first.
    """

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        self._items: dict[ItemId, MemoryItem] = {}
        self._active: list[ItemId] = []
        self._covered_by: dict[ItemId, ItemId] = {}
        self._next_id: ItemId = 1
        self._last_timestamp: datetime | None = None
        self.message_count = 0
        self.message_chars = 0

    def _next_timestamp(self) -> datetime:
        now = utcnow()
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    def _allocate_id(self) -> ItemId:
        item_id = self._next_id
        self._next_id += 1
        return item_id

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, role: Role, text: str, tags: tuple[str, ...] = ()) -> ItemId:
        """Append a raw message. Always succeeds."""
        message = MessageItem(
            id=self._allocate_id(),
            role=role,
            text=text,
            owner_entity_id=self.entity_id,
            created_at=self._next_timestamp(),
            tags=tuple(tags),
        )
        self._items[message.id] = message
        self._active.append(message.id)
        self.message_count += 1
        self.message_chars += len(text)
        return message.id

    def replace_with_summary(self, covered_ids: list[ItemId], summary: SummaryItem) -> ItemId:
        """Atomically retire *covered_ids* and activate *summary* in their place.

        The summary's ``id``, ``covers`` and ``created_at`` are assigned here;
        covers are ordered by position in the active sequence.
        """
        if not covered_ids:
            raise InvalidCoverageError("Summary must cover at least one item")
        if len(set(covered_ids)) != len(covered_ids):
            raise InvalidCoverageError(f"Duplicate ids in coverage: {covered_ids}")

        positions: list[int] = []
        for item_id in covered_ids:
            if item_id not in self._items:
                raise InvalidCoverageError(f"Unknown item {item_id}")
            if item_id in self._covered_by:
                raise InvalidCoverageError(
                    f"Item {item_id} already covered by {self._covered_by[item_id]}"
                )
            positions.append(self._active.index(item_id))

        positions.sort()
        if positions[-1] - positions[0] + 1 != len(positions):
            raise InvalidCoverageError(f"Coverage is not contiguous: {covered_ids}")

        ordered = [self._active[p] for p in positions]
        committed = replace(
            summary,
            id=self._allocate_id(),
            covers=tuple(ordered),
            created_at=self._next_timestamp(),
        )

        first = positions[0]
        self._active[first:first + len(ordered)] = [committed.id]
        self._items[committed.id] = committed
        for item_id in ordered:
            self._covered_by[item_id] = committed.id

        logger.debug(
            "Summary %d (L%d) replaced %d items", committed.id, committed.level, len(ordered),
        )
        return committed.id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, item_id: ItemId) -> MemoryItem | None:
        return self._items.get(item_id)

    def require(self, item_id: ItemId) -> MemoryItem:
        item = self._items.get(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def list_active(self) -> list[MemoryItem]:
        return [self._items[i] for i in self._active]

    def active_ids(self) -> list[ItemId]:
        return list(self._active)

    def all_items(self) -> list[MemoryItem]:
        return [self._items[i] for i in sorted(self._items)]

    def is_active(self, item_id: ItemId) -> bool:
        return item_id in self._items and item_id not in self._covered_by

    def covered_by(self, item_id: ItemId) -> ItemId | None:
        return self._covered_by.get(item_id)

    def active_chars(self) -> int:
        return sum(self._items[i].char_count for i in self._active)

    def active_messages(self) -> list[MessageItem]:
        return [item for item in self.list_active() if isinstance(item, MessageItem)]

    def active_summaries(self, level: int | None = None) -> list[SummaryItem]:
        return [
            item for item in self.list_active()
            if isinstance(item, SummaryItem) and (level is None or item.level == level)
        ]

    @property
    def next_id(self) -> ItemId:
        return self._next_id

    @property
    def raw_since_compression(self) -> int:
        """Active messages appended after the most recent active summary."""
        count = 0
        for item_id in reversed(self._active):
            if isinstance(self._items[item_id], SummaryItem):
                break
            count += 1
        return count

    def __len__(self) -> int:
        return len(self._items)

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    @classmethod
    def restore(
        cls,
        entity_id: str,
        items: list[MemoryItem],
        active_ids: list[ItemId],
        next_id: ItemId,
        message_count: int,
        message_chars: int,
    ) -> "MemoryStore":
        """Rebuild a store from already-validated snapshot contents."""
        store = cls(entity_id)
        store._items = {item.id: item for item in items}
        store._active = list(active_ids)
        for item in items:
            if isinstance(item, SummaryItem):
                for covered in item.covers:
                    store._covered_by[covered] = item.id
        store._next_id = next_id
        store.message_count = message_count
        store.message_chars = message_chars
        if items:
            store._last_timestamp = max(item.created_at for item in items)
        return store
