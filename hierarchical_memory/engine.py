"""MemoryEngine: one entity's memory, wiring store, budget, index and compression."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from pathlib import Path

from .config import load_config
from .core.assembler import ContextBuilder
from .core.budget import BudgetManager
from .core.compactor import CompressionEngine
from .core.snapshot import export_snapshot, validate_snapshot
from .core.store import MemoryStore
from .core.summarizer import build_summarizer
from .core.tag_index import TagIndex
from .core.tagger import KeywordTagger
from .types import (
    CompressionReport,
    CompressionSignal,
    CorruptStateError,
    ItemId,
    MemoryConfig,
    MemoryItem,
    MemorySnapshot,
    MemoryStats,
    Role,
    SearchHit,
    Summarizer,
    SummaryItem,
)

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant")


class MemoryEngine:
    """Hierarchical memory for a single entity.

    Usage:
        engine = MemoryEngine("alice", config=config, summarizer=summarizer)

        # Ingest a turn; compresses when the budget or L1 threshold is crossed
        await engine.add_message("user", "We picked Postgres for the ledger")

        # Before generating a reply
        context = engine.build_context("database choice", max_chars=2000)

    Mutations are serialized by an ``asyncio.Lock``. Reads are synchronous
    and never observe a half-applied compression commit.
    """

    def __init__(
        self,
        entity_id: str,
        config: MemoryConfig | None = None,
        summarizer: Summarizer | None = None,
        config_path: str | Path | None = None,
    ) -> None:
        self.entity_id = entity_id
        self.config = config or load_config(config_path)
        self._summarizer = summarizer if summarizer is not None else build_summarizer(self.config)
        self._tagger = KeywordTagger(self.config.tagging)
        self._budget = BudgetManager(self.config.budget)
        self._lock = asyncio.Lock()
        self._attach(MemoryStore(entity_id))

    def _attach(self, store: MemoryStore, tag_index: TagIndex | None = None) -> None:
        """Point every component at *store*. Contains no await."""
        self._store = store
        self._tag_index = tag_index or TagIndex(store, self._tagger, self.config.search)
        self._compactor = CompressionEngine(
            store=store,
            budget=self._budget,
            tag_index=self._tag_index,
            tagger=self._tagger,
            summarizer=self._summarizer,
            config=self.config.compression,
        )
        self._assembler = ContextBuilder(store, self._tag_index, self.config.context)
        self._budget.recompute(store)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_message(self, role: Role, text: str, compress: bool = True) -> ItemId:
        """Append a message, then compress if a threshold is crossed."""
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role!r}")
        async with self._lock:
            tags = tuple(self._tagger.extract(text))
            item_id = self._store.append(role, text, tags)
            self._tag_index.index(self._store.require(item_id))
            self._budget.recompute(self._store)
            if compress and self._budget.check(self._store) is not None:
                await self._compactor.compress()
            return item_id

    async def compress(self) -> CompressionReport:
        """Run compression passes until no threshold is crossed."""
        async with self._lock:
            return await self._compactor.compress()

    async def import_snapshot(self, snapshot: MemorySnapshot) -> None:
        """Replace this engine's state with *snapshot* after full validation.

        Raises CorruptStateError and keeps the current state on any violation.
        """
        async with self._lock:
            if snapshot.entity_id != self.entity_id:
                raise CorruptStateError(
                    f"Snapshot belongs to {snapshot.entity_id!r}, not {self.entity_id!r}"
                )
            validate_snapshot(snapshot, self.config.compression.max_level)

            store = MemoryStore.restore(
                self.entity_id,
                items=snapshot.items,
                active_ids=snapshot.active_ids,
                next_id=snapshot.next_id,
                message_count=snapshot.message_count,
                message_chars=snapshot.message_chars,
            )
            tag_index = TagIndex(store, self._tagger, self.config.search)
            tag_index.restore(snapshot.tags)
            self._attach(store, tag_index)
            logger.info(
                "Restored %s: %d items, %d active, %d chars",
                self.entity_id, len(snapshot.items), len(snapshot.active_ids),
                self._budget.state.current_chars,
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def store(self) -> MemoryStore:
        return self._store

    @property
    def tag_index(self) -> TagIndex:
        return self._tag_index

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def check(self) -> CompressionSignal | None:
        return self._budget.check(self._store)

    @property
    def needs_compression(self) -> bool:
        return self.check() is not None

    def get(self, item_id: ItemId) -> MemoryItem | None:
        return self._store.get(item_id)

    def list_active(self) -> list[MemoryItem]:
        return self._store.list_active()

    def search(self, query: str, limit: int = 5) -> list[SearchHit]:
        return self._tag_index.search(query, limit)

    def build_context(self, query: str, max_chars: int) -> str:
        return self._assembler.build_context(query, max_chars)

    def get_stats(self) -> MemoryStats:
        budget = self._budget
        budget.recompute(self._store)
        summaries = [i for i in self._store.all_items() if isinstance(i, SummaryItem)]
        levels = Counter(s.level for s in self._store.active_summaries())
        ingested = self._store.message_chars
        return MemoryStats(
            total_messages=self._store.message_count,
            total_summaries=len(summaries),
            active_items=len(self._store.active_ids()),
            active_messages=len(self._store.active_messages()),
            level_counts=dict(sorted(levels.items())),
            budget=budget.snapshot(),
            compression_ratio=round(budget.state.current_chars / ingested, 4) if ingested else 0.0,
            l1_threshold=budget.l1_threshold(self._store),
        )

    def export_snapshot(self) -> MemorySnapshot:
        return export_snapshot(self._store, self._budget, self._tag_index)
