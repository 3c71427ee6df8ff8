"""TagIndex: inverted index from tags to active memory items, with ranked search."""

from __future__ import annotations

import logging

from .store import MemoryStore
from .tagger import KeywordTagger
from ..types import ItemId, MemoryItem, SearchConfig, SearchHit, SummaryItem, TagEntry

logger = logging.getLogger(__name__)


class TagIndex:
    """Live index maintained as items are appended, summarized and retired.

    Only active items are indexed. ``frequency`` on each entry counts every
    registration of the tag over the engine's life, so it survives folding.
    """

    def __init__(
        self,
        store: MemoryStore,
        tagger: KeywordTagger,
        config: SearchConfig | None = None,
    ) -> None:
        self.store = store
        self.tagger = tagger
        self.config = config or SearchConfig()
        self._entries: dict[str, TagEntry] = {}
        self._item_tags: dict[ItemId, tuple[str, ...]] = {}

    def index(self, item: MemoryItem) -> None:
        """Register every tag of *item* (topics for summaries, keywords for messages)."""
        tags = tuple(dict.fromkeys(item.tags))
        self._item_tags[item.id] = tags
        for tag in tags:
            entry = self._entries.get(tag)
            if entry is None:
                entry = self._entries[tag] = TagEntry(tag=tag)
            entry.item_ids.add(item.id)
            entry.frequency += 1

    def unindex(self, item_id: ItemId) -> None:
        """Remove every reference to a retired item and prune empty tags."""
        for tag in self._item_tags.pop(item_id, ()):
            entry = self._entries.get(tag)
            if entry is None:
                continue
            entry.item_ids.discard(item_id)
            if not entry.item_ids:
                del self._entries[tag]

    def tags_for(self, item_id: ItemId) -> tuple[str, ...]:
        return self._item_tags.get(item_id, ())

    def get(self, tag: str) -> TagEntry | None:
        return self._entries.get(tag)

    def entries(self) -> dict[str, TagEntry]:
        return self._entries

    def get_tag_counts(self) -> dict[str, int]:
        """Return {tag: active_item_count} for all tags in the index."""
        return {tag: len(entry.item_ids) for tag, entry in self._entries.items()}

    def __contains__(self, tag: str) -> bool:
        return tag in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: str, limit: int = 5) -> list[SearchHit]:
        """Rank active items by tag overlap, authority and recency. Pure read."""
        if limit <= 0:
            return []

        query_tags = self.tagger.query_tags(query)
        if not query_tags:
            return []

        candidates: dict[ItemId, list[str]] = {}
        for tag in query_tags:
            entry = self._entries.get(tag)
            if entry is None:
                continue
            for item_id in entry.item_ids:
                candidates.setdefault(item_id, []).append(tag)

        if not candidates:
            logger.debug("No tag matches for query tags %s", query_tags)
            return []

        # age rank: 0 for the newest active item
        active = self.store.active_ids()
        age_rank = {item_id: len(active) - 1 - pos for pos, item_id in enumerate(active)}

        hits: list[SearchHit] = []
        for item_id, matched in candidates.items():
            if len(matched) < self.config.min_overlap:
                continue
            item = self.store.get(item_id)
            if item is None or item_id not in age_rank:
                continue
            hits.append(SearchHit(
                item=item,
                score=self._score(item, len(matched), age_rank[item_id]),
                matched_tags=matched,
            ))

        hits.sort(key=lambda h: (h.score, h.item.created_at, h.item.id), reverse=True)
        return hits[:limit]

    def _score(self, item: MemoryItem, overlap: int, age_rank: int) -> float:
        cfg = self.config
        if isinstance(item, SummaryItem):
            authority = item.authority
        else:
            authority = cfg.message_authority
        recency = 0.5 ** (age_rank / cfg.recency_half_life) if cfg.recency_half_life > 0 else 1.0
        return overlap + cfg.authority_weight * authority + cfg.recency_weight * recency

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(self, entries: dict[str, TagEntry]) -> None:
        """Load already-validated entries (item tags are re-read from the store)."""
        self._entries = {
            tag: TagEntry(tag=tag, item_ids=set(e.item_ids), frequency=e.frequency)
            for tag, e in entries.items()
        }
        self._item_tags = {}
        for item in self.store.list_active():
            self._item_tags[item.id] = tuple(dict.fromkeys(item.tags))
