"""MemoryRegistry: caller-owned map from entity id to its engine and emotion tracker."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import load_config
from .core.emotions import EmotionTracker
from .core.summarizer import build_summarizer
from .engine import MemoryEngine
from .types import (
    EntityProfile,
    ItemId,
    MemoryConfig,
    MemorySnapshot,
    MemoryStats,
    Role,
    SearchHit,
    Summarizer,
)

logger = logging.getLogger(__name__)


class MemoryRegistry:
    """Creates engines on first use. Engines share nothing but config and summarizer.

    Different entities can be driven concurrently::

        await asyncio.gather(
            registry.add_message("alice", "user", "..."),
            registry.add_message("bob", "user", "..."),
        )
    """

    def __init__(
        self,
        config: MemoryConfig | None = None,
        summarizer: Summarizer | None = None,
        config_path: str | Path | None = None,
    ) -> None:
        self.config = config or load_config(config_path)
        self.summarizer = summarizer if summarizer is not None else build_summarizer(self.config)
        self._engines: dict[str, MemoryEngine] = {}
        self._emotions: dict[str, EmotionTracker] = {}

    def engine(self, entity_id: str) -> MemoryEngine:
        engine = self._engines.get(entity_id)
        if engine is None:
            engine = MemoryEngine(entity_id, config=self.config, summarizer=self.summarizer)
            self._engines[entity_id] = engine
            logger.debug("Created memory engine for %s", entity_id)
        return engine

    def emotions(self, entity_id: str) -> EmotionTracker:
        tracker = self._emotions.get(entity_id)
        if tracker is None:
            tracker = EmotionTracker(entity_id, self.config.emotions)
            self._emotions[entity_id] = tracker
        return tracker

    def entities(self) -> list[str]:
        return sorted(set(self._engines) | set(self._emotions))

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._engines

    def remove(self, entity_id: str) -> bool:
        found = entity_id in self._engines or entity_id in self._emotions
        self._engines.pop(entity_id, None)
        self._emotions.pop(entity_id, None)
        return found

    # ------------------------------------------------------------------
    # Memory operations
    # ------------------------------------------------------------------

    async def add_message(self, entity_id: str, role: Role, text: str) -> ItemId:
        return await self.engine(entity_id).add_message(role, text)

    def build_context(self, entity_id: str, query: str, max_chars: int) -> str:
        return self.engine(entity_id).build_context(query, max_chars)

    def search(self, entity_id: str, query: str, limit: int = 5) -> list[SearchHit]:
        return self.engine(entity_id).search(query, limit)

    def get_stats(self, entity_id: str) -> MemoryStats:
        return self.engine(entity_id).get_stats()

    def export_snapshot(self, entity_id: str) -> MemorySnapshot:
        return self.engine(entity_id).export_snapshot()

    async def import_snapshot(self, entity_id: str, snapshot: MemorySnapshot) -> None:
        await self.engine(entity_id).import_snapshot(snapshot)

    # ------------------------------------------------------------------
    # Global profile boundary
    # ------------------------------------------------------------------

    def export_profile(self, entity_id: str) -> EntityProfile:
        """Bundle the memory snapshot with the emotional state."""
        return EntityProfile(
            entity_id=entity_id,
            memory=self.export_snapshot(entity_id),
            emotions=self.emotions(entity_id).to_dict(),
        )

    async def import_profile(self, profile: EntityProfile) -> None:
        """Restore memory and emotions; neither changes if either is corrupt."""
        tracker = EmotionTracker.from_dict(
            {**profile.emotions, "entity_id": profile.entity_id}, self.config.emotions,
        )
        await self.import_snapshot(profile.entity_id, profile.memory)
        self._emotions[profile.entity_id] = tracker
