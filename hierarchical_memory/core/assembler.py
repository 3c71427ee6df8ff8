"""ContextBuilder: assemble a bounded context string from summaries and recent messages."""

from __future__ import annotations

import logging

from .store import MemoryStore
from .tag_index import TagIndex
from ..types import ContextConfig, MemoryItem, SummaryItem

logger = logging.getLogger(__name__)


def render_item(item: MemoryItem) -> str:
    if isinstance(item, SummaryItem):
        return f"[Memory L{item.level}] {item.text}"
    return f"{item.role.capitalize()}: {item.text}"


class ContextBuilder:
    """Relevant summaries first, then the most recent messages, within ``max_chars``."""

    def __init__(
        self,
        store: MemoryStore,
        tag_index: TagIndex,
        config: ContextConfig | None = None,
    ) -> None:
        self.store = store
        self.tag_index = tag_index
        self.config = config or ContextConfig()

    def relevant_summaries(self, query: str) -> list[SummaryItem]:
        """Top-k summaries for *query*, highest authority first, newer first on ties."""
        k = self.config.summary_k
        if k <= 0:
            return []
        hits = self.tag_index.search(query, limit=len(self.store))
        summaries = [h.item for h in hits if isinstance(h.item, SummaryItem)][:k]
        summaries.sort(key=lambda s: (s.authority, s.created_at, s.id), reverse=True)
        return summaries

    def build_context(self, query: str, max_chars: int) -> str:
        """Return a context string never longer than *max_chars*. Pure read."""
        if max_chars <= 0:
            return ""

        sep = self.config.separator
        head: list[str] = []
        used = 0

        def cost(part: str, count: int) -> int:
            return len(part) + (len(sep) if count else 0)

        for summary in self.relevant_summaries(query):
            part = render_item(summary)
            if used + cost(part, len(head)) > max_chars:
                break
            used += cost(part, len(head))
            head.append(part)

        # Work backwards from most recent
        tail: list[str] = []
        for message in reversed(self.store.active_messages()):
            part = render_item(message)
            if used + cost(part, len(head) + len(tail)) > max_chars:
                break
            used += cost(part, len(head) + len(tail))
            tail.append(part)
        tail.reverse()

        context = sep.join(head + tail)
        logger.debug(
            "Built context: %d summaries, %d messages, %d/%d chars",
            len(head), len(tail), len(context), max_chars,
        )
        return context
