"""BudgetManager: character budget accounting and compression triggers."""

from __future__ import annotations

from .store import MemoryStore
from ..types import BudgetConfig, BudgetState, CompressionSignal


class BudgetManager:
    """Track retained characters against ``max_chars`` and decide when to compress.

    Two triggers are combined:

    - budget: active items occupy more than ``max_chars``
    - message count: raw messages since the last compression exceed the
      adaptive L1 threshold

    The adaptive threshold scales ``base_l1_threshold`` by
    ``baseline_avg_len / avg_len``, so long messages compress sooner and
    short chatter waits longer, clamped to ``[l1_floor, l1_ceiling]``.
    """

    def __init__(self, config: BudgetConfig) -> None:
        self.config = config
        self.state = BudgetState(max_chars=config.max_chars)

    def recompute(self, store: MemoryStore) -> int:
        self.state.current_chars = store.active_chars()
        return self.state.current_chars

    def l1_threshold(self, store: MemoryStore) -> int:
        cfg = self.config
        if store.message_count == 0 or store.message_chars == 0:
            raw = float(cfg.base_l1_threshold)
        else:
            avg_len = store.message_chars / store.message_count
            raw = cfg.base_l1_threshold * cfg.baseline_avg_len / avg_len
        return max(cfg.l1_floor, min(cfg.l1_ceiling, round(raw)))

    def is_over_threshold(self, store: MemoryStore) -> bool:
        return self.check(store) is not None

    def check(self, store: MemoryStore) -> CompressionSignal | None:
        """Return a signal when a compression pass is due, else None."""
        current = self.recompute(store)
        threshold = self.l1_threshold(store)
        raw_since = store.raw_since_compression

        if current > self.config.max_chars:
            reason = "budget"
        elif raw_since > threshold:
            reason = "message_count"
        else:
            return None

        return CompressionSignal(
            reason=reason,
            current_chars=current,
            max_chars=self.config.max_chars,
            raw_since_compression=raw_since,
            l1_threshold=threshold,
        )

    def level_over_threshold(self, store: MemoryStore, level: int) -> bool:
        """Hierarchical trigger for escalating level ``level`` summaries."""
        summaries = store.active_summaries(level)
        if len(summaries) > self.config.max_summaries_per_level:
            return True
        level_chars = sum(s.char_count for s in summaries)
        return level_chars > self.config.max_chars * self.config.hierarchical_budget_fraction

    def snapshot(self) -> BudgetState:
        return BudgetState(max_chars=self.state.max_chars, current_chars=self.state.current_chars)
