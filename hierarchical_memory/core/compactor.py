"""CompressionEngine: folds runs of old items into L1, L2, L3... summaries."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Awaitable, Callable

from .budget import BudgetManager
from .store import MemoryStore
from .tag_index import TagIndex
from .tagger import KeywordTagger
from ..types import (
    CompressionConfig,
    CompressionPass,
    CompressionReport,
    CompressionSignal,
    InvalidCoverageError,
    MemoryItem,
    MessageItem,
    Summarizer,
    SummaryItem,
)

logger = logging.getLogger(__name__)


@dataclass
class SummaryDraft:
    text: str
    source: str  # "llm" or "truncation"
    attempts: int
    overlap: float


class CompressionEngine:
    """Select, summarize, validate, commit and escalate.

    The summarizer call is the only suspension point. Everything from
    ``replace_with_summary`` to the budget recompute runs without awaiting,
    so a pass either commits fully or leaves the store untouched.
    """

    def __init__(
        self,
        store: MemoryStore,
        budget: BudgetManager,
        tag_index: TagIndex,
        tagger: KeywordTagger,
        summarizer: Summarizer | None,
        config: CompressionConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.budget = budget
        self.tag_index = tag_index
        self.tagger = tagger
        self.summarizer = summarizer
        self.config = config
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def compress(self) -> CompressionReport:
        """Run passes until neither the budget nor the L1 threshold is crossed."""
        report = CompressionReport()

        while len(report.passes) < self.config.max_passes:
            signal = self.budget.check(self.store)
            if signal is None:
                break

            result = await self._pass_for_signal(signal)
            if result is None:
                logger.warning(
                    "No compressible run for %s signal (%d/%d chars)",
                    signal.reason, signal.current_chars, signal.max_chars,
                )
                report.aborted = True
                break
            report.passes.append(result)

            await self._escalate(result.level, report)

            if result.chars_freed <= 0 and len(result.covered_ids) == 1:
                # single item that could not shrink: another pass would repeat it
                break

        report.budget_after = self.budget.snapshot()
        return report

    async def _pass_for_signal(self, signal: CompressionSignal) -> CompressionPass | None:
        threshold = signal.l1_threshold

        run = self.select_message_run(threshold)
        if run:
            return await self.run_pass(1, run)

        if signal.reason != "budget":
            return None

        # Over budget with no full L1 run: fold summaries before touching recent messages
        for level in range(1, self.config.max_level + 1):
            summaries = self.select_summary_run(level)
            if summaries:
                return await self.run_pass(self._next_level(level), summaries)

        run = self.select_message_run(1, max_length=threshold)
        if run:
            return await self.run_pass(1, run)
        return None

    async def _escalate(self, level: int, report: CompressionReport) -> None:
        while (
            len(report.passes) < self.config.max_passes
            and self.budget.level_over_threshold(self.store, level)
        ):
            run = self.select_summary_run(level)
            if not run:
                return
            result = await self.run_pass(self._next_level(level), run)
            if result is None:
                return
            report.passes.append(result)
            level = result.level

    def _next_level(self, level: int) -> int:
        return min(level + 1, self.config.max_level)

    # ------------------------------------------------------------------
    # Select
    # ------------------------------------------------------------------

    def _contiguous_runs(self, accept: Callable[[MemoryItem], bool]) -> list[list[MemoryItem]]:
        runs: list[list[MemoryItem]] = []
        current: list[MemoryItem] = []
        for item in self.store.list_active():
            if accept(item):
                current.append(item)
            elif current:
                runs.append(current)
                current = []
        if current:
            runs.append(current)
        return runs

    def select_message_run(
        self, min_length: int, max_length: int | None = None,
    ) -> list[MemoryItem]:
        """Oldest contiguous run of at least *min_length* active messages.

        The run is cut to *max_length* items (default: *min_length*).
        """
        min_length = max(1, min_length)
        limit = min_length if max_length is None else max(min_length, max_length)
        for run in self._contiguous_runs(lambda i: isinstance(i, MessageItem)):
            if len(run) >= min_length:
                return run[:limit]
        return []

    def select_summary_run(self, level: int) -> list[MemoryItem]:
        """Oldest contiguous run of ``merge_fan_in`` active summaries at *level*."""
        fan_in = max(2, self.config.merge_fan_in)
        runs = self._contiguous_runs(
            lambda i: isinstance(i, SummaryItem) and i.level == level
        )
        for run in runs:
            if len(run) >= fan_in:
                return run[:fan_in]
        return []

    # ------------------------------------------------------------------
    # Pass
    # ------------------------------------------------------------------

    async def run_pass(self, level: int, run: list[MemoryItem]) -> CompressionPass | None:
        """Summarize *run* into a level-*level* summary and commit it."""
        source_chars = sum(item.char_count for item in run)
        target = self.target_length(source_chars)
        draft = await self.summarize_run(run, level, target)
        return self.commit(level, run, draft, source_chars)

    def target_length(self, source_chars: int) -> int:
        cfg = self.config
        target = max(
            cfg.min_summary_chars,
            min(cfg.max_summary_chars, int(source_chars * cfg.summary_ratio)),
        )
        return max(1, min(target, source_chars))

    async def summarize_run(self, run: list[MemoryItem], level: int, target: int) -> SummaryDraft:
        """Call the summarizer with retries; degrade to truncation on final failure."""
        cfg = self.config
        if self.summarizer is None:
            return SummaryDraft(self.truncation_summary(run, target), "truncation", 0, 0.0)

        source_text = self.format_run(run)
        salient = self.tagger.salient_terms(
            " ".join(item.text for item in run), cfg.salient_terms,
        )
        request_target = target

        for attempt in range(1, cfg.max_attempts + 1):
            try:
                response = await asyncio.wait_for(
                    self.summarizer.summarize(source_text, request_target, cfg.language),
                    timeout=cfg.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Summarizer timed out after {cfg.timeout_seconds}s "
                    f"(L{level}, attempt {attempt}/{cfg.max_attempts})"
                )
            except Exception as e:
                logger.warning(
                    f"Summarizer failed for L{level} run (attempt {attempt}/{cfg.max_attempts}): {e}"
                )
            else:
                text = response.strip() if isinstance(response, str) else ""
                ok, overlap, reason = self.validate(text, salient, target)
                if ok:
                    return SummaryDraft(text, "llm", attempt, overlap)
                logger.warning(
                    f"Rejected L{level} summary (attempt {attempt}/{cfg.max_attempts}): {reason}"
                )
                request_target = max(1, int(request_target * cfg.retry_target_factor))
                continue

            if attempt < cfg.max_attempts and cfg.retry_backoff:
                delay = cfg.retry_backoff[min(attempt - 1, len(cfg.retry_backoff) - 1)]
                if delay > 0:
                    await self._sleep(delay)

        logger.warning(f"Falling back to truncation summary for L{level} run of {len(run)} items")
        return SummaryDraft(self.truncation_summary(run, target), "truncation", cfg.max_attempts, 0.0)

    def validate(self, text: str, salient: list[str], max_length: int) -> tuple[bool, float, str]:
        """Check emptiness, length and salient-term overlap of a candidate summary."""
        if not text:
            return False, 0.0, "empty summary"
        if len(text) > max_length:
            return False, 0.0, f"too long ({len(text)} > {max_length} chars)"
        if not salient:
            return True, 1.0, ""
        text_lower = text.lower()
        kept = sum(1 for term in salient if term in text_lower)
        overlap = kept / len(salient)
        if overlap < self.config.min_keyword_overlap:
            return False, overlap, (
                f"keyword overlap {overlap:.0%} below {self.config.min_keyword_overlap:.0%}"
            )
        return True, overlap, ""

    def truncation_summary(self, run: list[MemoryItem], target: int) -> str:
        """Deterministic fallback: the run's text, cut to *target* characters."""
        joined = " | ".join(item.text.strip() for item in run if item.text.strip())
        if not joined:
            placeholder = f"({len(run)} empty items)"
            return placeholder if len(placeholder) <= target else "…"
        if len(joined) <= target:
            return joined
        if target < 2:
            return joined[:max(1, target)]
        return joined[:target - 1].rstrip() + "…"

    def format_run(self, run: list[MemoryItem]) -> str:
        """Format a run as numbered 'Role (HH:MM): text' blocks."""
        lines: list[str] = []
        for n, item in enumerate(run, 1):
            ts = item.created_at.strftime("%H:%M")
            if isinstance(item, MessageItem):
                lines.append(f"[{n}] {item.role.capitalize()} ({ts}): {item.text}")
            else:
                lines.append(f"[{n}] L{item.level} summary ({ts}): {item.text}")
        return "\n\n".join(lines)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(
        self,
        level: int,
        run: list[MemoryItem],
        draft: SummaryDraft,
        source_chars: int,
    ) -> CompressionPass | None:
        chars_before = self.budget.recompute(self.store)

        if draft.source == "llm":
            authority = min(1.0, 0.5 + 0.5 * draft.overlap)
        else:
            authority = self.config.fallback_authority

        pending = SummaryItem(
            id=0,
            level=level,
            text=draft.text,
            covers=(),
            topics=tuple(self._topics(run, draft.text)),
            authority=authority,
            source=draft.source,
            original_chars=source_chars,
        )
        covered_ids = [item.id for item in run]

        try:
            summary_id = self.store.replace_with_summary(covered_ids, pending)
        except InvalidCoverageError as e:
            logger.error(f"Compression commit rejected for L{level}: {e}")
            return None

        for item_id in covered_ids:
            self.tag_index.unindex(item_id)
        self.tag_index.index(self.store.require(summary_id))
        chars_after = self.budget.recompute(self.store)

        logger.info(
            "L%d summary %d committed: %d items, %d -> %d chars (%s)",
            level, summary_id, len(covered_ids), chars_before, chars_after, draft.source,
        )
        return CompressionPass(
            level=level,
            summary_id=summary_id,
            covered_ids=covered_ids,
            source=draft.source,
            attempts=draft.attempts,
            chars_before=chars_before,
            chars_after=chars_after,
        )

    def _topics(self, run: list[MemoryItem], summary_text: str) -> list[str]:
        """Covered items' most common tags first, then keywords of the summary."""
        limit = self.config.max_topics
        counts: Counter[str] = Counter()
        for item in run:
            counts.update(item.tags)
        topics = [tag for tag, _ in counts.most_common(limit)]
        for tag in self.tagger.extract(summary_text, limit):
            if len(topics) >= limit:
                break
            if tag not in topics:
                topics.append(tag)
        return sorted(topics)
