"""All dataclasses, Protocols, errors and type aliases for hierarchical-memory."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Protocol, Union, runtime_checkable

Role = Literal["user", "assistant"]
ItemId = int


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class HierarchicalMemoryError(Exception):
    """Base class for every error raised by the memory engine."""


class ItemNotFoundError(HierarchicalMemoryError):
    def __init__(self, item_id: int):
        super().__init__(f"Unknown memory item: {item_id}")
        self.item_id = item_id


class InvalidCoverageError(HierarchicalMemoryError):
    """A compression commit referenced unknown, covered or non-contiguous items."""


class SummarizationError(HierarchicalMemoryError):
    """Transient failure of the summarization capability (timeout, bad output)."""


class LLMProviderError(SummarizationError):
    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class CorruptStateError(HierarchicalMemoryError):
    """An imported snapshot violates a structural invariant."""


class ConfigError(HierarchicalMemoryError):
    pass


# ---------------------------------------------------------------------------
# Memory items
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MessageItem:
    """A raw dialogue turn. Never edited once appended."""
    id: ItemId
    role: Role
    text: str
    owner_entity_id: str
    created_at: datetime = field(default_factory=utcnow)
    tags: tuple[str, ...] = ()

    kind: Literal["message"] = field(default="message", init=False)

    @property
    def char_count(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class SummaryItem:
    """An abstraction of an ordered run of older items.

    Level 1 covers messages; level N covers level N-1 summaries, except at
    the configured top level where summaries roll up into the same level.
    """
    id: ItemId
    level: int
    text: str
    covers: tuple[ItemId, ...]
    topics: tuple[str, ...] = ()
    authority: float = 0.5
    created_at: datetime = field(default_factory=utcnow)
    source: Literal["llm", "truncation"] = "llm"
    original_chars: int = 0

    kind: Literal["summary"] = field(default="summary", init=False)

    @property
    def char_count(self) -> int:
        return len(self.text)

    @property
    def tags(self) -> tuple[str, ...]:
        return self.topics


MemoryItem = Union[MessageItem, SummaryItem]


# ---------------------------------------------------------------------------
# Budget & compression
# ---------------------------------------------------------------------------

@dataclass
class BudgetState:
    max_chars: int
    current_chars: int = 0

    @property
    def percentage(self) -> float:
        if self.max_chars <= 0:
            return 0.0
        return round(self.current_chars / self.max_chars * 100, 1)

    @property
    def over(self) -> bool:
        return self.current_chars > self.max_chars


@dataclass
class CompressionSignal:
    """A compression pass is due before the next read (not an error)."""
    reason: Literal["budget", "message_count"]
    current_chars: int
    max_chars: int
    raw_since_compression: int
    l1_threshold: int
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class CompressionPass:
    """Outcome of one committed Select/Summarize/Validate/Commit cycle."""
    level: int
    summary_id: ItemId
    covered_ids: list[ItemId]
    source: Literal["llm", "truncation"]
    attempts: int
    chars_before: int
    chars_after: int

    @property
    def chars_freed(self) -> int:
        return self.chars_before - self.chars_after


@dataclass
class CompressionReport:
    passes: list[CompressionPass] = field(default_factory=list)
    budget_after: BudgetState | None = None
    aborted: bool = False
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def summaries_created(self) -> int:
        return len(self.passes)

    @property
    def chars_freed(self) -> int:
        return sum(p.chars_freed for p in self.passes)

    @property
    def fallbacks(self) -> int:
        return sum(1 for p in self.passes if p.source == "truncation")


# ---------------------------------------------------------------------------
# Tag index & search
# ---------------------------------------------------------------------------

@dataclass
class TagEntry:
    tag: str
    item_ids: set[ItemId] = field(default_factory=set)
    frequency: int = 0


@dataclass
class SearchHit:
    item: MemoryItem
    score: float
    matched_tags: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

@dataclass
class MemoryStats:
    total_messages: int = 0
    total_summaries: int = 0
    active_items: int = 0
    active_messages: int = 0
    level_counts: dict[int, int] = field(default_factory=dict)
    budget: BudgetState = field(default_factory=lambda: BudgetState(max_chars=0))
    compression_ratio: float = 0.0
    l1_threshold: int = 0

    @property
    def l1_count(self) -> int:
        return self.level_counts.get(1, 0)


# ---------------------------------------------------------------------------
# Emotional companion
# ---------------------------------------------------------------------------

@dataclass
class EmotionModification:
    emotion: str
    change: float
    reason: str = ""
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class EmotionalSnapshot:
    entity_id: str
    emotions: dict[str, float] = field(default_factory=dict)
    modifications: list[EmotionModification] = field(default_factory=list)
    dominant_emotion: str | None = None
    intensity: float = 0.0
    timestamp: datetime = field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Summarization capability
# ---------------------------------------------------------------------------

@runtime_checkable
class Summarizer(Protocol):
    async def summarize(self, text: str, target_max_length: int, language: str) -> str: ...


@runtime_checkable
class LLMProvider(Protocol):
    async def complete(self, system: str, user: str, max_tokens: int) -> str: ...


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class BudgetConfig:
    max_chars: int = 10_000
    base_l1_threshold: int = 5
    l1_floor: int = 3
    l1_ceiling: int = 8
    baseline_avg_len: float = 200.0
    hierarchical_budget_fraction: float = 0.5
    max_summaries_per_level: int = 6


@dataclass
class CompressionConfig:
    summary_ratio: float = 0.3
    min_summary_chars: int = 60
    max_summary_chars: int = 800
    min_keyword_overlap: float = 0.3
    salient_terms: int = 10
    max_attempts: int = 3
    retry_target_factor: float = 0.7
    retry_backoff: list[float] = field(default_factory=lambda: [0.5, 1.0, 2.0])
    timeout_seconds: float = 30.0
    merge_fan_in: int = 2
    max_level: int = 5
    max_topics: int = 8
    fallback_authority: float = 0.3
    language: str = "en"
    max_passes: int = 50


@dataclass
class TaggerConfig:
    max_tags: int = 6
    min_token_length: int = 3
    extra_stopwords: list[str] = field(default_factory=list)
    tag_keywords: dict[str, list[str]] = field(default_factory=dict)
    tag_patterns: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class SearchConfig:
    min_overlap: int = 1
    authority_weight: float = 1.0
    recency_weight: float = 0.5
    recency_half_life: float = 10.0
    message_authority: float = 0.5


@dataclass
class ContextConfig:
    summary_k: int = 3
    separator: str = "\n\n"


@dataclass
class SummarizationConfig:
    provider: str = ""
    model: str = ""
    max_tokens: int = 1000
    temperature: float = 0.3


@dataclass
class EmotionConfig:
    history_limit: int = 50
    step: float = 0.1
    emotion_keywords: dict[str, list[str]] = field(default_factory=lambda: {
        "curious": ["curious", "wonder", "explore", "discover", "question"],
        "frustrated": ["frustrating", "difficult", "complicated", "stuck"],
        "content": ["glad", "pleased", "happy", "satisfied"],
        "annoyed": ["annoyed", "irritated", "angry", "upset"],
        "passionate": ["passion", "enthusiastic", "fascinated", "excited"],
        "worried": ["worried", "anxious", "concerned", "afraid"],
    })
    increase_words: list[str] = field(default_factory=lambda: [
        "more", "very", "really", "growing", "increasingly",
    ])
    decrease_words: list[str] = field(default_factory=lambda: [
        "less", "calmer", "calm", "fading", "relieved",
    ])


@dataclass
class StorageConfig:
    root: str = ".hierarchical-memory/profiles"


@dataclass
class MemoryConfig:
    version: str = "0.1"
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    tagging: TaggerConfig = field(default_factory=TaggerConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)
    emotions: EmotionConfig = field(default_factory=EmotionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    providers: dict[str, dict] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

@dataclass
class MemorySnapshot:
    """Serializable state of one engine: every item, its cover-graph and index."""
    entity_id: str
    items: list[MemoryItem] = field(default_factory=list)
    active_ids: list[ItemId] = field(default_factory=list)
    budget: BudgetState = field(default_factory=lambda: BudgetState(max_chars=0))
    tags: dict[str, TagEntry] = field(default_factory=dict)
    next_id: ItemId = 1
    message_count: int = 0
    message_chars: int = 0
    version: str = "1"
    saved_at: datetime = field(default_factory=utcnow)


@dataclass
class EntityProfile:
    """Global profile boundary: memory plus its emotional companion."""
    entity_id: str
    memory: MemorySnapshot
    emotions: dict = field(default_factory=dict)
    saved_at: datetime = field(default_factory=utcnow)
