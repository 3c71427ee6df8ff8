"""hierarchical-memory: budgeted L1/L2/L3 memory compression and retrieval for dialogue."""

from .config import load_config
from .engine import MemoryEngine
from .registry import MemoryRegistry
from .types import (
    CompressionReport,
    CompressionSignal,
    CorruptStateError,
    EntityProfile,
    HierarchicalMemoryError,
    MemoryConfig,
    MemorySnapshot,
    MemoryStats,
    MessageItem,
    SearchHit,
    SummaryItem,
)

__version__ = "0.1.0"

__all__ = [
    "MemoryEngine",
    "MemoryRegistry",
    "load_config",
    "CompressionReport",
    "CompressionSignal",
    "CorruptStateError",
    "EntityProfile",
    "HierarchicalMemoryError",
    "MemoryConfig",
    "MemorySnapshot",
    "MemoryStats",
    "MessageItem",
    "SearchHit",
    "SummaryItem",
]
