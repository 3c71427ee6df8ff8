"""Shared fixtures for hierarchical-memory tests."""

from __future__ import annotations

import asyncio
import re
import tempfile
from pathlib import Path

import pytest

from hierarchical_memory.config import load_config
from hierarchical_memory.core.tagger import KeywordTagger
from hierarchical_memory.engine import MemoryEngine
from hierarchical_memory.types import MemoryConfig

_FRAME = re.compile(r"^\[\d+\] [^(]*\(\d\d:\d\d\): ", re.MULTILINE)


class MockSummarizer:
    """Mock summarizer that records calls (no API calls).

    ``responses`` are returned in order (the last one repeats). An entry that
    is an exception instance is raised instead. Without responses, the summary
    is the source's top keywords cut to the requested length.
    """

    def __init__(self, responses: list | None = None, delay: float = 0.0):
        self.calls: list[dict] = []
        self.responses = list(responses) if responses is not None else None
        self.delay = delay
        self.gate: asyncio.Event | None = None
        self._tagger = KeywordTagger()

    async def summarize(self, text: str, target_max_length: int, language: str) -> str:
        self.calls.append({"text": text, "target": target_max_length, "language": language})
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.responses:
            idx = min(len(self.calls) - 1, len(self.responses) - 1)
            response = self.responses[idx]
            if isinstance(response, BaseException):
                raise response
            return response

        terms = self._tagger.salient_terms(_FRAME.sub("", text), 10)
        summary = " ".join(terms) or "small talk"
        return summary[:target_max_length].rstrip()


def make_config(**sections) -> MemoryConfig:
    """Test config: no provider, no backoff delays, short timeout.

    Keyword arguments are merged into the matching config section, e.g.
    ``make_config(budget={"max_chars": 500})``.
    """
    raw: dict = {
        "budget": {"max_chars": 2000},
        "compression": {"retry_backoff": [0, 0, 0], "timeout_seconds": 1.0},
    }
    for name, values in sections.items():
        raw.setdefault(name, {}).update(values)
    return load_config(config_dict=raw)


def fixed_threshold(n: int, **budget) -> dict:
    """Budget section with the adaptive L1 threshold pinned to *n*."""
    return {"l1_floor": n, "l1_ceiling": n, "base_l1_threshold": n, **budget}


LEDGER_TURNS = [
    ("user", "We should migrate the ledger to postgres."),
    ("assistant", "Postgres handles the ledger migration well."),
    ("user", "Schedule the ledger migration for Friday."),
    ("assistant", "Friday works for the postgres migration."),
]

LEDGER_SUMMARY = "Ledger moves to Postgres; migration set for Friday."


@pytest.fixture
def config() -> MemoryConfig:
    return make_config()


@pytest.fixture
def mock_summarizer() -> MockSummarizer:
    return MockSummarizer()


@pytest.fixture
def engine(config) -> MemoryEngine:
    """Engine with truncation summaries only."""
    return MemoryEngine("alice", config=config)


@pytest.fixture
def tmp_store_dir():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)
