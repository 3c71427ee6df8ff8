"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .types import (
    BudgetConfig,
    CompressionConfig,
    ContextConfig,
    EmotionConfig,
    MemoryConfig,
    SearchConfig,
    StorageConfig,
    SummarizationConfig,
    TaggerConfig,
)

CONFIG_FILENAMES = [
    "hierarchical-memory.yaml",
    "hierarchical-memory.yml",
    "hierarchical-memory.json",
]


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _build_config(raw: dict[str, Any]) -> MemoryConfig:
    """Build a MemoryConfig from a raw dict."""
    # Budget
    budget_raw = raw.get("budget", {})
    budget = BudgetConfig(
        max_chars=budget_raw.get("max_chars", 10_000),
        base_l1_threshold=budget_raw.get("base_l1_threshold", 5),
        l1_floor=budget_raw.get("l1_floor", 3),
        l1_ceiling=budget_raw.get("l1_ceiling", 8),
        baseline_avg_len=budget_raw.get("baseline_avg_len", 200.0),
        hierarchical_budget_fraction=budget_raw.get("hierarchical_budget_fraction", 0.5),
        max_summaries_per_level=budget_raw.get("max_summaries_per_level", 6),
    )

    # Summarization
    summ_raw = raw.get("summarization", {})
    summarization = SummarizationConfig(
        provider=summ_raw.get("provider", ""),
        model=summ_raw.get("model", ""),
        max_tokens=summ_raw.get("max_tokens", 1000),
        temperature=summ_raw.get("temperature", 0.3),
    )

    # Compression
    comp_raw = raw.get("compression", {})
    compression = CompressionConfig(
        summary_ratio=comp_raw.get("summary_ratio", 0.3),
        min_summary_chars=comp_raw.get("min_summary_chars", 60),
        max_summary_chars=comp_raw.get("max_summary_chars", 800),
        min_keyword_overlap=comp_raw.get("min_keyword_overlap", 0.3),
        salient_terms=comp_raw.get("salient_terms", 10),
        max_attempts=comp_raw.get("max_attempts", 3),
        retry_target_factor=comp_raw.get("retry_target_factor", 0.7),
        retry_backoff=comp_raw.get("retry_backoff", [0.5, 1.0, 2.0]),
        timeout_seconds=comp_raw.get("timeout_seconds", 30.0),
        merge_fan_in=comp_raw.get("merge_fan_in", 2),
        max_level=comp_raw.get("max_level", 5),
        max_topics=comp_raw.get("max_topics", 8),
        fallback_authority=comp_raw.get("fallback_authority", 0.3),
        language=summ_raw.get("language", comp_raw.get("language", "en")),
        max_passes=comp_raw.get("max_passes", 50),
    )

    # Tagging
    tag_raw = raw.get("tagging", {})
    tagging = TaggerConfig(
        max_tags=tag_raw.get("max_tags", 6),
        min_token_length=tag_raw.get("min_token_length", 3),
        extra_stopwords=tag_raw.get("extra_stopwords", []),
        tag_keywords=tag_raw.get("tag_keywords", {}),
        tag_patterns=tag_raw.get("tag_patterns", {}),
    )

    # Search
    search_raw = raw.get("search", {})
    search = SearchConfig(
        min_overlap=search_raw.get("min_overlap", 1),
        authority_weight=search_raw.get("authority_weight", 1.0),
        recency_weight=search_raw.get("recency_weight", 0.5),
        recency_half_life=search_raw.get("recency_half_life", 10.0),
        message_authority=search_raw.get("message_authority", 0.5),
    )

    # Context assembly
    context_raw = raw.get("context", {})
    context = ContextConfig(
        summary_k=context_raw.get("summary_k", 3),
        separator=context_raw.get("separator", "\n\n"),
    )

    # Emotions: keyword tables replace the defaults wholesale when given
    emo_raw = raw.get("emotions", {})
    defaults = EmotionConfig()
    emotions = EmotionConfig(
        history_limit=emo_raw.get("history_limit", defaults.history_limit),
        step=emo_raw.get("step", defaults.step),
        emotion_keywords=emo_raw.get("emotion_keywords", defaults.emotion_keywords),
        increase_words=emo_raw.get("increase_words", defaults.increase_words),
        decrease_words=emo_raw.get("decrease_words", defaults.decrease_words),
    )

    # Storage
    storage_raw = raw.get("storage", {})
    storage = StorageConfig(
        root=storage_raw.get("root", ".hierarchical-memory/profiles"),
    )

    return MemoryConfig(
        version=raw.get("version", "0.1"),
        budget=budget,
        compression=compression,
        tagging=tagging,
        search=search,
        context=context,
        summarization=summarization,
        emotions=emotions,
        storage=storage,
        providers=raw.get("providers", {}),
    )


def validate_config(config: MemoryConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors: list[str] = []
    budget = config.budget
    comp = config.compression

    if budget.max_chars < 1:
        errors.append("budget.max_chars must be >= 1")

    if budget.l1_floor < 1:
        errors.append("budget.l1_floor must be >= 1")

    if budget.l1_floor > budget.l1_ceiling:
        errors.append(
            f"l1_floor ({budget.l1_floor}) must be <= l1_ceiling ({budget.l1_ceiling})"
        )

    if not 0 < budget.hierarchical_budget_fraction <= 1:
        errors.append("budget.hierarchical_budget_fraction must be in (0, 1]")

    if not 0 < comp.summary_ratio < 1:
        errors.append("compression.summary_ratio must be in (0, 1)")

    if not 0 <= comp.min_keyword_overlap <= 1:
        errors.append("compression.min_keyword_overlap must be in [0, 1]")

    if not 0 < comp.retry_target_factor <= 1:
        errors.append("compression.retry_target_factor must be in (0, 1]")

    if comp.min_summary_chars > comp.max_summary_chars:
        errors.append(
            f"min_summary_chars ({comp.min_summary_chars}) must be <= "
            f"max_summary_chars ({comp.max_summary_chars})"
        )

    if comp.max_summary_chars >= budget.max_chars:
        errors.append(
            f"max_summary_chars ({comp.max_summary_chars}) must be < "
            f"max_chars ({budget.max_chars})"
        )

    if comp.max_attempts < 1:
        errors.append("compression.max_attempts must be >= 1")

    if comp.merge_fan_in < 2:
        errors.append("compression.merge_fan_in must be >= 2")

    if comp.max_level < 1:
        errors.append("compression.max_level must be >= 1")

    if comp.timeout_seconds <= 0:
        errors.append("compression.timeout_seconds must be > 0")

    # Check that summarization provider exists in providers
    provider = config.summarization.provider
    if provider and provider not in config.providers:
        errors.append(
            f"Summarization provider '{provider}' not found in providers section"
        )

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> MemoryConfig:
    """Load config from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        # Return defaults
        return _build_config({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    if path.suffix == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text) or {}

    return _build_config(raw)
