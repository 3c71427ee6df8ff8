"""KeywordTagger: deterministic tag extraction for messages, summaries and queries."""

from __future__ import annotations

import logging
import re
from collections import Counter

from ..patterns import DEFAULT_STOPWORDS, TOKEN_PATTERN
from ..types import TaggerConfig

logger = logging.getLogger(__name__)


def normalize_tag(tag: str) -> str:
    """Lowercase, hyphenate and strip anything that is not a letter or digit."""
    tag = tag.lower().strip()
    tag = re.sub(r"[^\w-]|_", "-", tag)
    return re.sub(r"-+", "-", tag).strip("-")


class KeywordTagger:
    """Frequency-ranked keywords plus configured keyword/regex topic rules."""

    def __init__(self, config: TaggerConfig | None = None) -> None:
        self.config = config or TaggerConfig()
        self._stopwords = DEFAULT_STOPWORDS | {w.lower() for w in self.config.extra_stopwords}
        self._compiled_patterns: dict[str, list[re.Pattern]] = {}
        self._initialize()

    def _initialize(self) -> None:
        """Precompile regex patterns."""
        for tag, patterns in self.config.tag_patterns.items():
            self._compiled_patterns[tag] = []
            for pattern in patterns:
                try:
                    self._compiled_patterns[tag].append(re.compile(pattern, re.IGNORECASE))
                except re.error:
                    logger.warning(f"Invalid regex pattern for tag '{tag}': {pattern}")

    def tokenize(self, text: str) -> list[str]:
        """Normalized content tokens in order of appearance (duplicates kept)."""
        tokens: list[str] = []
        for raw in TOKEN_PATTERN.findall(text.lower()):
            token = normalize_tag(raw)
            if len(token) < self.config.min_token_length:
                continue
            if token in self._stopwords or token.isdigit():
                continue
            tokens.append(token)
        return tokens

    def salient_terms(self, text: str, limit: int) -> list[str]:
        """Most frequent content tokens, ties broken by first occurrence."""
        tokens = self.tokenize(text)
        counts = Counter(tokens)
        first_seen: dict[str, int] = {}
        for i, token in enumerate(tokens):
            first_seen.setdefault(token, i)
        ranked = sorted(counts, key=lambda t: (-counts[t], first_seen[t]))
        return ranked[:limit]

    def rule_tags(self, text: str) -> list[str]:
        """Tags from the configured keyword and pattern rules."""
        text_lower = text.lower()
        matched: set[str] = set()

        for tag, keywords in self.config.tag_keywords.items():
            if any(kw.lower() in text_lower for kw in keywords):
                matched.add(tag)

        for tag, patterns in self._compiled_patterns.items():
            for pattern in patterns:
                if pattern.search(text):
                    matched.add(tag)
                    break

        return sorted(normalize_tag(t) for t in matched if normalize_tag(t))

    def extract(self, text: str, limit: int | None = None) -> list[str]:
        """Tags for a stored item: rule tags first, then top keywords."""
        limit = self.config.max_tags if limit is None else limit
        tags = self.rule_tags(text)
        for term in self.salient_terms(text, limit):
            if len(tags) >= limit:
                break
            if term not in tags:
                tags.append(term)
        return tags

    def query_tags(self, query: str) -> list[str]:
        """All distinct tags a query could match (no frequency cap)."""
        seen: list[str] = []
        for tag in self.rule_tags(query) + self.tokenize(query):
            if tag not in seen:
                seen.append(tag)
        return seen
