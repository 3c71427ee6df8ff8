"""Tests for the LLM summarizer: prompts, parsing and provider wiring."""

import pytest

from tests.conftest import make_config
from hierarchical_memory.core.summarizer import (
    LLMSummarizer,
    build_provider,
    build_summarizer,
    parse_summary_response,
)
from hierarchical_memory.providers import AnthropicProvider, GenericOpenAIProvider


class FakeProvider:
    def __init__(self, response):
        self.response = response
        self.calls = []

    async def complete(self, system, user, max_tokens):
        self.calls.append({"system": system, "user": user, "max_tokens": max_tokens})
        return self.response


class TestParseSummaryResponse:
    def test_json(self):
        assert parse_summary_response('{"summary": " Ledger moves. "}') == "Ledger moves."

    def test_fenced_json(self):
        response = '```json\n{"summary": "Ledger moves."}\n```'
        assert parse_summary_response(response) == "Ledger moves."

    def test_think_block(self):
        response = '<think>consider the ledger</think>\n{"summary": "Ledger moves."}'
        assert parse_summary_response(response) == "Ledger moves."

    def test_json_embedded_in_prose(self):
        response = 'Here you go: {"summary": "Ledger moves."} Hope it helps.'
        assert parse_summary_response(response) == "Ledger moves."

    def test_plain_text(self):
        assert parse_summary_response("  Ledger moves to Postgres.  ") == "Ledger moves to Postgres."

    def test_non_string_summary(self):
        assert parse_summary_response('{"summary": 42}') == ""

    def test_missing_summary_key(self):
        assert parse_summary_response('{"text": "x"}') == ""


class TestLLMSummarizer:
    @pytest.mark.asyncio
    async def test_prompt_carries_target_and_text(self):
        provider = FakeProvider('{"summary": "Ledger moves."}')
        summarizer = LLMSummarizer(provider)

        result = await summarizer.summarize("[1] User (09:00): migrate the ledger", 120, "en")

        assert result == "Ledger moves."
        call = provider.calls[0]
        assert "120 characters or fewer" in call["user"]
        assert "migrate the ledger" in call["user"]
        assert call["max_tokens"] == 1000

    def test_french_prompt(self):
        summarizer = LLMSummarizer(FakeProvider(""))
        prompt = summarizer.build_prompt("texte", 80, "fr")
        assert "80 caractères ou moins" in prompt

    def test_unknown_language_uses_default(self):
        summarizer = LLMSummarizer(FakeProvider(""))
        assert "80 characters or fewer" in summarizer.build_prompt("text", 80, "xx")


class TestBuildSummarizer:
    def test_no_provider(self):
        assert build_summarizer(make_config()) is None

    def test_anthropic(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        config = make_config(
            summarization={"provider": "anthropic", "model": "override-model"},
            providers={"anthropic": {"model": "base-model"}},
        )
        summarizer = build_summarizer(config)
        assert isinstance(summarizer.provider, AnthropicProvider)
        assert summarizer.provider.model == "override-model"

    def test_ollama(self):
        config = make_config(
            summarization={"provider": "local", "temperature": 0.1},
            providers={"local": {"type": "ollama", "base_url": "http://gpu:11434/v1"}},
        )
        provider = build_summarizer(config).provider
        assert isinstance(provider, GenericOpenAIProvider)
        assert provider.base_url == "http://gpu:11434/v1"
        assert provider.temperature == 0.1

    def test_unknown_provider_type(self):
        with pytest.raises(ValueError):
            build_provider("mystery", {})
