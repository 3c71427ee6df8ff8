"""LLM-backed Summarizer: prompt building and tolerant response parsing."""

from __future__ import annotations

import json
import logging
import re

from ..types import LLMProvider, MemoryConfig, SummarizationConfig

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = "You compress dialogue into faithful, dense summaries."

DEFAULT_SUMMARY_PROMPT = """\
Summarize the following conversation excerpt.
Preserve: who said what, decisions, entities mentioned, specific data points (numbers, dates, names),
and specific feature/concept names exactly as discussed. Do not invent facts.
The summary must be {target_chars} characters or fewer.

Conversation:
{conversation_text}

Respond with JSON:
{{
  "summary": "..."
}}"""

FRENCH_SUMMARY_PROMPT = """\
Résume l'extrait de conversation suivant.
Conserve : qui a dit quoi, les décisions, les entités mentionnées, les données précises (nombres, dates, noms)
et les noms de concepts exactement tels qu'ils ont été employés. N'invente rien.
Le résumé doit faire {target_chars} caractères ou moins.

Conversation :
{conversation_text}

Réponds en JSON :
{{
  "summary": "..."
}}"""

PROMPTS = {
    "en": DEFAULT_SUMMARY_PROMPT,
    "fr": FRENCH_SUMMARY_PROMPT,
}


def parse_summary_response(response: str) -> str:
    """Extract the summary text from a model reply, JSON or not."""
    text = response.strip()

    # Strip markdown fences if present
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)

    # Strip thinking tags
    if "<think>" in text:
        text = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()

    data = None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}") + 1
        if start >= 0 and end > start:
            try:
                data = json.loads(text[start:end])
            except json.JSONDecodeError:
                pass

    if isinstance(data, dict):
        summary = data.get("summary", "")
        return summary.strip() if isinstance(summary, str) else ""
    return text.strip()


class LLMSummarizer:
    """Summarizer that delegates to an LLMProvider."""

    def __init__(
        self,
        provider: LLMProvider,
        config: SummarizationConfig | None = None,
    ) -> None:
        self.provider = provider
        self.config = config or SummarizationConfig()

    def build_prompt(self, text: str, target_max_length: int, language: str) -> str:
        template = PROMPTS.get(language, DEFAULT_SUMMARY_PROMPT)
        return template.format(target_chars=target_max_length, conversation_text=text)

    async def summarize(self, text: str, target_max_length: int, language: str) -> str:
        prompt = self.build_prompt(text, target_max_length, language)
        response = await self.provider.complete(
            system=SUMMARY_SYSTEM_PROMPT,
            user=prompt,
            max_tokens=self.config.max_tokens,
        )
        return parse_summary_response(response)


def build_provider(provider_name: str, provider_config: dict, temperature: float = 0.3) -> LLMProvider:
    """Build an LLM provider from a ``providers:`` config entry."""
    from ..providers import AnthropicProvider, GenericOpenAIProvider

    provider_type = provider_config.get("type", provider_name)

    if provider_type == "anthropic":
        return AnthropicProvider(
            api_key=provider_config.get("api_key"),
            api_key_env=provider_config.get("api_key_env", "ANTHROPIC_API_KEY"),
            model=provider_config.get("model", "claude-haiku-4-5"),
            temperature=temperature,
        )
    if provider_type in ("generic_openai", "ollama", "openai"):
        return GenericOpenAIProvider(
            base_url=provider_config.get("base_url", "http://127.0.0.1:11434/v1"),
            model=provider_config.get("model", "qwen3:4b-instruct-2507-fp16"),
            temperature=temperature,
            api_key=provider_config.get("api_key", "not-needed"),
        )
    raise ValueError(f"Unknown provider type: {provider_type}")


def build_summarizer(config: MemoryConfig) -> LLMSummarizer | None:
    """Summarizer for the configured provider, or None to use truncation only."""
    name = config.summarization.provider
    if not name:
        return None
    provider_config = dict(config.providers.get(name, {}))
    if config.summarization.model:
        provider_config["model"] = config.summarization.model
    provider = build_provider(name, provider_config, config.summarization.temperature)
    logger.info("Summarization via %s provider", name)
    return LLMSummarizer(provider, config.summarization)
