"""EmotionTracker: bounded per-entity emotional state kept alongside memory."""

from __future__ import annotations

import logging
from collections import deque

from ..storage.helpers import dt_to_str, str_to_dt
from ..types import (
    CorruptStateError,
    EmotionalSnapshot,
    EmotionConfig,
    EmotionModification,
    utcnow,
)

logger = logging.getLogger(__name__)

RECENT_MODIFICATIONS = 10


class EmotionTracker:
    """Scores in [0, 1] per emotion label plus a bounded modification history."""

    def __init__(self, entity_id: str, config: EmotionConfig | None = None) -> None:
        self.entity_id = entity_id
        self.config = config or EmotionConfig()
        self.emotions: dict[str, float] = {}
        self.history: deque[EmotionModification] = deque(maxlen=self.config.history_limit)
        self.last_updated = utcnow()

    def apply(self, emotion: str, change: float, reason: str = "") -> EmotionModification:
        """Shift *emotion* by *change*, clamped to [0, 1], and record it."""
        current = self.emotions.get(emotion, 0.0)
        self.emotions[emotion] = round(max(0.0, min(1.0, current + change)), 6)
        modification = EmotionModification(emotion=emotion, change=change, reason=reason)
        self.history.append(modification)
        self.last_updated = modification.timestamp
        return modification

    def observe(self, text: str) -> EmotionModification | None:
        """Nudge the first emotion whose keywords appear in *text*.

        Decrease words lower it by ``step``; otherwise it rises by ``step``.
        """
        lowered = text.lower()
        for emotion, keywords in self.config.emotion_keywords.items():
            if any(kw in lowered for kw in keywords):
                break
        else:
            return None

        if any(word in lowered for word in self.config.decrease_words):
            change = -self.config.step
        else:
            change = self.config.step
        verb = "raised" if change > 0 else "lowered"
        excerpt = text[:50] + ("..." if len(text) > 50 else "")
        return self.apply(emotion, change, f'"{emotion}" {verb} after: "{excerpt}"')

    def dominant(self) -> str | None:
        if not self.emotions:
            return None
        # first label wins on equal scores
        best = max(self.emotions.values())
        if best <= 0:
            return None
        return next(e for e, s in self.emotions.items() if s == best)

    def intensity(self) -> float:
        if not self.emotions:
            return 0.0
        return sum(self.emotions.values()) / len(self.emotions)

    def snapshot(self) -> EmotionalSnapshot:
        return EmotionalSnapshot(
            entity_id=self.entity_id,
            emotions=dict(self.emotions),
            modifications=list(self.history)[-RECENT_MODIFICATIONS:],
            dominant_emotion=self.dominant(),
            intensity=self.intensity(),
        )

    def report(self) -> str:
        """Markdown summary of the current state and recent changes."""
        lines = [
            f"# Emotional report - {self.entity_id}",
            "",
            f"**Dominant emotion:** {self.dominant() or 'neutral'}",
            f"**Intensity:** {self.intensity() * 100:.1f}%",
            f"**Last updated:** {dt_to_str(self.last_updated)}",
            "",
            "## Current state",
            "",
        ]
        for emotion, score in sorted(self.emotions.items(), key=lambda kv: -kv[1]):
            bar = "█" * int(score * 20)
            lines.append(f"- **{emotion}:** {score * 100:.1f}% {bar}")

        lines += ["", "## Recent changes", ""]
        for n, mod in enumerate(list(self.history)[-RECENT_MODIFICATIONS:], 1):
            sign = "+" if mod.change > 0 else ""
            lines.append(f"{n}. **{mod.emotion}** ({sign}{mod.change}) - {mod.reason}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "entity_id": self.entity_id,
            "emotions": dict(self.emotions),
            "last_updated": dt_to_str(self.last_updated),
            "history": [
                {
                    "emotion": m.emotion,
                    "change": m.change,
                    "reason": m.reason,
                    "timestamp": dt_to_str(m.timestamp),
                }
                for m in self.history
            ],
        }

    @classmethod
    def from_dict(cls, data: dict, config: EmotionConfig | None = None) -> "EmotionTracker":
        """Rebuild a tracker; out-of-range scores raise CorruptStateError."""
        try:
            tracker = cls(str(data["entity_id"]), config)
            emotions = {str(k): float(v) for k, v in data.get("emotions", {}).items()}
            history = [
                EmotionModification(
                    emotion=str(m["emotion"]),
                    change=float(m["change"]),
                    reason=str(m.get("reason", "")),
                    timestamp=str_to_dt(m["timestamp"]),
                )
                for m in data.get("history", [])
            ]
            last_updated = str_to_dt(data["last_updated"]) if "last_updated" in data else utcnow()
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CorruptStateError(f"Malformed emotional state: {e}") from e

        for emotion, score in emotions.items():
            if not 0.0 <= score <= 1.0:
                raise CorruptStateError(f"Emotion {emotion!r} score {score} outside [0, 1]")

        tracker.emotions = emotions
        tracker.history.extend(history)
        tracker.last_updated = last_updated
        return tracker
