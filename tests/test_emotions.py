"""Tests for EmotionTracker."""

import pytest

from hierarchical_memory.core.emotions import EmotionTracker
from hierarchical_memory.types import CorruptStateError, EmotionConfig


@pytest.fixture
def tracker():
    return EmotionTracker("alice")


def test_apply_clamps(tracker):
    tracker.apply("curious", 0.8)
    tracker.apply("curious", 0.5)
    assert tracker.emotions["curious"] == 1.0
    tracker.apply("curious", -3.0)
    assert tracker.emotions["curious"] == 0.0


def test_history_is_bounded():
    tracker = EmotionTracker("alice", EmotionConfig(history_limit=3))
    for i in range(5):
        tracker.apply("content", 0.1, f"step {i}")
    assert [m.reason for m in tracker.history] == ["step 2", "step 3", "step 4"]


def test_observe_raises_matching_emotion(tracker):
    mod = tracker.observe("I'm really worried about the deadline")
    assert mod is not None
    assert mod.emotion == "worried"
    assert tracker.emotions["worried"] == pytest.approx(0.1)


def test_observe_decrease_word_lowers(tracker):
    tracker.apply("worried", 0.1)
    mod = tracker.observe("I feel less worried now")
    assert mod.change < 0
    assert tracker.emotions["worried"] == 0.0


def test_observe_without_keywords(tracker):
    assert tracker.observe("The meeting is at noon") is None
    assert tracker.emotions == {}
    assert len(tracker.history) == 0


def test_dominant_and_intensity(tracker):
    assert tracker.dominant() is None
    assert tracker.intensity() == 0.0

    tracker.apply("curious", 0.6)
    tracker.apply("content", 0.2)
    assert tracker.dominant() == "curious"
    assert tracker.intensity() == pytest.approx(0.4)


def test_dominant_none_when_all_zero(tracker):
    tracker.apply("annoyed", -0.5)
    assert tracker.dominant() is None


def test_snapshot(tracker):
    for _ in range(12):
        tracker.apply("passionate", 0.05)
    snap = tracker.snapshot()
    assert snap.entity_id == "alice"
    assert snap.dominant_emotion == "passionate"
    assert len(snap.modifications) == 10


def test_report(tracker):
    tracker.observe("I'm so curious how this works")
    report = tracker.report()
    assert report.startswith("# Emotional report - alice")
    assert "**Dominant emotion:** curious" in report
    assert "## Recent changes" in report


def test_dict_round_trip(tracker):
    tracker.apply("curious", 0.3, "question")
    tracker.apply("content", 0.5, "glad")
    restored = EmotionTracker.from_dict(tracker.to_dict())
    assert restored.entity_id == "alice"
    assert restored.emotions == tracker.emotions
    assert [m.reason for m in restored.history] == ["question", "glad"]
    assert restored.history[0].timestamp == tracker.history[0].timestamp


def test_from_dict_rejects_out_of_range():
    with pytest.raises(CorruptStateError):
        EmotionTracker.from_dict({"entity_id": "alice", "emotions": {"curious": 1.5}})


def test_from_dict_rejects_malformed():
    with pytest.raises(CorruptStateError):
        EmotionTracker.from_dict({"entity_id": "alice", "history": [{"emotion": "x"}]})
    with pytest.raises(CorruptStateError):
        EmotionTracker.from_dict({"emotions": {}})
