"""Tests for BudgetManager."""

import pytest

from hierarchical_memory.core.budget import BudgetManager
from hierarchical_memory.core.store import MemoryStore
from hierarchical_memory.types import BudgetConfig, BudgetState, SummaryItem


def _store_with(lengths):
    store = MemoryStore("alice")
    for n in lengths:
        store.append("user", "x" * n)
    return store


@pytest.fixture
def budget():
    return BudgetManager(BudgetConfig(max_chars=1000))


def test_recompute(budget):
    store = _store_with([100, 250])
    assert budget.recompute(store) == 350
    assert budget.state.current_chars == 350


@pytest.mark.parametrize("lengths,expected", [
    ([], 5),
    ([200, 200], 5),
    ([250], 4),
    ([20, 20], 8),
    ([1000], 3),
])
def test_adaptive_l1_threshold(budget, lengths, expected):
    assert budget.l1_threshold(_store_with(lengths)) == expected


def test_threshold_clamped_to_floor_with_no_data():
    budget = BudgetManager(BudgetConfig(base_l1_threshold=2, l1_floor=3, l1_ceiling=8))
    assert budget.l1_threshold(MemoryStore("alice")) == 3


def test_check_under_thresholds(budget):
    store = _store_with([200] * 4)
    assert budget.check(store) is None
    assert not budget.is_over_threshold(store)


def test_check_budget_reason(budget):
    store = _store_with([600, 600])
    signal = budget.check(store)
    assert signal.reason == "budget"
    assert signal.current_chars == 1200
    assert signal.max_chars == 1000


def test_check_message_count_reason(budget):
    store = _store_with([100] * 9)  # avg 100 -> threshold 8
    signal = budget.check(store)
    assert signal.reason == "message_count"
    assert signal.raw_since_compression == 9
    assert signal.l1_threshold == 8


def test_budget_reason_wins(budget):
    store = _store_with([150] * 9)
    assert budget.check(store).reason == "budget"


def test_raw_count_resets_after_summary(budget):
    store = _store_with([100] * 9)
    store.replace_with_summary(
        list(range(1, 9)), SummaryItem(id=0, level=1, text="s" * 50, covers=()),
    )
    assert budget.check(store) is None


def test_level_over_threshold_by_count():
    budget = BudgetManager(BudgetConfig(max_chars=10_000, max_summaries_per_level=2))
    store = _store_with([10] * 6)
    for first in (1, 3, 5):
        store.replace_with_summary(
            [first, first + 1], SummaryItem(id=0, level=1, text="s", covers=()),
        )
    assert budget.level_over_threshold(store, 1)
    assert not budget.level_over_threshold(store, 2)


def test_level_over_threshold_by_chars():
    budget = BudgetManager(BudgetConfig(max_chars=100, hierarchical_budget_fraction=0.5))
    store = _store_with([10, 10])
    store.replace_with_summary([1, 2], SummaryItem(id=0, level=1, text="s" * 51, covers=()))
    assert budget.level_over_threshold(store, 1)


def test_budget_state_percentage():
    assert BudgetState(max_chars=2000, current_chars=500).percentage == 25.0
    assert BudgetState(max_chars=3, current_chars=1).percentage == 33.3
    assert BudgetState(max_chars=0, current_chars=10).percentage == 0.0
