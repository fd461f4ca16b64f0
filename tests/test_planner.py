"""
Tests for the slot window planner.
"""

from __future__ import annotations

from conftest import FakeSource

from solana_ingestion.planner import SlotWindowPlanner


def test_window_bounded_by_margin_before_width():
    source = FakeSource(latest=1000)
    planner = SlotWindowPlanner(source, slots_behind_latest=200, max_slot_range=100)

    batch = planner.next_batch(750)

    assert batch.target_slot == 800
    assert source.range_calls == [(750, 800)]
    assert batch.slots == list(range(751, 801))


def test_window_bounded_by_width_far_from_tip():
    source = FakeSource(latest=2000)
    planner = SlotWindowPlanner(source, slots_behind_latest=200, max_slot_range=100)

    batch = planner.next_batch(750)

    assert batch.target_slot == 850
    assert source.range_calls == [(750, 850)]
    assert batch.slots == list(range(751, 851))


def test_window_bounded_by_safety_margin():
    source = FakeSource(latest=1000)
    planner = SlotWindowPlanner(source, slots_behind_latest=200, max_slot_range=100)

    batch = planner.next_batch(780)

    assert batch.target_slot == 800


def test_empty_when_too_close_to_tip():
    source = FakeSource(latest=1000)
    planner = SlotWindowPlanner(source, slots_behind_latest=200, max_slot_range=100)

    batch = planner.next_batch(800)

    assert not batch
    assert batch.target_slot is None
    assert source.range_calls == []


def test_skipped_slots_are_absent():
    source = FakeSource(latest=1000, skipped={102, 104})
    planner = SlotWindowPlanner(source, slots_behind_latest=200, max_slot_range=5)

    assert planner.next_batch(100).slots == [101, 103, 105]


def test_never_plans_past_end_slot():
    source = FakeSource(latest=5000)
    planner = SlotWindowPlanner(source, slots_behind_latest=200, max_slot_range=100)

    for cursor in range(0, 4000, 137):
        for end_slot in (cursor + 1, cursor + 50, cursor + 500):
            batch = planner.next_batch(cursor, end_slot)
            assert batch.target_slot is None or batch.target_slot <= end_slot
            assert all(slot <= end_slot for slot in batch)


def test_planning_is_deterministic():
    source = FakeSource(latest=1000)
    planner = SlotWindowPlanner(source, slots_behind_latest=200, max_slot_range=100)
    assert planner.next_batch(500, 560).slots == planner.next_batch(500, 560).slots
