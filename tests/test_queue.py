"""Tests for the bounded delivery queue and its severity-aware eviction."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from a11ops.fingerprint import group_id
from a11ops.models import DeliveryState, Event
from a11ops.queue import DeliveryQueue
from a11ops.severity import Severity


def _event(name: str, severity: Severity = Severity.INFO) -> Event:
    return Event(
        severity=severity,
        title=name,
        message=name,
        category="message",
        fingerprint=(name,),
        group_id=group_id((name,)),
        event_id=name,
    )


def _titles(queue: DeliveryQueue) -> list[str]:
    return [item.event.title for item in queue.items()]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestEviction:
    def test_oldest_info_evicted_first(self):
        queue = DeliveryQueue(capacity=3)
        for name in "ABC":
            queue.push(_event(name))
        item, evicted = queue.push(_event("D"))

        assert item is not None
        assert [v.event.title for v in evicted] == ["A"]
        assert evicted[0].state is DeliveryState.DROPPED
        assert evicted[0].drop_reason == "evicted"
        assert evicted[0].completed.is_set()
        assert _titles(queue) == ["B", "C", "D"]

    def test_critical_survives_info_pressure(self):
        queue = DeliveryQueue(capacity=3)
        queue.push(_event("crit", Severity.CRITICAL))
        for i in range(10):
            queue.push(_event(f"info-{i}"))
        assert "crit" in _titles(queue)
        assert len(queue) == 3

    def test_lowest_severity_evicted_before_older_higher(self):
        queue = DeliveryQueue(capacity=3)
        queue.push(_event("warn", Severity.WARNING))
        queue.push(_event("info", Severity.INFO))
        queue.push(_event("error", Severity.ERROR))
        _, evicted = queue.push(_event("crit", Severity.CRITICAL))
        assert [v.event.title for v in evicted] == ["info"]
        assert _titles(queue) == ["warn", "error", "crit"]

    def test_lower_than_everything_is_refused(self):
        queue = DeliveryQueue(capacity=2)
        queue.push(_event("e1", Severity.ERROR))
        queue.push(_event("e2", Severity.ERROR))
        item, evicted = queue.push(_event("debug", Severity.DEBUG))
        assert item is None
        assert evicted == []
        assert _titles(queue) == ["e1", "e2"]

    def test_equal_severity_replaces_oldest(self):
        queue = DeliveryQueue(capacity=2)
        queue.push(_event("e1", Severity.ERROR))
        queue.push(_event("e2", Severity.ERROR))
        item, _ = queue.push(_event("e3", Severity.ERROR))
        assert item is not None
        assert _titles(queue) == ["e2", "e3"]

    def test_in_flight_items_not_evicted(self):
        queue = DeliveryQueue(capacity=2)
        queue.push(_event("a"))
        queue.push(_event("b"))
        queue.take_due(limit=2)
        item, evicted = queue.push(_event("c", Severity.CRITICAL))
        assert item is None
        assert evicted == []

    def test_zero_capacity_rejected(self):
        with pytest.raises(ValueError):
            DeliveryQueue(capacity=0)

    @given(
        capacity=st.integers(min_value=1, max_value=8),
        severities=st.lists(st.sampled_from(list(Severity)), max_size=40),
    )
    @settings(max_examples=100)
    def test_never_over_capacity_and_best_kept(self, capacity, severities):
        """Length stays bounded and no dropped event outranks a kept one."""
        queue = DeliveryQueue(capacity=capacity)
        dropped: list[Severity] = []
        for i, severity in enumerate(severities):
            item, evicted = queue.push(_event(str(i), severity))
            dropped.extend(v.event.severity for v in evicted)
            if item is None:
                dropped.append(severity)
            assert len(queue) <= capacity

        kept = [item.event.severity for item in queue.items()]
        if dropped:
            assert max(dropped) <= min(kept)


class TestScheduling:
    def test_take_due_in_order_and_marks_sending(self):
        queue = DeliveryQueue(capacity=10)
        for name in "ABCDE":
            queue.push(_event(name))
        batch = queue.take_due(limit=3)
        assert [i.event.title for i in batch] == ["A", "B", "C"]
        assert all(i.state is DeliveryState.SENDING and i.attempt == 1 for i in batch)
        assert [i.event.title for i in queue.take_due(limit=3)] == ["D", "E"]
        assert queue.take_due(limit=3) == []

    def test_retrying_item_waits_for_backoff(self):
        clock = FakeClock()
        queue = DeliveryQueue(capacity=10, clock=clock)
        queue.push(_event("A"))
        (item,) = queue.take_due(limit=1)
        queue.mark_retrying(item, delay=2.0)

        assert not queue.has_due()
        assert queue.seconds_until_due() == 2.0
        clock.now = 2.0
        assert queue.has_due()
        (again,) = queue.take_due(limit=1)
        assert again is item
        assert item.attempt == 2

    def test_only_in_flight_means_no_wait(self):
        queue = DeliveryQueue(capacity=10)
        queue.push(_event("A"))
        queue.take_due(limit=1)
        assert queue.seconds_until_due() is None
        assert queue.waiting() == []

    def test_delivered_leaves_queue(self):
        queue = DeliveryQueue(capacity=10)
        queue.push(_event("A"))
        (item,) = queue.take_due(limit=1)
        queue.mark_delivered(item)
        assert len(queue) == 0
        assert item.state is DeliveryState.DELIVERED
        assert item.completed.is_set()

    def test_dropped_records_reason(self):
        queue = DeliveryQueue(capacity=10)
        queue.push(_event("A"))
        (item,) = queue.take_due(limit=1)
        queue.mark_dropped(item, "rejected")
        assert item.drop_reason == "rejected"
        assert len(queue) == 0
