import pytest

from storefront.config import TIMER_SETTINGS
from storefront.jobs.timers import DeadlineQueue


class _Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_pop_due_returns_jobs_in_deadline_order():
    clock = _Clock()
    q = DeadlineQueue(clock=clock)
    q.arm("b", "job-b", 1020.0)
    q.arm("a", "job-a", 1010.0)
    q.arm("c", "job-c", 1030.0)

    assert q.pop_due(1005.0) == []
    assert q.pop_due(1020.0) == ["job-a", "job-b"]
    assert q.keys() == ["c"]


def test_arming_same_key_replaces_previous_timer():
    q = DeadlineQueue(clock=_Clock())
    q.arm(("1", "start"), "old", 1010.0)
    q.arm(("1", "start"), "new", 1050.0)

    assert q.depth() == 1
    assert q.pop_due(1020.0) == []
    assert q.pop_due(1050.0) == ["new"]


def test_cancel_is_per_key_and_idempotent():
    q = DeadlineQueue(clock=_Clock())
    q.arm(("1", "start"), "offer-1", 1010.0)
    q.arm(("2", "start"), "offer-2", 1010.0)

    assert q.cancel(("1", "start")) is True
    assert q.cancel(("1", "start")) is False
    assert q.pop_due(1010.0) == ["offer-2"]


def test_cancel_matching_by_job_name():
    q = DeadlineQueue(clock=_Clock())
    q.arm(("1", "start"), "s1", 1010.0)
    q.arm(("2", "start"), "s2", 1010.0)
    q.arm(("1", "end"), "e1", 1020.0)

    assert q.cancel_matching(lambda key: key[1] == "start") == 2
    assert q.keys() == [("1", "end")]


def test_dequeue_non_blocking_and_shutdown():
    clock = _Clock()
    q = DeadlineQueue(clock=clock)
    q.arm("k", "job", 1010.0)
    assert q.dequeue(block=False) is None
    clock.now = 1010.0
    assert q.dequeue(block=False) == "job"

    q.shutdown()
    assert q.dequeue(timeout=0.01) is None
    with pytest.raises(RuntimeError):
        q.arm("k", "job", 1020.0)


def test_capacity_limit(monkeypatch):
    monkeypatch.setitem(TIMER_SETTINGS, "max_in_memory", 2)
    q = DeadlineQueue(clock=_Clock())
    q.arm("a", 1, 1010.0)
    q.arm("b", 2, 1010.0)
    # Re-arming an existing key does not count against capacity
    q.arm("a", 3, 1020.0)
    with pytest.raises(OverflowError):
        q.arm("c", 4, 1010.0)


def test_snapshot_reports_next_deadline():
    q = DeadlineQueue(clock=_Clock())
    assert q.snapshot()["next_ready_at"] is None
    q.arm("a", 1, 1030.0)
    q.arm("b", 2, 1015.0)
    snap = q.snapshot()
    assert snap["armed"] == 2
    assert snap["next_ready_at"] == 1015.0
    q.purge()
    assert q.depth() == 0
