import time
from datetime import timedelta

from conftest import fetch_product
from storefront.jobs.worker_scheduler import SchedulerWorker
from storefront.utils import utc_now


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


def test_worker_fires_due_timer(make_scheduler, job_store, product_factory):
    scheduler = make_scheduler(clock=utc_now)
    p = product_factory()
    refs = [{"product": p.id, "offer_discount_type": 1, "offer_discount_amount": 7, "reset_discount": True}]
    deadline = utc_now() + timedelta(milliseconds=300)

    worker = SchedulerWorker(scheduler, poll_timeout=0.1)
    worker.start()
    try:
        assert worker.running
        scheduler.schedule_start(True, 1, deadline, refs)
        assert _wait_for(lambda: len(scheduler.recent_fires()) == 1)
    finally:
        worker.stop(join_timeout=2.0)

    assert scheduler.recent_fires()[0].ok
    assert fetch_product(p.id).discount_type == 1
    assert job_store.list_all() == []
    assert not worker.running


def test_cancelled_timer_never_fires(make_scheduler):
    scheduler = make_scheduler(clock=utc_now)
    worker = SchedulerWorker(scheduler, poll_timeout=0.05)
    worker.start()
    try:
        scheduler.schedule_start(True, 2, utc_now() + timedelta(milliseconds=200), [])
        scheduler.cancel_offer(2)
        time.sleep(0.5)
    finally:
        worker.stop(join_timeout=2.0)

    assert scheduler.recent_fires() == []
