"""Startup reconciliation: timers are rebuilt from persisted job records after a restart."""
from datetime import timedelta

from conftest import TestingSessionLocal, count_rows, fetch_product
from storefront.jobs.offer_job import timer_key
from storefront.models.db import Offer, ScheduledJob
from storefront.services.offers import create_offer


def _product_refs(*products):
    return [
        {"product": p.id, "offer_discount_type": 1, "offer_discount_amount": 20, "reset_discount": True}
        for p in products
    ]


def test_future_records_are_rearmed_against_existing_ids(make_scheduler, job_store, clock, db_session, offer_payload):
    before = make_scheduler()
    offer = create_offer(db_session, offer_payload(), before)
    ids_before = sorted(r.id for r in job_store.list_all())

    # Process restart: fresh in-memory timers, same persisted records
    after = make_scheduler()
    summary = after.reconcile_on_startup()

    assert summary.rearmed == 2
    assert summary.applied == 0
    assert sorted(r.id for r in job_store.list_all()) == ids_before
    assert after.queue.is_armed(timer_key(offer.id, after.start_job_name))
    assert after.queue.is_armed(timer_key(offer.id, after.end_job_name))
    assert after.reconciled is True


def test_past_due_start_applies_once_and_end_is_rearmed(make_scheduler, job_store, clock, db_session, offer_payload, product_factory):
    p = product_factory()
    before = make_scheduler()
    offer = create_offer(db_session, offer_payload(products=_product_refs(p)), before)
    end_record = next(r for r in job_store.list_all() if r.name == before.end_job_name)

    clock.advance(hours=2)
    after = make_scheduler()
    summary = after.reconcile_on_startup()

    assert summary.applied == 1
    assert summary.rearmed == 1
    stored = fetch_product(p.id)
    assert stored.discount_type == 1
    assert float(stored.discount_amount) == 20.0
    assert [r.id for r in job_store.list_all()] == [end_record.id]
    assert after.queue.keys() == [timer_key(offer.id, after.end_job_name)]
    assert not after.queue.is_armed(timer_key(offer.id, after.start_job_name))


def test_fully_elapsed_offer_starts_then_ends(make_scheduler, job_store, clock, db_session, offer_payload, product_factory):
    p = product_factory()
    before = make_scheduler()
    create_offer(db_session, offer_payload(products=_product_refs(p)), before)

    clock.advance(days=1)
    after = make_scheduler()
    summary = after.reconcile_on_startup()

    assert summary.applied == 2
    # The end phase ran last: the discount is gone and so is the offer
    assert fetch_product(p.id).discount_type is None
    assert count_rows(Offer) == 0
    assert job_store.list_all() == []
    assert after.queue.depth() == 0
    fired = [f.job_name for f in after.recent_fires()]
    assert fired == [after.start_job_name, after.end_job_name]


def test_orphaned_and_malformed_records_are_removed(make_scheduler, job_store):
    scheduler = make_scheduler()
    job_store.insert(scheduler.start_job_name, "424242", "offer")
    job_store.insert(scheduler.end_job_name, "not-a-number", "offer")

    summary = scheduler.reconcile_on_startup()

    assert summary.orphaned == 2
    assert job_store.list_all() == []
    assert scheduler.queue.depth() == 0


def test_duplicate_records_collapse_to_one(make_scheduler, job_store, clock):
    scheduler = make_scheduler()
    with TestingSessionLocal() as session:
        offer = Offer(title="dup", slug="dup", start_date_time=clock() + timedelta(hours=1),
                      end_date_time=clock() + timedelta(hours=2), products=[])
        session.add(offer)
        session.commit()
        offer_id = offer.id
    first = job_store.insert(scheduler.start_job_name, str(offer_id), "offer")
    job_store.insert(scheduler.start_job_name, str(offer_id), "offer")

    summary = scheduler.reconcile_on_startup()

    assert summary.rearmed == 1
    assert summary.duplicates == 1
    assert [r.id for r in job_store.list_all()] == [first.id]


def test_foreign_records_are_left_untouched(make_scheduler, job_store):
    scheduler = make_scheduler()
    job_store.insert("Some_Other_Job", "1", "offer")
    job_store.insert(scheduler.start_job_name, "1", "coupon")

    summary = scheduler.reconcile_on_startup()

    assert summary.skipped == 2
    assert count_rows(ScheduledJob) == 2
    assert scheduler.queue.depth() == 0


def test_store_failure_is_reported_not_raised(make_scheduler, job_store, monkeypatch):
    scheduler = make_scheduler()

    def _broken():
        raise RuntimeError("store offline")

    monkeypatch.setattr(job_store, "list_all", _broken)
    summary = scheduler.reconcile_on_startup()

    assert summary.failed == 1
    assert summary.errors[0]["error"] == "store offline"
    assert scheduler.reconciled is False
