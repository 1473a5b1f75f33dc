from datetime import timedelta

from conftest import BASE_TIME, fetch_product
from storefront.services.product_state import (
    apply_offer_end,
    apply_offer_start,
    reset_products_on_offer_delete,
)
from storefront.utils import ensure_utc


START = BASE_TIME
END = BASE_TIME + timedelta(days=2)


def _ref(product_id, **overrides):
    ref = {"product": product_id, "offer_discount_type": 1, "offer_discount_amount": 15.0, "reset_discount": True}
    ref.update(overrides)
    return ref


def test_start_writes_override_and_window(db_session, product_factory):
    p = product_factory()
    report = apply_offer_start(db_session, [_ref(p.id)], start=START, end=END)

    assert report.applied == [p.id]
    stored = fetch_product(p.id)
    assert stored.discount_type == 1
    assert float(stored.discount_amount) == 15.0
    assert ensure_utc(stored.discount_start_date_time) == START
    assert ensure_utc(stored.discount_end_date_time) == END


def test_start_only_writes_present_override_fields(db_session, product_factory):
    p = product_factory(discount_type=2, discount_amount=50)
    apply_offer_start(db_session, [{"product": p.id, "offer_discount_type": 1}], start=START, end=END)

    stored = fetch_product(p.id)
    assert stored.discount_type == 1
    assert float(stored.discount_amount) == 50.0


def test_start_is_idempotent(db_session, product_factory):
    p = product_factory()
    apply_offer_start(db_session, [_ref(p.id)], start=START, end=END)
    first = fetch_product(p.id)
    apply_offer_start(db_session, [_ref(p.id)], start=START, end=END)
    second = fetch_product(p.id)

    assert (first.discount_type, first.discount_amount, first.discount_start_date_time) == (
        second.discount_type, second.discount_amount, second.discount_start_date_time
    )


def test_missing_product_does_not_block_the_rest(db_session, product_factory):
    p1 = product_factory()
    p2 = product_factory()
    report = apply_offer_start(db_session, [_ref(p1.id), _ref(987654), _ref(p2.id)], start=START, end=END)

    assert report.applied == [p1.id, p2.id]
    assert report.missing == [987654]
    assert report.ok
    assert fetch_product(p2.id).discount_type == 1


def test_invalid_reference_is_reported_as_failure(db_session, product_factory):
    p = product_factory()
    report = apply_offer_start(db_session, [{"product": "abc"}, _ref(p.id)])

    assert not report.ok
    assert report.failed[0]["product"] == "abc"
    assert report.applied == [p.id]


def test_end_clears_only_flagged_products(db_session, product_factory):
    kept = product_factory()
    cleared = product_factory()
    refs = [_ref(kept.id, reset_discount=False), _ref(cleared.id)]
    apply_offer_start(db_session, refs, start=START, end=END)

    report = apply_offer_end(db_session, refs)

    assert report.applied == [cleared.id]
    assert report.skipped == [kept.id]
    c = fetch_product(cleared.id)
    assert c.discount_type is None
    assert c.discount_amount is None
    assert c.discount_start_date_time is None
    assert c.discount_end_date_time is None
    k = fetch_product(kept.id)
    assert k.discount_type == 1
    assert k.discount_start_date_time is not None


def test_delete_reset_keeps_amounts_unless_asked(db_session, product_factory):
    p1 = product_factory()
    p2 = product_factory()
    apply_offer_start(db_session, [_ref(p1.id), _ref(p2.id)], start=START, end=END)

    reset_products_on_offer_delete(db_session, [_ref(p1.id)])
    reset_products_on_offer_delete(db_session, [_ref(p2.id)], clear_amounts=True)

    first = fetch_product(p1.id)
    assert first.discount_start_date_time is None and first.discount_end_date_time is None
    assert first.discount_type == 1
    second = fetch_product(p2.id)
    assert second.discount_type is None and second.discount_amount is None
