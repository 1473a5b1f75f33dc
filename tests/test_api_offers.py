from datetime import timedelta

from conftest import fetch_product


def _payload(clock, title="Weekend Deals", start_in=timedelta(hours=1), end_in=timedelta(hours=6), products=None):
    return {
        "title": title,
        "description": "Two days only",
        "start_date_time": (clock() + start_in).isoformat(),
        "end_date_time": (clock() + end_in).isoformat(),
        "products": products or [],
    }


def _create_product(client, name="Kettle", **extra):
    r = client.post("/api/v1/products/", json={"name": name, "price": "49.90", **extra})
    assert r.status_code == 201, r.text
    return r.json()


def test_create_offer_and_inspect_jobs(client, clock, scheduler):
    product = _create_product(client)
    refs = [{"product": product["id"], "offer_discount_type": 1, "offer_discount_amount": 12, "reset_discount": True}]
    r = client.post("/api/v1/offers/", json=_payload(clock, products=refs))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["slug"] == "weekend-deals"
    assert body["products"][0]["product"] == product["id"]

    jobs = client.get("/api/v1/jobs/", params={"offer_id": body["id"]})
    assert jobs.status_code == 200
    data = jobs.json()
    assert sorted(rec["name"] for rec in data["records"]) == sorted([scheduler.start_job_name, scheduler.end_job_name])
    assert data["timers"]["armed"] == 2
    assert data["recent_fires"] == []


def test_create_expired_offer_returns_400(client, clock):
    r = client.post(
        "/api/v1/offers/",
        json=_payload(clock, start_in=timedelta(hours=-3), end_in=timedelta(hours=-1)),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Data can not be added. Expire date is wrong"
    assert client.get("/api/v1/offers/").json() == []


def test_naive_datetimes_are_rejected(client, clock):
    payload = _payload(clock)
    payload["start_date_time"] = "2026-03-01T10:00:00"
    r = client.post("/api/v1/offers/", json=payload)
    assert r.status_code == 422
    assert r.json()["success"] is False


def test_duplicate_title_conflicts(client, clock):
    assert client.post("/api/v1/offers/", json=_payload(clock)).status_code == 201
    r = client.post("/api/v1/offers/", json=_payload(clock))
    assert r.status_code == 409
    assert r.json()["message"] == "Slug Must be Unique"


def test_get_update_and_delete_offer(client, clock, scheduler):
    product = _create_product(client)
    refs = [{"product": product["id"], "offer_discount_type": 2, "offer_discount_amount": 5, "reset_discount": True}]
    created = client.post("/api/v1/offers/", json=_payload(clock, products=refs)).json()
    offer_id = created["id"]

    got = client.get(f"/api/v1/offers/{offer_id}")
    assert got.status_code == 200
    assert got.json()["title"] == "Weekend Deals"

    # Move the start into the past: the discount is applied during the request
    update = _payload(clock, start_in=timedelta(minutes=-10), products=refs)
    r = client.put(f"/api/v1/offers/{offer_id}", json=update)
    assert r.status_code == 200, r.text
    assert fetch_product(product["id"]).discount_type == 2
    assert scheduler.queue.depth() == 1

    r = client.delete(f"/api/v1/offers/{offer_id}", params={"check_usage": True})
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert client.get(f"/api/v1/offers/{offer_id}").status_code == 404
    assert fetch_product(product["id"]).discount_type is None
    assert scheduler.queue.depth() == 0


def test_update_to_taken_slug_returns_409(client, clock, scheduler):
    first = client.post("/api/v1/offers/", json=_payload(clock, title="Weekend Deals")).json()
    client.post("/api/v1/offers/", json=_payload(clock, title="Night Owl"))

    update = dict(_payload(clock, title="Weekend Deals"), slug="night-owl")
    r = client.put(f"/api/v1/offers/{first['id']}", json=update)
    assert r.status_code == 409
    assert r.json()["message"] == "Slug Must be Unique"
    assert scheduler.queue.depth() == 4


def test_missing_offer_returns_404(client, clock):
    assert client.get("/api/v1/offers/12345").status_code == 404
    assert client.put("/api/v1/offers/12345", json=_payload(clock)).status_code == 404
    assert client.delete("/api/v1/offers/12345").status_code == 404


def test_bulk_delete_endpoint(client, clock):
    ids = [client.post("/api/v1/offers/", json=_payload(clock, title=f"Deal {i}")).json()["id"] for i in range(3)]
    r = client.post("/api/v1/offers/bulk-delete", json={"ids": ids[:2]})
    assert r.status_code == 200
    assert r.json()["data"]["deleted"] == 2
    remaining = client.get("/api/v1/offers/")
    assert [o["id"] for o in remaining.json()] == [ids[2]]
    assert remaining.headers["X-Total-Count"] == "1"


def test_product_endpoints(client):
    created = _create_product(client, slug="kettle")
    assert created["discount_type"] is None
    assert client.get(f"/api/v1/products/{created['id']}").json()["name"] == "Kettle"
    assert client.post("/api/v1/products/", json={"name": "Other", "slug": "kettle"}).status_code == 409
    assert client.get("/api/v1/products/999").status_code == 404
    assert len(client.get("/api/v1/products/").json()) == 1


def test_health_endpoints(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"
    assert r.json()["job_store_backend"] == "sql"

    detailed = client.get("/health/detailed").json()
    assert detailed["checks"]["timers"]["armed"] == 0
    assert detailed["checks"]["timers"]["reconciled"] is False


def test_dead_letters_endpoint_reads_the_running_scheduler(client):
    r = client.get("/api/v1/jobs/dead-letters")
    assert r.status_code == 200
    assert r.json() == []
