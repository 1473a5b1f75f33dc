import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure project root on sys.path so 'storefront' resolves without an install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from storefront.main import app  # type: ignore
from storefront.database import Base  # type: ignore
from storefront.api import deps  # type: ignore
"""Pytest fixtures and factories.

All model modules must be imported before Base.metadata.create_all() so every
table exists in the test database.
"""
from storefront.models.db import Product, Offer, ScheduledJob  # noqa: F401
from storefront.models.schemas.offers import OfferCreate
from storefront.jobs.job_store import SqlJobRecordStore
from storefront.jobs.scheduler import OfferScheduler
from storefront.utils.backoff import BackoffPolicy

# File-based SQLite so the scheduler worker thread and the test thread share data
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_storefront.db"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed starting instant for the controllable clock
BASE_TIME = datetime(2026, 3, 1, 6, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock the scheduler reads; tests move it forward explicitly."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    try:
        os.remove("test_storefront.db")
    except OSError:
        pass


@pytest.fixture(autouse=True)
def _isolate_test_state(create_test_db):  # type: ignore[unused-argument]
    """Empty every table around each test."""
    def _clear():
        with engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(table.delete())

    _clear()
    yield
    _clear()


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# Override dependency
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

app.dependency_overrides[deps.get_db] = _override_get_db


@pytest.fixture()
def clock():
    return FakeClock(BASE_TIME)


@pytest.fixture()
def job_store():
    return SqlJobRecordStore(TestingSessionLocal)


@pytest.fixture()
def make_scheduler(job_store, clock):
    """Build schedulers sharing the test database; a second call simulates a restart."""
    built: list[OfferScheduler] = []

    def _make(**kwargs) -> OfferScheduler:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("backoff", BackoffPolicy(jitter_pct=0.0))
        scheduler = OfferScheduler(kwargs.pop("store", job_store), TestingSessionLocal, **kwargs)
        built.append(scheduler)
        return scheduler

    yield _make
    for scheduler in built:
        scheduler.queue.shutdown()


@pytest.fixture()
def scheduler(make_scheduler):
    s = make_scheduler()
    app.state.offer_scheduler = s  # type: ignore[attr-defined]
    yield s
    app.state.offer_scheduler = None  # type: ignore[attr-defined]


@pytest.fixture()
def client(scheduler):
    return TestClient(app)


# ---------- Data factory helpers ----------

@pytest.fixture()
def product_factory(db_session):
    counter = {"n": 0}

    def _create(name: str | None = None, **fields):
        counter["n"] += 1
        p = Product(name=name or f"Product {counter['n']}", **fields)
        db_session.add(p)
        db_session.commit()
        db_session.refresh(p)
        return p
    return _create


@pytest.fixture()
def offer_payload(clock):
    """Build an OfferCreate whose window is relative to the fake clock."""
    def _build(
        title: str = "Eid Flash Sale",
        *,
        start_in: timedelta = timedelta(hours=1),
        end_in: timedelta = timedelta(hours=5),
        products: list[dict] | None = None,
    ) -> OfferCreate:
        return OfferCreate(
            title=title,
            start_date_time=clock() + start_in,
            end_date_time=clock() + end_in,
            products=products or [],
        )
    return _build


def fetch_product(product_id: int) -> Product | None:
    """Read a product through a fresh session so writes from other sessions are visible."""
    with TestingSessionLocal() as session:
        return session.get(Product, product_id)


def count_rows(model) -> int:
    with TestingSessionLocal() as session:
        return session.query(model).count()
