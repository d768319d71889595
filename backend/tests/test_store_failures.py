"""Store errors in the middle of a submission: the limiter fails open, the reference falls back,
and the citizen still gets 201 because the request transaction stays usable."""
import pytest
from httpx import AsyncClient
from sqlalchemy import event, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from aje_api.db.models import Contact, RateLimitTracking, ReferenceCounter

CONTACT = {
    "nom": "Idriss Moussa",
    "email": "i.moussa@example.td",
    "sujet": "Horaires",
    "message": "Quels sont vos horaires d'ouverture au public ?",
}


def _insert_fails(mapper, connection, target):
    raise OperationalError("INSERT", {}, Exception("disk I/O error"))


def _tracking_read_fails(orm_execute_state):
    if orm_execute_state.is_select and any(
        m.class_ is RateLimitTracking for m in orm_execute_state.all_mappers
    ):
        raise OperationalError("SELECT", {}, Exception("connection reset"))


@pytest.fixture
def failing_insert():
    """failing_insert(Model): every ORM insert of Model raises until teardown."""
    installed = []

    def _install(model):
        event.listen(model, "before_insert", _insert_fails)
        installed.append(model)

    yield _install
    for model in installed:
        event.remove(model, "before_insert", _insert_fails)


@pytest.fixture
def failing_tracking_reads():
    event.listen(Session, "do_orm_execute", _tracking_read_fails)
    yield
    event.remove(Session, "do_orm_execute", _tracking_read_fails)


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_tracking_write_failure_still_accepts_submission(
    committing_client: AsyncClient, db: AsyncSession, rate_limiting_on, failing_insert
):
    failing_insert(RateLimitTracking)
    r = await committing_client.post("/api/contact", json=CONTACT)
    assert r.status_code == 201, r.text
    assert r.json()["reference_source"] == "generator"
    stored = (await db.execute(select(Contact))).scalar_one()
    assert stored.numero_reference == r.json()["reference"]
    assert await _count(db, RateLimitTracking) == 0


@pytest.mark.asyncio
async def test_tracking_read_failure_still_accepts_submission(
    committing_client: AsyncClient, db: AsyncSession, rate_limiting_on, failing_tracking_reads
):
    r = await committing_client.post("/api/contact", json=CONTACT)
    assert r.status_code == 201, r.text
    # Fail-open reports the full quota.
    assert r.headers["X-RateLimit-Remaining"] == "5"
    stored = (await db.execute(select(Contact))).scalar_one()
    assert stored.numero_reference == r.json()["reference"]


@pytest.mark.asyncio
async def test_counter_insert_failure_stores_fallback_reference(
    committing_client: AsyncClient, db: AsyncSession, failing_insert
):
    failing_insert(ReferenceCounter)
    r = await committing_client.post("/api/contact", json=CONTACT)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["reference_source"] == "fallback"
    assert body["reference"].startswith("CT-")
    stored = (await db.execute(select(Contact))).scalar_one()
    assert stored.numero_reference == body["reference"]
    assert await _count(db, ReferenceCounter) == 0


@pytest.mark.asyncio
async def test_limiter_still_counts_after_commit(committing_client: AsyncClient, db: AsyncSession, rate_limiting_on):
    for _ in range(2):
        r = await committing_client.post("/api/contact", json=CONTACT)
        assert r.status_code == 201, r.text
    assert r.headers["X-RateLimit-Remaining"] == "3"
    row = (await db.execute(select(RateLimitTracking))).scalar_one()
    assert row.request_count == 2
