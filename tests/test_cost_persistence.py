import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import func, select

from app.models.cost import CostHistory
from app.modules.reporting.domain.persistence import CostHistoryStore, PredictionStore
from app.schemas.costs import CostRecord, DailyPrediction
from conftest import daily_records


@pytest.mark.asyncio
async def test_append_and_query_inclusive_range(db, organization):
    store = CostHistoryStore(db)
    result = await store.append(organization.id, daily_records([1, 2, 3, 4, 5]), source_dialect="AWS_COST_EXPLORER")
    await db.commit()

    assert result.inserted == 5
    assert result.failed == 0

    records = await store.query(organization.id, date(2026, 1, 2), date(2026, 1, 4))
    assert [r.date for r in records] == [date(2026, 1, 2), date(2026, 1, 3), date(2026, 1, 4)]
    assert [r.amount for r in records] == [Decimal("2"), Decimal("3"), Decimal("4")]


@pytest.mark.asyncio
async def test_query_is_scoped_to_organization(db, organization):
    from app.models.organization import Organization
    other = Organization(id=uuid4(), name="Other")
    db.add(other)
    await db.commit()

    store = CostHistoryStore(db)
    await store.append(organization.id, daily_records([10]))
    await store.append(other.id, daily_records([99]))
    await db.commit()

    records = await store.query(organization.id, date(2026, 1, 1), date(2026, 1, 1))
    assert [r.amount for r in records] == [Decimal("10")]


@pytest.mark.asyncio
async def test_query_group_by_service(db, organization):
    store = CostHistoryStore(db)
    await store.append(organization.id, daily_records([5, 5], service="S3") + daily_records([20, 20], service="EC2"))
    await db.commit()

    grouped = await store.query(organization.id, date(2026, 1, 1), date(2026, 1, 31), group_by="service")
    assert [(r.service_category, r.amount) for r in grouped] == [("EC2", Decimal("40")), ("S3", Decimal("10"))]


@pytest.mark.asyncio
async def test_rejected_row_does_not_abort_the_batch(db, organization):
    """A row the database refuses is counted as failed; the other rows still land."""
    good = daily_records([1, 2])
    bad = CostRecord.model_construct(
        date=date(2026, 1, 3),
        amount=Decimal("-1"),
        service_category="EC2",
        region=None,
        usage_type=None,
        usage_amount=None,
        usage_unit=None,
        resource_id=None,
        organization_id=None,
    )

    store = CostHistoryStore(db)
    result = await store.append(organization.id, [good[0], bad, good[1]])
    await db.commit()

    assert result.inserted == 2
    assert result.failed == 1
    count = (await db.execute(select(func.count(CostHistory.id)))).scalar()
    assert count == 2


@pytest.mark.asyncio
async def test_status(db, organization):
    store = CostHistoryStore(db)
    empty = await store.status(organization.id)
    assert empty["record_count"] == 0
    assert empty["oldest_date"] is None

    await store.append(organization.id, daily_records([1, 2, 3], service="EC2") + daily_records([4], service="S3"))
    await db.commit()

    status = await store.status(organization.id)
    assert status["record_count"] == 4
    assert status["oldest_date"] == date(2026, 1, 1)
    assert status["newest_date"] == date(2026, 1, 3)
    assert status["service_category_count"] == 2


@pytest.mark.asyncio
async def test_latest_batch_returns_newest_run(db, organization):
    store = PredictionStore(db)

    def run(amount):
        return [
            DailyPrediction(
                predicted_date=date(2026, 2, day),
                predicted_amount=amount,
                confidence_interval=1.5,
                model="MovingAverage"
            )
            for day in (1, 2)
        ]

    assert await store.latest_batch(organization.id) == []

    await store.save_batch(organization.id, run(10))
    await db.commit()
    await store.save_batch(organization.id, run(20))
    await db.commit()

    latest = await store.latest_batch(organization.id)
    assert [p.predicted_amount for p in latest] == [20, 20]
    assert [p.predicted_date for p in latest] == [date(2026, 2, 1), date(2026, 2, 2)]
    assert latest[0].model == "MovingAverage"
