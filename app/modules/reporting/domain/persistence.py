"""
Cost History and Prediction Stores

Row-level access to cost_history and cost_predictions. Stores never commit;
the calling service owns the transaction.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID, uuid4

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.cost import CostHistory, CostPrediction
from app.modules.reporting.domain.aggregator import fold
from app.schemas.costs import CostRecord, DailyPrediction

logger = structlog.get_logger()


@dataclass
class AppendResult:
    inserted: int = 0
    failed: int = 0


def _to_record(row: CostHistory) -> CostRecord:
    return CostRecord(
        date=row.date,
        amount=row.amount,
        service_category=row.service_category or "Unknown",
        region=row.region,
        usage_type=row.usage_type,
        usage_amount=row.usage_amount,
        usage_unit=row.usage_unit,
        resource_id=row.resource_id,
        organization_id=row.organization_id,
    )


class CostHistoryStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        organization_id: UUID,
        records: Sequence[CostRecord],
        source_dialect: Optional[str] = None
    ) -> AppendResult:
        """
        Inserts records one by one, each inside its own savepoint.
        A row the database rejects is logged and skipped; the rest still land.
        """
        result = AppendResult()
        for index, record in enumerate(records):
            try:
                async with self.db.begin_nested():
                    self.db.add(CostHistory(
                        organization_id=organization_id,
                        resource_id=record.resource_id,
                        date=record.date,
                        amount=record.amount,
                        service_category=record.service_category or "Unknown",
                        region=record.region,
                        usage_type=record.usage_type,
                        usage_amount=record.usage_amount,
                        usage_unit=record.usage_unit,
                        source_dialect=source_dialect,
                    ))
                result.inserted += 1
            except SQLAlchemyError as e:
                result.failed += 1
                logger.warning(
                    "cost_history_row_rejected",
                    organization_id=str(organization_id),
                    row=index,
                    error=str(e.__class__.__name__)
                )

        logger.info(
            "cost_history_appended",
            organization_id=str(organization_id),
            inserted=result.inserted,
            failed=result.failed
        )
        return result

    async def query(
        self,
        organization_id: UUID,
        start: date,
        end: date,
        group_by: Optional[str] = None,
        resource_id: Optional[UUID] = None
    ) -> List[CostRecord]:
        """Records with start <= date <= end, optionally folded to one record per bucket."""
        stmt = (
            select(CostHistory)
            .where(
                CostHistory.organization_id == organization_id,
                CostHistory.date >= start,
                CostHistory.date <= end
            )
            .order_by(CostHistory.date, CostHistory.created_at)
        )
        if resource_id is not None:
            stmt = stmt.where(CostHistory.resource_id == resource_id)

        rows = (await self.db.execute(stmt)).scalars().all()
        records = [_to_record(r) for r in rows]
        if group_by:
            return fold(records, group_by)
        return records

    async def status(self, organization_id: UUID) -> Dict[str, Any]:
        stmt = select(
            func.count(CostHistory.id).label("record_count"),
            func.min(CostHistory.date).label("oldest_date"),
            func.max(CostHistory.date).label("newest_date"),
            func.count(func.distinct(CostHistory.service_category)).label("service_category_count"),
        ).where(CostHistory.organization_id == organization_id)

        row = (await self.db.execute(stmt)).one()
        return {
            "record_count": row.record_count or 0,
            "oldest_date": row.oldest_date,
            "newest_date": row.newest_date,
            "service_category_count": row.service_category_count or 0,
        }


class PredictionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def save_batch(
        self,
        organization_id: UUID,
        predictions: Sequence[DailyPrediction],
        resource_id: Optional[UUID] = None
    ) -> UUID:
        """Writes one forecast run as a new batch. Older batches are left untouched."""
        batch_id = uuid4()
        self.db.add_all([
            CostPrediction(
                organization_id=organization_id,
                resource_id=resource_id,
                batch_id=batch_id,
                predicted_date=p.predicted_date,
                predicted_amount=p.predicted_amount,
                confidence_interval=p.confidence_interval,
                model=p.model,
                prediction_period=p.prediction_period,
            )
            for p in predictions
        ])
        await self.db.flush()
        return batch_id

    async def latest_batch(self, organization_id: UUID) -> List[DailyPrediction]:
        latest = (
            select(CostPrediction.batch_id)
            .where(CostPrediction.organization_id == organization_id)
            .order_by(CostPrediction.created_at.desc())
            .limit(1)
        )
        batch_id = (await self.db.execute(latest)).scalar_one_or_none()
        if batch_id is None:
            return []

        stmt = (
            select(CostPrediction)
            .where(
                CostPrediction.organization_id == organization_id,
                CostPrediction.batch_id == batch_id
            )
            .order_by(CostPrediction.predicted_date)
        )
        rows = (await self.db.execute(stmt)).scalars().all()
        return [
            DailyPrediction(
                predicted_date=r.predicted_date,
                predicted_amount=float(r.predicted_amount),
                confidence_interval=float(r.confidence_interval),
                model=r.model,
                prediction_period=r.prediction_period,
            )
            for r in rows
        ]
