"""
Cost Forecast Service
Orchestrates billing import, historical reporting, anomaly scans and forecasting
for one organization at a time.
"""
import time
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple, Union
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.organization import Organization
from app.modules.reporting.domain import aggregator
from app.modules.reporting.domain.anomalies import detect_anomalies
from app.modules.reporting.domain.forecaster import (
    ForecastModel,
    daily_totals,
    forecast,
    monthly_rollup,
    weekly_rollup,
)
from app.modules.reporting.domain.normalizer import BillingDialect, BillingNormalizer, read_csv
from app.modules.reporting.domain.persistence import CostHistoryStore, PredictionStore
from app.schemas.costs import (
    BillingDataItem,
    CostAnomaly,
    CostRecord,
    DailyPrediction,
    ForecastResult,
    HistoricalSummary,
    ImportResult,
    ImportStatus,
)
from app.shared.core.config import get_settings
from app.shared.core.exceptions import (
    InsufficientHistoryError,
    NoValidRowsError,
    ResourceNotFoundError,
    ValidationError,
)
from app.shared.core.logging import audit_log
from app.shared.core.ops_metrics import BILLING_ROWS_TOTAL, FORECAST_LATENCY, FORECASTS_TOTAL

logger = structlog.get_logger()


class CostForecastService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()
        self.history = CostHistoryStore(db)
        self.predictions = PredictionStore(db)

    async def _lock_organization(self, organization_id: UUID) -> Organization:
        """
        Row lock on the organization. Serializes concurrent imports for one
        organization; a no-op on SQLite.
        """
        result = await self.db.execute(
            select(Organization).where(Organization.id == organization_id).with_for_update()
        )
        organization = result.scalar_one_or_none()
        if organization is None:
            raise ResourceNotFoundError(f"Organization {organization_id} not found")
        return organization

    def _resolve_range(self, start: Optional[date], end: Optional[date]) -> Tuple[date, date]:
        end = end or date.today()
        start = start or end - timedelta(days=self.settings.HISTORY_DEFAULT_RANGE_DAYS)
        if start > end:
            raise ValidationError(
                "start_date must not be after end_date",
                details={"start_date": start.isoformat(), "end_date": end.isoformat()}
            )
        span = (end - start).days + 1
        if span > self.settings.HISTORY_MAX_RANGE_DAYS:
            raise ValidationError(
                f"Date range cannot exceed {self.settings.HISTORY_MAX_RANGE_DAYS} days",
                details={"days": span}
            )
        return start, end

    # --- Forecasting ---

    async def predict_costs(
        self,
        organization_id: UUID,
        horizon_days: Optional[int] = None,
        model: Union[str, ForecastModel] = ForecastModel.LINEAR,
        resource_id: Optional[UUID] = None,
        as_of: Optional[date] = None
    ) -> ForecastResult:
        """
        Forecasts daily cost for the next `horizon_days` and persists the run
        as a new prediction batch.
        """
        selected = ForecastModel.parse(model)
        horizon = horizon_days if horizon_days is not None else self.settings.FORECAST_DEFAULT_HORIZON_DAYS
        if horizon <= 0 or horizon > self.settings.FORECAST_MAX_HORIZON_DAYS:
            raise ValidationError(
                f"days must be between 1 and {self.settings.FORECAST_MAX_HORIZON_DAYS}",
                details={"days": horizon}
            )

        started = time.perf_counter()
        as_of = as_of or date.today()
        history = await self.history.query(
            organization_id,
            as_of - timedelta(days=self.settings.FORECAST_LOOKBACK_DAYS),
            as_of,
            resource_id=resource_id
        )

        points = len(daily_totals(history))
        if points < self.settings.FORECAST_MIN_HISTORY_POINTS:
            logger.warning(
                "insufficient_data_for_forecast",
                organization_id=str(organization_id),
                points=points
            )
            raise InsufficientHistoryError(required=self.settings.FORECAST_MIN_HISTORY_POINTS, available=points)

        daily = forecast(selected, history, horizon, as_of=as_of)
        await self.predictions.save_batch(organization_id, daily, resource_id=resource_id)
        await self.db.commit()

        FORECASTS_TOTAL.labels(model=selected.tag).inc()
        FORECAST_LATENCY.labels(model=selected.tag).observe(time.perf_counter() - started)

        return ForecastResult(
            model=selected.tag,
            history_points=points,
            daily_predictions=daily,
            weekly_predictions=weekly_rollup(daily),
            monthly_prediction=monthly_rollup(daily)
        )

    async def latest_predictions(self, organization_id: UUID) -> List[DailyPrediction]:
        return await self.predictions.latest_batch(organization_id)

    # --- Billing import ---

    async def _store(
        self,
        organization_id: UUID,
        records: Sequence[CostRecord],
        dropped: int,
        source: str
    ) -> ImportResult:
        if not records:
            BILLING_ROWS_TOTAL.labels(dialect=source, outcome="dropped").inc(dropped)
            raise NoValidRowsError(details={"dropped_rows": dropped})

        await self._lock_organization(organization_id)
        appended = await self.history.append(
            organization_id,
            records,
            source_dialect=source if source != "records" else None
        )
        await self.db.commit()

        BILLING_ROWS_TOTAL.labels(dialect=source, outcome="accepted").inc(appended.inserted)
        if dropped:
            BILLING_ROWS_TOTAL.labels(dialect=source, outcome="dropped").inc(dropped)
        if appended.failed:
            BILLING_ROWS_TOTAL.labels(dialect=source, outcome="failed").inc(appended.failed)

        audit_log(
            "billing_data_imported",
            str(organization_id),
            {"source": source, "imported": appended.inserted, "dropped": dropped, "failed": appended.failed}
        )

        return ImportResult(
            imported_count=appended.inserted,
            accepted_rows=len(records),
            dropped_rows=dropped,
            failed_rows=appended.failed,
            dialect=source if source != "records" else None,
            message=f"Successfully imported {appended.inserted} billing records"
        )

    async def import_billing_file(
        self,
        organization_id: UUID,
        dialect: Union[str, BillingDialect],
        raw: Union[bytes, str]
    ) -> ImportResult:
        """
        Normalizes and stores a provider billing export.
        Malformed rows are dropped and counted; NoValidRowsError when none survive.
        """
        normalizer = BillingNormalizer(dialect)
        rows = read_csv(raw)
        result = normalizer.normalize(rows, organization_id)
        return await self._store(organization_id, result.records, result.dropped, normalizer.dialect.value)

    async def import_records(
        self,
        organization_id: UUID,
        items: Sequence[BillingDataItem]
    ) -> ImportResult:
        """Stores billing entries that were already parsed by the caller."""
        records = [
            CostRecord(
                date=item.date,
                amount=item.amount,
                service_category=item.service_category or "Unknown",
                region=item.region,
                usage_type=item.usage_type,
                usage_amount=item.usage_amount,
                usage_unit=item.usage_unit,
                resource_id=item.resource_id,
                organization_id=organization_id,
            )
            for item in items
        ]
        return await self._store(organization_id, records, 0, "records")

    async def import_status(self, organization_id: UUID) -> ImportStatus:
        return ImportStatus(**await self.history.status(organization_id))

    # --- Reporting ---

    async def get_historical_summary(
        self,
        organization_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
        group_by: str = "day"
    ) -> HistoricalSummary:
        if group_by not in aggregator.GROUP_BY_OPTIONS:
            raise ValidationError(
                f"Unsupported group_by: {group_by}",
                details={"allowed": list(aggregator.GROUP_BY_OPTIONS)}
            )
        start, end = self._resolve_range(start, end)
        records = await self.history.query(organization_id, start, end)

        period = group_by if group_by in aggregator.TIME_PERIODS else "day"
        return HistoricalSummary(
            time_series=aggregator.group_by_time(records, period),
            category_breakdown=aggregator.group_by_category(records, "service"),
            region_breakdown=aggregator.group_by_category(records, "region"),
            totals=aggregator.summarize(records, start, end, period)
        )

    async def get_anomalies(
        self,
        organization_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> List[CostAnomaly]:
        start, end = self._resolve_range(start, end)
        records = await self.history.query(organization_id, start, end)
        return detect_anomalies(
            records,
            baseline_days=self.settings.ANOMALY_BASELINE_DAYS,
            threshold_percent=self.settings.ANOMALY_THRESHOLD_PERCENT
        )
