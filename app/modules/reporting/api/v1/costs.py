"""
Cost history, forecasting and billing import endpoints.
"""
from datetime import date
from typing import Annotated, List, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.reporting.domain.service import CostForecastService
from app.schemas.costs import (
    BillingRecordsImportRequest,
    CostAnomaly,
    DailyPrediction,
    ForecastRequest,
    ForecastResult,
    HistoricalSummary,
    ImportResult,
    ImportStatus,
)
from app.shared.core.auth import require_organization
from app.shared.core.config import get_settings
from app.shared.core.exceptions import ValidationError
from app.shared.core.rate_limit import analysis_limit, import_limit, standard_limit
from app.shared.db.session import get_db

router = APIRouter(tags=["Costs"])
logger = structlog.get_logger()

CSV_CONTENT_TYPES = {"text/csv", "application/csv", "application/vnd.ms-excel"}


@router.get("/history", response_model=HistoricalSummary)
@standard_limit
async def get_cost_history(
    request: Request,
    organization_id: Annotated[UUID, Depends(require_organization)],
    db: AsyncSession = Depends(get_db),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    group_by: str = Query(default="day", description="day, week, month, service or region"),
):
    """
    Historical costs as a time series plus service and region breakdowns.
    Defaults to the last 90 days.
    """
    service = CostForecastService(db)
    return await service.get_historical_summary(organization_id, start_date, end_date, group_by)


@router.get("/anomalies", response_model=List[CostAnomaly])
@analysis_limit
async def get_cost_anomalies(
    request: Request,
    organization_id: Annotated[UUID, Depends(require_organization)],
    db: AsyncSession = Depends(get_db),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
):
    service = CostForecastService(db)
    return await service.get_anomalies(organization_id, start_date, end_date)


@router.post("/predict", response_model=ForecastResult)
@analysis_limit
async def predict_costs(
    request: Request,
    body: ForecastRequest,
    organization_id: Annotated[UUID, Depends(require_organization)],
    db: AsyncSession = Depends(get_db),
):
    """
    Forecasts daily costs for the next `days` days with the selected model
    (linear, movingAverage, weightedMovingAverage).
    """
    logger.info("forecast_requested", model=body.model, days=body.days)
    service = CostForecastService(db)
    return await service.predict_costs(
        organization_id,
        horizon_days=body.days,
        model=body.model,
        resource_id=body.resource_id
    )


@router.get("/predictions/latest", response_model=List[DailyPrediction])
@standard_limit
async def get_latest_predictions(
    request: Request,
    organization_id: Annotated[UUID, Depends(require_organization)],
    db: AsyncSession = Depends(get_db),
):
    service = CostForecastService(db)
    return await service.latest_predictions(organization_id)


@router.post("/import", response_model=ImportResult)
@import_limit
async def import_billing_file(
    request: Request,
    organization_id: Annotated[UUID, Depends(require_organization)],
    file: UploadFile = File(...),
    dialect: str = Form(..., description="AWS_COST_EXPLORER, GCP_BILLING_EXPORT or AZURE_COST_MANAGEMENT"),
    db: AsyncSession = Depends(get_db),
):
    """
    Imports a provider billing export (CSV only).
    Malformed rows are skipped and reported in `dropped_rows`.
    """
    settings = get_settings()
    filename = (file.filename or "").lower()
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    if not filename.endswith(".csv") and content_type not in CSV_CONTENT_TYPES:
        raise ValidationError(
            "Only CSV files are allowed",
            code="unsupported_file_type",
            details={"content_type": content_type or None}
        )

    content = await file.read(settings.BILLING_IMPORT_MAX_BYTES + 1)
    if len(content) > settings.BILLING_IMPORT_MAX_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"File exceeds the {settings.BILLING_IMPORT_MAX_BYTES} byte limit"
        )

    service = CostForecastService(db)
    return await service.import_billing_file(organization_id, dialect, content)


@router.post("/import/records", response_model=ImportResult)
@import_limit
async def import_billing_records(
    request: Request,
    body: BillingRecordsImportRequest,
    organization_id: Annotated[UUID, Depends(require_organization)],
    db: AsyncSession = Depends(get_db),
):
    service = CostForecastService(db)
    return await service.import_records(organization_id, body.billing_data)


@router.get("/import/status", response_model=ImportStatus)
@standard_limit
async def get_import_status(
    request: Request,
    organization_id: Annotated[UUID, Depends(require_organization)],
    db: AsyncSession = Depends(get_db),
):
    service = CostForecastService(db)
    return await service.import_status(organization_id)
