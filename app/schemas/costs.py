"""
Cost, Forecast and Reporting Schemas - Normalization Layer
"""

import datetime as dt
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field, field_validator


class CostRecord(BaseModel):
    """Normalized cost entry for one calendar day and dimension."""
    date: dt.date = Field(..., description="Calendar day of the usage")
    amount: Decimal = Field(..., ge=0, description="Cost amount in the organization's currency")
    service_category: str = "Unknown"
    region: Optional[str] = None
    usage_type: Optional[str] = None
    usage_amount: Optional[Decimal] = None
    usage_unit: Optional[str] = None
    resource_id: Optional[UUID] = None
    organization_id: Optional[UUID] = None


class BillingDataItem(BaseModel):
    """One pre-parsed billing entry submitted as JSON."""
    date: dt.date
    amount: Decimal = Field(..., ge=0)
    service_category: Optional[str] = None
    region: Optional[str] = None
    usage_type: Optional[str] = None
    usage_amount: Optional[Decimal] = None
    usage_unit: Optional[str] = None
    resource_id: Optional[UUID] = None


class BillingRecordsImportRequest(BaseModel):
    provider: Optional[str] = None
    billing_data: List[BillingDataItem] = Field(..., min_length=1)


class ImportResult(BaseModel):
    """Outcome of one import. Partial success is reported explicitly."""
    imported_count: int
    accepted_rows: int
    dropped_rows: int = 0
    failed_rows: int = 0
    dialect: Optional[str] = None
    message: str = ""


class ImportStatus(BaseModel):
    record_count: int
    oldest_date: Optional[dt.date] = None
    newest_date: Optional[dt.date] = None
    service_category_count: int = 0


class DailyPrediction(BaseModel):
    predicted_date: dt.date
    predicted_amount: float = Field(..., ge=0)
    confidence_interval: float = Field(..., ge=0)
    model: str
    prediction_period: str = "daily"


class RollupPrediction(BaseModel):
    """Time-bucketed sum of daily predictions (weekly or monthly)."""
    period: str
    start_date: dt.date
    end_date: dt.date
    predicted_amount: float = Field(..., ge=0)
    confidence_interval: float = Field(..., ge=0)
    model: str
    prediction_period: str


class ForecastRequest(BaseModel):
    days: int = Field(30, gt=0)
    model: str = "linear"
    resource_id: Optional[UUID] = None


class ForecastResult(BaseModel):
    model: str
    history_points: int
    daily_predictions: List[DailyPrediction]
    weekly_predictions: List[RollupPrediction]
    monthly_prediction: RollupPrediction


class TimeBucket(BaseModel):
    period_start: dt.date
    total_amount: Decimal
    record_count: int


class CategoryShare(BaseModel):
    key: str
    total_amount: Decimal
    percentage: float


class CostTotals(BaseModel):
    total_cost: Decimal
    average_daily_cost: Decimal
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    period: str = "day"


class HistoricalSummary(BaseModel):
    time_series: List[TimeBucket]
    category_breakdown: List[CategoryShare]
    region_breakdown: List[CategoryShare]
    totals: CostTotals


class CostAnomaly(BaseModel):
    date: dt.date
    anomaly_type: str  # spike, drop
    previous_cost: float
    current_cost: float
    percentage: float
    severity: str  # critical, high, medium, low

    @field_validator("previous_cost", "current_cost")
    @classmethod
    def _round_cost(cls, v: float) -> float:
        return round(v, 4)
