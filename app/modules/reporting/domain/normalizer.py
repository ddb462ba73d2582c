"""
Billing Normalizer

Turns provider billing exports (AWS Cost Explorer, GCP Billing Export,
Azure Cost Management) into canonical CostRecords.

The three dialects share one parse skeleton; they differ only in their
column-alias tables and date formats, which live in DIALECTS below.
Exports are loaded into a string-typed DataFrame and coerced column-wise.
Malformed rows are dropped and counted, never raised. Only a structurally
unreadable file raises.
"""

import io
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from uuid import UUID

import numpy as np
import pandas as pd
import structlog

from app.schemas.costs import CostRecord
from app.shared.core.exceptions import BillingFileError, UnknownDialectError

logger = structlog.get_logger()

UNKNOWN_SERVICE = "Unknown"
# Rows pandas could not split against the header (too many fields)
MALFORMED_LINES_ATTR = "malformed_lines"


class BillingDialect(str, Enum):
    AWS_COST_EXPLORER = "AWS_COST_EXPLORER"
    GCP_BILLING_EXPORT = "GCP_BILLING_EXPORT"
    AZURE_COST_MANAGEMENT = "AZURE_COST_MANAGEMENT"

    @classmethod
    def parse(cls, value: Union[str, "BillingDialect"]) -> "BillingDialect":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise UnknownDialectError(str(value))


@dataclass(frozen=True)
class DialectConfig:
    """Column aliases (first non-empty wins) and ordered date formats for one export layout."""
    dialect: BillingDialect
    date_columns: Tuple[str, ...]
    service_columns: Tuple[str, ...]
    amount_columns: Tuple[str, ...]
    region_columns: Tuple[str, ...]
    resource_columns: Tuple[str, ...]
    date_formats: Tuple[str, ...]
    usage_type_columns: Tuple[str, ...] = ()
    usage_amount_columns: Tuple[str, ...] = ()
    usage_unit_columns: Tuple[str, ...] = ()
    # "2023-01-01 00:00:00" -> "2023-01-01"
    truncate_timestamp: bool = False


DIALECTS: Dict[BillingDialect, DialectConfig] = {
    BillingDialect.AWS_COST_EXPLORER: DialectConfig(
        dialect=BillingDialect.AWS_COST_EXPLORER,
        date_columns=("Time Period", "time_period", "Date"),
        service_columns=("Service", "service", "ServiceName"),
        amount_columns=("Amount", "amount", "Cost"),
        region_columns=("Region", "region", "Location"),
        resource_columns=("Resource", "resource", "ResourceId"),
        usage_type_columns=("Usage Type", "UsageType", "usage_type"),
        usage_amount_columns=("Usage Quantity", "UsageQuantity", "usage_quantity"),
        # "Unit" in Cost Explorer exports is the currency, not a usage unit
        usage_unit_columns=("Usage Unit", "UsageUnit", "usage_unit"),
        date_formats=("%Y-%m-%d",),
    ),
    BillingDialect.GCP_BILLING_EXPORT: DialectConfig(
        dialect=BillingDialect.GCP_BILLING_EXPORT,
        date_columns=("Start Time", "start_time", "Usage Start Date"),
        service_columns=("Service Description", "service_description", "Service"),
        amount_columns=("Cost", "cost", "Amount"),
        region_columns=("Location", "location", "Region"),
        resource_columns=("Resource name", "resource_name", "Resource"),
        usage_type_columns=("SKU Description", "sku_description"),
        usage_amount_columns=("Usage Amount", "usage_amount"),
        usage_unit_columns=("Usage Unit", "usage_unit"),
        date_formats=("%Y-%m-%d",),
        truncate_timestamp=True,
    ),
    BillingDialect.AZURE_COST_MANAGEMENT: DialectConfig(
        dialect=BillingDialect.AZURE_COST_MANAGEMENT,
        date_columns=("Date", "date", "UsageDate"),
        service_columns=("ServiceName", "serviceName", "Service Name"),
        amount_columns=("PreTaxCost", "preTaxCost", "Cost"),
        region_columns=("ResourceLocation", "resourceLocation", "Location"),
        resource_columns=("ResourceId", "resourceId", "Resource ID"),
        usage_type_columns=("MeterCategory", "meterCategory"),
        usage_amount_columns=("UsageQuantity", "usageQuantity", "Quantity"),
        usage_unit_columns=("UnitOfMeasure", "unitOfMeasure"),
        date_formats=("%m/%d/%Y", "%Y-%m-%d"),
    ),
}


@dataclass
class NormalizationResult:
    records: List[CostRecord] = field(default_factory=list)
    dropped: int = 0

    @property
    def accepted(self) -> int:
        return len(self.records)


def _header_key(name: Any) -> str:
    return "".join(ch for ch in str(name).lower() if ch.isalnum())


def _as_frame(rows: Union[pd.DataFrame, Iterable[Mapping[str, Any]]]) -> pd.DataFrame:
    frame = rows if isinstance(rows, pd.DataFrame) else pd.DataFrame(list(rows))
    if frame.columns.empty:
        return frame
    return frame.fillna("").astype(str).apply(lambda col: col.str.strip())


def _value(series: pd.Series, idx) -> Optional[str]:
    value = series.at[idx]
    return None if pd.isna(value) else value


class BillingNormalizer:
    """One parameterized normalizer; behaviour comes entirely from the DialectConfig."""

    def __init__(self, dialect: Union[str, BillingDialect]):
        self.dialect = BillingDialect.parse(dialect)
        self.config = DIALECTS[self.dialect]

    @staticmethod
    def _columns(frame: pd.DataFrame, aliases: Iterable[str]) -> List[str]:
        """Columns matching the aliases in alias order; exact header first, then folded."""
        folded: Dict[str, str] = {}
        for col in frame.columns:
            folded.setdefault(_header_key(col), col)

        picked = []
        for alias in aliases:
            col = alias if alias in frame.columns else folded.get(_header_key(alias))
            if col is not None and col not in picked:
                picked.append(col)
        return picked

    def _coalesce(self, frame: pd.DataFrame, aliases: Iterable[str]) -> pd.Series:
        """Per row, the first non-empty value among the alias columns (NA when none)."""
        result = pd.Series(pd.NA, index=frame.index, dtype="object")
        for col in self._columns(frame, aliases):
            result = result.combine_first(frame[col].where(frame[col] != ""))
        return result

    def parse_dates(self, raw: pd.Series) -> pd.Series:
        values = raw.fillna("").astype(str)
        if self.config.truncate_timestamp:
            values = values.str.split(n=1).str[0].fillna("")

        parsed = pd.Series(pd.NaT, index=raw.index, dtype="datetime64[ns]")
        for fmt in self.config.date_formats:
            parsed = parsed.combine_first(pd.to_datetime(values, format=fmt, errors="coerce"))
        return parsed

    @staticmethod
    def parse_amounts(raw: pd.Series) -> pd.Series:
        """Numeric amounts; missing, non-numeric, NaN, infinite or negative become NaN."""
        cleaned = raw.fillna("").astype(str).str.replace(",", "", regex=False)
        numeric = pd.to_numeric(cleaned, errors="coerce").astype(float)
        return numeric.where(np.isfinite(numeric) & (numeric >= 0))

    def normalize(
        self,
        rows: Union[pd.DataFrame, Iterable[Mapping[str, Any]]],
        organization_id: Optional[UUID] = None
    ) -> NormalizationResult:
        malformed = rows.attrs.get(MALFORMED_LINES_ATTR, 0) if isinstance(rows, pd.DataFrame) else 0
        frame = _as_frame(rows)
        result = NormalizationResult(dropped=int(malformed))
        if frame.columns.empty:
            result.dropped += len(frame)
            return self._log(result)

        cfg = self.config
        days = self.parse_dates(self._coalesce(frame, cfg.date_columns))
        amounts = self.parse_amounts(self._coalesce(frame, cfg.amount_columns))
        services = self._coalesce(frame, cfg.service_columns)
        regions = self._coalesce(frame, cfg.region_columns)
        resources = self._coalesce(frame, cfg.resource_columns)
        usage_types = self._coalesce(frame, cfg.usage_type_columns)
        usage_amounts = self.parse_amounts(self._coalesce(frame, cfg.usage_amount_columns))
        usage_units = self._coalesce(frame, cfg.usage_unit_columns)

        valid = days.notna() & amounts.notna()
        result.dropped += int((~valid).sum())

        for idx in frame.index[valid.to_numpy()]:
            usage_type = _value(usage_types, idx)
            if usage_type is None and _value(resources, idx):
                usage_type = "Instance"
            usage_amount = usage_amounts.at[idx]

            result.records.append(CostRecord(
                date=days.at[idx].date(),
                amount=Decimal(str(amounts.at[idx])),
                service_category=_value(services, idx) or UNKNOWN_SERVICE,
                region=_value(regions, idx),
                usage_type=usage_type,
                usage_amount=None if pd.isna(usage_amount) else Decimal(str(usage_amount)),
                usage_unit=_value(usage_units, idx),
                # External resource identifiers are not mapped onto tracked resources
                resource_id=None,
                organization_id=organization_id,
            ))

        return self._log(result)

    def _log(self, result: NormalizationResult) -> NormalizationResult:
        logger.info(
            "billing_rows_normalized",
            dialect=self.dialect.value,
            accepted=result.accepted,
            dropped=result.dropped
        )
        return result


def read_csv(content: Union[bytes, str]) -> pd.DataFrame:
    """
    Loads a CSV export as an all-string DataFrame with stripped headers and
    cells. Blank rows are removed; rows with more fields than the header are
    skipped and counted in frame.attrs["malformed_lines"].
    Raises BillingFileError when the file cannot be read at all.
    """
    raw = content.encode("utf-8") if isinstance(content, str) else content
    if not raw.strip():
        raise BillingFileError("Billing file is empty")

    malformed: List[List[str]] = []
    try:
        frame = pd.read_csv(
            io.BytesIO(raw),
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
            skipinitialspace=True,
            index_col=False,
            engine="python",
            on_bad_lines=malformed.append,
        )
    except UnicodeDecodeError as e:
        raise BillingFileError("Billing file is not valid UTF-8 text", details={"position": e.start})
    except pd.errors.EmptyDataError:
        raise BillingFileError("Billing file is empty")
    except pd.errors.ParserError as e:
        raise BillingFileError(f"Billing file could not be parsed as CSV: {e}")

    frame.columns = [str(col).strip() for col in frame.columns]
    if not any(col and not col.startswith("Unnamed:") for col in frame.columns):
        raise BillingFileError("Billing file has no header row")

    frame = _as_frame(frame)
    frame = frame[(frame != "").any(axis=1)].reset_index(drop=True)
    frame.attrs[MALFORMED_LINES_ATTR] = len(malformed)
    return frame
