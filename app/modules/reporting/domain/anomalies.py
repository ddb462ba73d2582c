"""
Day-over-baseline anomaly detection.

Each day's total is compared with the mean of the preceding baseline days.
Advisory only: there is no seasonality and nothing is learned.
"""

from typing import List, Sequence

import structlog

from app.modules.reporting.domain.forecaster import daily_totals
from app.schemas.costs import CostAnomaly, CostRecord

logger = structlog.get_logger()


def classify_severity(percentage: float) -> str:
    magnitude = abs(percentage)
    if magnitude >= 100:
        return "critical"
    if magnitude >= 50:
        return "high"
    if magnitude >= 25:
        return "medium"
    return "low"


def detect_anomalies(
    records: Sequence[CostRecord],
    baseline_days: int = 7,
    threshold_percent: float = 25.0
) -> List[CostAnomaly]:
    series = daily_totals(records)
    if len(series) <= baseline_days:
        return []

    # Mean of the previous `baseline_days` observed days, excluding the current one
    baseline = series.rolling(window=baseline_days, min_periods=baseline_days).mean().shift(1)

    anomalies = []
    for ts, current in series.items():
        previous = baseline.loc[ts]
        if previous != previous or previous == 0:  # NaN or zero baseline
            continue

        change = (current - previous) / previous * 100
        if abs(change) <= threshold_percent:
            continue

        anomalies.append(CostAnomaly(
            date=ts.date(),
            anomaly_type="spike" if change > 0 else "drop",
            previous_cost=float(previous),
            current_cost=float(current),
            percentage=round(float(change), 2),
            severity=classify_severity(change)
        ))

    if anomalies:
        logger.info("cost_anomalies_detected", count=len(anomalies), days=len(series))
    return anomalies
