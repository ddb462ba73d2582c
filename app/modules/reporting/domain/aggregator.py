"""
Cost aggregation: pure regrouping of CostRecords by time bucket or category.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from app.schemas.costs import CategoryShare, CostRecord, CostTotals, TimeBucket
from app.shared.core.exceptions import ValidationError

TIME_PERIODS = ("day", "week", "month")
CATEGORY_KEYS = ("service", "region")
GROUP_BY_OPTIONS = TIME_PERIODS + CATEGORY_KEYS
UNKNOWN = "Unknown"


def bucket_start(day: date, period: str) -> date:
    """First day of the bucket containing `day`. Weeks start on Monday."""
    if period == "day":
        return day
    if period == "week":
        return day - timedelta(days=day.weekday())
    if period == "month":
        return day.replace(day=1)
    raise ValidationError(f"Unsupported time period: {period}", details={"allowed": list(TIME_PERIODS)})


def group_by_time(records: Sequence[CostRecord], period: str = "day") -> List[TimeBucket]:
    totals: Dict[date, Decimal] = defaultdict(lambda: Decimal("0"))
    counts: Dict[date, int] = defaultdict(int)
    for record in records:
        key = bucket_start(record.date, period)
        totals[key] += Decimal(record.amount)
        counts[key] += 1

    return [
        TimeBucket(period_start=key, total_amount=totals[key], record_count=counts[key])
        for key in sorted(totals)
    ]


def _category_of(record: CostRecord, key: str) -> str:
    if key == "service":
        return record.service_category or UNKNOWN
    if key == "region":
        return record.region or UNKNOWN
    raise ValidationError(f"Unsupported category: {key}", details={"allowed": list(CATEGORY_KEYS)})


def group_by_category(records: Sequence[CostRecord], key: str = "service") -> List[CategoryShare]:
    """Totals per service or region with percentage of the grand total, largest first."""
    if key not in CATEGORY_KEYS:
        raise ValidationError(f"Unsupported category: {key}", details={"allowed": list(CATEGORY_KEYS)})

    totals: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for record in records:
        totals[_category_of(record, key)] += Decimal(record.amount)

    grand_total = sum(totals.values(), Decimal("0"))
    shares = []
    for name, amount in totals.items():
        pct = (amount / grand_total * 100) if grand_total > 0 else Decimal("0")
        shares.append(CategoryShare(
            key=name,
            total_amount=amount,
            percentage=float(pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
        ))

    return sorted(shares, key=lambda s: (-s.total_amount, s.key))


def summarize(
    records: Sequence[CostRecord],
    start: Optional[date] = None,
    end: Optional[date] = None,
    period: str = "day"
) -> CostTotals:
    """Grand total and mean of per-day totals over the days that have data."""
    total = sum((Decimal(r.amount) for r in records), Decimal("0"))
    days = {r.date for r in records}
    average = (total / len(days)) if days else Decimal("0")
    return CostTotals(
        total_cost=total,
        average_daily_cost=average,
        start_date=start,
        end_date=end,
        period=period
    )


def fold(records: Sequence[CostRecord], group_by: str) -> List[CostRecord]:
    """
    Collapses records to one CostRecord per bucket.
    Time buckets carry the bucket start as date; category buckets carry the
    earliest date seen and the category in service_category or region.
    """
    if group_by not in GROUP_BY_OPTIONS:
        raise ValidationError(f"Unsupported group_by: {group_by}", details={"allowed": list(GROUP_BY_OPTIONS)})

    if group_by in TIME_PERIODS:
        return [
            CostRecord(date=b.period_start, amount=b.total_amount, service_category="All")
            for b in group_by_time(records, group_by)
        ]

    first_seen: Dict[str, date] = {}
    for record in records:
        name = _category_of(record, group_by)
        if name not in first_seen or record.date < first_seen[name]:
            first_seen[name] = record.date

    folded = []
    for share in group_by_category(records, group_by):
        folded.append(CostRecord(
            date=first_seen[share.key],
            amount=share.total_amount,
            service_category=share.key if group_by == "service" else "All",
            region=share.key if group_by == "region" else None,
        ))
    return folded
