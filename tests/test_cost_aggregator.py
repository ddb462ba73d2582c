import pytest
from datetime import date
from decimal import Decimal

from app.modules.reporting.domain.aggregator import (
    bucket_start,
    fold,
    group_by_category,
    group_by_time,
    summarize,
)
from app.schemas.costs import CostRecord
from app.shared.core.exceptions import ValidationError
from conftest import daily_records


def record(day, amount, service="EC2", region="us-east-1"):
    return CostRecord(date=day, amount=Decimal(str(amount)), service_category=service, region=region)


def test_bucket_start():
    wednesday = date(2026, 1, 14)
    assert bucket_start(wednesday, "day") == wednesday
    assert bucket_start(wednesday, "week") == date(2026, 1, 12)
    assert bucket_start(wednesday, "month") == date(2026, 1, 1)
    with pytest.raises(ValidationError):
        bucket_start(wednesday, "quarter")


def test_group_by_day_sums_same_day():
    records = [
        record(date(2026, 1, 2), 5),
        record(date(2026, 1, 1), 10),
        record(date(2026, 1, 1), 2.5, service="S3"),
    ]
    buckets = group_by_time(records, "day")
    assert [b.period_start for b in buckets] == [date(2026, 1, 1), date(2026, 1, 2)]
    assert buckets[0].total_amount == Decimal("12.5")
    assert buckets[0].record_count == 2


def test_group_by_week_and_month():
    records = daily_records([1] * 40, start=date(2026, 1, 1))
    weeks = group_by_time(records, "week")
    months = group_by_time(records, "month")

    assert weeks[0].period_start == date(2025, 12, 29)
    assert sum(w.total_amount for w in weeks) == Decimal("40")
    assert [m.period_start for m in months] == [date(2026, 1, 1), date(2026, 2, 1)]
    assert [m.total_amount for m in months] == [Decimal("31"), Decimal("9")]


def test_group_by_service_percentages():
    records = [
        record(date(2026, 1, 1), 75, service="EC2"),
        record(date(2026, 1, 1), 25, service="S3"),
    ]
    shares = group_by_category(records, "service")
    assert [(s.key, s.percentage) for s in shares] == [("EC2", 75.0), ("S3", 25.0)]


def test_percentages_are_rounded():
    records = [record(date(2026, 1, 1), 1, service=name) for name in ("A", "B", "C")]
    shares = group_by_category(records, "service")
    assert all(s.percentage == 33.33 for s in shares)


def test_missing_region_is_unknown():
    records = [record(date(2026, 1, 1), 3, region=None), record(date(2026, 1, 1), 1)]
    shares = group_by_category(records, "region")
    assert shares[0].key == "Unknown"
    assert shares[0].total_amount == Decimal("3")


def test_unsupported_category_raises():
    with pytest.raises(ValidationError):
        group_by_category([], "account")


def test_empty_input_yields_empty_results():
    assert group_by_time([], "day") == []
    assert group_by_category([], "service") == []
    totals = summarize([])
    assert totals.total_cost == 0
    assert totals.average_daily_cost == 0


def test_summarize_average_over_days_with_data():
    records = [
        record(date(2026, 1, 1), 10),
        record(date(2026, 1, 1), 10, service="S3"),
        record(date(2026, 1, 5), 40),
    ]
    totals = summarize(records, date(2026, 1, 1), date(2026, 1, 31))
    assert totals.total_cost == Decimal("60")
    assert totals.average_daily_cost == Decimal("30")
    assert totals.start_date == date(2026, 1, 1)


def test_fold_by_month_and_service():
    records = daily_records([2] * 35, start=date(2026, 1, 1))
    by_month = fold(records, "month")
    assert [(r.date, r.amount) for r in by_month] == [
        (date(2026, 1, 1), Decimal("62")),
        (date(2026, 2, 1), Decimal("8")),
    ]

    mixed = [record(date(2026, 1, 3), 5, service="S3"), record(date(2026, 1, 1), 9, service="EC2")]
    by_service = fold(mixed, "service")
    assert [(r.service_category, r.amount) for r in by_service] == [("EC2", Decimal("9")), ("S3", Decimal("5"))]

    with pytest.raises(ValidationError):
        fold(records, "hour")
