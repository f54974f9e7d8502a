from datetime import datetime, timedelta

from app.regdesk.modules.reporting.service import (
    ApplicationFact,
    compute_statistics,
    growth_rate,
    metrics_csv_rows,
    month_windows,
    parse_date_range,
    percentage,
    round_half_away,
)

NOW = datetime(2026, 10, 19, 12, 0, 0)


def _fact(status, days_ago=1, **kw):
    created = NOW - timedelta(days=days_ago)
    return ApplicationFact(status=status, created_at=created, **kw)


def test_status_spellings_count_the_same():
    facts = [
        _fact("approved"),
        _fact("Approved"),
        _fact("under_review"),
        _fact("In Review"),
        _fact("submitted"),
        _fact("pending"),
        _fact("rejected"),
        _fact("draft"),
    ]
    snap = compute_statistics(facts, now=NOW)
    assert snap.total == 8
    assert snap.approved == 2
    assert snap.in_review == 2
    assert snap.pending == 2
    assert snap.rejected == 1
    # draft counts toward total only
    assert snap.approved + snap.rejected + snap.pending + snap.in_review <= snap.total


def test_empty_window_has_zero_rates():
    snap = compute_statistics([], now=NOW)
    d = snap.to_dict()
    assert d["applications"] == {"total": 0, "pending": 0, "approved": 0, "rejected": 0, "inReview": 0}
    assert d["performance"] == {"avgProcessingTime": 0.0, "slaCompliance": 0, "approvalRate": 0, "rejectionRate": 0}
    assert d["businessTypes"] == []
    assert len(d["monthlyData"]) == 6
    assert d["trends"] == {"weeklyGrowth": 0, "monthlyGrowth": 0, "conversionRate": 0}


def test_rates_are_not_forced_to_sum_to_100():
    facts = [_fact("approved"), _fact("rejected"), _fact("submitted")]
    snap = compute_statistics(facts, now=NOW)
    assert snap.approval_rate == 33
    assert snap.rejection_rate == 33
    assert snap.conversion_rate == snap.approval_rate


def test_processing_time_and_sla():
    sub = NOW - timedelta(days=20)
    facts = [
        _fact("approved", days_ago=20, submitted_at=sub, approved_at=sub + timedelta(days=2)),
        _fact("rejected", days_ago=20, submitted_at=sub, rejected_at=sub + timedelta(days=9, hours=23)),
        _fact("submitted", days_ago=20, submitted_at=sub),
    ]
    snap = compute_statistics(facts, now=NOW, sla_days=5)
    # 2 and 9 whole days -> mean 5.5
    assert snap.avg_processing_time == 5.5
    assert snap.sla_compliance == 50


def test_processing_time_falls_back_to_created_at():
    created = NOW - timedelta(days=10)
    f = ApplicationFact(status="approved", created_at=created, approved_at=created + timedelta(days=3))
    snap = compute_statistics([f], now=NOW)
    assert snap.avg_processing_time == 3.0
    assert snap.sla_compliance == 100


def test_business_types_sorted_with_unknown_label():
    facts = [
        _fact("submitted", business_type="Retail"),
        _fact("submitted", business_type="Food"),
        _fact("submitted", business_type="Food"),
        _fact("submitted", business_type=None),
    ]
    snap = compute_statistics(facts, now=NOW)
    types = [(b.type, b.count, b.percentage) for b in snap.business_types]
    assert types == [("Food", 2, 50), ("Retail", 1, 25), ("Unknown", 1, 25)]


def test_monthly_buckets_cover_six_months_oldest_first():
    windows = month_windows(NOW)
    assert [w[0] for w in windows] == ["May", "Jun", "Jul", "Aug", "Sep", "Oct"]
    assert windows[-1][1] == datetime(2026, 10, 1)
    assert windows[0][2] == datetime(2026, 6, 1) - timedelta(microseconds=1)

    facts = [
        ApplicationFact(status="approved", created_at=datetime(2026, 10, 1)),
        ApplicationFact(status="rejected", created_at=datetime(2026, 9, 30, 23, 59, 59)),
    ]
    snap = compute_statistics(facts, now=NOW)
    by_month = {m.month: m for m in snap.monthly_data}
    assert by_month["Oct"].applications == 1 and by_month["Oct"].approved == 1
    assert by_month["Sep"].applications == 1 and by_month["Sep"].rejected == 1


def test_month_windows_cross_year_boundary():
    labels = [w[0] for w in month_windows(datetime(2026, 2, 10))]
    assert labels == ["Sep", "Oct", "Nov", "Dec", "Jan", "Feb"]


def test_growth_drop_reports_zero():
    facts = [_fact("submitted", days_ago=1) for _ in range(40)]
    snap = compute_statistics(facts, now=NOW, previous_total=100, previous_week_total=100)
    assert snap.monthly_growth == 0
    assert snap.weekly_growth == 0


def test_growth_rate_clamps_and_handles_empty_previous():
    assert growth_rate(150, 100) == 50
    assert growth_rate(500, 100) == 100
    assert growth_rate(40, 100) == 0
    assert growth_rate(3, 0) == 100
    assert growth_rate(0, 0) == 0


def test_weekly_growth_counts_last_seven_days():
    facts = [_fact("submitted", days_ago=2), _fact("submitted", days_ago=3), _fact("submitted", days_ago=20)]
    snap = compute_statistics(facts, now=NOW, previous_total=3, previous_week_total=1)
    assert snap.weekly_growth == 100
    assert snap.monthly_growth == 0


def test_rounding_is_half_away_from_zero():
    assert str(round_half_away(2.5)) == "3"
    assert str(round_half_away(0.125, 2)) == "0.13"
    assert percentage(1, 8) == 13
    assert percentage(5, 0) == 0


def test_parse_date_range_defaults_to_thirty_days():
    assert parse_date_range("90d") == ("90d", 90)
    assert parse_date_range("1Y") == ("1y", 365)
    assert parse_date_range("bogus") == ("30d", 30)
    assert parse_date_range(None) == ("30d", 30)


def test_metrics_csv_rows_fixed_order():
    snap = compute_statistics([_fact("approved")], now=NOW)
    rows = metrics_csv_rows(snap)
    assert rows[0] == ["Total Applications", 1]
    assert [r[0] for r in rows][-1] == "Conversion Rate (%)"
    assert len(rows) == 12
