"""
Dashboard statistics (on-demand, never persisted).

Rules:
- Input is the set of applications created inside a trailing window
  (7d / 30d / 90d / 1y), each with its business type.
- Status buckets go through normalize_status(): pending = submitted,
  inReview = under_review. Other statuses count toward total only.
- Processing time = whole days from submitted_at (or created_at) to the
  terminal timestamp (approved_at or rejected_at).
- Percentages round half away from zero.
- Growth compares against the equal-length period just before and is clamped
  to [0, 100]; a drop reports 0.
"""
from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.regdesk.constants import DATE_RANGE_LABELS, DATE_RANGES, DEFAULT_DATE_RANGE, DEFAULT_SLA_DAYS, MONTHLY_BUCKETS
from app.regdesk.errors import classify_db_error
from app.regdesk.modules.applications.models import Application
from app.regdesk.modules.applications.query import FetchResult
from app.regdesk.modules.applications.status import ApplicationStatus, normalize_status

logger = logging.getLogger(__name__)

UNKNOWN_TYPE = "Unknown"
SECONDS_PER_DAY = 86400
WEEK_DAYS = 7

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

METRICS_CSV_COLUMNS = ("Metric", "Value")


@dataclass(frozen=True)
class ApplicationFact:
    """The slice of an application the aggregation needs."""

    status: str | None
    created_at: datetime
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    business_type: str | None = None

    @classmethod
    def from_application(cls, a: Application) -> "ApplicationFact":
        return cls(
            status=a.status,
            created_at=a.created_at,
            submitted_at=a.submitted_at,
            approved_at=a.approved_at,
            rejected_at=a.rejected_at,
            business_type=a.business_type,
        )

    @property
    def terminal_at(self) -> datetime | None:
        return self.approved_at or self.rejected_at


@dataclass(frozen=True)
class BusinessTypeShare:
    type: str
    count: int
    percentage: int


@dataclass(frozen=True)
class MonthBucket:
    month: str
    applications: int
    approved: int
    rejected: int


@dataclass(frozen=True)
class StatisticsSnapshot:
    total: int = 0
    approved: int = 0
    rejected: int = 0
    pending: int = 0
    in_review: int = 0
    avg_processing_time: float = 0.0
    sla_compliance: int = 0
    approval_rate: int = 0
    rejection_rate: int = 0
    business_types: list[BusinessTypeShare] = field(default_factory=list)
    monthly_data: list[MonthBucket] = field(default_factory=list)
    weekly_growth: int = 0
    monthly_growth: int = 0

    @property
    def conversion_rate(self) -> int:
        return self.approval_rate

    def to_dict(self) -> dict[str, Any]:
        return {
            "applications": {
                "total": self.total,
                "pending": self.pending,
                "approved": self.approved,
                "rejected": self.rejected,
                "inReview": self.in_review,
            },
            "performance": {
                "avgProcessingTime": self.avg_processing_time,
                "slaCompliance": self.sla_compliance,
                "approvalRate": self.approval_rate,
                "rejectionRate": self.rejection_rate,
            },
            "businessTypes": [{"type": b.type, "count": b.count, "percentage": b.percentage} for b in self.business_types],
            "monthlyData": [
                {"month": m.month, "applications": m.applications, "approved": m.approved, "rejected": m.rejected}
                for m in self.monthly_data
            ],
            "trends": {
                "weeklyGrowth": self.weekly_growth,
                "monthlyGrowth": self.monthly_growth,
                "conversionRate": self.conversion_rate,
            },
        }


def round_half_away(value: Decimal | float | int, places: int = 0) -> Decimal:
    exp = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(exp, rounding=ROUND_HALF_UP)


def percentage(count: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(round_half_away(Decimal(count) * 100 / Decimal(total)))


def growth_rate(current: int, previous: int) -> int:
    if previous <= 0:
        return 100 if current > 0 else 0
    pct = int(round_half_away(Decimal(current - previous) * 100 / Decimal(previous)))
    return max(0, min(100, pct))


def processing_days(fact: ApplicationFact) -> int | None:
    end = fact.terminal_at
    if end is None:
        return None
    start = fact.submitted_at or fact.created_at
    return math.floor((end - start).total_seconds() / SECONDS_PER_DAY)


def parse_date_range(key: str | None) -> tuple[str, int]:
    k = (key or "").strip().lower()
    if k not in DATE_RANGES:
        k = DEFAULT_DATE_RANGE
    return k, DATE_RANGES[k]


def date_range_label(key: str | None) -> str:
    return DATE_RANGE_LABELS[parse_date_range(key)[0]]


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    idx = year * 12 + (month - 1) + delta
    return idx // 12, idx % 12 + 1


def month_windows(now: datetime, count: int = MONTHLY_BUCKETS) -> list[tuple[str, datetime, datetime]]:
    """(label, first instant, last instant) for `count` months ending at now's month, oldest first."""
    out = []
    for back in range(count - 1, -1, -1):
        y, m = _shift_month(now.year, now.month, -back)
        ny, nm = _shift_month(y, m, 1)
        start = datetime(y, m, 1)
        end = datetime(ny, nm, 1) - timedelta(microseconds=1)
        out.append((MONTH_ABBR[m - 1], start, end))
    return out


def _business_type_shares(facts: Sequence[ApplicationFact]) -> list[BusinessTypeShare]:
    counts = Counter((f.business_type or "").strip() or UNKNOWN_TYPE for f in facts)
    total = len(facts)
    # Counter.most_common keeps first-seen order among equal counts.
    return [BusinessTypeShare(type=t, count=c, percentage=percentage(c, total)) for t, c in counts.most_common()]


def _monthly_buckets(facts: Sequence[ApplicationFact], now: datetime) -> list[MonthBucket]:
    buckets = []
    for label, start, end in month_windows(now):
        in_month = [f for f in facts if start <= f.created_at <= end]
        buckets.append(
            MonthBucket(
                month=label,
                applications=len(in_month),
                approved=sum(1 for f in in_month if normalize_status(f.status) is ApplicationStatus.APPROVED),
                rejected=sum(1 for f in in_month if normalize_status(f.status) is ApplicationStatus.REJECTED),
            )
        )
    return buckets


def compute_statistics(
    facts: Iterable[ApplicationFact],
    *,
    now: datetime,
    sla_days: int = DEFAULT_SLA_DAYS,
    previous_total: int = 0,
    previous_week_total: int = 0,
) -> StatisticsSnapshot:
    """
    Aggregate one window of applications.

    previous_total is the count for the equal-length window just before this
    one; previous_week_total is the count for days 8-14 before now.
    """
    facts = list(facts)
    total = len(facts)

    statuses = Counter(normalize_status(f.status) for f in facts)

    durations = [d for d in (processing_days(f) for f in facts) if d is not None]
    if durations:
        avg = float(round_half_away(Decimal(sum(durations)) / Decimal(len(durations)), 1))
        within_sla = sum(1 for d in durations if d <= sla_days)
        sla = percentage(within_sla, len(durations))
    else:
        avg = 0.0
        sla = 0

    week_start = now - timedelta(days=WEEK_DAYS)
    this_week = sum(1 for f in facts if f.created_at >= week_start)

    return StatisticsSnapshot(
        total=total,
        approved=statuses[ApplicationStatus.APPROVED],
        rejected=statuses[ApplicationStatus.REJECTED],
        pending=statuses[ApplicationStatus.SUBMITTED],
        in_review=statuses[ApplicationStatus.UNDER_REVIEW],
        avg_processing_time=avg,
        sla_compliance=sla,
        approval_rate=percentage(statuses[ApplicationStatus.APPROVED], total),
        rejection_rate=percentage(statuses[ApplicationStatus.REJECTED], total),
        business_types=_business_type_shares(facts),
        monthly_data=_monthly_buckets(facts, now),
        weekly_growth=growth_rate(this_week, previous_week_total),
        monthly_growth=growth_rate(total, previous_total),
    )


def _count_created_between(s: Session, start: datetime, end: datetime) -> int:
    return int(
        s.query(func.count(Application.id))
        .filter(Application.created_at >= start)
        .filter(Application.created_at < end)
        .scalar()
        or 0
    )


def load_statistics(
    s: Session,
    date_range: str | None,
    *,
    now: datetime | None = None,
    sla_days: int = DEFAULT_SLA_DAYS,
) -> FetchResult[StatisticsSnapshot]:
    now = now or datetime.utcnow()
    key, days = parse_date_range(date_range)
    window_start = now - timedelta(days=days)

    try:
        rows = (
            s.query(Application)
            .options(selectinload(Application.business))
            .filter(Application.created_at >= window_start)
            .filter(Application.created_at <= now)
            .all()
        )
        previous_total = _count_created_between(s, window_start - timedelta(days=days), window_start)
        week_start = now - timedelta(days=WEEK_DAYS)
        previous_week_total = _count_created_between(s, week_start - timedelta(days=WEEK_DAYS), week_start)
    except SQLAlchemyError as e:
        err = classify_db_error(e)
        logger.error("Dashboard statistics query failed (range=%s): %s", key, err.message)
        s.rollback()
        return FetchResult(value=StatisticsSnapshot(), error=err)

    snapshot = compute_statistics(
        [ApplicationFact.from_application(a) for a in rows],
        now=now,
        sla_days=sla_days,
        previous_total=previous_total,
        previous_week_total=previous_week_total,
    )
    logger.debug("Dashboard statistics computed (range=%s, total=%s)", key, snapshot.total)
    return FetchResult(value=snapshot)


def application_summary(s: Session, *, now: datetime | None = None) -> FetchResult[dict[str, Any]]:
    """Total, created-in-last-30-days, and raw counts by stored status."""
    now = now or datetime.utcnow()
    try:
        total = int(s.query(func.count(Application.id)).scalar() or 0)
        by_status = {
            status: int(cnt)
            for status, cnt in s.query(Application.status, func.count(Application.id)).group_by(Application.status).all()
        }
        recent = int(
            s.query(func.count(Application.id)).filter(Application.created_at >= now - timedelta(days=30)).scalar() or 0
        )
    except SQLAlchemyError as e:
        err = classify_db_error(e)
        logger.error("Application summary query failed: %s", err.message)
        s.rollback()
        return FetchResult(error=err)
    return FetchResult(value={"total": total, "recent": recent, "byStatus": by_status})


def metrics_csv_rows(snapshot: StatisticsSnapshot) -> list[list[Any]]:
    return [
        ["Total Applications", snapshot.total],
        ["Pending Applications", snapshot.pending],
        ["Approved Applications", snapshot.approved],
        ["Rejected Applications", snapshot.rejected],
        ["Applications in Review", snapshot.in_review],
        ["Average Processing Time (days)", snapshot.avg_processing_time],
        ["SLA Compliance (%)", snapshot.sla_compliance],
        ["Approval Rate (%)", snapshot.approval_rate],
        ["Rejection Rate (%)", snapshot.rejection_rate],
        ["Weekly Growth (%)", snapshot.weekly_growth],
        ["Monthly Growth (%)", snapshot.monthly_growth],
        ["Conversion Rate (%)", snapshot.conversion_rate],
    ]
