"""
Sales report: load orders, filter them by text/date bucket/branch and fold
them into per-period totals for the table and the chart.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Dict, Iterable, List, Literal, Optional, Tuple

import stockdesk.db.crud as crud
from stockdesk.db.models import CurrentUser, Order, OrderItem

Bucket = Literal["daily", "monthly", "yearly"]

BUCKETS: Tuple[Bucket, ...] = ("daily", "monthly", "yearly")

LABEL_FORMATS: Dict[str, str] = {
    "daily": "%b %d",
    "monthly": "%b %Y",
    "yearly": "%Y",
}

WALK_IN = "Walk-in Customer"


@dataclass(frozen=True)
class ReportOrder:
    ono: int
    customer_name: str
    bid: int
    created_at: datetime
    total: float
    total_cost: float
    total_profit: float
    profit_margin: float
    payment_method: str
    items: Tuple[OrderItem, ...]

    @property
    def negative_profit(self) -> bool:
        return self.total_profit < 0


@dataclass
class PeriodTotals:
    label: str
    first_seen: datetime
    sales: float = 0.0
    cost: float = 0.0
    profit: float = 0.0
    orders: int = 0
    negative_profit_orders: int = 0


@dataclass(frozen=True)
class ReportSummary:
    sales: float
    cost: float
    profit: float
    margin: float
    orders: int
    negative_profit_orders: int


def from_order(order: Order) -> ReportOrder:
    """Wrap an order for reporting, defaulting missing numbers to 0."""
    return ReportOrder(
        ono=order.ono,
        customer_name=order.customer_name or WALK_IN,
        bid=order.bid,
        created_at=order.created_at,
        total=order.total or 0.0,
        total_cost=order.total_cost or 0.0,
        total_profit=order.total_profit or 0.0,
        profit_margin=order.profit_margin or 0.0,
        payment_method=order.payment_method,
        items=order.items,
    )


async def load(viewer: CurrentUser, bid: Optional[int] = None) -> List[ReportOrder]:
    """All orders the viewer may see (own branch only for non-admins)."""
    orders = await crud.list_orders(viewer, bid)
    return [from_order(o) for o in orders]


def bucket_window(bucket: Bucket, ref: date) -> Tuple[datetime, datetime]:
    """Inclusive [start, end] of the day, month or year containing ``ref``."""
    if bucket == "daily":
        start = date(ref.year, ref.month, ref.day)
        end = start
    elif bucket == "monthly":
        start = date(ref.year, ref.month, 1)
        end = date(ref.year, ref.month, calendar.monthrange(ref.year, ref.month)[1])
    elif bucket == "yearly":
        start = date(ref.year, 1, 1)
        end = date(ref.year, 12, 31)
    else:
        raise ValueError(f"Unknown bucket '{bucket}'.")
    return datetime.combine(start, time.min), datetime.combine(end, time.max)


def filter_orders(
    orders: Iterable[ReportOrder],
    term: str = "",
    bucket: Optional[Bucket] = "daily",
    ref: Optional[date] = None,
    bid: Optional[int] = None,
) -> List[ReportOrder]:
    """
    Text match on customer name or order number, then the date bucket
    around ``ref``, then the branch. A None bucket or branch matches all.
    """
    results = list(orders)

    term = (term or "").strip().lower()
    if term:
        results = [
            o
            for o in results
            if term in o.customer_name.lower() or term in str(o.ono)
        ]

    if bucket is not None:
        start, end = bucket_window(bucket, ref or date.today())
        results = [o for o in results if start <= o.created_at <= end]

    if bid is not None:
        results = [o for o in results if o.bid == bid]

    return results


def period_start(when: datetime, bucket: Bucket) -> date:
    """First day of the period ``when`` falls in."""
    if bucket == "daily":
        return when.date()
    if bucket == "monthly":
        return date(when.year, when.month, 1)
    if bucket == "yearly":
        return date(when.year, 1, 1)
    raise ValueError(f"Unknown bucket '{bucket}'.")


def bucket_label(when: datetime, bucket: Bucket) -> str:
    if bucket == "yearly":
        # platform strftime does not always pad years below 1000
        return f"{when.year:04d}"
    return when.strftime(LABEL_FORMATS[bucket])


def aggregate(orders: Iterable[ReportOrder], bucket: Bucket) -> List[PeriodTotals]:
    """
    Group by period and sum; periods come back oldest first.

    Periods are keyed by their start date, not their label, so the same
    day in two different years stays two periods.
    """
    periods: Dict[date, PeriodTotals] = {}
    for o in orders:
        key = period_start(o.created_at, bucket)
        period = periods.get(key)
        if period is None:
            period = periods[key] = PeriodTotals(
                label=bucket_label(o.created_at, bucket), first_seen=o.created_at
            )
        period.first_seen = min(period.first_seen, o.created_at)
        period.sales += o.total
        period.cost += o.total_cost
        period.profit += o.total_profit
        period.orders += 1
        if o.negative_profit:
            period.negative_profit_orders += 1

    return [periods[key] for key in sorted(periods)]


def summarize(orders: Iterable[ReportOrder]) -> ReportSummary:
    orders = list(orders)
    sales = sum(o.total for o in orders)
    cost = sum(o.total_cost for o in orders)
    profit = sum(o.total_profit for o in orders)
    return ReportSummary(
        sales=sales,
        cost=cost,
        profit=profit,
        margin=profit / sales * 100 if sales else 0.0,
        orders=len(orders),
        negative_profit_orders=sum(1 for o in orders if o.negative_profit),
    )
