"""
Seller analytics — time-windowed aggregation over orders, reviews and dishes.

Pipeline (compute_analytics_snapshot):
  1. Validate the window (end < start → InvalidRange)
  2. Fetch seller orders for [previous_start, end], active reviews for the same
     span, active dishes, and all-time order stats for in-window customers
  3. Run AnalyticsAggregator — pure Python, no DB
  4. Each section is computed in isolation; a failing section is logged and
     replaced by its documented default, the rest of the snapshot still returns.
     A failed read in step 2 counts as empty and marks the sections built
     from it as degraded.

Windows:
  current  = [start, end]              (inclusive)
  previous = [start - (end - start), start)

Rounding happens only when a section model is built: currency 2 dp,
percentages 1 dp, counts exact.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from pydantic import BaseModel

from tastesphere.errors import InvalidRange
from tastesphere.schemas.analytics import (
    AnalyticsSnapshot,
    CustomerStats,
    DailyRevenue,
    DishStat,
    DishStats,
    HourlyBucket,
    OrderStats,
    OverviewStats,
    PaymentBucket,
    PerformanceStats,
    RevenueStats,
    StatusBucket,
    TrendStats,
)
from tastesphere.schemas.catalog import DishRecord, ReviewRecord
from tastesphere.schemas.order import OrderRecord
from tastesphere.utils.order_states import (
    ACCEPTED_OR_LATER,
    CANCELLED_STATUSES,
    OrderStatus,
    PaymentStatus,
    status_label,
)

logger = logging.getLogger(__name__)

PREP_TIME_CAP_MINUTES = 120.0
DEFAULT_PREP_TIME_MINUTES = 25.0
TOP_DISH_LIMIT = 5
DEFAULT_TOP_CATEGORY = "Main Course"

# payment_method → display name; unknown methods are title-cased
_PAYMENT_LABELS: dict[str, str] = {"razorpay": "Online", "cod": "COD"}

_Section = TypeVar("_Section", bound=BaseModel)

# section → collaborator reads it is computed from
_SECTION_INPUTS: dict[str, frozenset[str]] = {
    "overview": frozenset({"orders", "reviews"}),
    "revenue": frozenset({"orders"}),
    "orders": frozenset({"orders"}),
    "dishes": frozenset({"orders", "dishes"}),
    "customers": frozenset({"orders"}),
    "performance": frozenset({"orders", "reviews"}),
    "trends": frozenset({"orders", "dishes"}),
}


# ── Helpers ────────────────────────────────────────────────────────────────────


def growth_rate(current: float, previous: float) -> float:
    """Percentage change; defined as 0 when previous is 0 (no infinite growth)."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def _money(value: float) -> float:
    return round(value, 2)


def _pct(value: float) -> float:
    return round(value, 1)


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


@dataclass(frozen=True)
class AnalyticsWindow:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise InvalidRange(
                f"end ({self.end.isoformat()}) is before start ({self.start.isoformat()})"
            )

    @property
    def length(self) -> timedelta:
        return self.end - self.start

    @property
    def previous_start(self) -> datetime:
        return self.start - self.length

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    def in_previous(self, moment: datetime) -> bool:
        return self.previous_start <= moment < self.start


_RANGE_DAYS: dict[str, int] = {"week": 7, "month": 30, "year": 365}
_ALL_TIME_START = datetime(2020, 1, 1)


def window_for_range(range_name: str, now: datetime) -> AnalyticsWindow:
    """
    Preset windows ending today: week / month / year / all.
    Start snaps to 00:00:00, end to 23:59:59.999999 of the current day.
    """
    end = now.replace(hour=23, minute=59, second=59, microsecond=999_999)
    if range_name == "all":
        start = _ALL_TIME_START.replace(tzinfo=now.tzinfo)
    else:
        days = _RANGE_DAYS.get(range_name, 7)
        start = (now - timedelta(days=days)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
    return AnalyticsWindow(start=start, end=end)


@dataclass(frozen=True)
class CustomerHistory:
    """All-time ordering history of one customer with one seller."""

    first_order_at: datetime
    order_count: int


def customer_histories(orders: Iterable[OrderRecord]) -> dict[str, CustomerHistory]:
    """Derive CustomerHistory per customer from a full order list."""
    first: dict[str, datetime] = {}
    counts: Counter[str] = Counter()
    for order in orders:
        counts[order.customer_id] += 1
        seen = first.get(order.customer_id)
        if seen is None or order.created_at < seen:
            first[order.customer_id] = order.created_at
    return {
        cid: CustomerHistory(first_order_at=first[cid], order_count=counts[cid])
        for cid in counts
    }


# ── Aggregator ─────────────────────────────────────────────────────────────────


class AnalyticsAggregator:
    """
    Pure Python aggregator. Receives pre-fetched records and returns an
    AnalyticsSnapshot. Never raises for empty inputs.
    """

    def snapshot(
        self,
        seller_id: str,
        window: AnalyticsWindow,
        orders: list[OrderRecord],
        reviews: list[ReviewRecord],
        dishes: list[DishRecord],
        histories: Optional[dict[str, CustomerHistory]] = None,
        missing_inputs: Iterable[str] = (),
    ) -> AnalyticsSnapshot:
        """
        orders / reviews may span both the current and the previous window;
        they are partitioned here. histories defaults to what can be derived
        from `orders` when the caller has no all-time view.

        missing_inputs names collaborator reads that failed ("orders",
        "reviews", "dishes"); sections built from them are still computed
        over the empty input but reported in degraded_sections.
        """
        missing = frozenset(missing_inputs)
        current = [o for o in orders if window.contains(o.created_at)]
        previous = [o for o in orders if window.in_previous(o.created_at)]
        current_reviews = [
            r for r in reviews if r.status == "active" and window.contains(r.created_at)
        ]
        previous_reviews = [
            r for r in reviews if r.status == "active" and window.in_previous(r.created_at)
        ]
        active_dishes = [d for d in dishes if d.is_active]
        if histories is None:
            histories = customer_histories(orders)

        degraded: list[str] = []

        def guarded(name: str, default: _Section, fn: Callable[[], _Section]) -> _Section:
            try:
                return fn()
            except Exception as exc:
                logger.warning(
                    "Analytics section '%s' failed for seller=%s — using default: %s",
                    name, seller_id, exc,
                )
                degraded.append(name)
                return default

        overview = guarded(
            "overview", OverviewStats(),
            lambda: self.overview(current, current_reviews),
        )
        revenue = guarded(
            "revenue", RevenueStats(),
            lambda: self.revenue(window, current, previous),
        )
        order_stats = guarded(
            "orders", OrderStats(),
            lambda: self.orders(current, previous),
        )
        dish_stats = guarded(
            "dishes", DishStats(),
            lambda: self.dishes(active_dishes, current),
        )
        customers = guarded(
            "customers", CustomerStats(),
            lambda: self.customers(window, current, histories),
        )
        performance = guarded(
            "performance", PerformanceStats(),
            lambda: self.performance(current, current_reviews, previous_reviews),
        )
        trends = guarded(
            "trends", TrendStats(),
            lambda: self.trends(current, previous, active_dishes),
        )
        if missing:
            degraded.extend(
                name for name, inputs in _SECTION_INPUTS.items()
                if inputs & missing and name not in degraded
            )

        return AnalyticsSnapshot(
            seller_id=seller_id,
            start_date=window.start,
            end_date=window.end,
            overview=overview,
            revenue=revenue,
            orders=order_stats,
            dishes=dish_stats,
            customers=customers,
            performance=performance,
            trends=trends,
            degraded_sections=degraded,
        )

    # ── Sections ───────────────────────────────────────────────────────────────

    def overview(
        self,
        current: list[OrderRecord],
        current_reviews: list[ReviewRecord],
    ) -> OverviewStats:
        """Revenue, order count and AOV over completed payments only."""
        paid = _paid(current)
        revenue = sum(o.total_amount for o in paid)
        aov = revenue / len(paid) if paid else 0.0
        avg_rating = _mean([r.rating for r in current_reviews])
        return OverviewStats(
            total_revenue=_money(revenue),
            total_orders=len(paid),
            average_order_value=_money(aov),
            average_rating=_pct(avg_rating),
        )

    def revenue(
        self,
        window: AnalyticsWindow,
        current: list[OrderRecord],
        previous: list[OrderRecord],
    ) -> RevenueStats:
        paid_now, paid_before = _paid(current), _paid(previous)
        revenue_now = sum(o.total_amount for o in paid_now)
        revenue_before = sum(o.total_amount for o in paid_before)
        aov_now = revenue_now / len(paid_now) if paid_now else 0.0
        aov_before = revenue_before / len(paid_before) if paid_before else 0.0

        daily: dict[str, float] = {}
        day = window.start.date()
        while day <= window.end.date():
            daily[day.isoformat()] = 0.0
            day += timedelta(days=1)
        for order in paid_now:
            key = order.created_at.date().isoformat()
            if key in daily:
                daily[key] += order.total_amount

        return RevenueStats(
            growth=_pct(growth_rate(revenue_now, revenue_before)),
            aov_growth=_pct(growth_rate(aov_now, aov_before)),
            daily_data=[
                DailyRevenue(date=key, revenue=_money(value))
                for key, value in daily.items()
            ],
        )

    def orders(
        self,
        current: list[OrderRecord],
        previous: list[OrderRecord],
    ) -> OrderStats:
        status_counts: Counter[str] = Counter(o.status.value for o in current)

        method_counts: Counter[str] = Counter()
        method_amounts: dict[str, float] = defaultdict(float)
        for order in current:
            method = order.payment_method or "unknown"
            method_counts[method] += 1
            if order.payment_status == PaymentStatus.COMPLETED:
                method_amounts[method] += order.total_amount

        methods = [m for m in _PAYMENT_LABELS] + sorted(
            m for m in method_counts if m not in _PAYMENT_LABELS
        )

        return OrderStats(
            growth=_pct(growth_rate(len(current), len(previous))),
            status_distribution=[
                StatusBucket(status=status, name=status_label(status), value=count)
                for status, count in status_counts.items()
            ],
            payment_distribution=[
                PaymentBucket(
                    method=_PAYMENT_LABELS.get(m, m.replace("_", " ").title()),
                    count=method_counts[m],
                    amount=_money(method_amounts[m]),
                )
                for m in methods
            ],
            hourly_data=[
                HourlyBucket(hour=hour, orders=count)
                for hour, count in enumerate(_hour_counts(current))
            ],
        )

    def dishes(
        self,
        active_dishes: list[DishRecord],
        current: list[OrderRecord],
    ) -> DishStats:
        """
        Per-dish order count and revenue over completed payments.
        An order's total is split across its dishes by quantity share.
        One failing dish falls back to zero counts without affecting the others.
        """
        paid = _paid(current)
        stats: list[tuple[DishStat, float]] = []
        for dish in active_dishes:
            try:
                count, revenue = _dish_sales(dish.id, paid)
            except Exception as exc:
                logger.warning("Dish stats failed for dish=%s: %s", dish.id, exc)
                count, revenue = 0, 0.0
            stats.append((
                DishStat(
                    dish_id=dish.id,
                    name=dish.name,
                    orders=count,
                    revenue=_money(revenue),
                    rating=dish.rating_average,
                    views=dish.view_count,
                ),
                revenue,
            ))

        stats.sort(key=lambda s: (s[0].orders, s[1], s[0].views), reverse=True)
        return DishStats(
            top_dishes=[stat for stat, _ in stats[:TOP_DISH_LIMIT]],
            total_dishes=len(active_dishes),
        )

    def customers(
        self,
        window: AnalyticsWindow,
        current: list[OrderRecord],
        histories: dict[str, CustomerHistory],
    ) -> CustomerStats:
        """new = first-ever order falls in the window; repeat = >1 order all-time."""
        in_window = {o.customer_id for o in current}
        total = len(in_window)
        new = 0
        repeat = 0
        for customer_id in in_window:
            history = histories.get(customer_id)
            if history is None:
                # No all-time record beyond this window: first order is here
                new += 1
                continue
            if window.contains(history.first_order_at):
                new += 1
            if history.order_count > 1:
                repeat += 1
        repeat_rate = repeat / total * 100 if total else 0.0
        return CustomerStats(
            total=total,
            new=new,
            repeat=repeat,
            repeat_rate=_pct(repeat_rate),
        )

    def performance(
        self,
        current: list[OrderRecord],
        current_reviews: list[ReviewRecord],
        previous_reviews: list[ReviewRecord],
    ) -> PerformanceStats:
        total = len(current)
        accepted = sum(1 for o in current if _reached_acceptance(o))
        cancelled = sum(1 for o in current if o.status in CANCELLED_STATUSES)
        acceptance_rate = accepted / total * 100 if total else 100.0
        cancellation_rate = cancelled / total * 100 if total else 0.0

        samples = [
            min(
                (o.actual_delivery_time - o.created_at).total_seconds() / 60,
                PREP_TIME_CAP_MINUTES,
            )
            for o in current
            if o.status == OrderStatus.DELIVERED and o.actual_delivery_time is not None
        ]
        avg_prep = _mean(samples) if samples else DEFAULT_PREP_TIME_MINUTES

        rating_change = (
            _mean([r.rating for r in current_reviews])
            - _mean([r.rating for r in previous_reviews])
        )
        return PerformanceStats(
            avg_prep_time=round(avg_prep),
            acceptance_rate=_pct(acceptance_rate),
            cancellation_rate=_pct(cancellation_rate),
            rating_change=_pct(rating_change),
        )

    def trends(
        self,
        current: list[OrderRecord],
        previous: list[OrderRecord],
        active_dishes: list[DishRecord],
    ) -> TrendStats:
        counts = _hour_counts(current)
        peak = counts.index(max(counts))
        peak_hours = f"{peak}:00 - {(peak + 2) % 24}:00"

        categories = Counter(d.category for d in active_dishes if d.category)
        top_category = (
            categories.most_common(1)[0][0] if categories else DEFAULT_TOP_CATEGORY
        )

        revenue_now = sum(o.total_amount for o in _paid(current))
        revenue_before = sum(o.total_amount for o in _paid(previous))
        return TrendStats(
            peak_hours=peak_hours,
            top_category=top_category,
            growth_rate=_pct(growth_rate(revenue_now, revenue_before)),
        )


# ── Record-level helpers ───────────────────────────────────────────────────────


def _paid(orders: list[OrderRecord]) -> list[OrderRecord]:
    return [o for o in orders if o.payment_status == PaymentStatus.COMPLETED]


def _hour_counts(orders: list[OrderRecord]) -> list[int]:
    counts = [0] * 24
    for order in orders:
        counts[order.created_at.hour] += 1
    return counts


def _reached_acceptance(order: OrderRecord) -> bool:
    if order.status in ACCEPTED_OR_LATER:
        return True
    return any(entry.status in ACCEPTED_OR_LATER for entry in order.timeline)


def _dish_sales(dish_id: str, paid: list[OrderRecord]) -> tuple[int, float]:
    count = 0
    revenue = 0.0
    for order in paid:
        qty = order.dish_quantity(dish_id)
        if not qty:
            continue
        total_qty = sum(item.quantity for item in order.items)
        count += 1
        revenue += order.total_amount * qty / total_qty
    return count, revenue


# ── Store-backed entry point ───────────────────────────────────────────────────

_aggregator = AnalyticsAggregator()


async def compute_analytics_snapshot(
    seller_id: str,
    start: datetime,
    end: datetime,
    store: Any,
) -> AnalyticsSnapshot:
    """
    Fetch the records for `seller_id` from the record store and aggregate them.
    Raises InvalidRange for end < start; missing data yields zero/default values.
    A failed read is treated as empty and the sections built from it are
    reported as degraded.
    """
    window = AnalyticsWindow(start=start, end=end)
    missing: list[str] = []

    async def fetch(name: str, read: Callable[[], Awaitable[list]]) -> list:
        try:
            return await read()
        except Exception as exc:
            logger.warning(
                "Analytics read '%s' failed for seller=%s, treating as empty: %s",
                name, seller_id, exc,
            )
            missing.append(name)
            return []

    orders = await fetch(
        "orders",
        lambda: store.list_seller_orders(seller_id, window.previous_start, window.end),
    )
    reviews = await fetch(
        "reviews",
        lambda: store.list_seller_reviews(
            seller_id, window.previous_start, window.end, status="active"
        ),
    )
    dishes = await fetch(
        "dishes", lambda: store.list_seller_dishes(seller_id, active_only=True)
    )

    customer_ids = {o.customer_id for o in orders if window.contains(o.created_at)}
    try:
        histories = await store.customer_histories(seller_id, customer_ids)
    except Exception as exc:
        logger.warning(
            "Customer history lookup failed for seller=%s — deriving from window: %s",
            seller_id, exc,
        )
        histories = None

    snapshot = _aggregator.snapshot(
        seller_id, window, orders, reviews, dishes, histories, missing_inputs=missing
    )
    logger.info(
        "Analytics computed for seller=%s (%s → %s): %d orders, %d degraded sections",
        seller_id, start.isoformat(), end.isoformat(),
        snapshot.overview.total_orders, len(snapshot.degraded_sections),
    )
    return snapshot
