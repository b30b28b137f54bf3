"""
RecordStore — SQL collaborator behind the engine.

Reads return engine records (pydantic), never ORM rows, so the pure
services stay independent of the session. Writes commit before returning.

Order writes are conditional on the version the caller read:

  UPDATE orders SET ..., version = version + 1
   WHERE id = :id AND version = :expected

Zero rows updated → ConcurrentModification. A status transition inserts
its timeline row and its outbox row in the same transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import String, and_, cast, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tastesphere.errors import ConcurrentModification, DuplicateReview, NotFound
from tastesphere.models import (
    Dish,
    NotificationEvent,
    Order,
    OrderTimelineEntry,
    Review,
    User,
    ViewHistory,
)
from tastesphere.schemas.catalog import (
    DishRecord,
    ReviewRecord,
    UserPreferences,
    UserRecord,
    ViewRecord,
)
from tastesphere.schemas.order import OrderItem, OrderRating, OrderRecord, TimelineEntry
from tastesphere.services.analytics import CustomerHistory
from tastesphere.services.notifications import OrderNotification
from tastesphere.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)


# ── Row → record conversions ───────────────────────────────────────────────────


def _timeline_entry(row: OrderTimelineEntry) -> TimelineEntry:
    return TimelineEntry(
        status=row.status,
        timestamp=row.timestamp,
        actor=row.actor,
        note=row.note or "",
    )


def _order_record(row: Order, timeline: Iterable[OrderTimelineEntry] = ()) -> OrderRecord:
    rating = None
    if row.rating_score is not None:
        rating = OrderRating(
            score=row.rating_score,
            review=row.rating_review,
            rated_at=row.rated_at,
        )
    return OrderRecord(
        id=row.id,
        seller_id=row.seller_id,
        customer_id=row.customer_id,
        status=row.status,
        created_at=row.created_at,
        total_amount=float(row.total_amount or 0),
        payment_status=row.payment_status,
        payment_method=row.payment_method,
        items=tuple(OrderItem(**item) for item in (row.items or [])),
        timeline=tuple(_timeline_entry(e) for e in timeline),
        actual_delivery_time=row.actual_delivery_time,
        cancellation_reason=row.cancellation_reason,
        cancelled_by=row.cancelled_by,
        rating=rating,
        version=row.version,
    )


def _dish_record(row: Dish) -> DishRecord:
    return DishRecord.model_validate(row)


def _review_record(row: Review) -> ReviewRecord:
    return ReviewRecord.model_validate(row)


def _view_record(row: ViewHistory) -> ViewRecord:
    return ViewRecord.model_validate(row)


def _user_record(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        preferences=UserPreferences(
            cuisines=list(row.cuisines or []),
            dietary=row.dietary,
            spice_level=row.spice_level,
        ),
        wishlist=list(row.wishlist or []),
    )


def _notification(row: NotificationEvent) -> OrderNotification:
    return OrderNotification(
        event_id=row.id,
        order_id=row.order_id,
        status=row.status,
        recipient_role=row.recipient_role,
        note=row.note or "",
        attempts=row.attempts or 0,
    )


def _fresh(entity):
    """SELECT that overwrites identity-map rows left stale by core UPDATEs."""
    return select(entity).execution_options(populate_existing=True)


def _available():
    return and_(Dish.is_active.is_(True), Dish.availability.is_(True))


# ── Store ──────────────────────────────────────────────────────────────────────


class RecordStore:
    """Async record store over one AsyncSession (one per request)."""

    def __init__(self, db: AsyncSession, clock: Clock | None = None) -> None:
        self._db = db
        self._clock = clock or system_clock

    # ── Orders ────────────────────────────────────────────────────────────────

    async def get_order(self, order_id: str) -> OrderRecord:
        """Fresh read of one order and its timeline; NotFound when absent."""
        result = await self._db.execute(
            _fresh(Order).where(Order.id == order_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFound("Order", order_id)
        timelines = await self._timelines([order_id])
        return _order_record(row, timelines.get(order_id, []))

    async def create_order(self, order: OrderRecord) -> OrderRecord:
        self._db.add(
            Order(
                id=order.id,
                seller_id=order.seller_id,
                customer_id=order.customer_id,
                status=order.status.value,
                payment_status=order.payment_status.value,
                payment_method=order.payment_method,
                total_amount=order.total_amount,
                items=[item.model_dump() for item in order.items],
                version=order.version,
                created_at=order.created_at,
            )
        )
        await self._db.flush()
        for entry in order.timeline:
            self._db.add(self._timeline_row(order.id, entry))
        await self._db.commit()
        logger.info("Order %s created for seller=%s", order.id, order.seller_id)
        return order

    async def save_transition(
        self,
        before: OrderRecord,
        after: OrderRecord,
        recipient_role: str,
    ) -> OrderRecord:
        """
        Conditionally persist `after` over `before`, append its newest timeline
        entry and enqueue the notification, all in one transaction.
        """
        entry = after.timeline[-1]
        await self._conditional_update(
            before,
            status=after.status.value,
            actual_delivery_time=after.actual_delivery_time,
            cancellation_reason=after.cancellation_reason,
            cancelled_by=after.cancelled_by.value if after.cancelled_by else None,
            updated_at=entry.timestamp,
        )
        self._db.add(self._timeline_row(after.id, entry))
        self._db.add(
            NotificationEvent(
                order_id=after.id,
                status=after.status.value,
                recipient_role=recipient_role,
                note=entry.note,
                attempts=0,
                created_at=entry.timestamp,
            )
        )
        await self._db.commit()
        return after.model_copy(update={"version": before.version + 1})

    async def save_rating(self, before: OrderRecord, after: OrderRecord) -> OrderRecord:
        rating = after.rating
        await self._conditional_update(
            before,
            rating_score=rating.score if rating else None,
            rating_review=rating.review if rating else None,
            rated_at=rating.rated_at if rating else None,
            updated_at=self._clock.now(),
        )
        await self._db.commit()
        return after.model_copy(update={"version": before.version + 1})

    async def save_payment(self, before: OrderRecord, after: OrderRecord) -> OrderRecord:
        await self._conditional_update(
            before,
            payment_status=after.payment_status.value,
            updated_at=self._clock.now(),
        )
        await self._db.commit()
        return after.model_copy(update={"version": before.version + 1})

    async def list_customer_orders(self, customer_id: str) -> list[OrderRecord]:
        result = await self._db.execute(
            _fresh(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.created_at.desc())
        )
        return [_order_record(row) for row in result.scalars().all()]

    async def _conditional_update(self, before: OrderRecord, **values: Any) -> None:
        result = await self._db.execute(
            update(Order)
            .where(Order.id == before.id, Order.version == before.version)
            .values(version=Order.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self._db.rollback()
            logger.info(
                "Conditional write lost for order %s at version %d",
                before.id, before.version,
            )
            raise ConcurrentModification(before.id, before.version)

    def _timeline_row(self, order_id: str, entry: TimelineEntry) -> OrderTimelineEntry:
        return OrderTimelineEntry(
            order_id=order_id,
            status=entry.status.value,
            actor=entry.actor.value,
            note=entry.note,
            timestamp=entry.timestamp,
        )

    async def _timelines(self, order_ids: list[str]) -> dict[str, list[OrderTimelineEntry]]:
        if not order_ids:
            return {}
        result = await self._db.execute(
            _fresh(OrderTimelineEntry)
            .where(OrderTimelineEntry.order_id.in_(order_ids))
            .order_by(OrderTimelineEntry.id)
        )
        grouped: dict[str, list[OrderTimelineEntry]] = {}
        for row in result.scalars().all():
            grouped.setdefault(row.order_id, []).append(row)
        return grouped

    # ── Analytics reads ───────────────────────────────────────────────────────

    async def list_seller_orders(
        self,
        seller_id: str,
        start: datetime,
        end: datetime,
    ) -> list[OrderRecord]:
        result = await self._db.execute(
            _fresh(Order)
            .where(
                Order.seller_id == seller_id,
                Order.created_at >= start,
                Order.created_at <= end,
            )
            .order_by(Order.created_at)
        )
        rows = result.scalars().all()
        timelines = await self._timelines([row.id for row in rows])
        return [_order_record(row, timelines.get(row.id, [])) for row in rows]

    async def customer_histories(
        self,
        seller_id: str,
        customer_ids: Iterable[str],
    ) -> dict[str, CustomerHistory]:
        """All-time first order and order count per customer with this seller."""
        ids = list(customer_ids)
        if not ids:
            return {}
        result = await self._db.execute(
            select(
                Order.customer_id,
                func.min(Order.created_at),
                func.count(Order.id),
            )
            .where(Order.seller_id == seller_id, Order.customer_id.in_(ids))
            .group_by(Order.customer_id)
        )
        return {
            customer_id: CustomerHistory(first_order_at=first, order_count=count)
            for customer_id, first, count in result.all()
        }

    async def list_seller_reviews(
        self,
        seller_id: str,
        start: datetime,
        end: datetime,
        status: Optional[str] = "active",
    ) -> list[ReviewRecord]:
        query = _fresh(Review).where(
            Review.seller_id == seller_id,
            Review.created_at >= start,
            Review.created_at <= end,
        )
        if status:
            query = query.where(Review.status == status)
        result = await self._db.execute(query)
        return [_review_record(row) for row in result.scalars().all()]

    async def list_seller_dishes(
        self,
        seller_id: str,
        active_only: bool = True,
    ) -> list[DishRecord]:
        query = _fresh(Dish).where(Dish.seller_id == seller_id)
        if active_only:
            query = query.where(Dish.is_active.is_(True))
        result = await self._db.execute(query.order_by(Dish.created_at))
        return [_dish_record(row) for row in result.scalars().all()]

    # ── Trending reads ────────────────────────────────────────────────────────

    async def list_available_dishes(
        self,
        city: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[DishRecord]:
        query = _fresh(Dish).where(_available())
        if city:
            query = query.where(func.lower(Dish.city) == city.lower())
        if category:
            query = query.where(func.lower(Dish.category) == category.lower())
        result = await self._db.execute(query.order_by(Dish.created_at))
        return [_dish_record(row) for row in result.scalars().all()]

    async def list_orders_since(self, since: datetime) -> list[OrderRecord]:
        result = await self._db.execute(
            _fresh(Order).where(Order.created_at >= since)
        )
        return [_order_record(row) for row in result.scalars().all()]

    async def list_reviews_since(
        self,
        since: datetime,
        dish_ids: Optional[list[str]] = None,
    ) -> list[ReviewRecord]:
        query = _fresh(Review).where(Review.created_at >= since, Review.status == "active")
        if dish_ids is not None:
            query = query.where(Review.dish_id.in_(dish_ids))
        result = await self._db.execute(query)
        return [_review_record(row) for row in result.scalars().all()]

    async def count_available_dishes(self, city: Optional[str] = None) -> int:
        query = select(func.count(Dish.id)).where(_available())
        if city:
            query = query.where(func.lower(Dish.city) == city.lower())
        return await self._db.scalar(query) or 0

    async def count_orders_since(self, since: datetime, statuses: Iterable[Any]) -> int:
        values = [getattr(s, "value", s) for s in statuses]
        return await self._db.scalar(
            select(func.count(Order.id))
            .where(Order.created_at >= since, Order.status.in_(values))
        ) or 0

    async def count_reviews_since(self, since: datetime) -> int:
        return await self._db.scalar(
            select(func.count(Review.id))
            .where(Review.created_at >= since, Review.status == "active")
        ) or 0

    async def category_breakdown(
        self,
        city: Optional[str] = None,
        limit: int = 5,
    ) -> list[tuple[str, int, float]]:
        """(category, dish count, mean rating) over available dishes, largest first."""
        count = func.count(Dish.id)
        query = select(Dish.category, count, func.avg(Dish.rating_average)).where(_available())
        if city:
            query = query.where(func.lower(Dish.city) == city.lower())
        result = await self._db.execute(
            query.group_by(Dish.category).order_by(count.desc(), Dish.category).limit(limit)
        )
        return [
            (category, dishes, float(avg or 0))
            for category, dishes, avg in result.all()
        ]

    # ── Dishes ────────────────────────────────────────────────────────────────

    async def create_dish(self, dish: DishRecord) -> DishRecord:
        self._db.add(Dish(**dish.model_dump()))
        await self._db.commit()
        return dish

    async def get_dish(self, dish_id: str) -> Optional[DishRecord]:
        row = await self._db.get(Dish, dish_id, populate_existing=True)
        return _dish_record(row) if row is not None else None

    async def get_dishes(self, dish_ids: list[str]) -> list[DishRecord]:
        if not dish_ids:
            return []
        result = await self._db.execute(
            _fresh(Dish).where(Dish.id.in_(dish_ids), _available())
        )
        return [_dish_record(row) for row in result.scalars().all()]

    async def list_popular_dishes(self, limit: int = 10) -> list[DishRecord]:
        result = await self._db.execute(
            _fresh(Dish)
            .where(_available())
            .order_by(
                Dish.rating_average.desc(),
                Dish.rating_count.desc(),
                Dish.popularity.desc(),
            )
            .limit(limit)
        )
        return [_dish_record(row) for row in result.scalars().all()]

    async def find_dishes_for_preferences(
        self,
        prefs: UserPreferences,
        limit: int = 10,
    ) -> list[DishRecord]:
        """Available dishes matching any stated cuisine or the dietary preference."""
        conditions = []
        if prefs.cuisines:
            conditions.append(
                func.lower(Dish.category).in_([c.lower() for c in prefs.cuisines])
            )
        dietary = (prefs.dietary or "").lower()
        if dietary == "vegetarian":
            conditions.append(Dish.dish_type == "veg")
        elif dietary == "vegan":
            conditions.append(and_(Dish.dish_type == "veg", Dish.is_vegan.is_(True)))
        if not conditions:
            return []

        result = await self._db.execute(
            _fresh(Dish)
            .where(_available(), or_(*conditions))
            .order_by(Dish.rating_average.desc(), Dish.popularity.desc())
            .limit(limit)
        )
        return [_dish_record(row) for row in result.scalars().all()]

    async def update_dish_rating(self, dish_id: str, average: float, count: int) -> None:
        await self._bump_dish(dish_id, rating_average=average, rating_count=count)

    async def increment_dish_popularity(self, dish_id: str, increment: int) -> int:
        await self._bump_dish(dish_id, popularity=Dish.popularity + increment)
        result = await self._db.execute(select(Dish.popularity).where(Dish.id == dish_id))
        return result.scalar_one()

    async def increment_dish_views(self, dish_id: str, popularity: int = 1) -> None:
        await self._bump_dish(
            dish_id,
            view_count=Dish.view_count + 1,
            popularity=Dish.popularity + popularity,
        )

    async def _bump_dish(self, dish_id: str, **values: Any) -> None:
        result = await self._db.execute(
            update(Dish)
            .where(Dish.id == dish_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._db.rollback()
            raise NotFound("Dish", dish_id)
        await self._db.commit()

    # ── Reviews ───────────────────────────────────────────────────────────────

    async def get_review(self, review_id: str) -> Optional[ReviewRecord]:
        row = await self._db.get(Review, review_id, populate_existing=True)
        return _review_record(row) if row is not None else None

    async def find_review(self, user_id: str, dish_id: str) -> Optional[ReviewRecord]:
        result = await self._db.execute(
            _fresh(Review).where(Review.user_id == user_id, Review.dish_id == dish_id)
        )
        row = result.scalar_one_or_none()
        return _review_record(row) if row is not None else None

    async def insert_review(self, review: ReviewRecord) -> ReviewRecord:
        self._db.add(Review(**review.model_dump()))
        try:
            await self._db.commit()
        except IntegrityError:
            # Unique (user_id, dish_id) lost to a concurrent insert
            await self._db.rollback()
            raise DuplicateReview(
                f"User {review.user_id} has already reviewed dish {review.dish_id}"
            )
        return review

    async def save_review(self, review: ReviewRecord) -> ReviewRecord:
        row = await self._db.get(Review, review.id)
        if row is None:
            raise NotFound("Review", review.id)
        row.rating = review.rating
        row.title = review.title
        row.comment = review.comment
        row.status = review.status
        row.updated_at = review.updated_at
        await self._db.commit()
        return _review_record(row)

    async def list_dish_reviews(
        self,
        dish_id: str,
        status: Optional[str] = "active",
    ) -> list[ReviewRecord]:
        query = _fresh(Review).where(Review.dish_id == dish_id)
        if status:
            query = query.where(Review.status == status)
        result = await self._db.execute(query.order_by(Review.created_at.desc()))
        return [_review_record(row) for row in result.scalars().all()]

    # ── Users ─────────────────────────────────────────────────────────────────

    async def upsert_user(self, user: UserRecord) -> UserRecord:
        row = await self._db.get(User, user.id)
        if row is None:
            row = User(id=user.id, created_at=self._clock.now())
            self._db.add(row)
        row.cuisines = list(user.preferences.cuisines)
        row.dietary = user.preferences.dietary
        row.spice_level = user.preferences.spice_level
        row.wishlist = list(user.wishlist)
        await self._db.commit()
        return user

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        row = await self._db.get(User, user_id, populate_existing=True)
        return _user_record(row) if row is not None else None

    async def list_similarity_candidates(
        self,
        prefs: UserPreferences,
        exclude_id: str,
    ) -> list[UserRecord]:
        """
        Users sharing at least one stated dietary, spice level or cuisine value
        with `prefs`; anyone else has a similarity of 0. Cuisines are matched
        as text inside the JSON column, the caller computes the exact score.
        """
        shared = []
        if prefs.dietary:
            shared.append(func.lower(User.dietary) == prefs.dietary.strip().lower())
        if prefs.spice_level:
            shared.append(func.lower(User.spice_level) == prefs.spice_level.strip().lower())
        for cuisine in prefs.cuisines:
            if cuisine and cuisine.strip():
                as_text = func.lower(cast(User.cuisines, String), type_=String)
                shared.append(as_text.contains(cuisine.strip().lower()))
        if not shared:
            return []

        result = await self._db.execute(
            _fresh(User).where(User.id != exclude_id, or_(*shared)).order_by(User.id)
        )
        users = [_user_record(row) for row in result.scalars().all()]
        return [u for u in users if not u.preferences.is_empty()]

    # ── View history ──────────────────────────────────────────────────────────

    @staticmethod
    def _viewer(user_id: Optional[str], session_id: Optional[str]):
        if user_id:
            return ViewHistory.user_id == user_id
        return ViewHistory.session_id == session_id

    async def latest_view(
        self,
        dish_id: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Optional[ViewRecord]:
        result = await self._db.execute(
            _fresh(ViewHistory)
            .where(ViewHistory.dish_id == dish_id, self._viewer(user_id, session_id))
            .order_by(ViewHistory.viewed_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _view_record(row) if row is not None else None

    async def insert_view(
        self,
        dish_id: str,
        user_id: Optional[str],
        session_id: Optional[str],
        viewed_at: datetime,
    ) -> ViewRecord:
        row = ViewHistory(
            dish_id=dish_id,
            user_id=user_id,
            session_id=session_id,
            viewed_at=viewed_at,
        )
        self._db.add(row)
        await self._db.commit()
        return _view_record(row)

    async def touch_view(self, view_id: int, viewed_at: datetime) -> ViewRecord:
        row = await self._db.get(ViewHistory, view_id)
        if row is None:
            raise NotFound("View", str(view_id))
        row.viewed_at = viewed_at
        await self._db.commit()
        return _view_record(row)

    async def delete_views_before(self, cutoff: datetime) -> int:
        result = await self._db.execute(
            delete(ViewHistory)
            .where(ViewHistory.viewed_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        await self._db.commit()
        return result.rowcount or 0

    async def list_views(
        self,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> list[ViewRecord]:
        result = await self._db.execute(
            _fresh(ViewHistory)
            .where(self._viewer(user_id, session_id))
            .order_by(ViewHistory.viewed_at.desc())
        )
        return [_view_record(row) for row in result.scalars().all()]

    async def list_views_since(self, since: datetime) -> list[ViewRecord]:
        result = await self._db.execute(
            _fresh(ViewHistory).where(ViewHistory.viewed_at >= since)
        )
        return [_view_record(row) for row in result.scalars().all()]

    # ── Notification outbox ───────────────────────────────────────────────────

    async def pending_notifications(
        self,
        limit: int = 100,
        max_attempts: Optional[int] = None,
    ) -> list[OrderNotification]:
        """Undispatched rows, oldest first; rows at max_attempts are left out."""
        query = _fresh(NotificationEvent).where(NotificationEvent.dispatched_at.is_(None))
        if max_attempts is not None:
            query = query.where(NotificationEvent.attempts < max_attempts)
        result = await self._db.execute(query.order_by(NotificationEvent.id).limit(limit))
        return [_notification(row) for row in result.scalars().all()]

    async def mark_notification_dispatched(self, event_id: int) -> None:
        await self._db.execute(
            update(NotificationEvent)
            .where(NotificationEvent.id == event_id)
            .values(
                dispatched_at=self._clock.now(),
                attempts=NotificationEvent.attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )
        await self._db.commit()

    async def mark_notification_failed(self, event_id: int, error: str) -> None:
        await self._db.execute(
            update(NotificationEvent)
            .where(NotificationEvent.id == event_id)
            .values(
                attempts=NotificationEvent.attempts + 1,
                last_error=error[:1000],
            )
            .execution_options(synchronize_session=False)
        )
        await self._db.commit()
