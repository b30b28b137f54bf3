"""Order ORM models — order row, its append-only timeline and the notification outbox."""

from sqlalchemy import Column, Integer, Numeric, String, Text, JSON, ForeignKey, Index

from tastesphere.database import Base, UTCDateTime


class Order(Base):
    """
    One customer purchase.
    `version` backs the optimistic-concurrency check on status transitions:
    every write is conditional on the version the writer read.
    """

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    seller_id = Column(String(36), nullable=False, index=True)
    customer_id = Column(String(36), nullable=False, index=True)

    status = Column(String(32), nullable=False, default="pending_seller")
    payment_status = Column(String(16), nullable=False, default="pending")
    payment_method = Column(String(32), nullable=False, default="cod")
    total_amount = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)

    # [{"dish_id": "...", "quantity": 2}, ...] — immutable after creation
    items = Column(JSON, nullable=False, default=list)

    actual_delivery_time = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(16), nullable=True)

    rating_score = Column(Integer, nullable=True)
    rating_review = Column(Text, nullable=True)
    rated_at = Column(UTCDateTime, nullable=True)

    version = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("ix_orders_seller_created", "seller_id", "created_at"),
    )


class OrderTimelineEntry(Base):
    """Audit trail — one row per successful transition, never updated."""

    __tablename__ = "order_timeline"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(String(32), nullable=False)
    actor = Column(String(16), nullable=False)
    note = Column(Text, nullable=False, default="")
    timestamp = Column(UTCDateTime, nullable=False)


class NotificationEvent(Base):
    """
    Transactional outbox row, written alongside each transition.
    Pending while dispatched_at is NULL.
    """

    __tablename__ = "notification_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(String(32), nullable=False)
    recipient_role = Column(String(16), nullable=False)   # 'customer' | 'seller'
    note = Column(Text, nullable=False, default="")

    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False)
    dispatched_at = Column(UTCDateTime, nullable=True, index=True)
