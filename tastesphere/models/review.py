"""Review ORM model — one rating + comment per (user, dish), soft-deleted only."""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, UniqueConstraint

from tastesphere.database import Base, UTCDateTime


class Review(Base):
    """
    A customer's review of a dish.
    Rows are never physically deleted: status 'deleted' removes a review
    from the dish's rating aggregate while keeping it on record.
    """

    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), nullable=False, index=True)
    dish_id = Column(
        String(36),
        ForeignKey("dishes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    seller_id = Column(String(36), nullable=False, index=True)

    rating = Column(Integer, nullable=False)   # 1–5
    title = Column(String(100), nullable=False, default="")
    comment = Column(Text, nullable=False, default="")

    status = Column(String(16), nullable=False, default="active")
    # 'active' | 'hidden' | 'reported' | 'deleted'

    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "dish_id", name="uq_reviews_user_dish"),
    )
