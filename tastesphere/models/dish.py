"""Dish ORM model — a seller's catalog item with its cached rating and counters."""

from sqlalchemy import Boolean, Column, Float, Integer, Numeric, String, Text, Index

from tastesphere.database import Base, UTCDateTime


class Dish(Base):
    """
    rating_average / rating_count are recomputed from active reviews after
    every review write. popularity and view_count are bumped by view, cart
    and order events. None of the four is authoritative.
    """

    __tablename__ = "dishes"

    id = Column(String(36), primary_key=True)
    seller_id = Column(String(36), nullable=False, index=True)

    name = Column(Text, nullable=False)
    category = Column(String(64), nullable=False, default="Main Course")
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    dish_type = Column(String(10), nullable=False, default="veg")   # 'veg' | 'non-veg'
    is_vegan = Column(Boolean, nullable=False, default=False)
    city = Column(String(64), nullable=True, index=True)

    is_active = Column(Boolean, nullable=False, default=True)
    availability = Column(Boolean, nullable=False, default=True)

    # Derived caches
    rating_average = Column(Float, nullable=False, default=0.0)
    rating_count = Column(Integer, nullable=False, default=0)
    popularity = Column(Integer, nullable=False, default=0)
    view_count = Column(Integer, nullable=False, default=0)

    created_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_dishes_category", "category"),
    )
