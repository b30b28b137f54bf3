"""User ORM model — stated food preferences and the dish wishlist."""

from sqlalchemy import Column, String, JSON

from tastesphere.database import Base, UTCDateTime


class User(Base):
    """
    A customer as seen by the recommendation engine.
    Identity and authentication live elsewhere; `id` is the opaque X-User-ID.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)

    cuisines = Column(JSON, nullable=False, default=list)
    dietary = Column(String(32), nullable=True)       # 'vegetarian' | 'vegan' | ...
    spice_level = Column(String(16), nullable=True)   # 'mild' | 'medium' | 'hot'

    # Dish ids, most recently added last
    wishlist = Column(JSON, nullable=False, default=list)

    created_at = Column(UTCDateTime, nullable=True)
