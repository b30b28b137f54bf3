"""SQLAlchemy ORM models package."""

from tastesphere.database import Base
from tastesphere.models.user import User
from tastesphere.models.dish import Dish
from tastesphere.models.order import NotificationEvent, Order, OrderTimelineEntry
from tastesphere.models.review import Review
from tastesphere.models.view_history import ViewHistory

__all__ = [
    "Base", "User", "Dish", "Order", "OrderTimelineEntry",
    "NotificationEvent", "Review", "ViewHistory",
]
