"""ViewHistory ORM model — dish views by a user or an anonymous session."""

from sqlalchemy import CheckConstraint, Column, Integer, String, Index

from tastesphere.database import Base, UTCDateTime


class ViewHistory(Base):
    """
    One row per (viewer, dish) view. Repeat views inside the coalesce
    window refresh viewed_at on the existing row instead of adding one.
    """

    __tablename__ = "view_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dish_id = Column(String(36), nullable=False)
    user_id = Column(String(36), nullable=True)
    session_id = Column(String(128), nullable=True)
    viewed_at = Column(UTCDateTime, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint(
            "user_id IS NOT NULL OR session_id IS NOT NULL",
            name="ck_view_history_viewer",
        ),
        Index("ix_view_history_user_dish", "user_id", "dish_id"),
        Index("ix_view_history_session_dish", "session_id", "dish_id"),
    )
