"""Subscription model: one user's seat (and presence) in one event."""

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, IdMixin


class Subscription(IdMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "subscriptions"
    __table_args__ = (sa.UniqueConstraint("event_id", "user_id", name="uq_subscriptions_pair"),)

    event_id: int = Field(foreign_key="events.id", ondelete="CASCADE", nullable=False, index=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    student_presence: bool = Field(default=False, nullable=False)
