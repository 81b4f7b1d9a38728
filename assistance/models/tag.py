"""Free-form tags and the event/tag join table."""

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import IdMixin


class Tag(IdMixin, SQLModel, table=True):
    __tablename__ = "tags"

    name: str = Field(nullable=False, unique=True, index=True)


class EventTag(IdMixin, SQLModel, table=True):
    __tablename__ = "event_tags"
    __table_args__ = (sa.UniqueConstraint("event_id", "tag_id", name="uq_event_tags_pair"),)

    event_id: int = Field(foreign_key="events.id", ondelete="CASCADE", nullable=False, index=True)
    tag_id: int = Field(foreign_key="tags.id", ondelete="CASCADE", nullable=False)
