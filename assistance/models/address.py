"""Address model (one-to-one with an event, created in the same transaction)."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import IdMixin


class Address(IdMixin, SQLModel, table=True):
    __tablename__ = "addresses"

    event_id: int = Field(foreign_key="events.id", ondelete="CASCADE", unique=True, nullable=False)
    cep: Optional[str] = None
    street: Optional[str] = None
    number: Optional[str] = None
    complement: Optional[str] = None
    reference: Optional[str] = None
    nickname: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
