"""Assistance event model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, IdMixin


class Event(IdMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "events"
    __table_args__ = (
        sa.CheckConstraint(
            "available_vacancies >= 0 AND available_vacancies <= total_vacancies",
            name="ck_events_vacancy_bound",
        ),
    )

    owner_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    course_id: Optional[int] = Field(default=None, foreign_key="courses.id")
    title: str = Field(nullable=False)
    description: Optional[str] = None
    date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    total_vacancies: int = Field(nullable=False)
    available_vacancies: int = Field(nullable=False)
    available: bool = Field(default=True, nullable=False)
    suspended_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
