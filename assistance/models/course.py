"""Course and subject reference data."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import IdMixin


class Course(IdMixin, SQLModel, table=True):
    __tablename__ = "courses"

    name: str = Field(nullable=False)
    description: Optional[str] = None


class Subject(IdMixin, SQLModel, table=True):
    __tablename__ = "subjects"

    course_id: int = Field(foreign_key="courses.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None
