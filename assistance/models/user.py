"""User model. The same table plays the owner and the subscriber roles."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, IdMixin


class User(IdMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "users"

    course_id: Optional[int] = Field(default=None, foreign_key="courses.id")
    full_name: str = Field(nullable=False)
    email: Optional[str] = Field(default=None, unique=True, index=True)
    password_hash: Optional[str] = Field(default=None)  # never projectable
    assistant_stars: int = Field(default=0, nullable=False)
    verified_assistant: bool = Field(default=False, nullable=False)
