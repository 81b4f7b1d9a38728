"""Assistance request schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class SearchMode(str, Enum):
    ALL = "all"
    ID = "id"
    NAME = "name"
    TAG = "tag"


ADDRESS_FIELDS = ("cep", "street", "number", "complement", "reference", "nickname", "latitude", "longitude")
EVENT_FIELDS = ("title", "description", "date", "total_vacancies", "available_vacancies", "course_id")


# ---------------------------------------------------------------------------
# Event CRUD
# ---------------------------------------------------------------------------

class EventCreate(BaseModel):
    """Event, address and tags in one body; they are stored together."""

    title: str = Field(min_length=1)
    description: Optional[str] = None
    date: Optional[datetime] = None
    total_vacancies: int = Field(ge=0)
    available_vacancies: Optional[int] = Field(default=None, ge=0)
    course_id: Optional[str] = None  # opaque token

    cep: Optional[str] = None
    street: Optional[str] = None
    number: Optional[str] = None
    complement: Optional[str] = None
    reference: Optional[str] = None
    nickname: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    tags: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _vacancies_within_total(self) -> "EventCreate":
        if self.available_vacancies is not None and self.available_vacancies > self.total_vacancies:
            raise ValueError("available_vacancies can not exceed total_vacancies")
        return self

    def event_fields(self) -> dict:
        return self.model_dump(include=set(EVENT_FIELDS), exclude_none=True)

    def address_fields(self) -> dict:
        return self.model_dump(include=set(ADDRESS_FIELDS), exclude_none=True)


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    date: Optional[datetime] = None
    total_vacancies: Optional[int] = Field(default=None, ge=0)
    available_vacancies: Optional[int] = Field(default=None, ge=0)
    course_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Presence
# ---------------------------------------------------------------------------

class PresenceConfirm(BaseModel):
    user_code: Optional[str] = Field(default=None, alias="userCode")

    model_config = {"populate_by_name": True}
