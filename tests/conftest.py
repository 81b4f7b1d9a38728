"""
Shared fixtures: a throwaway SQLite database per test, a codec, and seed data.
"""

from types import SimpleNamespace
from typing import Optional

import pytest

from assistance.core.config import Settings
from assistance.core.database import Database
from assistance.core.identifiers import IdentifierCodec
from assistance.models import Course, Event, Subject, User
from assistance.services import events as event_service

TEST_SECRET = "test-secret"


@pytest.fixture
def codec() -> IdentifierCodec:
    return IdentifierCodec(TEST_SECRET)


@pytest.fixture
def settings() -> Settings:
    return Settings(identifier_secret=TEST_SECRET, create_tables=False)


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'assistance.db'}")
    await db.init_db()
    yield db
    await db.dispose()


@pytest.fixture
async def seed(database, codec):
    """Two courses (one with a subject) and three users."""
    async with database.session() as session:
        computing = Course(name="Computer Science", description="Programming and theory")
        maths = Course(name="Mathematics", description="Pure and applied")
        session.add_all([computing, maths])
        await session.flush()

        session.add(Subject(course_id=computing.id, name="Algorithms", description="Sorting and graphs"))
        owner = User(
            full_name="Ada Owner",
            email="ada@example.com",
            course_id=maths.id,
            password_hash="not-a-real-hash",
            assistant_stars=5,
            verified_assistant=True,
        )
        student = User(full_name="Sam Student", email="sam@example.com", course_id=computing.id)
        other = User(full_name="Olive Other", email="olive@example.com")
        session.add_all([owner, student, other])
        await session.flush()

        ids = SimpleNamespace(
            computing=computing.id,
            maths=maths.id,
            owner=owner.id,
            student=student.id,
            other=other.id,
        )

    return SimpleNamespace(
        ids=ids,
        computing=codec.encode(ids.computing),
        maths=codec.encode(ids.maths),
        owner=codec.encode(ids.owner),
        student=codec.encode(ids.student),
        other=codec.encode(ids.other),
    )


@pytest.fixture
def make_event(database, codec, seed):
    """Create an event (with address) through the service; returns its token."""

    async def _make(
        title: str = "Algorithms study group",
        *,
        total: int = 2,
        available: Optional[int] = None,
        description: str = "Weekly practice",
        course: Optional[str] = None,
        tags: Optional[list[str]] = None,
        owner: Optional[str] = None,
        address: Optional[dict] = None,
    ) -> str:
        event_fields = {"title": title, "description": description, "total_vacancies": total}
        if available is not None:
            event_fields["available_vacancies"] = available
        if course is not None:
            event_fields["course_id"] = course
        async with database.session() as session:
            created = await event_service.create_event(
                session,
                codec,
                owner or seed.owner,
                event_fields,
                address if address is not None else {"street": "Main Street", "number": "42"},
                tags,
            )
        return created["event_id"]

    return _make


@pytest.fixture
def load_event(database, codec):
    """Read an event row straight from the table."""

    async def _load(event_token: str) -> Optional[Event]:
        async with database.session() as session:
            return await session.get(Event, codec.decode(event_token))

    return _load
