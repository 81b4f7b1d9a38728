"""
Assistance event service: listings, search and lifecycle.

Handles:
- Listings and lookups with caller projections (joins inferred from fields)
- Free-text search by name, tag or name/tag/description
- Atomic creation of an event with its address and tags
- Partial update, soft disable and hard delete

Every function takes the request's session; committing or rolling back is the
caller's job. Ids are decoded on the way in and encoded on the way out.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from assistance.core.errors import (
    EventNotFound,
    InvalidQueryMode,
    NotFoundError,
    ValidationError,
)
from assistance.core.identifiers import IdentifierCodec
from assistance.models import Tag, User
from assistance.query import (
    EVENT_CATALOG,
    ConstraintViolation,
    FilterOptions,
    QueryComposer,
    apply_filters,
    resolve_joins,
)
from assistance.query.filters import normalize_direction
from assistance.schemas.events import SearchMode

log = structlog.get_logger()

UPDATABLE_FIELDS = frozenset(
    {"title", "description", "date", "total_vacancies", "available_vacancies", "course_id"}
)
SEARCH_FIELDS = ("tag.name", "event.title", "event.description")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def event_query(session: AsyncSession, fields: Optional[Sequence[str]] = None) -> QueryComposer:
    """A composer over the event catalog with the projection's joins in place."""
    return QueryComposer(session, EVENT_CATALOG).from_().apply_plan(
        resolve_joins(EVENT_CATALOG, fields)
    )


def _with_tags(composer: QueryComposer) -> QueryComposer:
    return composer.left_join("eventTag").left_join("tag").distinct()


async def require_user(session: AsyncSession, user_id: int) -> None:
    if await session.get(User, user_id) is None:
        raise NotFoundError("User not found")


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


async def list_events(
    session: AsyncSession,
    codec: IdentifierCodec,
    *,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    available: Any = None,
    order: Optional[str] = None,
    fields: Optional[Sequence[str]] = None,
) -> list[dict]:
    """All events, newest first unless ``order`` says otherwise."""
    composer = event_query(session, fields)
    composer.order_by("event.id", normalize_direction(order) if order else "DESC")
    apply_filters(composer, FilterOptions(limit=limit, offset=offset, available=available))
    return codec.encode_rows(await composer.resolve())


async def get_event(
    session: AsyncSession,
    codec: IdentifierCodec,
    event_token: str,
    fields: Optional[Sequence[str]] = None,
) -> dict:
    event_id = codec.decode(event_token)
    rows = await event_query(session, fields).where("event.id", event_id).resolve()
    if not rows:
        raise EventNotFound()
    return codec.encode_row(rows[0])


async def list_created_events(
    session: AsyncSession,
    codec: IdentifierCodec,
    user_token: str,
    fields: Optional[Sequence[str]] = None,
    options: Optional[FilterOptions] = None,
) -> list[dict]:
    """Events owned by a user."""
    owner_id = codec.decode(user_token)
    composer = event_query(session, fields).where("event.owner_id", owner_id)
    apply_filters(composer, options, codec)
    return codec.encode_rows(await composer.resolve())


async def search_events(
    session: AsyncSession,
    codec: IdentifierCodec,
    mode: Any,
    terms: Optional[Sequence[str]] = None,
    options: Optional[FilterOptions] = None,
    fields: Optional[Sequence[str]] = None,
) -> list[dict]:
    try:
        mode = SearchMode(mode)
    except ValueError:
        raise InvalidQueryMode(f"Query option '{mode}' does not exist") from None
    terms = [t for t in (terms or []) if t]

    if mode == SearchMode.ID:
        if not terms:
            raise ValidationError("Search by id needs an identifier")
        return [await get_event(session, codec, terms[0], fields)]

    composer = event_query(session, fields)
    if mode == SearchMode.NAME:
        if terms:
            composer.where_like("event.title", terms[0])
    else:
        _with_tags(composer).where_any_like(terms, SEARCH_FIELDS)
        if mode == SearchMode.TAG:
            # Rows are folded per event, whatever the caller projected.
            composer.select(["event.id"])
    apply_filters(composer, options, codec)

    rows = codec.encode_rows(await composer.resolve())
    if mode == SearchMode.TAG:
        events: dict[Any, dict] = {}
        for row in rows:
            events.setdefault(row["event"]["id"], {"event": row["event"]})
        return list(events.values())
    return rows


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def _insert_address(session: AsyncSession, event_id: int, address_fields: dict) -> None:
    await QueryComposer(session, EVENT_CATALOG).insert(
        "address", {**address_fields, "event_id": event_id}
    ).resolve()


async def _find_tag(session: AsyncSession, name: str) -> Optional[int]:
    result = await session.execute(select(Tag.id).where(Tag.name == name))
    return result.scalar_one_or_none()


async def _link_tags(session: AsyncSession, event_id: int, tags: Iterable[str]) -> None:
    names = dict.fromkeys(t.strip() for t in tags if t and t.strip())
    for name in names:
        tag_id = await _find_tag(session, name)
        if tag_id is None:
            inserted = await QueryComposer(session, EVENT_CATALOG).insert("tag", {"name": name}).resolve()
            tag_id = inserted.inserted_id
        await QueryComposer(session, EVENT_CATALOG).insert(
            "eventTag", {"event_id": event_id, "tag_id": tag_id}
        ).resolve()


async def create_event(
    session: AsyncSession,
    codec: IdentifierCodec,
    owner_token: str,
    event_fields: dict,
    address_fields: dict,
    tags: Optional[Iterable[str]] = None,
) -> dict:
    """Create an event with its address (and tags) in the caller's transaction.

    Any failing step raises, and the session scope rolls back everything
    written before it, the event row included.
    """
    owner_id = codec.decode(owner_token)
    await require_user(session, owner_id)

    values = {k: v for k, v in event_fields.items() if k in UPDATABLE_FIELDS}
    if "course_id" in values:
        values["course_id"] = codec.decode_optional(values["course_id"])
    total = values.get("total_vacancies")
    if total is None or total < 0:
        raise ValidationError("total_vacancies must be a non-negative integer")
    values.setdefault("available_vacancies", total)
    if not 0 <= values["available_vacancies"] <= total:
        raise ValidationError("available_vacancies must be between 0 and total_vacancies")

    inserted = await QueryComposer(session, EVENT_CATALOG).insert(
        "event", {**values, "owner_id": owner_id, "available": True}
    ).resolve()
    event_id = inserted.inserted_id

    await _insert_address(session, event_id, address_fields)
    if tags:
        await _link_tags(session, event_id, tags)

    log.info("event.created", event_id=event_id, owner_id=owner_id)
    return {"event_id": codec.encode(event_id)}


async def update_event(
    session: AsyncSession,
    codec: IdentifierCodec,
    event_token: str,
    fields: dict,
) -> None:
    """Partial update. ``id`` and ``owner_id`` are never writable."""
    event_id = codec.decode(event_token)
    values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
    if "course_id" in values:
        values["course_id"] = codec.decode_optional(values["course_id"])
    if not values:
        raise ValidationError("Nothing to update")

    try:
        matched = await (
            QueryComposer(session, EVENT_CATALOG)
            .update("event", values)
            .where("id", event_id)
            .resolve()
        )
    except ConstraintViolation as exc:
        raise ValidationError("Update violates a data constraint (vacancy bound or unknown course)") from exc
    if matched == 0:
        raise EventNotFound()
    log.info("event.updated", event_id=event_id, fields=sorted(values))


async def disable_event(session: AsyncSession, codec: IdentifierCodec, event_token: str) -> None:
    """Soft delete: the event stays, but stops taking subscriptions."""
    event_id = codec.decode(event_token)
    matched = await (
        QueryComposer(session, EVENT_CATALOG)
        .update("event", {"available": False, "suspended_date": datetime.now(timezone.utc)})
        .where("id", event_id)
        .resolve()
    )
    if matched == 0:
        raise EventNotFound()
    log.info("event.disabled", event_id=event_id)


async def delete_event(session: AsyncSession, codec: IdentifierCodec, event_token: str) -> None:
    event_id = codec.decode(event_token)
    deleted = await QueryComposer(session, EVENT_CATALOG).delete("event").where("id", event_id).resolve()
    if deleted == 0:
        raise EventNotFound()
    log.info("event.deleted", event_id=event_id)
