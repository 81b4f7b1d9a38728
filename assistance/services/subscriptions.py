"""
Subscription ledger: seats, subscriptions and presence for assistance events.

Per (event, user) pair: not subscribed -> subscribed (presence unconfirmed)
-> presence confirmed; unsubscribe goes back to not subscribed.

The vacancy counter only moves through conditional UPDATEs whose affected-row
count decides the outcome, in the same transaction as the subscription row.
Any error raised here leaves the caller's session to roll back, so a rejected
call never leaves a partial write behind.
"""

from __future__ import annotations

from typing import Any, Collection, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from assistance.core.errors import (
    AlreadySubscribed,
    AuthorizationError,
    EventNotFound,
    EventUnavailable,
    NoVacancies,
    NotSubscribed,
    SelfSubscription,
    ValidationError,
)
from assistance.core.identifiers import IdentifierCodec
from assistance.query import (
    EVENT_CATALOG,
    SUBSCRIBER_CATALOG,
    ConstraintViolation,
    FilterOptions,
    QueryComposer,
    apply_filters,
    resolve_joins,
)
from assistance.query.relations import RESTRICTED_COLUMNS
from assistance.services.events import require_user, event_query

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _load_event(session: AsyncSession, event_id: int) -> dict[str, Any]:
    rows = await (
        QueryComposer(session, EVENT_CATALOG)
        .select(["event.id", "event.owner_id", "event.available", "event.available_vacancies"])
        .where("event.id", event_id)
        .resolve()
    )
    if not rows:
        raise EventNotFound()
    return rows[0]["event"]


def _require_open_to(event: dict[str, Any], user_id: int) -> None:
    if not event["available"]:
        raise EventUnavailable()
    if event["owner_id"] == user_id:
        raise SelfSubscription()


async def _find_subscription(
    session: AsyncSession,
    event_id: int,
    user_id: int,
    fields: Optional[Sequence[str]] = None,
) -> Optional[dict]:
    composer = QueryComposer(session, SUBSCRIBER_CATALOG)
    if fields:
        composer.apply_plan(resolve_joins(SUBSCRIBER_CATALOG, fields))
    else:
        composer.select(["subscription.id"])
    rows = await (
        composer.where("subscription.event_id", event_id)
        .where("subscription.user_id", user_id)
        .resolve()
    )
    return rows[0] if rows else None


async def set_subscription_fields(
    session: AsyncSession, event_id: int, user_id: int, values: dict[str, Any]
) -> int:
    """Update one subscription row; returns the number of rows matched."""
    return await (
        QueryComposer(session, SUBSCRIBER_CATALOG)
        .update("subscription", values)
        .where("event_id", event_id)
        .where("user_id", user_id)
        .resolve()
    )


# ---------------------------------------------------------------------------
# Subscribe / unsubscribe
# ---------------------------------------------------------------------------


async def subscribe(
    session: AsyncSession, codec: IdentifierCodec, event_token: str, user_token: str
) -> None:
    event_id = codec.decode(event_token)
    user_id = codec.decode(user_token)

    event = await _load_event(session, event_id)
    _require_open_to(event, user_id)
    await require_user(session, user_id)
    if await _find_subscription(session, event_id, user_id) is not None:
        raise AlreadySubscribed()

    # Check and decrement in one statement; concurrent callers can not both
    # take the last seat.
    claimed = await (
        QueryComposer(session, EVENT_CATALOG)
        .update("event")
        .increment("available_vacancies", -1)
        .where("id", event_id)
        .where("available", True)
        .where("available_vacancies", 0, op=">")
        .resolve()
    )
    if claimed == 0:
        log.info("subscription.rejected", event_id=event_id, user_id=user_id, reason="no_vacancies")
        raise NoVacancies()

    try:
        await QueryComposer(session, SUBSCRIBER_CATALOG).insert(
            "subscription",
            {"event_id": event_id, "user_id": user_id, "student_presence": False},
        ).resolve()
    except ConstraintViolation as exc:
        raise AlreadySubscribed() from exc

    log.info("subscription.created", event_id=event_id, user_id=user_id)


async def unsubscribe(
    session: AsyncSession, codec: IdentifierCodec, event_token: str, user_token: str
) -> None:
    event_id = codec.decode(event_token)
    user_id = codec.decode(user_token)

    event = await _load_event(session, event_id)
    _require_open_to(event, user_id)

    deleted = await (
        QueryComposer(session, SUBSCRIBER_CATALOG)
        .delete("subscription")
        .where("event_id", event_id)
        .where("user_id", user_id)
        .resolve()
    )
    if deleted == 0:
        raise NotSubscribed()

    released = await (
        QueryComposer(session, EVENT_CATALOG)
        .update("event")
        .increment("available_vacancies", 1)
        .where("id", event_id)
        .where_columns("available_vacancies", "<", "total_vacancies")
        .resolve()
    )
    if released == 0:
        log.warning("subscription.vacancy_at_total", event_id=event_id)

    log.info("subscription.deleted", event_id=event_id, user_id=user_id)


# ---------------------------------------------------------------------------
# Presence
# ---------------------------------------------------------------------------


async def give_presence(
    session: AsyncSession,
    codec: IdentifierCodec,
    event_token: str,
    subscriber_token: Optional[str],
) -> None:
    """Confirm a subscriber's presence. Confirming twice is not an error."""
    if not subscriber_token:
        raise ValidationError("User code is invalid. Send a valid user code.")
    event_id = codec.decode(event_token)
    user_id = codec.decode(subscriber_token)

    matched = await set_subscription_fields(session, event_id, user_id, {"student_presence": True})
    if matched == 0:
        raise NotSubscribed()
    log.info("presence.confirmed", event_id=event_id, user_id=user_id)


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


def _require_allowed(fields: Sequence[str], allowed_fields: Optional[Collection[str]]) -> None:
    for field in fields:
        column = field.rpartition(".")[2] if isinstance(field, str) else ""
        if column in RESTRICTED_COLUMNS:
            raise AuthorizationError()
        if allowed_fields is not None and field not in allowed_fields:
            raise AuthorizationError()


async def list_subscribers(
    session: AsyncSession,
    codec: IdentifierCodec,
    event_token: str,
    requester_token: str,
    fields: Optional[Sequence[str]],
    allowed_fields: Optional[Collection[str]] = None,
) -> list[dict]:
    """Subscribers of an event, visible to its owner and its subscribers.

    ``allowed_fields``, when given, is the projection the caller's role may
    request; anything outside it is refused.
    """
    event_id = codec.decode(event_token)
    requester_id = codec.decode(requester_token)

    event = await _load_event(session, event_id)
    if event["owner_id"] != requester_id:
        if await _find_subscription(session, event_id, requester_id) is None:
            raise AuthorizationError("Only the owner and subscribers can list subscribers")

    if not fields:
        raise ValidationError("Fields must be filled")
    _require_allowed(fields, allowed_fields)

    rows = await (
        QueryComposer(session, SUBSCRIBER_CATALOG)
        .apply_plan(resolve_joins(SUBSCRIBER_CATALOG, fields))
        .where("subscription.event_id", event_id)
        .order_by("subscription.id", "ASC")
        .resolve()
    )
    return codec.encode_rows(rows)


async def get_subscription(
    session: AsyncSession,
    codec: IdentifierCodec,
    event_token: str,
    user_token: str,
    fields: Optional[Sequence[str]] = None,
) -> Optional[dict]:
    """One user's subscription to an event, or None."""
    row = await _find_subscription(
        session,
        codec.decode(event_token),
        codec.decode(user_token),
        fields or SUBSCRIBER_CATALOG.default_fields,
    )
    return codec.encode_row(row) if row is not None else None


async def list_subscribed_events(
    session: AsyncSession,
    codec: IdentifierCodec,
    user_token: str,
    fields: Optional[Sequence[str]] = None,
    options: Optional[FilterOptions] = None,
) -> list[dict]:
    """Events a user holds a subscription to."""
    user_id = codec.decode(user_token)
    composer = event_query(session, fields).join("subscription").where("subscription.user_id", user_id)
    apply_filters(composer, options, codec)
    return codec.encode_rows(await composer.resolve())
