"""
Assistance endpoints: listings, search, lifecycle, subscriptions and presence.

GET    /api/v1/events                           : List events
GET    /api/v1/events/search                    : Search (q = all | id | name | tag)
GET    /api/v1/events/{eventId}                 : Get one event
POST   /api/v1/events                           : Create event + address (+ tags)
PATCH  /api/v1/events/{eventId}                 : Partial update
POST   /api/v1/events/{eventId}/disable         : Soft disable
DELETE /api/v1/events/{eventId}                 : Hard delete
POST   /api/v1/events/{eventId}/subscription    : Subscribe the caller
DELETE /api/v1/events/{eventId}/subscription    : Unsubscribe the caller
GET    /api/v1/events/{eventId}/subscribers     : List subscribers
POST   /api/v1/events/{eventId}/presence        : Confirm a subscriber's presence
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from assistance.api.deps import (
    caller_token,
    get_codec,
    parse_json_mapping,
    parse_list,
    projection,
)
from assistance.core.database import get_session
from assistance.core.identifiers import IdentifierCodec
from assistance.query import FilterOptions
from assistance.schemas.events import EventCreate, EventUpdate, PresenceConfirm
from assistance.services import events as event_service
from assistance.services import subscriptions as subscription_service

router = APIRouter()


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


@router.get("/")
async def list_events(
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    available: Optional[str] = None,
    order: Optional[str] = None,
    fields: Optional[List[str]] = Depends(projection),
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    return await event_service.list_events(
        session,
        codec,
        limit=limit,
        offset=offset,
        available=available,
        order=order,
        fields=fields,
    )


@router.get("/search")
async def search_events(
    q: Optional[str] = None,
    search: Optional[str] = None,
    available: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    orderBy: Optional[str] = None,
    filter: Optional[str] = None,
    fields: Optional[List[str]] = Depends(projection),
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    """Search events. ``orderBy`` and ``filter`` are JSON objects; only the first
    ``orderBy`` entry is used."""
    options = FilterOptions(
        filter=parse_json_mapping(filter, "filter"),
        limit=limit,
        offset=offset,
        order_by=parse_json_mapping(orderBy, "orderBy"),
        available=available,
    )
    return await event_service.search_events(
        session, codec, q, parse_list(search), options, fields
    )


@router.get("/{event_id}")
async def get_event(
    event_id: str,
    fields: Optional[List[str]] = Depends(projection),
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    return await event_service.get_event(session, codec, event_id, fields)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post("/", status_code=201)
async def create_event(
    body: EventCreate,
    caller: str = Depends(caller_token),
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    created = await event_service.create_event(
        session, codec, caller, body.event_fields(), body.address_fields(), body.tags
    )
    return {"message": "Assistance created", **created}


@router.patch("/{event_id}")
async def update_event(
    event_id: str,
    body: EventUpdate,
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    await event_service.update_event(session, codec, event_id, body.model_dump(exclude_unset=True))
    return {"message": "Assistance updated successfully"}


@router.post("/{event_id}/disable")
async def disable_event(
    event_id: str,
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    await event_service.disable_event(session, codec, event_id)
    return {"message": "Assistance suspended successfully"}


@router.delete("/{event_id}")
async def delete_event(
    event_id: str,
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    await event_service.delete_event(session, codec, event_id)
    return {"message": "Assistance deleted successfully"}


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


@router.post("/{event_id}/subscription")
async def subscribe(
    event_id: str,
    caller: str = Depends(caller_token),
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    await subscription_service.subscribe(session, codec, event_id, caller)
    return {"message": "User subscribed successfully"}


@router.delete("/{event_id}/subscription")
async def unsubscribe(
    event_id: str,
    caller: str = Depends(caller_token),
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    await subscription_service.unsubscribe(session, codec, event_id, caller)
    return {"message": "User unsubscribed successfully"}


@router.get("/{event_id}/subscribers")
async def list_subscribers(
    event_id: str,
    fields: Optional[List[str]] = Depends(projection),
    caller: str = Depends(caller_token),
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    return await subscription_service.list_subscribers(session, codec, event_id, caller, fields)


@router.post("/{event_id}/presence")
async def give_presence(
    event_id: str,
    body: PresenceConfirm,
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    await subscription_service.give_presence(session, codec, event_id, body.user_code)
    return {"message": "Presence confirmed successfully"}
