"""
Per-user assistance listings.

GET /api/v1/users/{userId}/events/created       : Events the user owns
GET /api/v1/users/{userId}/events/subscribed    : Events the user is subscribed to
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from assistance.api.deps import get_codec, parse_json_mapping, projection
from assistance.core.database import get_session
from assistance.core.identifiers import IdentifierCodec
from assistance.query import FilterOptions
from assistance.services import events as event_service
from assistance.services import subscriptions as subscription_service

router = APIRouter()


def listing_options(
    available: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    orderBy: Optional[str] = None,
    filter: Optional[str] = None,
) -> FilterOptions:
    return FilterOptions(
        filter=parse_json_mapping(filter, "filter"),
        limit=limit,
        offset=offset,
        order_by=parse_json_mapping(orderBy, "orderBy"),
        available=available,
    )


@router.get("/{user_id}/events/created")
async def list_created_events(
    user_id: str,
    options: FilterOptions = Depends(listing_options),
    fields: Optional[List[str]] = Depends(projection),
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    return await event_service.list_created_events(session, codec, user_id, fields, options)


@router.get("/{user_id}/events/subscribed")
async def list_subscribed_events(
    user_id: str,
    options: FilterOptions = Depends(listing_options),
    fields: Optional[List[str]] = Depends(projection),
    codec: IdentifierCodec = Depends(get_codec),
    session: AsyncSession = Depends(get_session),
):
    return await subscription_service.list_subscribed_events(session, codec, user_id, fields, options)
