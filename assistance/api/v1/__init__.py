"""
API v1 Router
"""

from fastapi import APIRouter
from . import events, users

router = APIRouter()

router.include_router(events.router, prefix="/events", tags=["Events"])
router.include_router(users.router, prefix="/users", tags=["Users"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/events",
            "/events/search",
            "/events/{eventId}/subscribers",
            "/users/{userId}/events/created",
            "/users/{userId}/events/subscribed",
        ],
    }
