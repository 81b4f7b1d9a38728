"""
Request dependencies shared by the routers.

Authentication happens upstream: the gateway verifies the caller and forwards
their opaque user token in ``X-User-Token``.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional

from fastapi import Header, Query, Request

from assistance.core.errors import AuthorizationError, ValidationError
from assistance.core.identifiers import IdentifierCodec


def get_codec(request: Request) -> IdentifierCodec:
    return request.app.state.codec


def caller_token(x_user_token: Optional[str] = Header(None)) -> str:
    if not x_user_token:
        raise AuthorizationError("Missing caller identity")
    return x_user_token


def projection(fields: Optional[List[str]] = Query(None)) -> Optional[List[str]]:
    """``?fields=a.b&fields=c.d`` or ``?fields=a.b,c.d``."""
    if not fields:
        return None
    return parse_list(",".join(fields)) or None


def parse_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_json_mapping(raw: Optional[str], name: str) -> Optional[dict[str, Any]]:
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"'{name}' must be a JSON object") from exc
    if not isinstance(value, dict):
        raise ValidationError(f"'{name}' must be a JSON object")
    return value
