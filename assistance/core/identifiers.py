"""
Opaque identifiers for the service boundary.

Internal keys are sequential integers. Before leaving the service they are
passed through a keyed 64-bit Feistel permutation and rendered as 16 hex
characters; inbound tokens go through the inverse. The mapping is a bijection
on 64-bit values, so encode is injective and decode(encode(x)) == x.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any, Iterable, Mapping, Optional

from assistance.core.errors import InvalidIdentifier

TOKEN_LENGTH = 16
MAX_ID = 2**63 - 1
_ROUNDS = 4
_HALF_MASK = 0xFFFFFFFF
_HEX_DIGITS = frozenset("0123456789abcdef")

# Id-bearing columns per projected entity. Everything listed here is encoded on
# the way out; everything else passes through untouched.
ID_FIELDS: dict[str, tuple[str, ...]] = {
    "event": ("id", "owner_id", "course_id"),
    "assistant": ("id", "course_id"),
    "assistanceCourse": ("id",),
    "assistantCourse": ("id",),
    "subject": ("id", "course_id"),
    "address": ("id", "event_id"),
    "subscription": ("id", "event_id", "user_id"),
    "subscriber": ("id", "course_id"),
    "subscriberCourse": ("id",),
}


class IdentifierCodec:
    """Reversible mapping between internal integer keys and external tokens."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("identifier secret must not be empty")
        self._key = hashlib.sha256(secret.encode()).digest()

    def _round(self, index: int, half: int) -> int:
        digest = hmac.new(
            self._key, bytes([index]) + half.to_bytes(4, "big"), hashlib.sha256
        ).digest()
        return int.from_bytes(digest[:4], "big")

    def encode(self, internal_id: int) -> str:
        if isinstance(internal_id, bool) or not isinstance(internal_id, int):
            raise ValueError(f"internal id must be an int, got {type(internal_id).__name__}")
        if not 1 <= internal_id <= MAX_ID:
            raise ValueError(f"internal id out of range: {internal_id}")

        left, right = internal_id >> 32, internal_id & _HALF_MASK
        for i in range(_ROUNDS):
            left, right = right, left ^ self._round(i, right)
        return f"{(left << 32) | right:016x}"

    def decode(self, token: Any) -> int:
        if not isinstance(token, str):
            raise InvalidIdentifier(token=repr(token))
        token = token.strip().lower()
        if len(token) != TOKEN_LENGTH or not set(token) <= _HEX_DIGITS:
            raise InvalidIdentifier(token=token)

        value = int(token, 16)
        left, right = value >> 32, value & _HALF_MASK
        for i in reversed(range(_ROUNDS)):
            left, right = right ^ self._round(i, left), left

        internal_id = (left << 32) | right
        if not 1 <= internal_id <= MAX_ID:
            raise InvalidIdentifier(token=token)
        return internal_id

    def decode_optional(self, token: Any) -> Optional[int]:
        return None if token is None else self.decode(token)

    def encode_row(self, row: Mapping[str, Mapping[str, Any]]) -> dict[str, dict[str, Any]]:
        """Return a new row with every id-bearing field encoded.

        Each entity gets its own fresh dict; the input row is never touched, so
        rows that share entity objects cannot leak into each other.
        """
        encoded: dict[str, dict[str, Any]] = {}
        for entity, values in row.items():
            fields = ID_FIELDS.get(entity, ())
            encoded[entity] = {
                column: self._encode_value(value) if column in fields else value
                for column, value in values.items()
            }
        return encoded

    def encode_rows(self, rows: Iterable[Mapping[str, Mapping[str, Any]]]) -> list[dict]:
        return [self.encode_row(row) for row in rows]

    def _encode_value(self, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            return self.encode(value)
        return value

