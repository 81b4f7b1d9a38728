"""
Caller-supplied listing options: equality filters, availability, one sort key
and a pagination window.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional

import structlog

from assistance.core.errors import InvalidProjection, ValidationError
from assistance.core.identifiers import ID_FIELDS

if TYPE_CHECKING:
    from assistance.core.identifiers import IdentifierCodec
    from assistance.query.composer import QueryComposer

log = structlog.get_logger()

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})
SORT_DIRECTIONS = ("ASC", "DESC")
SCALAR_TYPES = (str, int, float, bool)


def to_boolean(value: Any) -> bool:
    """Coerce query-string style values ("true", "0", 1, ...) to a bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError(f"Can not interpret {value!r} as a boolean")


def normalize_direction(direction: Any) -> str:
    if not isinstance(direction, str) or direction.strip().upper() not in SORT_DIRECTIONS:
        raise ValidationError(f"Sort direction must be ASC or DESC, got {direction!r}")
    return direction.strip().upper()


def _joined_field(composer: "QueryComposer", field: str) -> tuple[str, str]:
    entity, column = composer.catalog.parse_field(field)
    if not composer.joined(entity):
        raise InvalidProjection(f"'{field}' needs '{entity}' in the projection")
    return entity, column


@dataclass
class FilterOptions:
    """Options bundle for listings.

    ``available`` is tri-state: ``None`` means "do not filter", anything else is
    coerced with :func:`to_boolean`.
    """

    filter: Optional[Mapping[str, Any]] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    order_by: Optional[Mapping[str, str]] = None
    available: Any = None


def apply_filters(
    composer: "QueryComposer",
    options: Optional[FilterOptions],
    codec: Optional["IdentifierCodec"] = None,
) -> "QueryComposer":
    """Apply `options` onto `composer`.

    With a codec, filter values on id-bearing columns are taken as external
    tokens and decoded first.
    """
    if options is None:
        return composer

    # Pagination needs both halves of the window.
    if options.limit is not None and options.offset is not None:
        composer.paginate(options.limit, options.offset)

    if options.filter:
        for field, value in options.filter.items():
            entity, column = _joined_field(composer, field)
            if value is not None and not isinstance(value, SCALAR_TYPES):
                raise ValidationError(f"Filter value for '{field}' must be a single value")
            if codec is not None and column in ID_FIELDS.get(entity, ()):
                value = codec.decode_optional(value)
            composer.where(field, value)

    if options.available is not None:
        composer.where("event.available", to_boolean(options.available))

    if options.order_by:
        # Single sort key: the first entry wins, the rest are dropped.
        entries = list(options.order_by.items())
        field, direction = entries[0]
        _joined_field(composer, field)
        composer.order_by(field, normalize_direction(direction))
        if len(entries) > 1:
            log.debug("query.order_by_truncated", ignored=[k for k, _ in entries[1:]])

    return composer
