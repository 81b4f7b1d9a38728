"""
Relation catalogs and join inference.

A catalog enumerates every entity a listing may touch: the base table, each
joinable relation with its fixed ON clause, and which of them callers may
project. Requested field names are only ever looked up here; a name that is
not in the catalog never reaches a statement.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

import sqlalchemy as sa

from assistance.core.errors import InvalidProjection
from assistance.models import Address, Course, Event, EventTag, Subject, Subscription, Tag, User

INNER = "inner"
LEFT = "left"

RESTRICTED_COLUMNS = frozenset({"password_hash"})

TableLookup = Callable[[str], sa.sql.expression.Alias]


@dataclass(frozen=True)
class Relation:
    name: str
    source: sa.Table
    kind: str = LEFT
    on: Optional[Callable[[TableLookup], sa.ColumnElement]] = None
    depends_on: tuple[str, ...] = ()
    # Eager relations are part of the default projection's joins.
    eager: bool = True
    projectable: bool = True


@dataclass(frozen=True)
class JoinPlan:
    columns: tuple[str, ...]
    joins: tuple[Relation, ...]

    @property
    def join_names(self) -> tuple[str, ...]:
        return tuple(r.name for r in self.joins)


class Catalog:
    """The allow-list of entities and columns for one family of listings."""

    def __init__(
        self,
        base: Relation,
        relations: Sequence[Relation],
        default_fields: Sequence[str],
    ):
        self.base = base.name
        self._relations = {r.name: r for r in (base, *relations)}
        self.join_order = tuple(r.name for r in relations)
        self._tables = {r.name: r.source.alias(r.name) for r in (base, *relations)}
        self.default_fields = tuple(default_fields)

    def __contains__(self, name: str) -> bool:
        return name in self._relations

    def relation(self, name: str) -> Relation:
        try:
            return self._relations[name]
        except KeyError:
            raise InvalidProjection(f"Unknown entity '{name}'") from None

    def table(self, name: str) -> sa.sql.expression.Alias:
        self.relation(name)
        return self._tables[name]

    def source(self, name: str) -> sa.Table:
        return self.relation(name).source

    def onclause(self, name: str) -> sa.ColumnElement:
        relation = self.relation(name)
        if relation.on is None:
            raise InvalidProjection(f"'{name}' is the base entity and has no join")
        return relation.on(self.table)

    def parse_field(
        self, field: str, *, internal: bool = False, wildcard: bool = False
    ) -> tuple[str, str]:
        """Split and validate a dotted field name into (entity, column).

        Bare names belong to the base entity. ``internal`` lifts the
        projectable restriction for fields the service composes itself.
        """
        if not isinstance(field, str) or not field.strip():
            raise InvalidProjection("Field names must be non-empty strings")
        field = field.strip()
        entity, dot, column = field.partition(".")
        if not dot:
            entity, column = self.base, field
        if "." in column or not column:
            raise InvalidProjection(f"Invalid field '{field}'")

        relation = self.relation(entity)
        if not relation.projectable and not internal:
            raise InvalidProjection(f"'{entity}' can not be requested")
        if column == "*":
            if not wildcard:
                raise InvalidProjection(f"Wildcard not allowed in '{field}'")
        elif column not in relation.source.c or column in RESTRICTED_COLUMNS:
            raise InvalidProjection(f"Unknown field '{field}'")
        return entity, column

    def expand(self, field: str, *, internal: bool = False) -> list[str]:
        """Canonical ``entity.column`` names for a field, expanding ``entity.*``."""
        entity, column = self.parse_field(field, internal=internal, wildcard=True)
        if column != "*":
            return [f"{entity}.{column}"]
        return [
            f"{entity}.{c.name}"
            for c in self.source(entity).columns
            if c.name not in RESTRICTED_COLUMNS
        ]

    def column(self, field: str, *, internal: bool = True) -> sa.ColumnElement:
        entity, column = self.parse_field(field, internal=internal)
        return self.table(entity).c[column]

    def with_dependencies(self, names: Iterable[str]) -> tuple[Relation, ...]:
        """Close ``names`` over their dependencies, in catalog join order."""
        wanted: set[str] = set()
        pending = [n for n in names if n != self.base]
        while pending:
            name = pending.pop()
            if name in wanted:
                continue
            wanted.add(name)
            pending.extend(self.relation(name).depends_on)
        return tuple(self._relations[n] for n in self.join_order if n in wanted)


def resolve_joins(catalog: Catalog, fields: Optional[Sequence[str]] = None) -> JoinPlan:
    """Decide columns and joins for a requested projection.

    With no projection, every eager join and the catalog's wide default column
    list are used. Otherwise each field is validated, and a relation is joined
    when some field lives in its namespace (``field`` starts with ``name + "."``).
    """
    if not fields:
        columns = [c for f in catalog.default_fields for c in catalog.expand(f, internal=True)]
        joins = catalog.with_dependencies(
            n for n in catalog.join_order if catalog.relation(n).eager
        )
        return JoinPlan(columns=tuple(columns), joins=joins)

    columns: list[str] = []
    for field in fields:
        for column in catalog.expand(field):
            if column not in columns:
                columns.append(column)

    requested = [
        name
        for name in catalog.join_order
        if any(f.strip().startswith(name + ".") for f in fields)
    ]
    return JoinPlan(columns=tuple(columns), joins=catalog.with_dependencies(requested))


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------


EVENT_CATALOG = Catalog(
    base=Relation("event", Event.__table__),
    relations=[
        Relation(
            "assistant",
            User.__table__,
            kind=INNER,
            on=lambda t: t("event").c.owner_id == t("assistant").c.id,
        ),
        Relation(
            "assistanceCourse",
            Course.__table__,
            on=lambda t: t("event").c.course_id == t("assistanceCourse").c.id,
        ),
        Relation(
            "assistantCourse",
            Course.__table__,
            on=lambda t: t("assistant").c.course_id == t("assistantCourse").c.id,
            depends_on=("assistant",),
        ),
        Relation(
            "address",
            Address.__table__,
            on=lambda t: t("address").c.event_id == t("event").c.id,
        ),
        Relation(
            "subject",
            Subject.__table__,
            on=lambda t: t("subject").c.course_id == t("assistanceCourse").c.id,
            depends_on=("assistanceCourse",),
        ),
        Relation(
            "eventTag",
            EventTag.__table__,
            on=lambda t: t("eventTag").c.event_id == t("event").c.id,
            eager=False,
            projectable=False,
        ),
        Relation(
            "tag",
            Tag.__table__,
            on=lambda t: t("tag").c.id == t("eventTag").c.tag_id,
            depends_on=("eventTag",),
            eager=False,
            projectable=False,
        ),
        Relation(
            "subscription",
            Subscription.__table__,
            kind=INNER,
            on=lambda t: t("subscription").c.event_id == t("event").c.id,
            eager=False,
            projectable=False,
        ),
    ],
    default_fields=[
        "event.*",
        "assistant.id",
        "assistant.full_name",
        "assistant.created_at",
        "assistant.assistant_stars",
        "assistant.email",
        "assistant.verified_assistant",
        "assistanceCourse.id",
        "assistanceCourse.name",
        "assistanceCourse.description",
        "assistantCourse.id",
        "assistantCourse.name",
        "assistantCourse.description",
        "subject.id",
        "subject.name",
        "subject.description",
        "address.*",
    ],
)


SUBSCRIBER_CATALOG = Catalog(
    base=Relation("subscription", Subscription.__table__),
    relations=[
        Relation(
            "subscriber",
            User.__table__,
            kind=INNER,
            on=lambda t: t("subscription").c.user_id == t("subscriber").c.id,
        ),
        Relation(
            "subscriberCourse",
            Course.__table__,
            on=lambda t: t("subscriber").c.course_id == t("subscriberCourse").c.id,
            depends_on=("subscriber",),
        ),
        Relation(
            "event",
            Event.__table__,
            kind=INNER,
            on=lambda t: t("subscription").c.event_id == t("event").c.id,
            eager=False,
        ),
    ],
    default_fields=[
        "subscription.*",
        "subscriber.id",
        "subscriber.full_name",
        "subscriber.email",
        "subscriber.assistant_stars",
        "subscriberCourse.id",
        "subscriberCourse.name",
    ],
)
