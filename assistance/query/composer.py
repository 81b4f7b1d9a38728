"""
Fluent query composition over a relation catalog.

A composer accumulates clauses and executes them once with ``resolve()``.
Selects come back grouped per entity:

    [{"event": {"id": 1, "title": ...}, "assistant": {...}}, ...]

Left-joined entities with no match are left out of the row entirely.
"""

from __future__ import annotations

import operator
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Sequence, Union

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from assistance.core.errors import ComposerError, InfrastructureError
from assistance.query.relations import Catalog, JoinPlan, LEFT

log = structlog.get_logger()

_COMPARATORS: dict[str, Callable[[Any, Any], Any]] = {
    "=": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

SELECT = "select"
INSERT = "insert"
UPDATE = "update"
DELETE = "delete"

Row = dict[str, dict[str, Any]]


class ConstraintViolation(InfrastructureError):
    """A write broke a unique, foreign key or check constraint."""

    code = "CONSTRAINT_VIOLATION"


@dataclass(frozen=True)
class InsertResult:
    inserted_id: Optional[int]
    affected_rows: int


def like_pattern(substring: str) -> str:
    """Unanchored containment pattern with LIKE metacharacters escaped."""
    escaped = substring.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class QueryComposer:
    """Accumulates one statement against ``catalog`` and runs it on ``session``.

    A composer is single-use: build a fresh one per query.
    """

    def __init__(self, session: AsyncSession, catalog: Catalog):
        self.session = session
        self.catalog = catalog
        self._operation = SELECT
        self._base = catalog.base
        self._columns: list[tuple[str, str]] = []
        self._joins: list[tuple[str, bool]] = []
        self._joined: set[str] = {catalog.base}
        self._predicate: Optional[sa.ColumnElement] = None
        self._order: list[sa.ColumnElement] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None
        self._distinct = False
        self._target: Optional[str] = None
        self._values: dict[str, Any] = {}
        self._resolved = False

    # -- shape -------------------------------------------------------------

    def select(self, fields: Iterable[str]) -> "QueryComposer":
        for field in fields:
            for name in self.catalog.expand(field, internal=True):
                entity, _, column = name.partition(".")
                if (entity, column) not in self._columns:
                    self._columns.append((entity, column))
        return self

    def from_(self, entity: Optional[str] = None) -> "QueryComposer":
        entity = entity or self.catalog.base
        if entity != self.catalog.base:
            raise ComposerError(f"'{entity}' is not the base of this catalog")
        self._base = entity
        return self

    def join(self, entity: str) -> "QueryComposer":
        return self._add_join(entity, outer=False)

    def left_join(self, entity: str) -> "QueryComposer":
        return self._add_join(entity, outer=True)

    def apply_plan(self, plan: JoinPlan) -> "QueryComposer":
        """Select the plan's columns and add its joins with their declared kind."""
        self.select(plan.columns)
        for relation in plan.joins:
            self._add_join(relation.name, outer=relation.kind == LEFT)
        return self

    def joined(self, entity: str) -> bool:
        return entity in self._joined

    def distinct(self) -> "QueryComposer":
        self._distinct = True
        return self

    def _add_join(self, entity: str, outer: bool) -> "QueryComposer":
        if entity in self._joined:
            return self
        relation = self.catalog.relation(entity)
        missing = [d for d in relation.depends_on if d not in self._joined]
        if missing:
            raise ComposerError(f"Join '{entity}' requires {missing} to be joined first")
        self._joins.append((entity, outer))
        self._joined.add(entity)
        return self

    # -- predicates --------------------------------------------------------

    def where(self, field: str, value: Any, op: str = "=") -> "QueryComposer":
        return self._add_predicate(self._compare(field, value, op), conjunction=sa.and_)

    def or_where(self, field: str, value: Any, op: str = "=") -> "QueryComposer":
        return self._add_predicate(self._compare(field, value, op), conjunction=sa.or_)

    def where_columns(self, left: str, op: str, right: str) -> "QueryComposer":
        """Compare two columns, e.g. ``available_vacancies < total_vacancies``."""
        clause = self._comparator(op)(self._column(left), self._column(right))
        return self._add_predicate(clause, conjunction=sa.and_)

    def where_like(self, field: str, substring: str) -> "QueryComposer":
        return self._add_predicate(self._like(field, substring), conjunction=sa.and_)

    def or_where_like(self, field: str, substring: str) -> "QueryComposer":
        return self._add_predicate(self._like(field, substring), conjunction=sa.or_)

    def where_any_like(self, terms: Sequence[str], fields: Sequence[str]) -> "QueryComposer":
        """AND one parenthesized group: any term matching any of ``fields``.

        An empty term list adds nothing.
        """
        groups = [
            sa.or_(*(self._like(field, term) for field in fields))
            for term in terms
        ]
        if not groups:
            return self
        return self._add_predicate(sa.or_(*groups).self_group(), conjunction=sa.and_)

    def _add_predicate(self, clause: sa.ColumnElement, conjunction) -> "QueryComposer":
        if self._predicate is None:
            self._predicate = clause
        else:
            self._predicate = conjunction(self._predicate, clause)
        return self

    def _compare(self, field: str, value: Any, op: str) -> sa.ColumnElement:
        column = self._column(field)
        if value is None and op in ("=", "!="):
            return column.is_(None) if op == "=" else column.is_not(None)
        return self._comparator(op)(column, value)

    def _like(self, field: str, substring: str) -> sa.ColumnElement:
        return self._column(field).like(like_pattern(str(substring)), escape="\\")

    @staticmethod
    def _comparator(op: str) -> Callable[[Any, Any], Any]:
        try:
            return _COMPARATORS[op]
        except KeyError:
            raise ComposerError(f"Unsupported comparison operator '{op}'") from None

    def _column(self, field: str) -> sa.ColumnElement:
        if self._operation == SELECT:
            entity, _ = self.catalog.parse_field(field, internal=True)
            if entity not in self._joined:
                raise ComposerError(f"'{field}' refers to '{entity}', which is not joined")
            return self.catalog.column(field)

        # Writes address the target table directly, without aliases.
        entity, dot, column = field.partition(".")
        if not dot:
            entity, column = self._target, field
        if entity != self._target:
            raise ComposerError(f"'{field}' is not a column of '{self._target}'")
        table = self.catalog.source(self._target)
        if column not in table.c:
            raise ComposerError(f"Unknown column '{field}'")
        return table.c[column]

    # -- ordering and pagination ------------------------------------------

    def order_by(self, field: str, direction: str = "ASC") -> "QueryComposer":
        column = self._column(field)
        self._order.append(column.desc() if direction.upper() == "DESC" else column.asc())
        return self

    def paginate(self, limit: int, offset: int) -> "QueryComposer":
        if limit < 0 or offset < 0:
            raise ComposerError("limit and offset must not be negative")
        self._limit, self._offset = int(limit), int(offset)
        return self

    # -- writes -----------------------------------------------------------

    def insert(self, entity: str, values: dict[str, Any]) -> "QueryComposer":
        return self._switch(INSERT, entity, values)

    def update(self, entity: str, values: Optional[dict[str, Any]] = None) -> "QueryComposer":
        return self._switch(UPDATE, entity, values or {})

    def delete(self, entity: str) -> "QueryComposer":
        return self._switch(DELETE, entity, {})

    def increment(self, column: str, amount: int = 1) -> "QueryComposer":
        """Add ``column = column + amount`` to an update."""
        if self._operation != UPDATE:
            raise ComposerError("increment() is only valid on updates")
        target = self._column(column)
        self._values[target.name] = target + amount
        return self

    def _switch(self, operation: str, entity: str, values: dict[str, Any]) -> "QueryComposer":
        if self._columns or self._joins or self._predicate is not None:
            raise ComposerError(f"Switch to {operation} before adding columns, joins or predicates")
        table = self.catalog.source(entity)
        unknown = [k for k in values if k not in table.c]
        if unknown:
            raise ComposerError(f"Unknown columns for '{entity}': {unknown}")
        self._operation = operation
        self._target = entity
        self._values = dict(values)
        return self

    # -- execution --------------------------------------------------------

    def build(self) -> sa.Executable:
        if self._operation == SELECT:
            return self._build_select()

        table = self.catalog.source(self._target)
        if self._operation == INSERT:
            return sa.insert(table).values(**self._values)
        if self._operation == UPDATE:
            if not self._values:
                raise ComposerError("Update without values")
            stmt = sa.update(table).values(**self._values)
        else:
            stmt = sa.delete(table)
        if self._predicate is None:
            raise ComposerError(f"Refusing to {self._operation} without a predicate")
        return stmt.where(self._predicate)

    def _build_select(self) -> sa.Select:
        if not self._columns:
            raise ComposerError("Nothing selected")
        from_clause = self.catalog.table(self._base)
        for entity, outer in self._joins:
            from_clause = from_clause.join(
                self.catalog.table(entity), self.catalog.onclause(entity), isouter=outer
            )

        stmt = sa.select(
            *(
                self.catalog.table(entity).c[column].label(f"c{i}")
                for i, (entity, column) in enumerate(self._columns)
            ),
            *(key.label(f"k{i}") for i, (_, key) in enumerate(self._outer_keys())),
        ).select_from(from_clause)
        if self._predicate is not None:
            stmt = stmt.where(self._predicate)
        if self._distinct:
            stmt = stmt.distinct()
        if self._order:
            stmt = stmt.order_by(*self._order)
        if self._limit is not None:
            stmt = stmt.limit(self._limit).offset(self._offset)
        return stmt

    async def resolve(self) -> Union[list[Row], InsertResult, int]:
        if self._resolved:
            raise ComposerError("Composer already resolved; build a new one per query")
        self._resolved = True
        stmt = self.build()

        try:
            result = await self.session.execute(stmt)
        except IntegrityError as exc:
            raise ConstraintViolation(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            log.error("query.failed", operation=self._operation, error=str(exc))
            raise InfrastructureError(str(exc)) from exc

        if self._operation == SELECT:
            return self._group(result.all())
        if self._operation == INSERT:
            inserted = result.inserted_primary_key
            return InsertResult(
                inserted_id=inserted[0] if inserted else None,
                affected_rows=result.rowcount,
            )
        return result.rowcount

    def _outer_keys(self) -> list[tuple[str, sa.ColumnElement]]:
        """Primary key of every projected left-joined entity, in join order.

        A NULL key marks a join that found no row; the projected columns alone
        can not tell that apart from a matched row holding NULLs.
        """
        projected = {entity for entity, _ in self._columns}
        keys = []
        for entity, outer in self._joins:
            if outer and entity in projected:
                pk = next(iter(self.catalog.source(entity).primary_key.columns))
                keys.append((entity, self.catalog.table(entity).c[pk.name]))
        return keys

    def _group(self, rows: Sequence[sa.Row]) -> list[Row]:
        outer = [entity for entity, _ in self._outer_keys()]
        width = len(self._columns)
        grouped_rows: list[Row] = []
        for row in rows:
            values = tuple(row)
            grouped: Row = {}
            for (entity, column), value in zip(self._columns, values[:width]):
                grouped.setdefault(entity, {})[column] = value
            for entity, key in zip(outer, values[width:]):
                if key is None:
                    grouped.pop(entity, None)
            grouped_rows.append(grouped)
        return grouped_rows
