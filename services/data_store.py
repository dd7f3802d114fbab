"""
Data Store
Version: 1.2

Generic tabular access over the back-office tables:
select / insert / update / delete / upsert keyed by table name, returning
plain snake_case row dicts. Services never touch SQLAlchemy directly.

Backends:
- SqlDataStore: SQLAlchemy async Core against the managed Postgres
- MemoryDataStore: in-process rows, same filter semantics (local dev, tests)

DEPENDS ON: models.py, services/errors.py, services/metrics.py
"""

import copy
import logging
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy import Date, DateTime, Table, Uuid, delete, false, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import models  # noqa: F401  (registers tables on Base.metadata)
from database import Base
from services.errors import NotFoundError, TransientStoreError, ValidationError
from services.metrics import record_store_error

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


# =============================================================================
# FILTERS
# =============================================================================

_OPERATORS = ("eq", "neq", "gte", "lte", "ilike", "in")


def _like_to_regex(pattern: str) -> "re.Pattern[str]":
    parts = []
    for ch in pattern:
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class Filter:
    """Single column predicate."""

    column: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, row: Row) -> bool:
        current = row.get(self.column)
        if self.op == "eq":
            return current == self.value
        if self.op == "neq":
            return current != self.value
        if self.op == "in":
            return current in self.value
        if self.op == "ilike":
            return current is not None and bool(_like_to_regex(str(self.value)).match(str(current)))
        if current is None:
            return False
        if self.op == "gte":
            return current >= self.value
        return current <= self.value


@dataclass(frozen=True)
class AnyOf:
    """OR of several predicates."""

    filters: Tuple[Filter, ...]

    def matches(self, row: Row) -> bool:
        return any(f.matches(row) for f in self.filters)


Condition = Union[Filter, AnyOf]


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def ilike(column: str, value: str) -> Filter:
    return Filter(column, "ilike", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def any_of(*filters: Filter) -> AnyOf:
    return AnyOf(tuple(filters))


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = False


# =============================================================================
# ROW PREPARATION (shared by both backends)
# =============================================================================

def get_table(name: str) -> Table:
    table = Base.metadata.tables.get(name)
    if table is None:
        raise ValueError(f"Unknown table: {name}")
    return table


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coerce_value(table: Table, column: str, value: Any) -> Any:
    """Bring a python/JSON value into the shape the column stores."""
    if isinstance(value, Enum):
        value = value.value
    if value is None or column not in table.c:
        return value

    col_type = table.c[column].type
    if isinstance(col_type, DateTime):
        if isinstance(value, str):
            try:
                return _parse_datetime(value)
            except ValueError:
                raise ValidationError(f"Invalid timestamp for {table.name}.{column}: {value}")
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    elif isinstance(col_type, Date) and isinstance(value, str):
        return date.fromisoformat(value[:10])
    return value


def prepare_row(table: Table, row: Row) -> Row:
    """Drop unknown keys and coerce the rest."""
    unknown = [k for k in row if k not in table.c]
    if unknown:
        logger.debug(f"Ignoring unknown columns for {table.name}: {unknown}")
    return {
        key: coerce_value(table, key, value)
        for key, value in row.items()
        if key in table.c
    }


def primary_key(table: Table) -> str:
    return list(table.primary_key.columns)[0].name


def is_uuid_column(table: Table, column: str) -> bool:
    return column in table.c and isinstance(table.c[column].type, Uuid)


def malformed_uuid(table: Table, column: str, value: Any) -> bool:
    """True for a non-null value a UUID column could never hold."""
    if value is None or not is_uuid_column(table, column):
        return False
    try:
        uuid.UUID(str(value))
    except ValueError:
        return True
    return False


def _page_bounds(page: Optional[int], limit: Optional[int]) -> Tuple[int, Optional[int]]:
    if not limit:
        return 0, None
    page = max(1, page or 1)
    return (page - 1) * limit, limit


# =============================================================================
# INTERFACE
# =============================================================================

class DataStore(ABC):
    """Logical operations over remote tables."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Sequence[Condition] = (),
        order: Optional[Order] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[Row], int]:
        """Return (rows, total_count). Count ignores pagination."""

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        ...

    @abstractmethod
    async def update(self, table: str, row_id: Any, patch: Row) -> Row:
        """Raises NotFoundError when no row has this id."""

    @abstractmethod
    async def delete(self, table: str, row_id: Any) -> None:
        ...

    @abstractmethod
    async def upsert(self, table: str, rows: Sequence[Row]) -> int:
        ...

    async def ping(self) -> bool:
        return True

    async def get(self, table: str, row_id: Any) -> Optional[Row]:
        key = primary_key(get_table(table))
        rows, _ = await self.select(table, [eq(key, row_id)], limit=1)
        return rows[0] if rows else None

    async def first(self, table: str, filters: Sequence[Condition], order: Optional[Order] = None) -> Optional[Row]:
        rows, _ = await self.select(table, filters, order=order, limit=1)
        return rows[0] if rows else None


# =============================================================================
# SQL BACKEND
# =============================================================================

class SqlDataStore(DataStore):
    """SQLAlchemy async Core implementation."""

    def __init__(self, session_factory: Callable):
        self._session_factory = session_factory

    def _condition(self, table: Table, cond: Condition):
        if isinstance(cond, AnyOf):
            return or_(*(self._condition(table, f) for f in cond.filters))

        col = table.c[cond.column]
        value = cond.value
        if cond.op == "in":
            value = [v for v in value if not malformed_uuid(table, cond.column, v)]
            return col.in_([coerce_value(table, cond.column, v) for v in value])
        # Postgres rejects the bind outright; no row can match
        if cond.op in ("eq", "neq") and malformed_uuid(table, cond.column, value):
            return false() if cond.op == "eq" else col.is_not(None)
        value = coerce_value(table, cond.column, value)
        if cond.op == "eq":
            return col.is_(None) if value is None else col == value
        if cond.op == "neq":
            return col.is_not(None) if value is None else col != value
        if cond.op == "gte":
            return col >= value
        if cond.op == "lte":
            return col <= value
        return col.ilike(value)

    async def _run(self, table: str, operation: str, fn):
        try:
            async with self._session_factory() as session:
                return await fn(session)
        except IntegrityError as e:
            record_store_error(table, operation)
            logger.warning(f"Constraint violation on {table}.{operation}: {e.orig}")
            raise ValidationError(f"Constraint violated on {table}") from e
        except (SQLAlchemyError, OSError) as e:
            record_store_error(table, operation)
            logger.error(f"Store {operation} on {table} failed: {e}")
            raise TransientStoreError(f"Data store unavailable ({table}.{operation})") from e

    async def select(self, table, filters=(), order=None, page=None, limit=None):
        tbl = get_table(table)
        where = [self._condition(tbl, f) for f in filters]

        stmt = select(tbl).where(*where)
        count_stmt = select(func.count()).select_from(tbl).where(*where)
        if order:
            col = tbl.c[order.column]
            stmt = stmt.order_by(col.desc() if order.descending else col.asc())
        offset, size = _page_bounds(page, limit)
        if size:
            stmt = stmt.offset(offset).limit(size)

        async def run(session):
            total = (await session.execute(count_stmt)).scalar_one()
            result = await session.execute(stmt)
            return [dict(r) for r in result.mappings().all()], int(total)

        return await self._run(table, "select", run)

    async def insert(self, table, row):
        tbl = get_table(table)
        values = prepare_row(tbl, row)

        async def run(session):
            async with session.begin():
                result = await session.execute(tbl.insert().values(**values).returning(*tbl.c))
                return dict(result.mappings().one())

        return await self._run(table, "insert", run)

    async def update(self, table, row_id, patch):
        tbl = get_table(table)
        if malformed_uuid(tbl, primary_key(tbl), row_id):
            raise NotFoundError(table, row_id)
        values = prepare_row(tbl, patch)
        key = tbl.c[primary_key(tbl)]

        if not values:
            current = await self.get(table, row_id)
            if current is None:
                raise NotFoundError(table, row_id)
            return current

        async def run(session):
            async with session.begin():
                result = await session.execute(
                    update(tbl).where(key == row_id).values(**values).returning(*tbl.c)
                )
                return result.mappings().first()

        updated = await self._run(table, "update", run)
        if updated is None:
            raise NotFoundError(table, row_id)
        return dict(updated)

    async def delete(self, table, row_id):
        tbl = get_table(table)
        key = tbl.c[primary_key(tbl)]
        if malformed_uuid(tbl, key.name, row_id):
            return

        async def run(session):
            async with session.begin():
                await session.execute(delete(tbl).where(key == row_id))

        await self._run(table, "delete", run)

    async def upsert(self, table, rows):
        tbl = get_table(table)
        key = primary_key(tbl)
        prepared = [prepare_row(tbl, r) for r in rows]

        async def run(session):
            async with session.begin():
                for values in prepared:
                    stmt = pg_insert(tbl).values(**values)
                    updates = {k: stmt.excluded[k] for k in values if k != key}
                    if updates:
                        stmt = stmt.on_conflict_do_update(index_elements=[key], set_=updates)
                    else:
                        stmt = stmt.on_conflict_do_nothing(index_elements=[key])
                    await session.execute(stmt)
            return len(prepared)

        return await self._run(table, "upsert", run)

    async def ping(self) -> bool:
        async def run(session):
            await session.execute(select(1))
            return True

        return await self._run("health", "ping", run)


# =============================================================================
# MEMORY BACKEND
# =============================================================================

class MemoryDataStore(DataStore):
    """In-process store with the same semantics as SqlDataStore."""

    def __init__(self, seed: Optional[Dict[str, List[Row]]] = None):
        self._tables: Dict[str, Dict[Any, Row]] = {}
        for name, rows in (seed or {}).items():
            for row in rows:
                self._insert_now(name, row)

    def _rows(self, table: str) -> Dict[Any, Row]:
        get_table(table)
        return self._tables.setdefault(table, {})

    def _with_defaults(self, tbl: Table, values: Row) -> Row:
        full = dict(values)
        for col in tbl.columns:
            if col.name in full:
                continue
            default = col.default
            if default is None:
                full[col.name] = None
            elif default.is_callable:
                full[col.name] = coerce_value(tbl, col.name, default.arg(None))
            elif default.is_scalar:
                full[col.name] = default.arg
            else:
                full[col.name] = None
        return full

    def _insert_now(self, table: str, row: Row) -> Row:
        tbl = get_table(table)
        full = self._with_defaults(tbl, prepare_row(tbl, row))
        self._rows(table)[full[primary_key(tbl)]] = full
        return copy.deepcopy(full)

    def _coerce_condition(self, tbl: Table, cond: Condition) -> Condition:
        if isinstance(cond, AnyOf):
            return AnyOf(tuple(self._coerce_condition(tbl, f) for f in cond.filters))
        if cond.op == "in":
            return Filter(cond.column, "in", tuple(coerce_value(tbl, cond.column, v) for v in cond.value))
        if cond.op == "ilike":
            return cond
        return Filter(cond.column, cond.op, coerce_value(tbl, cond.column, cond.value))

    async def select(self, table, filters=(), order=None, page=None, limit=None):
        tbl = get_table(table)
        conditions = [self._coerce_condition(tbl, f) for f in filters]
        rows = [r for r in self._rows(table).values() if all(c.matches(r) for c in conditions)]

        if order:
            present = [r for r in rows if r.get(order.column) is not None]
            missing = [r for r in rows if r.get(order.column) is None]
            present.sort(key=lambda r: r[order.column], reverse=order.descending)
            rows = present + missing

        total = len(rows)
        offset, size = _page_bounds(page, limit)
        if size:
            rows = rows[offset:offset + size]
        return [copy.deepcopy(r) for r in rows], total

    async def insert(self, table, row):
        tbl = get_table(table)
        key = primary_key(tbl)
        if row.get(key) is not None and row[key] in self._rows(table):
            raise ValidationError(f"Duplicate key on {table}: {row[key]}")
        return self._insert_now(table, row)

    async def update(self, table, row_id, patch):
        tbl = get_table(table)
        rows = self._rows(table)
        if row_id not in rows:
            raise NotFoundError(table, row_id)
        rows[row_id].update(prepare_row(tbl, patch))
        return copy.deepcopy(rows[row_id])

    async def delete(self, table, row_id):
        self._rows(table).pop(row_id, None)

    async def upsert(self, table, rows):
        tbl = get_table(table)
        key = primary_key(tbl)
        existing = self._rows(table)
        for row in rows:
            values = prepare_row(tbl, row)
            if values.get(key) in existing:
                existing[values[key]].update(values)
            else:
                self._insert_now(table, values)
        return len(rows)
