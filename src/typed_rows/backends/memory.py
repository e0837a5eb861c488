"""In-process storage backend.

Rows live in dictionaries and filters are evaluated in Python, which makes
this backend useful for tests and for exercising the ORM without a
database server. Raw queries support only ``SELECT * FROM table [WHERE
filter]`` with the filter syntax of :mod:`typed_rows.parsing`.
"""

from __future__ import annotations

import datetime
import logging
import re
import threading
import uuid
from dataclasses import replace
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Sequence

from typed_rows.backends.base import BackendError, Row
from typed_rows.errors import FilterSyntaxError
from typed_rows.expressions import Expression, Operator, columns as expression_columns
from typed_rows.parsing import parse_filter
from typed_rows.types import ColumnDefinition, DataType, OrderDirection, ResultOrder

logger = logging.getLogger(__name__)

_SELECT_RE = re.compile(
    r"^\s*select\s+\*\s+from\s+([A-Za-z_][A-Za-z0-9_]*)(?:\s+where\s+(.+?))?\s*;?\s*$",
    re.IGNORECASE | re.DOTALL,
)


class _MemoryTable:
    """Rows and schema of one table."""

    def __init__(self, name: str, columns: Sequence[ColumnDefinition]) -> None:
        self.name = name
        self.columns = list(columns)
        self.rows: list[Row] = []
        self.next_id = 1

    @property
    def primary_key(self) -> ColumnDefinition | None:
        for col in self.columns:
            if col.primary_key:
                return col
        return None

    def get_column(self, name: str) -> ColumnDefinition | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None


class MemoryBackend:
    """Storage backend keeping every table in memory."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: dict[str, _MemoryTable] = {}

    # --- Schema ---

    def create_table(self, name: str, columns: Sequence[ColumnDefinition]) -> None:
        with self._lock:
            if name in self._tables:
                raise BackendError(f"Table '{name}' already exists")
            self._tables[name] = _MemoryTable(name, columns)
        logger.debug("Created table %s with %d column(s)", name, len(columns))

    def drop_table(self, name: str) -> None:
        with self._lock:
            self._tables.pop(name, None)

    def truncate(self, name: str) -> None:
        with self._lock:
            table = self._table(name)
            table.rows.clear()
            table.next_id = 1

    def table_exists(self, name: str) -> bool:
        with self._lock:
            return name in self._tables

    def describe_table(self, name: str) -> list[ColumnDefinition]:
        with self._lock:
            return [replace(col) for col in self._table(name).columns]

    # --- Writes ---

    def insert(self, name: str, values: Mapping[str, Any]) -> Row:
        with self._lock:
            table = self._table(name)
            row = self._new_row(table, values)
            table.rows.append(row)
            return dict(row)

    def insert_multiple(self, name: str, rows: Sequence[Mapping[str, Any]]) -> None:
        with self._lock:
            table = self._table(name)
            # Build every row first so a bad row inserts nothing
            new_rows = [self._new_row(table, values) for values in rows]
            table.rows.extend(new_rows)

    def update(self, name: str, values: Mapping[str, Any], filter: Expression | None) -> None:
        with self._lock:
            table = self._table(name)
            self._check_columns(table, values.keys())
            for col_name, value in values.items():
                col = table.get_column(col_name)
                if value is None and col is not None and not col.nullable:
                    raise BackendError(f"NOT NULL constraint failed: {name}.{col_name}")
            for row in self._filter(table, filter):
                row.update(values)

    def delete(self, name: str, filter: Expression | None) -> None:
        with self._lock:
            table = self._table(name)
            doomed = {id(row) for row in self._filter(table, filter)}
            table.rows = [row for row in table.rows if id(row) not in doomed]

    # --- Reads ---

    def select(
        self,
        name: str,
        skip: int | None,
        limit: int | None,
        filter: Expression | None,
        order: Sequence[ResultOrder] | None,
    ) -> list[Row]:
        with self._lock:
            table = self._table(name)
            rows = self._filter(table, filter)
            if order:
                self._check_columns(table, [o.column for o in order])
                # Stable sorts applied last key first give multi-key ordering
                for o in reversed(order):
                    rows.sort(
                        key=lambda r, c=o.column: (r.get(c) is not None, r.get(c)),
                        reverse=o.direction is OrderDirection.DESCENDING,
                    )
            start = skip or 0
            end = None if limit is None else start + limit
            return [dict(row) for row in rows[start:end]]

    def count(self, name: str, filter: Expression | None) -> int:
        with self._lock:
            return len(self._filter(self._table(name), filter))

    def sum(self, name: str, column: str, filter: Expression | None) -> Decimal:
        with self._lock:
            table = self._table(name)
            self._check_columns(table, [column])
            total = Decimal(0)
            for row in self._filter(table, filter):
                value = row.get(column)
                if value is not None:
                    total += Decimal(str(value))
            return total

    def exists(self, name: str, filter: Expression | None) -> bool:
        return self.count(name, filter) > 0

    def query(self, text: str) -> list[Row]:
        match = _SELECT_RE.match(text or "")
        if match is None:
            raise BackendError("Only 'SELECT * FROM table [WHERE filter]' is supported", query=text)
        table_name, where = match.groups()
        try:
            expr = parse_filter(where) if where else None
        except FilterSyntaxError as exc:
            raise BackendError(str(exc), query=text) from exc
        try:
            return self.select(table_name, None, None, expr, None)
        except BackendError as exc:
            raise BackendError(str(exc), query=text) from exc

    # --- Formatting ---

    def timestamp(self, dt: datetime.datetime) -> str:
        return dt.isoformat(sep=" ", timespec="microseconds")

    def timestamp_offset(self, dt: datetime.datetime) -> str:
        return dt.isoformat(sep=" ", timespec="microseconds")

    def sanitize_string(self, value: str) -> str:
        return value.replace("'", "''")

    def close(self) -> None:
        logger.debug("Closing in-memory backend with %d table(s)", len(self._tables))

    # --- Internals ---

    def _table(self, name: str) -> _MemoryTable:
        table = self._tables.get(name)
        if table is None:
            raise BackendError(f"No such table: {name}")
        return table

    def _check_columns(self, table: _MemoryTable, names: Any) -> None:
        for col_name in names:
            if table.get_column(col_name) is None:
                raise BackendError(f"Table '{table.name}' has no column named '{col_name}'")

    def _new_row(self, table: _MemoryTable, values: Mapping[str, Any]) -> Row:
        self._check_columns(table, values.keys())
        row: Row = {col.name: None for col in table.columns}
        row.update(values)

        pk = table.primary_key
        if pk is not None and row.get(pk.name) is None:
            if pk.data_type.is_integer:
                row[pk.name] = table.next_id
            elif pk.data_type is DataType.GUID:
                row[pk.name] = str(uuid.uuid4())
            else:
                raise BackendError(f"NOT NULL constraint failed: {table.name}.{pk.name}")
        if pk is not None:
            key = row[pk.name]
            if any(existing.get(pk.name) == key for existing in table.rows):
                raise BackendError(f"UNIQUE constraint failed: {table.name}.{pk.name}")
            if isinstance(key, int) and key >= table.next_id:
                table.next_id = key + 1

        for col in table.columns:
            if not col.nullable and row.get(col.name) is None:
                raise BackendError(f"NOT NULL constraint failed: {table.name}.{col.name}")
        return row

    def _filter(self, table: _MemoryTable, filter: Expression | None) -> list[Row]:
        if filter is None:
            return list(table.rows)
        self._check_columns(table, expression_columns(filter))
        return [row for row in table.rows if self._matches(filter, row)]

    def _matches(self, expr: Expression, row: Row) -> bool:
        """Evaluate a filter against a row without recursion."""
        results: dict[int, bool] = {}
        stack: list[tuple[Expression, bool]] = [(expr, False)]
        while stack:
            node, children_done = stack.pop()
            if not node.operator.is_logical:
                results[id(node)] = self._compare(row.get(node.left), node.operator, node.right)
            elif not children_done:
                stack.append((node, True))
                stack.append((node.right, False))
                stack.append((node.left, False))
            else:
                left = results[id(node.left)]
                right = results[id(node.right)]
                if node.operator is Operator.AND:
                    results[id(node)] = left and right
                else:
                    results[id(node)] = left or right
        return results[id(expr)]

    def _literal(self, value: Any) -> Any:
        """Bring a filter literal into the form values are stored in."""
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, datetime.datetime):
            if value.tzinfo is None:
                return self.timestamp(value)
            return self.timestamp_offset(value)
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, tuple):
            return tuple(self._literal(v) for v in value)
        return value

    def _compare(self, field_value: Any, operator: Operator, value: Any) -> bool:
        if operator is Operator.IS_NULL:
            return field_value is None
        if operator is Operator.IS_NOT_NULL:
            return field_value is not None
        if field_value is None:
            # Comparisons with NULL are never true
            return False

        value = self._literal(value)
        try:
            if operator is Operator.EQUALS:
                return field_value == value
            elif operator is Operator.NOT_EQUALS:
                return field_value != value
            elif operator is Operator.IN:
                return field_value in value
            elif operator is Operator.NOT_IN:
                return field_value not in value
            elif operator is Operator.CONTAINS:
                return str(value) in str(field_value)
            elif operator is Operator.CONTAINS_NOT:
                return str(value) not in str(field_value)
            elif operator is Operator.STARTS_WITH:
                return str(field_value).startswith(str(value))
            elif operator is Operator.ENDS_WITH:
                return str(field_value).endswith(str(value))
            elif operator is Operator.GREATER_THAN:
                return field_value > value
            elif operator is Operator.GREATER_THAN_OR_EQUAL:
                return field_value >= value
            elif operator is Operator.LESS_THAN:
                return field_value < value
            elif operator is Operator.LESS_THAN_OR_EQUAL:
                return field_value <= value
        except TypeError:
            return False
        return False
