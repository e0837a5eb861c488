"""Interface every storage backend implements."""

from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from typed_rows.expressions import Expression
from typed_rows.types import ColumnDefinition, ResultOrder

Row = dict[str, Any]


class BackendError(Exception):
    """Error raised by a storage backend.

    Attributes:
        query: Text of the offending query, when one is available.
    """

    def __init__(self, message: str, query: str | None = None) -> None:
        super().__init__(message)
        self.query = query

    def __str__(self) -> str:
        message = super().__str__()
        if self.query:
            return f"{message} (query: {self.query})"
        return message


@runtime_checkable
class StorageBackend(Protocol):
    """SQL execution, connection handling and dialect behaviour.

    Backends receive already-coerced value maps and preprocessed filter
    expressions; they never see mapped objects.
    """

    def create_table(self, name: str, columns: Sequence[ColumnDefinition]) -> None: ...

    def drop_table(self, name: str) -> None: ...

    def truncate(self, name: str) -> None: ...

    def table_exists(self, name: str) -> bool: ...

    def describe_table(self, name: str) -> list[ColumnDefinition]: ...

    def insert(self, name: str, values: Mapping[str, Any]) -> Row: ...

    def insert_multiple(self, name: str, rows: Sequence[Mapping[str, Any]]) -> None: ...

    def update(self, name: str, values: Mapping[str, Any], filter: Expression | None) -> None: ...

    def delete(self, name: str, filter: Expression | None) -> None: ...

    def select(
        self,
        name: str,
        skip: int | None,
        limit: int | None,
        filter: Expression | None,
        order: Sequence[ResultOrder] | None,
    ) -> list[Row]: ...

    def count(self, name: str, filter: Expression | None) -> int: ...

    def sum(self, name: str, column: str, filter: Expression | None) -> Decimal: ...

    def exists(self, name: str, filter: Expression | None) -> bool: ...

    def query(self, text: str) -> list[Row]: ...

    def timestamp(self, dt: datetime.datetime) -> str: ...

    def timestamp_offset(self, dt: datetime.datetime) -> str: ...

    def sanitize_string(self, value: str) -> str: ...

    def close(self) -> None: ...
