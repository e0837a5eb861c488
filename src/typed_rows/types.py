"""Column, table and ordering definitions for the typed_rows library."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

from typed_rows.errors import ArgumentError


class DataType(Enum):
    """Storage data types a column may declare."""

    VARCHAR = "Varchar"
    NVARCHAR = "Nvarchar"
    TINYINT = "TinyInt"
    INT = "Int"
    BOOLEAN = "Boolean"
    ENUM = "Enum"
    LONG = "Long"
    DECIMAL = "Decimal"
    DOUBLE = "Double"
    DATETIME = "DateTime"
    DATETIMEOFFSET = "DateTimeOffset"
    BLOB = "Blob"
    GUID = "Guid"

    @property
    def requires_length(self) -> bool:
        """Return whether a column of this type must declare a max length."""
        return self in LENGTH_REQUIRED

    @property
    def requires_precision(self) -> bool:
        """Return whether a column of this type must declare length and precision."""
        return self in LENGTH_AND_PRECISION_REQUIRED

    @property
    def is_text(self) -> bool:
        return self in (DataType.VARCHAR, DataType.NVARCHAR)

    @property
    def is_integer(self) -> bool:
        return self in (DataType.TINYINT, DataType.INT, DataType.LONG)


LENGTH_REQUIRED: frozenset[DataType] = frozenset(
    {DataType.VARCHAR, DataType.NVARCHAR, DataType.ENUM}
)

LENGTH_AND_PRECISION_REQUIRED: frozenset[DataType] = frozenset(
    {DataType.DECIMAL, DataType.DOUBLE}
)

# Mapping from canonical names (case-insensitive) to DataType values
DATA_TYPE_NAMES: dict[str, DataType] = {dt.value.lower(): dt for dt in DataType}


class _DbNull:
    """Singleton standing in for a backend's null marker."""

    _instance: _DbNull | None = None

    def __new__(cls) -> _DbNull:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DB_NULL"

    def __bool__(self) -> bool:
        return False


# Sentinel a backend may return instead of None for a null column value
DB_NULL = _DbNull()


def is_null(value: object) -> bool:
    """Check if a value is None or the backend null sentinel."""
    return value is None or value is DB_NULL


@dataclass(frozen=True)
class ColumnDefinition:
    """Declared shape of one table column."""

    name: str
    data_type: DataType
    primary_key: bool = False
    max_length: int | None = None
    precision: int | None = None
    nullable: bool = True
    property_name: str | None = None  # None means property name equals column name

    @property
    def attribute(self) -> str:
        """Return the name of the property backing this column."""
        return self.property_name or self.name


@dataclass(frozen=True)
class TableMetadata:
    """Extracted schema for one registered type.

    Columns are kept in declaration order. Instances are immutable and
    safe to share between threads.
    """

    table_name: str
    primary_key_property: str
    columns: tuple[ColumnDefinition, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[ColumnDefinition]:
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    @property
    def primary_key(self) -> ColumnDefinition:
        """Return the primary key column."""
        for col in self.columns:
            if col.primary_key:
                return col
        raise KeyError(f"Table '{self.table_name}' has no primary key column")

    @property
    def column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    @property
    def data_columns(self) -> list[ColumnDefinition]:
        """Return every column except the primary key."""
        return [col for col in self.columns if not col.primary_key]

    def get_column(self, name: str) -> ColumnDefinition | None:
        """Get a column by column name."""
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def get_column_for_property(self, property_name: str) -> ColumnDefinition | None:
        """Get the column backed by a property."""
        for col in self.columns:
            if col.attribute == property_name:
                return col
        return None


class OrderDirection(Enum):
    """Direction in which results are returned."""

    ASCENDING = "Ascending"
    DESCENDING = "Descending"


@dataclass(frozen=True)
class ResultOrder:
    """Column and direction by which results are ordered."""

    column: str
    direction: OrderDirection = OrderDirection.ASCENDING

    def __post_init__(self) -> None:
        if not self.column:
            raise ArgumentError("Result order requires a column name")
