"""Declarative table/column tags and schema extraction.

A mapped type is a dataclass decorated with :func:`table` whose fields are
declared with :func:`column`::

    @table("person")
    @dataclass
    class Person:
        id: int | None = column(DataType.INT, primary_key=True)
        first_name: str | None = column(DataType.NVARCHAR, max_length=64, name="firstname")

Types that cannot carry tags describe themselves with :class:`TableBuilder`.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from typed_rows.errors import ConfigurationError
from typed_rows.types import ColumnDefinition, DataType, TableMetadata

# Key under which a ColumnTag is stored in a dataclass field's metadata
COLUMN_TAG_KEY = "typed_rows.column"

# Class attribute holding the TableTag set by @table
TABLE_TAG_ATTR = "__table_tag__"

T = TypeVar("T")


@dataclass(frozen=True)
class TableTag:
    """Links a class to a table."""

    name: str

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigurationError("Table tag requires a non-empty table name")


@dataclass(frozen=True)
class ColumnTag:
    """Links a property to a column.

    All declaration rules are checked here, when the tag is constructed,
    so a bad declaration fails as soon as the class body is evaluated.
    """

    data_type: DataType
    name: str | None = None
    primary_key: bool = False
    max_length: int | None = None
    precision: int | None = None
    nullable: bool | None = None  # None = not null for primary keys, nullable otherwise

    def __post_init__(self) -> None:
        label = f"column '{self.name}'" if self.name else "column"

        if not isinstance(self.data_type, DataType):
            raise ConfigurationError(f"Unknown data type {self.data_type!r} for {label}")
        if self.name is not None and not self.name.strip():
            raise ConfigurationError("Column tag name cannot be empty")
        if self.primary_key and self.nullable:
            raise ConfigurationError(f"Primary key {label} cannot be nullable")
        if self.max_length is not None and self.max_length < 1:
            raise ConfigurationError(f"Maximum length of {label} must be greater than zero")
        if self.precision is not None and self.precision < 1:
            raise ConfigurationError(f"Precision of {label} must be greater than zero")
        if self.data_type.requires_precision and (
            self.max_length is None or self.precision is None
        ):
            raise ConfigurationError(
                f"{self.data_type.value} {label} requires both a maximum length and a precision"
            )
        if self.data_type.requires_precision and self.precision > self.max_length:  # type: ignore[operator]
            raise ConfigurationError(
                f"Precision of {label} cannot exceed its maximum length "
                f"({self.precision} > {self.max_length})"
            )
        if self.data_type.requires_length and self.max_length is None:
            raise ConfigurationError(
                f"{self.data_type.value} {label} requires a maximum length"
            )

        if self.nullable is None:
            object.__setattr__(self, "nullable", not self.primary_key)

    def to_column(self, property_name: str) -> ColumnDefinition:
        """Build the column definition for the property carrying this tag."""
        return ColumnDefinition(
            name=self.name or property_name,
            data_type=self.data_type,
            primary_key=self.primary_key,
            max_length=self.max_length,
            precision=self.precision,
            nullable=bool(self.nullable),
            property_name=property_name,
        )


def table(name: str) -> Callable[[type[T]], type[T]]:
    """Class decorator attaching a table tag."""
    tag = TableTag(name)

    def decorate(cls: type[T]) -> type[T]:
        setattr(cls, TABLE_TAG_ATTR, tag)
        return cls

    return decorate


def column(
    data_type: DataType,
    *,
    name: str | None = None,
    primary_key: bool = False,
    max_length: int | None = None,
    precision: int | None = None,
    nullable: bool | None = None,
    default: Any = None,
    default_factory: Callable[[], Any] | None = None,
) -> Any:
    """Declare a dataclass field backed by a column.

    Returns a ``dataclasses.field`` carrying a validated :class:`ColumnTag`.
    Fields default to ``None`` so mapped types can always be constructed
    without arguments.
    """
    tag = ColumnTag(
        data_type=data_type,
        name=name,
        primary_key=primary_key,
        max_length=max_length,
        precision=precision,
        nullable=nullable,
    )
    metadata = {COLUMN_TAG_KEY: tag}
    if default_factory is not None:
        return dataclasses.field(default_factory=default_factory, metadata=metadata)
    return dataclasses.field(default=default, metadata=metadata)


def get_table_tag(cls: type) -> TableTag | None:
    """Get the table tag of a class, if any."""
    tag = getattr(cls, TABLE_TAG_ATTR, None)
    return tag if isinstance(tag, TableTag) else None


def extract_metadata(cls: type) -> TableMetadata:
    """Extract table metadata from a tagged dataclass.

    Raises:
        ConfigurationError: If the class has no table tag, is not a
            dataclass, declares no columns, or has no single primary key.
    """
    tag = get_table_tag(cls)
    if tag is None:
        raise ConfigurationError(f"Type '{cls.__name__}' does not have a table tag")
    if not dataclasses.is_dataclass(cls):
        raise ConfigurationError(
            f"Type '{cls.__name__}' with table name '{tag.name}' must be a dataclass"
        )

    columns: list[ColumnDefinition] = []
    for f in dataclasses.fields(cls):
        col_tag = f.metadata.get(COLUMN_TAG_KEY)
        if col_tag is None:
            continue
        columns.append(col_tag.to_column(f.name))

    return build_metadata(cls.__name__, tag.name, columns)


def build_metadata(
    type_name: str, table_name: str, columns: Sequence[ColumnDefinition]
) -> TableMetadata:
    """Validate a column list and assemble table metadata."""
    if not columns:
        raise ConfigurationError(
            f"Type '{type_name}' with table name '{table_name}' does not have any columns"
        )

    primary_keys = [col for col in columns if col.primary_key]
    if not primary_keys:
        raise ConfigurationError(
            f"Type '{type_name}' with table name '{table_name}' does not have a primary key column"
        )
    if len(primary_keys) > 1:
        names = ", ".join(col.name for col in primary_keys)
        raise ConfigurationError(
            f"Type '{type_name}' with table name '{table_name}' declares multiple primary keys: {names}"
        )

    seen: set[str] = set()
    for col in columns:
        if col.name in seen:
            raise ConfigurationError(
                f"Type '{type_name}' declares column '{col.name}' more than once"
            )
        seen.add(col.name)

    return TableMetadata(
        table_name=table_name,
        primary_key_property=primary_keys[0].attribute,
        columns=tuple(columns),
    )


class TableBuilder:
    """Fluent schema builder for types that do not carry tags.

    Example::

        metadata = (
            TableBuilder("person")
            .column("id", DataType.INT, primary_key=True)
            .column("first_name", DataType.NVARCHAR, name="firstname", max_length=64)
            .build()
        )
    """

    def __init__(self, table_name: str) -> None:
        self._tag = TableTag(table_name)
        self._columns: list[ColumnDefinition] = []

    def column(
        self,
        property_name: str,
        data_type: DataType,
        *,
        name: str | None = None,
        primary_key: bool = False,
        max_length: int | None = None,
        precision: int | None = None,
        nullable: bool | None = None,
    ) -> TableBuilder:
        """Add a column backed by ``property_name``."""
        if not property_name:
            raise ConfigurationError("Builder columns require a property name")
        tag = ColumnTag(
            data_type=data_type,
            name=name,
            primary_key=primary_key,
            max_length=max_length,
            precision=precision,
            nullable=nullable,
        )
        self._columns.append(tag.to_column(property_name))
        return self

    def build(self) -> TableMetadata:
        return build_metadata(self._tag.name, self._tag.name, self._columns)


def validate_table(
    metadata: TableMetadata,
    existing_columns: Sequence[ColumnDefinition] | None,
    type_name: str = "",
) -> tuple[list[str], list[str]]:
    """Compare declared columns with the columns of an existing table.

    Args:
        metadata: Declared table metadata.
        existing_columns: Columns reported by the backend, or None if the
            table does not exist yet.
        type_name: Name of the mapped type, used in messages.

    Returns:
        A tuple of (errors, warnings). Declared columns missing from the
        table are errors; table columns nobody declared are warnings.
    """
    errors: list[str] = []
    warnings: list[str] = []
    prefix = f"Type '{type_name}' with table name '{metadata.table_name}'"

    if existing_columns is None:
        warnings.append(f"{prefix} has not yet been created and will be created upon initialization")
        return errors, warnings

    existing_names = {col.name for col in existing_columns}
    for col in metadata.columns:
        if col.name not in existing_names:
            errors.append(f"{prefix} exists but column '{col.name}' does not")

    declared = set(metadata.column_names)
    for col in existing_columns:
        if col.name not in declared:
            warnings.append(f"{prefix} contains additional column '{col.name}' which is not declared")

    return errors, warnings
