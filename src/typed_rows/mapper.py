"""Conversion between mapped objects and name/value rows."""

from __future__ import annotations

import logging
import typing
from typing import Any, Mapping, Sequence, TypeVar

from typed_rows.coercion import TimestampFormatter, ValueCoercer
from typed_rows.errors import ArgumentError, ConfigurationError
from typed_rows.registry import MetadataRegistry
from typed_rows.types import TableMetadata

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordMapper:
    """Maps objects of registered types to value maps and rows back to objects.

    A mapper holds no per-call state; it can be shared between threads.
    """

    def __init__(
        self,
        registry: MetadataRegistry,
        formatter: TimestampFormatter,
        omit_nulls: bool = False,
    ) -> None:
        self.registry = registry
        self.coercer = ValueCoercer(formatter)
        self.omit_nulls = omit_nulls
        self._hints: dict[type, dict[str, Any]] = {}

    def to_value_map(self, obj: Any, omit_nulls: bool | None = None) -> dict[str, Any]:
        """Build the column name -> stored value map for an object.

        The primary key column is never included. A None property becomes
        an explicit None entry unless null omission is requested.

        Raises:
            UninitializedTypeError: If the object's type is not registered.
            ConfigurationError: If no column is eligible for writing.
        """
        metadata = self.registry.metadata_for_object(obj)
        omit = self.omit_nulls if omit_nulls is None else omit_nulls

        if not metadata.data_columns:
            raise ConfigurationError(
                f"Type '{type(obj).__name__}' does not have any writable columns"
            )

        values: dict[str, Any] = {}
        for col in metadata.data_columns:
            value = self.coercer.to_storage(col, getattr(obj, col.attribute, None))
            if value is None and omit:
                continue
            values[col.name] = value
        return values

    def from_row(self, row: Mapping[str, Any] | None, cls: type[T]) -> T | None:
        """Build a new instance of ``cls`` from a row.

        Columns present in both the row and the metadata are coerced to the
        property's declared type. Row keys that are not columns are ignored.
        """
        if row is None:
            return None
        metadata = self.registry.lookup(cls)
        hints = self._type_hints(cls, metadata)

        obj = cls()
        for name, raw in row.items():
            col = metadata.get_column(name)
            if col is None:
                continue
            prop = col.attribute
            if prop not in hints:
                raise ArgumentError(
                    f"Unable to find property in type '{cls.__name__}' for column '{name}'"
                )
            setattr(obj, prop, self.coercer.from_storage(col, raw, hints[prop]))
        return obj

    def from_rows(self, rows: Sequence[Mapping[str, Any]] | None, cls: type[T]) -> list[T]:
        """Build one instance per row."""
        if not rows:
            return []
        result = []
        for row in rows:
            obj = self.from_row(row, cls)
            if obj is not None:
                result.append(obj)
        return result

    def _type_hints(self, cls: type, metadata: TableMetadata) -> dict[str, Any]:
        """Resolve the declared type of every column-backed property.

        Properties without an annotation map to None (column default type);
        properties missing from the class are left out.
        """
        hints = self._hints.get(cls)
        if hints is not None:
            return hints

        try:
            annotations = typing.get_type_hints(cls)
        except (NameError, TypeError) as exc:
            logger.warning("Could not resolve annotations of %s: %s", cls.__name__, exc)
            annotations = {}

        instance = None
        hints = {}
        for col in metadata.columns:
            prop = col.attribute
            if prop in annotations:
                hints[prop] = annotations[prop]
                continue
            if instance is None:
                instance = cls()
            if hasattr(instance, prop):
                hints[prop] = None

        # Races only recompute the same value
        self._hints[cls] = hints
        return hints
