"""Registry mapping mapped types to their table metadata."""

from __future__ import annotations

import threading
from typing import Any

from typed_rows.errors import ArgumentError, ConfigurationError, DuplicateTypeError, UninitializedTypeError
from typed_rows.types import ColumnDefinition, TableMetadata


class MetadataRegistry:
    """Registry of table metadata keyed by type identity.

    Each ORM owns its own registry, so independent ORMs (or tests) never
    see each other's registrations. One lock guards both insertion and
    lookup; stored metadata is immutable and can be used without it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metadata: dict[type, TableMetadata] = {}

    def register(self, cls: type, metadata: TableMetadata) -> None:
        """Register metadata for a type.

        Raises:
            DuplicateTypeError: If the type is already registered.
        """
        if not isinstance(cls, type):
            raise ArgumentError(f"Expected a class, got {cls!r}")
        if not isinstance(metadata, TableMetadata):
            raise ConfigurationError(f"Expected TableMetadata for '{cls.__name__}', got {metadata!r}")
        with self._lock:
            if cls in self._metadata:
                raise DuplicateTypeError(f"Type '{cls.__name__}' is already registered")
            self._metadata[cls] = metadata

    def unregister(self, cls: type) -> None:
        """Remove a type's metadata, raising if it was never registered."""
        with self._lock:
            if cls not in self._metadata:
                raise UninitializedTypeError(cls)
            del self._metadata[cls]

    def lookup(self, cls: type) -> TableMetadata:
        """Get a type's metadata, raising if it was never registered."""
        if cls is None:
            raise ArgumentError("A type is required")
        with self._lock:
            metadata = self._metadata.get(cls)
        if metadata is None:
            raise UninitializedTypeError(cls)
        return metadata

    def metadata_for_object(self, obj: Any) -> TableMetadata:
        if obj is None:
            raise ArgumentError("An object is required")
        return self.lookup(type(obj))

    def is_registered(self, cls: type) -> bool:
        with self._lock:
            return cls in self._metadata

    def registered_types(self) -> list[type]:
        """List all registered types in registration order."""
        with self._lock:
            return list(self._metadata.keys())

    def table_name(self, cls: type) -> str:
        return self.lookup(cls).table_name

    def primary_key_column(self, cls: type) -> str:
        """Get the column name of a type's primary key."""
        return self.lookup(cls).primary_key.name

    def primary_key_property(self, cls: type) -> str:
        """Get the property name of a type's primary key."""
        return self.lookup(cls).primary_key_property

    def column(self, cls: type, column_name: str) -> ColumnDefinition:
        """Get a column definition by column name.

        Raises:
            ArgumentError: If the type has no such column.
        """
        col = self.lookup(cls).get_column(column_name)
        if col is None:
            raise ArgumentError(f"Type '{cls.__name__}' has no column named '{column_name}'")
        return col

    def column_for_property(self, cls: type, property_name: str) -> str:
        """Get the column name backing a property.

        Raises:
            ArgumentError: If the property is not backed by a column.
        """
        if not property_name:
            raise ArgumentError("A property name is required")
        col = self.lookup(cls).get_column_for_property(property_name)
        if col is None:
            raise ArgumentError(
                f"No column found for property '{property_name}' of type '{cls.__name__}'"
            )
        return col.name

    def property_for_column(self, cls: type, column_name: str) -> str:
        """Get the property name backing a column.

        Raises:
            ArgumentError: If no property backs the column.
        """
        if not column_name:
            raise ArgumentError("A column name is required")
        col = self.lookup(cls).get_column(column_name)
        if col is None:
            raise ArgumentError(
                f"No property found for column '{column_name}' of type '{cls.__name__}'"
            )
        return col.attribute

    def primary_key_value(self, obj: Any) -> Any:
        """Get the primary key value of an object.

        Raises:
            ArgumentError: If the primary key property is None.
        """
        prop = self.metadata_for_object(obj).primary_key_property
        value = getattr(obj, prop, None)
        if value is None:
            raise ArgumentError(f"Primary key property '{prop}' cannot be None")
        return value

    def __contains__(self, cls: type) -> bool:
        return self.is_registered(cls)

    def __len__(self) -> int:
        with self._lock:
            return len(self._metadata)
