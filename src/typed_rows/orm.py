"""Dispatcher between mapped objects and a storage backend.

:class:`ORM` owns a metadata registry and a record mapper. Each operation
looks up the type's metadata, turns objects into value maps, prepares the
filter and hands plain rows and expressions to the backend. Rows coming
back are mapped to new objects.

Example::

    orm = ORM(MemoryBackend())
    orm.register_type(Person)
    ada = orm.insert(Person(first="Ada", last="Lovelace", age=36))
    adults = orm.select_many(Person, Expression("age", Operator.GREATER_THAN, 17))
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence, TypeVar

from typed_rows.backends.base import Row, StorageBackend
from typed_rows.config import ORMSettings
from typed_rows.errors import ArgumentError, ConfigurationError, DuplicateTypeError
from typed_rows.expressions import Expression, Operator, columns, map_literals, prepend_and, preprocess
from typed_rows.mapper import RecordMapper
from typed_rows.registry import MetadataRegistry
from typed_rows.schema import extract_metadata, validate_table
from typed_rows.types import DataType, ResultOrder, TableMetadata

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ORM:
    """Object-relational mapper over a :class:`StorageBackend`.

    Args:
        backend: Backend executing the storage calls.
        settings: Runtime settings. Defaults to ``ORMSettings()``.
        registry: Metadata registry. Defaults to a new, private registry.
    """

    def __init__(
        self,
        backend: StorageBackend,
        settings: ORMSettings | None = None,
        registry: MetadataRegistry | None = None,
    ) -> None:
        if backend is None:
            raise ArgumentError("A storage backend is required")
        self.backend = backend
        self.settings = settings if settings is not None else ORMSettings()
        self.registry = registry if registry is not None else MetadataRegistry()
        self.mapper = RecordMapper(self.registry, backend, omit_nulls=self.settings.omit_nulls)

    # --- Context management ---

    def __enter__(self) -> ORM:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the backend."""
        self.backend.close()

    # --- Registration and tables ---

    def register_type(self, cls: type, metadata: TableMetadata | None = None) -> TableMetadata:
        """Register a mapped type and make sure its table is usable.

        Metadata is extracted from the class unless ``metadata`` (for
        example the output of a :class:`TableBuilder`) is given. A missing
        table is created when ``settings.create_tables`` is on; an existing
        table must contain every declared column. Extra table columns are
        logged and otherwise ignored.

        Raises:
            DuplicateTypeError: If the type is already registered.
            ConfigurationError: If the metadata is invalid or the table
                does not match it.
        """
        if not isinstance(cls, type):
            raise ArgumentError(f"Expected a class, got {cls!r}")
        if self.registry.is_registered(cls):
            raise DuplicateTypeError(f"Type '{cls.__name__}' is already registered")
        if metadata is None:
            metadata = extract_metadata(cls)

        name = metadata.table_name
        if self.backend.table_exists(name):
            errors, warnings = validate_table(metadata, self.backend.describe_table(name), cls.__name__)
            for warning in warnings:
                logger.info("%s", warning)
            if errors:
                raise ConfigurationError("; ".join(errors))
        elif self.settings.create_tables:
            self.backend.create_table(name, metadata.columns)
            logger.info("Created table %s for type %s", name, cls.__name__)
        else:
            raise ConfigurationError(
                f"Table '{name}' for type '{cls.__name__}' does not exist and table creation is disabled"
            )

        self.registry.register(cls, metadata)
        logger.info("Registered type %s with table %s", cls.__name__, name)
        return metadata

    def register_types(self, types: Iterable[type]) -> None:
        """Register several mapped types in order."""
        if types is None:
            raise ArgumentError("A list of types is required")
        for cls in types:
            self.register_type(cls)

    def validate_table(self, cls: type) -> tuple[list[str], list[str]]:
        """Compare a type's declared columns with its table.

        Works for unregistered types too; their metadata is extracted.

        Returns:
            A tuple of (errors, warnings).
        """
        metadata = self._metadata_or_extract(cls)
        name = metadata.table_name
        existing = self.backend.describe_table(name) if self.backend.table_exists(name) else None
        return validate_table(metadata, existing, cls.__name__)

    def validate_tables(self, types: Iterable[type]) -> tuple[list[str], list[str]]:
        """Validate several types, collecting all errors and warnings."""
        if types is None:
            raise ArgumentError("A list of types is required")
        errors: list[str] = []
        warnings: list[str] = []
        for cls in types:
            type_errors, type_warnings = self.validate_table(cls)
            errors.extend(type_errors)
            warnings.extend(type_warnings)
        return errors, warnings

    def drop_table(self, cls: type) -> None:
        """Drop the table of a registered type, if it exists."""
        name = self.registry.table_name(cls)
        self._log_query("drop_table", name)
        self.backend.drop_table(name)
        logger.info("Dropped table %s", name)

    def truncate_table(self, cls: type) -> None:
        """Delete every row of a registered type's table."""
        name = self.registry.table_name(cls)
        self._log_query("truncate", name)
        self.backend.truncate(name)

    def get_table_name(self, cls: type) -> str:
        return self.registry.table_name(cls)

    def get_column_name(self, cls: type, property_name: str) -> str:
        return self.registry.column_for_property(cls, property_name)

    # --- Inserts ---

    def insert(self, obj: T) -> T:
        """Insert an object and return a new instance read back from the row."""
        cls = type(obj)
        metadata = self.registry.metadata_for_object(obj)
        values = self.mapper.to_value_map(obj)
        self._log_query("insert", metadata.table_name, values=values)
        row = self.backend.insert(metadata.table_name, values)
        self._log_results("insert", [row])
        return self.mapper.from_row(row, cls)  # type: ignore[return-value]

    def insert_many(self, objs: Sequence[T]) -> list[T]:
        """Insert objects one at a time, returning each stored instance."""
        objs = self._require_objects(objs)
        return [self.insert(obj) for obj in objs]

    def insert_multiple(self, objs: Sequence[Any]) -> None:
        """Insert objects of one type with a single backend call.

        Nothing is returned; use :meth:`insert_many` to get the stored rows.
        """
        objs = self._require_objects(objs)
        if not objs:
            return
        cls = type(objs[0])
        if any(type(obj) is not cls for obj in objs):
            raise ArgumentError("insert_multiple requires objects of a single type")
        metadata = self.registry.lookup(cls)
        rows = [self.mapper.to_value_map(obj) for obj in objs]
        self._log_query("insert_multiple", metadata.table_name, values=f"{len(rows)} row(s)")
        self.backend.insert_multiple(metadata.table_name, rows)

    # --- Updates ---

    def update(self, obj: T) -> T:
        """Write every non-key column of an object and return the stored row."""
        cls = type(obj)
        metadata = self.registry.metadata_for_object(obj)
        key_filter = self._key_filter(metadata, self.registry.primary_key_value(obj))
        values = self.mapper.to_value_map(obj)
        self._log_query("update", metadata.table_name, key_filter, values=values)
        self.backend.update(metadata.table_name, values, key_filter)
        return self._select_one(cls, metadata, key_filter)  # type: ignore[return-value]

    def update_many(self, cls: type, filter: Expression, values: Mapping[str, Any]) -> None:
        """Set columns to the given values on every matching row.

        Args:
            cls: Registered type whose table is updated.
            filter: Rows to update.
            values: Column name -> new value, coerced by column type.
        """
        metadata = self.registry.lookup(cls)
        filter = self._require_filter(metadata, filter)
        if not values:
            raise ArgumentError("update_many requires at least one column value")

        stored: dict[str, Any] = {}
        for name, value in values.items():
            col = metadata.get_column(name)
            if col is None:
                raise ArgumentError(f"Table '{metadata.table_name}' has no column named '{name}'")
            if col.primary_key:
                raise ArgumentError(f"Primary key column '{name}' cannot be updated")
            stored[name] = self.mapper.coercer.to_storage(col, value)

        prepared = self._prepare_filter(metadata, filter)
        self._log_query("update_many", metadata.table_name, prepared, values=stored)
        self.backend.update(metadata.table_name, stored, prepared)

    def update_all(self, objs: Sequence[T]) -> list[T]:
        """Update each object in turn, returning the stored instances."""
        objs = self._require_objects(objs)
        return [self.update(obj) for obj in objs]

    # --- Deletes ---

    def delete(self, obj: Any) -> None:
        """Delete the row of an object by its primary key."""
        metadata = self.registry.metadata_for_object(obj)
        key_filter = self._key_filter(metadata, self.registry.primary_key_value(obj))
        self._log_query("delete", metadata.table_name, key_filter)
        self.backend.delete(metadata.table_name, key_filter)

    def delete_by_key(self, cls: type, key: Any) -> None:
        metadata = self.registry.lookup(cls)
        key_filter = self._key_filter(metadata, key)
        self._log_query("delete", metadata.table_name, key_filter)
        self.backend.delete(metadata.table_name, key_filter)

    def delete_many(self, cls: type, filter: Expression) -> None:
        """Delete every row matching a filter."""
        metadata = self.registry.lookup(cls)
        prepared = self._prepare_filter(metadata, self._require_filter(metadata, filter))
        self._log_query("delete_many", metadata.table_name, prepared)
        self.backend.delete(metadata.table_name, prepared)

    # --- Reads ---

    def select_by_key(self, cls: type[T], key: Any) -> T | None:
        """Return the object with the given primary key, or None."""
        metadata = self.registry.lookup(cls)
        return self._select_one(cls, metadata, self._key_filter(metadata, key))

    def select_first(
        self,
        cls: type[T],
        filter: Expression,
        order: ResultOrder | Sequence[ResultOrder] | None = None,
    ) -> T | None:
        """Return the first object matching a filter, or None."""
        metadata = self.registry.lookup(cls)
        prepared = self._prepare_filter(metadata, self._require_filter(metadata, filter))
        rows = self._select(metadata, None, 1, prepared, self._order(metadata, order))
        return self.mapper.from_row(rows[0], cls) if rows else None

    def select_many(
        self,
        cls: type[T],
        filter: Expression | None = None,
        order: ResultOrder | Sequence[ResultOrder] | None = None,
        skip: int | None = None,
        limit: int | None = None,
    ) -> list[T]:
        """Return every object matching a filter.

        Args:
            cls: Registered type to read.
            filter: Optional filter; all rows when omitted.
            order: Sort order. Defaults to primary key ascending.
            skip: Number of leading rows to skip.
            limit: Maximum number of rows to return.
        """
        metadata = self.registry.lookup(cls)
        if skip is not None and skip < 0:
            raise ArgumentError(f"skip must not be negative, got {skip}")
        if limit is not None and limit < 1:
            raise ArgumentError(f"limit must be at least 1, got {limit}")
        if filter is not None:
            self._check_filter_columns(metadata, filter)
        prepared = self._prepare_filter(metadata, filter)
        rows = self._select(metadata, skip, limit, prepared, self._order(metadata, order))
        return self.mapper.from_rows(rows, cls)

    def exists(self, cls: type, filter: Expression) -> bool:
        """Return whether any row matches a filter."""
        metadata = self.registry.lookup(cls)
        prepared = self._prepare_filter(metadata, self._require_filter(metadata, filter))
        self._log_query("exists", metadata.table_name, prepared)
        result = self.backend.exists(metadata.table_name, prepared)
        self._log_results("exists", result)
        return result

    def count(self, cls: type, filter: Expression | None = None) -> int:
        """Count the rows matching a filter, or all rows."""
        metadata = self.registry.lookup(cls)
        if filter is not None:
            self._check_filter_columns(metadata, filter)
        prepared = self._prepare_filter(metadata, filter)
        self._log_query("count", metadata.table_name, prepared)
        result = self.backend.count(metadata.table_name, prepared)
        self._log_results("count", result)
        return result

    def sum(self, cls: type, column: str, filter: Expression | None = None) -> Decimal:
        """Sum a numeric column over the rows matching a filter."""
        metadata = self.registry.lookup(cls)
        col = metadata.get_column(column)
        if col is None:
            raise ArgumentError(f"Table '{metadata.table_name}' has no column named '{column}'")
        if not (col.data_type.is_integer or col.data_type in (DataType.DECIMAL, DataType.DOUBLE)):
            raise ArgumentError(f"Column '{column}' of type {col.data_type.value} cannot be summed")
        if filter is not None:
            self._check_filter_columns(metadata, filter)
        prepared = self._prepare_filter(metadata, filter)
        self._log_query("sum", metadata.table_name, prepared, values=column)
        result = self.backend.sum(metadata.table_name, column, prepared)
        self._log_results("sum", result)
        return result

    def query(self, text: str) -> list[Row]:
        """Run raw query text on the backend and return its rows unmapped."""
        if not text or not text.strip():
            raise ArgumentError("Query text is required")
        if self.settings.debug.database_queries:
            logger.debug("query: %s", text)
        rows = self.backend.query(text)
        self._log_results("query", rows)
        return rows

    # --- Async variants ---
    #
    # Each runs its synchronous counterpart in a worker thread so backend
    # I/O stays off the event loop. Cancelling the awaiting task abandons
    # the result; a backend call already running finishes in its thread.

    async def insert_async(self, obj: T) -> T:
        return await asyncio.to_thread(self.insert, obj)

    async def insert_many_async(self, objs: Sequence[T]) -> list[T]:
        return await asyncio.to_thread(self.insert_many, objs)

    async def insert_multiple_async(self, objs: Sequence[Any]) -> None:
        await asyncio.to_thread(self.insert_multiple, objs)

    async def update_async(self, obj: T) -> T:
        return await asyncio.to_thread(self.update, obj)

    async def update_many_async(self, cls: type, filter: Expression, values: Mapping[str, Any]) -> None:
        await asyncio.to_thread(self.update_many, cls, filter, values)

    async def update_all_async(self, objs: Sequence[T]) -> list[T]:
        return await asyncio.to_thread(self.update_all, objs)

    async def delete_async(self, obj: Any) -> None:
        await asyncio.to_thread(self.delete, obj)

    async def delete_by_key_async(self, cls: type, key: Any) -> None:
        await asyncio.to_thread(self.delete_by_key, cls, key)

    async def delete_many_async(self, cls: type, filter: Expression) -> None:
        await asyncio.to_thread(self.delete_many, cls, filter)

    async def select_by_key_async(self, cls: type[T], key: Any) -> T | None:
        return await asyncio.to_thread(self.select_by_key, cls, key)

    async def select_first_async(
        self,
        cls: type[T],
        filter: Expression,
        order: ResultOrder | Sequence[ResultOrder] | None = None,
    ) -> T | None:
        return await asyncio.to_thread(self.select_first, cls, filter, order)

    async def select_many_async(
        self,
        cls: type[T],
        filter: Expression | None = None,
        order: ResultOrder | Sequence[ResultOrder] | None = None,
        skip: int | None = None,
        limit: int | None = None,
    ) -> list[T]:
        return await asyncio.to_thread(self.select_many, cls, filter, order, skip, limit)

    async def exists_async(self, cls: type, filter: Expression) -> bool:
        return await asyncio.to_thread(self.exists, cls, filter)

    async def count_async(self, cls: type, filter: Expression | None = None) -> int:
        return await asyncio.to_thread(self.count, cls, filter)

    async def sum_async(self, cls: type, column: str, filter: Expression | None = None) -> Decimal:
        return await asyncio.to_thread(self.sum, cls, column, filter)

    async def query_async(self, text: str) -> list[Row]:
        return await asyncio.to_thread(self.query, text)

    # --- Formatting helpers ---

    def timestamp(self, dt: datetime.datetime) -> str:
        return self.backend.timestamp(dt)

    def timestamp_offset(self, dt: datetime.datetime) -> str:
        return self.backend.timestamp_offset(dt)

    def sanitize(self, value: str) -> str:
        """Escape a string for inclusion in raw query text."""
        if value is None:
            raise ArgumentError("A string is required")
        return self.backend.sanitize_string(value)

    # --- Internals ---

    def _metadata_or_extract(self, cls: type) -> TableMetadata:
        if self.registry.is_registered(cls):
            return self.registry.lookup(cls)
        return extract_metadata(cls)

    def _require_objects(self, objs: Sequence[Any] | None) -> list[Any]:
        if objs is None:
            raise ArgumentError("A list of objects is required")
        objs = list(objs)
        for obj in objs:
            if obj is None:
                raise ArgumentError("Object lists cannot contain None")
            self.registry.metadata_for_object(obj)
        return objs

    def _require_filter(self, metadata: TableMetadata, filter: Expression | None) -> Expression:
        if filter is None:
            raise ArgumentError("A filter expression is required")
        if not isinstance(filter, Expression):
            raise ArgumentError(f"Expected an Expression, got {type(filter).__name__}")
        self._check_filter_columns(metadata, filter)
        return filter

    def _check_filter_columns(self, metadata: TableMetadata, filter: Expression) -> None:
        for name in columns(filter):
            if metadata.get_column(name) is None:
                raise ArgumentError(f"Table '{metadata.table_name}' has no column named '{name}'")

    def _key_filter(self, metadata: TableMetadata, key: Any) -> Expression:
        if key is None:
            raise ArgumentError("A primary key value is required")
        pk = metadata.primary_key
        return Expression(pk.name, Operator.EQUALS, self.mapper.coercer.to_storage(pk, key))

    def _prepare_filter(self, metadata: TableMetadata, filter: Expression | None) -> Expression:
        """Guard a filter with ``pk IS NOT NULL`` and normalise its literals.

        Literals are coerced by their column's data type, the same way
        values are written, so an enum stored by name matches an enum
        literal. Text fragments of Contains/StartsWith/EndsWith are kept.
        """
        guard = Expression(metadata.primary_key.name, Operator.IS_NOT_NULL)
        if filter is None:
            return guard
        coercer = self.mapper.coercer

        def coerce(name: str, operator: Operator, value: Any) -> Any:
            col = metadata.get_column(name)
            if col is None:
                raise ArgumentError(f"Table '{metadata.table_name}' has no column named '{name}'")
            if operator.takes_list:
                return tuple(coercer.to_literal(col, v) for v in value)
            if operator.matches_text:
                return value
            return coercer.to_literal(col, value)

        return preprocess(map_literals(prepend_and(filter, guard), coerce))

    def _order(
        self,
        metadata: TableMetadata,
        order: ResultOrder | Sequence[ResultOrder] | None,
    ) -> list[ResultOrder]:
        if order is None:
            return [ResultOrder(metadata.primary_key.name)]
        orders = [order] if isinstance(order, ResultOrder) else list(order)
        for o in orders:
            if not isinstance(o, ResultOrder):
                raise ArgumentError(f"Expected a ResultOrder, got {o!r}")
            if metadata.get_column(o.column) is None:
                raise ArgumentError(f"Table '{metadata.table_name}' has no column named '{o.column}'")
        return orders or [ResultOrder(metadata.primary_key.name)]

    def _select(
        self,
        metadata: TableMetadata,
        skip: int | None,
        limit: int | None,
        filter: Expression,
        order: list[ResultOrder],
    ) -> list[Row]:
        self._log_query("select", metadata.table_name, filter, values=f"skip={skip} limit={limit}")
        rows = self.backend.select(metadata.table_name, skip, limit, filter, order)
        self._log_results("select", rows)
        return rows

    def _select_one(self, cls: type, metadata: TableMetadata, key_filter: Expression) -> Any:
        rows = self._select(metadata, None, 1, key_filter, [ResultOrder(metadata.primary_key.name)])
        return self.mapper.from_row(rows[0], cls) if rows else None

    def _log_query(
        self,
        operation: str,
        table_name: str,
        filter: Expression | None = None,
        values: Any = None,
    ) -> None:
        if not self.settings.debug.database_queries:
            return
        message = f"{operation} {table_name}"
        if filter is not None:
            message += f" where {filter}"
        if values is not None:
            message += f" values {values}"
        logger.debug("%s", message)

    def _log_results(self, operation: str, result: Any) -> None:
        if not self.settings.debug.database_results:
            return
        if isinstance(result, list):
            logger.debug("%s returned %d row(s): %s", operation, len(result), result)
        else:
            logger.debug("%s returned %r", operation, result)
