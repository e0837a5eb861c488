"""Typed Rows - Map typed Python objects to relational table rows."""

from typed_rows.backends import BackendError, MemoryBackend, StorageBackend
from typed_rows.config import DebugSettings, ORMSettings
from typed_rows.errors import (
    ArgumentError,
    ConfigurationError,
    ConversionError,
    DuplicateTypeError,
    FilterSyntaxError,
    ORMError,
    UninitializedTypeError,
    UnsupportedDataTypeError,
)
from typed_rows.expressions import (
    Expression,
    Operator,
    between,
    list_to_nested_and,
    list_to_nested_or,
    prepend_and,
    prepend_or,
)
from typed_rows.mapper import RecordMapper
from typed_rows.orm import ORM
from typed_rows.parsing import parse_filter
from typed_rows.registry import MetadataRegistry
from typed_rows.schema import TableBuilder, column, extract_metadata, table
from typed_rows.types import (
    DB_NULL,
    ColumnDefinition,
    DataType,
    OrderDirection,
    ResultOrder,
    TableMetadata,
)

__all__ = [
    # Main API
    "ORM",
    "ORMSettings",
    "DebugSettings",
    # Schema
    "table",
    "column",
    "TableBuilder",
    "extract_metadata",
    "MetadataRegistry",
    "RecordMapper",
    # Type definitions
    "DataType",
    "ColumnDefinition",
    "TableMetadata",
    "OrderDirection",
    "ResultOrder",
    "DB_NULL",
    # Expressions
    "Expression",
    "Operator",
    "between",
    "prepend_and",
    "prepend_or",
    "list_to_nested_and",
    "list_to_nested_or",
    "parse_filter",
    # Backends
    "StorageBackend",
    "MemoryBackend",
    "BackendError",
    # Errors
    "ORMError",
    "ConfigurationError",
    "DuplicateTypeError",
    "UninitializedTypeError",
    "ConversionError",
    "UnsupportedDataTypeError",
    "ArgumentError",
    "FilterSyntaxError",
]

__version__ = "0.1.0"
