"""Conversion between property values and their storage representation.

The write path is keyed by the column's declared data type; the read path
by the property's declared Python type, with the column type deciding how
enums are stored and how integers are range checked.
"""

from __future__ import annotations

import datetime
import types
import uuid
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Protocol, Union, get_args, get_origin

from typed_rows.errors import ConversionError, UnsupportedDataTypeError
from typed_rows.types import ColumnDefinition, DataType, is_null


class TimestampFormatter(Protocol):
    """Timestamp formatting supplied by a storage backend."""

    def timestamp(self, dt: datetime.datetime) -> str: ...

    def timestamp_offset(self, dt: datetime.datetime) -> str: ...


# Inclusive (min, max) accepted by each integer column type
INTEGER_RANGES: dict[DataType, tuple[int, int]] = {
    DataType.TINYINT: (0, 0xFF),
    DataType.INT: (-(2**31), 2**31 - 1),
    DataType.LONG: (-(2**63), 2**63 - 1),
}

# Python type assumed for a column whose property carries no annotation
DEFAULT_PYTHON_TYPES: dict[DataType, type] = {
    DataType.VARCHAR: str,
    DataType.NVARCHAR: str,
    DataType.TINYINT: int,
    DataType.INT: int,
    DataType.BOOLEAN: bool,
    DataType.ENUM: int,
    DataType.LONG: int,
    DataType.DECIMAL: Decimal,
    DataType.DOUBLE: float,
    DataType.DATETIME: datetime.datetime,
    DataType.DATETIMEOFFSET: datetime.datetime,
    DataType.BLOB: bytes,
    DataType.GUID: uuid.UUID,
}

_TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "t"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n", "f"})


def unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Strip ``Optional``/``X | None`` from an annotation.

    Returns:
        A tuple of (inner type, whether None was allowed).
    """
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        optional = len(args) != len(get_args(annotation))
        if len(args) == 1:
            return args[0], optional
        return Union[tuple(args)], optional  # type: ignore[return-value]
    return annotation, False


def _describe(value: Any) -> str:
    return f"{value!r} ({type(value).__name__})"


def to_bool(value: Any) -> bool:
    """Convert a stored boolean (bool, int or string) to bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, Decimal)) or (isinstance(value, float) and value.is_integer()):
        if value in (0, 1):
            return bool(value)
    elif isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ConversionError(f"Cannot convert {_describe(value)} to bool")


def to_integer(value: Any, data_type: DataType = DataType.LONG) -> int:
    """Convert a value to int without truncating, range checked for ``data_type``."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        result = int(value)
    elif isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ConversionError(f"Cannot convert {_describe(value)} to an integer without truncation")
        result = int(value)
    elif isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            raise ConversionError(f"Cannot convert {_describe(value)} to an integer without truncation")
        result = int(value)
    elif isinstance(value, str):
        try:
            result = int(value.strip())
        except ValueError:
            raise ConversionError(f"Cannot convert {_describe(value)} to an integer") from None
    else:
        raise ConversionError(f"Cannot convert {_describe(value)} to an integer")

    low, high = INTEGER_RANGES.get(data_type, INTEGER_RANGES[DataType.LONG])
    if not low <= result <= high:
        raise ConversionError(f"Value {result} is out of range for a {data_type.value} column")
    return result


def to_decimal(value: Any, column: ColumnDefinition | None = None) -> Decimal:
    """Convert a value to Decimal, checking the column's length and precision."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        result = Decimal(int(value))
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        # repr gives the shortest string that round-trips, avoiding binary noise
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ConversionError(f"Cannot convert {_describe(value)} to Decimal") from None
    else:
        raise ConversionError(f"Cannot convert {_describe(value)} to Decimal")

    if not result.is_finite():
        raise ConversionError(f"Cannot store non-finite decimal {result}")
    if column is not None and column.max_length is not None and column.precision is not None:
        _check_decimal_size(result, column)
    return result


def _check_decimal_size(value: Decimal, column: ColumnDefinition) -> None:
    exponent = value.normalize().as_tuple().exponent
    fraction_digits = max(0, -int(exponent))
    # Zero has no integer digits, so DECIMAL(4,4) still accepts it
    integer_digits = 0 if not value else max(0, value.adjusted() + 1)
    if fraction_digits > column.precision:  # type: ignore[operator]
        raise ConversionError(
            f"Value {value} has more than {column.precision} decimal places for column '{column.name}'"
        )
    if integer_digits > column.max_length - column.precision:  # type: ignore[operator]
        raise ConversionError(f"Value {value} does not fit column '{column.name}'")


def to_float(value: Any) -> float:
    if isinstance(value, float):
        return value
    if isinstance(value, (int, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise ConversionError(f"Cannot convert {_describe(value)} to float") from None
    raise ConversionError(f"Cannot convert {_describe(value)} to float")


def to_uuid(value: Any) -> uuid.UUID:
    """Normalize a native UUID, 16 raw bytes or a string to a UUID.

    Raw bytes use the mixed-endian GUID layout (``UUID.bytes_le``), in
    which the first three fields are little-endian.
    """
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if len(raw) == 16:
            return uuid.UUID(bytes_le=raw)
        raise ConversionError(f"Cannot convert {len(raw)} bytes to a GUID, expected 16")
    if isinstance(value, str):
        try:
            return uuid.UUID(value.strip())
        except ValueError:
            raise ConversionError(f"Cannot convert {_describe(value)} to a GUID") from None
    raise ConversionError(f"Cannot convert value of type {type(value).__name__} to a GUID")


def to_datetime(value: Any, aware: bool = False) -> datetime.datetime:
    """Parse a stored timestamp.

    Naive results read for an offset column are taken to be UTC.
    """
    if isinstance(value, datetime.datetime):
        result = value
    elif isinstance(value, datetime.date):
        result = datetime.datetime.combine(value, datetime.time())
    elif isinstance(value, str):
        try:
            result = datetime.datetime.fromisoformat(value.strip())
        except ValueError:
            raise ConversionError(f"Cannot parse {_describe(value)} as a timestamp") from None
    else:
        raise ConversionError(f"Cannot convert {_describe(value)} to datetime")
    if aware and result.tzinfo is None:
        result = result.replace(tzinfo=datetime.timezone.utc)
    return result


def to_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return to_datetime(value).date()


def to_enum(value: Any, enum_cls: type[Enum]) -> Enum:
    """Resolve a stored value to an enum member.

    Integers and digit strings resolve by value, other strings by member
    name, falling back to value lookup for string-valued enums.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            value = int(text)
        else:
            try:
                return enum_cls[text]
            except KeyError:
                pass
            try:
                return enum_cls(text)
            except ValueError:
                raise ConversionError(f"'{text}' is not a member of {enum_cls.__name__}") from None
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        try:
            return enum_cls(to_integer(value))
        except ValueError:
            raise ConversionError(f"{value} is not a value of {enum_cls.__name__}") from None
    raise ConversionError(f"Cannot convert {_describe(value)} to {enum_cls.__name__}")


def to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise ConversionError(f"Cannot convert {_describe(value)} to bytes")


class ValueCoercer:
    """Type-directed conversion between property values and stored values.

    Timestamps are formatted by the storage backend passed as
    ``formatter``; this class never chooses a timestamp format itself.
    """

    def __init__(self, formatter: TimestampFormatter) -> None:
        self.formatter = formatter
        self._writers: dict[DataType, Callable[[ColumnDefinition, Any], Any]] = {
            DataType.VARCHAR: self._write_text,
            DataType.NVARCHAR: self._write_text,
            DataType.TINYINT: self._write_integer,
            DataType.INT: self._write_integer,
            DataType.LONG: self._write_integer,
            DataType.BOOLEAN: lambda col, v: int(to_bool(v)),
            DataType.ENUM: self._write_enum,
            DataType.DECIMAL: lambda col, v: to_decimal(v, col),
            DataType.DOUBLE: lambda col, v: to_float(v),
            DataType.DATETIME: self._write_datetime,
            DataType.DATETIMEOFFSET: self._write_datetime_offset,
            DataType.BLOB: lambda col, v: to_bytes(v),
            DataType.GUID: lambda col, v: str(to_uuid(v)),
        }

    def to_storage(self, column: ColumnDefinition, value: Any) -> Any:
        """Convert a property value for writing to ``column``.

        Raises:
            UnsupportedDataTypeError: If the column's data type is unknown.
            ConversionError: If the value cannot be represented.
        """
        writer = self._writers.get(column.data_type)
        if writer is None:
            raise UnsupportedDataTypeError(
                f"Unsupported data type {column.data_type!r} for column '{column.name}'"
            )
        if is_null(value):
            return None
        try:
            return writer(column, value)
        except ConversionError as exc:
            raise ConversionError(f"Column '{column.name}': {exc}") from exc

    def to_literal(self, column: ColumnDefinition, value: Any) -> Any:
        """Convert a filter literal to the form values of ``column`` are stored in.

        Numbers compared with a numeric column are kept as given, so a
        filter may name values outside the column's range or scale. Strings
        compared with an Enum column are kept unless they hold a number.
        """
        data_type = column.data_type
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            if data_type.is_integer or data_type in (DataType.DECIMAL, DataType.DOUBLE):
                return value
        if data_type is DataType.ENUM and isinstance(value, str):
            if not value.strip().lstrip("-").isdigit():
                return value
        return self.to_storage(column, value)

    def from_storage(self, column: ColumnDefinition, value: Any, target: Any = None) -> Any:
        """Convert a stored value to the property's declared type.

        Args:
            column: The column the value was read from.
            value: The raw value returned by the backend.
            target: The property's annotation; None uses the column default.

        Raises:
            UnsupportedDataTypeError: If the column's data type is unknown.
            ConversionError: If the value cannot be converted.
        """
        if column.data_type not in self._writers:
            raise UnsupportedDataTypeError(
                f"Unsupported data type {column.data_type!r} for column '{column.name}'"
            )
        if is_null(value):
            return None

        target, _ = unwrap_optional(target)
        if target is None or target is Any:
            target = DEFAULT_PYTHON_TYPES[column.data_type]
        try:
            return self._read(column, value, target)
        except ConversionError as exc:
            raise ConversionError(f"Column '{column.name}': {exc}") from exc

    def _read(self, column: ColumnDefinition, value: Any, target: Any) -> Any:
        if not isinstance(target, type):
            raise ConversionError(f"Cannot convert {_describe(value)} to {target!r}")
        if target is bool:
            return to_bool(value)
        if issubclass(target, Enum):
            return to_enum(value, target)
        if target is uuid.UUID:
            return to_uuid(value)
        if issubclass(target, datetime.datetime):
            return to_datetime(value, aware=column.data_type is DataType.DATETIMEOFFSET)
        if issubclass(target, datetime.date):
            return to_date(value)
        if target is Decimal:
            return to_decimal(value)
        if target is float:
            return to_float(value)
        if target is int:
            data_type = column.data_type if column.data_type.is_integer else DataType.LONG
            return to_integer(value, data_type)
        if target is str:
            if isinstance(value, (bytes, bytearray)):
                return bytes(value).decode("utf-8")
            return str(value)
        if target is bytes:
            return to_bytes(value)
        if isinstance(value, target):
            return value
        raise ConversionError(f"Cannot convert {_describe(value)} to {target.__name__}")

    def _write_text(self, column: ColumnDefinition, value: Any) -> str:
        if isinstance(value, Enum):
            return value.name
        if isinstance(value, str):
            return value
        if isinstance(value, (bytes, bytearray)):
            raise ConversionError(f"Cannot store {_describe(value)} in a text column")
        return str(value)

    def _write_integer(self, column: ColumnDefinition, value: Any) -> int:
        return to_integer(value, column.data_type)

    def _write_enum(self, column: ColumnDefinition, value: Any) -> int | str:
        if isinstance(value, Enum):
            if isinstance(value.value, int) and not isinstance(value.value, bool):
                return to_integer(value.value, DataType.INT)
            return value.name
        return to_integer(value, DataType.INT)

    def _write_datetime(self, column: ColumnDefinition, value: Any) -> str:
        if isinstance(value, str):
            value = to_datetime(value)
        elif not isinstance(value, datetime.datetime):
            if isinstance(value, datetime.date):
                value = datetime.datetime.combine(value, datetime.time())
            else:
                raise ConversionError(f"Cannot store {_describe(value)} in a DateTime column")
        return self.formatter.timestamp(value)

    def _write_datetime_offset(self, column: ColumnDefinition, value: Any) -> str:
        if isinstance(value, str):
            value = to_datetime(value)
        if not isinstance(value, datetime.datetime):
            raise ConversionError(f"Cannot store {_describe(value)} in a DateTimeOffset column")
        if value.tzinfo is None:
            raise ConversionError("DateTimeOffset columns require a timezone-aware datetime")
        return self.formatter.timestamp_offset(value)
