"""Exception hierarchy for typed_rows.

Every error is raised locally, before any call reaches a storage backend.
Backend errors are never wrapped.
"""

from __future__ import annotations


class ORMError(Exception):
    """Base class for all typed_rows errors."""


class ConfigurationError(ORMError, ValueError):
    """Invalid column/table declaration or registration."""


class DuplicateTypeError(ConfigurationError):
    """A type was registered twice with the same registry."""


class UninitializedTypeError(ORMError, LookupError):
    """A mapping call targeted a type that was never registered."""

    def __init__(self, cls: type) -> None:
        self.cls = cls
        name = getattr(cls, "__name__", repr(cls))
        super().__init__(f"Type '{name}' has not been registered with the ORM")


class ConversionError(ORMError, TypeError):
    """A value could not be coerced to or from its storage representation."""


class UnsupportedDataTypeError(ConversionError):
    """A column declares a data type the coercion engine does not handle."""


class ArgumentError(ORMError, ValueError):
    """A required argument was missing or empty."""


class FilterSyntaxError(ORMError, SyntaxError):
    """A textual filter expression could not be parsed."""
