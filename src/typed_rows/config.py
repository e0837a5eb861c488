"""Runtime settings for the ORM."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from typed_rows.errors import ConfigurationError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigurationError(f"Environment variable {name} must be a boolean, got {raw!r}")


@dataclass
class DebugSettings:
    """Which backend traffic is written to the debug log.

    Attributes:
        database_queries: Log every backend call and its filter.
        database_results: Log the rows each call returns.
    """

    database_queries: bool = False
    database_results: bool = False


@dataclass
class ORMSettings:
    """Settings shared by every operation of an ORM instance.

    Attributes:
        omit_nulls: Leave None properties out of insert/update value maps
            instead of writing explicit nulls.
        create_tables: Create a registered type's table when it is missing.
        debug: Debug logging switches.
    """

    omit_nulls: bool = False
    create_tables: bool = True
    debug: DebugSettings = field(default_factory=DebugSettings)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ORMSettings:
        """Read settings from ``TYPED_ROWS_*`` environment variables."""
        env = os.environ if env is None else env
        return cls(
            omit_nulls=_env_flag(env, "TYPED_ROWS_OMIT_NULLS", False),
            create_tables=_env_flag(env, "TYPED_ROWS_CREATE_TABLES", True),
            debug=DebugSettings(
                database_queries=_env_flag(env, "TYPED_ROWS_DEBUG_QUERIES", False),
                database_results=_env_flag(env, "TYPED_ROWS_DEBUG_RESULTS", False),
            ),
        )
