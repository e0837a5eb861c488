"""Tests for ORM settings."""

import pytest

from typed_rows.config import DebugSettings, ORMSettings
from typed_rows.errors import ConfigurationError


class TestORMSettings:
    """Tests for ORMSettings."""

    def test_defaults(self):
        """Nulls are written, tables created, debug logging off."""
        settings = ORMSettings()
        assert settings.omit_nulls is False
        assert settings.create_tables is True
        assert settings.debug == DebugSettings(False, False)

    def test_from_env(self):
        """Flags are read from TYPED_ROWS_* variables."""
        settings = ORMSettings.from_env({
            "TYPED_ROWS_OMIT_NULLS": "yes",
            "TYPED_ROWS_CREATE_TABLES": "0",
            "TYPED_ROWS_DEBUG_QUERIES": "True",
        })
        assert settings.omit_nulls is True
        assert settings.create_tables is False
        assert settings.debug.database_queries is True
        assert settings.debug.database_results is False

    def test_from_env_empty(self):
        """Missing variables keep the defaults."""
        assert ORMSettings.from_env({}) == ORMSettings()

    def test_from_os_environ(self, monkeypatch):
        """Without a mapping the process environment is used."""
        monkeypatch.setenv("TYPED_ROWS_DEBUG_RESULTS", "on")
        assert ORMSettings.from_env().debug.database_results is True

    def test_invalid_flag(self):
        """Unrecognized flag values are configuration errors."""
        with pytest.raises(ConfigurationError, match="TYPED_ROWS_OMIT_NULLS"):
            ORMSettings.from_env({"TYPED_ROWS_OMIT_NULLS": "sometimes"})
