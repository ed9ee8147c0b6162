"""Tests for data access settings."""

import pytest
from pydantic import ValidationError

from repokit.config import DataAccessSettings, get_settings


class TestDataAccessSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "REPOKIT_TREAT_LOOKUP_FAULTS_AS_NOT_FOUND",
            "REPOKIT_COMMIT_TIMEOUT",
            "REPOKIT_PROBE_TIMEOUT",
            "REPOKIT_DATABASE_URL",
            "REPOKIT_LOG_LEVEL",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = DataAccessSettings(_env_file=None)

        assert settings.treat_lookup_faults_as_not_found is True
        assert settings.commit_timeout == 30.0
        assert settings.probe_timeout == 5.0
        assert settings.database_url == "sqlite:///repokit.db"
        assert settings.echo is False
        assert settings.log_level == "INFO"

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REPOKIT_TREAT_LOOKUP_FAULTS_AS_NOT_FOUND", "false")
        monkeypatch.setenv("REPOKIT_COMMIT_TIMEOUT", "2.5")
        monkeypatch.setenv("REPOKIT_DATABASE_URL", "sqlite:///other.db")

        settings = DataAccessSettings(_env_file=None)

        assert settings.treat_lookup_faults_as_not_found is False
        assert settings.commit_timeout == 2.5
        assert settings.database_url == "sqlite:///other.db"

    def test_commit_timeout_can_be_disabled(self) -> None:
        settings = DataAccessSettings(_env_file=None, commit_timeout=None)
        assert settings.commit_timeout is None

    @pytest.mark.parametrize("field", ["commit_timeout", "probe_timeout"])
    def test_timeouts_must_be_positive(self, field: str) -> None:
        with pytest.raises(ValidationError):
            DataAccessSettings(_env_file=None, **{field: 0})

    def test_log_level_is_normalised(self) -> None:
        assert DataAccessSettings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_log_level_is_validated(self) -> None:
        with pytest.raises(ValidationError, match="log_level must be one of"):
            DataAccessSettings(_env_file=None, log_level="LOUD")

    def test_get_settings_is_cached(self) -> None:
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
