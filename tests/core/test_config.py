"""Tests for environment-driven settings."""

import pytest

from reportstudio.core.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("REPORTSTUDIO_MAX_QUERY_ROWS", raising=False)
        settings = Settings(_env_file=None)
        assert settings.max_query_rows == 10_000
        assert settings.default_fetch_limit == 1_000
        assert settings.cache_ttl_seconds == 300.0
        assert (settings.config_path / "null_values.yaml").exists()
        assert (settings.config_path / "type_inference.yaml").exists()

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("REPORTSTUDIO_MAX_QUERY_ROWS", "25")
        monkeypatch.setenv("REPORTSTUDIO_LOG_FORMAT", "json")
        settings = Settings(_env_file=None)
        assert settings.max_query_rows == 25
        assert settings.log_format == "json"

    def test_rejects_non_positive_caps(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, max_query_rows=0)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
