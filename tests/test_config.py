"""Tests for EngineSettings environment loading."""

import pytest

from src.fieldops.api.exceptions import ConfigurationError
from src.fieldops.config import DEFAULT_HARD_CEILING, EngineSettings

ENV_NAMES = (
    "PROVISIONING_BASE_URL",
    "PROVISIONING_API_TOKEN",
    "DATABASE_URL",
    "API_KEY",
    "DISABLE_AUTH",
    "REG_UID",
    "LOG_LEVEL",
    "CAP_CATEGORIES",
    "CAP_CEILING_CATEGORIES",
    "CAP_ALLOWLIST_PRODUCTS",
    "CAP_HARD_CEILING",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestFromEnv:
    """Tests for EngineSettings.from_env."""

    def test_defaults(self, clean_env):
        settings = EngineSettings.from_env(dotenv=False)

        assert settings.provisioning_base_url == ""
        assert settings.database_url is None
        assert settings.disable_auth is False
        assert settings.reg_uid == "SYSTEM"
        assert settings.cap_categories == ("10",)
        assert settings.cap_ceiling_categories == ("09", "10")
        assert settings.cap_allowlist_products == ()
        assert settings.cap_hard_ceiling == DEFAULT_HARD_CEILING

    def test_values_read(self, clean_env):
        clean_env.setenv("PROVISIONING_BASE_URL", "https://ops.example.net/")
        clean_env.setenv("API_KEY", "k")
        clean_env.setenv("DISABLE_AUTH", "yes")
        clean_env.setenv("REG_UID", "TECH9")
        clean_env.setenv("LOG_LEVEL", "debug")

        settings = EngineSettings.from_env(dotenv=False)

        assert settings.provisioning_base_url == "https://ops.example.net"
        assert settings.api_key == "k"
        assert settings.disable_auth is True
        assert settings.reg_uid == "TECH9"
        assert settings.log_level == "DEBUG"

    def test_csv_lists(self, clean_env):
        clean_env.setenv("CAP_CATEGORIES", "10, 11,,")
        clean_env.setenv("CAP_ALLOWLIST_PRODUCTS", "P100,P200")

        settings = EngineSettings.from_env(dotenv=False)

        assert settings.cap_categories == ("10", "11")
        assert settings.cap_allowlist_products == ("P100", "P200")

    def test_bad_ceiling(self, clean_env):
        clean_env.setenv("CAP_HARD_CEILING", "lots")

        with pytest.raises(ConfigurationError) as exc_info:
            EngineSettings.from_env(dotenv=False)

        assert "CAP_HARD_CEILING" in exc_info.value.message


class TestRequire:
    def test_passes_when_present(self):
        EngineSettings(provisioning_base_url="https://x").require("provisioning_base_url")

    def test_reports_missing(self):
        with pytest.raises(ConfigurationError) as exc_info:
            EngineSettings().require("provisioning_base_url", "database_url")

        assert exc_info.value.details["missing_keys"] == ["PROVISIONING_BASE_URL", "DATABASE_URL"]
