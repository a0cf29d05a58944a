"""
Tests for ftex_core.config module.

Tests cover:
- Defaults
- Environment overrides with nested delimiters
- Validation of ports, durations, paths and keys
- Refusal of development secrets outside dev
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from ftex_core.config import DEV_JWT_KEY, DEV_SEALING_KEY, FtexSettings, load_settings

PROD_JWT_KEY = "k8Qz1vN3pX7rT2mW9yB4cF6hJ0lS5dG8"
PROD_SEALING_KEY = "Zq4wE7rT1yU9iO3pA6sD2fG8hJ5kL0mN"
PROD_SECRETS = f"FTEX_AUTHORIZATION__JWT_KEY={PROD_JWT_KEY}\nFTEX_SEALING__KEY={PROD_SEALING_KEY}\n"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "FTEX_SERVER__PORT_NUMBER",
        "FTEX_LOG_LEVEL",
        "FTEX_SEALING__KEY",
        "FTEX_ENVIRONMENT",
        "FTEX_AUTHORIZATION__JWT_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


class TestDefaults:

    def test_defaults(self):
        """Should provide a runnable development configuration."""
        settings = FtexSettings(_env_file=None)

        assert settings.environment == "dev"
        assert settings.server.port_number == 33723
        assert settings.server.base_path == "/api/rest/v1"
        assert settings.authorization.jwt_issuer == "ftex.authentication"
        assert settings.authorization.jwt_audience == "ftex.api"
        assert settings.offers.ttl_seconds == 120
        assert settings.pagination.default_page_size == 10
        assert settings.redis_url == ""
        assert settings.database_url == ""


class TestEnvironmentOverrides:

    def test_nested_override(self, monkeypatch):
        """Should read nested fields from FTEX_<SECTION>__<FIELD>."""
        monkeypatch.setenv("FTEX_SERVER__PORT_NUMBER", "8080")
        monkeypatch.setenv("FTEX_LOG_LEVEL", "debug")

        settings = FtexSettings(_env_file=None)

        assert settings.server.port_number == 8080
        assert settings.log_level == "DEBUG"

    def test_env_file(self, tmp_path):
        """Should read values from an env file."""
        env_file = tmp_path / ".env"
        env_file.write_text("FTEX_ENVIRONMENT=prod\nFTEX_OFFERS__TTL_SECONDS=30\n" + PROD_SECRETS)

        settings = load_settings(str(env_file))

        assert settings.environment == "prod"
        assert settings.offers.ttl_seconds == 30

    def test_environment_beats_env_file(self, tmp_path, monkeypatch):
        """Should prefer process environment over the env file."""
        env_file = tmp_path / ".env"
        env_file.write_text("FTEX_ENVIRONMENT=prod\n" + PROD_SECRETS)
        monkeypatch.setenv("FTEX_ENVIRONMENT", "test")

        assert FtexSettings(_env_file=str(env_file)).environment == "test"


class TestValidation:

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_port_range(self, port):
        with pytest.raises(ValidationError):
            FtexSettings(_env_file=None, server={"port_number": port})

    @pytest.mark.parametrize("field", ["read_timeout", "write_timeout", "read_header_timeout", "shutdown_delay"])
    def test_durations_positive(self, field):
        with pytest.raises(ValidationError):
            FtexSettings(_env_file=None, server={field: 0})

    def test_paths_absolute(self):
        with pytest.raises(ValidationError):
            FtexSettings(_env_file=None, server={"base_path": "api/v1"})

    def test_sealing_key_length(self):
        with pytest.raises(ValidationError):
            FtexSettings(_env_file=None, sealing={"key": "too-short"})

    def test_log_level(self):
        with pytest.raises(ValidationError):
            FtexSettings(_env_file=None, log_level="LOUD")

    def test_page_sizes_consistent(self):
        """Should refuse a default page size above the maximum."""
        with pytest.raises(ValidationError):
            FtexSettings(_env_file=None, pagination={"default_page_size": 50, "max_page_size": 10})


class TestSecrets:

    def test_dev_defaults_allowed_in_dev(self):
        settings = FtexSettings(_env_file=None, environment="dev")

        assert settings.authorization.jwt_key == DEV_JWT_KEY
        assert settings.sealing.key == DEV_SEALING_KEY

    @pytest.mark.parametrize("environment", ["test", "prod"])
    def test_default_sealing_key_rejected(self, environment):
        """Should refuse the published sealing key outside dev."""
        with pytest.raises(ValidationError, match="sealing.key"):
            FtexSettings(_env_file=None, environment=environment, authorization={"jwt_key": PROD_JWT_KEY})

    @pytest.mark.parametrize("jwt_key", [DEV_JWT_KEY, "short-secret"])
    def test_weak_jwt_key_rejected(self, jwt_key):
        with pytest.raises(ValidationError, match="jwt_key"):
            FtexSettings(
                _env_file=None,
                environment="prod",
                authorization={"jwt_key": jwt_key},
                sealing={"key": PROD_SEALING_KEY},
            )

    def test_prod_secrets_from_environment(self, monkeypatch):
        monkeypatch.setenv("FTEX_ENVIRONMENT", "prod")
        monkeypatch.setenv("FTEX_AUTHORIZATION__JWT_KEY", PROD_JWT_KEY)
        monkeypatch.setenv("FTEX_SEALING__KEY", PROD_SEALING_KEY)

        settings = FtexSettings(_env_file=None)

        assert settings.authorization.jwt_key == PROD_JWT_KEY
        assert settings.sealing.key == PROD_SEALING_KEY
