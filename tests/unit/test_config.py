"""Test Settings loading, env overrides and the secret gate."""

import pytest
from pydantic import ValidationError

from eventpipe.core.config import JobsConfig, Settings, load_settings
from eventpipe.core.enums import ChannelBackend
from eventpipe.core.errors import ConfigError


class TestSettingsDefaults:
    def test_default_settings(self):
        settings = Settings()
        assert settings.relay.backend == ChannelBackend.MEMORY
        assert settings.relay.channel == "eventpipe:events"
        assert settings.database_url is None

    def test_job_defaults(self):
        settings = Settings()
        assert settings.jobs.batch_size == 100
        assert settings.jobs.reuse_window_minutes == 5
        assert settings.jobs.timeout_seconds == 3600.0

    def test_handler_timeout_default(self):
        assert Settings().bus.handler_timeout_seconds == 30.0

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            JobsConfig(batch_size=0)


class TestEnvOverrides:
    def test_nested_env_override(self, monkeypatch):
        monkeypatch.setenv("EVENTPIPE_JOBS__SECRET", "from-env")
        monkeypatch.setenv("EVENTPIPE_RELAY__BACKEND", "redis")

        settings = Settings()

        assert settings.jobs.secret == "from-env"
        assert settings.relay.backend == ChannelBackend.REDIS

    def test_top_level_env_override(self, monkeypatch):
        monkeypatch.setenv("EVENTPIPE_REDIS_URL", "redis://cache:6379/2")

        assert Settings().redis_url == "redis://cache:6379/2"


class TestLoadSettings:
    def test_load_from_toml(self, tmp_path):
        config = tmp_path / "worker.toml"
        config.write_text(
            '[relay]\nbackend = "redis"\nchannel = "custom"\n\n'
            '[jobs]\nsecret = "toml-secret"\nbatch_size = 25\n'
        )

        settings = load_settings(config)

        assert settings.relay.backend == ChannelBackend.REDIS
        assert settings.relay.channel == "custom"
        assert settings.jobs.batch_size == 25

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.toml")
        assert settings.relay.backend == ChannelBackend.MEMORY

    def test_overrides_applied(self):
        settings = load_settings(overrides={"relay": {"backend": "redis"}})
        assert settings.relay.backend == ChannelBackend.REDIS


class TestValidateSecrets:
    def test_memory_mode_needs_no_secret(self):
        Settings().validate_secrets()  # Should not raise

    def test_redis_mode_requires_secret(self):
        settings = Settings(relay={"backend": "redis"})
        with pytest.raises(ConfigError, match="EVENTPIPE_JOBS__SECRET"):
            settings.validate_secrets()

    def test_redis_mode_with_secret_passes(self):
        Settings(relay={"backend": "redis"}, jobs={"secret": "x"}).validate_secrets()
