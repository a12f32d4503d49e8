"""Tests for settings loading."""

import pytest

from ticketbridge.config import Settings, load_settings
from ticketbridge.utils.platform import get_config_dir


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("TICKETBRIDGE_CONFIG", "TICKETBRIDGE_LOG_LEVEL", "TICKETBRIDGE_UNTHREAD__API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TICKETBRIDGE_CONFIG_DIR", str(tmp_path / "empty"))


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.queue.queue_name == "unthread-events"
        assert settings.health.port == 3000
        assert settings.unthread.base_url == "https://api.unthread.io/api"
        assert settings.dummy_email_domain == "discord.invalid"

    def test_env_nested(self, monkeypatch):
        monkeypatch.setenv("TICKETBRIDGE_UNTHREAD__API_KEY", "from-env")
        monkeypatch.setenv("TICKETBRIDGE_LOG_LEVEL", "DEBUG")
        settings = Settings()
        assert settings.unthread.api_key == "from-env"
        assert settings.log_level == "DEBUG"

    def test_store_falls_back_to_queue_redis(self):
        settings = Settings(queue={"redis_url": "redis://queue:6379/0"})
        assert settings.get_store_redis_url() == "redis://queue:6379/0"

        settings = Settings(
            queue={"redis_url": "redis://queue:6379/0"},
            store={"redis_url": "redis://store:6379/1"},
        )
        assert settings.get_store_redis_url() == "redis://store:6379/1"

    def test_forum_channels_from_env(self, monkeypatch):
        monkeypatch.setenv("TICKETBRIDGE_DISCORD__FORUM_CHANNEL_IDS", "[111, 222]")
        settings = Settings()
        assert settings.discord.forum_channel_ids == [111, 222]
        assert settings.unthread.slack_channel_id == ""


class TestLoadSettings:
    def test_yaml_overlay(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("queue:\n  queue_name: custom\nhealth:\n  enabled: false\n")

        settings = load_settings(path)

        assert settings.queue.queue_name == "custom"
        assert settings.health.enabled is False
        assert settings.queue.redis_url == "redis://localhost:6379/0"

    def test_config_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "other.yaml"
        path.write_text("log_level: WARNING\n")
        monkeypatch.setenv("TICKETBRIDGE_CONFIG", str(path))

        assert load_settings().log_level == "WARNING"

    def test_default_location(self, tmp_path, monkeypatch):
        config_dir = tmp_path / "conf"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("dummy_email_domain: example.test\n")
        monkeypatch.setenv("TICKETBRIDGE_CONFIG_DIR", str(config_dir))

        assert get_config_dir() == config_dir
        assert load_settings().dummy_email_domain == "example.test"

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "nope.yaml")
        assert settings.queue.queue_name == "unthread-events"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_settings(path).log_level == "INFO"
