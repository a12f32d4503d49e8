"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ticketbridge.utils.platform import get_config_dir


class DiscordConfig(BaseModel):
    token: str = ""
    guild_ids: list[int] = Field(default_factory=list)
    # New posts in these forum channels open tickets
    forum_channel_ids: list[int] = Field(default_factory=list)


class UnthreadConfig(BaseModel):
    api_key: str = ""
    base_url: str = "https://api.unthread.io/api"
    team_id: str = ""
    slack_channel_id: str = ""
    http_timeout_ms: int = 10_000
    thumb_size: int = 1024


class QueueConfig(BaseModel):
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "unthread-events"
    poll_interval: float = 1.0  # seconds
    pop_timeout: int = 1  # seconds, BLPOP
    idle_log_interval: float = 300.0  # seconds


class StoreConfig(BaseModel):
    """Thread-ticket mapping store. Falls back to the queue Redis when unset."""
    redis_url: str = ""
    mapping_ttl_seconds: int = 30 * 24 * 3600


class HealthConfig(BaseModel):
    enabled: bool = True
    bind: str = "0.0.0.0"
    port: int = 3000


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TICKETBRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    unthread: UnthreadConfig = Field(default_factory=UnthreadConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    dummy_email_domain: str = "discord.invalid"
    log_level: str = "INFO"
    log_json: bool = False

    def get_store_redis_url(self) -> str:
        return self.store.redis_url or self.queue.redis_url


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("TICKETBRIDGE_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    # Fields absent from the YAML come from env vars
    return Settings(**yaml_data)
