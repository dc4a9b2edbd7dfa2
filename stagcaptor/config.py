"""Configuration — Pydantic Settings + YAML loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

DEFAULT_CONFIG_PATH = Path("stagcaptor.yaml")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class TraceSettings(BaseSettings):
    timeout: float = Field(default=10.0, gt=0)  # per hop: connect + request + drain
    max_hops: int = Field(default=20, ge=0)
    user_agent: str = DEFAULT_USER_AGENT
    verify_ssl: bool = True
    verify_tunnel_ssl: bool = False
    max_header_bytes: int = 65536


class ServerSettings(BaseSettings):
    """Bind address. ``$PORT`` / ``$HOST`` take precedence over YAML values."""

    host: str = "0.0.0.0"
    port: int = 3500

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, dotenv_settings, file_secret_settings


class Settings(BaseSettings):
    """Root settings — merges defaults, YAML config, and env vars."""

    trace: TraceSettings = Field(default_factory=TraceSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    log_level: str = "INFO"

    @classmethod
    def load(cls, config_path: Path | str | None = None) -> Settings:
        """Load settings from YAML file, falling back to defaults."""
        data: dict[str, Any] = {}

        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        path = Path(config_path)
        if path.exists():
            with open(path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
                if isinstance(raw, dict):
                    data = raw

        # A nested dict would be validated without reading the environment.
        if isinstance(data.get("server"), dict):
            data["server"] = ServerSettings(**data["server"])

        return cls(**data)
