"""Configuration loading from environment and YAML files."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PROVIDERS = ["example"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server info
    server_name: str = "mcpforge"
    server_version: str = "1.0.0"
    protocol_version: str = "2025-06-18"
    instructions: str = ""

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Protocol behaviour
    page_size: int = 50  # items per */list page
    request_timeout: float = 30.0  # seconds per dispatched request, 0 disables

    # Host and port
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_server_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """
    Load provider configuration from YAML file.

    Args:
        config_path: Path to the config file. If None, uses default location.

    Returns:
        Dictionary with configuration data.
    """
    if config_path is None:
        possible_paths = [
            Path("config/server.yaml"),
            Path(__file__).parent.parent.parent / "config" / "server.yaml",
        ]
        for path in possible_paths:
            if path.exists():
                config_path = path
                break
        else:
            return {"enabled_providers": list(DEFAULT_PROVIDERS)}

    config_path = Path(config_path)
    if not config_path.exists():
        return {"enabled_providers": list(DEFAULT_PROVIDERS)}

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    return config


def get_enabled_providers(config: dict[str, Any] | None = None) -> list[str]:
    """Get list of enabled provider names."""
    if config is None:
        config = load_server_config()
    return config.get("enabled_providers", list(DEFAULT_PROVIDERS))
