"""Configuration management for mdvault.

Loads from environment variables, .env files, and config/default.toml.
Persisting the chosen vault between sessions belongs to the host
application; it hands the path in through ``vault.path`` or ``open_vault``.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mdvault.vault.models import SortOrder


class VaultConfig(BaseModel):
    """Vault location.

    Sub-configs are plain models: only ``Settings`` reads the environment, so
    unprefixed variables such as ``PATH`` never reach them.
    """

    path: Path | None = Field(default=None, description="Absolute path to the vault root")

    @field_validator("path")
    @classmethod
    def validate_vault_path(cls, v: Path | None) -> Path | None:
        if v is None:
            return None
        v = v.expanduser()
        if not v.exists():
            raise ValueError(f"Vault path does not exist: {v}")
        return v.resolve()


class WatchConfig(BaseModel):
    """Watcher and echo-suppression settings.

    The echo counts describe how many watch events one operation raises on
    the running platform's watcher backend. Copies are staged under a hidden
    name and renamed into place, so they surface as a single ``add``.
    """

    debounce_ms: int = Field(default=1000, ge=0)
    rename_echo_count: int = Field(default=2, ge=0)
    move_echo_count: int = Field(default=2, ge=0)
    copy_echo_count: int = Field(default=1, ge=0)


class ViewConfig(BaseModel):
    """Presentation settings consumed by listings."""

    sort_order: SortOrder = SortOrder.NAME_ASC


class Settings(BaseSettings):
    """Root configuration — aggregates all sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="MDVAULT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    vault: VaultConfig = Field(default_factory=VaultConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    view: ViewConfig = Field(default_factory=ViewConfig)

    @classmethod
    def from_toml(cls, path: Path | None = None) -> Settings:
        """Load settings from TOML file, with env var overrides."""
        config_path = path or Path("config/default.toml")
        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            return cls(**data)
        return cls()


def load_settings(config_path: Path | None = None) -> Settings:
    """Load and validate settings. Entry point for all config access."""
    return Settings.from_toml(config_path)
