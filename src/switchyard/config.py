"""Configuration management for Switchyard."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_WATCH_IGNORE: tuple[str, ...] = (
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "__pycache__",
    ".venv",
    ".mypy_cache",
    ".pytest_cache",
    "dist",
    "build",
)


class SwitchyardSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    cli_path: str | None = Field(default=None, validation_alias="SWITCHYARD_CLI_PATH")
    cli_signature: str = Field(default="claude", validation_alias="SWITCHYARD_CLI_SIGNATURE")
    working_directory: Path = Field(
        default_factory=Path.cwd, validation_alias="SWITCHYARD_WORKDIR"
    )
    backend_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("backends"),), validation_alias="SWITCHYARD_BACKEND_PATHS"
    )
    log_level: str = Field(default="INFO", validation_alias="SWITCHYARD_LOG_LEVEL")
    default_timeout: float = Field(default=30.0, validation_alias="SWITCHYARD_DEFAULT_TIMEOUT")
    default_cache_ttl: float = Field(default=300.0, validation_alias="SWITCHYARD_CACHE_TTL")
    kill_grace_period: float = Field(default=2.0, validation_alias="SWITCHYARD_KILL_GRACE")
    simulation_fallback: bool = Field(default=False, validation_alias="SWITCHYARD_SIMULATION")
    simulation_delay: float = Field(default=1.0, validation_alias="SWITCHYARD_SIMULATION_DELAY")
    watch_ignore: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_WATCH_IGNORE, validation_alias="SWITCHYARD_WATCH_IGNORE"
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "SWITCHYARD_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("backend_paths", mode="before")
    @classmethod
    def _parse_backend_paths(cls, value):
        if value is None or value == "":
            return (Path("backends"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("backends"),)
        raise TypeError("SWITCHYARD_BACKEND_PATHS must be a list of paths or a path-separated string")

    @field_validator("watch_ignore", mode="before")
    @classmethod
    def _parse_watch_ignore(cls, value):
        if value is None or value == "":
            return DEFAULT_WATCH_IGNORE
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return tuple(str(item) for item in value)

    @field_validator("default_timeout")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("SWITCHYARD_DEFAULT_TIMEOUT must be > 0")
        return value

    @field_validator("default_cache_ttl", "kill_grace_period", "simulation_delay")
    @classmethod
    def _validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("Durations must be >= 0")
        return value


@lru_cache(maxsize=1)
def get_settings() -> SwitchyardSettings:
    """Return cached settings instance."""

    settings = SwitchyardSettings()
    settings.working_directory = settings.working_directory.expanduser().resolve()
    settings.backend_paths = tuple(path.expanduser().resolve() for path in settings.backend_paths)
    return settings


__all__ = ["DEFAULT_WATCH_IGNORE", "SwitchyardSettings", "get_settings"]
