"""Configuration loader for certscope using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (CERTSCOPE_* with __ for nesting)
  3. settings.local.toml
  4. settings.{env}.toml
  5. settings.default.toml
"""

from __future__ import annotations

import hashlib
import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("CERTSCOPE_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "CERTSCOPE_ENV"
DEFAULT_ENV = "local"


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def config_files(env_name: str | None = None) -> list[Path]:
    """Return the TOML layers for *env_name*, lowest precedence first.

    Only files that exist are listed.
    """
    env_name = (env_name or _resolve_env()).strip()
    candidates = [
        CONFIG_DIR / "settings.default.toml",
        CONFIG_DIR / f"settings.{env_name}.toml",
        CONFIG_DIR / "settings.local.toml",
    ]
    return [path for path in dict.fromkeys(candidates) if path.is_file()]


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class FetchSettings(BaseSettings):
    """Certificate download configuration."""

    model_config = SettingsConfigDict(env_prefix="CERTSCOPE_FETCH__")

    timeout_sec: float = Field(30.0, gt=0)
    default_port: int = Field(443, gt=0, lt=65536)
    mode: Literal["inspect", "verify"] = "inspect"
    fingerprint_algorithm: str = "sha256"
    full_chain: bool = True

    @field_validator("fingerprint_algorithm")
    @classmethod
    def _known_algorithm(cls, value: str) -> str:
        value = value.lower()
        if value not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported fingerprint algorithm: {value}")
        return value


class BatchSettings(BaseSettings):
    """Parallel download configuration."""

    model_config = SettingsConfigDict(env_prefix="CERTSCOPE_BATCH__")

    max_workers: int = Field(8, ge=1, le=64)


class LoggingSettings(BaseSettings):
    """Log output configuration."""

    model_config = SettingsConfigDict(env_prefix="CERTSCOPE_LOGGING__")

    level: str = "INFO"
    json_format: bool = False


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root certscope settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="CERTSCOPE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False

    fetch: FetchSettings = Field(default_factory=FetchSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        env_name = values.get("env") or _resolve_env()
        layers = [_load_toml(path) for path in config_files(env_name)]

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (*layers, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _apply_debug(self) -> "Settings":
        if self.debug:
            self.logging.level = "DEBUG"
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
