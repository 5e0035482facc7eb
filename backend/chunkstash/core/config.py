"""Application configuration handling."""

from __future__ import annotations

import os
import socket
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "CHST_"
DEFAULT_CONFIG_PATH = Path("~/.config/chunkstash/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("storage", "pool_size"): "pool_size",
    ("storage", "pool_idle_timeout"): "pool_idle_timeout",
    ("storage", "pool_wait_timeout"): "pool_wait_timeout",
    ("chunking", "min_blob_size"): "min_blob_size",
    ("chunking", "max_blob_size"): "max_blob_size",
    ("chunking", "window_size"): "window_size",
    ("chunking", "blob_bits"): "blob_bits",
    ("chunking", "read_size"): "read_size",
    ("upload", "concurrency"): "upload_concurrency",
    ("upload", "hostname"): "hostname",
    ("upload", "ignore"): "ignore_patterns",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".chunkstash" / "blobs.db")
    min_blob_size: int = Field(default=64 << 10, gt=0)
    max_blob_size: int = Field(default=1 << 20, gt=0)
    window_size: int = Field(default=64, gt=0)
    blob_bits: int = Field(default=13, gt=0, le=32)
    read_size: int = Field(default=64 << 10, gt=0)
    upload_concurrency: int = Field(default=25, gt=0)
    pool_size: int = Field(default=50, gt=0)
    pool_idle_timeout: float = 240.0
    pool_wait_timeout: float = 30.0
    hostname: str = Field(default_factory=socket.gethostname)
    ignore_patterns: str = "*~,*.py[cod],nohup.out,*.log,tmp_*"

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @field_validator("ignore_patterns", mode="before")
    @classmethod
    def _join_patterns(cls, value: Any) -> str:
        if isinstance(value, (list, tuple)):
            return ",".join(str(item) for item in value)
        return value

    @model_validator(mode="after")
    def _check_blob_sizes(self) -> "Settings":
        if self.min_blob_size >= self.max_blob_size:
            raise ValueError("min_blob_size must be smaller than max_blob_size")
        return self

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with CHST_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


__all__ = ["Settings"]
