"""
VaultFlow Configuration — Load and validate vaultflow.yaml.

Usage:
    from vaultflow.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from vaultflow.engine.errors import VaultConfigError

CONFIG_FILENAME = "vaultflow.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for vaultflow.yaml
# ---------------------------------------------------------------------------

class QuotaConfig(BaseModel):
    enabled: bool = True
    max_files: int = Field(default=5, ge=0)


class StorageConfig(BaseModel):
    backend: str = "memory"
    root: str = ".vaultflow/blobs"
    base_url: Optional[str] = None
    token: Optional[str] = None
    chunk_size: int = Field(default=256 * 1024, gt=0)
    timeout: int = 30

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in ("memory", "local", "http"):
            raise ValueError(f"storage backend must be memory/local/http, got '{v}'")
        return v


class ProjectionConfig(BaseModel):
    breadcrumb_depth_cap: int = Field(default=20, gt=0)
    default_sort_key: str = "created_at"
    default_sort_direction: str = "desc"

    @field_validator("default_sort_key")
    @classmethod
    def validate_sort_key(cls, v: str) -> str:
        if v not in ("name", "size", "created_at"):
            raise ValueError(f"sort key must be name/size/created_at, got '{v}'")
        return v

    @field_validator("default_sort_direction")
    @classmethod
    def validate_direction(cls, v: str) -> str:
        if v not in ("asc", "desc"):
            raise ValueError(f"sort direction must be asc/desc, got '{v}'")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".vaultflow/logs"
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class VaultConfig(BaseModel):
    """Root model for vaultflow.yaml."""
    name: str = "VaultFlow"
    environment: str = "dev"

    quota: QuotaConfig = QuotaConfig()
    storage: StorageConfig = StorageConfig()
    projection: ProjectionConfig = ProjectionConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[VaultConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for vaultflow.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def load_config(config_path: Optional[str] = None) -> VaultConfig:
    """
    Load and validate vaultflow.yaml.

    Args:
        config_path: Explicit path to vaultflow.yaml. If None, auto-discovers.

    Returns:
        Validated VaultConfig instance (defaults if the file is absent).
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    path = Path(config_path)
    if not path.exists():
        _config = VaultConfig()
        return _config

    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise VaultConfigError(f"Cannot parse {path}: {e}", object_ref=str(path)) from e

    if not isinstance(raw, dict):
        raise VaultConfigError(f"{path} must contain a mapping", object_ref=str(path))

    # Allow an optional top-level "vault:" wrapper
    data = raw.get("vault", raw)

    try:
        _config = VaultConfig(**data)
    except ValidationError as e:
        raise VaultConfigError(
            f"Invalid configuration in {path}",
            object_ref=str(path),
            validation_errors=e.errors(),
        ) from e
    return _config


def get_config() -> VaultConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: VaultConfig) -> None:
    """Install an explicit config (embedding applications, tests)."""
    global _config
    _config = config
