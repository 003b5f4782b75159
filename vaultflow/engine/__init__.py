"""VaultFlow Engine — errors, configuration, structured logging."""

from vaultflow.engine.config import VaultConfig, get_config, load_config, set_config  # noqa: F401
from vaultflow.engine.errors import VaultError  # noqa: F401

__all__ = [
    "VaultConfig",
    "VaultError",
    "get_config",
    "load_config",
    "set_config",
]
