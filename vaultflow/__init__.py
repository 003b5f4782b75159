"""
VaultFlow — Cloud document vault core.

Folder/file metadata catalog, content-addressed blob storage, the
multi-step mutations that keep the two consistent (upload, two-phase
delete, rename, version commit, restore), and the realtime projection a
dashboard renders from.

    from vaultflow.session import VaultSession
"""

__version__ = "0.1.0"
__all__ = ["catalog", "documents", "engine", "projection", "storage", "session"]
