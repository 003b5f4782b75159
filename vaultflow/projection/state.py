"""
VaultFlow Dashboard State — One tagged state per in-flight interaction.

The dashboard is always in exactly one of these states. Modal flows
(folder creation, upload, delete confirmation, rename, preview, version
management) cannot overlap because starting one replaces the state as a
whole. Every state that can fail carries an ``error`` with user-facing
copy.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union


class TargetCollection(str, Enum):
    FOLDERS = "folders"
    FILES = "files"


@dataclass(frozen=True)
class Idle:
    error: Optional[str] = None


@dataclass(frozen=True)
class CreatingFolder:
    parent_id: Optional[str] = None
    draft: str = ""
    error: Optional[str] = None


@dataclass(frozen=True)
class UploadingFile:
    file_name: str
    progress: float = 0.0
    error: Optional[str] = None

    @property
    def percent(self) -> int:
        return int(round(self.progress * 100))


@dataclass(frozen=True)
class DeleteTarget:
    collection: TargetCollection
    record_id: str
    name: str


@dataclass(frozen=True)
class ConfirmingDelete:
    target: DeleteTarget
    in_progress: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class Renaming:
    collection: TargetCollection
    record_id: str
    draft: str
    error: Optional[str] = None


@dataclass(frozen=True)
class PreviewingFile:
    file_id: str
    error: Optional[str] = None


@dataclass(frozen=True)
class ManagingVersions:
    """Version dialog for one file; ``progress`` is set while a new version uploads."""
    file_id: str
    progress: Optional[float] = None
    error: Optional[str] = None
    notice: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self.progress is not None


DashboardState = Union[
    Idle,
    CreatingFolder,
    UploadingFile,
    ConfirmingDelete,
    Renaming,
    PreviewingFile,
    ManagingVersions,
]


def with_error(state: DashboardState, message: Optional[str]) -> DashboardState:
    """Same state, carrying ``message`` as its error."""
    return replace(state, error=message)
