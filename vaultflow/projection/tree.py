"""
VaultFlow Tree/Query Projection — Turn the flat catalog into navigable views.

Pure functions over catalog state:
- breadcrumbs(): walk parent references upward (depth-capped)
- scoped_listing(): children of the current folder (or root)
- search(): case-insensitive substring match over every folder and file
- sort_folders() / sort_files(): one active key + direction
- project(): the full rendered view; folders always precede files
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from vaultflow.catalog.models import FileRecord, FolderNode

DEFAULT_DEPTH_CAP = 20


class SortKey(str, Enum):
    NAME = "name"
    SIZE = "size"
    CREATED_AT = "created_at"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortConfig:
    """Single active sort key with a direction."""
    key: SortKey = SortKey.CREATED_AT
    direction: SortDirection = SortDirection.DESC

    def toggle(self, key: Union[SortKey, str]) -> "SortConfig":
        """
        Column-click behaviour: the active key flips direction,
        any other key becomes active in descending order.
        """
        key = SortKey(key)
        if key == self.key:
            flipped = SortDirection.ASC if self.direction == SortDirection.DESC else SortDirection.DESC
            return SortConfig(key, flipped)
        return SortConfig(key, SortDirection.DESC)

    @property
    def reverse(self) -> bool:
        return self.direction == SortDirection.DESC


# ---------------------------------------------------------------------------
# Breadcrumbs
# ---------------------------------------------------------------------------

def index_folders(folders: Iterable[FolderNode]) -> Dict[str, FolderNode]:
    return {f.id: f for f in folders}


def breadcrumbs(
    folder: Optional[FolderNode],
    folders: Union[Iterable[FolderNode], Dict[str, FolderNode]],
    depth_cap: int = DEFAULT_DEPTH_CAP,
) -> List[FolderNode]:
    """
    Path from the top-most reachable ancestor down to ``folder``.

    Stops when a node has no parent, after ``depth_cap`` parent hops, or
    at a parent reference that does not resolve (the path is truncated,
    no error is raised). Root (None) has an empty path.
    """
    if folder is None:
        return []
    by_id = folders if isinstance(folders, dict) else index_folders(folders)

    path = [folder]
    current = folder
    depth = 0
    while current.parent_id and depth < depth_cap:
        parent = by_id.get(current.parent_id)
        if parent is None:
            break
        path.insert(0, parent)
        current = parent
        depth += 1
    return path


def parent_of(
    folder: Optional[FolderNode],
    folders: Union[Iterable[FolderNode], Dict[str, FolderNode]],
) -> Optional[FolderNode]:
    """Folder one level up; None for root-level, root or dangling parents."""
    if folder is None or folder.parent_id is None:
        return None
    by_id = folders if isinstance(folders, dict) else index_folders(folders)
    return by_id.get(folder.parent_id)


# ---------------------------------------------------------------------------
# Listing modes
# ---------------------------------------------------------------------------

def scoped_listing(
    folders: Iterable[FolderNode],
    files: Iterable[FileRecord],
    current_folder_id: Optional[str],
) -> Tuple[List[FolderNode], List[FileRecord]]:
    """Direct children of the current folder; None means root level."""
    if current_folder_id is None:
        return (
            [f for f in folders if not f.parent_id],
            [f for f in files if not f.folder_id],
        )
    return (
        [f for f in folders if f.parent_id == current_folder_id],
        [f for f in files if f.folder_id == current_folder_id],
    )


def search(
    folders: Iterable[FolderNode],
    files: Iterable[FileRecord],
    query: str,
) -> Tuple[List[FolderNode], List[FileRecord]]:
    """Case-insensitive substring match over all folders and files, ignoring scope."""
    needle = query.lower()
    return (
        [f for f in folders if needle in f.name.lower()],
        [f for f in files if needle in f.name.lower()],
    )


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def _timestamp(record: Union[FolderNode, FileRecord]) -> float:
    return record.created_at.timestamp() if record.created_at else 0.0


def sort_folders(folders: Iterable[FolderNode], sort: SortConfig) -> List[FolderNode]:
    """Folders carry no size; sorting them by size sorts by name."""
    if sort.key == SortKey.CREATED_AT:
        key = _timestamp
    else:
        key = lambda f: f.name.lower()  # noqa: E731
    return sorted(folders, key=key, reverse=sort.reverse)


def sort_files(files: Iterable[FileRecord], sort: SortConfig) -> List[FileRecord]:
    if sort.key == SortKey.CREATED_AT:
        key = _timestamp
    elif sort.key == SortKey.SIZE:
        key = lambda f: f.size_bytes  # noqa: E731
    else:
        key = lambda f: f.name.lower()  # noqa: E731
    return sorted(files, key=key, reverse=sort.reverse)


# ---------------------------------------------------------------------------
# Rendered view
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ListingView:
    """One rendered listing: sorted folders, then sorted files."""
    folders: List[FolderNode]
    files: List[FileRecord]
    breadcrumbs: List[FolderNode] = field(default_factory=list)
    current_folder: Optional[FolderNode] = None
    query: str = ""
    sort: SortConfig = SortConfig()

    @property
    def searching(self) -> bool:
        return len(self.query) > 0

    @property
    def is_empty(self) -> bool:
        return not self.folders and not self.files

    def items(self) -> List[Union[FolderNode, FileRecord]]:
        """Render order: the folder group always comes before the file group."""
        return [*self.folders, *self.files]

    def breadcrumb_names(self) -> List[str]:
        return [f.name for f in self.breadcrumbs]


def project(
    folders: Sequence[FolderNode],
    files: Sequence[FileRecord],
    current_folder: Optional[FolderNode] = None,
    query: str = "",
    sort: Optional[SortConfig] = None,
    depth_cap: int = DEFAULT_DEPTH_CAP,
) -> ListingView:
    """
    Build the view for the current navigation state.

    A non-empty query switches to flatten/search mode: scope is ignored
    and no breadcrumbs are produced. An empty query gives the scoped
    listing of ``current_folder`` with its breadcrumb path.
    """
    sort = sort or SortConfig()
    if query:
        shown_folders, shown_files = search(folders, files, query)
        crumbs: List[FolderNode] = []
    else:
        current_id = current_folder.id if current_folder else None
        shown_folders, shown_files = scoped_listing(folders, files, current_id)
        crumbs = breadcrumbs(current_folder, folders, depth_cap=depth_cap)

    return ListingView(
        folders=sort_folders(shown_folders, sort),
        files=sort_files(shown_files, sort),
        breadcrumbs=crumbs,
        current_folder=current_folder,
        query=query,
        sort=sort,
    )


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_file_size(size_bytes: int) -> str:
    """
    Human-readable size, base 1024, at most two decimals.

    Examples:
        format_file_size(0)        → "0 Bytes"
        format_file_size(1536)     → "1.5 KB"
        format_file_size(1048576)  → "1 MB"
    """
    if size_bytes <= 0:
        return "0 Bytes"
    i = 0
    while size_bytes >= 1024 ** (i + 1) and i < len(_SIZE_UNITS) - 1:
        i += 1
    value = round(size_bytes / 1024 ** i, 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[i]}"
