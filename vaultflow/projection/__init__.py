"""VaultFlow Projection — realtime sync, tree/query views, dashboard state, tree audit."""

from vaultflow.projection.integrity import TreeAuditReport, audit_folder_tree, build_folder_graph  # noqa: F401
from vaultflow.projection.state import (  # noqa: F401
    ConfirmingDelete,
    CreatingFolder,
    DashboardState,
    DeleteTarget,
    Idle,
    ManagingVersions,
    PreviewingFile,
    Renaming,
    TargetCollection,
    UploadingFile,
)
from vaultflow.projection.sync import CollectionChannel, ProjectionSync  # noqa: F401
from vaultflow.projection.tree import (  # noqa: F401
    ListingView,
    SortConfig,
    SortDirection,
    SortKey,
    breadcrumbs,
    format_file_size,
    project,
    search,
)

__all__ = [
    "CollectionChannel",
    "ConfirmingDelete",
    "CreatingFolder",
    "DashboardState",
    "DeleteTarget",
    "Idle",
    "ListingView",
    "ManagingVersions",
    "PreviewingFile",
    "ProjectionSync",
    "Renaming",
    "SortConfig",
    "SortDirection",
    "SortKey",
    "TargetCollection",
    "TreeAuditReport",
    "UploadingFile",
    "audit_folder_tree",
    "breadcrumbs",
    "build_folder_graph",
    "format_file_size",
    "project",
    "search",
]
