"""
VaultFlow Folder Tree Audit — Structural checks over the folder hierarchy.

The catalog stores folders as a flat list with parent references and
nothing prevents a cycle or a parent that has since been deleted. This
module builds a directed graph (child → parent) and reports:
    - cycles in parent references
    - folders whose parent does not exist
    - files whose folder does not exist
    - the deepest parent chain among acyclic folders

Reporting only; nothing is repaired.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

import networkx as nx

from vaultflow.catalog.models import FileRecord, FolderNode

logger = logging.getLogger("vaultflow.projection.integrity")


@dataclass
class TreeAuditReport:
    folder_count: int = 0
    file_count: int = 0
    cycles: List[List[str]] = field(default_factory=list)
    dangling_parents: List[str] = field(default_factory=list)
    orphaned_files: List[str] = field(default_factory=list)
    max_depth: int = 0

    @property
    def ok(self) -> bool:
        return not self.cycles and not self.dangling_parents and not self.orphaned_files

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "folder_count": self.folder_count,
            "file_count": self.file_count,
            "cycles": self.cycles,
            "dangling_parents": self.dangling_parents,
            "orphaned_files": self.orphaned_files,
            "max_depth": self.max_depth,
        }


def build_folder_graph(folders: Iterable[FolderNode]) -> nx.DiGraph:
    """Node per folder id; edge child → parent for every resolvable parent."""
    folders = list(folders)
    graph = nx.DiGraph()
    for folder in folders:
        graph.add_node(folder.id, name=folder.name)
    for folder in folders:
        if folder.parent_id and folder.parent_id in graph:
            graph.add_edge(folder.id, folder.parent_id)
    return graph


def audit_folder_tree(
    folders: Iterable[FolderNode],
    files: Iterable[FileRecord] = (),
) -> TreeAuditReport:
    folders = list(folders)
    files = list(files)
    graph = build_folder_graph(folders)

    report = TreeAuditReport(folder_count=len(folders), file_count=len(files))
    report.cycles = [sorted(c) for c in nx.simple_cycles(graph)]
    report.dangling_parents = sorted(
        f.id for f in folders if f.parent_id and f.parent_id not in graph
    )
    report.orphaned_files = sorted(
        f.id for f in files if f.folder_id and f.folder_id not in graph
    )

    in_cycle = {node for cycle in report.cycles for node in cycle}
    # each folder has at most one parent, so dropping cycle members leaves a forest
    acyclic = graph.subgraph([n for n in graph if n not in in_cycle])
    if acyclic.number_of_nodes():
        report.max_depth = nx.dag_longest_path_length(acyclic)

    if not report.ok:
        logger.warning(
            f"Folder tree audit: {len(report.cycles)} cycle(s), "
            f"{len(report.dangling_parents)} dangling parent(s), "
            f"{len(report.orphaned_files)} orphaned file(s)"
        )
    return report
