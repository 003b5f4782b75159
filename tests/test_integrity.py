"""Unit tests for vaultflow.projection.integrity — folder tree audit."""

from vaultflow.catalog.models import FileRecord, FolderNode
from vaultflow.projection.integrity import audit_folder_tree, build_folder_graph


def folder(fid, parent=None):
    return FolderNode(id=fid, name=fid.upper(), parent_id=parent)


def file(fid, folder_id):
    return FileRecord(id=fid, name=fid, size_bytes=1, blob_key=f"u/{fid}", folder_id=folder_id)


class TestBuildFolderGraph:
    def test_edges_point_to_parent(self):
        graph = build_folder_graph([folder("a"), folder("b", "a")])
        assert list(graph.edges()) == [("b", "a")]
        assert graph.nodes["a"]["name"] == "A"

    def test_dangling_parent_has_no_edge(self):
        graph = build_folder_graph([folder("b", "gone")])
        assert graph.number_of_edges() == 0


class TestAuditFolderTree:
    def test_healthy_tree(self):
        report = audit_folder_tree(
            [folder("a"), folder("b", "a"), folder("c", "b")],
            [file("f1", "c"), file("f2", None)],
        )
        assert report.ok
        assert report.max_depth == 2
        assert report.to_dict()["folder_count"] == 3

    def test_cycle_detected(self):
        report = audit_folder_tree([folder("a", "b"), folder("b", "a"), folder("c", "a")])
        assert not report.ok
        assert report.cycles == [["a", "b"]]
        assert report.max_depth == 0

    def test_self_parent(self):
        report = audit_folder_tree([folder("a", "a")])
        assert report.cycles == [["a"]]

    def test_dangling_and_orphans(self):
        report = audit_folder_tree([folder("a", "deleted")], [file("f1", "deleted"), file("f2", "a")])
        assert report.dangling_parents == ["a"]
        assert report.orphaned_files == ["f1"]
        assert not report.ok

    def test_empty(self):
        report = audit_folder_tree([])
        assert report.ok
        assert report.max_depth == 0
