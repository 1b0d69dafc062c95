"""Tests for metafs.namespace -- the path-level filesystem operations."""

import threading

import pytest

from metafs.errors import (
    CyclicMove,
    DuplicateName,
    InvalidName,
    InvalidPath,
    NewParentNotFound,
    NotFound,
    OperationNotAllowed,
)
from metafs.namespace import Namespace
from metafs.node import ROOT_ID
from metafs.resolver import canonicalize, resolve


@pytest.fixture()
def ns():
    return Namespace()


def _paths(nodes):
    return {n.path for n in nodes}


# =====================================================================
# Reference scenarios
# =====================================================================
class TestScenarios:
    def test_mkdir_then_stat_intermediate(self, ns):
        ns.mkdir("/data/d1/d2/d3")
        node = ns.stat("/data/d1/d2")
        assert node.dir
        assert node.path == "/data/d1/d2"
        assert node.name == "d2"

    def test_touch_then_ls_root(self, ns):
        ns.touch("/", "file1")
        entries = {n.name: n for n in ns.ls("/")}
        assert "file1" in entries
        assert not entries["file1"].dir
        assert entries["file1"].path == "/file1"
        assert entries["file1"].parent == ROOT_ID

    def test_mv_directory(self, ns):
        moved = ns.mkdir("/data/d1/d2/d3")
        ns.mv("/data/d1/d2/d3", "/data/d3")
        with pytest.raises(NotFound):
            ns.stat("/data/d1/d2/d3")
        node = ns.stat("/data/d3")
        assert node.id == moved.id
        assert node.path == "/data/d3"

    def test_rm_is_recursive(self, ns):
        ns.mkdir("/data/d1/d2")
        ns.rm("/data/d1")
        with pytest.raises(NotFound):
            ns.stat("/data/d1/d2")

    def test_rm_root_not_allowed(self, ns):
        with pytest.raises(OperationNotAllowed):
            ns.rm("/")

    def test_reset_keeps_root(self, ns):
        ns.mkdir("/data/d1/d2")
        ns.touch("/", "file1")
        ns.touch("/data", "file2")
        assert ns.reset() == 5
        assert ns.ls("/") == []
        root = ns.stat("/")
        assert root.id == ROOT_ID
        assert root.path == "/"


# =====================================================================
# Queries
# =====================================================================
class TestQueries:
    def test_stat_root(self, ns):
        root = ns.stat("/")
        assert root.is_root
        assert root.dir
        assert root.name == ""

    def test_stat_missing(self, ns):
        with pytest.raises(NotFound) as exc:
            ns.stat("/does/not/exist")
        assert exc.value.code == "D0001"

    def test_stat_normalises_slashes(self, ns):
        ns.mkdir("/a/b")
        assert ns.stat("//a///b/").path == "/a/b"

    def test_exists(self, ns):
        ns.touch("/", "x")
        assert ns.exists("/x")
        assert not ns.exists("/y")
        assert ns.exists("/")

    def test_ls_sorted_with_paths(self, ns):
        ns.mkdir("/d/zeta")
        ns.touch("/d", "alpha")
        ns.mkdir("/d/mid")
        entries = ns.ls("/d")
        assert [n.name for n in entries] == ["alpha", "mid", "zeta"]
        assert [n.path for n in entries] == ["/d/alpha", "/d/mid", "/d/zeta"]

    def test_ls_only_direct_children(self, ns):
        ns.mkdir("/a/b/c")
        assert [n.name for n in ns.ls("/a")] == ["b"]

    def test_ls_file_is_empty(self, ns):
        ns.touch("/", "f")
        assert ns.ls("/f") == []

    def test_ls_missing(self, ns):
        with pytest.raises(NotFound):
            ns.ls("/nope")

    def test_tree_includes_self_and_descendants(self, ns):
        ns.mkdir("/data/d1/d2/d3")
        ns.touch("/data/d1", "f")
        ns.mkdir("/other")
        nodes = ns.tree("/data")
        assert nodes[0].path == "/data"
        assert _paths(nodes) == {
            "/data", "/data/d1", "/data/d1/d2", "/data/d1/d2/d3", "/data/d1/f",
        }

    def test_tree_of_root(self, ns):
        ns.mkdir("/a/b")
        assert _paths(ns.tree("/")) == {"/", "/a", "/a/b"}

    def test_tree_missing(self, ns):
        with pytest.raises(NotFound):
            ns.tree("/nope")

    def test_invalid_path_rejected(self, ns):
        with pytest.raises(InvalidPath):
            ns.ls("relative")
        with pytest.raises(InvalidPath):
            ns.stat("")
        with pytest.raises(InvalidPath):
            ns.tree("/ leading-space")


# =====================================================================
# touch
# =====================================================================
class TestTouch:
    def test_touch_creates_file(self, ns):
        ns.mkdir("/docs")
        node = ns.touch("/docs", "readme")
        assert not node.dir
        assert node.path == "/docs/readme"
        assert ns.stat("/docs/readme").id == node.id

    def test_touch_duplicate(self, ns):
        ns.touch("/", "file1")
        with pytest.raises(DuplicateName) as exc:
            ns.touch("/", "file1")
        assert exc.value.code == "D0002"

    def test_touch_name_taken_by_directory(self, ns):
        ns.mkdir("/data")
        with pytest.raises(DuplicateName):
            ns.touch("/", "data")

    def test_touch_missing_directory(self, ns):
        with pytest.raises(NotFound):
            ns.touch("/nope", "f")

    @pytest.mark.parametrize("name", ["", " lead", "a/b", "a<b", "a>b", 'a"b', "a|b", "a?b", "a*b", "a\0b"])
    def test_touch_invalid_name(self, ns, name):
        with pytest.raises(InvalidName):
            ns.touch("/", name)
        assert ns.ls("/") == []

    def test_touch_under_file_allowed(self, ns):
        ns.touch("/", "f")
        child = ns.touch("/f", "inner")
        assert child.path == "/f/inner"


# =====================================================================
# mkdir
# =====================================================================
class TestMkdir:
    def test_mkdir_creates_parents(self, ns):
        leaf = ns.mkdir("/a/b/c")
        assert leaf.dir
        assert leaf.path == "/a/b/c"
        assert ns.stat("/a").dir and ns.stat("/a/b").dir

    def test_mkdir_idempotent(self, ns):
        first = ns.mkdir("/a/b/c")
        count = ns.store.count()
        second = ns.mkdir("/a/b/c")
        assert second.id == first.id
        assert ns.store.count() == count
        assert [n.name for n in ns.ls("/a/b")] == ["c"]

    def test_mkdir_reuses_existing_prefix(self, ns):
        b = ns.mkdir("/a/b")
        ns.mkdir("/a/b/c/d")
        assert ns.stat("/a/b").id == b.id

    def test_mkdir_root_not_allowed(self, ns):
        with pytest.raises(OperationNotAllowed) as exc:
            ns.mkdir("/")
        assert exc.value.op == "mkdir"

    def test_mkdir_invalid_segment_creates_nothing(self, ns):
        with pytest.raises(InvalidName):
            ns.mkdir("/a/b*c/d")
        assert not ns.exists("/a")

    def test_mkdir_is_atomic(self, ns, monkeypatch):
        real_insert = ns.store.insert
        calls = []

        def flaky_insert(name, is_dir, parent_id):
            calls.append(name)
            if len(calls) == 3:
                raise RuntimeError("disk full")
            return real_insert(name, is_dir, parent_id)

        monkeypatch.setattr(ns.store, "insert", flaky_insert)
        with pytest.raises(RuntimeError):
            ns.mkdir("/a/b/c")
        monkeypatch.undo()
        assert not ns.exists("/a")
        assert ns.store.count() == 1


# =====================================================================
# mv
# =====================================================================
class TestMove:
    def test_rename_in_place(self, ns):
        ns.touch("/", "old")
        ns.mv("/old", "/new")
        assert not ns.exists("/old")
        assert ns.stat("/new").name == "new"

    def test_move_carries_subtree(self, ns):
        ns.mkdir("/a/b/c")
        ns.mkdir("/dest")
        ns.mv("/a/b", "/dest/b2")
        assert ns.stat("/dest/b2/c").path == "/dest/b2/c"
        assert ns.ls("/a") == []

    def test_move_root_not_allowed(self, ns):
        ns.mkdir("/a")
        with pytest.raises(OperationNotAllowed):
            ns.mv("/", "/a/root")
        with pytest.raises(OperationNotAllowed):
            ns.mv("/a", "/")

    def test_move_missing_source(self, ns):
        with pytest.raises(NotFound) as exc:
            ns.mv("/nope", "/x")
        assert exc.value.code == "D0003"

    def test_move_missing_new_parent(self, ns):
        ns.mkdir("/a")
        with pytest.raises(NewParentNotFound) as exc:
            ns.mv("/a", "/missing/a")
        assert isinstance(exc.value, NotFound)
        assert exc.value.code == "D0004"
        assert ns.exists("/a")

    def test_move_into_own_subtree(self, ns):
        ns.mkdir("/a/b/c")
        with pytest.raises(CyclicMove):
            ns.mv("/a", "/a/b/c/a")
        with pytest.raises(CyclicMove):
            ns.mv("/a", "/a/x")
        assert ns.stat("/a/b/c").path == "/a/b/c"
        assert ns.check() == (True, [])

    def test_move_onto_existing_sibling(self, ns):
        ns.mkdir("/a")
        ns.touch("/", "b")
        with pytest.raises(DuplicateName):
            ns.mv("/a", "/b")
        assert ns.stat("/a").dir
        assert not ns.stat("/b").dir

    def test_move_onto_itself_is_noop(self, ns):
        node = ns.mkdir("/a")
        ns.mv("/a", "//a/")
        assert ns.stat("/a").id == node.id

    def test_move_invalid_new_name(self, ns):
        ns.mkdir("/a")
        with pytest.raises(InvalidPath):
            ns.mv("/a", "/ b")
        with pytest.raises(InvalidName):
            ns.mv("/a", "/b?")

    def test_move_refreshes_mtime(self, ns, monkeypatch):
        ns.touch("/", "f")
        monkeypatch.setattr("metafs.namespace.time.time", lambda: 2_000_000_000.0)
        ns.mv("/f", "/g")
        assert ns.stat("/g").mtime == 2_000_000_000.0

    def test_move_keeps_mtime_when_disabled(self, monkeypatch):
        ns = Namespace(touch_mtime_on_move=False)
        before = ns.touch("/", "f").mtime
        monkeypatch.setattr("metafs.namespace.time.time", lambda: 2_000_000_000.0)
        ns.mv("/f", "/g")
        assert ns.stat("/g").mtime == before


# =====================================================================
# rm / reset
# =====================================================================
class TestRemove:
    def test_rm_file(self, ns):
        ns.touch("/", "f")
        assert ns.rm("/f") == 1
        assert not ns.exists("/f")

    def test_rm_returns_subtree_size(self, ns):
        ns.mkdir("/a/b/c")
        ns.touch("/a/b", "f")
        assert ns.rm("/a") == 4
        assert ns.store.count() == 1

    def test_rm_missing(self, ns):
        with pytest.raises(NotFound):
            ns.rm("/nope")

    def test_rm_root_variants_not_allowed(self, ns):
        with pytest.raises(OperationNotAllowed):
            ns.rm("//")

    def test_rm_leaves_siblings(self, ns):
        ns.mkdir("/data/d1/d2")
        ns.mkdir("/data/d10")
        ns.rm("/data/d1")
        assert _paths(ns.tree("/data")) == {"/data", "/data/d10"}

    def test_reset_empty(self, ns):
        assert ns.reset() == 0
        assert ns.store.count() == 1


# =====================================================================
# Tree invariants
# =====================================================================
class TestInvariants:
    def _populate(self, ns):
        ns.mkdir("/data/d1/d2/d3")
        ns.mkdir("/data/x/y")
        ns.touch("/data/d1", "f1")
        ns.touch("/", "top")
        ns.mv("/data/d1/d2/d3", "/data/d3")
        ns.mv("/data/x", "/data/d3/x")
        ns.mv("/top", "/data/top-renamed")
        ns.rm("/data/d1/d2")

    def test_resolve_canonicalize_round_trip(self, ns):
        self._populate(ns)
        for node in ns.tree("/"):
            assert resolve(ns.store, node.path) == node.id
            assert canonicalize(ns.store, node.id) == node.path

    def test_check_passes_after_operations(self, ns):
        self._populate(ns)
        ok, problems = ns.check()
        assert ok, problems

    def test_sibling_names_unique(self, ns):
        self._populate(ns)
        keys = [(n.parent, n.name) for n in ns.store.all_nodes()]
        assert len(keys) == len(set(keys))

    def test_cascade_removes_prefix(self, ns):
        self._populate(ns)
        ns.mkdir("/data/d3-sibling")
        ns.rm("/data/d3")
        remaining = _paths(ns.tree("/"))
        assert not any(p == "/data/d3" or p.startswith("/data/d3/") for p in remaining)
        assert "/data/d3-sibling" in remaining

    def test_check_detects_orphan(self, ns):
        ns.mkdir("/a")
        con = ns.store._con
        con.execute("PRAGMA foreign_keys = OFF")
        con.execute(
            "INSERT INTO fs (id, name, dir, atime, mtime, parent) VALUES ('x', 'lost', 0, 0, 0, 'gone')"
        )
        ok, problems = ns.check()
        assert not ok
        assert any("missing parent" in p for p in problems)

    def test_thread_safety(self, ns):
        errors = []

        def writer(n):
            try:
                for i in range(20):
                    ns.mkdir(f"/t/{n}/{i}")
                    ns.touch(f"/t/{n}/{i}", "f")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(t,)) for t in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert not errors
        assert len(ns.tree("/t")) == 1 + 4 + 4 * 20 * 2
        assert ns.check() == (True, [])
