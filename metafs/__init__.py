"""
metafs -- a Unix-like metadata filesystem on a relational store.

Files and directories are rows in a parent-pointer table; there is no file
content.  The package provides:

- **Node store** -- SQLite ``fs`` table with sibling-uniqueness and cascade.
- **Path validation** -- syntactic checks on paths and names.
- **Path resolution** -- path → node and node → canonical path.
- **Namespace** -- ``ls``, ``stat``, ``tree``, ``touch``, ``mkdir``,
  ``mv``, ``rm``, ``reset``, each atomic.

Quick start::

    from metafs import MetaFS

    fs = MetaFS()                        # in-memory
    fs.mkdir("/data/d1/d2/d3")
    fs.touch("/", "file1")
    fs.mv("/data/d1/d2/d3", "/data/d3")
    fs.rm("/data/d1")
    print(fs.render_tree("/"))

    # Persistent store configured from YAML / environment
    fs = MetaFS.from_config("metafs.yaml")
"""

import logging
from typing import List, Optional, Tuple

from metafs.config import configure_logging, load_config, validate_config
from metafs.errors import (
    CyclicMove,
    DuplicateName,
    InvalidName,
    InvalidPath,
    MetaFSError,
    NewParentNotFound,
    NotFound,
    OperationNotAllowed,
)
from metafs.namespace import Namespace
from metafs.node import ROOT_ID, Node
from metafs.store import NodeStore

logger = logging.getLogger("MetaFS")

__all__ = [
    "MetaFS",
    "Namespace",
    "NodeStore",
    "Node",
    "ROOT_ID",
    "MetaFSError",
    "NotFound",
    "NewParentNotFound",
    "DuplicateName",
    "InvalidName",
    "InvalidPath",
    "OperationNotAllowed",
    "CyclicMove",
]


class MetaFS:
    """Unified facade for the metadata filesystem.

    Wires a :class:`NodeStore` and a :class:`Namespace` together and
    exposes the namespace operations under their shell names.

    Args:
        db_path:             SQLite file for the node table, or ``":memory:"``.
        touch_mtime_on_move: Refresh ``mtime`` on ``mv``.
    """

    def __init__(self, db_path: str = ":memory:", touch_mtime_on_move: bool = True):
        self.store = NodeStore(db_path)
        self.ns = Namespace(self.store, touch_mtime_on_move=touch_mtime_on_move)
        logger.info("MetaFS opened (%s, %d nodes)", db_path, self.store.count())

    @classmethod
    def from_config(cls, path: Optional[str] = None) -> "MetaFS":
        """Build a filesystem from a YAML config file (see :mod:`metafs.config`)."""
        config = load_config(path)
        ok, errors = validate_config(config)
        if not ok:
            raise ValueError("Invalid metafs config: " + "; ".join(errors))
        configure_logging(config["logging"].get("level", "INFO"))
        return cls(
            db_path=config["store"]["path"],
            touch_mtime_on_move=config["namespace"].get("touch_mtime_on_move", True),
        )

    # ------------------------------------------------------------------
    # Delegated operations
    # ------------------------------------------------------------------
    def ls(self, path: str = "/") -> List[Node]:
        return self.ns.ls(path)

    def stat(self, path: str) -> Node:
        return self.ns.stat(path)

    def touch(self, dir_path: str, name: str) -> Node:
        return self.ns.touch(dir_path, name)

    def mkdir(self, path: str) -> Node:
        return self.ns.mkdir(path)

    def tree(self, path: str = "/") -> List[Node]:
        return self.ns.tree(path)

    def mv(self, old_path: str, new_path: str) -> None:
        self.ns.mv(old_path, new_path)

    def rm(self, path: str) -> int:
        return self.ns.rm(path)

    def reset(self) -> int:
        return self.ns.reset()

    def exists(self, path: str) -> bool:
        return self.ns.exists(path)

    def check(self) -> Tuple[bool, List[str]]:
        return self.ns.check()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self):
        self.store.close()
        logger.info("MetaFS closed")

    def __enter__(self) -> "MetaFS":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    def render_tree(self, path: str = "/", depth: int = 3) -> str:
        """Return a tree-style string representation of the filesystem."""
        if depth < 0:
            depth = 0
        top = self.ns.stat(path)
        if top.is_root:
            lines = ["/"]
        else:
            lines = [f"{top.name}/" if top.dir else top.name]
        self._render_recursive(top, "", depth, lines)
        return "\n".join(lines)

    def _render_recursive(self, node: Node, prefix: str, depth: int, lines: List[str]):
        if depth <= 0:
            return
        children = self.ns.ls(node.path)
        for i, child in enumerate(children):
            is_last = i == len(children) - 1
            connector = "`-- " if is_last else "|-- "
            lines.append(f"{prefix}{connector}{child.name}{'/' if child.dir else ''}")
            child_prefix = prefix + ("    " if is_last else "|   ")
            self._render_recursive(child, child_prefix, depth - 1, lines)
