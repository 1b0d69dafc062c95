"""
metafs -- Namespace.

A hierarchical filesystem namespace modeled after the Unix VFS, holding
metadata only (no file content).  Nodes live in a :class:`NodeStore` as a
parent-pointer tree; every public operation validates its arguments,
resolves paths to node ids, and then reads or mutates the store inside a
single transaction, so a failed operation leaves the tree untouched.

Usage::

    ns = Namespace()
    ns.mkdir("/data/d1/d2")
    ns.touch("/data", "notes")
    ns.ls("/data")                 # -> [Node(name="d1", ...), Node(name="notes", ...)]
    ns.mv("/data/d1/d2", "/data/d2")
    ns.rm("/data")                 # removes the whole subtree
"""

import logging
import time
from collections import deque
from typing import List, Optional, Tuple

from metafs.errors import (
    CyclicMove,
    DuplicateName,
    NewParentNotFound,
    NotFound,
    OperationNotAllowed,
)
from metafs.node import ROOT_ID, Node
from metafs.resolver import canonicalize, child_path, resolve, resolve_segments, split_parent
from metafs.store import NodeStore
from metafs.validate import split_path, validate_name, validate_path

logger = logging.getLogger("MetaFS.Namespace")


class Namespace:
    """Path-level operations over a :class:`NodeStore`.

    Args:
        store:               Backing store; a fresh in-memory store if omitted.
        touch_mtime_on_move: Refresh a node's ``mtime`` when ``mv`` relocates
                             or renames it.
    """

    def __init__(self, store: Optional[NodeStore] = None, touch_mtime_on_move: bool = True):
        self.store = store if store is not None else NodeStore()
        self.touch_mtime_on_move = touch_mtime_on_move

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _lookup(self, path: str) -> str:
        node_id = resolve(self.store, path)
        if node_id is None:
            raise NotFound(path=path)
        return node_id

    def _subtree(self, node_id: str) -> List[str]:
        """Ids of *node_id* and all its descendants, breadth-first."""
        order = [node_id]
        queue = deque([node_id])
        while queue:
            for child in self.store.children(queue.popleft()):
                order.append(child.id)
                queue.append(child.id)
        return order

    def _is_within(self, node_id: str, ancestor_id: str) -> bool:
        """True if *node_id* is *ancestor_id* or lies underneath it."""
        current = self.store.get(node_id)
        while current is not None:
            if current.id == ancestor_id:
                return True
            if current.parent is None:
                return False
            current = self.store.get(current.parent)
        return False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def stat(self, path: str) -> Node:
        """Return the node at *path* with its canonical path."""
        validate_path(path)
        with self.store.transaction():
            node_id = self._lookup(path)
            return self.store.get(node_id).with_path(canonicalize(self.store, node_id))

    def exists(self, path: str) -> bool:
        """Check whether a node exists at *path*."""
        validate_path(path)
        with self.store.transaction():
            return resolve(self.store, path) is not None

    def ls(self, path: str = "/") -> List[Node]:
        """List the direct children of *path*, sorted by name.

        Files are not rejected; they simply have no children.
        """
        validate_path(path)
        with self.store.transaction():
            node_id = self._lookup(path)
            base = canonicalize(self.store, node_id)
            return [c.with_path(child_path(base, c.name)) for c in self.store.children(node_id)]

    def tree(self, path: str = "/") -> List[Node]:
        """Return the node at *path* followed by every descendant, breadth-first."""
        validate_path(path)
        with self.store.transaction():
            node_id = self._lookup(path)
            top = self.store.get(node_id)
            results = []
            queue = deque([top.with_path(canonicalize(self.store, node_id))])
            while queue:
                node = queue.popleft()
                results.append(node)
                for child in self.store.children(node.id):
                    queue.append(child.with_path(child_path(node.path, child.name)))
            return results

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def touch(self, dir_path: str, name: str) -> Node:
        """Create an empty file called *name* inside *dir_path*."""
        validate_path(dir_path)
        validate_name(name)
        with self.store.transaction():
            parent_id = self._lookup(dir_path)
            path = child_path(canonicalize(self.store, parent_id), name)
            if self.store.child(parent_id, name) is not None:
                raise DuplicateName(path=path)
            node = self.store.insert(name, False, parent_id)
        logger.info("touch %s", path)
        return node.with_path(path)

    def mkdir(self, path: str) -> Node:
        """Create the directory *path* and any missing parents (``mkdir -p``).

        Existing segments are reused, so repeating the call returns the
        same node without creating anything.
        """
        validate_path(path)
        parts = split_path(path)
        if not parts:
            raise OperationNotAllowed("mkdir", path=path)
        for part in parts:
            validate_name(part)

        created = 0
        with self.store.transaction():
            node = self.store.root()
            current = "/"
            for part in parts:
                child = self.store.child(node.id, part)
                if child is None:
                    child = self.store.insert(part, True, node.id)
                    created += 1
                node = child
                current = child_path(current, part)
        if created:
            logger.info("mkdir %s (%d created)", current, created)
        return node.with_path(current)

    def mv(self, old_path: str, new_path: str) -> None:
        """Move or rename the node at *old_path* so it lives at *new_path*."""
        validate_path(old_path)
        validate_path(new_path)
        old_parts = split_path(old_path)
        if not old_parts:
            raise OperationNotAllowed("mv", path=old_path)
        parent_parts, new_name = split_parent(new_path)
        if new_name is None:
            raise OperationNotAllowed("mv", path=new_path)
        validate_name(new_name)

        with self.store.transaction():
            old_id = resolve_segments(self.store, old_parts)
            if old_id is None:
                raise NotFound("old path does not exist", path=old_path, code="D0003")
            new_parent_id = resolve_segments(self.store, parent_parts)
            if new_parent_id is None:
                raise NewParentNotFound(path="/" + "/".join(parent_parts))
            if self._is_within(new_parent_id, old_id):
                raise CyclicMove(path=new_path)

            existing = self.store.child(new_parent_id, new_name)
            if existing is not None:
                if existing.id == old_id:
                    return
                raise DuplicateName(path=new_path)

            mtime = time.time() if self.touch_mtime_on_move else None
            self.store.update(old_id, new_parent_id, new_name, mtime=mtime)
        logger.info("mv %s -> %s", old_path, new_path)

    def rm(self, path: str) -> int:
        """Delete the node at *path* and its whole subtree (``rm -rf``).

        Returns the number of nodes removed.
        """
        validate_path(path)
        if not split_path(path):
            raise OperationNotAllowed("rm", path=path)
        with self.store.transaction():
            ids = self._subtree(self._lookup(path))
            removed = self.store.delete(reversed(ids))
        logger.info("rm %s (%d nodes)", path, removed)
        return removed

    def reset(self) -> int:
        """Delete every node except the root.  Returns the number removed."""
        with self.store.transaction():
            ids = self._subtree(ROOT_ID)[1:]
            removed = self.store.delete(reversed(ids))
        logger.info("reset namespace (%d nodes)", removed)
        return removed

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------
    def check(self) -> Tuple[bool, List[str]]:
        """Scan the whole store for broken tree invariants.

        Returns:
            A ``(ok, problems)`` tuple; ``ok`` is ``True`` only when
            ``problems`` is empty.
        """
        with self.store.transaction():
            nodes = self.store.all_nodes()

        problems: List[str] = []
        by_id = {n.id: n for n in nodes}

        roots = [n for n in nodes if n.parent is None]
        if len(roots) != 1 or roots[0].id != ROOT_ID:
            problems.append(f"expected exactly one root {ROOT_ID}, found {[n.id for n in roots]}")

        siblings = set()
        for n in nodes:
            key = (n.parent, n.name)
            if n.parent is not None and key in siblings:
                problems.append(f"duplicate name {n.name!r} under {n.parent}")
            siblings.add(key)

        for n in nodes:
            seen = set()
            current = n
            while current.parent is not None:
                if current.id in seen:
                    problems.append(f"cycle through node {n.id}")
                    break
                seen.add(current.id)
                parent = by_id.get(current.parent)
                if parent is None:
                    problems.append(f"node {current.id} has missing parent {current.parent}")
                    break
                current = parent

        if problems:
            logger.warning("Namespace check found %d problem(s)", len(problems))
        return not problems, problems
