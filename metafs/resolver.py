"""
metafs -- Path resolution.

``resolve`` turns a textual path into a node id by walking down from the
root one segment at a time; ``canonicalize`` walks ``parent`` links back
up.  Both are plain loops over store lookups, so each costs O(depth)
queries against the ``(name, parent)`` index.
"""

from typing import List, Optional, Tuple

from metafs.node import ROOT_ID
from metafs.store import NodeStore
from metafs.validate import split_path


def resolve_segments(store: NodeStore, parts: List[str]) -> Optional[str]:
    """Return the id reached by following *parts* from the root, or ``None``."""
    node_id = ROOT_ID
    for part in parts:
        child = store.child(node_id, part)
        if child is None:
            return None
        node_id = child.id
    return node_id


def resolve(store: NodeStore, path: str) -> Optional[str]:
    """Return the id of the node at *path*, or ``None`` if it does not exist."""
    return resolve_segments(store, split_path(path))


def canonicalize(store: NodeStore, node_id: str) -> str:
    """Return the canonical path of *node_id* (``/`` for the root)."""
    names: List[str] = []
    seen = set()
    current = store.get(node_id)
    if current is None:
        raise KeyError(node_id)
    while current.parent is not None:
        if current.id in seen:
            raise RuntimeError(f"cycle in parent chain at node {current.id}")
        seen.add(current.id)
        names.append(current.name)
        current = store.get(current.parent)
        if current is None:
            raise RuntimeError(f"orphaned node under {node_id}")
    return "/" + "/".join(reversed(names))


def child_path(parent_path: str, name: str) -> str:
    """Join a canonical parent path and a child name."""
    return f"{parent_path.rstrip('/')}/{name}"


def split_parent(path: str) -> Tuple[List[str], Optional[str]]:
    """Split *path* into (parent segments, leaf name).

    The leaf is ``None`` for the root.
    """
    parts = split_path(path)
    if not parts:
        return [], None
    return parts[:-1], parts[-1]
