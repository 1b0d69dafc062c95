"""
metafs -- Node record.

A node is the metadata of one file or directory.  The store hands out
:class:`Node` instances without a ``path``; the namespace fills the
canonical path in before returning records to callers.
"""

import sqlite3
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

ROOT_ID = "11111111-1111-1111-1111-111111111111"


@dataclass(frozen=True)
class Node:
    """A single file-or-directory record.

    Attributes:
        id:      Opaque UUID string, fixed for the node's lifetime.
        name:    Label within the parent (``""`` for the root).
        dir:     ``True`` for directories.
        atime:   Last access timestamp (epoch seconds).
        mtime:   Last modification timestamp (epoch seconds).
        parent:  Parent node id, ``None`` only for the root.
        path:    Canonical path, or ``None`` when not yet resolved.
    """

    id: str
    name: str
    dir: bool
    atime: float
    mtime: float
    parent: Optional[str]
    path: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def with_path(self, path: str) -> "Node":
        return replace(self, path=path)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Node":
        return cls(
            id=row["id"],
            name=row["name"],
            dir=bool(row["dir"]),
            atime=row["atime"],
            mtime=row["mtime"],
            parent=row["parent"],
        )
