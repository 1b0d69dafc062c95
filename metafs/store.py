"""
metafs/store.py -- SQLite node store.

Persists every node of the namespace as one row of the ``fs`` table::

    fs(id, name, dir, atime, mtime, parent)

``(name, parent)`` is unique and ``parent`` references ``fs(id)`` with
``ON DELETE CASCADE``.  The root row has a fixed id and a ``NULL`` parent
and is inserted when the store is opened.

The store only offers primitives (lookup, insert, update, delete).  Path
handling and tree invariants live in :mod:`metafs.resolver` and
:mod:`metafs.namespace`, which group primitives into one atomic operation
with :meth:`NodeStore.transaction`::

    store = NodeStore()                     # in-memory
    with store.transaction():
        node = store.insert("etc", True, ROOT_ID)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from metafs.errors import DuplicateName
from metafs.node import ROOT_ID, Node

logger = logging.getLogger("MetaFS.Store")

_DDL = """
CREATE TABLE IF NOT EXISTS fs (
    id      TEXT PRIMARY KEY,
    name    TEXT    NOT NULL,
    dir     INTEGER NOT NULL DEFAULT 0,
    atime   REAL    NOT NULL,
    mtime   REAL    NOT NULL,
    parent  TEXT REFERENCES fs (id) ON DELETE CASCADE,
    UNIQUE (name, parent)
);
CREATE INDEX IF NOT EXISTS idx_fs_parent ON fs (parent);
CREATE INDEX IF NOT EXISTS idx_fs_name ON fs (name);
"""

_DROP = """
DROP INDEX IF EXISTS idx_fs_parent;
DROP INDEX IF EXISTS idx_fs_name;
DROP TABLE IF EXISTS fs;
"""


class NodeStore:
    """SQLite-backed table of nodes.

    One connection is shared by all callers; a re-entrant lock serialises
    transactions so every namespace operation sees and commits a
    consistent tree.

    Args:
        db_path: SQLite database file, or ``":memory:"`` (the default)
                 for a throwaway store.
        timeout: Seconds to wait for another connection's lock before
                 failing with ``database is locked``.
    """

    def __init__(self, db_path: str = ":memory:", timeout: float = 5.0):
        if db_path != ":memory:":
            Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self._lock = threading.RLock()
        self._depth = 0
        self._con = sqlite3.connect(
            db_path, timeout=timeout, check_same_thread=False, isolation_level=None
        )
        self._con.row_factory = sqlite3.Row
        self._con.execute("PRAGMA foreign_keys = ON")
        self._init_db()

    # ── Internal ──────────────────────────────────────────────────────────────

    def _init_db(self) -> None:
        """Create the schema and the root row if they do not exist."""
        now = time.time()
        with self.transaction():
            self._create_schema()
            self._con.execute(
                "INSERT OR IGNORE INTO fs (id, name, dir, atime, mtime, parent) "
                "VALUES (?, '', 1, ?, ?, NULL)",
                (ROOT_ID, now, now),
            )
        logger.debug("Node store ready at %s", self.db_path)

    def _create_schema(self) -> None:
        # executescript() would COMMIT the open transaction, so run statements one by one
        for statement in _DDL.split(";"):
            if statement.strip():
                self._con.execute(statement)

    # ── Transactions ──────────────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator["NodeStore"]:
        """Run the enclosed block atomically.

        Nested ``transaction()`` blocks join the outermost one; only the
        outermost block commits, and an exception anywhere rolls back
        everything.
        """
        with self._lock:
            outer = self._depth == 0
            if outer:
                self._con.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outer:
                    self._con.execute("ROLLBACK")
                raise
            else:
                self._depth -= 1
                if outer:
                    try:
                        self._con.execute("COMMIT")
                    except BaseException:
                        # A failed COMMIT leaves the transaction open
                        self._con.execute("ROLLBACK")
                        raise

    # ── Read ──────────────────────────────────────────────────────────────────

    def get(self, node_id: str) -> Optional[Node]:
        """Return the node with *node_id*, or ``None``."""
        row = self._con.execute("SELECT * FROM fs WHERE id = ?", (node_id,)).fetchone()
        return Node.from_row(row) if row else None

    def root(self) -> Node:
        return self.get(ROOT_ID)

    def child(self, parent_id: str, name: str) -> Optional[Node]:
        """Return the child of *parent_id* called *name*, or ``None``."""
        row = self._con.execute(
            "SELECT * FROM fs WHERE parent = ? AND name = ?", (parent_id, name)
        ).fetchone()
        return Node.from_row(row) if row else None

    def children(self, parent_id: str) -> List[Node]:
        """Return the direct children of *parent_id*, ordered by name."""
        rows = self._con.execute(
            "SELECT * FROM fs WHERE parent = ? ORDER BY name", (parent_id,)
        ).fetchall()
        return [Node.from_row(r) for r in rows]

    def all_nodes(self) -> List[Node]:
        """Return every row in the table, root included."""
        rows = self._con.execute("SELECT * FROM fs").fetchall()
        return [Node.from_row(r) for r in rows]

    def count(self) -> int:
        """Return the number of nodes, root included."""
        return self._con.execute("SELECT COUNT(*) FROM fs").fetchone()[0]

    # ── Write ─────────────────────────────────────────────────────────────────

    def insert(self, name: str, is_dir: bool, parent_id: str) -> Node:
        """Insert a new node under *parent_id* and return it.

        Raises :class:`DuplicateName` if the parent already has a child
        with *name*.
        """
        node_id = str(uuid.uuid4())
        now = time.time()
        try:
            self._con.execute(
                "INSERT INTO fs (id, name, dir, atime, mtime, parent) VALUES (?, ?, ?, ?, ?, ?)",
                (node_id, name, int(is_dir), now, now, parent_id),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateName(path=name) from exc
        return Node(node_id, name, is_dir, now, now, parent_id)

    def update(self, node_id: str, parent_id: str, name: str, mtime: Optional[float] = None) -> None:
        """Re-parent and/or rename *node_id* in place."""
        try:
            if mtime is None:
                self._con.execute(
                    "UPDATE fs SET parent = ?, name = ? WHERE id = ?", (parent_id, name, node_id)
                )
            else:
                self._con.execute(
                    "UPDATE fs SET parent = ?, name = ?, mtime = ? WHERE id = ?",
                    (parent_id, name, mtime, node_id),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateName(path=name) from exc

    def delete(self, node_ids: Iterable[str]) -> int:
        """Delete every node in *node_ids*.  Returns the number of rows removed.

        Pass descendants before their ancestors so the cascade never fires
        and the count stays exact.
        """
        removed = 0
        # One row per statement: rowcount ignores rows removed by the cascade
        for node_id in node_ids:
            removed += self._con.execute("DELETE FROM fs WHERE id = ?", (node_id,)).rowcount
        return removed

    # ── Admin ─────────────────────────────────────────────────────────────────

    def drop(self) -> None:
        """Drop the table and its indexes.  The store is unusable afterwards."""
        with self.transaction():
            for statement in _DROP.split(";"):
                if statement.strip():
                    self._con.execute(statement)
        logger.info("Dropped node store at %s", self.db_path)

    def close(self) -> None:
        with self._lock:
            self._con.close()
