"""Structured errors for the metafs namespace.

Every failure the engine surfaces is a :class:`MetaFSError` subclass with a
stable string ``code``, so callers can branch on the kind of failure without
parsing messages::

    from metafs.errors import NotFound

    try:
        fs.stat("/missing")
    except NotFound as exc:
        print(exc.code, exc.message)   # D0001 path does not exist

Codes
-----
======  ======================  ==========================================
D0001   ``NotFound``            path does not resolve
D0002   ``DuplicateName``       sibling with the same name exists
D0003   ``NotFound``            ``mv`` source does not exist
D0004   ``NewParentNotFound``   ``mv`` destination parent does not exist
D0005   ``InvalidName``         name fails validation
D0006   ``InvalidPath``         path fails validation
D0007   ``OperationNotAllowed`` mutation of the root directory
D0008   ``CyclicMove``          ``mv`` of a node into its own subtree
======  ======================  ==========================================
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MetaFSError(Exception):
    """Base class for every error raised by metafs."""

    code = "D0000"
    default_message = "filesystem error"

    def __init__(
        self,
        message: Optional[str] = None,
        path: Optional[str] = None,
        code: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.path = path
        if code is not None:
            self.code = code
        super().__init__(f"{self.message}: {path!r}" if path is not None else self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "path": self.path}


class NotFound(MetaFSError):
    code = "D0001"
    default_message = "path does not exist"


class DuplicateName(MetaFSError):
    code = "D0002"
    default_message = "name already exists in directory"


class NewParentNotFound(NotFound):
    code = "D0004"
    default_message = "new parent path does not exist"


class InvalidName(MetaFSError, ValueError):
    code = "D0005"
    default_message = "invalid filename"


class InvalidPath(MetaFSError, ValueError):
    code = "D0006"
    default_message = "invalid filepath"


class OperationNotAllowed(MetaFSError):
    """Raised for any attempt to create, move, rename or delete the root."""

    code = "D0007"
    default_message = "operation not allowed on root directory"

    def __init__(self, op: str, path: Optional[str] = None):
        self.op = op
        super().__init__(f"operation {op} not allowed on root directory", path=path)


class CyclicMove(MetaFSError):
    code = "D0008"
    default_message = "cannot move a directory into its own subtree"
