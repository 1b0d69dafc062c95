"""Syntactic checks on path and name strings.

Pure functions: nothing here touches the store.
"""

import re
from typing import List

from metafs.errors import InvalidName, InvalidPath

MAX_NAME_LENGTH = 255

# Characters that may never appear inside a single node name
_FORBIDDEN_NAME_CHARS = re.compile(r'[/<>"|?*]')
# A segment starting with a space, anywhere in the path
_SPACE_SEGMENT = re.compile(r"(^|/) ")


def validate_path(path: str) -> None:
    """Raise :class:`InvalidPath` unless *path* is an absolute, well-formed path."""
    if (
        not isinstance(path, str)
        or not path
        or not path.startswith("/")
        or "\0" in path
        or _SPACE_SEGMENT.search(path)
    ):
        raise InvalidPath(path=path)


def validate_name(name: str) -> None:
    """Raise :class:`InvalidName` unless *name* is usable as a node name."""
    if (
        not isinstance(name, str)
        or not name
        or name.startswith(" ")
        or "\0" in name
        or len(name) > MAX_NAME_LENGTH
        or _FORBIDDEN_NAME_CHARS.search(name)
    ):
        raise InvalidName(path=name)


def split_path(path: str) -> List[str]:
    """Split *path* into segments, dropping the empty ones from repeated slashes.

    The root (``/``, ``//``, ...) splits into an empty list.
    """
    return [part for part in path.split("/") if part]
