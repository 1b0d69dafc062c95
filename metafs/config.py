"""metafs configuration.

Settings come from an optional YAML file, layered over :data:`DEFAULT_CONFIG`,
with a few environment variables taking precedence over both::

    store:
      path: ~/.metafs/fs.db        # or ":memory:"
    logging:
      level: INFO
    namespace:
      touch_mtime_on_move: true

Environment overrides:

- ``METAFS_CONFIG``     path of the YAML file when none is passed explicitly
- ``METAFS_DB``         ``store.path``
- ``METAFS_LOG_LEVEL``  ``logging.level``

Call :func:`validate_config` before building a filesystem from the result
to fail fast with readable messages.
"""

from __future__ import annotations

import copy
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger("MetaFS.Config")

DEFAULT_CONFIG: Dict[str, Any] = {
    "store": {"path": ":memory:"},
    "logging": {"level": "INFO"},
    "namespace": {"touch_mtime_on_move": True},
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge *override* into a copy of *base*."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load settings from *path* (or ``$METAFS_CONFIG``) over the defaults.

    A missing file is an error only when *path* was given explicitly.
    """
    path = path or os.getenv("METAFS_CONFIG")
    config = copy.deepcopy(DEFAULT_CONFIG)

    if path:
        with open(os.path.expanduser(path)) as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config {path} must be a mapping (check YAML syntax)")
        config = _merge(config, loaded)
        logger.debug("Loaded config from %s", path)

    # Malformed sections are left as-is for validate_config to report
    db = os.getenv("METAFS_DB")
    if db and isinstance(config.get("store"), dict):
        config["store"]["path"] = db
    level = os.getenv("METAFS_LOG_LEVEL")
    if level and isinstance(config.get("logging"), dict):
        config["logging"]["level"] = level

    return config


def validate_config(config: dict) -> Tuple[bool, List[str]]:
    """Validate a loaded config dict.

    Returns:
        A ``(is_valid, errors)`` tuple.  ``is_valid`` is ``True`` only when
        ``errors`` is empty.
    """
    if not isinstance(config, dict):
        return False, ["Config must be a dict (check YAML syntax)"]

    errors: List[str] = []

    # ── store ────────────────────────────────────────────────────────────────
    store = config.get("store")
    if not isinstance(store, dict):
        errors.append("'store' must be a mapping (dict)")
    elif not isinstance(store.get("path"), str) or not store.get("path"):
        errors.append("Missing or empty required key: 'store.path'")

    # ── logging ──────────────────────────────────────────────────────────────
    log_cfg = config.get("logging", {})
    if not isinstance(log_cfg, dict):
        errors.append("'logging' must be a mapping (dict)")
    else:
        level = log_cfg.get("level", "INFO")
        if not isinstance(level, str) or level.upper() not in _LOG_LEVELS:
            errors.append(f"'logging.level' must be one of {', '.join(_LOG_LEVELS)}, got {level!r}")

    # ── namespace ────────────────────────────────────────────────────────────
    ns_cfg = config.get("namespace", {})
    if not isinstance(ns_cfg, dict):
        errors.append("'namespace' must be a mapping (dict)")
    elif not isinstance(ns_cfg.get("touch_mtime_on_move", True), bool):
        errors.append("'namespace.touch_mtime_on_move' must be true or false")

    for msg in errors:
        logger.debug("Config error: %s", msg)
    return len(errors) == 0, errors


def configure_logging(level: str = "INFO") -> None:
    """Install the standard metafs log format on the root logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )
