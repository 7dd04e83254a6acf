"""Map a working directory to the project namespace its sessions share."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

HOME_NAMESPACE = "home"
ROOT_NAMESPACE = "root"


def _normalize(path: str | os.PathLike[str]) -> str:
    """Absolute, lexically normalised path. Never touches the filesystem."""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def resolve_namespace(
    path: str | os.PathLike[str] | None = None,
    *,
    home: str | os.PathLike[str] | None = None,
    mode: str = "basename",
) -> str:
    """Return the namespace for ``path`` (default: the process working directory).

    The home directory is ``home``; anything else is its final path segment.
    With ``mode="hashed"`` the segment gets a short digest of the full path so
    unrelated checkouts sharing a basename stay apart.
    """
    normalized = _normalize(path if path else os.getcwd())
    home_dir = _normalize(home if home is not None else Path.home())

    if normalized == home_dir:
        return HOME_NAMESPACE

    name = os.path.basename(normalized) or ROOT_NAMESPACE
    if mode == "hashed":
        digest = hashlib.sha256(normalized.encode("utf-8", "surrogateescape")).hexdigest()[:8]
        return f"{name}-{digest}"
    return name
