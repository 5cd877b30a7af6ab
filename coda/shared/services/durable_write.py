"""Crash-safe file writes for the session store.

A write lands in a synced temp file beside the target and is renamed over
it, so readers see either the old file or the new one. Renames and unlinks
are followed by a directory fsync where the platform allows it.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path


def fsync_dir(dir_path: Path) -> None:
    """Best-effort directory fsync so rename/unlink survive a crash."""
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        fd = os.open(str(dir_path), flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        # Directory fsync is unsupported on Windows and some filesystems.
        return


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``content`` in one rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        fsync_dir(path.parent)
    finally:
        # Only left behind when the write or rename failed.
        tmp_path.unlink(missing_ok=True)


def atomic_write_json(path: Path, data: dict) -> None:
    atomic_write_text(path, json.dumps(data, indent=2))


def durable_unlink(path: Path) -> bool:
    """Remove ``path`` and sync its directory. False if it was already gone."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    fsync_dir(path.parent)
    return True
