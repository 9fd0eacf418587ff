"""Filesystem helpers: byte sinks, input detection and per-request directories."""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

__all__ = [
    "SESSION_DIR_PREFIX",
    "ByteSink",
    "LocalByteSink",
    "detect_file_type",
    "ensure_directory",
    "create_session_dir",
    "remove_dir",
    "cleanup_stale_dirs",
]

logger = logging.getLogger(__name__)

SESSION_DIR_PREFIX = "downcraft_"


@runtime_checkable
class ByteSink(Protocol):
    def write(self, path: Path, data: bytes) -> None: ...

    def read(self, path: Path) -> bytes: ...


class LocalByteSink:
    """Byte sink writing straight to the local filesystem."""

    def write(self, path: Path, data: bytes) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def read(self, path: Path) -> bytes:
        return Path(path).read_bytes()


def detect_file_type(data: bytes) -> str | None:
    """Guess a document type from its leading bytes."""

    if data[:4] == b"%PDF":
        return "pdf"
    if data[:2] == b"PK":
        # Office Open XML packages name their parts early in the zip directory.
        head = data[:2000].decode("utf-8", errors="ignore")
        if "word/" in head:
            return "docx"
        if "ppt/" in head:
            return "pptx"
        if "xl/" in head:
            return "xlsx"
    return None


def ensure_directory(path: Path | str) -> Path:
    resolved = Path(path).expanduser()
    resolved.mkdir(parents=True, exist_ok=True)
    return resolved


def create_session_dir(root: Path | str | None = None) -> Path:
    """Create a fresh, uniquely named directory owned by one conversion."""

    parent = ensure_directory(root) if root is not None else None
    session_dir = Path(tempfile.mkdtemp(prefix=SESSION_DIR_PREFIX, dir=parent))
    logger.debug("Created session directory %s", session_dir)
    return session_dir


def remove_dir(path: Path | str) -> bool:
    path = Path(path)
    if not path.exists():
        return True
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.error("Failed to remove directory %s: %s", path, exc)
        return False
    logger.debug("Removed directory %s", path)
    return True


def cleanup_stale_dirs(root: Path | str, max_age_seconds: float = 600.0) -> list[Path]:
    """Remove session directories under ``root`` older than ``max_age_seconds``."""

    root = Path(root).expanduser()
    if not root.is_dir():
        return []
    cutoff = time.time() - max_age_seconds
    removed: list[Path] = []
    for candidate in root.glob(f"{SESSION_DIR_PREFIX}*"):
        if not candidate.is_dir():
            continue
        try:
            modified = candidate.stat().st_mtime
        except OSError:
            continue
        if modified < cutoff and remove_dir(candidate):
            removed.append(candidate)
    if removed:
        logger.info("Removed %d stale session directories under %s", len(removed), root)
    return removed
