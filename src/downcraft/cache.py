"""Content-addressed OCR result cache.

Entries are keyed by the MD5 digest of the exact image bytes, so identical
images share an entry across documents and runs. Each entry lives in its own
``<digest>.json`` file holding ``{"text": ...}``. Entries are written once and
never rewritten.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path

__all__ = ["DEFAULT_CACHE_DIR", "OCRCache", "key_for"]

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path(".ocr-cache")


def key_for(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class OCRCache:
    """Flat JSON-file store mapping image digests to recognised text."""

    def __init__(self, directory: Path | str = DEFAULT_CACHE_DIR):
        self.directory = Path(directory).expanduser()

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, data: bytes) -> str | None:
        return self.get_by_key(key_for(data))

    def get_by_key(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.debug("Ignoring unreadable cache entry %s: %s", path, exc)
            return None
        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            return None
        logger.debug("OCR cache hit %s", key)
        return text

    def put(self, data: bytes, text: str) -> None:
        self.put_by_key(key_for(data), text)

    def put_by_key(self, key: str, text: str) -> None:
        path = self.path_for(key)
        if path.exists():
            return
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump({"text": text}, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("OCR cache stored %s", key)

    def __contains__(self, data: bytes) -> bool:
        return self.path_for(key_for(data)).exists()
