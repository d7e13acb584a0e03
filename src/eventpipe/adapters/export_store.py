"""Filesystem export store.

Writes each export to a temporary file, fsyncs it and renames it into
place, so a reader never observes a partially written export.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def _write_atomic(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    with open(tmp, "wb") as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


class LocalExportStore:
    """Stores exports below *root* and returns ``file://`` URLs."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    async def put(self, key: str, content: bytes, *, content_type: str) -> str:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            raise ValueError(f"Export key escapes the export root: {key!r}")

        await asyncio.to_thread(_write_atomic, path, content)
        logger.info("Stored export %s (%s, %d bytes)", key, content_type, len(content))
        return path.as_uri()
