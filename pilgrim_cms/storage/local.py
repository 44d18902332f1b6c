"""Local filesystem object store.

Objects are plain files under ``root``; a "folder" exists only while it
holds at least one object, mirroring how bucket stores behave. Writes go
through a hidden temp file and an atomic rename so a half-written upload is
never listed.
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from ..exceptions import StoreError
from .base import ListResult, ProgressCallback, StoredObject

logger = logging.getLogger(__name__)

# Bytes written between progress callbacks.
UPLOAD_CHUNK_SIZE = 256 * 1024


class LocalObjectStore:
    """ObjectStore backed by a directory tree.

    Args:
        root: Directory that holds every object.
        public_base_url: URL prefix under which ``root`` is served.
        chunk_size: Bytes per write (and per progress event).
    """

    def __init__(self, root: str | Path, public_base_url: str, chunk_size: int = UPLOAD_CHUNK_SIZE):
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self.chunk_size = chunk_size
        self.root.mkdir(parents=True, exist_ok=True)

    def _abs(self, rel: str) -> Path:
        """Resolve a store path under root, rejecting traversal."""
        rel = rel.strip("/")
        if ".." in Path(rel).parts or "\\" in rel:
            raise ValueError(f"unsafe storage path: {rel}")
        return self.root / rel if rel else self.root

    def list(self, path: str) -> ListResult:
        base = self._abs(path)
        if not base.is_dir():
            return ListResult()

        prefix = path.strip("/")
        prefixes: list[str] = []
        items: list[str] = []
        try:
            entries = sorted(base.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise StoreError(f"list {prefix} failed", original_error=e) from e
        for entry in entries:
            if entry.name.startswith("."):
                continue
            full = f"{prefix}/{entry.name}" if prefix else entry.name
            if entry.is_dir():
                prefixes.append(full)
            else:
                items.append(full)
        return ListResult(prefixes=prefixes, items=items)

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> StoredObject:
        dest = self._abs(path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(f".{dest.name}.part-{uuid.uuid4().hex}")
        total = len(data)

        if on_progress:
            on_progress(0, total)
        try:
            with open(tmp, "wb") as wf:
                written = 0
                view = memoryview(data)
                while written < total:
                    chunk = view[written:written + self.chunk_size]
                    wf.write(chunk)
                    written += len(chunk)
                    if on_progress:
                        on_progress(written, total)
                wf.flush()
                os.fsync(wf.fileno())
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

        os.replace(tmp, dest)

        logger.debug("Stored object", extra={"path": path, "size_bytes": total})
        return StoredObject(
            path=path.strip("/"),
            size=total,
            url=self.get_download_url(path),
            content_type=content_type,
        )

    def download(self, path: str) -> bytes:
        target = self._abs(path)
        if not target.is_file():
            raise FileNotFoundError(f"object not found: {path}")
        return target.read_bytes()

    def get_download_url(self, path: str) -> str:
        return f"{self.public_base_url}/{quote(path.strip('/'))}"

    def delete(self, path: str) -> None:
        """Delete one object. Missing objects are ignored; emptied folders vanish."""
        target = self._abs(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"delete {path} failed", original_error=e) from e
        self._prune_empty_parents(target.parent)

    def _prune_empty_parents(self, directory: Path) -> None:
        while directory != self.root and self.root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent
