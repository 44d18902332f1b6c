"""Store interfaces consumed by the commit protocol.

Two collaborators sit behind these protocols:

- ObjectStore: hierarchical paths (``a/b/c.ext``), immediate-children
  listing, resumable uploads with byte progress, download URLs, deletes.
- DocumentStore: (collection, document id) addressed records with
  merge-writes, create-if-absent, ordered collection queries and an atomic
  counter.

Implementations live in ``local.py``, ``sql_documents.py`` and ``firebase.py``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, runtime_checkable

# on_progress(bytes_transferred, total_bytes)
ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class StoredObject:
    """Result of a finished upload."""

    path: str
    size: int
    url: str
    content_type: Optional[str] = None


@dataclass(frozen=True)
class ListResult:
    """Immediate children of a path.

    Attributes:
        prefixes: Full paths of sub-folders (no trailing slash).
        items: Full paths of leaf objects directly under the path.
    """

    prefixes: List[str] = field(default_factory=list)
    items: List[str] = field(default_factory=list)


def leaf_name(path: str) -> str:
    """Last segment of a store path."""
    return path.rstrip("/").rsplit("/", 1)[-1]


@runtime_checkable
class ObjectStore(Protocol):
    """Hierarchical object storage."""

    def list(self, path: str) -> ListResult:
        """List sub-folders and objects directly under *path*.

        A path with nothing under it lists as empty rather than failing.
        """
        ...

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> StoredObject:
        """Store *data* at *path*, reporting byte progress as it goes.

        Raises on transfer failure; a returned object is a terminal success.
        """
        ...

    def download(self, path: str) -> bytes:
        ...

    def get_download_url(self, path: str) -> str:
        ...

    def delete(self, path: str) -> None:
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """Collection/document record storage."""

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        """Write a record. With ``merge`` top-level fields are combined with the stored ones."""
        ...

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    def query(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """All records of a collection as ``(doc_id, data)`` pairs."""
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> bool:
        """Write a record only if none exists. Returns whether this call created it."""
        ...

    def increment(self, collection: str, doc_id: str, field_name: str, amount: int = 1) -> int:
        """Atomically add *amount* to an integer field and return the new value."""
        ...
