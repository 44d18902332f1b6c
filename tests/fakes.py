"""In-memory stores for service-level tests.

``InMemoryObjectStore`` can pause an upload at a given byte fraction and
fail chosen paths, so tests can observe progress mid-flight and force
partial commits.
"""

import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from pilgrim_cms.exceptions import StoreError
from pilgrim_cms.services.upload_orchestrator import UploadSource
from pilgrim_cms.storage.base import ListResult, ProgressCallback, StoredObject

BASE_URL = "https://files.test"


class InMemoryObjectStore:
    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.list_calls: List[str] = []
        self.fail_list = False
        self.fail_delete = False
        self.fail_uploads: Dict[str, Exception] = {}
        # name substring -> hook(path, on_progress, total) called before completion
        self.hooks: Dict[str, Callable[[str, Optional[ProgressCallback], int], None]] = {}
        self._lock = threading.Lock()

    def add(self, path: str, data: bytes = b"x") -> None:
        self.objects[path] = data

    def list(self, path: str) -> ListResult:
        self.list_calls.append(path)
        if self.fail_list:
            raise StoreError(f"list {path} failed")
        prefix = f"{path.strip('/')}/"
        prefixes, items = set(), []
        with self._lock:
            paths = sorted(self.objects)
        for full in paths:
            if not full.startswith(prefix):
                continue
            rest = full[len(prefix):]
            if "/" in rest:
                prefixes.add(prefix + rest.split("/", 1)[0])
            else:
                items.append(full)
        return ListResult(prefixes=sorted(prefixes), items=items)

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> StoredObject:
        total = len(data)
        if on_progress:
            on_progress(0, total)
        for marker, hook in self.hooks.items():
            if marker in path:
                hook(path, on_progress, total)
        for marker, error in self.fail_uploads.items():
            if marker in path:
                raise error
        if on_progress:
            on_progress(total, total)
        with self._lock:
            self.objects[path] = data
        return StoredObject(path=path, size=total, url=self.get_download_url(path), content_type=content_type)

    def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise FileNotFoundError(path)
        return self.objects[path]

    def get_download_url(self, path: str) -> str:
        return f"{BASE_URL}/{path}"

    def delete(self, path: str) -> None:
        if self.fail_delete:
            raise StoreError(f"delete {path} failed")
        with self._lock:
            self.objects.pop(path, None)


class InMemoryDocumentStore:
    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.writes: List[Tuple[str, str, Dict[str, Any]]] = []
        self.fail_set = False
        # raised by set() instead of the generic StoreError when given
        self.set_error: Optional[Exception] = None
        self.fail_delete = False
        self._lock = threading.Lock()

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        if self.set_error is not None:
            raise self.set_error
        if self.fail_set:
            raise StoreError(f"write {collection}/{doc_id} failed")
        with self._lock:
            docs = self.collections.setdefault(collection, {})
            current = docs.get(doc_id, {}) if merge else {}
            docs[doc_id] = {**current, **data}
            self.writes.append((collection, doc_id, dict(data)))

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self.collections.get(collection, {}).get(doc_id)
        return dict(doc) if doc is not None else None

    def query(self, collection: str, order_by: Optional[str] = None, descending: bool = False):
        rows = [(k, dict(v)) for k, v in self.collections.get(collection, {}).items()]
        if order_by:
            rows = [r for r in rows if r[1].get(order_by) is not None]
            rows.sort(key=lambda r: r[1][order_by], reverse=descending)
        return rows

    def delete(self, collection: str, doc_id: str) -> None:
        if self.fail_delete:
            raise StoreError(f"delete {collection}/{doc_id} failed")
        with self._lock:
            self.collections.get(collection, {}).pop(doc_id, None)

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> bool:
        if self.fail_set:
            raise StoreError(f"create {collection}/{doc_id} failed")
        with self._lock:
            docs = self.collections.setdefault(collection, {})
            if doc_id in docs:
                return False
            docs[doc_id] = dict(data)
            self.writes.append((collection, doc_id, dict(data)))
            return True

    def increment(self, collection: str, doc_id: str, field_name: str, amount: int = 1) -> int:
        with self._lock:
            doc = self.collections.setdefault(collection, {}).setdefault(doc_id, {})
            doc[field_name] = int(doc.get(field_name, 0)) + amount
            return doc[field_name]


def make_source(
    filename: str = "photo.JPG",
    content_type: Optional[str] = "image/jpeg",
    data: bytes = b"0123456789",
    kind=None,
) -> UploadSource:
    """Factory for upload sources."""
    return UploadSource(filename=filename, data=data, content_type=content_type, kind=kind)
