"""Where content records live.

``DocumentRecordStore`` keeps one document per folder id in the area's
collection. ``BlobRecordStore`` keeps the record as a JSON object inside the
item's own storage folder, the layout some screens used before records
moved to the document store. One of the two is chosen at start-up for every
area.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..core.areas import ContentArea
from ..exceptions import StoreError
from ..storage.base import DocumentStore, ObjectStore, leaf_name

logger = logging.getLogger(__name__)

RecordRow = Tuple[str, Dict[str, Any]]


class DocumentRecordStore:
    """Records as ``{collection}/{folder_id}`` documents."""

    def __init__(self, document_store: DocumentStore):
        self.document_store = document_store

    def save(self, area: ContentArea, category: str, folder_id: int, data: Dict[str, Any], merge: bool = True) -> None:
        self.document_store.set(area.collection(category), str(folder_id), data, merge=merge)

    def load(self, area: ContentArea, category: str, folder_id: int) -> Optional[Dict[str, Any]]:
        return self.document_store.get(area.collection(category), str(folder_id))

    def list_all(self, area: ContentArea, category: str) -> List[RecordRow]:
        return self.document_store.query(area.collection(category))

    def delete(self, area: ContentArea, category: str, folder_id: int) -> None:
        self.document_store.delete(area.collection(category), str(folder_id))


class BlobRecordStore:
    """Records as ``{prefix}/{folder_id}/{blob_name}.json`` objects."""

    def __init__(self, object_store: ObjectStore):
        self.object_store = object_store

    def save(self, area: ContentArea, category: str, folder_id: int, data: Dict[str, Any], merge: bool = True) -> None:
        record = dict(data)
        if merge:
            existing = self.load(area, category, folder_id)
            if existing:
                record = {**existing, **data}
        body = json.dumps(record, ensure_ascii=False).encode("utf-8")
        self.object_store.upload(area.blob_path(category, folder_id), body, "application/json")

    def load(self, area: ContentArea, category: str, folder_id: int) -> Optional[Dict[str, Any]]:
        path = area.blob_path(category, folder_id)
        listing = self._list(area.folder_path(category, folder_id))
        if path not in listing.items:
            return None
        return self._read(path)

    def list_all(self, area: ContentArea, category: str) -> List[RecordRow]:
        rows: List[RecordRow] = []
        for folder in self._list(area.storage_prefix(category)).prefixes:
            folder_id = leaf_name(folder)
            path = f"{folder}/{area.blob_name}.json"
            if path not in self._list(folder).items:
                continue
            rows.append((folder_id, self._read(path)))
        return rows

    def delete(self, area: ContentArea, category: str, folder_id: int) -> None:
        path = area.blob_path(category, folder_id)
        try:
            self.object_store.delete(path)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"delete {path} failed", original_error=e) from e

    def _list(self, path: str):
        try:
            return self.object_store.list(path)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"list {path} failed", original_error=e) from e

    def _read(self, path: str) -> Dict[str, Any]:
        try:
            return json.loads(self.object_store.download(path).decode("utf-8"))
        except StoreError:
            raise
        except Exception as e:
            logger.error(f"Error reading record blob {path}: {e}")
            raise StoreError(f"read {path} failed", original_error=e) from e
