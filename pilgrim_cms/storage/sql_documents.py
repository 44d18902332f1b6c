"""DocumentStore backed by SQLAlchemy (SQLite or PostgreSQL).

Every call opens its own session so the store can be shared by upload
worker threads. Query ordering follows the hosted document store: a
collection ordered by a field only returns records that have that field.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import StoreError
from ..repositories import ContentDocumentRepository

logger = logging.getLogger(__name__)

# Counter read-modify-writes are serialized per process; SQLite has no row locks.
_COUNTER_LOCK = threading.Lock()


class SqlDocumentStore:
    """Collection/document records in the ``content_documents`` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _run(self, action: str, fn: Callable[[ContentDocumentRepository], Any]) -> Any:
        db = self._session_factory()
        try:
            return fn(ContentDocumentRepository(db))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Document store {action} failed: {e}")
            raise StoreError(f"Document store {action} failed", original_error=e) from e
        finally:
            db.close()

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._run("write", lambda repo: repo.upsert(collection, doc_id, data, merge))

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        def _get(repo: ContentDocumentRepository) -> Optional[Dict[str, Any]]:
            doc = repo.get(collection, doc_id)
            return dict(doc.data or {}) if doc else None
        return self._run("read", _get)

    def query(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        rows = self._run(
            "query",
            lambda repo: [(d.doc_id, dict(d.data or {})) for d in repo.list_collection(collection)],
        )
        if order_by is None:
            return rows
        present = [row for row in rows if row[1].get(order_by) is not None]
        return sorted(present, key=lambda row: row[1][order_by], reverse=descending)

    def delete(self, collection: str, doc_id: str) -> None:
        self._run("delete", lambda repo: repo.delete(collection, doc_id))

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> bool:
        with _COUNTER_LOCK:
            return self._run("create", lambda repo: repo.insert_if_absent(collection, doc_id, data))

    def increment(self, collection: str, doc_id: str, field_name: str, amount: int = 1) -> int:
        with _COUNTER_LOCK:
            return self._run("increment", lambda repo: repo.increment(collection, doc_id, field_name, amount))
