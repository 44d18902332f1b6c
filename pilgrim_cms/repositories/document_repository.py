"""Repository for the generic (collection, doc_id) document table."""

from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import ContentDocument


class ContentDocumentRepository:
    """Data access layer for content documents."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, collection: str, doc_id: str, for_update: bool = False) -> Optional[ContentDocument]:
        query = self.db.query(ContentDocument).filter(
            ContentDocument.collection == collection,
            ContentDocument.doc_id == doc_id,
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def list_collection(self, collection: str) -> List[ContentDocument]:
        return self.db.query(ContentDocument).filter(
            ContentDocument.collection == collection
        ).order_by(ContentDocument.doc_id).all()

    def upsert(self, collection: str, doc_id: str, data: dict, merge: bool) -> ContentDocument:
        """Create or replace a document; with *merge* top-level keys are combined."""
        doc = self.get(collection, doc_id)
        if doc is None:
            doc = ContentDocument(collection=collection, doc_id=doc_id, data=dict(data))
            self.db.add(doc)
        elif merge:
            # Reassign so the JSON column is flagged dirty.
            doc.data = {**(doc.data or {}), **data}
        else:
            doc.data = dict(data)
        self.db.commit()
        self.db.refresh(doc)
        return doc

    def delete(self, collection: str, doc_id: str) -> bool:
        doc = self.get(collection, doc_id)
        if not doc:
            return False
        self.db.delete(doc)
        self.db.commit()
        return True

    def insert_if_absent(self, collection: str, doc_id: str, data: dict) -> bool:
        """Create a document unless one exists. Returns whether this call created it."""
        self.db.add(ContentDocument(collection=collection, doc_id=doc_id, data=dict(data)))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def increment(self, collection: str, doc_id: str, field_name: str, amount: int) -> int:
        """Add *amount* to an integer field under a row lock and return the new value.

        The row lock covers PostgreSQL only; SQLite ignores ``FOR UPDATE``,
        so callers sharing a SQLite file must serialize this call.
        """
        doc = self.get(collection, doc_id, for_update=True)
        if doc is None:
            if self.insert_if_absent(collection, doc_id, {field_name: amount}):
                return amount
            # Another writer created the row first; count on top of theirs.
            return self.increment(collection, doc_id, field_name, amount)

        current = int((doc.data or {}).get(field_name) or 0)
        doc.data = {**(doc.data or {}), field_name: current + amount}
        self.db.commit()
        return current + amount
