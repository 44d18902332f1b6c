"""Object and document store adapters."""

from .base import DocumentStore, ListResult, ObjectStore, StoredObject
from .local import LocalObjectStore
from .sql_documents import SqlDocumentStore
from .firebase import FirebaseStorageStore, FirestoreDocumentStore

__all__ = [
    "DocumentStore",
    "ListResult",
    "ObjectStore",
    "StoredObject",
    "LocalObjectStore",
    "SqlDocumentStore",
    "FirebaseStorageStore",
    "FirestoreDocumentStore",
]
