"""Store and service wiring, built once per process from settings.

``CONTENT_BACKEND=firebase`` with an incomplete or placeholder Firebase
configuration falls back to the local stores and marks the process as
degraded instead of refusing to start.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from ..database import SessionLocal
from ..exceptions import ConfigurationError
from ..services.content_service import ContentService
from ..services.folder_allocator import FolderAllocator
from ..services.record_store import BlobRecordStore, DocumentRecordStore
from ..services.upload_orchestrator import UploadOrchestrator
from ..storage.base import DocumentStore, ObjectStore
from ..storage.firebase import FirebaseStorageStore, FirestoreDocumentStore
from ..storage.local import LocalObjectStore
from ..storage.sql_documents import SqlDocumentStore
from .config import ContentBackend, RecordBackend, Settings, settings
from .identity import AnonymousIdentity

logger = logging.getLogger(__name__)


@dataclass
class Backends:
    backend: ContentBackend
    object_store: ObjectStore
    document_store: DocumentStore
    content_service: ContentService
    identity: Optional[AnonymousIdentity] = None
    http_client: Optional[httpx.Client] = None
    degraded: List[str] = field(default_factory=list)

    def close(self) -> None:
        if self.http_client is not None:
            self.http_client.close()


def check_firebase_config(cfg: Settings) -> None:
    """Raise ConfigurationError when any Firebase key is empty or a placeholder."""
    missing = cfg.missing_firebase_keys()
    if missing:
        raise ConfigurationError(
            "Firebase not properly configured. Please check your .env file and ensure all values are set correctly.",
            missing=missing,
        )


def build_backends(cfg: Settings) -> Backends:
    degraded: List[str] = []
    identity: Optional[AnonymousIdentity] = None
    http_client: Optional[httpx.Client] = None
    backend = cfg.content_backend

    if backend == ContentBackend.FIREBASE:
        try:
            check_firebase_config(cfg)
        except ConfigurationError as e:
            logger.error(f"{e.message} Falling back to local stores.", extra=e.details)
            degraded.append(f"firebase configuration incomplete: {', '.join(e.details['missing'])}")
            backend = ContentBackend.LOCAL

    if backend == ContentBackend.FIREBASE:
        http_client = httpx.Client(timeout=cfg.http_timeout)
        identity = AnonymousIdentity(cfg.firebase_api_key, http_client)
        object_store: ObjectStore = FirebaseStorageStore(cfg.firebase_storage_bucket, http_client, identity)
        document_store: DocumentStore = FirestoreDocumentStore(cfg.firebase_project_id, http_client, identity)
    else:
        object_store = LocalObjectStore(cfg.object_store_root, cfg.public_base_url)
        document_store = SqlDocumentStore(SessionLocal)

    if cfg.record_backend == RecordBackend.BLOB:
        record_store = BlobRecordStore(object_store)
    else:
        record_store = DocumentRecordStore(document_store)

    service = ContentService(
        object_store=object_store,
        record_store=record_store,
        allocator=FolderAllocator(object_store, document_store, cfg.allocator_strategy),
        orchestrator=UploadOrchestrator(object_store, max_workers=cfg.upload_max_workers),
        commit_policy=cfg.commit_policy,
        write_back_reference=cfg.write_back_reference,
    )
    logger.info(
        f"Content backend: {backend.value}",
        extra={
            "record_backend": cfg.record_backend.value,
            "allocator": cfg.allocator_strategy.value,
            "commit_policy": cfg.commit_policy.value,
        },
    )
    return Backends(
        backend=backend,
        object_store=object_store,
        document_store=document_store,
        content_service=service,
        identity=identity,
        http_client=http_client,
        degraded=degraded,
    )


_backends: Optional[Backends] = None
_backends_lock = threading.Lock()


def get_backends() -> Backends:
    global _backends
    with _backends_lock:
        if _backends is None:
            _backends = build_backends(settings)
        return _backends


def reset_backends() -> None:
    """Close and forget the process-wide backends; the next call rebuilds them."""
    global _backends
    with _backends_lock:
        if _backends is not None:
            _backends.close()
        _backends = None


def get_content_service() -> ContentService:
    """FastAPI dependency."""
    return get_backends().content_service
