"""Shared test fixtures for the content service test suite.

API tests run against the local backends: a SQLite document store and a
filesystem object store, both in a temporary directory created before any
app import. Each test starts with empty tables and an empty storage root.
Service-level tests use the in-memory stores from ``tests/fakes.py``.
"""

import os
import shutil
import tempfile
from pathlib import Path

_TEST_DIR = Path(tempfile.mkdtemp(prefix="pilgrim_cms_test_"))
_STORAGE_ROOT = _TEST_DIR / "storage"

# Local backends and plain-text logs before any app imports.
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'test.db'}"
os.environ["OBJECT_STORE_ROOT"] = str(_STORAGE_ROOT)
os.environ["PUBLIC_BASE_URL"] = "http://testserver/files"
os.environ["CONTENT_BACKEND"] = "local"
os.environ["RECORD_BACKEND"] = "document"
os.environ["ALLOCATOR_STRATEGY"] = "listing"
os.environ["COMMIT_POLICY"] = "none"
os.environ["LOG_FORMAT"] = "text"

import pytest
from fastapi.testclient import TestClient

from pilgrim_cms.core.backends import reset_backends
from pilgrim_cms.database import SessionLocal, init_db
from pilgrim_cms.main import app
from pilgrim_cms.models import ContentDocument
from pilgrim_cms.services.content_service import ContentService
from pilgrim_cms.services.folder_allocator import FolderAllocator
from pilgrim_cms.services.record_store import DocumentRecordStore
from pilgrim_cms.services.upload_orchestrator import UploadOrchestrator
from tests.fakes import InMemoryDocumentStore, InMemoryObjectStore

init_db()


@pytest.fixture(autouse=True)
def _clean_state():
    """Empty the records table and the storage root before each test."""
    db = SessionLocal()
    try:
        db.query(ContentDocument).delete()
        db.commit()
    finally:
        db.close()
    shutil.rmtree(_STORAGE_ROOT, ignore_errors=True)
    _STORAGE_ROOT.mkdir(parents=True)
    reset_backends()
    yield


@pytest.fixture()
def storage_root() -> Path:
    return _STORAGE_ROOT


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture()
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def service(object_store, document_store) -> ContentService:
    """ContentService over the in-memory stores with default policies."""
    return ContentService(
        object_store=object_store,
        record_store=DocumentRecordStore(document_store),
        allocator=FolderAllocator(object_store),
        orchestrator=UploadOrchestrator(object_store, max_workers=4),
    )

