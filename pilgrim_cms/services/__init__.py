"""Business logic services."""

from .content_service import ContentService
from .folder_allocator import FolderAllocator
from .record_store import BlobRecordStore, DocumentRecordStore
from .upload_orchestrator import UploadOrchestrator, UploadSource

__all__ = [
    "ContentService",
    "FolderAllocator",
    "BlobRecordStore",
    "DocumentRecordStore",
    "UploadOrchestrator",
    "UploadSource",
]
