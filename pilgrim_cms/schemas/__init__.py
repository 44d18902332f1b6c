"""Pydantic schemas for API validation."""

from .content import (
    FileKind,
    Paragraph,
    ContentDraft,
    ContentUpdate,
    FileRef,
    ContentRecord,
    NextFolderIdResponse,
    AreaResponse,
    StoredFilesResponse,
    DeleteResponse,
    CleanupResponse,
    FileRemovedResponse,
)

__all__ = [
    "FileKind",
    "Paragraph",
    "ContentDraft",
    "ContentUpdate",
    "FileRef",
    "ContentRecord",
    "NextFolderIdResponse",
    "AreaResponse",
    "StoredFilesResponse",
    "DeleteResponse",
    "CleanupResponse",
    "FileRemovedResponse",
]
