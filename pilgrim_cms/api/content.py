"""Content API: areas, folder ids, commit, edit, listing, delete and file removal.

Single router for all content operations. Delegates to ContentService (deep module).
Create and edit take multipart forms: a ``payload`` field holding the JSON
draft plus ``cover``, ``images``, ``audios`` and ``files`` file parts.
"""

import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..core.areas import list_areas
from ..core.backends import get_content_service
from ..core.config import settings
from ..exceptions import ValidationError
from ..schemas.content import (
    AreaResponse,
    CleanupResponse,
    ContentDraft,
    ContentRecord,
    ContentUpdate,
    DeleteResponse,
    FileKind,
    FileRemovedResponse,
    NextFolderIdResponse,
    StoredFilesResponse,
)
from ..services.content_service import ContentService
from ..services.upload_orchestrator import UploadSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/content", tags=["content"])

# Separate router so the area catalogue sits at /api/areas.
areas_router = APIRouter(tags=["content"])


def _parse_payload(payload: str, model: type[BaseModel]):
    try:
        return model.model_validate_json(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(f"Invalid payload: {first.get('msg')}", field=field) from e


def _to_source(upload: UploadFile, kind: Optional[FileKind]) -> UploadSource:
    return UploadSource(
        filename=upload.filename or "upload",
        data=upload.file.read(),
        content_type=upload.content_type,
        kind=kind,
    )


def _collect_sources(
    images: Optional[List[UploadFile]],
    audios: Optional[List[UploadFile]],
    files: Optional[List[UploadFile]],
) -> List[UploadSource]:
    sources = [_to_source(f, FileKind.IMAGE) for f in images or []]
    sources += [_to_source(f, FileKind.AUDIO) for f in audios or []]
    sources += [_to_source(f, FileKind.FILE) for f in files or []]
    return sources


def _progress_logger(area: str, category: str):
    """Log aggregate batch progress at each quarter."""
    state = {"next": 25}

    def _log(percent: float) -> None:
        while percent >= state["next"]:
            logger.debug(f"Upload progress {area}/{category}: {state['next']}%")
            state["next"] += 25

    return _log


# -- Areas ----------------------------------------------------------------

@areas_router.get("/api/areas", response_model=List[AreaResponse])
def get_areas():
    """List feature areas and their categories."""
    return [
        AreaResponse(
            key=area.key,
            categories=list(area.categories),
            order_field=area.order_field,
            descending=area.descending,
            required_fields=list(area.required_fields),
        )
        for area in list_areas()
    ]


# -- Folder ids -----------------------------------------------------------

@router.get("/{area}/{category}/next-id", response_model=NextFolderIdResponse)
def get_next_folder_id(
    area: str,
    category: str,
    service: ContentService = Depends(get_content_service),
):
    """Folder id the next commit would use."""
    return NextFolderIdResponse(
        area=area,
        category=category,
        folder_id=service.peek_next_id(area, category),
        strategy=service.allocator.strategy.value,
    )


@router.post("/{area}/{category}/next-id/reset", status_code=204)
def reset_next_folder_id(
    area: str,
    category: str,
    service: ContentService = Depends(get_content_service),
):
    """Drop the cached folder id so storage is listed again."""
    service.reset_next_id(area, category)


# -- Pending stubs --------------------------------------------------------

@router.post("/{area}/{category}/pending/cleanup", response_model=CleanupResponse)
def cleanup_pending(
    area: str,
    category: str,
    older_than_minutes: Optional[int] = Query(None, ge=0),
    service: ContentService = Depends(get_content_service),
):
    """Remove pending stubs (and their folders) left by interrupted commits."""
    minutes = settings.pending_max_age_minutes if older_than_minutes is None else older_than_minutes
    removed = service.cleanup_pending(area, category, timedelta(minutes=minutes))
    return CleanupResponse(removed=removed)


# -- Records --------------------------------------------------------------

@router.get("/{area}/{category}", response_model=List[ContentRecord])
def list_content(
    area: str,
    category: str,
    include_pending: bool = Query(False),
    service: ContentService = Depends(get_content_service),
):
    """List records in the area's display order."""
    return service.list(area, category, include_pending=include_pending)


@router.post("/{area}/{category}", response_model=ContentRecord, status_code=201)
def create_content(
    area: str,
    category: str,
    payload: str = Form("{}"),
    cover: Optional[UploadFile] = File(None),
    images: Optional[List[UploadFile]] = File(None),
    audios: Optional[List[UploadFile]] = File(None),
    files: Optional[List[UploadFile]] = File(None),
    service: ContentService = Depends(get_content_service),
):
    """Allocate a folder, upload every file, then write the record."""
    draft = _parse_payload(payload, ContentDraft)
    return service.create(
        area,
        category,
        draft,
        cover=_to_source(cover, None) if cover else None,
        uploads=_collect_sources(images, audios, files),
        on_progress=_progress_logger(area, category),
    )


@router.get("/{area}/{category}/{folder_id}", response_model=ContentRecord)
def get_content(
    area: str,
    category: str,
    folder_id: int,
    service: ContentService = Depends(get_content_service),
):
    return service.get(area, category, folder_id)


@router.get("/{area}/{category}/{folder_id}/files", response_model=StoredFilesResponse)
def get_stored_files(
    area: str,
    category: str,
    folder_id: int,
    service: ContentService = Depends(get_content_service),
):
    """Uploaded files of one item grouped by kind."""
    return service.list_stored_files(area, category, folder_id)


@router.patch("/{area}/{category}/{folder_id}", response_model=ContentRecord)
def update_content(
    area: str,
    category: str,
    folder_id: int,
    payload: str = Form("{}"),
    cover: Optional[UploadFile] = File(None),
    images: Optional[List[UploadFile]] = File(None),
    audios: Optional[List[UploadFile]] = File(None),
    files: Optional[List[UploadFile]] = File(None),
    service: ContentService = Depends(get_content_service),
):
    """Replace supplied fields and append any new files."""
    changes = _parse_payload(payload, ContentUpdate)
    return service.update(
        area,
        category,
        folder_id,
        changes,
        cover=_to_source(cover, None) if cover else None,
        uploads=_collect_sources(images, audios, files),
        on_progress=_progress_logger(area, category),
    )


@router.delete("/{area}/{category}/{folder_id}", response_model=DeleteResponse)
def delete_content(
    area: str,
    category: str,
    folder_id: int,
    service: ContentService = Depends(get_content_service),
):
    """Delete the record, then clean up its storage folder best-effort."""
    result = service.delete(area, category, folder_id)
    return DeleteResponse(
        folder_id=result.folder_id,
        objects_deleted=result.objects_deleted,
        storage_errors=result.storage_errors,
    )


@router.delete("/{area}/{category}/{folder_id}/files", response_model=FileRemovedResponse)
def remove_stored_file(
    area: str,
    category: str,
    folder_id: int,
    path: str = Query(..., description="Storage path of the file to remove"),
    service: ContentService = Depends(get_content_service),
):
    """Delete one file of an item and drop it from the record."""
    removal = service.remove_file(area, category, folder_id, path)
    return FileRemovedResponse(
        path=removal.path,
        object_deleted=removal.object_deleted,
        record=removal.record,
    )
