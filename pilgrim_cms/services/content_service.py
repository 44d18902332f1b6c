"""Deep module for the content commit protocol and its read/delete paths.

A commit allocates a folder id for the (area, category), uploads the cover
image and then the remaining files into ``{prefix}/{folder_id}/``, and only
after every upload succeeded writes one record for that folder id. The
allocator is advanced only once the record is saved. Uploads are never
rolled back: a failed commit can leave objects in storage with no record,
and the error says which.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import unquote, urlsplit

from ..core.areas import ContentArea, get_area
from ..core.config import CommitPolicy
from ..exceptions import (
    ContentNotFoundError,
    MetadataCommitFailedError,
    StoredFileNotFoundError,
    UploadFailedError,
    ValidationError,
)
from ..schemas.content import (
    ContentDraft,
    ContentRecord,
    ContentUpdate,
    FileKind,
    Paragraph,
    StoredFilesResponse,
)
from ..storage.base import ObjectStore
from .content_utils import BACK_REFERENCE_NAME, group_legacy_paths
from .folder_allocator import FolderAllocator
from .record_store import DocumentRecordStore
from .upload_orchestrator import AggregateListener, UploadedFile, UploadOrchestrator, UploadSource

logger = logging.getLogger(__name__)

STATUS_COMPLETE = "complete"
STATUS_PENDING = "pending"

# Stored field holding each kind's URL list.
KIND_FIELDS = {FileKind.IMAGE: "images", FileKind.AUDIO: "audios", FileKind.FILE: "files"}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """ISO-8601 in UTC with milliseconds and a ``Z`` suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def url_points_at(url: str, path: str) -> bool:
    """Whether a download URL addresses the object at *path*."""
    return unquote(urlsplit(url).path).endswith(f"/{path}")


@dataclass
class DeleteResult:
    folder_id: int
    objects_deleted: int = 0
    storage_errors: int = 0


@dataclass
class FileRemoval:
    path: str
    object_deleted: bool
    record: ContentRecord


class ContentService:
    """Create, edit, read, list and delete content items.

    Public methods:
        create             -- allocate, upload, then write the record
        update             -- upload more files and merge field changes
        get                -- one record by folder id
        list               -- records of a category in display order
        delete             -- record first, then best-effort storage cleanup
        remove_file        -- delete one stored file and prune it from the record
        list_stored_files  -- uploaded file URLs grouped by kind
        peek_next_id       -- folder id the next commit would use
        reset_next_id      -- drop the cached id so storage is re-read
        cleanup_pending    -- remove stale stubs left by interrupted commits
    """

    def __init__(
        self,
        object_store: ObjectStore,
        record_store: DocumentRecordStore,
        allocator: FolderAllocator,
        orchestrator: UploadOrchestrator,
        commit_policy: CommitPolicy = CommitPolicy.NONE,
        write_back_reference: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.object_store = object_store
        self.record_store = record_store
        self.allocator = allocator
        self.orchestrator = orchestrator
        self.commit_policy = commit_policy
        self.write_back_reference = write_back_reference
        self.clock = clock

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def create(
        self,
        area_key: str,
        category: str,
        draft: ContentDraft,
        cover: Optional[UploadSource] = None,
        uploads: Sequence[UploadSource] = (),
        on_progress: Optional[AggregateListener] = None,
    ) -> ContentRecord:
        """Commit a new content item.

        Raises:
            UnknownAreaError: The (area, category) pair is not configured.
            ValidationError: Required fields are missing or a file's declared
                kind contradicts its content type. Nothing is touched.
            AllocatorUnavailableError: No folder id could be determined.
            UploadFailedError: A file failed; no record is written.
            MetadataCommitFailedError: Files uploaded but the record write
                failed; the uploaded paths are reported as orphaned.
        """
        area = get_area(area_key, category)
        draft = draft.cleaned()
        self._validate_draft(area, draft)
        self._validate_sources(cover, uploads)

        prefix = area.storage_prefix(category)
        folder_id = self.allocator.next_folder_id(prefix)
        folder = area.folder_path(category, folder_id)
        now = self.clock()
        timestamp = to_iso(now)

        if self.commit_policy == CommitPolicy.PENDING_STUB:
            self.record_store.save(area, category, folder_id, {
                "category": category,
                "folderId": folder_id,
                "timestamp": timestamp,
                "status": STATUS_PENDING,
            })

        cover_file, files = self._upload(folder, cover, uploads, now, on_progress)

        data: Dict[str, Any] = {
            "name": draft.name,
            "description": draft.description,
            "paragraphs": [p.model_dump() for p in draft.paragraphs],
            "content_image": cover_file.url if cover_file else None,
            "category": category,
            "timestamp": timestamp,
            "folderId": folder_id,
            "status": STATUS_COMPLETE,
            **self._file_fields({}, files),
        }
        for field_name in ("location_link", "date", "order"):
            value = getattr(draft, field_name)
            if value is not None:
                data[field_name] = value

        self._commit_record(area, category, folder_id, data, cover_file, files)
        self.allocator.mark_committed(prefix, folder_id)
        logger.info(
            "Content committed",
            extra={"collection": area.collection(category), "folder_id": folder_id, "files": len(files)},
        )
        return ContentRecord.from_document(area.key, category, str(folder_id), data)

    def update(
        self,
        area_key: str,
        category: str,
        folder_id: int,
        changes: ContentUpdate,
        cover: Optional[UploadSource] = None,
        uploads: Sequence[UploadSource] = (),
        on_progress: Optional[AggregateListener] = None,
    ) -> ContentRecord:
        """Edit an item: replace supplied fields, append new files, keep the timestamp."""
        area = get_area(area_key, category)
        existing = self.record_store.load(area, category, folder_id)
        if existing is None:
            raise ContentNotFoundError(area.collection(category), folder_id)

        data = self._cleaned_changes(area, changes)
        self._validate_sources(cover, uploads)

        now = self.clock()
        cover_file, files = self._upload(
            area.folder_path(category, folder_id), cover, uploads, now, on_progress
        )
        if cover_file:
            data["content_image"] = cover_file.url
        data.update(self._file_fields(existing, files))
        data["updated_at"] = to_iso(now)
        data["status"] = STATUS_COMPLETE

        self._commit_record(area, category, folder_id, data, cover_file, files)
        logger.info(
            "Content updated",
            extra={"collection": area.collection(category), "folder_id": folder_id, "files": len(files)},
        )
        return ContentRecord.from_document(area.key, category, str(folder_id), {**existing, **data})

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, area_key: str, category: str, folder_id: int) -> ContentRecord:
        area = get_area(area_key, category)
        data = self.record_store.load(area, category, folder_id)
        if data is None:
            raise ContentNotFoundError(area.collection(category), folder_id)
        return ContentRecord.from_document(area.key, category, str(folder_id), data)

    def list(self, area_key: str, category: str, include_pending: bool = False) -> List[ContentRecord]:
        """Records of a category in the area's display order.

        Timestamp-ordered areas list newest first. Order-field areas list by
        ascending ``order``; records without one come last, and equal orders
        fall back to newest first.
        """
        area = get_area(area_key, category)
        records = [
            ContentRecord.from_document(area.key, category, doc_id, data)
            for doc_id, data in self.record_store.list_all(area, category)
        ]
        if not include_pending:
            records = [r for r in records if r.status != STATUS_PENDING]

        records.sort(key=lambda r: r.timestamp or "", reverse=True)
        if area.order_field == "order":
            records.sort(key=lambda r: (r.order is None, r.order or 0))
        return records

    def list_stored_files(self, area_key: str, category: str, folder_id: int) -> StoredFilesResponse:
        """Uploaded file URLs of one item grouped by kind.

        Kinds recorded at upload time win. Older records without them fall
        back to classifying the folder's object names.
        """
        area = get_area(area_key, category)
        data = self.record_store.load(area, category, folder_id)
        if data is None:
            raise ContentNotFoundError(area.collection(category), folder_id)

        refs = data.get("file_refs")
        if refs:
            grouped: Dict[str, List[str]] = {name: [] for name in KIND_FIELDS.values()}
            for ref in refs:
                grouped[KIND_FIELDS[FileKind(ref["kind"])]].append(ref["url"])
            return StoredFilesResponse(**grouped, source="record")

        listing = self.object_store.list(area.folder_path(category, folder_id))
        groups = group_legacy_paths(listing.items, ignore=(f"{area.blob_name}.json",))
        return StoredFilesResponse(
            images=[self.object_store.get_download_url(p) for p in groups[FileKind.IMAGE]],
            audios=[self.object_store.get_download_url(p) for p in groups[FileKind.AUDIO]],
            files=[self.object_store.get_download_url(p) for p in groups[FileKind.FILE]],
            source="storage",
        )

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def peek_next_id(self, area_key: str, category: str) -> int:
        area = get_area(area_key, category)
        return self.allocator.peek_folder_id(area.storage_prefix(category))

    def reset_next_id(self, area_key: str, category: str) -> None:
        area = get_area(area_key, category)
        self.allocator.reset(area.storage_prefix(category))

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, area_key: str, category: str, folder_id: int) -> DeleteResult:
        """Delete an item's record, then whatever is left in its folder.

        The record delete must succeed or the call raises. Storage cleanup
        covers the folder and one level of sub-folders; its failures are
        logged and counted, never raised. An empty or missing folder is fine.
        """
        area = get_area(area_key, category)
        self.record_store.delete(area, category, folder_id)
        logger.info(
            "Content record deleted",
            extra={"collection": area.collection(category), "folder_id": folder_id},
        )

        result = DeleteResult(folder_id=folder_id)
        folder = area.folder_path(category, folder_id)
        listing = self._list_quietly(folder, result)
        if listing is None:
            return result
        self._delete_objects(listing.items, result)
        for sub_folder in listing.prefixes:
            sub_listing = self._list_quietly(sub_folder, result)
            if sub_listing is not None:
                self._delete_objects(sub_listing.items, result)

        if result.storage_errors:
            logger.warning(
                f"Storage cleanup left {result.storage_errors} errors",
                extra={"folder": folder, "deleted": result.objects_deleted},
            )
        return result

    def remove_file(self, area_key: str, category: str, folder_id: int, path: str) -> FileRemoval:
        """Remove one stored file from an item.

        The object is deleted best-effort. Its URL is then pruned from the
        item's URL lists and file refs in one merge write, whether or not the
        storage delete worked. If the file is the cover, the cover URL is
        cleared.

        Raises:
            ContentNotFoundError: No record for the folder id.
            StoredFileNotFoundError: *path* is outside the item's folder or
                the record does not reference it.
        """
        area = get_area(area_key, category)
        collection = area.collection(category)
        existing = self.record_store.load(area, category, folder_id)
        if existing is None:
            raise ContentNotFoundError(collection, folder_id)

        path = path.strip("/")
        if not path.startswith(f"{area.folder_path(category, folder_id)}/"):
            raise StoredFileNotFoundError(collection, folder_id, path)

        refs = list(existing.get("file_refs") or [])
        kept_refs = [ref for ref in refs if ref.get("path") != path]
        ref_urls = {ref.get("url") for ref in refs if ref.get("path") == path}

        def _matches(url: str) -> bool:
            return url in ref_urls or url_points_at(url, path)

        data: Dict[str, Any] = {}
        for name in KIND_FIELDS.values():
            current = list(existing.get(name) or [])
            kept = [url for url in current if not _matches(url)]
            if len(kept) != len(current):
                data[name] = kept
        cover = existing.get("content_image")
        if cover and _matches(cover):
            data["content_image"] = None
        if not data and len(kept_refs) == len(refs):
            raise StoredFileNotFoundError(collection, folder_id, path)

        object_deleted = True
        try:
            self.object_store.delete(path)
        except Exception as e:
            object_deleted = False
            logger.error(f"Error deleting {path}: {e}")

        data["file_refs"] = kept_refs
        data["updated_at"] = to_iso(self.clock())
        self.record_store.save(area, category, folder_id, data, merge=True)
        logger.info(
            "Removed file from content",
            extra={"collection": collection, "folder_id": folder_id, "path": path},
        )
        return FileRemoval(
            path=path,
            object_deleted=object_deleted,
            record=ContentRecord.from_document(area.key, category, str(folder_id), {**existing, **data}),
        )

    def cleanup_pending(self, area_key: str, category: str, older_than: timedelta) -> List[int]:
        """Delete pending stubs older than *older_than* together with their folders."""
        area = get_area(area_key, category)
        cutoff = self.clock() - older_than
        removed: List[int] = []
        for doc_id, data in self.record_store.list_all(area, category):
            if data.get("status") != STATUS_PENDING:
                continue
            stamp = data.get("timestamp")
            if stamp and from_iso(stamp) > cutoff:
                continue
            folder_id = int(data.get("folderId") or doc_id)
            self.delete(area_key, category, folder_id)
            removed.append(folder_id)
        if removed:
            logger.info(f"Removed {len(removed)} pending stubs", extra={"collection": area.collection(category)})
        return sorted(removed)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _upload(
        self,
        folder: str,
        cover: Optional[UploadSource],
        uploads: Sequence[UploadSource],
        now: datetime,
        on_progress: Optional[AggregateListener],
    ):
        epoch_millis = int(now.timestamp() * 1000)
        cover_file = self.orchestrator.upload_cover(folder, cover, epoch_millis) if cover else None
        try:
            files = self.orchestrator.upload_batch(folder, uploads, epoch_millis, on_progress)
        except UploadFailedError as e:
            if cover_file:
                e.details["uploaded"] = [cover_file.path, *e.details.get("uploaded", [])]
            raise
        return cover_file, files

    def _commit_record(
        self,
        area: ContentArea,
        category: str,
        folder_id: int,
        data: Dict[str, Any],
        cover_file: Optional[UploadedFile],
        files: List[UploadedFile],
    ) -> None:
        uploaded_paths = ([cover_file.path] if cover_file else []) + [f.path for f in files]
        try:
            self.record_store.save(area, category, folder_id, data, merge=True)
        except Exception as e:
            logger.error(
                f"Error saving metadata: {e}",
                extra={"collection": area.collection(category), "folder_id": folder_id},
            )
            raise MetadataCommitFailedError(
                area.collection(category), folder_id, uploaded_paths, original_error=e
            ) from e

        if self.write_back_reference and uploaded_paths:
            self._write_back_reference(area, category, folder_id)

    def _write_back_reference(self, area: ContentArea, category: str, folder_id: int) -> None:
        path = f"{area.folder_path(category, folder_id)}/{BACK_REFERENCE_NAME}"
        body = json.dumps({
            "hasContent": True,
            "firestoreCollection": area.collection(category),
            "firestoreDocId": str(folder_id),
        }).encode("utf-8")
        try:
            self.object_store.upload(path, body, "application/json")
        except Exception as e:
            logger.warning(f"Could not write back-reference {path}: {e}")

    @staticmethod
    def _file_fields(existing: Dict[str, Any], files: List[UploadedFile]) -> Dict[str, Any]:
        """URL lists and file refs with *files* appended to what is already stored."""
        fields: Dict[str, Any] = {
            name: list(existing.get(name) or []) for name in KIND_FIELDS.values()
        }
        refs = list(existing.get("file_refs") or [])
        for f in files:
            fields[KIND_FIELDS[f.kind]].append(f.url)
            refs.append({"kind": f.kind.value, "path": f.path, "url": f.url, "name": f.source.filename})
        fields["file_refs"] = refs
        return fields

    def _cleaned_changes(self, area: ContentArea, changes: ContentUpdate) -> Dict[str, Any]:
        data = changes.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in data:
            data["name"] = data["name"].strip()
        if "date" in data:
            data["date"] = data["date"].strip()
        if "description" in data:
            data["description"] = [d for d in data["description"] if d.strip()]
        if "paragraphs" in data:
            paragraphs = [Paragraph(**p) for p in data["paragraphs"]]
            data["paragraphs"] = [p.model_dump() for p in paragraphs if not p.is_blank()]
        for field_name in area.required_fields:
            if field_name in data and not data[field_name]:
                raise ValidationError(f"{field_name} cannot be empty", field=field_name)
        return data

    @staticmethod
    def _validate_draft(area: ContentArea, draft: ContentDraft) -> None:
        for field_name in area.required_fields:
            if not getattr(draft, field_name):
                raise ValidationError(f"{field_name} is required", field=field_name)

    @staticmethod
    def _validate_sources(cover: Optional[UploadSource], uploads: Sequence[UploadSource]) -> None:
        if cover is not None and cover.resolved_kind != FileKind.IMAGE:
            raise ValidationError(
                f"Cover image {cover.filename} is not an image ({cover.content_type})",
                field="cover",
            )
        for source in uploads:
            if source.kind in (FileKind.IMAGE, FileKind.AUDIO) and not (
                source.content_type or ""
            ).lower().startswith(f"{source.kind.value}/"):
                raise ValidationError(
                    f"{source.filename} was given as {source.kind.value} but is {source.content_type}",
                    field=f"{source.kind.value}s",
                )

    def _list_quietly(self, path: str, result: DeleteResult):
        try:
            return self.object_store.list(path)
        except Exception as e:
            result.storage_errors += 1
            logger.error(f"Error listing {path} for deletion: {e}")
            return None

    def _delete_objects(self, paths: Sequence[str], result: DeleteResult) -> None:
        for path in paths:
            try:
                self.object_store.delete(path)
                result.objects_deleted += 1
            except Exception as e:
                result.storage_errors += 1
                logger.error(f"Error deleting {path}: {e}")
