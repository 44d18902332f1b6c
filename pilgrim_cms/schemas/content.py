"""Content record schemas."""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class FileKind(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"
    FILE = "file"


class Paragraph(BaseModel):
    """Titled paragraph made of ordered description blocks."""
    title: str = ""
    description: List[str] = Field(default_factory=list)

    def is_blank(self) -> bool:
        return not self.title.strip() and not any(d.strip() for d in self.description)


class ContentDraft(BaseModel):
    """Form fields submitted with a new content item."""
    name: str = ""
    description: List[str] = Field(default_factory=list)
    paragraphs: List[Paragraph] = Field(default_factory=list)
    location_link: Optional[str] = None
    date: Optional[str] = None
    order: Optional[int] = None

    def cleaned(self) -> "ContentDraft":
        """Trim the name and drop empty description blocks and blank paragraphs."""
        return ContentDraft(
            name=self.name.strip(),
            description=[d for d in self.description if d.strip()],
            paragraphs=[p for p in self.paragraphs if not p.is_blank()],
            location_link=self.location_link,
            date=self.date.strip() if self.date else self.date,
            order=self.order,
        )


class ContentUpdate(BaseModel):
    """Fields replaced on edit. Omitted fields keep their stored value."""
    name: Optional[str] = None
    description: Optional[List[str]] = None
    paragraphs: Optional[List[Paragraph]] = None
    location_link: Optional[str] = None
    date: Optional[str] = None
    order: Optional[int] = None


class FileRef(BaseModel):
    """One uploaded object with its kind recorded at write time."""
    kind: FileKind
    path: str
    url: str
    name: Optional[str] = None


class ContentRecord(BaseModel):
    """Persisted metadata for one content item.

    ``images``/``audios``/``files`` are the URL lists existing readers use;
    ``file_refs`` carries the same uploads with their kind.
    """
    area: str
    category: str
    folder_id: int
    name: str = ""
    description: List[str] = Field(default_factory=list)
    paragraphs: List[Paragraph] = Field(default_factory=list)
    content_image: Optional[str] = None
    location_link: Optional[str] = None
    date: Optional[str] = None
    order: Optional[int] = None
    images: List[str] = Field(default_factory=list)
    audios: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)
    file_refs: List[FileRef] = Field(default_factory=list)
    timestamp: Optional[str] = None
    updated_at: Optional[str] = None
    status: str = "complete"

    @classmethod
    def from_document(cls, area: str, category: str, doc_id: str, data: Dict[str, Any]) -> "ContentRecord":
        folder_id = data.get("folderId")
        if folder_id is None:
            folder_id = int(doc_id)
        return cls(
            area=area,
            category=data.get("category") or category,
            folder_id=int(folder_id),
            name=data.get("name") or "",
            description=_as_blocks(data.get("description")),
            paragraphs=[Paragraph(**p) for p in data.get("paragraphs") or []],
            content_image=data.get("content_image"),
            location_link=data.get("location_link"),
            date=data.get("date"),
            order=data.get("order"),
            images=list(data.get("images") or []),
            audios=list(data.get("audios") or []),
            files=list(data.get("files") or []),
            file_refs=[FileRef(**ref) for ref in data.get("file_refs") or []],
            timestamp=data.get("timestamp"),
            updated_at=data.get("updated_at"),
            status=data.get("status") or "complete",
        )


def _as_blocks(value: Any) -> List[str]:
    # Advisories and events stored the description as one string.
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


class NextFolderIdResponse(BaseModel):
    area: str
    category: str
    folder_id: int
    strategy: str


class AreaResponse(BaseModel):
    key: str
    categories: List[str]
    order_field: str
    descending: bool
    required_fields: List[str]


class StoredFilesResponse(BaseModel):
    """Uploaded files of one item, by kind. ``source`` tells where kinds came from."""
    images: List[str] = Field(default_factory=list)
    audios: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)
    source: str = "record"


class DeleteResponse(BaseModel):
    folder_id: int
    objects_deleted: int
    storage_errors: int


class CleanupResponse(BaseModel):
    removed: List[int]


class FileRemovedResponse(BaseModel):
    """Outcome of removing one file from an item."""
    path: str
    object_deleted: bool
    record: ContentRecord
