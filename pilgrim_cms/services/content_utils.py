"""Content processing utilities: object naming, file kinds and legacy classification."""

from typing import Dict, Iterable, List, Optional

from ..schemas.content import FileKind

COVER_IMAGE_PREFIX = "content_image_"
BACK_REFERENCE_NAME = "content_metadata.json"
"""
Optional blob next to uploaded files pointing back at the record.

Never classified as a content file on read-back.
"""


def kind_from_content_type(content_type: Optional[str]) -> FileKind:
    """Classify an upload by its declared MIME type."""
    content_type = (content_type or "").lower()
    if content_type.startswith("image/"):
        return FileKind.IMAGE
    if content_type.startswith("audio/"):
        return FileKind.AUDIO
    return FileKind.FILE


def file_extension(filename: str) -> str:
    """Text after the last dot; a name without a dot is returned whole."""
    return filename.rsplit(".", 1)[-1]


def cover_object_name(filename: str, epoch_millis: int) -> str:
    return f"{COVER_IMAGE_PREFIX}{epoch_millis}.{file_extension(filename)}".lower()


def batch_object_name(kind: FileKind, filename: str, epoch_millis: int, index: int) -> str:
    """``{kind}_{millis+index}.{ext}``; the index keeps same-millisecond names apart."""
    return f"{kind.value}_{epoch_millis + index}.{file_extension(filename)}".lower()


def classify_legacy_path(path: str) -> Optional[FileKind]:
    """Infer the kind of a stored object from its name.

    Only for records written before file kinds were stored explicitly.
    Returns None for the cover image, the back-reference blob and record
    blobs, which are not content files.
    """
    name = path.rsplit("/", 1)[-1]
    if COVER_IMAGE_PREFIX in name or "content_metadata" in name:
        return None
    if "image_" in name:
        return FileKind.IMAGE
    if "audio_" in name or name.endswith(".mp3") or name.endswith(".wav"):
        return FileKind.AUDIO
    return FileKind.FILE


def group_legacy_paths(paths: Iterable[str], ignore: Iterable[str] = ()) -> Dict[FileKind, List[str]]:
    """Partition stored object paths by inferred kind, skipping *ignore* names."""
    ignored = set(ignore)
    groups: Dict[FileKind, List[str]] = {kind: [] for kind in FileKind}
    for path in paths:
        if path.rsplit("/", 1)[-1] in ignored:
            continue
        kind = classify_legacy_path(path)
        if kind is not None:
            groups[kind].append(path)
    return groups
