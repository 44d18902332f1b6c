"""Upload orchestration for one content commit.

The cover image goes first and alone; every other file of the commit is
then uploaded concurrently on a thread pool. Per-file byte progress is
folded into one aggregate percentage. A failed file never cancels its
siblings, and files that did upload are left where they are.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from ..exceptions import UploadFailedError
from ..schemas.content import FileKind
from ..storage.base import ObjectStore
from .content_utils import batch_object_name, cover_object_name, kind_from_content_type

logger = logging.getLogger(__name__)

# Highest aggregate reported while any task is still short of terminal success.
UNFINISHED_CEILING = 0.999

AggregateListener = Callable[[float], None]


@dataclass
class UploadSource:
    """A file handed in by the operator."""
    filename: str
    data: bytes
    content_type: Optional[str] = None
    kind: Optional[FileKind] = None

    @property
    def resolved_kind(self) -> FileKind:
        return self.kind or kind_from_content_type(self.content_type)


@dataclass
class UploadedFile:
    source: UploadSource
    kind: FileKind
    path: str
    url: str


@dataclass
class UploadFailure:
    index: int
    source: UploadSource
    path: str
    error: Exception

    def to_dict(self) -> Dict[str, object]:
        return {
            "index": self.index,
            "file": self.source.filename,
            "path": self.path,
            "error": str(self.error),
        }


class ProgressTracker:
    """Aggregate progress of a batch, as a percentage in [0, 100].

    Each task holds a fraction that only moves forward. Byte progress alone
    never completes a task; only ``succeed`` does, so the aggregate reaches
    100 exactly when every task has succeeded. Listeners are called under
    the tracker's lock, so the values they observe never decrease.
    """

    def __init__(self, total: int, listener: Optional[AggregateListener] = None):
        self._fractions = [0.0] * total
        self._succeeded = [False] * total
        self._listener = listener
        self._lock = threading.Lock()

    @property
    def percent(self) -> float:
        with self._lock:
            return self._percent()

    def update(self, index: int, transferred: int, total: int) -> None:
        fraction = transferred / total if total else 0.0
        self._advance(index, min(fraction, UNFINISHED_CEILING))

    def succeed(self, index: int) -> None:
        with self._lock:
            self._succeeded[index] = True
        self._advance(index, 1.0)

    def fail(self, index: int) -> None:
        # A failed task keeps whatever fraction it reached.
        self._advance(index, 0.0)

    def _advance(self, index: int, fraction: float) -> None:
        with self._lock:
            if fraction > self._fractions[index]:
                self._fractions[index] = fraction
            if self._listener:
                self._listener(self._percent())

    def _percent(self) -> float:
        if not self._fractions:
            return 100.0
        if all(self._succeeded):
            return 100.0
        return sum(self._fractions) / len(self._fractions) * 100


class UploadOrchestrator:
    """Moves the files of one commit into ``{folder_path}/``.

    Args:
        object_store: Destination store.
        max_workers: Concurrent uploads in the batch phase.
    """

    def __init__(self, object_store: ObjectStore, max_workers: int = 4):
        self.object_store = object_store
        self.max_workers = max_workers

    def upload_cover(self, folder_path: str, source: UploadSource, epoch_millis: int) -> UploadedFile:
        """Upload the cover image and wait for it to finish.

        Raises:
            UploadFailedError: The transfer failed.
        """
        path = f"{folder_path}/{cover_object_name(source.filename, epoch_millis)}"
        try:
            stored = self.object_store.upload(path, source.data, source.content_type)
        except Exception as e:
            logger.error(
                f"Cover upload failed: {e}",
                extra={"path": path, "file": source.filename},
            )
            raise UploadFailedError(
                source.filename,
                path,
                failures=[UploadFailure(0, source, path, e).to_dict()],
            ) from e
        logger.info("Uploaded cover image", extra={"path": path, "size": stored.size})
        return UploadedFile(source=source, kind=FileKind.IMAGE, path=path, url=stored.url)

    def upload_batch(
        self,
        folder_path: str,
        sources: Sequence[UploadSource],
        epoch_millis: int,
        on_progress: Optional[AggregateListener] = None,
    ) -> List[UploadedFile]:
        """Upload every source concurrently and wait for all of them.

        Object names are ``{kind}_{epoch_millis+index}.{ext}``.

        Returns:
            Uploaded files in input order.

        Raises:
            UploadFailedError: At least one transfer failed. Raised only after
                every sibling has reached a terminal state; the details list
                each failure and every path that did upload.
        """
        if not sources:
            return []

        tracker = ProgressTracker(len(sources), on_progress)
        paths = [
            f"{folder_path}/{batch_object_name(s.resolved_kind, s.filename, epoch_millis, i)}"
            for i, s in enumerate(sources)
        ]
        uploaded: Dict[int, UploadedFile] = {}
        failures: List[UploadFailure] = []

        def _upload(index: int) -> UploadedFile:
            source = sources[index]
            stored = self.object_store.upload(
                paths[index],
                source.data,
                source.content_type,
                on_progress=lambda sent, total: tracker.update(index, sent, total),
            )
            return UploadedFile(
                source=source, kind=source.resolved_kind, path=paths[index], url=stored.url
            )

        workers = max(1, min(self.max_workers, len(sources)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(_upload, i): i for i in range(len(sources))}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    uploaded[index] = future.result()
                    tracker.succeed(index)
                except Exception as e:
                    tracker.fail(index)
                    failures.append(UploadFailure(index, sources[index], paths[index], e))
                    logger.error(
                        f"Upload failed: {e}",
                        extra={"path": paths[index], "file": sources[index].filename},
                    )

        if failures:
            failures.sort(key=lambda f: f.index)
            first = failures[0]
            raise UploadFailedError(
                first.source.filename,
                first.path,
                index=first.index,
                failures=[f.to_dict() for f in failures],
                uploaded=[uploaded[i].path for i in sorted(uploaded)],
            ) from first.error

        logger.info(
            f"Uploaded {len(uploaded)} files",
            extra={"folder": folder_path, "count": len(uploaded)},
        )
        return [uploaded[i] for i in range(len(sources))]
