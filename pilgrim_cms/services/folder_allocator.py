"""Folder id allocation per storage prefix.

Ids are positive integers, unique within one prefix, and double as the
storage folder name and the record's document id.

Two strategies:

- ``listing`` (default): list the sub-folders under the prefix and take
  the highest numeric name plus one. The value is cached per process and
  advanced locally after each successful commit. Two processes reading the
  same listing will hand out the same id; nothing here prevents that.
- ``counter``: reserve ids with an atomic increment on a counter document,
  created once from the listing if absent. Callers sharing the document
  store get distinct ids.
"""

import logging
import threading
from typing import Dict, Optional

from ..core.config import AllocatorStrategy
from ..exceptions import AllocatorUnavailableError, PortalException
from ..storage.base import DocumentStore, ObjectStore, leaf_name

logger = logging.getLogger(__name__)

COUNTER_COLLECTION = "_folder_counters"
COUNTER_FIELD = "value"


def parse_folder_name(name: str) -> int:
    """Base-10 folder number; anything unparsable counts as 0."""
    try:
        return int(name)
    except ValueError:
        return 0


class FolderAllocator:
    def __init__(
        self,
        object_store: ObjectStore,
        document_store: Optional[DocumentStore] = None,
        strategy: AllocatorStrategy = AllocatorStrategy.LISTING,
    ):
        if strategy == AllocatorStrategy.COUNTER and document_store is None:
            raise ValueError("counter strategy needs a document store")
        self.object_store = object_store
        self.document_store = document_store
        self.strategy = strategy
        self._next_ids: Dict[str, int] = {}
        self._lock = threading.Lock()

    def next_folder_id(self, prefix: str) -> int:
        """Folder id to use for the next commit under *prefix*.

        With the listing strategy repeated calls return the same id until
        ``mark_committed`` or ``reset``. With the counter strategy every call
        reserves a fresh id.

        Raises:
            AllocatorUnavailableError: The listing (or counter) could not be
                read. No id is guessed.
        """
        if self.strategy == AllocatorStrategy.COUNTER:
            return self._reserve(prefix)

        with self._lock:
            cached = self._next_ids.get(prefix)
            if cached is not None:
                return cached
        computed = self._scan(prefix) + 1
        with self._lock:
            return self._next_ids.setdefault(prefix, computed)

    def peek_folder_id(self, prefix: str) -> int:
        """Next id without reserving it."""
        if self.strategy == AllocatorStrategy.LISTING:
            return self.next_folder_id(prefix)
        try:
            counter = self.document_store.get(COUNTER_COLLECTION, _counter_id(prefix))
        except PortalException as e:
            raise AllocatorUnavailableError(prefix, e) from e
        if counter is None:
            return self._scan(prefix) + 1
        return int(counter.get(COUNTER_FIELD, 0)) + 1

    def mark_committed(self, prefix: str, folder_id: int) -> None:
        """Record a successful commit so the next id is ``folder_id + 1``."""
        if self.strategy == AllocatorStrategy.COUNTER:
            return
        with self._lock:
            self._next_ids[prefix] = folder_id + 1
        logger.debug(f"Next folder id for {prefix} is {folder_id + 1}")

    def reset(self, prefix: Optional[str] = None) -> None:
        """Forget cached ids so the next call re-reads storage."""
        with self._lock:
            if prefix is None:
                self._next_ids.clear()
            else:
                self._next_ids.pop(prefix, None)

    def _scan(self, prefix: str) -> int:
        try:
            listing = self.object_store.list(prefix)
        except Exception as e:
            logger.error(f"Error getting folders in {prefix}: {e}")
            raise AllocatorUnavailableError(prefix, e) from e
        return max((parse_folder_name(leaf_name(p)) for p in listing.prefixes), default=0)

    def _reserve(self, prefix: str) -> int:
        counter_id = _counter_id(prefix)
        try:
            if self.document_store.get(COUNTER_COLLECTION, counter_id) is None:
                seed = self._scan(prefix)
                # Losing the seeding race keeps the winner's counter untouched.
                if self.document_store.create(
                    COUNTER_COLLECTION, counter_id, {COUNTER_FIELD: seed, "prefix": prefix}
                ):
                    logger.info(f"Seeded folder counter for {prefix} at {seed}")
            return self.document_store.increment(COUNTER_COLLECTION, counter_id, COUNTER_FIELD)
        except AllocatorUnavailableError:
            raise
        except PortalException as e:
            raise AllocatorUnavailableError(prefix, e) from e


def _counter_id(prefix: str) -> str:
    return prefix.strip("/").replace("/", "__")
