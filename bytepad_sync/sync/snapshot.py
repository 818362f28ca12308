"""Snapshot builder - assembles a SyncDocument from local collections."""

from datetime import datetime, timezone
from typing import Callable, Optional

from .collections import LocalCollections
from .document import COLLECTIONS, SYNC_FORMAT_VERSION, SyncDocument

__all__ = ["SnapshotBuilder", "utc_now"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotBuilder:
    """Builds the document pushed to the remote store.

    Every build is stamped with the current time; collections missing
    from ``collections`` are emitted empty.
    """

    def __init__(
        self,
        collections: LocalCollections,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.collections = collections
        self.clock = clock or utc_now

    def build(self) -> SyncDocument:
        data = {}
        for spec in COLLECTIONS:
            name = spec.name
            if name not in self.collections.specs:
                data[name] = spec.empty()
            elif spec.is_list:
                data[name] = self.collections.list(name).get_all()
            else:
                data[name] = self.collections.fields(name).get_snapshot()
        return SyncDocument(
            last_modified=self.clock(),
            data=data,
            version=SYNC_FORMAT_VERSION,
        )
