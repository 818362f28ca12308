"""Merge/apply engine - writes a remote SyncDocument into local collections.

Collections are replaced wholesale or left untouched; there is no per-record
or per-field reconciliation for list collections.
"""

import json
import logging
from typing import Any, Callable, Optional

from .collections import SOURCE_REMOTE, LocalCollections
from .document import SyncDocument

__all__ = ["MergeEngine", "has_changed", "should_apply", "changed_fields"]

logger = logging.getLogger(__name__)

# Above this size, equal-length collections are assumed changed rather than
# deep-compared.
DEEP_COMPARE_LIMIT = 100


def _canonical(items: Any) -> str:
    return json.dumps(items, sort_keys=True, default=str)


def has_changed(local_items: list, remote_items: list) -> bool:
    if len(local_items) != len(remote_items):
        return True
    if len(local_items) > DEEP_COMPARE_LIMIT:
        return True
    return _canonical(local_items) != _canonical(remote_items)


def should_apply(
    local_items: list, remote_items: Optional[list], force_overwrite: bool = False
) -> bool:
    """Decide whether a remote list collection should replace the local one."""
    if remote_items is None:
        return False
    if not remote_items and not local_items:
        return False
    if not force_overwrite and not remote_items and local_items:
        # An empty remote is more likely a failed load than a real wipe
        return False
    return has_changed(local_items, remote_items)


def changed_fields(local_fields: dict, remote_fields: Optional[dict]) -> dict:
    """Return the remote fields whose values differ from local."""
    if not remote_fields:
        return {}
    return {
        key: value
        for key, value in remote_fields.items()
        if key not in local_fields or local_fields[key] != value
    }


class MergeEngine:
    """Applies a remote document to local collections in one batch."""

    def __init__(self, on_applied: Optional[Callable[[list[str]], None]] = None):
        self._on_applied = on_applied

    def plan(
        self,
        remote: SyncDocument,
        collections: LocalCollections,
        force_overwrite: bool = False,
    ) -> dict[str, Any]:
        """Compute what ``apply`` would write, keyed by collection name.

        List collections map to their full replacement; field collections
        map to the partial record of differing fields.
        """
        writes: dict[str, Any] = {}
        for name in collections.list_names:
            remote_items = remote.items(name)
            if remote_items is not None and not isinstance(remote_items, list):
                logger.warning(f"Skipping {name}: remote value is not a list")
                continue
            local_items = collections.list(name).get_all()
            if should_apply(local_items, remote_items, force_overwrite):
                writes[name] = remote_items

        for name in collections.field_names:
            remote_fields = remote.items(name)
            if remote_fields is not None and not isinstance(remote_fields, dict):
                logger.warning(f"Skipping {name}: remote value is not an object")
                continue
            partial = changed_fields(collections.fields(name).get_snapshot(), remote_fields)
            if partial:
                writes[name] = partial
        return writes

    def apply(
        self,
        remote: SyncDocument,
        collections: LocalCollections,
        force_overwrite: bool = False,
    ) -> list[str]:
        """Apply ``remote`` and return the names of collections written."""
        writes = self.plan(remote, collections, force_overwrite)
        if not writes:
            logger.debug("Remote document matches local collections")
            return []

        with collections.batch(SOURCE_REMOTE):
            for name, payload in writes.items():
                if name in collections.specs and collections.specs[name].is_list:
                    collections.list(name).replace(payload)
                else:
                    collections.fields(name).apply_fields(payload)

        applied = list(writes)
        logger.info(f"Applied remote collections: {', '.join(applied)}")
        if self._on_applied:
            self._on_applied(applied)
        return applied
