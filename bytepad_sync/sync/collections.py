"""Local collection accessors.

Each logical collection is exposed through a small accessor the snapshot
builder and merge engine consume: list collections via ``get_all`` /
``replace``, counter records via ``get_snapshot`` / ``apply_fields``.
``LocalCollections`` groups them, fans out change notifications, and
persists everything to a JSON data file.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from .document import COLLECTIONS, CollectionSpec
from .protocols import FieldAccessor, ListAccessor

__all__ = [
    "ListCollection",
    "FieldCollection",
    "LocalCollections",
    "ChangeListener",
    "SOURCE_LOCAL",
    "SOURCE_REMOTE",
]

logger = logging.getLogger(__name__)

SOURCE_LOCAL = "local"
SOURCE_REMOTE = "remote"

ChangeListener = Callable[[list[str], str], None]


class ListCollection:
    """Ordered list of records identified by ``id``."""

    def __init__(self, name: str, owner: Optional["LocalCollections"] = None):
        self.name = name
        self._owner = owner
        self._records: list[dict] = []

    def get_all(self) -> list[dict]:
        return copy.deepcopy(self._records)

    def replace(self, records: list[dict]) -> None:
        self._records = copy.deepcopy(list(records))
        self._changed()

    def upsert(self, record: dict) -> None:
        """Insert a record, or replace the one with the same id."""
        for index, existing in enumerate(self._records):
            if existing.get("id") == record.get("id"):
                self._records[index] = copy.deepcopy(record)
                break
        else:
            self._records.append(copy.deepcopy(record))
        self._changed()

    def remove(self, record_id: str) -> bool:
        before = len(self._records)
        self._records = [r for r in self._records if r.get("id") != record_id]
        removed = len(self._records) != before
        if removed:
            self._changed()
        return removed

    def __len__(self) -> int:
        return len(self._records)

    def _changed(self) -> None:
        if self._owner is not None:
            self._owner.notify_changed(self.name)


class FieldCollection:
    """Fixed-shape record of named counters (gamification, focus stats)."""

    def __init__(
        self,
        name: str,
        defaults: Optional[dict] = None,
        owner: Optional["LocalCollections"] = None,
    ):
        self.name = name
        self._owner = owner
        self._fields: dict = copy.deepcopy(defaults or {})

    def get_snapshot(self) -> dict:
        return copy.deepcopy(self._fields)

    def apply_fields(self, partial: dict) -> None:
        if not partial:
            return
        self._fields.update(copy.deepcopy(partial))
        if self._owner is not None:
            self._owner.notify_changed(self.name)


class LocalCollections:
    """Registry of every local collection accessor."""

    def __init__(self, specs: tuple[CollectionSpec, ...] = COLLECTIONS):
        self.specs = {spec.name: spec for spec in specs}
        self._lists: dict[str, ListAccessor] = {}
        self._fields: dict[str, FieldAccessor] = {}
        for spec in specs:
            if spec.is_list:
                self._lists[spec.name] = ListCollection(spec.name, owner=self)
            else:
                self._fields[spec.name] = FieldCollection(
                    spec.name, spec.defaults, owner=self
                )

        self._listeners: list[ChangeListener] = []
        self._lock = threading.RLock()
        self._batch_depth = 0
        self._batch_source = SOURCE_LOCAL
        self._pending: list[str] = []

    def list(self, name: str) -> ListAccessor:
        return self._lists[name]

    def fields(self, name: str) -> FieldAccessor:
        return self._fields[name]

    def register(self, name: str, accessor) -> None:
        """Plug in an external store's accessor for a known collection.

        External accessors are responsible for calling ``notify_changed``
        on local mutations if they want debounced syncs.
        """
        spec = self.specs.get(name)
        if spec is None:
            raise KeyError(f"Unknown collection: {name}")
        expected = ListAccessor if spec.is_list else FieldAccessor
        if not isinstance(accessor, expected):
            raise TypeError(f"{name} needs a {expected.__name__}")
        if spec.is_list:
            self._lists[name] = accessor
        else:
            self._fields[name] = accessor

    @property
    def list_names(self) -> list[str]:
        return list(self._lists)

    @property
    def field_names(self) -> list[str]:
        return list(self._fields)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_changed(self, name: str) -> None:
        with self._lock:
            if self._batch_depth:
                if name not in self._pending:
                    self._pending.append(name)
                return
        self._emit([name], SOURCE_LOCAL)

    @contextmanager
    def batch(self, source: str = SOURCE_LOCAL) -> Iterator["LocalCollections"]:
        """Group writes so listeners see a single notification on exit.

        Remote-sourced batches are tagged ``SOURCE_REMOTE`` so listeners
        that schedule outbound syncs can ignore them.
        """
        with self._lock:
            if self._batch_depth == 0:
                self._batch_source = source
                self._pending = []
            self._batch_depth += 1
        try:
            yield self
        finally:
            with self._lock:
                self._batch_depth -= 1
                done = self._batch_depth == 0
                changed = list(self._pending) if done else []
                batch_source = self._batch_source
                if done:
                    self._pending = []
            if changed:
                self._emit(changed, batch_source)

    def _emit(self, changed: list[str], source: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(changed, source)
            except Exception as e:
                logger.exception(f"Change listener failed: {e}")

    # -- persistence ---------------------------------------------------------

    def to_dict(self) -> dict:
        data: dict = {name: c.get_all() for name, c in self._lists.items()}
        data.update({name: c.get_snapshot() for name, c in self._fields.items()})
        return data

    def load_dict(self, data: dict, source: str = SOURCE_LOCAL) -> None:
        """Replace collections present in ``data``; others are left alone."""
        with self.batch(source):
            for name, collection in self._lists.items():
                if isinstance(data.get(name), list):
                    collection.replace(data[name])
            for name, collection in self._fields.items():
                if isinstance(data.get(name), dict):
                    collection.apply_fields(data[name])

    def save(self, path: Path) -> None:
        """Write all collections to a JSON data file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        tmp_path.replace(path)
        logger.debug(f"Local data saved to {path}")

    @classmethod
    def load(cls, path: Path) -> "LocalCollections":
        """Load collections from a JSON data file, or start empty."""
        collections = cls()
        if not path.exists():
            return collections
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load local data from {path}: {e}")
            return collections
        if not isinstance(data, dict):
            logger.warning(f"Ignoring local data file {path}: not an object")
            return collections
        collections.load_dict(data)
        return collections
