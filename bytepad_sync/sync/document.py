"""SyncDocument - the unit of remote storage - and the collection registry."""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, TypedDict

from .errors import FormatError

__all__ = [
    "SYNC_FORMAT_VERSION",
    "KIND_LIST",
    "KIND_FIELDS",
    "CollectionSpec",
    "COLLECTIONS",
    "LIST_COLLECTIONS",
    "FIELD_COLLECTIONS",
    "SyncDocument",
    "count_items",
    "format_timestamp",
    "parse_timestamp",
]

logger = logging.getLogger(__name__)

SYNC_FORMAT_VERSION = 1

KIND_LIST = "list"
KIND_FIELDS = "fields"


class Note(TypedDict, total=False):
    id: str
    title: str
    content: str
    tags: list[str]
    folderId: str
    pinned: bool
    createdAt: str
    updatedAt: str


class SubTask(TypedDict):
    id: str
    title: str
    completed: bool


class Task(TypedDict, total=False):
    id: str
    title: str
    description: str
    priority: str  # P1..P4
    startDate: str
    deadline: str
    completed: bool
    completedAt: str
    archivedAt: str
    subtasks: list[SubTask]
    createdAt: str
    order: int
    tags: list[str]
    linkedBookmarkIds: list[str]
    linkedNoteIds: list[str]
    kanbanStatus: str


class Habit(TypedDict, total=False):
    id: str
    name: str
    frequency: str
    category: str
    tags: list[str]
    completions: dict[str, bool]
    streak: int
    createdAt: str


class JournalEntry(TypedDict, total=False):
    id: str
    date: str
    mood: int
    energy: int
    content: str
    tags: list[str]


class Bookmark(TypedDict, total=False):
    id: str
    url: str
    title: str
    description: str
    tags: list[str]
    collection: str
    isRead: bool
    createdAt: str
    domain: str


class DailyNoteCard(TypedDict, total=False):
    id: str
    title: str
    content: str
    pinned: bool
    tags: list[str]


class DailyNote(TypedDict, total=False):
    id: str
    date: str
    cards: list[DailyNoteCard]
    createdAt: str
    updatedAt: str


class Idea(TypedDict, total=False):
    id: str
    title: str
    content: str
    color: str
    tags: list[str]
    status: str
    order: int


class FocusSession(TypedDict, total=False):
    id: str
    taskId: str
    taskTitle: str
    startedAt: str
    endedAt: str
    duration: int
    targetDuration: int
    completed: bool
    interrupted: bool


class GamificationStats(TypedDict, total=False):
    level: int
    currentXP: int
    totalXP: int
    tasksCompleted: int
    tasksCompletedToday: int
    habitsCompleted: int
    habitsCompletedToday: int
    pomodorosCompleted: int
    notesCreated: int
    journalEntries: int
    perfectDays: int
    currentStreak: int
    bestStreak: int
    lastActiveDate: Optional[str]
    achievements: list[str]


class FocusStats(TypedDict, total=False):
    totalSessions: int
    totalFocusTime: int
    todayFocusTime: int
    weekFocusTime: int
    averageSessionLength: int
    longestSession: int
    sessionsPerTask: dict[str, dict]


DEFAULT_GAMIFICATION: GamificationStats = {
    "level": 1,
    "currentXP": 0,
    "totalXP": 0,
    "tasksCompleted": 0,
    "tasksCompletedToday": 0,
    "habitsCompleted": 0,
    "habitsCompletedToday": 0,
    "pomodorosCompleted": 0,
    "notesCreated": 0,
    "journalEntries": 0,
    "perfectDays": 0,
    "currentStreak": 0,
    "bestStreak": 0,
    "lastActiveDate": None,
    "achievements": [],
}

DEFAULT_FOCUS_STATS: FocusStats = {
    "totalSessions": 0,
    "totalFocusTime": 0,
    "todayFocusTime": 0,
    "weekFocusTime": 0,
    "averageSessionLength": 0,
    "longestSession": 0,
    "sessionsPerTask": {},
}


@dataclass(frozen=True)
class CollectionSpec:
    """Describes one logical collection in the SyncDocument."""

    name: str
    kind: str
    record_type: type
    text_field: Optional[str] = None  # free-text collections only
    defaults: Optional[dict] = None  # field collections only

    @property
    def is_list(self) -> bool:
        return self.kind == KIND_LIST

    def empty(self) -> Any:
        if self.is_list:
            return []
        return copy.deepcopy(self.defaults or {})


COLLECTIONS: tuple[CollectionSpec, ...] = (
    CollectionSpec("notes", KIND_LIST, Note, text_field="content"),
    CollectionSpec("tasks", KIND_LIST, Task),
    CollectionSpec("habits", KIND_LIST, Habit),
    CollectionSpec("journal", KIND_LIST, JournalEntry, text_field="content"),
    CollectionSpec("bookmarks", KIND_LIST, Bookmark),
    CollectionSpec("dailyNotes", KIND_LIST, DailyNote),
    CollectionSpec("ideas", KIND_LIST, Idea, text_field="content"),
    CollectionSpec("focusSessions", KIND_LIST, FocusSession),
    CollectionSpec(
        "gamification", KIND_FIELDS, GamificationStats, defaults=DEFAULT_GAMIFICATION
    ),
    CollectionSpec(
        "focusStats", KIND_FIELDS, FocusStats, defaults=DEFAULT_FOCUS_STATS
    ),
)

LIST_COLLECTIONS = tuple(spec for spec in COLLECTIONS if spec.is_list)
FIELD_COLLECTIONS = tuple(spec for spec in COLLECTIONS if not spec.is_list)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision and a Z suffix."""
    return (
        value.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass
class SyncDocument:
    """Serialized snapshot of all local collections plus a timestamp."""

    last_modified: datetime
    data: dict[str, Any] = field(default_factory=dict)
    version: int = SYNC_FORMAT_VERSION

    def items(self, name: str) -> Optional[Any]:
        """Get a collection's payload, or None if the document lacks it."""
        return self.data.get(name)

    def same_data(self, other: "SyncDocument") -> bool:
        """Check whether both documents carry identical collections."""
        return self.data == other.data

    def unknown_collections(self) -> dict[str, Any]:
        """Collections this client has no accessor for (written by newer clients)."""
        known = {spec.name for spec in COLLECTIONS}
        return {name: value for name, value in self.data.items() if name not in known}

    def carrying_unknown(self, other: Optional["SyncDocument"]) -> "SyncDocument":
        """Copy of this document that also keeps ``other``'s unknown collections."""
        if other is None:
            return self
        extra = {
            name: value
            for name, value in other.unknown_collections().items()
            if name not in self.data
        }
        if not extra:
            return self
        return SyncDocument(
            last_modified=self.last_modified,
            data={**self.data, **extra},
            version=self.version,
        )

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "lastModified": format_timestamp(self.last_modified),
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "SyncDocument":
        """Build a SyncDocument from a decoded JSON payload.

        Raises:
            FormatError: If the payload is not a well-formed SyncDocument
        """
        if not isinstance(payload, dict):
            raise FormatError("Sync document must be a JSON object")

        raw_modified = payload.get("lastModified")
        if not isinstance(raw_modified, str):
            raise FormatError("Sync document is missing lastModified")
        try:
            last_modified = parse_timestamp(raw_modified)
        except ValueError as e:
            raise FormatError(f"Invalid lastModified: {raw_modified!r}") from e

        data = payload.get("data")
        if not isinstance(data, dict):
            raise FormatError("Sync document is missing data")

        for spec in COLLECTIONS:
            value = data.get(spec.name)
            if value is None:
                continue
            if spec.is_list and not isinstance(value, list):
                raise FormatError(f"Collection {spec.name} must be a list")
            if not spec.is_list and not isinstance(value, dict):
                raise FormatError(f"Collection {spec.name} must be an object")

        version = payload.get("version", SYNC_FORMAT_VERSION)
        if not isinstance(version, int):
            raise FormatError(f"Invalid version: {version!r}")
        if version > SYNC_FORMAT_VERSION:
            logger.warning(
                f"Remote document uses format version {version}, "
                f"this client understands {SYNC_FORMAT_VERSION}"
            )

        return cls(last_modified=last_modified, data=data, version=version)


def count_items(document: SyncDocument) -> dict[str, int]:
    """Count records per list collection, plus a "total" entry."""
    counts: dict[str, int] = {}
    for spec in LIST_COLLECTIONS:
        items = document.items(spec.name)
        counts[spec.name] = len(items) if isinstance(items, list) else 0
    counts["total"] = sum(counts.values())
    return counts
