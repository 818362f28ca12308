"""Loss-risk validator - vetoes pushes that would wipe remote data.

The dominant failure mode is a freshly initialized (or corrupted) local
store pushing near-empty state over a populated Gist. Two signals block a
push outright: the local document holding less than half the remote's
records, and a note whose text was emptied locally. A single collection
dropping to zero is only reported.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .document import LIST_COLLECTIONS, CollectionSpec, SyncDocument

__all__ = ["WarningKind", "LossWarning", "ValidationResult", "LossRiskValidator"]

logger = logging.getLogger(__name__)


class WarningKind(str, Enum):
    TOTAL_SHRINK = "total_shrink"
    COLLECTION_EMPTIED = "collection_emptied"
    CONTENT_CLEARED = "content_cleared"


BLOCKING_KINDS = frozenset({WarningKind.TOTAL_SHRINK, WarningKind.CONTENT_CLEARED})


@dataclass
class LossWarning:
    kind: WarningKind
    message: str
    collection: Optional[str] = None
    record_id: Optional[str] = None

    @property
    def blocking(self) -> bool:
        return self.kind in BLOCKING_KINDS


@dataclass
class ValidationResult:
    """Outcome of validating a candidate push."""

    warnings: list[LossWarning] = field(default_factory=list)

    @property
    def blocking(self) -> bool:
        return any(w.blocking for w in self.warnings)

    @property
    def messages(self) -> list[str]:
        return [w.message for w in self.warnings]


def _list_items(document: SyncDocument, name: str) -> list:
    items = document.items(name)
    return items if isinstance(items, list) else []


class LossRiskValidator:
    """Compares a local document with the current remote one."""

    def __init__(
        self,
        shrink_ratio: float = 0.5,
        min_content_length: int = 10,
        min_pull_total: int = 10,
        specs: tuple[CollectionSpec, ...] = LIST_COLLECTIONS,
    ):
        self.shrink_ratio = shrink_ratio
        self.min_content_length = min_content_length
        self.min_pull_total = min_pull_total
        self.specs = specs

    def validate(
        self, local: SyncDocument, remote: Optional[SyncDocument]
    ) -> ValidationResult:
        result = ValidationResult()
        if remote is None:
            return result

        local_total = sum(len(_list_items(local, s.name)) for s in self.specs)
        remote_total = sum(len(_list_items(remote, s.name)) for s in self.specs)
        if remote_total > 0 and local_total < remote_total * self.shrink_ratio:
            result.warnings.append(
                LossWarning(
                    WarningKind.TOTAL_SHRINK,
                    f"Local has {local_total} items, remote has {remote_total}",
                )
            )

        for spec in self.specs:
            local_items = _list_items(local, spec.name)
            remote_items = _list_items(remote, spec.name)
            if remote_items and not local_items:
                result.warnings.append(
                    LossWarning(
                        WarningKind.COLLECTION_EMPTIED,
                        f"Local {spec.name} is empty but remote has {len(remote_items)}",
                        collection=spec.name,
                    )
                )
            if spec.text_field:
                result.warnings.extend(
                    self._cleared_content(spec, local_items, remote_items)
                )

        if result.warnings:
            logger.info(f"Push validation: {'; '.join(result.messages)}")
        return result

    def validate_pull(
        self, local: SyncDocument, remote: SyncDocument
    ) -> ValidationResult:
        """Check that applying ``remote`` would not gut a populated local store.

        Only local stores holding more than ``min_pull_total`` records are
        protected, so a fresh install can always pull.
        """
        result = ValidationResult()
        local_total = sum(len(_list_items(local, s.name)) for s in self.specs)
        remote_total = sum(len(_list_items(remote, s.name)) for s in self.specs)
        if (
            local_total > self.min_pull_total
            and remote_total < local_total * self.shrink_ratio
        ):
            result.warnings.append(
                LossWarning(
                    WarningKind.TOTAL_SHRINK,
                    f"Remote has {remote_total} items, local has {local_total}",
                )
            )
            logger.info(f"Pull validation: {result.messages[0]}")
        return result

    def _cleared_content(
        self, spec: CollectionSpec, local_items: list, remote_items: list
    ) -> list[LossWarning]:
        remote_by_id = {
            r.get("id"): r
            for r in remote_items
            if isinstance(r, dict) and r.get("id") is not None
        }
        warnings = []
        for record in local_items:
            if not isinstance(record, dict):
                continue
            remote_record = remote_by_id.get(record.get("id"))
            if remote_record is None:
                continue
            remote_text = remote_record.get(spec.text_field)
            local_text = record.get(spec.text_field)
            if not isinstance(remote_text, str):
                continue
            if len(remote_text) > self.min_content_length and not local_text:
                label = record.get("title") or record.get("date") or record["id"]
                warnings.append(
                    LossWarning(
                        WarningKind.CONTENT_CLEARED,
                        f"{spec.name} '{label}' lost its content locally",
                        collection=spec.name,
                        record_id=record["id"],
                    )
                )
        return warnings
