"""Protocol types for the sync engine's collaborators.

Defines the interfaces the engine requires, so tests can substitute mocks
and other stores can plug in their own accessors.
"""

from typing import Optional, Protocol, runtime_checkable

from .document import SyncDocument


@runtime_checkable
class ListAccessor(Protocol):
    """An ordered collection of records."""

    def get_all(self) -> list[dict]: ...

    def replace(self, records: list[dict]) -> None: ...


@runtime_checkable
class FieldAccessor(Protocol):
    """A flat record of named counters."""

    def get_snapshot(self) -> dict: ...

    def apply_fields(self, partial: dict) -> None: ...


@runtime_checkable
class RemoteStoreProtocol(Protocol):
    """Interface for the single remote sync document."""

    def create(
        self, credential: str, document: SyncDocument, description: str = ...
    ) -> str: ...

    def read(self, credential: str, remote_id: str) -> Optional[SyncDocument]: ...

    def write(self, credential: str, remote_id: str, document: SyncDocument) -> None: ...

    def validate_credential(self, credential: str) -> bool: ...

    def validate_remote_id(self, credential: str, remote_id: str) -> bool: ...
