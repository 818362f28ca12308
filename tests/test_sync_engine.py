"""Tests for the sync engine."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import Mock

from bytepad_sync.config import GistSyncSettings
from bytepad_sync.sync.collections import SOURCE_REMOTE, LocalCollections
from bytepad_sync.sync.document import SyncDocument
from bytepad_sync.sync.errors import AuthError, FormatError, RemoteError, SyncErrorKind
from bytepad_sync.sync.sync_engine import SyncAction, SyncEngine

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeGist:
    """In-memory remote store. Optionally blocks the first read on a gate."""

    def __init__(self, document: Optional[SyncDocument] = None):
        self.document = document
        self.reads = 0
        self.writes = 0
        self.active = 0
        self.max_active = 0
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self._lock = threading.Lock()

    def create(self, credential, document, description="Bytepad Data"):
        self.document = document
        return "created-id"

    def read(self, credential, remote_id):
        with self._lock:
            self.reads += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            first = self.reads == 1
        try:
            if self.gate is not None and first:
                self.entered.set()
                self.gate.wait(5)
            return self.document
        finally:
            with self._lock:
                self.active -= 1

    def write(self, credential, remote_id, document):
        self.writes += 1
        self.document = document

    def validate_credential(self, credential):
        return True

    def validate_remote_id(self, credential, remote_id):
        return True


def make_settings(**overrides):
    settings = GistSyncSettings(enabled=True, remote_id="gist-1", **overrides)
    settings.credential = "token"
    return settings


def remote_doc(offset_seconds=0, **data):
    return SyncDocument(last_modified=NOW + timedelta(seconds=offset_seconds), data=data)


class TestSyncEngine:
    """Tests for SyncEngine."""

    def setup_method(self):
        self.collections = LocalCollections()
        self.collections.list("tasks").replace([{"id": "t1"}, {"id": "t2"}])
        self.settings = make_settings()
        self.gist = FakeGist()
        self.status_changes = []
        self.engine = self._make_engine(self.gist)

    def _make_engine(self, client):
        return SyncEngine(
            client=client,
            collections=self.collections,
            settings=self.settings,
            clock=lambda: NOW,
            on_status_changed=lambda s: self.status_changes.append(s.last_sync_status),
        )

    def test_push_when_no_remote_document(self):
        result = self.engine.sync()

        assert result.success
        assert result.action == SyncAction.PUSH
        assert self.gist.writes == 1
        assert self.gist.document.items("tasks") == [{"id": "t1"}, {"id": "t2"}]
        assert self.settings.last_sync_status == "success"
        assert self.settings.last_sync_at == "2026-03-01T12:00:00.000Z"
        assert self.settings.last_sync_error is None
        assert self.status_changes == ["pending", "success"]

    def test_pull_when_remote_is_newer(self):
        self.gist.document = remote_doc(10, tasks=[{"id": "t9"}])
        listener = Mock()
        self.collections.add_listener(listener)

        result = self.engine.sync()

        assert result.success
        assert result.action == SyncAction.PULL
        assert result.applied == ["tasks"]
        assert self.gist.writes == 0
        assert self.collections.list("tasks").get_all() == [{"id": "t9"}]
        listener.assert_called_once_with(["tasks"], SOURCE_REMOTE)

    def test_push_when_local_is_newer(self):
        self.gist.document = remote_doc(-60, tasks=[{"id": "t1"}])

        result = self.engine.sync()

        assert result.action == SyncAction.PUSH
        assert self.gist.writes == 1
        assert self.gist.document.last_modified == NOW

    def test_equal_timestamps_push(self):
        self.gist.document = remote_doc(0, tasks=[{"id": "t1"}, {"id": "t2"}, {"id": "t3"}])

        result = self.engine.sync()

        assert result.action == SyncAction.PUSH
        assert self.gist.writes == 1

    def test_second_sync_is_a_no_op(self):
        first = self.engine.sync()
        second = self.engine.sync()

        assert first.action == SyncAction.PUSH
        assert second.success
        assert second.action == SyncAction.NONE
        assert self.gist.writes == 1

    def test_blocked_push_writes_nothing(self):
        self.gist.document = remote_doc(
            -60, tasks=[{"id": f"t{i}"} for i in range(10)]
        )

        result = self.engine.sync()

        assert not result.success
        assert result.error_kind == SyncErrorKind.VALIDATION_BLOCKED
        assert "Local has 2 items, remote has 10" in result.message
        assert result.warnings
        assert self.gist.writes == 0
        assert self.settings.last_sync_status == "error"
        assert self.settings.last_sync_error.startswith("Push blocked to prevent data loss")
        assert self.settings.last_sync_at is None

    def test_force_push_skips_validation(self):
        self.gist.document = remote_doc(-60, tasks=[{"id": f"t{i}"} for i in range(10)])

        result = self.engine.force_push()

        assert result.success
        assert self.gist.writes == 1
        assert len(self.gist.document.items("tasks")) == 2

    def test_push_validates_even_when_remote_is_newer(self):
        self.gist.document = remote_doc(60, tasks=[{"id": f"t{i}"} for i in range(10)])

        result = self.engine.push()

        assert result.error_kind == SyncErrorKind.VALIDATION_BLOCKED
        assert self.gist.writes == 0

    def test_pull_keeps_local_when_remote_collection_empty(self):
        self.gist.document = remote_doc(-60, tasks=[])

        result = self.engine.pull()

        assert result.success
        assert result.applied == []
        assert len(self.collections.list("tasks")) == 2

    def test_pull_blocked_when_remote_is_much_smaller(self):
        self.collections.list("tasks").replace([{"id": f"t{i}"} for i in range(50)])
        self.gist.document = remote_doc(60, tasks=[{"id": "t0"}, {"id": "t1"}])

        result = self.engine.pull()

        assert not result.success
        assert result.error_kind == SyncErrorKind.VALIDATION_BLOCKED
        assert "Remote has 2 items, local has 50" in result.message
        assert result.message.startswith("Pull blocked to prevent data loss")
        assert result.message.endswith("Use force pull to override.")
        assert len(self.collections.list("tasks")) == 50

    def test_force_pull_ignores_pull_shrink_check(self):
        self.collections.list("tasks").replace([{"id": f"t{i}"} for i in range(50)])
        self.gist.document = remote_doc(60, tasks=[{"id": "t0"}, {"id": "t1"}])

        result = self.engine.force_pull()

        assert result.success
        assert len(self.collections.list("tasks")) == 2

    def test_small_local_store_can_always_pull(self):
        self.gist.document = remote_doc(60, tasks=[{"id": "t9"}])

        result = self.engine.pull()

        assert result.success
        assert self.collections.list("tasks").get_all() == [{"id": "t9"}]

    def test_unknown_remote_collections_survive_push(self):
        self.gist.document = remote_doc(-60, tasks=[{"id": "t1"}], calendar=[{"id": "c1"}])

        result = self.engine.sync()

        assert result.action == SyncAction.PUSH
        assert self.gist.document.items("calendar") == [{"id": "c1"}]
        assert self.gist.document.items("tasks") == [{"id": "t1"}, {"id": "t2"}]

    def test_unknown_remote_collections_do_not_force_a_write(self):
        self.engine.sync()
        self.gist.document.data["calendar"] = [{"id": "c1"}]

        result = self.engine.sync()

        assert result.action == SyncAction.NONE
        assert self.gist.writes == 1

    def test_force_pull_overwrites_regardless_of_timestamps(self):
        self.gist.document = remote_doc(-3600, tasks=[])

        result = self.engine.force_pull()

        assert result.success
        assert result.action == SyncAction.PULL
        assert result.applied == ["tasks"]
        assert self.collections.list("tasks").get_all() == []

    def test_force_pull_without_remote_document(self):
        result = self.engine.force_pull()

        assert not result.success
        assert result.error_kind == SyncErrorKind.NOT_FOUND
        assert len(self.collections.list("tasks")) == 2

    def test_create_remote_adopts_id(self):
        self.settings.remote_id = None
        self.settings.enabled = False

        result = self.engine.create_remote("Bytepad Data")

        assert result.success
        assert result.message == "Created Gist: created-id"
        assert self.settings.remote_id == "created-id"
        assert self.gist.document.items("tasks") == [{"id": "t1"}, {"id": "t2"}]

    def test_not_configured(self):
        self.settings.credential = None
        client = Mock()
        engine = self._make_engine(client)

        result = engine.sync()

        assert not result.success
        assert result.error_kind == SyncErrorKind.CONFIGURATION
        assert result.message == "GitHub token not configured"
        client.read.assert_not_called()
        assert self.status_changes == []

    def test_disabled(self):
        self.settings.enabled = False

        result = self.engine.sync()

        assert result.error_kind == SyncErrorKind.CONFIGURATION
        assert result.message == "Gist sync not enabled"
        assert self.gist.reads == 0

    def test_remote_errors_are_recorded(self):
        client = Mock()
        client.read.side_effect = RemoteError("Cannot connect to GitHub")
        engine = self._make_engine(client)

        result = engine.sync()

        assert not result.success
        assert result.error_kind == SyncErrorKind.REMOTE
        assert self.settings.last_sync_status == "error"
        assert self.settings.last_sync_error == "Cannot connect to GitHub"
        assert not engine.is_busy

    def test_auth_error_kind(self):
        client = Mock()
        client.read.side_effect = AuthError("Invalid or expired GitHub token")
        engine = self._make_engine(client)

        assert engine.sync().error_kind == SyncErrorKind.AUTH

    def test_format_error_leaves_local_untouched(self):
        client = Mock()
        client.read.side_effect = FormatError("Invalid data format in Gist")
        engine = self._make_engine(client)

        result = engine.sync()

        assert result.error_kind == SyncErrorKind.FORMAT
        client.write.assert_not_called()
        assert len(self.collections.list("tasks")) == 2

    def test_unexpected_error_is_reported(self):
        client = Mock()
        client.read.side_effect = RuntimeError("boom")
        engine = self._make_engine(client)

        result = engine.sync()

        assert not result.success
        assert "boom" in result.message
        assert not engine.is_busy

    def test_success_clears_previous_error(self):
        self.settings.last_sync_error = "old failure"

        self.engine.sync()

        assert self.settings.last_sync_error is None

    def test_status_reports_counts(self):
        status = self.engine.status()

        assert status["configured"] is True
        assert status["remote_id"] == "gist-1"
        assert status["local_items"]["tasks"] == 2
        assert status["in_progress"] is False
        assert "token" not in status.values()


class TestInFlightGuard:
    """Concurrent requests never overlap at the remote store."""

    def setup_method(self):
        self.collections = LocalCollections()
        self.collections.list("notes").upsert({"id": "n1", "content": "hello there world"})
        self.settings = make_settings()
        self.gist = FakeGist()
        self.gist.gate = threading.Event()
        self.engine = SyncEngine(
            client=self.gist,
            collections=self.collections,
            settings=self.settings,
            clock=lambda: NOW,
        )

    def test_concurrent_requests_collapse_into_one_follow_up(self):
        results = {}
        worker = threading.Thread(target=lambda: results.update(first=self.engine.sync()))
        worker.start()
        assert self.gist.entered.wait(5)

        assert self.engine.is_busy
        skipped = self.engine.sync()
        skipped_again = self.engine.sync()
        rejected = self.engine.force_push()

        self.gist.gate.set()
        worker.join(5)

        assert skipped.action == SyncAction.SKIPPED
        assert skipped.error_kind == SyncErrorKind.IN_PROGRESS
        assert skipped_again.action == SyncAction.SKIPPED
        assert not rejected.success
        assert rejected.error_kind == SyncErrorKind.IN_PROGRESS

        # first pass pushes, the single queued pass finds nothing to do
        assert self.gist.max_active == 1
        assert self.gist.reads == 2
        assert self.gist.writes == 1
        assert not self.engine.is_busy

    def test_running_caller_gets_its_own_result(self):
        results = {}
        worker = threading.Thread(target=lambda: results.update(first=self.engine.sync()))
        worker.start()
        assert self.gist.entered.wait(5)
        self.engine.sync()
        self.gist.gate.set()
        worker.join(5)

        assert results["first"].success
        assert results["first"].action == SyncAction.PUSH
        assert results["first"].message == "Pushed local data to Gist"
        # the queued pass is still recorded
        assert self.settings.last_sync_status == "success"

    def test_failed_follow_up_does_not_mask_pushed_result(self):
        results = {}
        original_read = self.gist.read

        def read(credential, remote_id):
            if self.gist.reads >= 1 and self.gist.gate.is_set():
                raise RemoteError("Cannot connect to GitHub")
            return original_read(credential, remote_id)

        self.gist.read = read
        worker = threading.Thread(target=lambda: results.update(first=self.engine.sync()))
        worker.start()
        assert self.gist.entered.wait(5)
        self.engine.sync()
        self.gist.gate.set()
        worker.join(5)

        assert results["first"].success
        assert results["first"].action == SyncAction.PUSH
        assert self.settings.last_sync_status == "error"
        assert self.settings.last_sync_error == "Cannot connect to GitHub"

    def test_guard_released_after_failure(self):
        client = Mock()
        client.read.side_effect = RemoteError("down")
        engine = SyncEngine(client=client, collections=self.collections, settings=self.settings)

        engine.sync()
        engine.sync()

        assert client.read.call_count == 2
