"""Unit tests for the in-memory job store and the background export runner.

WHY: The job store is the central state manager for the HTTP API. Race
conditions, missing cleanup, or incorrect status transitions would cause
stale jobs, leaked temp files, or broken polling. These tests verify
every public method and edge case.

HOW: Tests are organized by class, one per JobStore method or concern:
  - TestJobCreation: create_job basics, defaults and the job limit
  - TestJobRetrieval: get_job and list_jobs
  - TestJobUpdate: status transitions, metadata, terminal states
  - TestJobDeletion: delete and temp dir cleanup
  - TestTTLCleanup: expiry logic and boundary conditions
  - TestExportRunner: the background pipeline for upload and URL jobs
  - TestThreadSafety: concurrent access doesn't corrupt state

RULES:
- Each test creates its own JobStore instance (no shared mutable state)
- Temp directories are cleaned up by the store or explicitly in tests
- Time-dependent tests use monkeypatch to control time.time()
"""

from __future__ import annotations

import shutil
import threading
import time
from unittest.mock import patch

import pytest

from gemini_export.server.app import _run_export_sync
from gemini_export.server.jobs import (
    DEFAULT_TTL_SECONDS,
    INPUT_FILENAME,
    JobStatus,
    JobStore,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_store(**kwargs) -> JobStore:
    """Create a JobStore with optional overrides."""
    return JobStore(**kwargs)


# ---------------------------------------------------------------------------
# TestJobCreation
# ---------------------------------------------------------------------------


class TestJobCreation:
    """JobStore.create_job() creates a job in PENDING state."""

    def test_creates_job_with_pending_status(self):
        store = _make_store()
        job = store.create_job("chat.html")
        assert job.status == JobStatus.PENDING
        store.delete_job(job.id)

    def test_assigns_unique_id(self):
        store = _make_store()
        job1 = store.create_job("a.html")
        job2 = store.create_job("b.html")
        assert job1.id != job2.id
        store.delete_job(job1.id)
        store.delete_job(job2.id)

    def test_stores_source(self):
        store = _make_store()
        job = store.create_job("https://gemini.google.com/share/abc")
        assert job.source == "https://gemini.google.com/share/abc"
        store.delete_job(job.id)

    def test_creates_temp_directory(self):
        store = _make_store()
        job = store.create_job("chat.html")
        assert job.output_dir.is_dir()
        assert job.input_path == job.output_dir / INPUT_FILENAME
        store.delete_job(job.id)

    def test_stores_config_copy(self):
        store = _make_store()
        config = {"output_formats": ["pdf"], "title": None}
        job = store.create_job("chat.html", config=config)
        assert job.config == config
        assert job.config is not config
        store.delete_job(job.id)

    def test_initial_fields_are_none_or_empty(self):
        store = _make_store()
        job = store.create_job("chat.html")
        assert job.completed_at is None
        assert job.error is None
        assert job.title is None
        assert job.message_count is None
        assert job.output_files == []
        store.delete_job(job.id)

    def test_max_jobs_limit(self):
        store = _make_store(max_jobs=2)
        j1 = store.create_job("a.html")
        j2 = store.create_job("b.html")
        with pytest.raises(ValueError, match="Maximum number of concurrent jobs"):
            store.create_job("c.html")
        store.delete_job(j1.id)
        store.delete_job(j2.id)


# ---------------------------------------------------------------------------
# TestJobRetrieval
# ---------------------------------------------------------------------------


class TestJobRetrieval:
    """JobStore.get_job() and list_jobs() retrieve stored jobs."""

    def test_get_existing_job(self):
        store = _make_store()
        created = store.create_job("chat.html")
        retrieved = store.get_job(created.id)
        assert retrieved is not None
        assert retrieved.id == created.id
        store.delete_job(created.id)

    def test_get_missing_job_returns_none(self):
        assert _make_store().get_job("nonexistent-id") is None

    def test_list_jobs_ordered_by_creation_time(self, monkeypatch):
        store = _make_store()
        monkeypatch.setattr(time, "time", lambda: 100.0)
        j1 = store.create_job("first.html")
        monkeypatch.setattr(time, "time", lambda: 101.0)
        j2 = store.create_job("second.html")
        assert [j.id for j in store.list_jobs()] == [j1.id, j2.id]
        store.delete_job(j1.id)
        store.delete_job(j2.id)


# ---------------------------------------------------------------------------
# TestJobUpdate
# ---------------------------------------------------------------------------


class TestJobUpdate:
    """JobStore.update_job() modifies job fields."""

    def test_update_status(self):
        store = _make_store()
        job = store.create_job("chat.html")
        updated = store.update_job(job.id, status=JobStatus.EXTRACTING)
        assert updated is not None
        assert updated.status == JobStatus.EXTRACTING
        store.delete_job(job.id)

    def test_update_metadata(self):
        store = _make_store()
        job = store.create_job("chat.html")
        store.update_job(job.id, title="Trip planning", message_count=4)
        assert job.title == "Trip planning"
        assert job.message_count == 4
        store.delete_job(job.id)

    def test_update_output_files(self):
        store = _make_store()
        job = store.create_job("chat.html")
        store.update_job(job.id, output_files=["a_1.json", "a_1.pdf"])
        assert job.output_files == ["a_1.json", "a_1.pdf"]
        store.delete_job(job.id)

    def test_update_missing_job_returns_none(self):
        assert _make_store().update_job("nonexistent", status=JobStatus.FAILED) is None

    @pytest.mark.parametrize("status", [JobStatus.COMPLETED, JobStatus.FAILED])
    def test_terminal_status_sets_completed_at(self, status):
        store = _make_store()
        job = store.create_job("chat.html")
        store.update_job(job.id, status=status)
        assert job.completed_at is not None
        store.delete_job(job.id)

    def test_non_terminal_status_does_not_set_completed_at(self):
        store = _make_store()
        job = store.create_job("chat.html")
        store.update_job(job.id, status=JobStatus.RENDERING)
        assert job.completed_at is None
        store.delete_job(job.id)

    def test_only_non_none_fields_updated(self):
        store = _make_store()
        job = store.create_job("chat.html", config={"title": "x"})
        store.update_job(job.id, title="first")
        store.update_job(job.id, status=JobStatus.RENDERING)
        assert job.title == "first"
        assert job.config == {"title": "x"}
        assert job.error is None
        store.delete_job(job.id)


# ---------------------------------------------------------------------------
# TestJobDeletion
# ---------------------------------------------------------------------------


class TestJobDeletion:
    """JobStore.delete_job() removes jobs and cleans up temp dirs."""

    def test_delete_existing_job(self):
        store = _make_store()
        job = store.create_job("chat.html")
        (job.output_dir / "a_1.pdf").write_bytes(b"%PDF")
        assert store.delete_job(job.id) is True
        assert store.get_job(job.id) is None
        assert not job.output_dir.exists()

    def test_delete_missing_job_returns_false(self):
        assert _make_store().delete_job("nonexistent") is False

    def test_delete_handles_already_removed_dir(self):
        store = _make_store()
        job = store.create_job("chat.html")
        shutil.rmtree(job.output_dir)
        assert store.delete_job(job.id) is True


# ---------------------------------------------------------------------------
# TestTTLCleanup
# ---------------------------------------------------------------------------


class TestTTLCleanup:
    """JobStore.cleanup_expired() removes terminal jobs past their TTL."""

    def test_cleanup_removes_expired_completed_job(self, monkeypatch):
        store = _make_store(ttl_seconds=60)
        job = store.create_job("chat.html")
        output_dir = job.output_dir

        monkeypatch.setattr(time, "time", lambda: 100.0)
        store.update_job(job.id, status=JobStatus.COMPLETED)

        monkeypatch.setattr(time, "time", lambda: 161.0)
        assert store.cleanup_expired() == 1
        assert store.get_job(job.id) is None
        assert not output_dir.exists()

    def test_cleanup_keeps_non_expired_job(self, monkeypatch):
        store = _make_store(ttl_seconds=60)
        job = store.create_job("chat.html")

        monkeypatch.setattr(time, "time", lambda: 100.0)
        store.update_job(job.id, status=JobStatus.FAILED, error="err")

        monkeypatch.setattr(time, "time", lambda: 159.0)
        assert store.cleanup_expired() == 0
        assert store.get_job(job.id) is not None
        store.delete_job(job.id)

    def test_cleanup_ignores_in_progress_jobs(self, monkeypatch):
        store = _make_store(ttl_seconds=1)
        job = store.create_job("chat.html")
        store.update_job(job.id, status=JobStatus.FETCHING)

        far_future = time.time() + 10000
        monkeypatch.setattr(time, "time", lambda: far_future)
        assert store.cleanup_expired() == 0
        store.delete_job(job.id)

    def test_default_ttl_is_one_hour(self):
        assert DEFAULT_TTL_SECONDS == 3600


# ---------------------------------------------------------------------------
# TestExportRunner
# ---------------------------------------------------------------------------


class _FakeShareClient:
    """Stands in for ShareClient; serves one canned page."""

    html = ""
    requested = []

    def __init__(self, *args, **kwargs):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def fetch_until_ready(self, url, timeout_s=None, cancel=None, on_status=None):
        self.requested.append((url, timeout_s))
        return self.html


class TestExportRunner:
    """_run_export_sync() drives a job from pending to a terminal state."""

    def test_uploaded_page_completes(self, share_page_html):
        store = _make_store()
        job = store.create_job("chat.html", config={"output_formats": ["json", "pdf"]})
        job.input_path.write_text(share_page_html, encoding="utf-8")

        _run_export_sync(job.id, store)

        assert job.status == JobStatus.COMPLETED
        assert job.title == "Trip planning: Portugal?"
        assert job.message_count == 4
        assert len(job.output_files) == 2
        for name in job.output_files:
            assert (job.output_dir / name).is_file()
        assert any(name.endswith(".pdf") for name in job.output_files)
        store.delete_job(job.id)

    def test_title_override(self, share_page_html):
        store = _make_store()
        job = store.create_job("chat.html", config={"output_formats": ["json"], "title": "Mine"})
        job.input_path.write_text(share_page_html, encoding="utf-8")

        _run_export_sync(job.id, store)

        assert job.title == "Mine"
        assert job.output_files[0].startswith("Mine_")
        store.delete_job(job.id)

    def test_empty_page_fails(self, empty_page_html):
        store = _make_store()
        job = store.create_job("chat.html", config={"output_formats": ["json"]})
        job.input_path.write_text(empty_page_html, encoding="utf-8")

        _run_export_sync(job.id, store)

        assert job.status == JobStatus.FAILED
        assert "No conversation data found" in job.error
        assert job.output_files == []
        store.delete_job(job.id)

    def test_url_job_fetches_page(self, share_page_html, share_url):
        store = _make_store()
        job = store.create_job(share_url, config={"url": share_url, "output_formats": ["json"], "wait": 3})
        _FakeShareClient.html = share_page_html
        _FakeShareClient.requested = []

        with patch("gemini_export.api.client.ShareClient", _FakeShareClient):
            _run_export_sync(job.id, store)

        assert _FakeShareClient.requested == [(share_url, 3)]
        assert job.status == JobStatus.COMPLETED
        assert job.message_count == 4
        store.delete_job(job.id)

    def test_missing_job_is_ignored(self):
        _run_export_sync("nonexistent", _make_store())


# ---------------------------------------------------------------------------
# TestThreadSafety
# ---------------------------------------------------------------------------


class TestThreadSafety:
    """Concurrent access to JobStore doesn't corrupt state."""

    def test_concurrent_creates(self):
        store = _make_store()
        results = []
        errors = []

        def create_job(idx):
            try:
                results.append(store.create_job("file_{}.html".format(idx)).id)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=create_job, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(set(results)) == 20
        assert len(store.list_jobs()) == 20

        for job_id in results:
            store.delete_job(job_id)

    def test_concurrent_updates(self):
        store = _make_store()
        job = store.create_job("chat.html")
        errors = []

        def update(idx):
            try:
                store.update_job(job.id, message_count=idx)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=update, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.get_job(job.id) is not None
        store.delete_job(job.id)


class TestJobStatusEnum:
    """JobStatus enum has correct values and string behavior."""

    def test_values_are_lowercase_strings(self):
        for status in JobStatus:
            assert status.value == status.value.lower()

    def test_string_comparison(self):
        assert JobStatus.PENDING == "pending"
        assert JobStatus.COMPLETED == "completed"

    def test_terminal_states(self):
        assert {s for s in JobStatus if s.is_terminal} == {JobStatus.COMPLETED, JobStatus.FAILED}
