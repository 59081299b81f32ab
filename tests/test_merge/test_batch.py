"""Tests for the batch merge job module.

Job bookkeeping is tested with a mocked db_factory and BackgroundTasks;
the per-account loop runs against the SQLite test database.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from credit_merge.core.exceptions import StorageError
from credit_merge.services.merge import batch
from credit_merge.services.merge.engine import MergeOrchestrator
from credit_merge.services.merge.time_window import TimeWindowStrategy


@pytest.fixture(autouse=True)
def _clear_jobs():
    """Reset the in-memory job tracker between tests."""
    batch._jobs.clear()
    yield
    batch._jobs.clear()


def _make_background_tasks() -> MagicMock:
    """Return a mock BackgroundTasks that records added tasks."""
    return MagicMock()


def _submit(account_ids=None, bg=None, db_factory=None, dry_run=False) -> str:
    return batch.submit_merge_job(
        db_factory=db_factory or MagicMock(),
        account_ids=account_ids,
        min_amount=Decimal("5.0"),
        batch_size=100,
        strategy=TimeWindowStrategy.MONTH,
        dry_run=dry_run,
        background_tasks=bg or _make_background_tasks(),
    )


# ── Test: submit_merge_job ───────────────────────────────────────────


class TestSubmitJob:
    def test_submit_job_returns_job_id(self):
        """submit_merge_job should return a UUID string and register a pending job."""
        job_id = _submit()

        assert isinstance(job_id, str)
        assert len(job_id) == 36  # standard UUID length

        job = batch.get_job_status(job_id)
        assert job is not None
        assert job["status"] == "pending"
        assert job["account_ids"] is None
        assert job["min_amount"] == "5.0"
        assert job["strategy"] == "month"
        assert job["dry_run"] is False
        assert job["total_merged"] == 0
        assert job["results"] == []
        assert job["error"] is None

    def test_submit_job_schedules_background_task(self):
        """The background task should be scheduled via add_task."""
        bg = _make_background_tasks()

        _submit(["a"], bg=bg)

        bg.add_task.assert_called_once()

    def test_submit_job_with_accounts(self):
        ids = [str(uuid.uuid4()), str(uuid.uuid4())]
        job = batch.get_job_status(_submit(ids))
        assert job["account_ids"] == ids


# ── Test: list_jobs / get_job_status ─────────────────────────────────


class TestListJobs:
    def test_list_jobs_empty(self):
        assert batch.list_jobs() == []

    def test_list_jobs_returns_all(self):
        id1 = _submit()
        id2 = _submit(dry_run=True)

        jobs = batch.list_jobs()
        assert len(jobs) == 2
        assert {j["job_id"] for j in jobs} == {id1, id2}


class TestGetJobStatus:
    def test_get_job_not_found(self):
        assert batch.get_job_status("nonexistent-uuid") is None


# ── Test: merge_accounts / _run_job ──────────────────────────────────


class TestMergeAccounts:
    def test_one_failure_does_not_stop_the_batch(
        self, db_session, make_account, make_credit, monkeypatch
    ):
        good = make_account("good")
        bad = make_account("bad")
        for account in (good, bad):
            make_credit(account, "1.00")
            make_credit(account, "1.00")

        original = MergeOrchestrator.merge_small_amounts

        def flaky(self, account, *args, **kwargs):
            if account.id == bad.id:
                raise StorageError("disk full")
            return original(self, account, *args, **kwargs)

        monkeypatch.setattr(MergeOrchestrator, "merge_small_amounts", flaky)

        results = batch.merge_accounts(
            db_session, [bad, good], 5, 100, TimeWindowStrategy.MONTH
        )

        assert [r.account_id for r in results] == [str(bad.id), str(good.id)]
        assert not results[0].ok
        assert results[0].error == "disk full"
        assert results[1].ok
        assert results[1].merged == 2

    def test_run_job_completes(self, db_session, make_account, make_credit):
        account = make_account()
        for _ in range(3):
            make_credit(account, "1.00")
        account_id = str(account.id)
        db_factory = MagicMock(return_value=db_session)

        job_id = _submit([account_id], db_factory=db_factory)
        batch._run_job(
            job_id, db_factory, [account_id], 5, 100, TimeWindowStrategy.MONTH, False
        )

        job = batch.get_job_status(job_id)
        assert job["status"] == "completed"
        assert job["total_merged"] == 3
        assert job["results"] == [
            {"account_id": account_id, "merged": 3, "error": None}
        ]

    def test_run_job_unknown_account_fails_job(self, db_session):
        db_factory = MagicMock(return_value=db_session)
        missing = str(uuid.uuid4())

        job_id = _submit([missing], db_factory=db_factory)
        batch._run_job(job_id, db_factory, [missing], 5, 100, TimeWindowStrategy.MONTH, False)

        job = batch.get_job_status(job_id)
        assert job["status"] == "failed"
        assert missing in job["error"]
