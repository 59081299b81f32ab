"""Batch merge job management.

Runs the small-amount merge over one or many accounts as a background
task and tracks its progress.  Jobs live in a process-local dict, so they
are lost on restart and invisible to other workers.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from typing import Callable, Iterable, Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from credit_merge.core.logging import get_logger
from credit_merge.models.account import Account
from credit_merge.services.merge.engine import MergeOrchestrator, resolve_account
from credit_merge.services.merge.finder import Amount
from credit_merge.services.merge.time_window import TimeWindowStrategy

logger = get_logger(__name__)

# In-memory job tracker
_jobs: dict[str, dict] = {}


@dataclass
class AccountMergeResult:
    """Outcome of the merge of one account within a batch."""

    account_id: str
    merged: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def merge_accounts(
    db: Session,
    accounts: Iterable[Account],
    min_amount: Amount,
    batch_size: int,
    strategy: TimeWindowStrategy,
    dry_run: bool = False,
) -> list[AccountMergeResult]:
    """Merge each account in turn; one account's failure does not stop the rest."""
    orchestrator = MergeOrchestrator(db)
    results: list[AccountMergeResult] = []
    for account in accounts:
        account_id = str(account.id)
        try:
            merged = orchestrator.merge_small_amounts(
                account, min_amount, batch_size, strategy, dry_run
            )
            results.append(AccountMergeResult(account_id, merged))
        except Exception as exc:
            logger.error("Account merge failed: account=%s error=%s", account_id, exc)
            results.append(AccountMergeResult(account_id, error=str(exc)))
    return results


def submit_merge_job(
    db_factory: Callable[[], Session],
    account_ids: Optional[list[str]],
    min_amount: Amount,
    batch_size: int,
    strategy: TimeWindowStrategy,
    dry_run: bool,
    background_tasks: BackgroundTasks,
) -> str:
    """Submit a merge job to run in background.

    ``account_ids=None`` means every account.  Returns job_id immediately
    so the caller can poll for status later.
    """
    job_id = str(uuid.uuid4())
    _jobs[job_id] = {
        "job_id": job_id,
        "status": "pending",
        "account_ids": account_ids,
        "min_amount": str(min_amount),
        "batch_size": batch_size,
        "strategy": strategy.value,
        "dry_run": dry_run,
        "total_merged": 0,
        "results": [],
        "error": None,
    }
    background_tasks.add_task(
        _run_job, job_id, db_factory, account_ids, min_amount, batch_size, strategy, dry_run
    )
    return job_id


def _run_job(
    job_id: str,
    db_factory: Callable[[], Session],
    account_ids: Optional[list[str]],
    min_amount: Amount,
    batch_size: int,
    strategy: TimeWindowStrategy,
    dry_run: bool,
) -> None:
    """Background task that merges every requested account."""
    _jobs[job_id]["status"] = "running"
    try:
        db: Session = db_factory()
        try:
            if account_ids is None:
                accounts = db.query(Account).order_by(Account.created_at).all()
            else:
                accounts = [resolve_account(db, a) for a in account_ids]
            results = merge_accounts(
                db, accounts, min_amount, batch_size, strategy, dry_run
            )
            _jobs[job_id]["results"] = [asdict(r) for r in results]
            _jobs[job_id]["total_merged"] = sum(r.merged for r in results)
            _jobs[job_id]["status"] = "completed"
        finally:
            db.close()
    except Exception as e:
        logger.error(f"Job {job_id} failed: {e}")
        _jobs[job_id]["status"] = "failed"
        _jobs[job_id]["error"] = str(e)


def get_job_status(job_id: str) -> dict | None:
    """Look up a job by ID.  Returns None if not found."""
    return _jobs.get(job_id)


def list_jobs() -> list[dict]:
    """Return all tracked jobs in submission order."""
    return list(_jobs.values())
