"""Tests for MergeExecutor against a SQLite database."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from credit_merge.core.exceptions import StorageError
from credit_merge.models.consume_log import ConsumeLog
from credit_merge.models.transaction import CreditTransaction
from credit_merge.services.merge.executor import NO_EXPIRY_KEY, MergeExecutor
from credit_merge.services.merge.time_window import TimeWindowStrategy


def _merged_rows(db_session):
    return (
        db_session.query(CreditTransaction)
        .filter(CreditTransaction.event_no.like("MERGE_%"))
        .all()
    )


class TestMergeGroup:
    def test_single_record_is_left_alone(self, db_session, make_account, make_credit):
        account = make_account()
        record = make_credit(account, "2.00")

        merged = MergeExecutor(db_session).merge_group([record], account, NO_EXPIRY_KEY)

        assert merged == 0
        assert _merged_rows(db_session) == []
        assert db_session.query(ConsumeLog).count() == 0

    def test_consolidates_balances(self, db_session, make_account, make_credit):
        account = make_account()
        records = [make_credit(account, v) for v in ("1.00", "2.00", "1.50")]
        expiry = datetime(2024, 6, 30, 23, 59, 59)

        merged = MergeExecutor(db_session).merge_group(records, account, "2024-06", expiry)
        db_session.commit()

        assert merged == 3
        [row] = _merged_rows(db_session)
        assert row.amount == Decimal("4.50")
        assert row.balance == Decimal("4.50")
        assert row.expire_time == expiry
        assert row.currency == account.currency
        assert row.event_no.startswith(f"MERGE_{account.id}_2024-06_")
        assert row.remark == "Merged 3 small credit records (2024-06)"
        assert row.context["merge_strategy"] == "2024-06"
        assert sorted(row.context["merged_records"]) == sorted(str(r.id) for r in records)

    def test_sources_zeroed_and_logged(self, db_session, make_account, make_credit):
        account = make_account()
        records = [make_credit(account, "1.25"), make_credit(account, "0.75")]

        MergeExecutor(db_session).merge_group(records, account, NO_EXPIRY_KEY)
        db_session.commit()

        [row] = _merged_rows(db_session)
        for record in records:
            db_session.refresh(record)
            assert record.balance == Decimal("0")
            # amount is untouched for audit
            assert record.amount in (Decimal("1.25"), Decimal("0.75"))

        logs = db_session.query(ConsumeLog).all()
        assert len(logs) == 2
        assert {log.cost_transaction_id for log in logs} == {r.id for r in records}
        assert all(log.consume_transaction_id == row.id for log in logs)
        assert sum(log.amount for log in logs) == Decimal("2.00")

    def test_event_numbers_are_unique(self, db_session, make_account, make_credit):
        account = make_account()
        executor = MergeExecutor(db_session)
        executor.merge_group(
            [make_credit(account, "1.00"), make_credit(account, "1.00")], account, "all"
        )
        executor.merge_group(
            [make_credit(account, "1.00"), make_credit(account, "1.00")], account, "all"
        )
        db_session.commit()

        events = [row.event_no for row in _merged_rows(db_session)]
        assert len(events) == 2
        assert len(set(events)) == 2


class TestMergePaths:
    def test_no_expiry_path_ignores_expiring_records(
        self, db_session, make_account, make_credit
    ):
        account = make_account()
        make_credit(account, "1.00")
        make_credit(account, "2.00")
        make_credit(account, "3.00", datetime(2030, 1, 1))

        merged = MergeExecutor(db_session).merge_no_expiry_records(account, 5)
        db_session.commit()

        assert merged == 2
        [row] = _merged_rows(db_session)
        assert row.expire_time is None
        assert row.balance == Decimal("3.00")

    def test_expiry_path_merges_each_window(self, db_session, make_account, make_credit):
        account = make_account()
        make_credit(account, "1.00", datetime(2030, 1, 20))
        make_credit(account, "1.00", datetime(2030, 1, 5))
        make_credit(account, "2.00", datetime(2030, 2, 10))
        make_credit(account, "2.00", datetime(2030, 2, 11))
        make_credit(account, "4.00", datetime(2030, 3, 1))

        merged = MergeExecutor(db_session).merge_expiry_records(
            account, 5, TimeWindowStrategy.MONTH
        )
        db_session.commit()

        assert merged == 4
        rows = {row.context["merge_strategy"]: row for row in _merged_rows(db_session)}
        assert set(rows) == {"2030-01", "2030-02"}
        # earliest expiry of the window wins
        assert rows["2030-01"].expire_time == datetime(2030, 1, 5)
        assert rows["2030-02"].balance == Decimal("4.00")

    def test_nothing_eligible(self, db_session, make_account, make_credit):
        account = make_account()
        make_credit(account, "50.00", datetime(2030, 1, 1))
        make_credit(account, "3.00", datetime(2030, 1, 2), balance="1.00")

        executor = MergeExecutor(db_session)
        assert executor.merge_no_expiry_records(account, 5) == 0
        assert executor.merge_expiry_records(account, 5, TimeWindowStrategy.ALL) == 0


class TestMergeGroupBookkeeping:
    """merge_group against a mocked session, to control what the store does."""

    def _records(self):
        return [
            SimpleNamespace(id=uuid.uuid4(), balance=Decimal("1.00")),
            SimpleNamespace(id=None, balance=Decimal("2.00")),
        ]

    def test_remark_counts_every_consumed_record(self):
        db = MagicMock()
        account = SimpleNamespace(id=uuid.uuid4(), currency="CREDIT")

        consumed = MergeExecutor(db).merge_group(self._records(), account, "all")

        merged = db.add.call_args_list[0].args[0]
        assert consumed == 2
        assert merged.remark == f"Merged {consumed} small credit records (all)"

    def test_flush_error_is_wrapped(self):
        db = MagicMock()
        cause = OperationalError("INSERT", {}, Exception("database is locked"))
        db.flush.side_effect = cause
        account = SimpleNamespace(id=uuid.uuid4(), currency="CREDIT")

        with pytest.raises(StorageError, match="window '2030-01'") as exc_info:
            MergeExecutor(db).merge_group(self._records(), account, "2030-01")

        assert exc_info.value.__cause__ is cause
