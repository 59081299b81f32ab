"""Shared test fixtures for the credit merge service tests.

Uses a SQLite database file so tests run without PostgreSQL.
"""

from __future__ import annotations

import os

# Override DATABASE_URL before importing anything from credit_merge: the
# Settings model reads .env eagerly via pydantic-settings, and the
# module-level ``engine`` in credit_merge.core.database would try to connect
# to PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from credit_merge.core.database import Base, get_db
from credit_merge.main import app
from credit_merge.models.account import Account
from credit_merge.models.transaction import CreditTransaction

# Use SQLite file-based database for tests (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


# Enable foreign keys for SQLite
@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """FastAPI test client with overridden DB dependency."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_account(db_session):
    """Factory that inserts an account."""

    def _make(name: str = "alice", currency: str = "CREDIT") -> Account:
        account = Account(id=uuid.uuid4(), name=name, currency=currency)
        db_session.add(account)
        db_session.commit()
        return account

    return _make


@pytest.fixture
def make_credit(db_session):
    """Factory that inserts a credit transaction.

    ``balance`` defaults to ``amount`` (an untouched grant).
    """

    def _make(
        account: Account,
        amount: str,
        expire_time: Optional[datetime] = None,
        balance: Optional[str] = None,
    ) -> CreditTransaction:
        tx = CreditTransaction(
            id=uuid.uuid4(),
            account_id=account.id,
            amount=Decimal(amount),
            balance=Decimal(balance if balance is not None else amount),
            currency=account.currency,
            expire_time=expire_time,
            event_no=f"GRANT_{uuid.uuid4().hex}",
            remark="test grant",
        )
        db_session.add(tx)
        db_session.commit()
        return tx

    return _make
