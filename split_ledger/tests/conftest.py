"""
Pytest configuration and fixtures for split_ledger tests.
"""
import os

# must be set before split_ledger.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

import uuid
import pytest
from datetime import date
from decimal import Decimal
from typing import Dict, List

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from split_ledger.core.exceptions import StoreUnavailable
from split_ledger.db.database import Base
from split_ledger.models.expenses import Expense, ExpenseShare
from split_ledger.models.groups import Group, GroupMember
from split_ledger.services.ledger_store import LedgerStore, SqlLedgerStore


class FakeLedgerStore(LedgerStore):
    """
    In-memory LedgerStore with failure injection.

    Put an operation name in fail_on to make that call raise StoreUnavailable
    before it touches any state, or in fail_after to make it raise after its
    write went through (a lost commit acknowledgement).
    Every call is appended to calls.
    """

    def __init__(self, members: Dict[str, List[str]] = None):
        self.members = members or {}
        self.expenses: Dict[str, Expense] = {}
        self.shares: List[ExpenseShare] = []
        self.fail_on = set()
        self.fail_after = set()
        self.calls = []

    def _call(self, operation: str):
        self.calls.append(operation)
        if operation in self.fail_on:
            raise StoreUnavailable(f"Store call {operation} failed", {"error": "injected"})

    def _done(self, operation: str):
        if operation in self.fail_after:
            raise StoreUnavailable(f"Store call {operation} failed", {"error": "connection lost after write"})

    def select_members(self, group_id):
        self._call("select_members")
        return list(self.members.get(group_id, []))

    def select_user_groups(self, user_id):
        self._call("select_user_groups")
        return [group_id for group_id, members in self.members.items() if user_id in members]

    def insert_expense(self, expense):
        self._call("insert_expense")
        self.expenses[expense.id] = expense
        self._done("insert_expense")
        return expense

    def insert_shares(self, expense_id, shares):
        self._call("insert_shares")
        rows = [
            ExpenseShare(id=str(uuid.uuid4()), expense_id=expense_id,
                         user_id=share.user_id, share_amount=share.share_amount)
            for share in shares
        ]
        self.shares.extend(rows)
        self._done("insert_shares")
        return rows

    def delete_expense(self, expense_id):
        self._call("delete_expense")
        self.expenses.pop(expense_id, None)
        self.shares = [share for share in self.shares if share.expense_id != expense_id]
        self._done("delete_expense")

    def select_expense(self, expense_id):
        self._call("select_expense")
        return self.expenses.get(expense_id)

    def select_expenses(self, group_id):
        self._call("select_expenses")
        return [expense for expense in self.expenses.values() if expense.group_id == group_id]

    def select_shares(self, expense_ids):
        self._call("select_shares")
        wanted = set(expense_ids)
        return [share for share in self.shares if share.expense_id in wanted]


@pytest.fixture
def fake_store():
    """Fake store holding group g1 with members alice, bob and carol."""
    return FakeLedgerStore({"g1": ["alice", "bob", "carol"]})


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def group(db_session):
    """Group g1 with members alice, bob and carol."""
    group = Group(id="g1", name="Trip")
    db_session.add(group)
    for user_id in ("alice", "bob", "carol"):
        db_session.add(GroupMember(group_id="g1", user_id=user_id, display_name=user_id.title()))
    db_session.commit()
    return group


@pytest.fixture
def sql_store(db_session, group):
    return SqlLedgerStore(db_session)


@pytest.fixture
def expense_date():
    return date(2024, 3, 15)


@pytest.fixture
def sample_balances():
    """Sample balances for testing."""
    return {
        "A": Decimal("66.67"),
        "B": Decimal("-10.00"),
        "C": Decimal("-43.34"),
        "D": Decimal("-13.33")
    }


@pytest.fixture
def assert_settles():
    """Return a checker that applies settlements to balances and expects all zeros."""

    def check(balances: Dict[str, Decimal], settlements: List[Dict]) -> None:
        remaining = dict(balances)
        for settlement in settlements:
            remaining[settlement["from"]] += settlement["amount"]
            remaining[settlement["to"]] -= settlement["amount"]

        for user, balance in remaining.items():
            assert balance == Decimal("0"), \
                f"User {user} not settled: initial={balances[user]}, final={balance}"

    return check
