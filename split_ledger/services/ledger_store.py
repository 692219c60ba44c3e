"""
Storage boundary of the ledger.

The backing store only guarantees single-call atomicity: an expense row and
its share rows are written by separate calls that can fail independently.
Nothing above this module may assume a transaction spans two calls.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from split_ledger.core.exceptions import StoreUnavailable
from split_ledger.models.expenses import Expense, ExpenseShare
from split_ledger.models.groups import GroupMember
from split_ledger.schemas.expense_schema import ExpenseShareCreate

logger = logging.getLogger(__name__)


class LedgerStore(ABC):
    """Request/response operations the ledger needs from storage."""

    @abstractmethod
    def select_members(self, group_id: str) -> List[str]:
        """Return the user ids of the group's members"""

    @abstractmethod
    def select_user_groups(self, user_id: str) -> List[str]:
        """Return the ids of the groups a user belongs to"""

    @abstractmethod
    def insert_expense(self, expense: Expense) -> Expense:
        """
        Persist one expense row, keeping the id already set on it.

        A failure does not prove nothing was written: the row may have been
        committed before the error reached us.
        """

    @abstractmethod
    def insert_shares(self, expense_id: str, shares: Sequence[ExpenseShareCreate]) -> List[ExpenseShare]:
        """Persist all share rows of an expense in one batched call"""

    @abstractmethod
    def delete_expense(self, expense_id: str) -> None:
        """Delete an expense together with any of its shares"""

    @abstractmethod
    def select_expense(self, expense_id: str) -> Optional[Expense]:
        """Return one expense or None"""

    @abstractmethod
    def select_expenses(self, group_id: str) -> List[Expense]:
        """Return all expenses of a group"""

    @abstractmethod
    def select_shares(self, expense_ids: Sequence[str]) -> List[ExpenseShare]:
        """Return all shares belonging to the given expenses"""


class SqlLedgerStore(LedgerStore):
    """
    LedgerStore over a SQLAlchemy session.

    Each operation commits on its own, mirroring a remote row API. Any
    SQLAlchemyError rolls the session back and surfaces as StoreUnavailable.
    """

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, operation: str, error: SQLAlchemyError) -> StoreUnavailable:
        self.db.rollback()
        logger.error(f"Store call {operation} failed: {error}")
        return StoreUnavailable(f"Store call {operation} failed", {"error": str(error)})

    def select_members(self, group_id: str) -> List[str]:
        try:
            rows = self.db.query(GroupMember.user_id).filter(GroupMember.group_id == group_id).all()
        except SQLAlchemyError as e:
            raise self._fail("select_members", e) from e
        return [row.user_id for row in rows]

    def select_user_groups(self, user_id: str) -> List[str]:
        try:
            rows = self.db.query(GroupMember.group_id).filter(GroupMember.user_id == user_id).all()
        except SQLAlchemyError as e:
            raise self._fail("select_user_groups", e) from e
        return [row.group_id for row in rows]

    def insert_expense(self, expense: Expense) -> Expense:
        # a successful commit ends the call; ids and created_at are set client-side
        try:
            self.db.add(expense)
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("insert_expense", e) from e
        return expense

    def insert_shares(self, expense_id: str, shares: Sequence[ExpenseShareCreate]) -> List[ExpenseShare]:
        rows = [
            ExpenseShare(expense_id=expense_id, user_id=share.user_id, share_amount=share.share_amount)
            for share in shares
        ]
        try:
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("insert_shares", e) from e
        return rows

    def delete_expense(self, expense_id: str) -> None:
        # explicit cascade, SQLite does not enforce ON DELETE CASCADE by default
        try:
            self.db.query(ExpenseShare).filter(ExpenseShare.expense_id == expense_id).delete(
                synchronize_session=False
            )
            self.db.query(Expense).filter(Expense.id == expense_id).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("delete_expense", e) from e

    def select_expense(self, expense_id: str) -> Optional[Expense]:
        try:
            return self.db.query(Expense).filter(Expense.id == expense_id).first()
        except SQLAlchemyError as e:
            raise self._fail("select_expense", e) from e

    def select_expenses(self, group_id: str) -> List[Expense]:
        try:
            return (
                self.db.query(Expense)
                .filter(Expense.group_id == group_id)
                .order_by(Expense.created_at, Expense.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise self._fail("select_expenses", e) from e

    def select_shares(self, expense_ids: Sequence[str]) -> List[ExpenseShare]:
        if not expense_ids:
            return []
        try:
            return (
                self.db.query(ExpenseShare)
                .filter(ExpenseShare.expense_id.in_(list(expense_ids)))
                .order_by(ExpenseShare.expense_id, ExpenseShare.user_id)
                .all()
            )
        except SQLAlchemyError as e:
            raise self._fail("select_shares", e) from e
