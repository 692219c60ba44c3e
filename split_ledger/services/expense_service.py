import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from split_ledger.core.config import settings
from split_ledger.core.exceptions import (
    CompensationFailed, NoParticipants, NotGroupMember, StoreUnavailable
)
from split_ledger.models.expenses import Expense, ExpenseCategory, ExpenseShare
from split_ledger.rabbitmq.producer import report_compensation_failure
from split_ledger.schemas.expense_schema import (
    DebtSummary, ExpenseShareOut, ExpenseWithShares, SplitPolicy
)
from split_ledger.schemas.settlement_schema import OptimizedSettlement
from split_ledger.services.ledger_store import LedgerStore
from split_ledger.utils.min_cash_flow import (
    calculate_balances, check_expense_integrity, fold_ledger, min_cash_flow
)
from split_ledger.utils.money import from_cents
from split_ledger.utils.split_calculator import compute_shares, validate_total

logger = logging.getLogger(__name__)


def _compensate(store: LedgerStore, expense_id: str, group_id: str, error: Exception) -> None:
    """
    Undo an expense insert after a later step failed.

    Returns normally when the expense and any shares are gone, so the caller
    can re-raise the original error. Raises CompensationFailed otherwise.
    """
    try:
        store.delete_expense(expense_id)
    except Exception as compensation_error:
        logger.critical(
            f"Compensating delete of expense {expense_id} failed after {error!r}: "
            f"{compensation_error!r}. Manual cleanup required."
        )
        report_compensation_failure(expense_id, group_id, str(error))
        raise CompensationFailed(
            "Expense was partially recorded and could not be rolled back",
            expense_id=expense_id,
            original_error=error,
            details={"group_id": group_id, "error": str(error)}
        ) from compensation_error

    logger.warning(f"Rolled back expense {expense_id} after failure: {error}")


def _with_shares(expense: Expense, shares) -> ExpenseWithShares:
    return ExpenseWithShares(
        id=expense.id,
        group_id=expense.group_id,
        paid_by=expense.paid_by,
        amount=expense.amount,
        description=expense.description,
        category=expense.category,
        expense_date=expense.expense_date,
        created_at=expense.created_at,
        shares=[ExpenseShareOut.model_validate(share) for share in shares]
    )


def record_expense(
    store: LedgerStore,
    group_id: str,
    payer_id: str,
    amount: Decimal,
    description: str,
    category: ExpenseCategory,
    expense_date: date,
    policy: SplitPolicy
) -> ExpenseWithShares:
    """
    Record an expense and its shares as one logical operation.

    The store cannot commit the expense and its shares together, so this runs
    as a saga with backward recovery only: once the expense row may exist, any
    failure deletes it again before the error is raised. There is no retry.

    Steps:
        1. Resolve group members (failure: nothing written)
        2. Insert the expense (failure: compensate, the row may have been committed)
        3. Compute shares (failure: compensate)
        4. Insert all shares in one call (failure: compensate)
        5. Return the expense with the shares the store confirmed

    The expense id is assigned here, before the insert, so a compensating
    delete can target a row whose insert reported failure after committing.
    The returned record is built from the confirmed writes without reading
    the store again: once step 4 succeeds, the expense is recorded.

    Raises:
        InvalidAmount, NoParticipants, NotGroupMember: before any write
        SplitMismatch: custom shares do not add up, expense rolled back
        StoreUnavailable: a store call failed, expense rolled back if written
        CompensationFailed: the rollback itself failed, manual cleanup needed
    """
    validate_total(amount)

    member_ids = store.select_members(group_id)
    if not member_ids:
        raise NoParticipants("Group has no members to split among", {"group_id": group_id})
    if payer_id not in member_ids:
        raise NotGroupMember("Only group members can create expenses", {"user_id": payer_id})

    expense_id = str(uuid.uuid4())
    try:
        expense = store.insert_expense(Expense(
            id=expense_id,
            group_id=group_id,
            paid_by=payer_id,
            amount=amount,
            description=description,
            category=category,
            expense_date=expense_date
        ))
    except Exception as e:
        _compensate(store, expense_id, group_id, e)
        raise
    logger.info(f"Inserted expense {expense_id} of {amount} in group {group_id}")

    try:
        shares = compute_shares(amount, member_ids, policy)
    except Exception as e:
        _compensate(store, expense_id, group_id, e)
        raise

    try:
        rows = store.insert_shares(expense_id, shares)
        if len(rows) != len(shares):
            raise StoreUnavailable(
                "Store confirmed fewer shares than were sent",
                {"expense_id": expense_id, "sent": len(shares), "confirmed": len(rows)}
            )
    except Exception as e:
        _compensate(store, expense_id, group_id, e)
        raise

    logger.info(f"Inserted {len(shares)} shares for expense {expense_id}")
    return _with_shares(expense, rows)


def get_expense(store: LedgerStore, expense_id: str) -> Optional[Expense]:
    """Get an expense by ID"""
    return store.select_expense(expense_id)


def get_group_expenses(store: LedgerStore, group_id: str) -> List[Expense]:
    """Get all expenses for a group"""
    return store.select_expenses(group_id)


def get_expense_shares(store: LedgerStore, expense_id: str) -> List[ExpenseShare]:
    """Get all shares for an expense"""
    return store.select_shares([expense_id])


def _attach_shares(store: LedgerStore, expenses: List[Expense]) -> List[ExpenseWithShares]:
    shares = store.select_shares([expense.id for expense in expenses])

    by_expense: Dict[str, List[ExpenseShare]] = {}
    for share in shares:
        by_expense.setdefault(share.expense_id, []).append(share)

    return [_with_shares(expense, by_expense.get(expense.id, [])) for expense in expenses]


def get_group_expenses_with_shares(store: LedgerStore, group_id: str) -> List[ExpenseWithShares]:
    """Get all expenses for a group with their shares attached, using one share query"""
    return _attach_shares(store, store.select_expenses(group_id))


def _created_key(expense: Expense) -> datetime:
    # SQLite hands back naive UTC, objects still in the session keep their tzinfo
    created = expense.created_at or datetime.min
    if created.tzinfo is not None:
        created = created.astimezone(timezone.utc).replace(tzinfo=None)
    return created


def get_user_expenses(store: LedgerStore, user_id: str) -> List[ExpenseWithShares]:
    """Get the expenses of every group the user belongs to, newest first"""
    expenses = []
    for group_id in store.select_user_groups(user_id):
        expenses.extend(store.select_expenses(group_id))

    expenses.sort(key=_created_key, reverse=True)
    return _attach_shares(store, expenses)


def is_group_member(store: LedgerStore, group_id: str, user_id: str) -> bool:
    """Check if a user belongs to a group"""
    return user_id in store.select_members(group_id)


def _load_ledger(store: LedgerStore, group_id: str):
    # read as one logical snapshot; concurrent writes may cause read skew
    member_ids = store.select_members(group_id)
    expenses = store.select_expenses(group_id)
    shares = store.select_shares([expense.id for expense in expenses])
    check_expense_integrity(expenses, shares)
    return member_ids, expenses, shares


def compute_balances(store: LedgerStore, group_id: str) -> Dict[str, Decimal]:
    """
    Calculate every member's net balance from stored expenses and shares.

    Recomputed on every call, nothing is cached. Positive means the member is
    owed money, negative means they owe. Values always sum to exactly zero.

    Raises:
        StoreUnavailable: a read failed
        Inconsistent: an expense's shares do not match its amount
    """
    member_ids, expenses, shares = _load_ledger(store, group_id)
    return calculate_balances(expenses, shares, member_ids)


def get_debt_summary(store: LedgerStore, group_id: str) -> List[DebtSummary]:
    """Calculate paid, owed and net totals for all group members"""
    member_ids, expenses, shares = _load_ledger(store, group_id)
    folded = fold_ledger(expenses, shares, member_ids)

    return [
        DebtSummary(
            user_id=user_id,
            total_paid=from_cents(paid),
            total_owed=from_cents(owed),
            net_balance=from_cents(paid - owed)
        )
        for user_id, (paid, owed) in folded.items()
    ]


def compute_settlements(balances: Dict[str, Decimal]) -> List[OptimizedSettlement]:
    """
    Suggest payments that bring every balance to zero.

    Uses the greedy Min-Cash-Flow matching from split_ledger.utils.min_cash_flow,
    which needs at most N - 1 payments for N non-zero balances but is not
    guaranteed to find the absolute minimum.

    Raises:
        Inconsistent: balances do not sum to zero within BALANCE_TOLERANCE
    """
    settlements_dict = min_cash_flow(balances, tolerance=settings.BALANCE_TOLERANCE)

    return [
        OptimizedSettlement(
            from_user_id=settlement["from"],
            to_user_id=settlement["to"],
            amount=settlement["amount"]
        )
        for settlement in settlements_dict
    ]
