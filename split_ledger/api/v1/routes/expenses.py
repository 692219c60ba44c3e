from fastapi import APIRouter, Depends, HTTPException
from typing import List
from split_ledger.api.deps import get_current_user_id, get_ledger_store, require_group_member
from split_ledger.services.expense_service import (
    record_expense, get_expense, get_expense_shares, get_group_expenses_with_shares,
    get_user_expenses
)
from split_ledger.services.ledger_store import LedgerStore
from split_ledger.schemas.expense_schema import (
    ExpenseCreate, ExpenseOut, ExpenseWithShares, ExpenseShareOut
)

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.post("/groups/{group_id}", response_model=ExpenseWithShares, status_code=201)
def create_new_expense(
    group_id: str,
    expense_data: ExpenseCreate,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Record an expense paid by the current user, split among the group"""
    # built from the confirmed writes; no read after commit
    return record_expense(
        store,
        group_id=group_id,
        payer_id=user_id,
        amount=expense_data.amount,
        description=expense_data.description,
        category=expense_data.category,
        expense_date=expense_data.expense_date,
        policy=expense_data.to_policy()
    )


@router.get("/groups/{group_id}", response_model=List[ExpenseWithShares])
def get_group_expenses_list(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Get all expenses for a group"""
    require_group_member(store, group_id, user_id)
    return get_group_expenses_with_shares(store, group_id)


@router.get("/mine", response_model=List[ExpenseWithShares])
def get_my_expenses(
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Get expenses across all groups of the current user"""
    return get_user_expenses(store, user_id)


@router.get("/{expense_id}", response_model=ExpenseWithShares)
def get_expense_details(
    expense_id: str,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Get expense details with shares"""
    expense = get_expense(store, expense_id)
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")

    require_group_member(store, expense.group_id, user_id)

    shares = get_expense_shares(store, expense_id)
    return ExpenseWithShares(
        **ExpenseOut.model_validate(expense).model_dump(),
        shares=[ExpenseShareOut.model_validate(share) for share in shares]
    )
