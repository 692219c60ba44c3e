from fastapi import APIRouter, Depends
from typing import List
from split_ledger.api.deps import get_current_user_id, get_ledger_store, require_group_member
from split_ledger.services.expense_service import (
    compute_balances, compute_settlements, get_debt_summary
)
from split_ledger.services.ledger_store import LedgerStore
from split_ledger.schemas.expense_schema import DebtSummary, MemberBalance
from split_ledger.schemas.settlement_schema import OptimizedSettlement

router = APIRouter(prefix="/settlements", tags=["settlements"])


@router.get("/groups/{group_id}/balances", response_model=List[MemberBalance])
def get_group_balances(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Get the net balance of every group member"""
    require_group_member(store, group_id, user_id)
    balances = compute_balances(store, group_id)
    return [MemberBalance(user_id=member, net_balance=balance) for member, balance in balances.items()]


@router.get("/groups/{group_id}/debts", response_model=List[DebtSummary])
def get_group_debt_summary(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Get debt summary for all group members"""
    require_group_member(store, group_id, user_id)
    return get_debt_summary(store, group_id)


@router.get("/groups/{group_id}/optimize", response_model=List[OptimizedSettlement])
def get_optimized_settlements(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store)
):
    """Get optimized settlement suggestions"""
    require_group_member(store, group_id, user_id)
    return compute_settlements(compute_balances(store, group_id))
