from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session
from split_ledger.db.database import get_db
from split_ledger.services.auth.jwt_handler import get_current_user
from split_ledger.services.expense_service import is_group_member
from split_ledger.services.ledger_store import LedgerStore, SqlLedgerStore


def get_current_user_id(access_token: str = Header(..., description="Access token (without Bearer)")):
    """Extract current user ID from JWT token"""
    if access_token.startswith("Bearer "):
        access_token = access_token.replace("Bearer ", "")
    user_id = get_current_user(access_token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id


def get_ledger_store(db: Session = Depends(get_db)) -> LedgerStore:
    return SqlLedgerStore(db)


def require_group_member(store: LedgerStore, group_id: str, user_id: str) -> None:
    if not is_group_member(store, group_id, user_id):
        raise HTTPException(status_code=403, detail="You are not a member of this group")
