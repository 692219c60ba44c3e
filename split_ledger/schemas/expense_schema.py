from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Optional, List, Dict
from datetime import date, datetime
from decimal import Decimal

from split_ledger.models.expenses import ExpenseCategory, SplitType


class ExpenseShareBase(BaseModel):
    user_id: str
    share_amount: Decimal = Field(..., ge=0, decimal_places=2)


class ExpenseShareCreate(ExpenseShareBase):
    pass


class ExpenseShareOut(ExpenseShareBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    expense_id: str


class SplitPolicy(BaseModel):
    """How an expense total is divided among members."""
    split_type: SplitType = SplitType.equal
    amounts: Optional[Dict[str, Decimal]] = None  # explicit user_id -> amount, custom only

    @model_validator(mode="after")
    def check_amounts(self):
        if self.split_type == SplitType.custom and self.amounts is None:
            raise ValueError("custom split requires explicit amounts")
        return self

    @classmethod
    def equal(cls) -> "SplitPolicy":
        return cls(split_type=SplitType.equal)

    @classmethod
    def custom(cls, amounts: Dict[str, Decimal]) -> "SplitPolicy":
        return cls(split_type=SplitType.custom, amounts=amounts)


class ExpenseBase(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    description: str = Field(..., max_length=200)
    category: ExpenseCategory = ExpenseCategory.other
    expense_date: date


class ExpenseCreate(ExpenseBase):
    split_type: SplitType = SplitType.equal
    custom_splits: Optional[List[ExpenseShareCreate]] = None

    @model_validator(mode="after")
    def check_custom_splits(self):
        if self.split_type == SplitType.custom:
            if not self.custom_splits:
                raise ValueError("custom_splits is required for a custom split")
            user_ids = [split.user_id for split in self.custom_splits]
            if len(user_ids) != len(set(user_ids)):
                raise ValueError("custom_splits contains duplicate user_id entries")
        return self

    def to_policy(self) -> SplitPolicy:
        if self.split_type == SplitType.custom:
            return SplitPolicy.custom(
                {split.user_id: split.share_amount for split in self.custom_splits}
            )
        return SplitPolicy.equal()


class ExpenseOut(ExpenseBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    paid_by: str
    created_at: Optional[datetime] = None


class ExpenseWithShares(ExpenseOut):
    shares: List[ExpenseShareOut] = []


class MemberBalance(BaseModel):
    user_id: str
    net_balance: Decimal


class DebtSummary(BaseModel):
    user_id: str
    total_paid: Decimal
    total_owed: Decimal
    net_balance: Decimal

    @field_validator("net_balance")
    @classmethod
    def check_net_balance(cls, v, info):
        paid = info.data.get("total_paid")
        owed = info.data.get("total_owed")
        if paid is not None and owed is not None and paid - owed != v:
            raise ValueError("net_balance must equal total_paid - total_owed")
        return v
