import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy.sql import func
from sqlalchemy import Column, String, Date, DateTime, DECIMAL, Enum, ForeignKey
from split_ledger.db.database import Base


class ExpenseCategory(str, enum.Enum):
    food = "food"
    transport = "transport"
    accommodation = "accommodation"
    entertainment = "entertainment"
    shopping = "shopping"
    utilities = "utilities"
    other = "other"


class SplitType(str, enum.Enum):
    equal = "equal"
    custom = "custom"


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    paid_by = Column(String, nullable=False, index=True)  # Reference to user service
    amount = Column(DECIMAL(10, 2), nullable=False)
    description = Column(String(200), nullable=False)
    category = Column(Enum(ExpenseCategory), nullable=False, default=ExpenseCategory.other)
    expense_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now(), nullable=False, index=True)


class ExpenseShare(Base):
    __tablename__ = "expense_shares"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    expense_id = Column(String, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)  # Reference to user service
    share_amount = Column(DECIMAL(10, 2), nullable=False)
