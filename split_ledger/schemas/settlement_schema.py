from pydantic import BaseModel
from decimal import Decimal


class OptimizedSettlement(BaseModel):
    """A suggested payment: from_user_id pays to_user_id the amount. Never persisted."""
    from_user_id: str
    to_user_id: str
    amount: Decimal
