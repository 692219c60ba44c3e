"""
Split Calculator

Turns an expense total and a split policy into exact per-member shares.

All division happens on integer cents. For an equal split the total is
truncated per member and the leftover cents (always fewer than the number
of members) are handed out one at a time in ascending user_id order, so the
shares always add back up to the total and never differ by more than one cent.

Example:
    >>> compute_shares(Decimal("100.00"), ["c", "a", "b"], SplitPolicy.equal())
    [ExpenseShareCreate(user_id='a', share_amount=Decimal('33.34')),
     ExpenseShareCreate(user_id='b', share_amount=Decimal('33.33')),
     ExpenseShareCreate(user_id='c', share_amount=Decimal('33.33'))]
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List

from split_ledger.core.exceptions import InvalidAmount, NoParticipants, SplitMismatch
from split_ledger.models.expenses import SplitType
from split_ledger.schemas.expense_schema import ExpenseShareCreate, SplitPolicy
from split_ledger.utils.money import from_cents, to_cents

logger = logging.getLogger(__name__)


def validate_total(total_amount) -> int:
    """Return the total in cents, raising InvalidAmount unless it is a positive cent amount."""
    total_cents = to_cents(total_amount)
    if total_cents <= 0:
        raise InvalidAmount("Expense amount must be positive", {"amount": total_amount})
    return total_cents


def split_equally(total_cents: int, member_ids: List[str]) -> Dict[str, int]:
    """Divide total_cents among member_ids, remainder cents going to the lowest ids first."""
    ordered = sorted(member_ids)
    base, remainder = divmod(total_cents, len(ordered))
    return {
        user_id: base + (1 if position < remainder else 0)
        for position, user_id in enumerate(ordered)
    }


def split_custom(total_cents: int, member_ids: Iterable[str], amounts: Dict[str, Decimal]) -> Dict[str, int]:
    """Validate explicit amounts against the total and the member set. Never rescales."""
    members = set(member_ids)
    unknown = sorted(set(amounts) - members)
    if unknown:
        raise SplitMismatch("Custom split names users outside the group", {"unknown": unknown})

    cents = {}
    for user_id in sorted(amounts):
        share_cents = to_cents(amounts[user_id])
        if share_cents < 0:
            raise InvalidAmount("Share amounts cannot be negative", {"user_id": user_id})
        cents[user_id] = share_cents

    allocated = sum(cents.values())
    if allocated != total_cents:
        raise SplitMismatch(
            "Custom shares must sum to the expense amount",
            {"total": from_cents(total_cents), "allocated": from_cents(allocated)}
        )
    return cents


def compute_shares(total_amount, member_ids: Iterable[str], policy: SplitPolicy) -> List[ExpenseShareCreate]:
    """
    Compute the shares of an expense.

    Args:
        total_amount: Expense total (Decimal, two places)
        member_ids: Resolved group members to split among
        policy: SplitPolicy.equal() or SplitPolicy.custom({user_id: amount})

    Returns:
        One ExpenseShareCreate per participant, ordered by user_id, whose
        amounts sum exactly to total_amount

    Raises:
        InvalidAmount: total is not a positive amount of whole cents
        NoParticipants: there is nobody to split among
        SplitMismatch: custom amounts do not add up, or name non-members
    """
    total_cents = validate_total(total_amount)
    member_ids = list(dict.fromkeys(member_ids))

    if not member_ids:
        raise NoParticipants("Cannot split an expense among zero members")

    if policy.split_type == SplitType.custom:
        if not policy.amounts:
            raise NoParticipants("Custom split has no participants")
        cents = split_custom(total_cents, member_ids, policy.amounts)
    else:
        cents = split_equally(total_cents, member_ids)

    logger.debug(f"Split {from_cents(total_cents)} {policy.split_type.value} among {len(cents)} members")

    return [
        ExpenseShareCreate(user_id=user_id, share_amount=from_cents(share_cents))
        for user_id, share_cents in cents.items()
    ]
