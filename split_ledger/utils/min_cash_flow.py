"""
Min-Cash-Flow Algorithm Module

Folds persisted expenses and shares into per-member net balances and reduces
those balances to a short list of point-to-point payments.

The settlement algorithm works by:
1. Dropping members whose balance is exactly zero
2. Sorting the rest ascending by balance (stable, ties keep user_id order),
   so debtors sit at the low end and creditors at the high end
3. Walking two pointers inwards, paying min(|debt|, credit) from the most
   negative member to the most positive one
4. Advancing whichever pointer reached zero

Every iteration zeroes at least one member and the final iteration zeroes
two, so N non-zero balances never need more than N - 1 payments.

This is a greedy approximation. Finding the true minimum number of payments
is NP-hard (it contains subset-sum: any subgroup whose balances cancel can be
settled on its own), so we take linearithmic cost and reproducible output over
exact minimality.

Time Complexity: O(n log n) for sorting + O(n) for matching = O(n log n)
Space Complexity: O(n) for storing balances and settlement results

All arithmetic is on integer cents.

Example Usage:
    from split_ledger.utils.min_cash_flow import min_cash_flow

    settlements = min_cash_flow({"A": Decimal("30"), "B": Decimal("-10"), "C": Decimal("-20")})

    # Result: [{"from": "C", "to": "A", "amount": Decimal("20.00")},
    #          {"from": "B", "to": "A", "amount": Decimal("10.00")}]
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from split_ledger.core.exceptions import Inconsistent
from split_ledger.utils.money import balance_to_cents, from_cents, to_cents

# Configure logger
logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = Decimal('0.01')


def validate_balance_sum(balances: Dict[str, Decimal], tolerance: Decimal = DEFAULT_TOLERANCE) -> None:
    """
    Validate that the sum of all balances is zero within tolerance.

    Every amount paid is owed by someone, so a correct ledger always sums to
    zero. Anything else means the input was not derived from consistent data.

    Raises:
        Inconsistent: If the sum of balances exceeds the tolerance

    Example:
        >>> validate_balance_sum({"A": Decimal("50"), "B": Decimal("-50")})  # Passes
        >>> validate_balance_sum({"A": Decimal("50"), "B": Decimal("-49")})  # Raises Inconsistent
    """
    total = sum(balances.values(), Decimal('0'))
    if abs(total) > tolerance:
        raise Inconsistent(
            "Balances not zero-sum",
            {"total": total, "tolerance": tolerance}
        )


def check_expense_integrity(expenses: Iterable, shares: Iterable) -> None:
    """
    Verify that each expense's shares add up exactly to its amount.

    An expense left behind by a failed compensation (no shares, or only some)
    shows up here instead of skewing everyone's balance.

    Raises:
        Inconsistent: naming every expense whose shares do not match
    """
    allocated: Dict[str, int] = {}
    for share in shares:
        allocated[share.expense_id] = allocated.get(share.expense_id, 0) + to_cents(share.share_amount)

    broken = sorted(
        expense.id for expense in expenses
        if allocated.get(expense.id, 0) != to_cents(expense.amount)
    )
    if broken:
        logger.error(f"Expenses with unbalanced shares: {broken}")
        raise Inconsistent("Expense shares do not sum to the expense amount", {"expense_ids": broken})


def fold_ledger(
    expenses: Iterable,
    shares: Iterable,
    member_ids: Iterable[str] = ()
) -> Dict[str, Tuple[int, int]]:
    """
    Fold expenses and shares into (paid_cents, owed_cents) per user.

    Members with no activity appear with (0, 0). Users that hold shares but
    are no longer members still appear, since their debt did not go away.

    Args:
        expenses: rows with .paid_by and .amount
        shares: rows with .user_id and .share_amount
        member_ids: current group members

    Returns:
        Dictionary mapping user_id -> (paid_cents, owed_cents)
    """
    paid: Dict[str, int] = {user_id: 0 for user_id in member_ids}
    owed: Dict[str, int] = {user_id: 0 for user_id in paid}

    for expense in expenses:
        paid[expense.paid_by] = paid.get(expense.paid_by, 0) + to_cents(expense.amount)
        owed.setdefault(expense.paid_by, 0)

    for share in shares:
        owed[share.user_id] = owed.get(share.user_id, 0) + to_cents(share.share_amount)
        paid.setdefault(share.user_id, 0)

    return {user_id: (paid[user_id], owed[user_id]) for user_id in sorted(paid)}


def calculate_balances(
    expenses: Iterable,
    shares: Iterable,
    member_ids: Iterable[str] = ()
) -> Dict[str, Decimal]:
    """
    Calculate net balance for each user.

    Net balance = total_paid - total_owed
    - Positive balance: User is owed money (creditor)
    - Negative balance: User owes money (debtor)

    Returns:
        Dictionary mapping user_id -> net_balance (Decimal, two places)

    Raises:
        Inconsistent: If the folded balances do not sum to exactly zero
    """
    folded = fold_ledger(expenses, shares, member_ids)
    net_cents = {user_id: paid - owed for user_id, (paid, owed) in folded.items()}

    if sum(net_cents.values()) != 0:
        raise Inconsistent(
            "Balances not zero-sum",
            {"total": from_cents(sum(net_cents.values()))}
        )

    return {user_id: from_cents(cents) for user_id, cents in net_cents.items()}


def min_cash_flow(
    balances: Dict[str, Decimal],
    tolerance: Decimal = DEFAULT_TOLERANCE,
    max_iterations: int = 100000
) -> List[Dict]:
    """
    Reduce net balances to a list of settlement payments.

    Edge Cases Handled:
    - If no balances or only one user: returns []
    - If all balances are zero: returns []
    - If sum of balances != 0 (beyond tolerance): raises Inconsistent
    - If max_iterations exceeded: raises RuntimeError (prevents infinite loops)

    The tolerance check runs on the raw sum, then each balance is rounded to
    cents on its own (ROUND_HALF_EVEN). Sub-cent inputs can therefore leave up
    to one cent unsettled: {A: 0.005, B: 0.005, C: -0.01} passes validation,
    A and B round to 0.00, and the result is [] with C still at -0.01.
    Balances computed from stored shares are always whole cents and exact.

    Args:
        balances: Dictionary mapping user_id -> net_balance
        tolerance: Maximum allowed deviation of the sum from zero (default: 0.01)
        max_iterations: Safety bound on the matching loop

    Returns:
        List of settlement transactions, each with format:
        [{"from": str, "to": str, "amount": Decimal}, ...]

    Raises:
        Inconsistent: If balances don't sum to zero (beyond tolerance)
        RuntimeError: If max_iterations exceeded

    Example:
        >>> min_cash_flow({"A": Decimal("30"), "B": Decimal("-10"), "C": Decimal("-20")})
        [{"from": "C", "to": "A", "amount": Decimal("20.00")},
         {"from": "B", "to": "A", "amount": Decimal("10.00")}]
    """
    if not balances:
        return []

    validate_balance_sum(balances, tolerance)

    # user_id order first, so the stable sort below breaks ties reproducibly
    active = [
        (user_id, cents)
        for user_id, cents in (
            (user_id, balance_to_cents(balances[user_id])) for user_id in sorted(balances)
        )
        if cents != 0
    ]
    if len(active) < 2:
        return []

    active.sort(key=lambda entry: entry[1])
    members = [user_id for user_id, _ in active]
    amounts = [cents for _, cents in active]

    logger.debug(f"Settling {len(members)} non-zero balances: {dict(zip(members, amounts))}")

    settlements = []
    iterations = 0
    i, j = 0, len(amounts) - 1

    while i < j:
        iterations += 1
        if iterations > max_iterations:
            raise RuntimeError(
                f"Settlement loop exceeded max_iterations ({max_iterations}). "
                f"This may indicate malformed input."
            )

        # a leftover rounding cent can leave only one side of the array
        if amounts[i] >= 0 or amounts[j] <= 0:
            break

        amount = min(-amounts[i], amounts[j])
        settlements.append({
            "from": members[i],
            "to": members[j],
            "amount": from_cents(amount)
        })
        logger.debug(f"{members[i]} pays {members[j]} {from_cents(amount)}")

        amounts[i] += amount
        amounts[j] -= amount

        if amounts[i] == 0:
            i += 1
        if amounts[j] == 0:
            j -= 1

    return settlements
