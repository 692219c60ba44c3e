"""
Ledger exception hierarchy.

Services raise these domain errors; the HTTP layer maps them to responses.
"""
from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class InvalidAmount(LedgerError):
    """Raised for non-positive, non-finite or sub-cent amounts"""
    pass


class NoParticipants(LedgerError):
    """Raised when an expense would be split among nobody"""
    pass


class SplitMismatch(LedgerError):
    """Raised when custom shares do not sum to the expense total"""
    pass


class NotGroupMember(LedgerError):
    """Raised when the payer is not a member of the group"""
    pass


class StoreUnavailable(LedgerError):
    """Raised when any call to the backing store fails"""
    pass


class CompensationFailed(LedgerError):
    """
    Raised when the compensating delete of a partially recorded expense fails.

    The store is left holding an expense without its full set of shares and
    needs manual cleanup. Never present this as a retryable failure.
    """

    def __init__(self, message: str, expense_id: str, original_error: Optional[Exception] = None,
                 details: dict = None):
        details = dict(details or {})
        details.setdefault("expense_id", expense_id)
        super().__init__(message, details)
        self.expense_id = expense_id
        self.original_error = original_error


class Inconsistent(LedgerError):
    """Raised when loaded ledger data does not conserve money"""
    pass
