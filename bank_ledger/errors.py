"""
Ledger Error Taxonomy

All ledger failures derive from LedgerError, which is a ValueError so callers
that only care about "bad request" can keep catching ValueError.
"""

from typing import Optional


class LedgerError(ValueError):
    """Base class for ledger failures"""


class AccountNotFound(LedgerError):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class TransactionNotFound(LedgerError):
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class UserNotFound(LedgerError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class DuplicateUser(LedgerError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} already exists")


class InsufficientFunds(LedgerError):
    """Raised when a debit would drive a balance below zero"""

    def __init__(self, account_id: str, available: str, requested: str):
        self.account_id = account_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient funds: available {available}, requested {requested}"
        )


class InvalidAmount(LedgerError):
    """Non-positive, non-numeric or wrong-currency amount"""


class InvalidState(LedgerError):
    """Operation not allowed in the transaction's current status"""

    def __init__(self, transaction_id: str, status: str, message: Optional[str] = None):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(
            message or f"Transaction {transaction_id} is {status}, expected pending"
        )


class DuplicateAccountNumber(LedgerError):
    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"Account number {account_number} is already in use")
