"""
Account Store Module

Persistence for bank accounts. Balances live on the account row and are only
changed by the ledger engine, which writes them in the same atomic unit as the
matching transaction record.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
import secrets

from .currency import Money, Currency, mask_account_number
from .storage import StorageInterface, StorageRecord
from .errors import AccountNotFound


@dataclass
class Account(StorageRecord):
    """
    Bank account holding its own running balance
    """
    user_id: str
    account_number: str
    balance: Money
    account_type: str = "checking"
    display_name: Optional[str] = None
    routing_number: Optional[str] = None

    @property
    def currency(self) -> Currency:
        return self.balance.currency

    @property
    def masked_number(self) -> str:
        """Account number as shown to customers"""
        return mask_account_number(self.account_number)

    @property
    def holder_name(self) -> str:
        return self.display_name or self.user_id

    def can_cover(self, amount: Money) -> bool:
        """Check whether a debit of ``amount`` keeps the balance non-negative"""
        return self.balance >= amount

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result.update({
            'user_id': self.user_id,
            'account_number': self.account_number,
            'balance': str(self.balance.amount),
            'currency': self.balance.currency.code,
            'account_type': self.account_type,
            'display_name': self.display_name,
            'routing_number': self.routing_number,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict) -> 'Account':
        return cls(
            id=data['id'],
            created_at=cls.parse_datetime(data['created_at']),
            updated_at=cls.parse_datetime(data['updated_at']),
            user_id=data['user_id'],
            account_number=data['account_number'],
            balance=Money(Decimal(data['balance']), Currency[data['currency']]),
            account_type=data.get('account_type') or "checking",
            display_name=data.get('display_name'),
            routing_number=data.get('routing_number'),
        )


class AccountStore:
    """
    Repository for Account rows
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "accounts"

    def get(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        data = self.storage.load(self.table_name, account_id)
        if data:
            return Account.from_dict(data)
        return None

    def require(self, account_id: str) -> Account:
        """Get account by ID or raise AccountNotFound"""
        account = self.get(account_id) if account_id else None
        if not account:
            raise AccountNotFound(account_id)
        return account

    def get_by_number(self, account_number: str) -> Optional[Account]:
        """Get account by account number"""
        found = self.storage.find(self.table_name, {"account_number": account_number})
        if found:
            return Account.from_dict(found[0])
        return None

    def list_for_user(self, user_id: str) -> List[Account]:
        """All accounts owned by a user handle"""
        accounts = [Account.from_dict(data)
                    for data in self.storage.find(self.table_name, {"user_id": user_id})]
        accounts.sort(key=lambda a: a.created_at)
        return accounts

    def list_all(self) -> List[Account]:
        accounts = [Account.from_dict(data) for data in self.storage.load_all(self.table_name)]
        accounts.sort(key=lambda a: a.created_at)
        return accounts

    def save(self, account: Account) -> None:
        account.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, account.id, account.to_dict())

    def delete(self, account_id: str) -> bool:
        return self.storage.delete(self.table_name, account_id)

    def generate_account_number(self) -> str:
        """Random 8 digit account number not yet in use"""
        while True:
            number = str(10_000_000 + secrets.randbelow(90_000_000))
            if not self.get_by_number(number):
                return number
