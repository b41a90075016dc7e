"""
Transaction Record Store Module

Append-mostly store of transaction records. Amounts are stored as
non-negative magnitudes; the display polarity comes from the ``is_positive``
flag or, for records without one, from the description and the record's
structure.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .errors import TransactionNotFound


DEFAULT_DESCRIPTION = "Transaction"

NEGATIVE_KEYWORDS = ("Tax", "tax", "Fee", "fee")
ADMIN_CREDIT_KEYWORD = "added by admin"
ADMIN_DEBIT_KEYWORD = "deducted by admin"


class TransactionStatus(Enum):
    """Approval status of a transaction record"""
    PENDING = "pending"      # Awaiting admin decision, no balance effect yet
    COMPLETED = "completed"  # Balance effect applied
    REJECTED = "rejected"    # Declined, never touches balances

    @property
    def is_terminal(self) -> bool:
        return self != TransactionStatus.PENDING


@dataclass(frozen=True)
class RecipientDetails:
    """Counterparty data for payees outside the bank"""
    name: Optional[str] = None
    email: Optional[str] = None
    account_number: Optional[str] = None
    routing_number: Optional[str] = None
    bank_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            'name': self.name,
            'email': self.email,
            'account_number': self.account_number,
            'routing_number': self.routing_number,
            'bank_name': self.bank_name,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['RecipientDetails']:
        if not data:
            return None
        return cls(**{key: data.get(key) for key in
                      ('name', 'email', 'account_number', 'routing_number', 'bank_name')})


def derive_is_positive(
    description: Optional[str],
    from_account_id: Optional[str],
    to_account_id: Optional[str],
    is_positive: Optional[bool] = None
) -> bool:
    """
    Decide the display polarity of a record.

    Precedence: explicit flag, then description keywords (tax/fee and
    "deducted by admin" are negative, "added by admin" is positive), then
    structure (no source is a deposit, no destination is a withdrawal), then
    positive.
    """
    if is_positive is not None:
        return is_positive

    if description:
        if any(keyword in description for keyword in NEGATIVE_KEYWORDS):
            return False
        if ADMIN_CREDIT_KEYWORD in description:
            return True
        if ADMIN_DEBIT_KEYWORD in description:
            return False

    if from_account_id is None and to_account_id:
        return True
    if from_account_id and to_account_id is None:
        return False

    return True


@dataclass
class TransactionRecord(StorageRecord):
    """
    One ledger line. ``from_account_id`` is None for deposits and
    ``to_account_id`` is None for withdrawals and external transfers.
    """
    amount: Money
    description: str
    status: TransactionStatus
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    recipient: Optional[RecipientDetails] = None
    is_positive: Optional[bool] = None
    is_visible: Optional[bool] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None

    def __post_init__(self):
        if self.amount.is_negative():
            raise ValueError("Transaction amount is stored as a non-negative magnitude")
        if not self.description:
            self.description = DEFAULT_DESCRIPTION

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    @property
    def effective_is_positive(self) -> bool:
        return derive_is_positive(
            self.description, self.from_account_id, self.to_account_id, self.is_positive
        )

    @property
    def effective_is_visible(self) -> bool:
        return self.is_visible is not False

    @property
    def recipient_account_number(self) -> Optional[str]:
        return self.recipient.account_number if self.recipient else None

    def involves(self, account_id: str, account_number: Optional[str] = None) -> bool:
        """Check whether the record belongs in an account's history"""
        if account_id and account_id in (self.from_account_id, self.to_account_id):
            return True
        return bool(account_number) and self.recipient_account_number == account_number

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            'amount': str(self.amount.amount),
            'currency': self.amount.currency.code,
            'description': self.description,
            'status': self.status.value,
            'from_account_id': self.from_account_id,
            'to_account_id': self.to_account_id,
            'recipient': self.recipient.to_dict() if self.recipient else None,
            'is_positive': self.is_positive,
            'is_visible': self.is_visible,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'approved_by': self.approved_by,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransactionRecord':
        return cls(
            id=data['id'],
            created_at=cls.parse_datetime(data['created_at']),
            updated_at=cls.parse_datetime(data['updated_at']),
            amount=Money(Decimal(data['amount']), Currency[data['currency']]),
            description=data.get('description') or DEFAULT_DESCRIPTION,
            status=TransactionStatus(data['status']),
            from_account_id=data.get('from_account_id'),
            to_account_id=data.get('to_account_id'),
            recipient=RecipientDetails.from_dict(data.get('recipient')),
            is_positive=data.get('is_positive'),
            is_visible=data.get('is_visible'),
            approved_at=cls.parse_datetime(data.get('approved_at')),
            approved_by=data.get('approved_by'),
        )


class TransactionStore:
    """
    Repository for TransactionRecord rows
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transactions"

    def insert(self, record: TransactionRecord) -> TransactionRecord:
        """
        Persist a new record. A missing sign flag is resolved and stored so
        later reads never depend on the keyword rule changing.
        """
        if record.is_positive is None:
            record.is_positive = record.effective_is_positive
        if record.is_visible is None:
            record.is_visible = True
        self.storage.save(self.table_name, record.id, record.to_dict())
        return record

    def update(self, record: TransactionRecord) -> None:
        record.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, record.id, record.to_dict())

    def get(self, transaction_id: str) -> Optional[TransactionRecord]:
        data = self.storage.load(self.table_name, transaction_id)
        if data:
            return TransactionRecord.from_dict(data)
        return None

    def require(self, transaction_id: str) -> TransactionRecord:
        record = self.get(transaction_id)
        if not record:
            raise TransactionNotFound(transaction_id)
        return record

    def list_all(self) -> List[TransactionRecord]:
        return [TransactionRecord.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def find_by_status(self, status: TransactionStatus) -> List[TransactionRecord]:
        return [TransactionRecord.from_dict(data)
                for data in self.storage.find(self.table_name, {"status": status.value})]

    def find_for_account(self, account_id: str,
                         account_number: Optional[str] = None) -> List[TransactionRecord]:
        """Every record referencing the account, visible or not"""
        return [record for record in self.list_all()
                if record.involves(account_id, account_number)]

    def delete_for_account(self, account_id: str) -> int:
        """Delete records that reference the account by id; returns the count"""
        deleted = 0
        for record in self.list_all():
            if account_id in (record.from_account_id, record.to_account_id):
                if self.storage.delete(self.table_name, record.id):
                    deleted += 1
        return deleted
