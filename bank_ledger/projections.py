"""
Query and Projection Module

Read side of the ledger: filtered, newest-first views of transaction records
and the display shape the customer pages render. Nothing here writes.
"""

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import List, Optional

from .accounts import Account, AccountStore
from .currency import Money, format_currency, mask_account_number
from .transactions import TransactionRecord, TransactionStatus, TransactionStore


CREDIT = "credit"
DEBIT = "debit"


def format_display_date(moment: datetime, tz: tzinfo = timezone.utc) -> str:
    """``Jan 5, 2025, 02:30 PM`` in the given zone"""
    local = moment.astimezone(tz)
    return f"{local:%b} {local.day}, {local:%Y, %I:%M %p}"


@dataclass(frozen=True)
class TransactionView:
    """A transaction record as one account's history shows it"""
    id: str
    description: str
    amount: Money
    is_positive: bool
    direction: str
    status: TransactionStatus
    created_at: datetime
    display_amount: str
    display_date: str
    counterparty_name: Optional[str] = None
    counterparty_number: Optional[str] = None

    @property
    def signed_amount(self) -> Money:
        return self.amount if self.is_positive else -self.amount


def newest_first(records: List[TransactionRecord]) -> List[TransactionRecord]:
    return sorted(records, key=lambda r: r.created_at, reverse=True)


class TransactionQueries:
    """
    Read-only views over the account and transaction stores
    """

    def __init__(self, accounts: AccountStore, transactions: TransactionStore,
                 display_tz: tzinfo = timezone.utc):
        self.accounts = accounts
        self.transactions = transactions
        self.display_tz = display_tz

    def list_by_account(self, account_id: str) -> List[TransactionRecord]:
        """
        Visible records that reference the account by id, or name its account
        number as the recipient. Newest first; unknown accounts yield nothing.
        """
        account = self.accounts.get(account_id)
        if not account:
            return []
        records = self.transactions.find_for_account(account.id, account.account_number)
        return newest_first([r for r in records if r.effective_is_visible])

    def list_pending(self) -> List[TransactionRecord]:
        """Every record awaiting an admin decision, newest first"""
        return newest_first(self.transactions.find_by_status(TransactionStatus.PENDING))

    def direction_for(self, record: TransactionRecord, account: Account) -> str:
        """Whether the record moved money into or out of the viewing account"""
        if record.to_account_id == account.id:
            return CREDIT
        if record.from_account_id == account.id:
            return DEBIT
        if record.recipient_account_number == account.account_number:
            return CREDIT
        return CREDIT if record.effective_is_positive else DEBIT

    def project(self, record: TransactionRecord, account: Optional[Account] = None) -> TransactionView:
        """Shape a record for display, optionally relative to an account"""
        is_positive = record.effective_is_positive
        if account is not None:
            direction = self.direction_for(record, account)
        else:
            direction = CREDIT if is_positive else DEBIT

        recipient = record.recipient
        signed = record.amount if is_positive else -record.amount
        return TransactionView(
            id=record.id,
            description=record.description,
            amount=record.amount,
            is_positive=is_positive,
            direction=direction,
            status=record.status,
            created_at=record.created_at,
            display_amount=format_currency(signed),
            display_date=format_display_date(record.created_at, self.display_tz),
            counterparty_name=recipient.name if recipient else None,
            counterparty_number=mask_account_number(recipient.account_number) if recipient else None,
        )

    def history(self, account_id: str, term: Optional[str] = None,
                direction: Optional[str] = None) -> List[TransactionView]:
        """
        Projected history for an account, filtered by a case-insensitive
        search over description and recipient name, and by direction
        (``credit``, ``debit`` or ``all``).
        """
        account = self.accounts.get(account_id)
        if not account:
            return []

        needle = term.lower() if term else None
        views = []
        for record in self.list_by_account(account_id):
            if needle:
                name = record.recipient.name if record.recipient else None
                haystacks = [record.description, name]
                if not any(h and needle in h.lower() for h in haystacks):
                    continue
            view = self.project(record, account)
            if direction in (CREDIT, DEBIT) and view.direction != direction:
                continue
            views.append(view)
        return views
