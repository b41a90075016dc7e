"""
Ledger Engine

The only writer of account balances and transaction records. Every operation
mutates the balance and appends the matching record inside one storage
atomic unit, while holding the per-account lock(s), so a failure leaves
neither change behind and concurrent debits of one account serialize on the
sufficiency check.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Optional
from contextlib import contextmanager, ExitStack
import re
import threading
import uuid

from .currency import Money, Currency, MAX_AMOUNT, parse_amount
from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .accounts import Account, AccountStore
from .transactions import (
    TransactionRecord, TransactionStatus, TransactionStore, RecipientDetails
)
from .users import UserDirectory
from .context import RequestContext
from .errors import (
    LedgerError, InsufficientFunds, InvalidAmount, DuplicateAccountNumber
)
from .logging_config import get_logger, log_action


ADMIN_CREDIT_DESCRIPTION = "Balance added by admin"
ADMIN_DEBIT_DESCRIPTION = "Balance deducted by admin"
EXTERNAL_TRANSFER_DESCRIPTION = "Transfer to external account"

HUNDRED = Decimal("100")

TAX_RECIPIENT = RecipientDetails(name="Internal Revenue Service", account_number="IRS-TAX-DEDUCT")
FEE_RECIPIENT = RecipientDetails(name="Processing Fee", account_number="WF-PROC-FEE")
ADMIN_RECIPIENT = RecipientDetails(name="Trusted Admin", account_number="ADMIN-DEDUCT")

_ACCOUNT_ID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE
)


def looks_like_account_id(value: Optional[str]) -> bool:
    """Internal account ids are UUIDs; anything else is an external account number"""
    return bool(value) and bool(_ACCOUNT_ID_PATTERN.match(value))


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _deduction_value(value: Any, label: str, ceiling: Decimal) -> Decimal:
    try:
        number = _decimal(value)
    except InvalidOperation:
        raise InvalidAmount(f"{label} must be numeric, got {value!r}")
    if not number.is_finite() or number < 0 or number > ceiling:
        raise InvalidAmount(f"{label} must be between 0 and {ceiling}, got {value}")
    return number


def _format_rate(rate: Any) -> str:
    return f"{_decimal(rate).normalize():f}"


@dataclass(frozen=True)
class TaxConfig:
    """Percentage tax withheld from an admin credit"""
    rate: Decimal = Decimal('2.0')
    enabled: bool = True


@dataclass(frozen=True)
class FeeConfig:
    """Percentage processing fee clamped to [min_fee, max_fee]"""
    rate: Decimal = Decimal('0.5')
    min_fee: Decimal = Decimal('1.50')
    max_fee: Decimal = Decimal('25.00')
    enabled: bool = True


@dataclass(frozen=True)
class DeductionBreakdown:
    gross: Money
    tax: Money
    fee: Money
    net: Money


def compute_deductions(
    gross: Money,
    tax: Optional[TaxConfig] = None,
    fee: Optional[FeeConfig] = None
) -> DeductionBreakdown:
    """
    Split a gross admin credit into tax, fee and net.

    Tax is rounded half-up to cents. The fee is clamped with the maximum
    taking precedence over the minimum, then rounded to cents.

    Raises:
        InvalidAmount: If a rate is outside 0-100 or a fee bound is negative
    """
    zero = Money.zero(gross.currency)
    tax_amount = zero
    if tax and tax.enabled:
        tax_rate = _deduction_value(tax.rate, "Tax rate", HUNDRED)
        tax_amount = Money(gross.amount * tax_rate / HUNDRED, gross.currency)

    fee_amount = zero
    if fee and fee.enabled:
        fee_rate = _deduction_value(fee.rate, "Fee rate", HUNDRED)
        min_fee = _deduction_value(fee.min_fee, "Minimum fee", MAX_AMOUNT)
        max_fee = _deduction_value(fee.max_fee, "Maximum fee", MAX_AMOUNT)
        raw_fee = gross.amount * fee_rate / HUNDRED
        fee_amount = Money(min(max(raw_fee, min_fee), max_fee), gross.currency)

    return DeductionBreakdown(
        gross=gross,
        tax=tax_amount,
        fee=fee_amount,
        net=gross - tax_amount - fee_amount
    )


@dataclass
class AdjustmentResult:
    """Records written by an admin credit with deductions"""
    main: TransactionRecord
    breakdown: DeductionBreakdown
    tax: Optional[TransactionRecord] = None
    fee: Optional[TransactionRecord] = None

    @property
    def records(self) -> List[TransactionRecord]:
        return [r for r in (self.main, self.tax, self.fee) if r is not None]


class LedgerEngine:
    """
    Applies balance mutations and their transaction records as single units
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts = AccountStore(storage)
        self.transactions = TransactionStore(storage)
        self.users = UserDirectory(storage, audit_trail)
        self.logger = get_logger("bank_ledger.ledger")

        self._account_locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Locking and unit-of-work helpers
    # ------------------------------------------------------------------

    def _lock_for(self, account_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._account_locks.get(account_id)
            if lock is None:
                lock = self._account_locks[account_id] = threading.RLock()
            return lock

    def _release_locks(self, *account_ids: str) -> None:
        """Forget the locks of deleted accounts once their unit has committed"""
        with self._locks_guard:
            for account_id in account_ids:
                self._account_locks.pop(account_id, None)

    @contextmanager
    def account_locks(self, *account_ids: Optional[str]) -> Iterator[None]:
        """
        Hold the locks of every given account. Acquired in sorted order so two
        operations over the same pair of accounts cannot deadlock.
        """
        with ExitStack() as stack:
            for account_id in sorted({a for a in account_ids if a}):
                stack.enter_context(self._lock_for(account_id))
            yield

    @contextmanager
    def unit_of_work(self, ctx: RequestContext, action: str,
                     *account_ids: Optional[str]) -> Iterator[None]:
        """Locks plus one atomic storage unit; failures are logged and re-raised"""
        try:
            with self.account_locks(*account_ids), self.storage.atomic():
                yield
        except LedgerError as e:
            log_action(
                self.logger, "warning", f"{action} failed: {e}",
                action=action, extra={"error": type(e).__name__,
                                      "accounts": [a for a in account_ids if a]},
                **ctx.log_fields()
            )
            raise

    def _coerce_amount(self, amount: Any, currency: Currency,
                       allow_zero: bool = False) -> Money:
        money = parse_amount(amount, currency)
        if money.currency != currency:
            raise InvalidAmount(
                f"Amount currency {money.currency.code} does not match account currency {currency.code}"
            )
        if money.is_negative() or (money.is_zero() and not allow_zero):
            raise InvalidAmount(f"Amount must be positive, got {money.to_string()}")
        return money

    def debit_account(self, account: Account, amount: Money) -> None:
        """
        Subtract from a balance after the sufficiency check. Callers must hold
        the account lock and be inside an atomic unit.
        """
        if not account.can_cover(amount):
            raise InsufficientFunds(account.id, account.balance.to_string(), amount.to_string())
        account.balance = account.balance - amount
        self.accounts.save(account)

    def credit_account(self, account: Account, amount: Money) -> None:
        """Add to a balance. Same locking contract as debit_account."""
        account.balance = account.balance + amount
        self.accounts.save(account)

    def _new_record(self, amount: Money, description: str, status: TransactionStatus,
                    created_at: Optional[datetime] = None, **fields) -> TransactionRecord:
        now = created_at or datetime.now(timezone.utc)
        return TransactionRecord(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            amount=amount,
            description=description,
            status=status,
            **fields
        )

    def _audit(self, ctx: RequestContext, event_type: AuditEventType, entity_type: str,
               entity_id: str, metadata: Dict[str, Any]) -> None:
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata,
            user_id=ctx.actor_id,
            correlation_id=ctx.correlation_id
        )

    def _log_posted(self, ctx: RequestContext, action: str, record: TransactionRecord,
                    balance: Optional[Money] = None) -> None:
        extra = {
            "transaction_id": record.id,
            "amount": record.amount.to_string(),
            "from_account": record.from_account_id,
            "to_account": record.to_account_id,
            "status": record.status.value,
        }
        if balance is not None:
            extra["balance_after"] = balance.to_string()
        log_action(
            self.logger, "info", f"{action} posted",
            action=action, resource=f"transaction:{record.id}", extra=extra,
            **ctx.log_fields()
        )

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def create_account(
        self,
        ctx: RequestContext,
        user_id: str,
        initial_balance: Any = Decimal('0'),
        account_type: str = "checking",
        account_number: Optional[str] = None,
        display_name: Optional[str] = None,
        routing_number: Optional[str] = None,
        currency: Currency = Currency.USD
    ) -> Account:
        """
        Open an account for a user handle, registering the user first when the
        handle is unknown. The opening balance is set directly and does not
        produce a transaction record.
        """
        opening = self._coerce_amount(initial_balance, currency, allow_zero=True)

        with self.unit_of_work(ctx, "create_account"):
            if account_number and self.accounts.get_by_number(account_number):
                raise DuplicateAccountNumber(account_number)
            if not self.users.get_user_by_handle(user_id):
                self.users.create_user(ctx, user_id, full_name=display_name)

            now = datetime.now(timezone.utc)
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                user_id=user_id,
                account_number=account_number or self.accounts.generate_account_number(),
                balance=opening,
                account_type=account_type,
                display_name=display_name or user_id,
                routing_number=routing_number
            )
            self.accounts.save(account)
            self._audit(ctx, AuditEventType.ACCOUNT_CREATED, "account", account.id, {
                "user_id": user_id,
                "account_number": account.account_number,
                "opening_balance": opening.amount,
                "currency": currency.code,
            })

        log_action(self.logger, "info", "Account created", action="create_account",
                   resource=f"account:{account.id}", **ctx.log_fields())
        return account

    def delete_account(self, ctx: RequestContext, account_id: str) -> int:
        """
        Delete an account and every record referencing it by id.

        Returns:
            Number of transaction records removed
        """
        with self.unit_of_work(ctx, "delete_account", account_id):
            account = self.accounts.require(account_id)
            removed = self._delete_account_cascade(ctx, account)
        self._release_locks(account_id)

        log_action(self.logger, "info", "Account deleted", action="delete_account",
                   resource=f"account:{account_id}", extra={"records_removed": removed},
                   **ctx.log_fields())
        return removed

    def _delete_account_cascade(self, ctx: RequestContext, account: Account) -> int:
        removed = self.transactions.delete_for_account(account.id)
        self.accounts.delete(account.id)
        self._audit(ctx, AuditEventType.ACCOUNT_DELETED, "account", account.id, {
            "account_number": account.account_number,
            "final_balance": account.balance.amount,
            "records_removed": removed,
        })
        return removed

    def delete_user(self, ctx: RequestContext, user_record_id: str) -> int:
        """
        Delete a user with all of their accounts and those accounts' records.

        The account list is read again once the locks are held. If an account
        was opened in between, the unit is abandoned and retried with the
        larger set so every account is deleted under its own lock.

        Returns:
            Number of accounts removed
        """
        user = self.users.require_user(user_record_id)
        locked_ids = {a.id for a in self.accounts.list_for_user(user.user_id)}

        while True:
            with self.unit_of_work(ctx, "delete_user", *locked_ids):
                accounts = self.accounts.list_for_user(user.user_id)
                current_ids = {a.id for a in accounts}
                if current_ids <= locked_ids:
                    for account in accounts:
                        self._delete_account_cascade(ctx, account)
                    self.users.remove(user.id)
                    self._audit(ctx, AuditEventType.USER_DELETED, "user", user.id, {
                        "user_id": user.user_id,
                        "accounts_removed": len(accounts),
                    })
                    break
            locked_ids |= current_ids
        self._release_locks(*locked_ids)

        log_action(self.logger, "info", "User deleted", action="delete_user",
                   resource=f"user:{user.id}", **ctx.log_fields())
        return len(accounts)

    # ------------------------------------------------------------------
    # Customer operations
    # ------------------------------------------------------------------

    def deposit(
        self,
        ctx: RequestContext,
        account_id: str,
        amount: Any,
        description: str = "Deposit",
        is_positive: bool = True,
        is_visible: bool = True
    ) -> TransactionRecord:
        """
        Credit an account and record the deposit

        Raises:
            AccountNotFound: If the account does not exist
            InvalidAmount: If the amount is not positive
        """
        with self.unit_of_work(ctx, "deposit", account_id):
            account = self.accounts.require(account_id)
            money = self._coerce_amount(amount, account.currency)

            self.credit_account(account, money)
            record = self.transactions.insert(self._new_record(
                money, description, TransactionStatus.COMPLETED,
                to_account_id=account.id,
                is_positive=is_positive,
                is_visible=is_visible
            ))
            self._audit(ctx, AuditEventType.DEPOSIT_POSTED, "account", account.id, {
                "transaction_id": record.id,
                "amount": money.amount,
                "balance_after": account.balance.amount,
            })

        self._log_posted(ctx, "deposit", record, account.balance)
        return record

    def withdraw(
        self,
        ctx: RequestContext,
        account_id: str,
        amount: Any,
        description: str = "Withdrawal",
        is_positive: bool = False,
        is_visible: bool = True
    ) -> TransactionRecord:
        """
        Debit an account and record the withdrawal

        Raises:
            AccountNotFound: If the account does not exist
            InvalidAmount: If the amount is not positive
            InsufficientFunds: If the balance is below the amount
        """
        with self.unit_of_work(ctx, "withdraw", account_id):
            account = self.accounts.require(account_id)
            money = self._coerce_amount(amount, account.currency)

            self.debit_account(account, money)
            record = self.transactions.insert(self._new_record(
                money, description, TransactionStatus.COMPLETED,
                from_account_id=account.id,
                is_positive=is_positive,
                is_visible=is_visible
            ))
            self._audit(ctx, AuditEventType.WITHDRAWAL_POSTED, "account", account.id, {
                "transaction_id": record.id,
                "amount": money.amount,
                "balance_after": account.balance.amount,
            })

        self._log_posted(ctx, "withdraw", record, account.balance)
        return record

    def transfer(
        self,
        ctx: RequestContext,
        from_account_id: str,
        amount: Any,
        to_account_id: Optional[str] = None,
        recipient: Optional[RecipientDetails] = None,
        description: Optional[str] = None
    ) -> TransactionRecord:
        """
        Move money out of an account, crediting the destination when it is an
        account of this bank.

        A destination that is not an account id is treated as an external
        account number and stored on the recipient details. A destination id
        that does not resolve still debits the source and writes the record;
        only the credit leg is skipped.

        Raises:
            AccountNotFound: If the source account does not exist
            InvalidAmount: If the amount is not positive
            InsufficientFunds: If the source balance is below the amount
        """
        if to_account_id and not looks_like_account_id(to_account_id):
            recipient = recipient or RecipientDetails()
            if not recipient.account_number:
                recipient = replace(recipient, account_number=to_account_id)
            to_account_id = None

        if not description:
            description = "Transfer" if to_account_id else EXTERNAL_TRANSFER_DESCRIPTION

        with self.unit_of_work(ctx, "transfer", from_account_id, to_account_id):
            source = self.accounts.require(from_account_id)
            money = self._coerce_amount(amount, source.currency)

            self.debit_account(source, money)

            destination = self.accounts.get(to_account_id) if to_account_id else None
            if destination:
                if destination.currency != source.currency:
                    raise InvalidAmount(
                        f"Cannot transfer {source.currency.code} into a "
                        f"{destination.currency.code} account"
                    )
                self.credit_account(destination, money)
            elif to_account_id:
                log_action(
                    self.logger, "warning",
                    "Transfer destination not found, credit leg skipped",
                    action="transfer", resource=f"account:{to_account_id}",
                    extra={"from_account": source.id, "amount": money.to_string()},
                    **ctx.log_fields()
                )

            record = self.transactions.insert(self._new_record(
                money, description, TransactionStatus.COMPLETED,
                from_account_id=source.id,
                to_account_id=to_account_id,
                recipient=recipient
            ))
            self._audit(ctx, AuditEventType.TRANSFER_POSTED, "account", source.id, {
                "transaction_id": record.id,
                "amount": money.amount,
                "to_account": to_account_id,
                "credited": destination is not None,
                "external_account": recipient.account_number if recipient else None,
            })

        self._log_posted(ctx, "transfer", record, source.balance)
        return record

    def submit_pending(
        self,
        ctx: RequestContext,
        amount: Any,
        from_account_id: Optional[str] = None,
        to_account_id: Optional[str] = None,
        recipient: Optional[RecipientDetails] = None,
        description: Optional[str] = None
    ) -> TransactionRecord:
        """
        Record a transaction for manual review. Balances are untouched until
        the record is approved.

        Raises:
            AccountNotFound: If neither side names an existing account
            InvalidAmount: If the amount is not positive
        """
        with self.unit_of_work(ctx, "submit_pending"):
            anchor = self.accounts.require(from_account_id or to_account_id)
            if from_account_id and to_account_id:
                self.accounts.require(to_account_id)
            money = self._coerce_amount(amount, anchor.currency)

            record = self.transactions.insert(self._new_record(
                money, description or "", TransactionStatus.PENDING,
                from_account_id=from_account_id,
                to_account_id=to_account_id,
                recipient=recipient
            ))
            self._audit(ctx, AuditEventType.TRANSACTION_SUBMITTED, "transaction", record.id, {
                "amount": money.amount,
                "from_account": from_account_id,
                "to_account": to_account_id,
            })

        self._log_posted(ctx, "submit_pending", record)
        return record

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def admin_adjust_balance_with_deductions(
        self,
        ctx: RequestContext,
        account_id: str,
        gross_amount: Any,
        description: Optional[str] = None,
        tax: Optional[TaxConfig] = None,
        fee: Optional[FeeConfig] = None,
        is_invisible: bool = False
    ) -> AdjustmentResult:
        """
        Credit the net of a gross amount after tax and fee, writing the credit
        and each deduction as its own record.

        The balance moves once, by the net amount. The tax and fee records are
        timestamped one and two seconds after the main record so histories
        list them in order. All records share one visibility flag.

        Raises:
            AccountNotFound: If the account does not exist
            InvalidAmount: If the gross amount, or what is left after
                deductions, is not positive
        """
        description = description or ADMIN_CREDIT_DESCRIPTION
        is_visible = not is_invisible

        with self.unit_of_work(ctx, "admin_adjust_balance", account_id):
            account = self.accounts.require(account_id)
            gross = self._coerce_amount(gross_amount, account.currency)
            breakdown = compute_deductions(gross, tax, fee)
            if not breakdown.net.is_positive():
                raise InvalidAmount(
                    f"Deductions {(breakdown.tax + breakdown.fee).to_string()} "
                    f"consume the whole amount {gross.to_string()}"
                )

            self.credit_account(account, breakdown.net)

            now = datetime.now(timezone.utc)
            main = self.transactions.insert(self._new_record(
                breakdown.net, description, TransactionStatus.COMPLETED,
                created_at=now,
                to_account_id=account.id,
                recipient=RecipientDetails(name=account.holder_name,
                                           account_number=account.account_number),
                is_positive=True,
                is_visible=is_visible
            ))
            result = AdjustmentResult(main=main, breakdown=breakdown)

            if breakdown.tax.is_positive():
                result.tax = self.transactions.insert(self._new_record(
                    breakdown.tax, f"Tax deduction ({_format_rate(tax.rate)}%)",
                    TransactionStatus.COMPLETED,
                    created_at=now + timedelta(seconds=1),
                    from_account_id=account.id,
                    recipient=TAX_RECIPIENT,
                    is_positive=False,
                    is_visible=is_visible
                ))

            if breakdown.fee.is_positive():
                result.fee = self.transactions.insert(self._new_record(
                    breakdown.fee, f"Processing Fee ({_format_rate(fee.rate)}%)",
                    TransactionStatus.COMPLETED,
                    created_at=now + timedelta(seconds=2),
                    from_account_id=account.id,
                    recipient=FEE_RECIPIENT,
                    is_positive=False,
                    is_visible=is_visible
                ))

            self._audit(ctx, AuditEventType.ADMIN_ADJUSTMENT_POSTED, "account", account.id, {
                "transaction_ids": [r.id for r in result.records],
                "gross": gross.amount,
                "tax": breakdown.tax.amount,
                "fee": breakdown.fee.amount,
                "net": breakdown.net.amount,
                "visible": is_visible,
                "balance_after": account.balance.amount,
            })

        self._log_posted(ctx, "admin_adjust_balance", main, account.balance)
        return result

    def admin_deduct_balance(
        self,
        ctx: RequestContext,
        account_id: str,
        amount: Any,
        description: Optional[str] = None,
        is_invisible: bool = False
    ) -> TransactionRecord:
        """
        Remove funds from an account on an admin's instruction. Subject to the
        same sufficiency check as customer withdrawals.

        Raises:
            AccountNotFound: If the account does not exist
            InvalidAmount: If the amount is not positive
            InsufficientFunds: If the balance is below the amount
        """
        with self.unit_of_work(ctx, "admin_deduct_balance", account_id):
            account = self.accounts.require(account_id)
            money = self._coerce_amount(amount, account.currency)

            self.debit_account(account, money)
            record = self.transactions.insert(self._new_record(
                money, description or ADMIN_DEBIT_DESCRIPTION, TransactionStatus.COMPLETED,
                from_account_id=account.id,
                recipient=ADMIN_RECIPIENT,
                is_positive=False,
                is_visible=not is_invisible
            ))
            self._audit(ctx, AuditEventType.ADMIN_DEDUCTION_POSTED, "account", account.id, {
                "transaction_id": record.id,
                "amount": money.amount,
                "visible": not is_invisible,
                "balance_after": account.balance.amount,
            })

        self._log_posted(ctx, "admin_deduct_balance", record, account.balance)
        return record

    def get_balance(self, account_id: str) -> Money:
        return self.accounts.require(account_id).balance
