"""
Approval Workflow Module

Pending transaction records carry no balance effect. An admin decision moves
them to a terminal status:

    pending -> completed   (approve: debit source, credit destination)
    pending -> rejected    (reject: no balance effect)

Completed and rejected records never change status again, so an approval can
only ever be applied once.
"""

from datetime import datetime, timezone
from typing import Optional

from .audit import AuditEventType
from .context import RequestContext
from .errors import InvalidState
from .ledger import LedgerEngine
from .transactions import TransactionRecord, TransactionStatus
from .logging_config import get_logger, log_action


class ApprovalWorkflow:
    """Admin gate for pending transactions"""

    def __init__(self, engine: LedgerEngine):
        self.engine = engine
        self.transactions = engine.transactions
        self.accounts = engine.accounts
        self.logger = get_logger("bank_ledger.approvals")

    def _require_pending(self, transaction_id: str) -> TransactionRecord:
        record = self.transactions.require(transaction_id)
        if record.status != TransactionStatus.PENDING:
            raise InvalidState(transaction_id, record.status.value)
        return record

    def approve(self, ctx: RequestContext, transaction_id: str,
                approver_id: Optional[str] = None) -> TransactionRecord:
        """
        Apply a pending record's deferred balance effect and complete it

        The source account, when present, is debited under the usual
        sufficiency check; the destination, when present and still open, is
        credited.

        Raises:
            TransactionNotFound: If the record does not exist
            InvalidState: If the record is not pending
            InsufficientFunds: If the source cannot cover the amount
        """
        approver_id = approver_id or ctx.actor_id
        peek = self.transactions.require(transaction_id)

        with self.engine.unit_of_work(ctx, "approve_transaction",
                                      peek.from_account_id, peek.to_account_id):
            # Re-read under the locks so a concurrent decision is seen
            record = self._require_pending(transaction_id)

            if record.from_account_id:
                source = self.accounts.get(record.from_account_id)
                if source:
                    self.engine.debit_account(source, record.amount)
            if record.to_account_id:
                destination = self.accounts.get(record.to_account_id)
                if destination:
                    self.engine.credit_account(destination, record.amount)

            record.status = TransactionStatus.COMPLETED
            record.approved_at = datetime.now(timezone.utc)
            record.approved_by = approver_id
            self.transactions.update(record)

            self.engine.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_APPROVED,
                entity_type="transaction",
                entity_id=record.id,
                metadata={
                    "amount": record.amount.amount,
                    "from_account": record.from_account_id,
                    "to_account": record.to_account_id,
                    "approved_by": approver_id,
                },
                user_id=ctx.actor_id,
                correlation_id=ctx.correlation_id
            )

        log_action(self.logger, "info", "Transaction approved",
                   action="approve_transaction", resource=f"transaction:{record.id}",
                   extra={"approved_by": approver_id, "amount": record.amount.to_string()},
                   **ctx.log_fields())
        return record

    def reject(self, ctx: RequestContext, transaction_id: str,
               approver_id: Optional[str] = None) -> TransactionRecord:
        """
        Decline a pending record without touching balances

        Raises:
            TransactionNotFound: If the record does not exist
            InvalidState: If the record is not pending
        """
        approver_id = approver_id or ctx.actor_id
        peek = self.transactions.require(transaction_id)

        with self.engine.unit_of_work(ctx, "reject_transaction",
                                      peek.from_account_id, peek.to_account_id):
            record = self._require_pending(transaction_id)
            record.status = TransactionStatus.REJECTED
            record.approved_at = datetime.now(timezone.utc)
            record.approved_by = approver_id
            self.transactions.update(record)

            self.engine.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_REJECTED,
                entity_type="transaction",
                entity_id=record.id,
                metadata={"rejected_by": approver_id},
                user_id=ctx.actor_id,
                correlation_id=ctx.correlation_id
            )

        log_action(self.logger, "info", "Transaction rejected",
                   action="reject_transaction", resource=f"transaction:{record.id}",
                   extra={"rejected_by": approver_id}, **ctx.log_fields())
        return record
