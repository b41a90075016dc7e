"""
Request dependencies: the wired ledger system, caller context and error mapping
"""

from typing import Optional
from fastapi import Depends, Header, HTTPException, status

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..ledger import LedgerEngine
from ..approvals import ApprovalWorkflow
from ..projections import TransactionQueries
from ..context import RequestContext
from ..config import LedgerConfig, get_config
from ..errors import (
    LedgerError, AccountNotFound, TransactionNotFound, UserNotFound,
    InvalidState, DuplicateUser, DuplicateAccountNumber
)


class LedgerSystem:
    """Ledger components wired over one storage backend"""

    def __init__(self, config: Optional[LedgerConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.storage_backend,
                                                 self.config.sqlite_path)
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.engine = LedgerEngine(self.storage, self.audit_trail)
        self.approvals = ApprovalWorkflow(self.engine)
        self.queries = TransactionQueries(self.engine.accounts, self.engine.transactions)


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Process-wide system, built from configuration on first use"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem()
    return _ledger_system


def get_request_context(
    x_actor_id: Optional[str] = Header(None),
    x_admin: Optional[str] = Header(None),
    x_correlation_id: Optional[str] = Header(None)
) -> RequestContext:
    """Caller identity as forwarded by the authenticating front end"""
    fields = {
        "actor_id": x_actor_id or "anonymous",
        "is_admin": (x_admin or "").lower() == "true",
    }
    if x_correlation_id:
        fields["correlation_id"] = x_correlation_id
    return RequestContext(**fields)


def require_admin(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    if not ctx.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return ctx


def http_error(exc: LedgerError) -> HTTPException:
    """Translate a ledger failure into the matching HTTP status"""
    if isinstance(exc, (AccountNotFound, TransactionNotFound, UserNotFound)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (InvalidState, DuplicateUser, DuplicateAccountNumber)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))
