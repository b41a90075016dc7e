"""
Admin endpoints (balance adjustments, approvals, audit)
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from fastapi import APIRouter, HTTPException, Depends

from .dependencies import LedgerSystem, get_ledger_system, require_admin, http_error
from .schemas import (
    AdjustBalanceRequest, DeductBalanceRequest, DecisionRequest, transaction_response
)
from ..context import RequestContext
from ..errors import LedgerError
from ..ledger import TaxConfig, FeeConfig


router = APIRouter()


@router.post("/accounts/{account_id}/adjust")
async def adjust_balance(
    account_id: str,
    request: AdjustBalanceRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(require_admin)
) -> Dict[str, Any]:
    """Credit an account net of tax and processing fee"""
    config = system.config
    try:
        tax = TaxConfig(rate=Decimal(request.tax_rate or config.default_tax_rate),
                        enabled=request.apply_tax)
        fee = FeeConfig(
            rate=Decimal(request.fee_rate or config.default_fee_rate),
            min_fee=Decimal(request.min_fee or config.default_min_fee),
            max_fee=Decimal(request.max_fee or config.default_max_fee),
            enabled=request.apply_fee
        )
    except InvalidOperation:
        raise HTTPException(status_code=400, detail="Tax and fee settings must be decimal numbers")

    try:
        result = system.engine.admin_adjust_balance_with_deductions(
            ctx,
            account_id=account_id,
            gross_amount=request.amount,
            description=request.description,
            tax=tax,
            fee=fee,
            is_invisible=request.is_invisible
        )
    except LedgerError as e:
        raise http_error(e)

    breakdown = result.breakdown
    return {
        "gross": str(breakdown.gross.amount),
        "tax": str(breakdown.tax.amount),
        "fee": str(breakdown.fee.amount),
        "net": str(breakdown.net.amount),
        "balance": str(system.engine.get_balance(account_id).amount),
        "transactions": [transaction_response(r) for r in result.records]
    }


@router.post("/accounts/{account_id}/deduct")
async def deduct_balance(
    account_id: str,
    request: DeductBalanceRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(require_admin)
) -> Dict[str, Any]:
    """Remove funds from an account"""
    try:
        record = system.engine.admin_deduct_balance(
            ctx,
            account_id=account_id,
            amount=request.amount,
            description=request.description,
            is_invisible=request.is_invisible
        )
        return {
            "transaction": transaction_response(record),
            "balance": str(system.engine.get_balance(account_id).amount)
        }
    except LedgerError as e:
        raise http_error(e)


@router.get("/transactions/pending")
async def list_pending(
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(require_admin)
) -> Dict[str, Any]:
    """Every transaction awaiting a decision"""
    return {"transactions": [transaction_response(r) for r in system.queries.list_pending()]}


@router.post("/transactions/{transaction_id}/approve")
async def approve_transaction(
    transaction_id: str,
    request: Optional[DecisionRequest] = None,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(require_admin)
) -> Dict[str, Any]:
    """Approve a pending transaction and apply its balance effect"""
    try:
        approver_id = request.approver_id if request else None
        record = system.approvals.approve(ctx, transaction_id, approver_id=approver_id)
        return transaction_response(record)
    except LedgerError as e:
        raise http_error(e)


@router.post("/transactions/{transaction_id}/reject")
async def reject_transaction(
    transaction_id: str,
    request: Optional[DecisionRequest] = None,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(require_admin)
) -> Dict[str, Any]:
    """Reject a pending transaction"""
    try:
        approver_id = request.approver_id if request else None
        record = system.approvals.reject(ctx, transaction_id, approver_id=approver_id)
        return transaction_response(record)
    except LedgerError as e:
        raise http_error(e)


@router.get("/audit/verify")
async def verify_audit_trail(
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(require_admin)
) -> Dict[str, Any]:
    """Check the audit hash chain"""
    return system.audit_trail.verify_integrity()
