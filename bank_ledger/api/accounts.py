"""
Account endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query

from .dependencies import (
    LedgerSystem, get_ledger_system, require_admin, http_error
)
from .schemas import CreateAccountRequest, account_response, view_response
from ..context import RequestContext
from ..currency import Currency
from ..errors import LedgerError
from ..projections import CREDIT, DEBIT


router = APIRouter()


@router.post("", status_code=201)
async def create_account(
    request: CreateAccountRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(require_admin)
):
    """Open an account for a user (admin only)"""
    try:
        currency = Currency[request.currency.upper()]
    except KeyError:
        raise HTTPException(status_code=400, detail=f"Unsupported currency: {request.currency}")

    try:
        account = system.engine.create_account(
            ctx,
            user_id=request.user_id,
            initial_balance=request.initial_balance,
            account_type=request.account_type,
            account_number=request.account_number,
            display_name=request.display_name,
            routing_number=request.routing_number,
            currency=currency
        )
        return account_response(account)
    except LedgerError as e:
        raise http_error(e)


@router.get("/{account_id}")
async def get_account(
    account_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get account details and balance"""
    try:
        return account_response(system.engine.accounts.require(account_id))
    except LedgerError as e:
        raise http_error(e)


@router.get("/{account_id}/transactions")
async def get_account_transactions(
    account_id: str,
    q: Optional[str] = Query(None, description="Search description and recipient name"),
    direction: str = Query("all", pattern="^(all|credit|debit)$"),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Visible transaction history for an account, newest first"""
    try:
        system.engine.accounts.require(account_id)
    except LedgerError as e:
        raise http_error(e)

    views = system.queries.history(
        account_id, term=q, direction=direction if direction in (CREDIT, DEBIT) else None
    )
    return {
        "account_id": account_id,
        "transactions": [view_response(v) for v in views]
    }


@router.delete("/{account_id}")
async def delete_account(
    account_id: str,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(require_admin)
):
    """Delete an account and every record referencing it (admin only)"""
    try:
        removed = system.engine.delete_account(ctx, account_id)
        return {"account_id": account_id, "records_removed": removed}
    except LedgerError as e:
        raise http_error(e)
