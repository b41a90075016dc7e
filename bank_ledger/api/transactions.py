"""
Transaction endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import LedgerSystem, get_ledger_system, get_request_context, http_error
from .schemas import (
    DepositRequest, WithdrawRequest, TransferRequest, PendingTransactionRequest,
    transaction_response
)
from ..context import RequestContext
from ..errors import LedgerError


router = APIRouter()


@router.post("/deposit")
async def deposit(
    request: DepositRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(get_request_context)
):
    """Make a deposit"""
    try:
        record = system.engine.deposit(
            ctx,
            account_id=request.account_id,
            amount=request.amount,
            description=request.description,
            is_positive=request.is_positive,
            is_visible=request.is_visible
        )
        return {
            "transaction": transaction_response(record),
            "balance": str(system.engine.get_balance(request.account_id).amount),
            "message": "Deposit processed successfully"
        }
    except LedgerError as e:
        raise http_error(e)


@router.post("/withdraw")
async def withdraw(
    request: WithdrawRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(get_request_context)
):
    """Make a withdrawal"""
    try:
        record = system.engine.withdraw(
            ctx,
            account_id=request.account_id,
            amount=request.amount,
            description=request.description,
            is_positive=request.is_positive,
            is_visible=request.is_visible
        )
        return {
            "transaction": transaction_response(record),
            "balance": str(system.engine.get_balance(request.account_id).amount),
            "message": "Withdrawal processed successfully"
        }
    except LedgerError as e:
        raise http_error(e)


@router.post("/transfer")
async def transfer(
    request: TransferRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(get_request_context)
):
    """Transfer to another account of this bank or to an external account number"""
    try:
        record = system.engine.transfer(
            ctx,
            from_account_id=request.from_account_id,
            amount=request.amount,
            to_account_id=request.to_account_id,
            recipient=request.recipient.to_recipient() if request.recipient else None,
            description=request.description
        )
        return {
            "transaction": transaction_response(record),
            "message": "Transfer processed successfully"
        }
    except LedgerError as e:
        raise http_error(e)


@router.post("/pending", status_code=202)
async def submit_pending(
    request: PendingTransactionRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(get_request_context)
):
    """Submit a transaction for admin review"""
    try:
        record = system.engine.submit_pending(
            ctx,
            amount=request.amount,
            from_account_id=request.from_account_id,
            to_account_id=request.to_account_id,
            recipient=request.recipient.to_recipient() if request.recipient else None,
            description=request.description
        )
        return {
            "transaction": transaction_response(record),
            "message": "Transaction submitted for approval"
        }
    except LedgerError as e:
        raise http_error(e)


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get transaction details"""
    try:
        return transaction_response(system.engine.transactions.require(transaction_id))
    except LedgerError as e:
        raise http_error(e)
