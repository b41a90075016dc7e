"""
User endpoints
"""

from fastapi import APIRouter, HTTPException, Depends

from .dependencies import (
    LedgerSystem, get_ledger_system, get_request_context, require_admin, http_error
)
from .schemas import CreateUserRequest, user_response, account_response
from ..context import RequestContext
from ..errors import LedgerError


router = APIRouter()


@router.post("", status_code=201)
async def create_user(
    request: CreateUserRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(get_request_context)
):
    """Register a user handle"""
    if request.is_admin and not ctx.is_admin:
        raise HTTPException(status_code=403, detail="Only admins can create admin users")
    try:
        user = system.engine.users.create_user(
            ctx,
            user_id=request.user_id,
            full_name=request.full_name,
            email=request.email,
            is_admin=request.is_admin
        )
        return user_response(user)
    except LedgerError as e:
        raise http_error(e)


@router.get("")
async def list_users(
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(require_admin)
):
    """List every user (admin only)"""
    return {"users": [user_response(u) for u in system.engine.users.list_users()]}


@router.get("/{user_record_id}")
async def get_user(
    user_record_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get a user with their accounts"""
    try:
        user = system.engine.users.require_user(user_record_id)
        accounts = system.engine.accounts.list_for_user(user.user_id)
        result = user_response(user)
        result["accounts"] = [account_response(a) for a in accounts]
        return result
    except LedgerError as e:
        raise http_error(e)


@router.delete("/{user_record_id}")
async def delete_user(
    user_record_id: str,
    system: LedgerSystem = Depends(get_ledger_system),
    ctx: RequestContext = Depends(require_admin)
):
    """Delete a user and cascade to their accounts and records (admin only)"""
    try:
        removed = system.engine.delete_user(ctx, user_record_id)
        return {"user_id": user_record_id, "accounts_removed": removed}
    except LedgerError as e:
        raise http_error(e)
