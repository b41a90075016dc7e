"""
Pydantic schemas for API requests and response helpers
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..accounts import Account
from ..currency import format_currency
from ..transactions import RecipientDetails, TransactionRecord
from ..projections import TransactionView
from ..users import User


class RecipientModel(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    account_number: Optional[str] = None
    routing_number: Optional[str] = None
    bank_name: Optional[str] = None

    def to_recipient(self) -> RecipientDetails:
        return RecipientDetails(
            name=self.name,
            email=self.email,
            account_number=self.account_number,
            routing_number=self.routing_number,
            bank_name=self.bank_name
        )


# User schemas
class CreateUserRequest(BaseModel):
    user_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    is_admin: bool = False


# Account schemas
class CreateAccountRequest(BaseModel):
    user_id: str
    initial_balance: str = Field("0", description="Decimal amount as string")
    account_type: str = "checking"
    account_number: Optional[str] = None
    display_name: Optional[str] = None
    routing_number: Optional[str] = None
    currency: str = Field("USD", description="Currency code")


# Transaction schemas
class DepositRequest(BaseModel):
    account_id: str
    amount: str = Field(..., description="Decimal amount as string")
    description: str = "Deposit"
    is_positive: bool = True
    is_visible: bool = True


class WithdrawRequest(BaseModel):
    account_id: str
    amount: str = Field(..., description="Decimal amount as string")
    description: str = "Withdrawal"
    is_positive: bool = False
    is_visible: bool = True


class TransferRequest(BaseModel):
    from_account_id: str
    amount: str = Field(..., description="Decimal amount as string")
    to_account_id: Optional[str] = Field(
        None, description="Internal account id, or an external account number"
    )
    recipient: Optional[RecipientModel] = None
    description: Optional[str] = None


class PendingTransactionRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    recipient: Optional[RecipientModel] = None
    description: Optional[str] = None


# Admin schemas
class AdjustBalanceRequest(BaseModel):
    amount: str = Field(..., description="Gross amount before deductions")
    description: Optional[str] = None
    apply_tax: bool = True
    tax_rate: Optional[str] = Field(None, description="Percent; configured default when omitted")
    apply_fee: bool = True
    fee_rate: Optional[str] = None
    min_fee: Optional[str] = None
    max_fee: Optional[str] = None
    is_invisible: bool = False


class DeductBalanceRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    description: Optional[str] = None
    is_invisible: bool = False


class DecisionRequest(BaseModel):
    approver_id: Optional[str] = None


def user_response(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "user_id": user.user_id,
        "full_name": user.full_name,
        "email": user.email,
        "is_admin": user.is_admin,
        "created_at": user.created_at.isoformat()
    }


def account_response(account: Account) -> Dict[str, Any]:
    return {
        "id": account.id,
        "user_id": account.user_id,
        "display_name": account.display_name,
        "account_number": account.account_number,
        "masked_number": account.masked_number,
        "routing_number": account.routing_number,
        "account_type": account.account_type,
        "balance": str(account.balance.amount),
        "display_balance": format_currency(account.balance),
        "currency": account.currency.code,
        "created_at": account.created_at.isoformat()
    }


def transaction_response(record: TransactionRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "from_account_id": record.from_account_id,
        "to_account_id": record.to_account_id,
        "recipient": record.recipient.to_dict() if record.recipient else None,
        "amount": str(record.amount.amount),
        "currency": record.amount.currency.code,
        "description": record.description,
        "status": record.status.value,
        "is_positive": record.effective_is_positive,
        "is_visible": record.effective_is_visible,
        "created_at": record.created_at.isoformat(),
        "approved_at": record.approved_at.isoformat() if record.approved_at else None,
        "approved_by": record.approved_by
    }


def view_response(view: TransactionView) -> Dict[str, Any]:
    return {
        "id": view.id,
        "description": view.description,
        "amount": str(view.amount.amount),
        "signed_amount": str(view.signed_amount.amount),
        "is_positive": view.is_positive,
        "direction": view.direction,
        "status": view.status.value,
        "created_at": view.created_at.isoformat(),
        "display_amount": view.display_amount,
        "display_date": view.display_date,
        "counterparty_name": view.counterparty_name,
        "counterparty_number": view.counterparty_number
    }
