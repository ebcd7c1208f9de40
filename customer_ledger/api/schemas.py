"""
Pydantic schemas for API requests and responses
"""

from typing import Any, List, Optional, Union
from pydantic import BaseModel, Field

from ..accounts import Account
from ..queries import AccountSummary
from ..transactions import Transaction


RawAmount = Optional[Union[str, int, float]]


# Account schemas
class CreateAccountRequest(BaseModel):
    name: str
    account_number: str = Field(..., description="Exactly 15 characters, unique")
    initial_balance: RawAmount = Field("0.00", description="Decimal amount, string preferred")


class UpdateAccountRequest(BaseModel):
    name: Optional[str] = None
    account_number: Optional[str] = None
    expected_version: Optional[int] = Field(None, description="Version the caller last read")


class AccountResponse(BaseModel):
    id: str
    account_number: str
    name: str
    balance: str
    version: int
    created_at: str
    updated_at: str

    @classmethod
    def from_account(cls, account: Account) -> 'AccountResponse':
        return cls(
            id=account.id,
            account_number=account.account_number,
            name=account.name,
            balance=str(account.balance),
            version=account.version,
            created_at=account.created_at.isoformat(),
            updated_at=account.updated_at.isoformat()
        )


# Transaction schemas
class CandidateTransactionModel(BaseModel):
    """
    A batch row as entered

    Values stay raw; the posting engine reports wrong-typed fields as row errors.
    """
    account_number: Any = None
    reference: Any = None
    amount: Any = None
    type: Any = Field(None, description="C (credit) or D (debit)")
    date: Any = Field(None, description="ISO 8601 timestamp, defaults to posting time")


class PostBatchRequest(BaseModel):
    transactions: List[CandidateTransactionModel] = Field(default_factory=list)


class EditTransactionRequest(BaseModel):
    account_number: Optional[str] = None
    date: Optional[str] = None
    reference: Optional[str] = None
    amount: RawAmount = None
    type: Optional[str] = None
    expected_version: Optional[int] = None


class TransactionResponse(BaseModel):
    id: str
    account_id: str
    account_number: str
    date: str
    reference: str
    amount: str
    type: str
    version: int

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> 'TransactionResponse':
        return cls(
            id=transaction.id,
            account_id=transaction.account_id,
            account_number=transaction.account_number,
            date=transaction.date.isoformat(),
            reference=transaction.reference,
            amount=str(transaction.amount),
            type=transaction.transaction_type.value,
            version=transaction.version
        )


class AccountSummaryResponse(BaseModel):
    account_id: str
    account_number: str
    name: str
    balance: str
    is_negative: bool
    indicator: str

    @classmethod
    def from_summary(cls, summary: AccountSummary) -> 'AccountSummaryResponse':
        return cls(
            account_id=summary.account_id,
            account_number=summary.account_number,
            name=summary.name,
            balance=str(summary.balance),
            is_negative=summary.is_negative,
            indicator=summary.indicator
        )
