"""
Account endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Response, status

from .dependencies import LedgerSystem, get_ledger_system
from .schemas import AccountResponse, CreateAccountRequest, UpdateAccountRequest
from ..exceptions import AccountNotFoundError
from ..reconciliation import reconcile_account


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateAccountRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create a new account"""
    account = system.account_manager.create_account(
        name=request.name,
        account_number=request.account_number,
        initial_balance=request.initial_balance
    )
    return {
        "account": AccountResponse.from_account(account).model_dump(),
        "message": "Account created successfully"
    }


@router.get("")
async def list_accounts(
    search: Optional[str] = None,
    sort_field: Optional[str] = None,
    sort_order: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List accounts with optional search and sort"""
    listing = system.queries.list_accounts(search, sort_field, sort_order)
    return {
        "accounts": [AccountResponse.from_account(a).model_dump() for a in listing.accounts],
        "search": listing.search_text,
        "sort_field": listing.sort_field,
        "sort_order": listing.sort_order
    }


@router.get("/{account_id}")
async def get_account(
    account_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get account details with its reconciliation status"""
    account = system.account_manager.get_account(account_id)
    if not account:
        raise AccountNotFoundError(account_id)
    report = reconcile_account(account, system.transaction_store.find_by_account(account_id))
    return {
        "account": AccountResponse.from_account(account).model_dump(),
        "reconciliation": report.to_dict()
    }


@router.patch("/{account_id}")
async def update_account(
    account_id: str,
    request: UpdateAccountRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Rename or renumber an account"""
    account = system.account_manager.update_account(
        account_id,
        name=request.name,
        account_number=request.account_number,
        expected_version=request.expected_version
    )
    return {"account": AccountResponse.from_account(account).model_dump()}


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    account_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete an account that has no transactions"""
    system.account_manager.delete_account(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
