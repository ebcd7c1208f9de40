"""
Transaction endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from .dependencies import LedgerSystem, get_ledger_system
from .schemas import (
    AccountSummaryResponse, EditTransactionRequest,
    PostBatchRequest, TransactionResponse
)
from ..posting import CandidateTransaction


router = APIRouter()


@router.post("/batch", status_code=status.HTTP_201_CREATED)
async def post_batch(
    request: PostBatchRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Post a batch of transactions; all rows commit or none do"""
    rows = [
        CandidateTransaction(
            account_number=row.account_number,
            reference=row.reference,
            amount=row.amount,
            transaction_type=row.type,
            date=row.date
        )
        for row in request.transactions
    ]
    result = system.posting_engine.post_batch(rows)
    if not result.success:
        return JSONResponse(
            status_code=422,
            content={
                "code": "BATCH_VALIDATION_ERROR",
                "message": "No transactions were saved",
                "errors": [error.to_dict() for error in result.errors]
            }
        )
    return {
        "affected_account_ids": result.affected_account_ids,
        "single_account_id": result.single_account_id,
        "transactions": [TransactionResponse.from_transaction(t).model_dump() for t in result.transactions],
        "skipped_rows": result.skipped_rows,
        "message": f"{len(result.transactions)} transaction(s) posted"
    }


@router.get("")
async def list_transactions(
    account_id: Optional[str] = None,
    search: Optional[str] = None,
    sort_field: Optional[str] = None,
    sort_order: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List transactions, optionally for one account with its computed balance"""
    listing = system.queries.list_transactions(search, account_id, sort_field, sort_order)
    summary = None
    if listing.account_summary:
        summary = AccountSummaryResponse.from_summary(listing.account_summary).model_dump()
    return {
        "transactions": [TransactionResponse.from_transaction(t).model_dump() for t in listing.transactions],
        "account": summary,
        "account_id": listing.account_id,
        "search": listing.search_text,
        "sort_field": listing.sort_field,
        "sort_order": listing.sort_order
    }


@router.get("/options")
async def batch_entry_options(system: LedgerSystem = Depends(get_ledger_system)):
    """Option lists for a batch-entry form"""
    options = system.queries.batch_entry_options()
    return {
        "account_numbers": options.account_numbers,
        "transaction_types": options.transaction_types
    }


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    transaction = system.transaction_editor.get_transaction(transaction_id)
    return {"transaction": TransactionResponse.from_transaction(transaction).model_dump()}


@router.put("/{transaction_id}")
async def edit_transaction(
    transaction_id: str,
    request: EditTransactionRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Edit a transaction; the account balance follows"""
    transaction = system.transaction_editor.edit_transaction(
        transaction_id,
        account_number=request.account_number,
        date=request.date,
        reference=request.reference,
        amount=request.amount,
        transaction_type=request.type,
        expected_version=request.expected_version
    )
    return {"transaction": TransactionResponse.from_transaction(transaction).model_dump()}


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(
    transaction_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete a transaction and reverse its balance effect"""
    system.transaction_editor.delete_transaction(transaction_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
