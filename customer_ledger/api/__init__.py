"""
Customer Ledger API Application Factory
"""

from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import (
    BatchValidationError, ConcurrencyConflictError, DuplicateAccountNumberError,
    LedgerError, NotFoundError, ReferentialIntegrityError,
    StorageUnavailableError, ValidationError
)
from ..logging_config import get_logger
from .accounts import router as accounts_router
from .transactions import router as transactions_router
from .dependencies import LedgerSystem, get_ledger_system


logger = get_logger("customer_ledger.api")

ERROR_STATUS = [
    (BatchValidationError, 422),
    (ValidationError, 400),
    (NotFoundError, 404),
    (DuplicateAccountNumberError, 409),
    (ConcurrencyConflictError, 409),
    (ReferentialIntegrityError, 409),
    (StorageUnavailableError, 503),
]


def status_for(error: LedgerError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 400


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Customer Ledger API",
        description="Customer accounts with a reconciled debit/credit transaction ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)

    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "customer_ledger_api",
            "version": __version__
        }

    @app.get("/reconciliation")
    async def reconciliation_report(system: LedgerSystem = Depends(get_ledger_system)):
        """Accounts whose cached balance disagrees with their transactions"""
        reports = system.reconciler.reconcile_all()
        discrepancies = [r.to_dict() for r in reports if not r.is_consistent]
        return {
            "accounts_checked": len(reports),
            "consistent": not discrepancies,
            "discrepancies": discrepancies
        }

    return app
