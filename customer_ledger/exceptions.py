"""
Ledger Exception Hierarchy

Every error the ledger reports to a caller is a LedgerError subclass with a
machine-readable ``code``. Only StorageUnavailableError is fatal; the rest
describe something the caller can correct or retry.
"""

from typing import List, Optional


class LedgerError(Exception):
    """Base exception for all ledger errors"""

    code = "LEDGER_ERROR"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(LedgerError):
    """A single field failed validation"""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["field"] = self.field
        return result


class BatchValidationError(LedgerError):
    """One or more rows of a posting batch failed validation"""

    code = "BATCH_VALIDATION_ERROR"

    def __init__(self, errors: List["RowError"]):
        super().__init__(f"{len(errors)} row(s) failed validation")
        self.errors = list(errors)

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["errors"] = [error.to_dict() for error in self.errors]
        return result


class DuplicateAccountNumberError(LedgerError):
    """An account with this account number already exists"""

    code = "DUPLICATE_ACCOUNT_NUMBER"

    def __init__(self, account_number: str):
        super().__init__(f"An account with number {account_number} already exists.")
        self.account_number = account_number
        self.field = "account_number"


class NotFoundError(LedgerError):
    """A referenced record does not exist"""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class AccountNotFoundError(NotFoundError):

    def __init__(self, account_id: str):
        super().__init__("account", account_id)


class TransactionNotFoundError(NotFoundError):

    def __init__(self, transaction_id: str):
        super().__init__("transaction", transaction_id)


class ConcurrencyConflictError(LedgerError):
    """
    The record changed between read and write.

    Callers should re-fetch and retry; nothing from the failed operation
    was applied.
    """

    code = "CONCURRENCY_CONFLICT"
    retryable = True

    def __init__(self, entity_type: str, entity_id: str,
                 expected_version: Optional[int] = None,
                 actual_version: Optional[int] = None):
        super().__init__(
            f"{entity_type.capitalize()} {entity_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class StorageBusyError(ConcurrencyConflictError):
    """
    Another writer held the database write lock past the busy timeout.

    Nothing was applied; the operation can be retried as a whole.
    """

    code = "STORAGE_BUSY"

    def __init__(self, resource: str, message: str):
        LedgerError.__init__(self, message)
        self.entity_type = "storage"
        self.entity_id = resource
        self.expected_version = None
        self.actual_version = None


class ReferentialIntegrityError(LedgerError):
    """Deleting the record would orphan records that reference it"""

    code = "REFERENTIAL_INTEGRITY"

    def __init__(self, entity_type: str, entity_id: str, dependent_count: int):
        super().__init__(
            f"Cannot delete {entity_type} {entity_id}: "
            f"{dependent_count} transaction(s) reference it"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.dependent_count = dependent_count


class StorageUnavailableError(LedgerError):
    """The storage backend could not be reached or failed outright"""

    code = "STORAGE_UNAVAILABLE"
