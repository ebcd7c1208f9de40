"""
Service wiring and FastAPI dependencies
"""

from typing import Optional

from ..accounts import AccountManager
from ..audit import AuditTrail
from ..config import LedgerConfig, get_config
from ..editing import TransactionEditor
from ..posting import BatchPostingEngine
from ..queries import LedgerQueryService
from ..reconciliation import BalanceReconciler
from ..storage import StorageInterface, create_storage
from ..transactions import TransactionStore


class LedgerSystem:
    """Ledger components wired to one storage backend"""

    def __init__(self, storage: Optional[StorageInterface] = None, config: Optional[LedgerConfig] = None):
        self.config = config or get_config()

        if storage is None:
            storage = create_storage(
                backend=self.config.storage_backend,
                database_path=self.config.database_path,
                busy_timeout_ms=self.config.sqlite_busy_timeout_ms
            )
        self.storage = storage

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.transaction_store = TransactionStore(self.storage)
        self.account_manager = AccountManager(
            self.storage, self.transaction_store, self.audit_trail,
            account_number_length=self.config.account_number_length
        )
        self.posting_engine = BatchPostingEngine(
            self.account_manager, self.transaction_store, self.audit_trail,
            reference_max_length=self.config.reference_max_length,
            max_retries=self.config.posting_max_retries
        )
        self.transaction_editor = TransactionEditor(
            self.account_manager, self.transaction_store, self.audit_trail,
            reference_max_length=self.config.reference_max_length
        )
        self.reconciler = BalanceReconciler(self.account_manager, self.transaction_store)
        self.queries = LedgerQueryService(
            self.account_manager, self.transaction_store,
            case_sensitive=self.config.search_case_sensitive
        )

    def close(self) -> None:
        self.storage.close()


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Dependency returning the process-wide ledger, built on first use"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem()
    return _ledger_system
