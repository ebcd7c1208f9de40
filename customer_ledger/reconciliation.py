"""
Balance Reconciliation Module

Recomputes account balances from the transaction log and compares them
with the cached balance stored on each account. The computation is a
plain signed sum, so the order of the transactions never matters.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .accounts import Account, AccountManager
from .amounts import ZERO
from .audit import AuditEventType
from .exceptions import AccountNotFoundError
from .logging_config import get_logger, log_action
from .transactions import Transaction, TransactionStore


def signed_amount(transaction: Transaction) -> Decimal:
    """Debits add to the balance, credits subtract from it"""
    return transaction.signed_amount


def compute_balance(transactions: Iterable[Transaction]) -> Decimal:
    """Signed sum of a transaction sequence"""
    return sum((signed_amount(t) for t in transactions), ZERO)


@dataclass(frozen=True)
class ReconciliationReport:
    account_id: str
    account_number: str
    stored_balance: Decimal
    computed_balance: Decimal
    transaction_count: int

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.computed_balance

    @property
    def is_consistent(self) -> bool:
        return self.difference == ZERO

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "account_number": self.account_number,
            "stored_balance": str(self.stored_balance),
            "computed_balance": str(self.computed_balance),
            "difference": str(self.difference),
            "transaction_count": self.transaction_count,
            "is_consistent": self.is_consistent
        }


def reconcile_account(account: Account, transactions: Iterable[Transaction]) -> ReconciliationReport:
    """
    Compare an account's cached balance with its log

    Transactions that belong to other accounts are ignored.
    """
    own = [t for t in transactions if t.account_id == account.id]
    return ReconciliationReport(
        account_id=account.id,
        account_number=account.account_number,
        stored_balance=account.balance,
        computed_balance=compute_balance(own),
        transaction_count=len(own)
    )


class BalanceReconciler:
    """
    Diagnostics over stored accounts: reconcile one or all accounts and
    rewrite a drifted cached balance from the log.
    """

    def __init__(self, account_manager: AccountManager, transaction_store: TransactionStore):
        self.account_manager = account_manager
        self.transaction_store = transaction_store
        self.storage = account_manager.storage
        self.logger = get_logger("customer_ledger.reconciliation")

    def reconcile(self, account_id: str) -> ReconciliationReport:
        account = self.account_manager.get_account(account_id)
        if not account:
            raise AccountNotFoundError(account_id)
        return reconcile_account(account, self.transaction_store.find_by_account(account_id))

    def reconcile_all(self) -> List[ReconciliationReport]:
        transactions = self.transaction_store.list_all()
        return [
            reconcile_account(account, transactions)
            for account in self.account_manager.list_accounts()
        ]

    def find_discrepancies(self) -> List[ReconciliationReport]:
        return [report for report in self.reconcile_all() if not report.is_consistent]

    def repair(self, account_id: str) -> Optional[ReconciliationReport]:
        """
        Rewrite the cached balance from the log

        Returns:
            The report from before the repair, or None if nothing drifted
        """
        with self.storage.atomic():
            account = self.account_manager.get_account(account_id)
            if not account:
                raise AccountNotFoundError(account_id)

            report = reconcile_account(account, self.transaction_store.find_by_account(account_id))
            if report.is_consistent:
                return None

            account.balance = report.computed_balance
            self.account_manager.save_account(account, account.version)
            self.account_manager.audit_trail.log_event(
                event_type=AuditEventType.BALANCE_REPAIRED,
                entity_type="account",
                entity_id=account_id,
                metadata={
                    "stored_balance": report.stored_balance,
                    "computed_balance": report.computed_balance
                }
            )

        log_action(
            self.logger, "warning",
            f"Repaired balance drift on {report.account_number}: {report.difference}",
            action="repair_balance", resource=f"account:{account_id}",
            extra=report.to_dict()
        )
        return report
