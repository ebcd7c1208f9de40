"""
Single Transaction Edit/Delete

Editing or deleting a posted transaction moves the owning account balance
with it: the old signed effect is reversed and the new one applied in the
same unit of work as the transaction write.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .accounts import AccountManager
from .amounts import quantize_amount
from .audit import AuditTrail, AuditEventType
from .exceptions import (
    AccountNotFoundError, ConcurrencyConflictError,
    TransactionNotFoundError, ValidationError
)
from .logging_config import get_logger, log_action
from .transactions import Transaction, TransactionStore
from .validation import (
    is_blank, parse_date, parse_positive_amount,
    parse_transaction_type, validate_reference
)


class TransactionEditor:
    """
    Edit and delete posted transactions while keeping balances consistent
    """

    def __init__(
        self,
        account_manager: AccountManager,
        transaction_store: TransactionStore,
        audit_trail: AuditTrail,
        reference_max_length: int = 200
    ):
        self.account_manager = account_manager
        self.transaction_store = transaction_store
        self.audit_trail = audit_trail
        self.storage = account_manager.storage
        self.reference_max_length = reference_max_length
        self.logger = get_logger("customer_ledger.editing")

    def get_transaction(self, transaction_id: str) -> Transaction:
        transaction = self.transaction_store.get(transaction_id)
        if not transaction:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def edit_transaction(
        self,
        transaction_id: str,
        account_number: Optional[str] = None,
        date: Any = None,
        reference: Optional[str] = None,
        amount: Any = None,
        transaction_type: Any = None,
        expected_version: Optional[int] = None
    ) -> Transaction:
        """
        Change fields of a posted transaction

        Only the fields passed (not None) change. Moving a transaction to
        another account reverses it on the old account and applies it on
        the new one.

        Raises:
            TransactionNotFoundError: no such transaction
            ValidationError: a new field value is invalid
            ConcurrencyConflictError: the transaction changed since
                ``expected_version`` was read
        """
        with self.storage.atomic():
            transaction = self.get_transaction(transaction_id)
            if expected_version is not None and expected_version != transaction.version:
                raise ConcurrencyConflictError(
                    "transaction", transaction_id, expected_version, transaction.version
                )

            old_account = self.account_manager.get_account(transaction.account_id)
            if not old_account:
                raise AccountNotFoundError(transaction.account_id)
            old_effect = transaction.signed_amount
            changes: Dict[str, Dict[str, Any]] = {}

            new_account = old_account
            if account_number is not None:
                if is_blank(account_number):
                    raise ValidationError("account_number", "Account number is required.")
                account_number = str(account_number).strip()
                if account_number != old_account.account_number:
                    new_account = self.account_manager.get_account_by_number(account_number)
                    if new_account is None:
                        raise ValidationError("account_number", "Invalid account number.")

            if amount is not None:
                new_amount = parse_positive_amount(amount)
                if new_amount != transaction.amount:
                    changes["amount"] = {"old": transaction.amount, "new": new_amount}
                    transaction.amount = new_amount

            if transaction_type is not None:
                new_type = parse_transaction_type(transaction_type)
                if new_type is not transaction.transaction_type:
                    changes["type"] = {"old": transaction.transaction_type, "new": new_type}
                    transaction.transaction_type = new_type

            if reference is not None:
                new_reference = validate_reference(reference, self.reference_max_length)
                if new_reference != transaction.reference:
                    changes["reference"] = {"old": transaction.reference, "new": new_reference}
                    transaction.reference = new_reference

            if date is not None:
                new_date = parse_date(date, default=transaction.date)
                if new_date != transaction.date:
                    changes["date"] = {"old": transaction.date, "new": new_date}
                    transaction.date = new_date

            if new_account.id != old_account.id:
                changes["account_number"] = {
                    "old": old_account.account_number, "new": new_account.account_number
                }
                transaction.account_id = new_account.id
                transaction.account_number = new_account.account_number

            if not changes:
                return transaction

            new_effect = transaction.signed_amount
            if new_account.id == old_account.id:
                self._adjust_balance(old_account, new_effect - old_effect)
            else:
                self._adjust_balance(old_account, -old_effect)
                self._adjust_balance(new_account, new_effect)

            transaction.version += 1
            transaction.updated_at = datetime.now(timezone.utc)
            self.transaction_store.save(transaction)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_EDITED,
                entity_type="transaction",
                entity_id=transaction.id,
                metadata={"changes": changes}
            )

        log_action(
            self.logger, "info", f"Transaction edited: {transaction.id}",
            action="edit_transaction", resource=f"transaction:{transaction.id}",
            extra={"fields": sorted(changes)}
        )
        return transaction

    def delete_transaction(self, transaction_id: str) -> None:
        """
        Delete a transaction and reverse its effect on the owning account

        Raises:
            TransactionNotFoundError: no such transaction
        """
        with self.storage.atomic():
            transaction = self.get_transaction(transaction_id)
            account = self.account_manager.get_account(transaction.account_id)
            if not account:
                raise AccountNotFoundError(transaction.account_id)

            self._adjust_balance(account, -transaction.signed_amount)
            self.transaction_store.delete(transaction_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_DELETED,
                entity_type="transaction",
                entity_id=transaction_id,
                metadata={
                    "account_id": account.id,
                    "amount": transaction.amount,
                    "type": transaction.transaction_type,
                    "balance": account.balance
                }
            )

        log_action(
            self.logger, "info", f"Transaction deleted: {transaction_id}",
            action="delete_transaction", resource=f"transaction:{transaction_id}",
            extra={"account_id": account.id}
        )

    def _adjust_balance(self, account, delta) -> None:
        if not delta:
            return
        try:
            account.balance = quantize_amount(account.balance + delta)
        except ValueError:
            raise ValidationError("amount", "Resulting balance is out of range.")
        self.account_manager.save_account(account, account.version)
