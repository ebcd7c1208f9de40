"""
Account Management Module

Manages customer accounts: identity, the unique 15-character account
number used to post against them, and the cached running balance.

The balance stored on an account is a projection of its transaction log.
Only the posting engine, the transaction editor and an explicit repair
write it, and always through ``save_account`` with the version the writer
read, so a stale writer fails instead of silently overwriting.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
import uuid

from .amounts import ZERO, quantize_amount
from .audit import AuditTrail, AuditEventType
from .exceptions import (
    AccountNotFoundError, ConcurrencyConflictError,
    DuplicateAccountNumberError, ReferentialIntegrityError, ValidationError
)
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord
from .transactions import Transaction, TransactionStore, TransactionType
from .validation import validate_account_number, validate_name


OPENING_BALANCE_REFERENCE = "Opening balance"


@dataclass
class Account(StorageRecord):
    """
    Customer account with a cached running balance
    """
    account_number: str
    name: str
    balance: Decimal = ZERO
    version: int = 1

    def __post_init__(self):
        self.balance = quantize_amount(self.balance)


class AccountManager:
    """
    Account Store: create, look up, rename/renumber and delete accounts
    """

    def __init__(
        self,
        storage: StorageInterface,
        transaction_store: TransactionStore,
        audit_trail: AuditTrail,
        account_number_length: int = 15
    ):
        self.storage = storage
        self.transaction_store = transaction_store
        self.audit_trail = audit_trail
        self.account_number_length = account_number_length
        self.accounts_table = "accounts"
        self.logger = get_logger("customer_ledger.accounts")

    def create_account(
        self,
        name: str,
        account_number: str,
        initial_balance=ZERO
    ) -> Account:
        """
        Create a new account

        A non-zero opening balance is booked as an opening transaction in the
        same unit of work, so the balance can be reproduced from the log.

        Args:
            name: Display name
            account_number: Unique account number, exactly 15 characters
            initial_balance: Opening balance (may be negative)

        Returns:
            Created Account object

        Raises:
            ValidationError: if a field is missing or malformed
            DuplicateAccountNumberError: if the account number is taken
        """
        name = validate_name(name)
        account_number = validate_account_number(account_number, self.account_number_length)
        try:
            initial_balance = quantize_amount(initial_balance if initial_balance is not None else ZERO)
        except ValueError:
            raise ValidationError("initial_balance", "Initial balance must be a number.")

        now = datetime.now(timezone.utc)
        account = Account(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_number=account_number,
            name=name,
            balance=initial_balance
        )

        # Uniqueness check and insert happen under the same lock
        with self.storage.atomic():
            if self.get_account_by_number(account_number):
                raise DuplicateAccountNumberError(account_number)

            self.storage.save(self.accounts_table, account.id, self._account_to_dict(account))

            if initial_balance != ZERO:
                self.transaction_store.save(Transaction(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    account_id=account.id,
                    account_number=account_number,
                    date=now,
                    reference=OPENING_BALANCE_REFERENCE,
                    amount=abs(initial_balance),
                    transaction_type=TransactionType.DEBIT if initial_balance > 0 else TransactionType.CREDIT
                ))

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_CREATED,
                entity_type="account",
                entity_id=account.id,
                metadata={
                    "account_number": account_number,
                    "name": name,
                    "initial_balance": initial_balance
                }
            )

        log_action(
            self.logger, "info", f"Account created: {account_number}",
            action="create_account", resource=f"account:{account.id}",
            extra={"account_number": account_number, "initial_balance": str(initial_balance)}
        )
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        account_dict = self.storage.load(self.accounts_table, account_id)
        if account_dict:
            return self._account_from_dict(account_dict)
        return None

    def get_account_by_number(self, account_number: str) -> Optional[Account]:
        """Get account by account number"""
        accounts = self.storage.find(self.accounts_table, {"account_number": account_number})
        if accounts:
            return self._account_from_dict(accounts[0])
        return None

    def list_accounts(self) -> List[Account]:
        return [self._account_from_dict(data) for data in self.storage.load_all(self.accounts_table)]

    def list_account_numbers(self) -> List[str]:
        """Sorted account numbers, the option list for batch entry"""
        return sorted(account.account_number for account in self.list_accounts())

    def update_account(
        self,
        account_id: str,
        name: Optional[str] = None,
        account_number: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> Account:
        """
        Rename and/or renumber an account

        The balance is not editable here. Renumbering rewrites the account
        number recorded on the account's transactions.

        Raises:
            AccountNotFoundError, ValidationError,
            DuplicateAccountNumberError, ConcurrencyConflictError
        """
        with self.storage.atomic():
            account = self.get_account(account_id)
            if not account:
                raise AccountNotFoundError(account_id)

            read_version = account.version
            if expected_version is not None and expected_version != read_version:
                raise ConcurrencyConflictError("account", account_id, expected_version, read_version)

            changes = {}
            if name is not None:
                new_name = validate_name(name)
                if new_name != account.name:
                    changes["name"] = {"old": account.name, "new": new_name}
                    account.name = new_name

            if account_number is not None:
                new_number = validate_account_number(account_number, self.account_number_length)
                if new_number != account.account_number:
                    existing = self.get_account_by_number(new_number)
                    if existing and existing.id != account.id:
                        raise DuplicateAccountNumberError(new_number)
                    changes["account_number"] = {"old": account.account_number, "new": new_number}
                    account.account_number = new_number
                    for transaction in self.transaction_store.find_by_account(account.id):
                        transaction.account_number = new_number
                        transaction.version += 1
                        transaction.updated_at = datetime.now(timezone.utc)
                        self.transaction_store.save(transaction)

            if not changes:
                return account

            self.save_account(account, read_version)
            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_UPDATED,
                entity_type="account",
                entity_id=account.id,
                metadata={"changes": changes}
            )

        log_action(
            self.logger, "info", f"Account updated: {account.account_number}",
            action="update_account", resource=f"account:{account.id}",
            extra={"fields": sorted(changes)}
        )
        return account

    def save_account(self, account: Account, expected_version: int) -> Account:
        """
        Versioned write of an account the caller read at ``expected_version``

        On success the account carries the new version.

        Raises:
            AccountNotFoundError: the account was deleted meanwhile
            ConcurrencyConflictError: someone else wrote it meanwhile
        """
        with self.storage.atomic():
            stored = self.storage.load(self.accounts_table, account.id)
            if stored is None:
                raise AccountNotFoundError(account.id)
            if stored.get('version', 1) != expected_version:
                raise ConcurrencyConflictError("account", account.id, expected_version, stored.get('version'))

            account.version = expected_version + 1
            account.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.accounts_table, account.id, self._account_to_dict(account))
        return account

    def delete_account(self, account_id: str) -> None:
        """
        Delete an account that no transaction references

        Raises:
            AccountNotFoundError: no such account
            ReferentialIntegrityError: transactions still reference it
        """
        with self.storage.atomic():
            account = self.get_account(account_id)
            if not account:
                raise AccountNotFoundError(account_id)

            dependent = self.transaction_store.count_for_account(account_id)
            if dependent:
                raise ReferentialIntegrityError("account", account_id, dependent)

            self.storage.delete(self.accounts_table, account_id)
            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_DELETED,
                entity_type="account",
                entity_id=account_id,
                metadata={"account_number": account.account_number, "name": account.name}
            )

        log_action(
            self.logger, "info", f"Account deleted: {account.account_number}",
            action="delete_account", resource=f"account:{account_id}"
        )

    def _account_to_dict(self, account: Account) -> Dict:
        """Convert Account to dictionary for storage"""
        return account.to_dict()

    def _account_from_dict(self, data: Dict) -> Account:
        """Convert dictionary to Account"""
        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_number=data['account_number'],
            name=data['name'],
            balance=Decimal(data['balance']),
            version=data.get('version', 1)
        )
