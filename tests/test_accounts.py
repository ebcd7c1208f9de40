"""
Test suite for the account store

Covers creation and account number uniqueness (including concurrent
creates), opening balances, renaming/renumbering, versioned writes and
the refuse-on-delete policy.
"""

import pytest
import threading
from decimal import Decimal

from customer_ledger.accounts import AccountManager, OPENING_BALANCE_REFERENCE
from customer_ledger.audit import AuditTrail
from customer_ledger.exceptions import (
    AccountNotFoundError, ConcurrencyConflictError, DuplicateAccountNumberError,
    ReferentialIntegrityError, ValidationError
)
from customer_ledger.posting import BatchPostingEngine
from customer_ledger.reconciliation import compute_balance
from customer_ledger.storage import InMemoryStorage, SQLiteStorage
from customer_ledger.transactions import TransactionStore, TransactionType


ACCOUNT_A = "000000000000001"
ACCOUNT_B = "000000000000002"


class TestAccountManager:
    """Test account lifecycle"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.transaction_store = TransactionStore(self.storage)
        self.account_manager = AccountManager(self.storage, self.transaction_store, self.audit_trail)
        self.posting_engine = BatchPostingEngine(self.account_manager, self.transaction_store, self.audit_trail)

    def test_create_account(self):
        """Test creating an account with a zero balance"""
        account = self.account_manager.create_account("Alice", ACCOUNT_A)

        assert account.id
        assert account.name == "Alice"
        assert account.account_number == ACCOUNT_A
        assert account.balance == Decimal("0.00")
        assert account.version == 1

        stored = self.account_manager.get_account(account.id)
        assert stored.account_number == ACCOUNT_A
        assert stored.balance == Decimal("0.00")

    def test_create_account_trims_fields(self):
        account = self.account_manager.create_account("  Alice  ", f" {ACCOUNT_A} ")

        assert account.name == "Alice"
        assert account.account_number == ACCOUNT_A

    def test_duplicate_account_number_rejected(self):
        """The second create with the same number fails"""
        self.account_manager.create_account("Alice", ACCOUNT_A)

        with pytest.raises(DuplicateAccountNumberError) as exc_info:
            self.account_manager.create_account("Bob", ACCOUNT_A)

        assert exc_info.value.account_number == ACCOUNT_A
        assert len(self.account_manager.list_accounts()) == 1

    def test_account_number_must_be_fifteen_characters(self):
        for bad in ["12345", "0000000000000001", ""]:
            with pytest.raises(ValidationError) as exc_info:
                self.account_manager.create_account("Alice", bad)
            assert exc_info.value.field == "account_number"

        assert self.account_manager.list_accounts() == []

    def test_name_required(self):
        with pytest.raises(ValidationError) as exc_info:
            self.account_manager.create_account("   ", ACCOUNT_A)

        assert exc_info.value.field == "name"

    def test_invalid_initial_balance(self):
        with pytest.raises(ValidationError) as exc_info:
            self.account_manager.create_account("Alice", ACCOUNT_A, initial_balance="lots")

        assert exc_info.value.field == "initial_balance"

    def test_positive_opening_balance_booked_as_debit(self):
        """A positive opening balance is recorded as a debit transaction"""
        account = self.account_manager.create_account("Alice", ACCOUNT_A, initial_balance="250.00")

        transactions = self.transaction_store.find_by_account(account.id)
        assert account.balance == Decimal("250.00")
        assert len(transactions) == 1
        assert transactions[0].transaction_type == TransactionType.DEBIT
        assert transactions[0].amount == Decimal("250.00")
        assert transactions[0].reference == OPENING_BALANCE_REFERENCE
        assert compute_balance(transactions) == account.balance

    def test_negative_opening_balance_booked_as_credit(self):
        account = self.account_manager.create_account("Alice", ACCOUNT_A, initial_balance=Decimal("-75.5"))

        transactions = self.transaction_store.find_by_account(account.id)
        assert account.balance == Decimal("-75.50")
        assert transactions[0].transaction_type == TransactionType.CREDIT
        assert compute_balance(transactions) == account.balance

    def test_lookup_by_number(self):
        account = self.account_manager.create_account("Alice", ACCOUNT_A)

        assert self.account_manager.get_account_by_number(ACCOUNT_A).id == account.id
        assert self.account_manager.get_account_by_number(ACCOUNT_B) is None
        assert self.account_manager.get_account("missing") is None

    def test_list_account_numbers_sorted(self):
        self.account_manager.create_account("Bob", ACCOUNT_B)
        self.account_manager.create_account("Alice", ACCOUNT_A)

        assert self.account_manager.list_account_numbers() == [ACCOUNT_A, ACCOUNT_B]

    def test_rename_account(self):
        account = self.account_manager.create_account("Alice", ACCOUNT_A)

        updated = self.account_manager.update_account(account.id, name="Alice Smith")

        assert updated.name == "Alice Smith"
        assert updated.version == 2
        assert self.account_manager.get_account(account.id).name == "Alice Smith"

    def test_update_without_changes_keeps_version(self):
        account = self.account_manager.create_account("Alice", ACCOUNT_A)

        updated = self.account_manager.update_account(account.id, name="Alice")

        assert updated.version == 1

    def test_renumber_rewrites_transactions(self):
        """Renumbering carries over to the account's transactions"""
        account = self.account_manager.create_account("Alice", ACCOUNT_A)
        self.posting_engine.post_batch([
            {"account_number": ACCOUNT_A, "reference": "init", "amount": "10.00", "type": "D"}
        ])
        new_number = "999999999999999"

        self.account_manager.update_account(account.id, account_number=new_number)

        assert self.account_manager.get_account_by_number(ACCOUNT_A) is None
        assert self.account_manager.get_account_by_number(new_number).id == account.id
        transactions = self.transaction_store.find_by_account(account.id)
        assert [t.account_number for t in transactions] == [new_number]

    def test_renumber_to_existing_number_rejected(self):
        account = self.account_manager.create_account("Alice", ACCOUNT_A)
        self.account_manager.create_account("Bob", ACCOUNT_B)

        with pytest.raises(DuplicateAccountNumberError):
            self.account_manager.update_account(account.id, account_number=ACCOUNT_B)

        assert self.account_manager.get_account(account.id).account_number == ACCOUNT_A

    def test_update_with_stale_version(self):
        account = self.account_manager.create_account("Alice", ACCOUNT_A)
        self.account_manager.update_account(account.id, name="Alice Smith")

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            self.account_manager.update_account(account.id, name="Alicia", expected_version=1)

        assert exc_info.value.retryable
        assert self.account_manager.get_account(account.id).name == "Alice Smith"

    def test_update_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.account_manager.update_account("missing", name="Nobody")

    def test_save_account_checks_version(self):
        """A writer holding an old version cannot overwrite a newer balance"""
        account = self.account_manager.create_account("Alice", ACCOUNT_A)
        first = self.account_manager.get_account(account.id)
        second = self.account_manager.get_account(account.id)

        first.balance = Decimal("10.00")
        self.account_manager.save_account(first, first.version)

        second.balance = Decimal("99.00")
        with pytest.raises(ConcurrencyConflictError):
            self.account_manager.save_account(second, 1)

        stored = self.account_manager.get_account(account.id)
        assert stored.balance == Decimal("10.00")
        assert stored.version == 2

    def test_delete_account_without_transactions(self):
        account = self.account_manager.create_account("Alice", ACCOUNT_A)

        self.account_manager.delete_account(account.id)

        assert self.account_manager.get_account(account.id) is None

    def test_delete_account_with_transactions_refused(self):
        """Accounts referenced by transactions cannot be deleted"""
        account = self.account_manager.create_account("Alice", ACCOUNT_A)
        self.posting_engine.post_batch([
            {"account_number": ACCOUNT_A, "reference": "init", "amount": "10.00", "type": "D"}
        ])

        with pytest.raises(ReferentialIntegrityError) as exc_info:
            self.account_manager.delete_account(account.id)

        assert exc_info.value.dependent_count == 1
        assert self.account_manager.get_account(account.id) is not None
        assert len(self.transaction_store.find_by_account(account.id)) == 1

    def test_delete_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.account_manager.delete_account("missing")


class TestConcurrentAccountCreation:
    """Only one of several concurrent creates with the same number wins"""

    def _race(self, storage):
        audit_trail = AuditTrail(storage)
        account_manager = AccountManager(storage, TransactionStore(storage), audit_trail)
        barrier = threading.Barrier(8)
        created = []
        duplicates = []

        def create(i):
            barrier.wait()
            try:
                created.append(account_manager.create_account(f"Customer {i}", ACCOUNT_A))
            except DuplicateAccountNumberError:
                duplicates.append(i)

        threads = [threading.Thread(target=create, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(created) == 1
        assert len(duplicates) == 7
        assert len(account_manager.list_accounts()) == 1

    def test_in_memory(self):
        self._race(InMemoryStorage())

    def test_sqlite(self):
        storage = SQLiteStorage()
        self._race(storage)
        storage.close()
