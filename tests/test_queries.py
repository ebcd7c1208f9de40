"""
Tests for listing, search and sort
"""

import pytest
from decimal import Decimal

from customer_ledger.accounts import AccountManager
from customer_ledger.audit import AuditTrail
from customer_ledger.exceptions import AccountNotFoundError
from customer_ledger.posting import BatchPostingEngine
from customer_ledger.queries import AccountSummary, LedgerQueryService
from customer_ledger.storage import InMemoryStorage
from customer_ledger.transactions import TransactionStore


ALICE = "000000000000001"
BOB = "000000000000002"
CAROL = "000000000000003"


class TestLedgerQueryService:

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.transaction_store = TransactionStore(self.storage)
        self.account_manager = AccountManager(self.storage, self.transaction_store, self.audit_trail)
        self.engine = BatchPostingEngine(self.account_manager, self.transaction_store, self.audit_trail)
        self.queries = LedgerQueryService(self.account_manager, self.transaction_store)

        self.bob = self.account_manager.create_account("Bob Jones", BOB)
        self.alice = self.account_manager.create_account("alice Smith", ALICE)
        self.carol = self.account_manager.create_account("Carol King", CAROL)

        self.engine.post_batch([
            {"account_number": ALICE, "reference": "Salary March", "amount": "300.00", "type": "D",
             "date": "2024-03-01T00:00:00"},
            {"account_number": ALICE, "reference": "Rent", "amount": "120.00", "type": "C",
             "date": "2024-03-05T00:00:00"},
            {"account_number": BOB, "reference": "Groceries", "amount": "45.10", "type": "C",
             "date": "2024-02-20T00:00:00"},
            {"account_number": CAROL, "reference": "Gift", "amount": "10.00", "type": "D",
             "date": "2024-03-10T00:00:00"},
        ])

    def names(self, listing):
        return [account.name for account in listing.accounts]

    def references(self, listing):
        return [transaction.reference for transaction in listing.transactions]

    def test_default_account_order_is_name_ascending(self):
        listing = self.queries.list_accounts()

        assert self.names(listing) == ["Bob Jones", "Carol King", "alice Smith"]

    def test_sort_accounts_by_balance_descending(self):
        listing = self.queries.list_accounts(sort_field="Balance", sort_order="desc")

        assert self.names(listing) == ["alice Smith", "Carol King", "Bob Jones"]
        assert listing.sort_field == "Balance"
        assert listing.sort_order == "desc"

    def test_sort_accounts_by_account_number(self):
        for field in ("AccountNumber", "account_number"):
            listing = self.queries.list_accounts(sort_field=field, sort_order="asc")
            assert [a.account_number for a in listing.accounts] == [ALICE, BOB, CAROL]

    def test_unknown_sort_falls_back_to_default(self):
        default = self.names(self.queries.list_accounts())

        assert self.names(self.queries.list_accounts(sort_field="Unknown", sort_order="sideways")) == default
        assert self.names(self.queries.list_accounts(sort_field="Balance", sort_order=None)) == default
        assert self.names(self.queries.list_accounts(sort_field=None, sort_order="desc")) == default

    def test_account_search_case_insensitive(self):
        listing = self.queries.list_accounts(search_text="ALICE")

        assert self.names(listing) == ["alice Smith"]
        assert listing.search_text == "ALICE"

    def test_account_search_by_number(self):
        assert self.names(self.queries.list_accounts(search_text="0000000000000")) == [
            "Bob Jones", "Carol King", "alice Smith"
        ]
        assert self.names(self.queries.list_accounts(search_text="03")) == ["Carol King"]

    def test_account_search_case_sensitive(self):
        queries = LedgerQueryService(self.account_manager, self.transaction_store, case_sensitive=True)

        assert self.names(queries.list_accounts(search_text="Alice")) == []
        assert self.names(queries.list_accounts(search_text="alice")) == ["alice Smith"]

    def test_default_transaction_order_is_newest_first(self):
        listing = self.queries.list_transactions()

        assert self.references(listing) == ["Gift", "Rent", "Salary March", "Groceries"]

    def test_sort_transactions_by_amount(self):
        listing = self.queries.list_transactions(sort_field="amount", sort_order="asc")

        assert self.references(listing) == ["Gift", "Groceries", "Rent", "Salary March"]

    def test_sort_transactions_by_type(self):
        listing = self.queries.list_transactions(sort_field="Type", sort_order="asc")

        assert [t.transaction_type.value for t in listing.transactions] == ["C", "C", "D", "D"]

    def test_unknown_transaction_sort_falls_back_to_default(self):
        default = self.references(self.queries.list_transactions())

        listing = self.queries.list_transactions(sort_field="Unknown", sort_order="sideways")

        assert self.references(listing) == default

    def test_transaction_search(self):
        assert self.references(self.queries.list_transactions(search_text="salary")) == ["Salary March"]
        assert self.references(self.queries.list_transactions(search_text=BOB)) == ["Groceries"]

    def test_single_account_listing_carries_summary(self):
        listing = self.queries.list_transactions(account_id=self.alice.id)

        assert self.references(listing) == ["Rent", "Salary March"]
        assert listing.account_id == self.alice.id
        assert listing.account_summary.name == "alice Smith"
        assert listing.account_summary.balance == Decimal("180.00")
        assert listing.account_summary.indicator == "success"

    def test_summary_balance_ignores_search(self):
        """The summary balance covers the whole log, not the filtered rows"""
        listing = self.queries.list_transactions(search_text="Rent", account_id=self.alice.id)

        assert self.references(listing) == ["Rent"]
        assert listing.account_summary.balance == Decimal("180.00")

    def test_negative_balance_indicator(self):
        summary = self.queries.account_summary(self.bob.id)

        assert summary.balance == Decimal("-45.10")
        assert summary.is_negative
        assert summary.indicator == "danger"

    def test_zero_balance_is_success(self):
        summary = AccountSummary("id", ALICE, "Zero", Decimal("0.00"))

        assert not summary.is_negative
        assert summary.indicator == "success"

    def test_unknown_account_listing(self):
        with pytest.raises(AccountNotFoundError):
            self.queries.list_transactions(account_id="missing")

    def test_batch_entry_options(self):
        options = self.queries.batch_entry_options()

        assert options.account_numbers == [ALICE, BOB, CAROL]
        assert options.transaction_types == ["C", "D"]
