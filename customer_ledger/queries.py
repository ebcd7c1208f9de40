"""
Query/Filter Layer

Search, sort and per-account aggregation for the read paths. Everything a
listing needs (the applied search and sort, the account summary, the
batch-entry option lists) is passed in or returned explicitly.

Search is a case-insensitive substring match unless configured otherwise.
A sort request that is incomplete or names an unknown field/order falls
back to the default order: accounts by name ascending, transactions by
date descending (newest first).
"""

from decimal import Decimal
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .accounts import Account, AccountManager
from .exceptions import AccountNotFoundError
from .reconciliation import compute_balance
from .transactions import Transaction, TransactionStore, TransactionType


SORT_ORDERS = {"asc": False, "desc": True}

ACCOUNT_SORT_KEYS: Dict[str, Callable[[Account], object]] = {
    "name": lambda a: a.name,
    "accountnumber": lambda a: a.account_number,
    "balance": lambda a: a.balance,
}

TRANSACTION_SORT_KEYS: Dict[str, Callable[[Transaction], object]] = {
    "date": lambda t: t.date,
    "amount": lambda t: t.amount,
    "type": lambda t: t.transaction_type.value,
}

DEFAULT_ACCOUNT_SORT = ("name", "asc")
DEFAULT_TRANSACTION_SORT = ("date", "desc")


@dataclass
class AccountSummary:
    """Header of a single-account transaction view"""
    account_id: str
    account_number: str
    name: str
    balance: Decimal

    @property
    def is_negative(self) -> bool:
        return self.balance < 0

    @property
    def indicator(self) -> str:
        return "danger" if self.is_negative else "success"


@dataclass
class AccountListing:
    accounts: List[Account]
    search_text: Optional[str] = None
    sort_field: Optional[str] = None
    sort_order: Optional[str] = None


@dataclass
class TransactionListing:
    transactions: List[Transaction]
    search_text: Optional[str] = None
    sort_field: Optional[str] = None
    sort_order: Optional[str] = None
    account_id: Optional[str] = None
    account_summary: Optional[AccountSummary] = None


@dataclass
class BatchEntryOptions:
    account_numbers: List[str] = field(default_factory=list)
    transaction_types: List[str] = field(default_factory=lambda: [t.value for t in TransactionType])


def _resolve_sort(
    sort_field: Optional[str],
    sort_order: Optional[str],
    keys: Dict[str, Callable],
    default: Tuple[str, str]
) -> Tuple[Callable, bool]:
    """Map a requested (field, order) onto a key function and direction"""
    if sort_field and sort_order:
        normalized_field = sort_field.replace("_", "").lower()
        normalized_order = sort_order.lower()
        if normalized_field in keys and normalized_order in SORT_ORDERS:
            return keys[normalized_field], SORT_ORDERS[normalized_order]
    return keys[default[0]], SORT_ORDERS[default[1]]


def _sorted(records, key: Callable, descending: bool):
    # Ties break on id so equal keys come back in a stable order
    return sorted(records, key=lambda r: (key(r), r.id), reverse=descending)


class LedgerQueryService:
    """
    Read-side listings over the account and transaction stores
    """

    def __init__(
        self,
        account_manager: AccountManager,
        transaction_store: TransactionStore,
        case_sensitive: bool = False
    ):
        self.account_manager = account_manager
        self.transaction_store = transaction_store
        self.case_sensitive = case_sensitive

    def _matches(self, search_text: str, *values: str) -> bool:
        if self.case_sensitive:
            return any(search_text in value for value in values)
        needle = search_text.casefold()
        return any(needle in value.casefold() for value in values)

    def list_accounts(
        self,
        search_text: Optional[str] = None,
        sort_field: Optional[str] = None,
        sort_order: Optional[str] = None
    ) -> AccountListing:
        """Accounts whose name or account number contains ``search_text``"""
        accounts = self.account_manager.list_accounts()
        if search_text:
            accounts = [a for a in accounts if self._matches(search_text, a.name, a.account_number)]

        key, descending = _resolve_sort(sort_field, sort_order, ACCOUNT_SORT_KEYS, DEFAULT_ACCOUNT_SORT)
        return AccountListing(
            accounts=_sorted(accounts, key, descending),
            search_text=search_text,
            sort_field=sort_field,
            sort_order=sort_order
        )

    def list_transactions(
        self,
        search_text: Optional[str] = None,
        account_id: Optional[str] = None,
        sort_field: Optional[str] = None,
        sort_order: Optional[str] = None
    ) -> TransactionListing:
        """
        Transactions whose reference or account number contains ``search_text``

        With ``account_id`` the listing is limited to that account and carries
        its summary, with the balance computed from the account's full log
        (not only the rows matching the search).

        Raises:
            AccountNotFoundError: ``account_id`` names no account
        """
        summary = None
        if account_id:
            summary = self.account_summary(account_id)
            transactions = self.transaction_store.find_by_account(account_id)
        else:
            transactions = self.transaction_store.list_all()

        if search_text:
            transactions = [
                t for t in transactions if self._matches(search_text, t.reference, t.account_number)
            ]

        key, descending = _resolve_sort(sort_field, sort_order, TRANSACTION_SORT_KEYS, DEFAULT_TRANSACTION_SORT)
        return TransactionListing(
            transactions=_sorted(transactions, key, descending),
            search_text=search_text,
            sort_field=sort_field,
            sort_order=sort_order,
            account_id=account_id,
            account_summary=summary
        )

    def account_summary(self, account_id: str) -> AccountSummary:
        account = self.account_manager.get_account(account_id)
        if not account:
            raise AccountNotFoundError(account_id)
        return AccountSummary(
            account_id=account.id,
            account_number=account.account_number,
            name=account.name,
            balance=compute_balance(self.transaction_store.find_by_account(account_id))
        )

    def batch_entry_options(self) -> BatchEntryOptions:
        return BatchEntryOptions(account_numbers=self.account_manager.list_account_numbers())
