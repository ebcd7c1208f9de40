"""
Transaction Store Module

Typed credit/debit transactions, each owned by exactly one account, and
their persistence. The transaction log is the source of truth for every
account balance; the sign convention that maps a transaction type to a
balance movement is defined here and nowhere else.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Dict, List, Optional
from enum import Enum

from .amounts import quantize_amount
from .storage import StorageInterface, StorageRecord


TRANSACTIONS_TABLE = "transactions"


class TransactionType(Enum):
    """
    Transaction types and the direction each moves the balance.

    A debit increases the account balance and a credit decreases it.
    """
    CREDIT = "C"
    DEBIT = "D"

    @property
    def sign(self) -> int:
        return 1 if self is TransactionType.DEBIT else -1


@dataclass
class Transaction(StorageRecord):
    """A single posted credit or debit against one account"""
    account_id: str
    account_number: str
    date: datetime
    reference: str
    amount: Decimal
    transaction_type: TransactionType
    version: int = 1

    def __post_init__(self):
        self.amount = quantize_amount(self.amount)
        if self.amount <= 0:
            raise ValueError("Transaction amount must be positive")

    @property
    def signed_amount(self) -> Decimal:
        """Balance movement this transaction causes on its account"""
        return self.amount * self.transaction_type.sign


def transaction_to_dict(transaction: Transaction) -> Dict:
    """Convert Transaction to dictionary for storage"""
    result = transaction.to_dict()
    result['transaction_type'] = transaction.transaction_type.value
    return result


def transaction_from_dict(data: Dict) -> Transaction:
    """Convert dictionary to Transaction"""
    return Transaction(
        id=data['id'],
        created_at=datetime.fromisoformat(data['created_at']),
        updated_at=datetime.fromisoformat(data['updated_at']),
        account_id=data['account_id'],
        account_number=data['account_number'],
        date=datetime.fromisoformat(data['date']),
        reference=data['reference'],
        amount=Decimal(data['amount']),
        transaction_type=TransactionType(data['transaction_type']),
        version=data.get('version', 1)
    )


class TransactionStore:
    """
    Persistence for transactions

    Writes are plain saves; the callers that change balances wrap them in
    ``storage.atomic()`` together with the matching account update.
    """

    def __init__(self, storage: StorageInterface, table_name: str = TRANSACTIONS_TABLE):
        self.storage = storage
        self.table_name = table_name

    def save(self, transaction: Transaction) -> None:
        self.storage.save(self.table_name, transaction.id, transaction_to_dict(transaction))

    def get(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.table_name, transaction_id)
        if data:
            return transaction_from_dict(data)
        return None

    def delete(self, transaction_id: str) -> bool:
        return self.storage.delete(self.table_name, transaction_id)

    def list_all(self) -> List[Transaction]:
        return [transaction_from_dict(data) for data in self.storage.load_all(self.table_name)]

    def find_by_account(self, account_id: str) -> List[Transaction]:
        """All transactions owned by an account, in insertion order"""
        return [
            transaction_from_dict(data)
            for data in self.storage.find(self.table_name, {"account_id": account_id})
        ]

    def count_for_account(self, account_id: str) -> int:
        return len(self.storage.find(self.table_name, {"account_id": account_id}))
