"""
Batch Posting Engine

Validates a batch of candidate transactions and commits it all-or-nothing.

Every row is checked independently so one response can report every bad
row. Valid rows are staged in memory against a working copy of their
account; nothing touches storage until the whole batch has passed. The
staged account balances and the new transactions are then written in one
unit of work, which also holds the storage lock from the first account
lookup to the last write so two batches cannot interleave their
read-modify-write of the same balance.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import uuid

from .accounts import Account, AccountManager
from .amounts import is_blank_amount, quantize_amount
from .audit import AuditTrail, AuditEventType
from .exceptions import BatchValidationError, ConcurrencyConflictError, ValidationError
from .logging_config import get_logger, log_action
from .transactions import Transaction, TransactionStore
from .validation import (
    is_blank, parse_date, parse_positive_amount,
    parse_transaction_type, validate_reference
)


@dataclass
class CandidateTransaction:
    """
    One row of a posting batch, as entered

    Values are unvalidated; the engine parses them.
    """
    account_number: Any = None
    reference: Any = None
    amount: Any = None
    transaction_type: Any = None
    date: Any = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'CandidateTransaction':
        return cls(
            account_number=data.get('account_number'),
            reference=data.get('reference'),
            amount=data.get('amount'),
            transaction_type=data.get('transaction_type', data.get('type')),
            date=data.get('date')
        )

    def is_blank(self) -> bool:
        """A placeholder row nobody filled in"""
        return (
            is_blank(self.account_number)
            and is_blank(self.reference)
            and is_blank_amount(self.amount)
        )


@dataclass(frozen=True)
class RowError:
    """A validation failure scoped to one field of one row"""
    row_index: int
    field: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"row_index": self.row_index, "field": self.field, "message": self.message}


@dataclass
class PostingResult:
    """Outcome of a batch post"""
    success: bool
    affected_account_ids: List[str] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)
    skipped_rows: List[int] = field(default_factory=list)

    @property
    def single_account_id(self) -> Optional[str]:
        """The affected account when exactly one was touched"""
        if len(self.affected_account_ids) == 1:
            return self.affected_account_ids[0]
        return None

    def raise_for_errors(self) -> None:
        if not self.success:
            raise BatchValidationError(self.errors)


CandidateRow = Union[CandidateTransaction, Mapping[str, Any]]


class BatchPostingEngine:
    """
    Posts batches of candidate transactions against their accounts
    """

    def __init__(
        self,
        account_manager: AccountManager,
        transaction_store: TransactionStore,
        audit_trail: AuditTrail,
        reference_max_length: int = 200,
        max_retries: int = 3
    ):
        self.account_manager = account_manager
        self.transaction_store = transaction_store
        self.audit_trail = audit_trail
        self.storage = account_manager.storage
        self.reference_max_length = reference_max_length
        self.max_retries = max_retries
        self.logger = get_logger("customer_ledger.posting")

    def post_batch(self, rows: Optional[Sequence[CandidateRow]]) -> PostingResult:
        """
        Validate and post a batch

        Args:
            rows: Candidate rows, as CandidateTransaction or plain dicts

        Returns:
            PostingResult; on failure ``errors`` lists every invalid row and
            nothing was written

        Raises:
            ConcurrencyConflictError: an account kept changing underneath the
                batch, or the database stayed write-locked, after every retry
        """
        if not rows:
            return PostingResult(
                success=False,
                errors=[RowError(-1, "", "No transactions to save.")]
            )

        candidates = [
            row if isinstance(row, CandidateTransaction) else CandidateTransaction.from_dict(row)
            for row in rows
        ]

        attempt = 1
        while True:
            try:
                return self._post_once(candidates)
            except ConcurrencyConflictError as e:
                if attempt >= self.max_retries:
                    log_action(
                        self.logger, "error", f"Batch abandoned after {attempt} conflicting attempts",
                        action="post_batch", resource=f"account:{e.entity_id}"
                    )
                    raise
                log_action(
                    self.logger, "warning", f"Retrying batch after conflict: {e.message}",
                    action="post_batch", resource=f"account:{e.entity_id}",
                    extra={"attempt": attempt}
                )
                attempt += 1

    def _post_once(self, candidates: List[CandidateTransaction]) -> PostingResult:
        now = datetime.now(timezone.utc)
        errors: List[RowError] = []
        skipped: List[int] = []
        pending: List[Transaction] = []
        # account_number -> (working copy, version it was read at)
        staged: Dict[str, Tuple[Account, int]] = {}

        with self.storage.atomic():
            for index, row in enumerate(candidates):
                if row.is_blank():
                    skipped.append(index)
                    continue
                try:
                    pending.append(self._stage_row(row, staged, now))
                except ValidationError as e:
                    errors.append(RowError(index, e.field, e.message))

            if errors:
                log_action(
                    self.logger, "warning",
                    f"Batch rejected: {len(errors)} invalid row(s) of {len(candidates)}",
                    action="post_batch",
                    extra={"errors": [error.to_dict() for error in errors]}
                )
                return PostingResult(success=False, errors=errors, skipped_rows=skipped)

            affected: List[str] = []
            for account, read_version in staged.values():
                self.account_manager.save_account(account, read_version)
                affected.append(account.id)

            for transaction in pending:
                self.transaction_store.save(transaction)

            if pending:
                self.audit_trail.log_event(
                    event_type=AuditEventType.BATCH_POSTED,
                    entity_type="batch",
                    entity_id=str(uuid.uuid4()),
                    metadata={
                        "transaction_ids": [t.id for t in pending],
                        "balances": {
                            account.id: account.balance for account, _ in staged.values()
                        }
                    }
                )

        log_action(
            self.logger, "info",
            f"Posted {len(pending)} transaction(s) to {len(affected)} account(s)",
            action="post_batch",
            extra={"account_ids": affected, "skipped_rows": skipped}
        )
        return PostingResult(
            success=True,
            affected_account_ids=affected,
            transactions=pending,
            skipped_rows=skipped
        )

    def _stage_row(
        self,
        row: CandidateTransaction,
        staged: Dict[str, Tuple[Account, int]],
        now: datetime
    ) -> Transaction:
        """Validate one row and apply its effect to the staged account"""
        if is_blank(row.account_number):
            raise ValidationError("account_number", "Account number is required.")
        amount = parse_positive_amount(row.amount)
        transaction_type = parse_transaction_type(row.transaction_type)
        reference = validate_reference(row.reference, self.reference_max_length)

        account_number = str(row.account_number).strip()
        if account_number not in staged:
            account = self.account_manager.get_account_by_number(account_number)
            if account is None:
                raise ValidationError("account_number", "Invalid account number.")
            staged[account_number] = (account, account.version)
        account = staged[account_number][0]

        date = parse_date(row.date, default=now)

        delta: Decimal = amount * transaction_type.sign
        try:
            new_balance = quantize_amount(account.balance + delta)
        except ValueError:
            raise ValidationError("amount", "Resulting balance is out of range.")
        account.balance = new_balance

        return Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account.id,
            account_number=account.account_number,
            date=date,
            reference=reference,
            amount=amount,
            transaction_type=transaction_type
        )
