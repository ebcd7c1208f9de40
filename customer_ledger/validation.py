"""
Field Validation

Parses raw field values (as they arrive from a batch-entry form or an API
payload) into typed values, raising ValidationError scoped to the field.
Messages are user-facing.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from .amounts import quantize_amount
from .exceptions import ValidationError
from .transactions import TransactionType


def is_blank(value: Any) -> bool:
    """None, empty or whitespace-only"""
    return value is None or (isinstance(value, str) and not value.strip())


def validate_name(name: Any) -> str:
    if is_blank(name):
        raise ValidationError("name", "Name is required.")
    return str(name).strip()


def validate_account_number(account_number: Any, length: int = 15) -> str:
    """Account numbers are exactly ``length`` characters"""
    if is_blank(account_number):
        raise ValidationError("account_number", "Account number is required.")
    account_number = str(account_number).strip()
    if len(account_number) != length:
        raise ValidationError(
            "account_number",
            f"Account number must be exactly {length} characters."
        )
    return account_number


def parse_positive_amount(value: Any) -> Decimal:
    """Amounts are strictly greater than zero with two decimal places"""
    try:
        amount = quantize_amount(value)
    except (TypeError, ValueError):
        raise ValidationError("amount", "Amount must be greater than 0.")
    if amount <= 0:
        raise ValidationError("amount", "Amount must be greater than 0.")
    return amount


def parse_transaction_type(value: Any) -> TransactionType:
    """Exactly "C" or "D"; no case folding or trimming"""
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError("type", "Type must be C or D.")


def validate_reference(reference: Any, max_length: int = 200) -> str:
    if is_blank(reference):
        raise ValidationError("reference", "Reference is required.")
    reference = str(reference)
    if len(reference) > max_length:
        raise ValidationError(
            "reference",
            f"Reference must be at most {max_length} characters."
        )
    return reference


def parse_date(value: Any, default: Optional[datetime] = None) -> datetime:
    """
    Parse a transaction date.

    Missing values fall back to ``default`` (or now). Naive datetimes are
    taken to be UTC.
    """
    if is_blank(value):
        return default or datetime.now(timezone.utc)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError("date", "Date must be an ISO 8601 timestamp.")
    if not isinstance(value, datetime):
        raise ValidationError("date", "Date must be an ISO 8601 timestamp.")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value
