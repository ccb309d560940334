"""Pure normalization helpers shared by every ingestion path.

Nothing here touches storage. Descriptions are normalized into matching keys,
amounts are converted into the expense sign convention and content hashes
identify the same real-world event however it is re-derived.
"""

import hashlib
import re
from datetime import date
from decimal import Decimal
from typing import Optional

from tallyup.domain.entities import AccountType
from tallyup.utils.amount_parser import parse_amount, round_currency, to_cents
from tallyup.utils.date_parser import parse_date

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

__all__ = [
    "normalize_description",
    "build_composite_description",
    "normalize_amount",
    "to_expense_amount",
    "compute_hash_key",
    "parse_amount",
    "parse_date",
    "round_currency",
    "is_date_in_period",
]


def normalize_description(text: Optional[str]) -> str:
    """Return the matching key for a description.

    Lowercases, drops everything except ASCII letters, digits and whitespace,
    then collapses whitespace runs to a single space. Characters are dropped
    before collapsing so the result is a fixed point:
    ``normalize_description(normalize_description(x)) == normalize_description(x)``.
    """
    if not text:
        return ""
    stripped = _NON_ALNUM.sub("", str(text).lower())
    return _WHITESPACE.sub(" ", stripped).strip()


def build_composite_description(description: Optional[str], sub_description: Optional[str] = None) -> str:
    """Join a description and sub-description with a single space.

    When either side is empty the other side is returned on its own.
    """
    base = (description or "").strip()
    sub = (sub_description or "").strip()
    if not base:
        return sub
    if not sub:
        return base
    return f"{base} {sub}"


def normalize_amount(
    raw_amount: Decimal,
    account_type: AccountType,
    transaction_type_hint: Optional[str] = None,
) -> Decimal:
    """Apply a transaction-type hint to a raw amount.

    The result is in the account's own sign convention: for credit cards a
    positive amount is a charge, for bank accounts a negative amount is money
    out. A hint containing "debit" forces money out, one containing "credit"
    forces money in and no hint passes the raw sign through.

    Args:
        raw_amount: Amount as parsed from the source
        account_type: Type of the account the row belongs to
        transaction_type_hint: Optional type column value (e.g. "Debit")

    Returns:
        Signed amount in the account's convention
    """
    hint = (transaction_type_hint or "").lower()
    is_card = AccountType(account_type) == AccountType.CREDIT_CARD

    if "debit" in hint:
        return abs(raw_amount) if is_card else -abs(raw_amount)
    if "credit" in hint:
        return -abs(raw_amount) if is_card else abs(raw_amount)
    return raw_amount


def apply_invert(amount: Decimal, invert_amounts: bool) -> Decimal:
    """Flip an amount for institutions that report the opposite sign."""
    return -amount if invert_amounts else amount


def to_expense_amount(amount: Decimal, account_type: AccountType) -> Decimal:
    """Convert an account-convention amount to the expense sign convention."""
    if AccountType(account_type) == AccountType.BANK:
        return -amount
    return amount


def compute_hash_key(
    account_id: int,
    period_id: int,
    txn_date: date,
    signed_amount: Decimal,
    normalized_description: str,
) -> str:
    """Return the content hash of one ledger event.

    SHA-256 over ``account|period|YYYY-MM-DD|cents|description``. Amounts are
    converted to integer cents with banker's rounding, so ``Decimal("12.5")``
    and ``Decimal("12.50")`` hash identically.
    """
    cents = to_cents(signed_amount)
    data = f"{account_id}|{period_id}|{txn_date.isoformat()}|{cents}|{normalized_description}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def is_date_in_period(value: date, year: int, month: int) -> bool:
    """Return True when a date falls inside a calendar month."""
    return value.year == year and value.month == month


def amounts_match(a: Decimal, b: Decimal, tolerance: Decimal = Decimal("0.01")) -> bool:
    """Return True when two absolute amounts differ by less than a cent."""
    return abs(abs(a) - abs(b)) < tolerance


def percent_difference(actual: Decimal, expected: Decimal) -> Decimal:
    """Absolute difference as a percentage of the expected amount."""
    if expected == 0:
        return Decimal(0) if actual == 0 else Decimal("Infinity")
    return abs(actual - expected) / abs(expected) * 100
