"""Internal transfer detection.

Rows that move money between the user's own accounts (a bank account paying
a credit card, a transfer between two bank accounts) must not become ledger
expenses. Detection runs in three stages and each stage only looks at rows
the earlier stages left unclassified:

1. credit card payment pairing (bank debit with a card payment),
2. inter-account pairing (two bank rows of opposite sign),
3. a single-row keyword heuristic.

Amounts are in each account's own sign convention, so a card payment is
negative on the card side and money leaving a bank account is negative.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from tallyup.domain.entities import AccountType, KnownAccount, TransferReason
from tallyup.domain.normalizer import amounts_match, normalize_description
from tallyup.logging_setup import get_logger
from tallyup.utils.date_parser import days_between

logger = get_logger(__name__)

TRANSFER_KEYWORDS = tuple(
    normalize_description(keyword)
    for keyword in (
        "payment",
        "transfer",
        "xfer",
        "online banking",
        "e-transfer",
        "e transfer",
        "mb-transfer",
        "mb transfer",
        "mb-credit card",
        "loc pay",
        "visa payment",
        "mastercard payment",
        "credit card payment",
    )
)

CARD_PAYMENT_KEYWORDS = ("payment from", "scotiaonline", "teles", "bns", "online banking")

GENERIC_CARD_WORDS = ("credit card", "visa", "mastercard")

CARD_PAYMENT_MAX_DAYS = 3
INTER_ACCOUNT_MAX_DAYS = 1


@dataclass(frozen=True)
class TransferRow:
    """Input row for transfer detection."""

    row_id: int
    account_id: int
    account_type: AccountType
    date: date
    amount: Decimal
    normalized_description: str


@dataclass(frozen=True)
class TransferCandidate:
    """A row classified as an internal transfer."""

    row_id: int
    reason: TransferReason
    paired_with: Optional[int] = None


def has_transfer_keyword(normalized_description: str) -> bool:
    return any(keyword in normalized_description for keyword in TRANSFER_KEYWORDS)


def _references_other_account(row: TransferRow, accounts: Iterable[KnownAccount], by_last4: bool) -> bool:
    for account in accounts:
        if account.id == row.account_id:
            continue
        if by_last4:
            if account.last4 and account.last4 in row.normalized_description:
                return True
        else:
            alias = normalize_description(account.display_alias)
            if alias and alias in row.normalized_description:
                return True
    return False


def is_transfer_candidate(row: TransferRow, accounts: Iterable[KnownAccount]) -> bool:
    """Return True when a single row looks like a transfer on its own.

    Args:
        row: Row to classify
        accounts: Every known account (the row's own account is skipped)

    Returns:
        True if the keyword heuristics classify the row as a transfer
    """
    accounts = list(accounts)
    desc = row.normalized_description
    keyword = has_transfer_keyword(desc)

    if row.account_type == AccountType.BANK and keyword:
        if _references_other_account(row, accounts, by_last4=True):
            return True
        if any(word in desc for word in GENERIC_CARD_WORDS):
            return True

    if row.account_type == AccountType.CREDIT_CARD and row.amount < 0:
        if any(phrase in desc for phrase in CARD_PAYMENT_KEYWORDS):
            return True

    if keyword and _references_other_account(row, accounts, by_last4=False):
        return True

    return False


def pair_credit_card_payments(rows: list[TransferRow]) -> dict[int, TransferCandidate]:
    """Pair bank debits with card payments of the same size within 3 days.

    Pairing is greedy and one-to-one: each bank row takes the first unused
    card row that fits, in input order.
    """
    candidates: dict[int, TransferCandidate] = {}
    bank_rows = [r for r in rows if r.account_type == AccountType.BANK and r.amount < 0]
    card_rows = [r for r in rows if r.account_type == AccountType.CREDIT_CARD and r.amount < 0]

    for bank_row in bank_rows:
        for card_row in card_rows:
            if card_row.row_id in candidates:
                continue
            if not amounts_match(bank_row.amount, card_row.amount):
                continue
            if days_between(bank_row.date, card_row.date) > CARD_PAYMENT_MAX_DAYS:
                continue
            candidates[bank_row.row_id] = TransferCandidate(
                bank_row.row_id, TransferReason.CREDIT_CARD_PAYMENT, card_row.row_id
            )
            candidates[card_row.row_id] = TransferCandidate(
                card_row.row_id, TransferReason.CREDIT_CARD_PAYMENT, bank_row.row_id
            )
            break

    return candidates


def pair_inter_account_transfers(
    rows: list[TransferRow], exclude: Optional[set[int]] = None
) -> dict[int, TransferCandidate]:
    """Pair opposite-sign bank rows from different accounts within 1 day.

    At least one side of a pair must carry a transfer keyword.
    """
    exclude = exclude or set()
    candidates: dict[int, TransferCandidate] = {}
    bank_rows = [r for r in rows if r.account_type == AccountType.BANK and r.row_id not in exclude]

    for i, first in enumerate(bank_rows):
        if first.row_id in candidates:
            continue
        for second in bank_rows[i + 1:]:
            if second.row_id in candidates or first.account_id == second.account_id:
                continue
            if not amounts_match(first.amount, second.amount):
                continue
            if (first.amount > 0) == (second.amount > 0) or first.amount == 0 or second.amount == 0:
                continue
            if days_between(first.date, second.date) > INTER_ACCOUNT_MAX_DAYS:
                continue
            if not (
                has_transfer_keyword(first.normalized_description)
                or has_transfer_keyword(second.normalized_description)
            ):
                continue
            candidates[first.row_id] = TransferCandidate(
                first.row_id, TransferReason.INTER_ACCOUNT_TRANSFER, second.row_id
            )
            candidates[second.row_id] = TransferCandidate(
                second.row_id, TransferReason.INTER_ACCOUNT_TRANSFER, first.row_id
            )
            break

    return candidates


def detect_transfers(
    rows: Iterable[TransferRow], accounts: Iterable[KnownAccount]
) -> dict[int, TransferCandidate]:
    """Classify rows that are internal transfers.

    Args:
        rows: Rows to inspect (any mix of accounts)
        accounts: Every known account, used for alias and last-4 references

    Returns:
        Mapping of row id to its transfer classification. Rows that are not
        transfers have no entry.
    """
    rows = list(rows)
    accounts = list(accounts)

    candidates = pair_credit_card_payments(rows)
    candidates.update(pair_inter_account_transfers(rows, exclude=set(candidates)))

    for row in rows:
        if row.row_id in candidates:
            continue
        if is_transfer_candidate(row, accounts):
            reason = (
                TransferReason.INTER_ACCOUNT_TRANSFER
                if row.account_type == AccountType.BANK
                else TransferReason.CREDIT_CARD_PAYMENT
            )
            candidates[row.row_id] = TransferCandidate(row.row_id, reason)

    logger.debug("Detected %d transfer rows out of %d", len(candidates), len(rows))
    return candidates
