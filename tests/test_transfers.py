"""Tests for internal transfer detection."""

from datetime import date
from decimal import Decimal

from tallyup.domain.entities import AccountType, KnownAccount, TransferReason
from tallyup.domain.normalizer import normalize_description
from tallyup.domain.transfers import TransferRow, detect_transfers, is_transfer_candidate

BANK = KnownAccount(id=1, type=AccountType.BANK, last4="9876")
CARD = KnownAccount(id=2, type=AccountType.CREDIT_CARD, last4="1234", display_alias="VISA")
SAVINGS = KnownAccount(id=3, type=AccountType.BANK, last4="5555", display_alias="Savings")
ACCOUNTS = [BANK, CARD, SAVINGS]


def _row(row_id, account, amount, description, day=15):
    return TransferRow(
        row_id=row_id,
        account_id=account.id,
        account_type=account.type,
        date=date(2024, 1, day),
        amount=Decimal(amount),
        normalized_description=normalize_description(description),
    )


def test_credit_card_payment_pair():
    """A bank debit and a card payment one day apart pair up."""
    rows = [
        _row(1, BANK, "-50.00", "E-TRANSFER TO VISA 1234", day=15),
        _row(2, CARD, "-50.00", "PAYMENT - THANK YOU", day=16),
    ]
    result = detect_transfers(rows, ACCOUNTS)
    assert result[1].reason == TransferReason.CREDIT_CARD_PAYMENT
    assert result[1].paired_with == 2
    assert result[2].paired_with == 1


def test_card_payment_too_far_apart_is_not_paired():
    """Rows more than three days apart do not pair."""
    rows = [
        _row(1, BANK, "-50.00", "COFFEE SHOP", day=1),
        _row(2, CARD, "-50.00", "REFUND", day=10),
    ]
    assert detect_transfers(rows, ACCOUNTS) == {}


def test_pairing_is_one_to_one():
    """One card payment pairs with only one bank debit."""
    rows = [
        _row(1, BANK, "-50.00", "GROCERY", day=15),
        _row(2, BANK, "-50.00", "HARDWARE", day=15),
        _row(3, CARD, "-50.00", "STORE CREDIT", day=16),
    ]
    result = detect_transfers(rows, ACCOUNTS)
    assert set(result) == {1, 3}


def test_inter_account_transfer_needs_keyword():
    """Opposite-sign bank rows pair only when one mentions a transfer."""
    rows = [
        _row(1, BANK, "-200.00", "ONLINE BANKING TRANSFER", day=3),
        _row(2, SAVINGS, "200.00", "DEPOSIT", day=4),
    ]
    result = detect_transfers(rows, ACCOUNTS)
    assert result[1].reason == TransferReason.INTER_ACCOUNT_TRANSFER
    assert result[2].paired_with == 1

    plain = [
        _row(1, BANK, "-200.00", "RENT", day=3),
        _row(2, SAVINGS, "200.00", "DEPOSIT", day=4),
    ]
    assert detect_transfers(plain, ACCOUNTS) == {}


def test_single_row_heuristic_by_last4():
    """A bank row naming another account's last four digits is a transfer."""
    row = _row(1, BANK, "-75.00", "Payment to card 1234")
    assert is_transfer_candidate(row, ACCOUNTS)
    assert detect_transfers([row], ACCOUNTS)[1].reason == TransferReason.INTER_ACCOUNT_TRANSFER


def test_own_account_is_not_a_reference():
    """A row mentioning its own account number is not a transfer by itself."""
    row = _row(1, BANK, "-75.00", "transfer fee acct 9876")
    assert not is_transfer_candidate(row, ACCOUNTS)


def test_card_payment_keyword_on_card():
    """A card credit described as a payment is a transfer."""
    row = _row(1, CARD, "-300.00", "PAYMENT FROM CHEQUING")
    result = detect_transfers([row], ACCOUNTS)
    assert result[1].reason == TransferReason.CREDIT_CARD_PAYMENT


def test_alias_reference():
    """A keyword plus another account's alias is a transfer."""
    row = _row(1, BANK, "-20.00", "Transfer to Savings")
    assert is_transfer_candidate(row, ACCOUNTS)


def test_ordinary_purchase_is_not_a_transfer():
    """Ordinary rows are left alone."""
    rows = [_row(1, CARD, "12.50", "TIM HORTONS"), _row(2, BANK, "-80.00", "HYDRO BILL")]
    assert detect_transfers(rows, ACCOUNTS) == {}
