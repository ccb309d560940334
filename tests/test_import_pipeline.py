"""Tests for the pure import reconciliation steps."""

from datetime import date
from decimal import Decimal

import pytest

from tallyup.domain.entities import (
    Account,
    AccountType,
    IgnoreRule,
    KnownAccount,
    Period,
    RecurringDefinition,
    RowStatus,
    Transaction,
    TransactionSource,
    TransactionStatus,
)
from tallyup.domain.errors import ValidationError
from tallyup.domain.import_pipeline import (
    ColumnMapping,
    ImportContext,
    detect_column_mapping,
    reconcile_import,
)
from tallyup.domain.scheduling import MonthlySchedule

BANK = Account(id=1, name="Chequing", type=AccountType.BANK, last4="9876")
CARD = Account(id=2, name="Visa", type=AccountType.CREDIT_CARD, last4="1234", display_alias="VISA")
KNOWN = (
    KnownAccount(id=1, type=AccountType.BANK, last4="9876"),
    KnownAccount(id=2, type=AccountType.CREDIT_CARD, last4="1234", display_alias="VISA"),
)
JANUARY = Period(id=7, year=2024, month=1)
MAPPING = ColumnMapping(date="Date", description="Description", amount="Amount")


def _rows(*rows):
    return [
        (line, {"Date": row[0], "Description": row[1], "Amount": row[2]})
        for line, row in enumerate(rows, start=2)
    ]


def _context(account=BANK, **kwargs):
    return ImportContext(account=account, period=JANUARY, mapping=MAPPING, known_accounts=KNOWN, **kwargs)


def _income_projection(projection_id=50, amount="-2450.00", day=15):
    return Transaction(
        id=projection_id,
        account_id=None,
        period_id=JANUARY.id,
        date=date(2024, 1, day),
        description="Payroll",
        amount=Decimal(amount),
        category="Income",
        status=TransactionStatus.PROJECTED,
        source=TransactionSource.RECURRING,
        is_recurring_instance=True,
        recurring_definition_id=3,
    )


class TestColumnDetection:
    """Tests for detect_column_mapping."""

    def test_detects_common_headers(self):
        mapping = detect_column_mapping(["Transaction Date", "Description", "Amount", "Status"])
        assert mapping.date == "Transaction Date"
        assert mapping.description == "Description"
        assert mapping.amount == "Amount"
        assert mapping.status == "Status"

    def test_falls_back_to_second_column_for_description(self):
        mapping = detect_column_mapping(["Date", "Memo", "Amount"])
        assert mapping.description == "Memo"

    def test_missing_amount_column(self):
        with pytest.raises(ValidationError):
            detect_column_mapping(["Date", "Description"])


class TestReconcileImport:
    """Tests for reconcile_import."""

    def test_bank_amounts_become_expense_signed(self):
        result = reconcile_import(_context(), _rows(("2024-01-05", "HYDRO BILL", "-80.00")))
        assert result.transactions[0].amount == Decimal("80.00")
        assert result.raw_rows[0].amount_before_norm == Decimal("-80.00")
        assert result.summary.imported == 1

    def test_card_amounts_keep_their_sign(self):
        result = reconcile_import(_context(CARD), _rows(("2024-01-05", "TIM HORTONS", "4.25")))
        assert result.transactions[0].amount == Decimal("4.25")

    def test_inverted_account(self):
        inverted = Account(id=2, name="Visa", type=AccountType.CREDIT_CARD, invert_amounts=True)
        result = reconcile_import(_context(inverted), _rows(("2024-01-05", "TIM HORTONS", "-4.25")))
        assert result.transactions[0].amount == Decimal("4.25")

    def test_rows_outside_the_period(self):
        result = reconcile_import(
            _context(), _rows(("2024-01-05", "HYDRO", "-80.00"), ("2024-02-01", "RENT", "-1500.00"))
        )
        assert result.summary.out_of_period == 1
        assert len(result.transactions) == 1
        assert [r.status for r in result.rows] == [RowStatus.IMPORTED, RowStatus.OUT_OF_PERIOD]

    def test_malformed_rows_are_counted_and_skipped(self):
        result = reconcile_import(
            _context(), _rows(("yesterday-ish", "X", "-1.00"), ("2024-01-05", "Y", "abc"), ("2024-01-05", "Z", "-1.00"))
        )
        assert result.summary.malformed == 2
        assert result.summary.imported == 1

    def test_existing_hashes_are_duplicates(self):
        first = reconcile_import(_context(), _rows(("2024-01-05", "HYDRO", "-80.00")))
        existing = frozenset(r.hash_key for r in first.raw_rows)
        second = reconcile_import(
            _context(existing_transaction_hashes=existing, existing_raw_hashes=existing),
            _rows(("2024-01-05", "HYDRO", "-80.00")),
        )
        assert second.summary.duplicate == 1
        assert second.transactions == []
        assert second.raw_rows == []

    def test_identical_rows_within_file_are_duplicates(self):
        result = reconcile_import(
            _context(), _rows(("2024-01-05", "COFFEE", "-3.00"), ("2024-01-05", "COFFEE", "-3.00"))
        )
        assert result.summary.imported == 1
        assert result.summary.duplicate == 1

    def test_transfer_rows_are_stored_ignored(self):
        result = reconcile_import(_context(), _rows(("2024-01-15", "E-TRANSFER TO VISA 1234", "-50.00")))
        assert result.summary.transfer_ignored == 1
        assert result.summary.imported == 0
        assert result.transactions[0].is_ignored
        assert result.raw_rows[0].ignore_reason == "inter_account_transfer"

    def test_ignore_rule_wins_over_everything(self):
        rule = IgnoreRule(id=1, pattern="Interest", normalized_pattern="interest")
        result = reconcile_import(
            _context(ignore_rules=(rule,)), _rows(("2024-01-31", "INTEREST PAID", "0.12"))
        )
        assert result.summary.rule_ignored == 1
        assert result.raw_rows[0].ignore_reason == "ignore_rule"

    def test_ignore_rule_does_not_apply_out_of_period(self):
        rule = IgnoreRule(id=1, pattern="Interest", normalized_pattern="interest")
        result = reconcile_import(
            _context(ignore_rules=(rule,)), _rows(("2024-02-01", "INTEREST PAID", "0.12"))
        )
        assert result.summary.rule_ignored == 0
        assert result.summary.out_of_period == 1

    @pytest.mark.parametrize("deposit, merged", [("2450.00", 1), ("2430.00", 1), ("2100.00", 0)])
    def test_income_merge_tolerance(self, deposit, merged):
        result = reconcile_import(
            _context(income_projections=(_income_projection(),), projections=(_income_projection(),)),
            _rows(("2024-01-15", "ACME PAYROLL", deposit)),
        )
        assert result.summary.income_merged == merged
        assert len(result.income_merges) == merged
        if merged:
            assert result.income_merges[0].projection_id == 50
            assert result.transactions == []
        else:
            assert result.transactions[0].amount == Decimal(f"-{deposit}")

    def test_income_merge_skipped_when_two_projections_fit(self):
        projections = (_income_projection(50, day=1), _income_projection(51, day=15))
        result = reconcile_import(
            _context(income_projections=projections, projections=projections),
            _rows(("2024-01-15", "ACME PAYROLL", "2450.00")),
        )
        assert result.summary.income_merged == 0

    def test_recurring_match_consumes_placeholder(self):
        definition = RecurringDefinition(
            id=4,
            merchant_label="Hydro One",
            nominal_amount=Decimal("80.00"),
            schedule=MonthlySchedule(day_of_month=5),
            category="Recurring - Essential",
        )
        placeholder = Transaction(
            id=60,
            account_id=None,
            period_id=JANUARY.id,
            date=date(2024, 1, 5),
            description="Hydro One",
            amount=Decimal("80.00"),
            category="Recurring - Essential",
            status=TransactionStatus.PROJECTED,
            source=TransactionSource.RECURRING,
            is_recurring_instance=True,
            recurring_definition_id=4,
        )
        result = reconcile_import(
            _context(definitions=(definition,), projections=(placeholder,)),
            _rows(("2024-01-06", "HYDRO ONE NETWORKS", "-80.00")),
        )
        assert result.summary.recurring_matched == 1
        assert result.consumed_projection_ids == [60]
        draft = result.transactions[0]
        assert draft.recurring_definition_id == 4
        assert draft.category == "Recurring - Essential"

    def test_pending_status_column(self):
        mapping = ColumnMapping(date="Date", description="Description", amount="Amount", status="Status")
        context = ImportContext(account=CARD, period=JANUARY, mapping=mapping, known_accounts=KNOWN)
        result = reconcile_import(
            context, [(2, {"Date": "2024-01-05", "Description": "UBER", "Amount": "12.00", "Status": "Pending"})]
        )
        assert result.transactions[0].status == TransactionStatus.PENDING
