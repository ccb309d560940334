"""Tests for sync feed reconciliation."""

from datetime import date
from decimal import Decimal

import pytest

from tallyup.domain.entities import Period, TransactionStatus
from tallyup.domain.errors import MalformedRowError, MissingAccountError, ValidationError
from tallyup.domain.rules import IgnoreRuleService
from tallyup.domain.scheduling import MonthlySchedule
from tallyup.domain.sync import (
    FeedEvent,
    SyncService,
    group_by_month,
    is_transfer_category,
    is_transfer_description,
    modification_fields,
    parse_sync_batch,
)


def _event(external_id, day, name, amount, **extra):
    record = {"transaction_id": external_id, "date": day, "name": name, "amount": amount}
    record.update(extra)
    return record


@pytest.fixture
def sync_service(temp_db):
    return SyncService(temp_db)


class TestFeedEvent:
    def test_from_dict_nested_category(self):
        event = FeedEvent.from_dict(
            _event(
                "tx-1",
                "2024-01-05",
                "Starbucks",
                "4.50",
                merchant_name="Starbucks Coffee",
                personal_finance_category={"primary": "FOOD_AND_DRINK", "detailed": "FOOD_AND_DRINK_COFFEE"},
            )
        )
        assert event.date == date(2024, 1, 5)
        assert event.amount == Decimal("4.50")
        assert event.sub_description == "Starbucks Coffee"
        assert event.category_primary == "FOOD_AND_DRINK"

    def test_description_falls_back_to_merchant(self):
        event = FeedEvent.from_dict(_event("tx-1", "2024-01-05", "", "4.50", merchant_name="Corner Shop"))
        assert event.description == "Corner Shop"
        assert event.sub_description is None

    def test_missing_id(self):
        with pytest.raises(MalformedRowError):
            FeedEvent.from_dict({"date": "2024-01-05", "amount": "1.00"})

    def test_bad_amount(self):
        with pytest.raises(MalformedRowError):
            FeedEvent.from_dict(_event("tx-1", "2024-01-05", "X", "lots"))


def test_transfer_category_and_description():
    assert is_transfer_category("TRANSFER_OUT", None)
    assert is_transfer_category(None, "LOAN_PAYMENTS_CREDIT_CARD_PAYMENT")
    assert not is_transfer_category("FOOD_AND_DRINK", "FOOD_AND_DRINK_COFFEE")
    assert is_transfer_description("Online Transfer to SAV 4321")
    assert is_transfer_description("CREDIT CARD PAYMENT")
    assert not is_transfer_description("Grocery Store")


def test_group_by_month_orders_oldest_first():
    events = [
        FeedEvent("b", date(2024, 2, 1), "B", Decimal("1")),
        FeedEvent("a", date(2024, 1, 31), "A", Decimal("1")),
    ]
    assert list(group_by_month(events)) == [(2024, 1), (2024, 2)]


def test_parse_sync_batch_counts_malformed():
    batch = parse_sync_batch(
        {
            "added": [_event("tx-1", "2024-01-05", "A", "1.00"), {"name": "no id"}],
            "modified": [_event("tx-2", "bad", "B", "1.00")],
            "removed": [{"transaction_id": "tx-3"}, "tx-4"],
        }
    )
    assert [e.external_id for e in batch.added] == ["tx-1"]
    assert batch.modified == ()
    assert batch.removed == ("tx-3", "tx-4")
    assert batch.malformed == 2


def test_parse_sync_batch_skips_events_that_are_not_objects():
    batch = parse_sync_batch(
        {
            "added": [
                None,
                "tx-9",
                _event("tx-1", "2024-01-05", "A", "1.00", personal_finance_category="FOOD"),
                _event("tx-2", "2024-01-06", "B", "2.00", merchant_name=42),
            ],
            "modified": [None],
        }
    )
    assert [e.external_id for e in batch.added] == ["tx-2"]
    assert batch.added[0].merchant_name == "42"
    assert batch.malformed == 4


@pytest.mark.parametrize("payload", [[], ["tx-1"], {"added": "tx-1"}, {"removed": {"transaction_id": "tx-1"}}])
def test_parse_sync_batch_rejects_wrong_shape(payload):
    with pytest.raises(ValidationError):
        parse_sync_batch(payload)


def test_modification_keeps_stored_sign(temp_db, transaction_service, bank_account, january):
    txn_id = transaction_service.create_transaction(
        account_id=bank_account.id, date=date(2024, 1, 5), amount=Decimal("-100.00"), description="REFUND"
    )
    existing = temp_db.get_transaction(txn_id)
    fields = modification_fields(existing, FeedEvent("x", date(2024, 1, 6), "REFUND", Decimal("110.00")))
    assert fields["amount"] == Decimal("-110.00")
    assert fields["status"] == TransactionStatus.POSTED


class TestSyncService:
    def test_added_events_create_periods_and_transactions(self, sync_service, temp_db, bank_account):
        batch = parse_sync_batch(
            {
                "added": [
                    _event("tx-1", "2024-01-05", "Grocery Store", "54.20"),
                    _event("tx-2", "2024-02-02", "Pharmacy", "12.00", pending=True),
                ]
            }
        )
        summary = sync_service.sync(bank_account.id, batch)

        assert summary.added == 2
        assert [p.label for p in temp_db.list_periods()] == ["2024-01", "2024-02"]
        pharmacy = temp_db.get_transaction_by_external_id(bank_account.id, "tx-2")
        assert pharmacy.status == TransactionStatus.PENDING
        assert pharmacy.amount == Decimal("12.00")

    def test_resync_is_duplicate(self, sync_service, temp_db, bank_account):
        payload = {"added": [_event("tx-1", "2024-01-05", "Grocery Store", "54.20")]}
        sync_service.sync(bank_account.id, parse_sync_batch(payload))
        summary = sync_service.sync(bank_account.id, parse_sync_batch(payload))

        assert summary.added == 0
        assert summary.duplicate == 1
        assert len(temp_db.list_transactions(account_id=bank_account.id)) == 1

    def test_modified_and_removed(self, sync_service, temp_db, bank_account):
        sync_service.sync(
            bank_account.id,
            parse_sync_batch(
                {
                    "added": [
                        _event("tx-1", "2024-01-05", "Coffee", "4.50", pending=True),
                        _event("tx-2", "2024-01-06", "Lunch", "15.00"),
                    ]
                }
            ),
        )
        summary = sync_service.sync(
            bank_account.id,
            parse_sync_batch(
                {
                    "modified": [_event("tx-1", "2024-01-07", "Coffee", "5.00"), _event("tx-9", "2024-01-07", "X", "1")],
                    "removed": ["tx-2"],
                }
            ),
        )

        assert summary.modified == 1
        assert summary.removed == 1
        coffee = temp_db.get_transaction_by_external_id(bank_account.id, "tx-1")
        assert coffee.amount == Decimal("5.00")
        assert coffee.status == TransactionStatus.POSTED
        assert coffee.date == date(2024, 1, 7)
        assert temp_db.get_transaction_by_external_id(bank_account.id, "tx-2") is None

    def test_transfers_are_stored_ignored(self, sync_service, temp_db, bank_account):
        summary = sync_service.sync(
            bank_account.id,
            parse_sync_batch(
                {
                    "added": [
                        _event("tx-1", "2024-01-05", "Payment", "500.00", category_primary="TRANSFER_OUT"),
                        _event("tx-2", "2024-01-06", "Transfer to Savings", "100.00"),
                    ]
                }
            ),
        )
        assert summary.added == 0
        assert summary.transfer_ignored == 2
        transactions = temp_db.list_transactions(account_id=bank_account.id)
        assert len(transactions) == 2
        assert all(t.is_ignored for t in transactions)

    def test_ignore_rule(self, sync_service, temp_db, bank_account):
        IgnoreRuleService(temp_db).create_rule("internal sweep")
        summary = sync_service.sync(
            bank_account.id, parse_sync_batch({"added": [_event("tx-1", "2024-01-05", "INTERNAL SWEEP 22", "9.00")]})
        )
        assert summary.rule_ignored == 1
        assert temp_db.get_transaction_by_external_id(bank_account.id, "tx-1").is_ignored

    def test_invert_flag_applies(self, sync_service, temp_db, account_service, bank_account):
        account_service.set_invert_amounts(bank_account.id, True)
        sync_service.sync(
            bank_account.id, parse_sync_batch({"added": [_event("tx-1", "2024-01-05", "Grocery", "20.00")]})
        )
        assert temp_db.get_transaction_by_external_id(bank_account.id, "tx-1").amount == Decimal("-20.00")

    def test_recurring_match_consumes_placeholder(
        self, sync_service, temp_db, recurring_service, bank_account, january: Period
    ):
        recurring_service.create_definition(
            merchant_label="Spotify", nominal_amount=Decimal("11.99"), schedule=MonthlySchedule(day_of_month=12),
            category="Subscriptions",
        )
        summary = sync_service.sync(
            bank_account.id, parse_sync_batch({"added": [_event("tx-1", "2024-01-12", "SPOTIFY P1234", "11.99")]})
        )
        assert summary.recurring_matched == 1
        assert temp_db.list_projected_transactions(january.id) == []
        assert temp_db.get_transaction_by_external_id(bank_account.id, "tx-1").category == "Subscriptions"

    def test_malformed_counted(self, sync_service, bank_account):
        summary = sync_service.sync(bank_account.id, parse_sync_batch({"added": [{"transaction_id": "tx-1"}]}))
        assert summary.malformed == 1
        assert summary.added == 0

    def test_missing_account(self, sync_service):
        with pytest.raises(MissingAccountError):
            sync_service.sync(99, parse_sync_batch({}))

    def test_raced_event_is_reported_as_duplicate(self, sync_service, temp_db, bank_account, january, stale_lookups):
        grocery = _event("tx-1", "2024-01-05", "Grocery Store", "54.20")
        sync_service.sync(bank_account.id, parse_sync_batch({"added": [grocery]}))

        # the first attempt misses the stored event and collides with it
        stale_lookups("get_external_ids", "get_transaction_hashes")
        pharmacy = _event("tx-2", "2024-01-06", "Pharmacy", "12.00")
        summary = sync_service.sync(bank_account.id, parse_sync_batch({"added": [grocery, pharmacy]}))

        assert summary.added == 1
        assert summary.duplicate == 1
        assert len(temp_db.list_transactions(account_id=bank_account.id)) == 2

    def test_failed_write_does_not_leave_a_new_period(self, sync_service, temp_db, bank_account, monkeypatch):
        def fail(**kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(temp_db, "apply_ledger_changes", fail)
        batch = parse_sync_batch({"added": [_event("tx-1", "2024-03-05", "Grocery Store", "54.20")]})
        with pytest.raises(RuntimeError):
            sync_service.sync(bank_account.id, batch)

        assert temp_db.get_period_by_month(2024, 3) is None
