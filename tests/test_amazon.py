"""Tests for Amazon order import and matching."""

from datetime import date
from decimal import Decimal

import pytest

from tallyup.config import Settings
from tallyup.domain.amazon import (
    AmazonService,
    build_candidate_groups,
    match_orders,
    mentions_amazon,
    parse_order,
    window_bounds,
)
from tallyup.domain.entities import AmazonOrder, Candidates, MatchStatus, NoCandidates, Transaction
from tallyup.domain.errors import ConflictError, NotFoundError, ValidationError

CARD_STATEMENT = """
Date,Description,Amount
2024-01-11,AMAZON.CA MKTPL,45.99
2024-01-12,AMZN MKTP CA,20.00
2024-01-20,GROCERY,45.99
"""


def _txn(txn_id, day, amount, account_id=1, description="AMAZON.CA"):
    return Transaction(
        id=txn_id,
        account_id=account_id,
        period_id=1,
        date=date(2024, 1, day),
        description=description,
        amount=Decimal(amount),
    )


def _order(order_id, day, total):
    return AmazonOrder(id=order_id, amazon_order_id=f"701-{order_id}", order_date=date(2024, 1, day), order_total=Decimal(total))


class TestParseOrder:
    def test_camel_case_record(self):
        draft = parse_order(
            {"orderId": " 701-1 ", "orderDate": "2024-01-10", "orderTotal": "45.985", "items": ["Book", " "]}
        )
        assert draft.amazon_order_id == "701-1"
        assert draft.order_date == date(2024, 1, 10)
        assert draft.order_total == Decimal("45.98")
        assert draft.items == ("Book",)
        assert draft.currency == "CAD"

    def test_snake_case_record(self):
        draft = parse_order({"order_id": "701-2", "order_date": "2024-01-10", "order_total": 12, "currency": "USD"})
        assert draft.order_total == Decimal("12.00")
        assert draft.currency == "USD"

    @pytest.mark.parametrize(
        "record",
        [
            {"orderDate": "2024-01-10", "orderTotal": "1.00"},
            {"orderId": "701-3", "orderDate": "not a date", "orderTotal": "1.00"},
            {"orderId": "701-3", "orderDate": "2024-01-10", "orderTotal": "lots"},
            {"orderId": "701-3", "orderDate": "2024-01-10"},
        ],
    )
    def test_invalid_records(self, record):
        with pytest.raises(ValidationError):
            parse_order(record)


def test_mentions_amazon():
    assert mentions_amazon(_txn(1, 1, "1.00", description="AMZN Mktp CA"))
    assert not mentions_amazon(_txn(1, 1, "1.00", description="GROCERY"))


def test_window_bounds():
    assert window_bounds(date(2024, 1, 3), 5) == (date(2023, 12, 29), date(2024, 1, 8))


class TestBuildCandidateGroups:
    def test_single_transaction(self):
        groups = build_candidate_groups(date(2024, 1, 10), Decimal("45.99"), [_txn(1, 11, "45.99"), _txn(2, 11, "20.00")])
        assert [g.transaction_ids for g in groups] == [(1,)]
        assert groups[0].total == Decimal("45.99")

    def test_split_shipment_same_account_only(self):
        pool = [_txn(1, 10, "20.00"), _txn(2, 12, "25.99"), _txn(3, 11, "25.99", account_id=2)]
        groups = build_candidate_groups(date(2024, 1, 10), Decimal("45.99"), pool, max_group_size=2)
        assert [g.transaction_ids for g in groups] == [(1, 2)]
        assert groups[0].date_span_days == 2

    def test_combinations_off_by_default(self):
        pool = [_txn(1, 10, "20.00"), _txn(2, 12, "25.99")]
        assert build_candidate_groups(date(2024, 1, 10), Decimal("45.99"), pool) == []

    def test_refunds_and_zero_totals_skipped(self):
        assert build_candidate_groups(date(2024, 1, 10), Decimal("0"), [_txn(1, 10, "0.00")]) == []
        assert build_candidate_groups(date(2024, 1, 10), Decimal("5"), [_txn(1, 10, "-5.00")]) == []

    def test_closer_group_scores_higher(self):
        groups = build_candidate_groups(date(2024, 1, 10), Decimal("9.99"), [_txn(1, 14, "9.99"), _txn(2, 10, "9.99")])
        assert [g.transaction_ids for g in groups] == [(2,), (1,)]


class TestMatchOrders:
    def test_unique_candidate_is_matched(self):
        [result] = match_orders([_order(1, 10, "45.99")], [_txn(7, 11, "45.99")])
        assert result.status == MatchStatus.MATCHED
        assert result.transaction_ids == (7,)

    def test_no_candidate_is_unmatched(self):
        [result] = match_orders([_order(1, 10, "45.99")], [_txn(7, 25, "45.99")])
        assert result.status == MatchStatus.UNMATCHED
        assert isinstance(result.metadata, NoCandidates)

    def test_shared_transaction_makes_both_ambiguous(self):
        results = match_orders([_order(1, 10, "45.99"), _order(2, 12, "45.99")], [_txn(7, 11, "45.99")])
        assert [r.status for r in results] == [MatchStatus.AMBIGUOUS, MatchStatus.AMBIGUOUS]
        assert all(r.transaction_ids == () for r in results)
        assert isinstance(results[0].metadata, Candidates)
        assert results[0].metadata.groups[0].transaction_ids == (7,)

    def test_two_candidates_is_ambiguous(self):
        [result] = match_orders([_order(1, 10, "45.99")], [_txn(7, 11, "45.99"), _txn(8, 12, "45.99")])
        assert result.status == MatchStatus.AMBIGUOUS
        assert len(result.metadata.groups) == 2

    def test_rerun_is_stable(self):
        orders = [_order(1, 10, "45.99"), _order(2, 12, "20.00")]
        pool = [_txn(7, 11, "45.99"), _txn(8, 12, "20.00")]
        assert match_orders(orders, pool) == match_orders(orders, pool)


class TestAmazonService:
    @pytest.fixture
    def service(self, temp_db):
        return AmazonService(temp_db, settings=Settings())

    @pytest.fixture
    def charges(self, import_service, temp_db, card_account, write_csv):
        import_service.import_csv(write_csv(CARD_STATEMENT), card_account.id, mode="auto")
        return {t.description: t.id for t in temp_db.list_transactions(account_id=card_account.id)}

    def _order_id(self, temp_db, amazon_order_id):
        return temp_db.get_amazon_order_by_order_id(amazon_order_id).id

    def test_import_and_match(self, service, temp_db, charges):
        records = [
            {"orderId": "701-1", "orderDate": "2024-01-10", "orderTotal": "45.99", "items": ["Book"]},
            {"orderId": "701-2", "orderDate": "2024-01-12", "orderTotal": "20.00"},
            {"orderId": "701-2", "orderDate": "2024-01-12", "orderTotal": "20.00"},
            {"orderId": "", "orderDate": "2024-01-12", "orderTotal": "20.00"},
        ]
        summary = service.import_orders(records, source_url="https://www.amazon.ca/orders")

        assert summary.received == 4
        assert summary.created == 2
        assert summary.skipped == 0
        assert summary.invalid == 1
        assert summary.matched == 2

        order = service.get_order(self._order_id(temp_db, "701-1"))
        assert order.match_status == MatchStatus.MATCHED
        assert order.linked_transaction_ids == (charges["AMAZON.CA MKTPL"],)
        assert order.items == ("Book",)
        assert order.order_url == "https://www.amazon.ca/orders"

        again = service.import_orders(records[:2])
        assert again.created == 0
        assert again.skipped == 2

    def test_ambiguous_orders_keep_candidates(self, service, temp_db, charges):
        service.import_orders(
            [
                {"orderId": "701-1", "orderDate": "2024-01-10", "orderTotal": "45.99"},
                {"orderId": "701-3", "orderDate": "2024-01-13", "orderTotal": "45.99"},
            ]
        )
        order = service.get_order(self._order_id(temp_db, "701-1"))
        assert order.match_status == MatchStatus.AMBIGUOUS
        assert order.linked_transaction_ids == ()
        assert order.match_metadata.groups[0].transaction_ids == (charges["AMAZON.CA MKTPL"],)
        assert [g.transaction_ids for g in service.get_candidates(order.id)] == [(charges["AMAZON.CA MKTPL"],)]

    def test_manual_link_conflict_and_split(self, service, temp_db, charges):
        service.import_orders(
            [
                {"orderId": "701-1", "orderDate": "2024-01-10", "orderTotal": "45.99"},
                {"orderId": "701-9", "orderDate": "2024-01-10", "orderTotal": "99.99"},
            ]
        )
        other = self._order_id(temp_db, "701-9")
        amazon_charge = charges["AMAZON.CA MKTPL"]
        assert service.get_order(other).match_status == MatchStatus.UNMATCHED

        with pytest.raises(ConflictError):
            service.link_order(other, [amazon_charge])

        linked = service.split_link_order(other, [amazon_charge, charges["AMZN MKTP CA"]])
        assert linked.match_status == MatchStatus.MATCHED
        assert linked.linked_transaction_ids == tuple(sorted([amazon_charge, charges["AMZN MKTP CA"]]))

        unlinked = service.unlink_order(other)
        assert unlinked.match_status == MatchStatus.UNMATCHED
        assert unlinked.linked_transaction_ids == ()

    def test_link_unknown_transaction(self, service, temp_db, charges):
        service.import_orders([{"orderId": "701-9", "orderDate": "2024-01-10", "orderTotal": "99.99"}])
        with pytest.raises(NotFoundError):
            service.link_order(self._order_id(temp_db, "701-9"), [9999])
        with pytest.raises(ValidationError):
            service.split_link_order(self._order_id(temp_db, "701-9"), [])

    def test_ignored_orders_are_not_matched(self, service, temp_db, charges):
        service.import_orders([{"orderId": "701-9", "orderDate": "2024-01-10", "orderTotal": "99.99"}])
        order_id = self._order_id(temp_db, "701-9")
        assert service.set_ignored(order_id, True).is_ignored
        assert service.match().unmatched == 0
        assert not service.set_ignored(order_id, False).is_ignored
        assert service.match().unmatched == 1

    def test_unknown_order(self, service):
        with pytest.raises(NotFoundError):
            service.get_order(12345)
