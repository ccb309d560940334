"""Tests for recurring definitions and projected instances."""

from datetime import date
from decimal import Decimal

import pytest

from tallyup.domain.entities import TransactionSource, TransactionStatus
from tallyup.domain.errors import MissingPeriodError, NotFoundError, ValidationError
from tallyup.domain.scheduling import MonthlySchedule, TwiceMonthlySchedule, WeeklySchedule


def _netflix(recurring_service, **overrides):
    values = dict(
        merchant_label="Netflix",
        nominal_amount=Decimal("16.99"),
        schedule=MonthlySchedule(day_of_month=3),
        category="Recurring - Non-Essential",
    )
    values.update(overrides)
    return recurring_service.create_definition(**values)


class TestDefinitions:
    def test_create_projects_into_open_periods(self, recurring_service, period_service, temp_db, january):
        february = period_service.create_period(2024, 2)
        period_service.lock_period(february.id)

        definition_id = _netflix(recurring_service, display_label="Netflix Premium")

        [projected] = temp_db.list_projected_transactions(january.id)
        assert projected.date == date(2024, 1, 3)
        assert projected.amount == Decimal("16.99")
        assert projected.description == "Netflix Premium"
        assert projected.account_id is None
        assert projected.status == TransactionStatus.PROJECTED
        assert projected.source == TransactionSource.RECURRING
        assert projected.recurring_definition_id == definition_id
        assert temp_db.list_projected_transactions(february.id) == []

    def test_new_period_gets_projections(self, recurring_service, period_service, temp_db):
        recurring_service.create_definition(
            merchant_label="Gym",
            nominal_amount=Decimal("25"),
            schedule=WeeklySchedule(weekday=0),
            category="Recurring - Non-Essential",
        )
        january = period_service.create_period(2024, 1)
        dates = [t.date.day for t in temp_db.list_projected_transactions(january.id)]
        assert dates == [1, 8, 15, 22, 29]

    def test_income_is_projected_negative(self, recurring_service, temp_db, january):
        recurring_service.create_definition(
            merchant_label="ACME PAYROLL",
            nominal_amount=Decimal("2450"),
            schedule=TwiceMonthlySchedule(first_day=15, second_day=31),
            category="Income",
        )
        projected = temp_db.list_projected_transactions(january.id)
        assert [(t.date.day, t.amount) for t in projected] == [(15, Decimal("-2450.00")), (31, Decimal("-2450.00"))]

    def test_generation_is_idempotent(self, recurring_service, january):
        _netflix(recurring_service)
        assert recurring_service.generate_projections(january) == 0

    @pytest.mark.parametrize(
        "overrides",
        [{"merchant_label": " ** "}, {"category": ""}, {"nominal_amount": Decimal("0.001")}],
    )
    def test_validation(self, recurring_service, overrides):
        with pytest.raises(ValidationError):
            _netflix(recurring_service, **overrides)

    def test_update_rebuilds_projections(self, recurring_service, temp_db, january):
        definition_id = _netflix(recurring_service)
        recurring_service.update_definition(
            definition_id, nominal_amount=Decimal("18.99"), schedule=MonthlySchedule(day_of_month=10)
        )
        [projected] = temp_db.list_projected_transactions(january.id)
        assert (projected.date, projected.amount) == (date(2024, 1, 10), Decimal("18.99"))
        assert recurring_service.get_definition(definition_id).frequency == "monthly"

    def test_deactivate_removes_projections(self, recurring_service, temp_db, january):
        definition_id = _netflix(recurring_service)
        recurring_service.deactivate_definition(definition_id)
        assert temp_db.list_projected_transactions(january.id) == []
        assert recurring_service.list_definitions(active_only=True) == []

    def test_delete_keeps_posted_instances(
        self, recurring_service, import_service, temp_db, bank_account, january, write_csv
    ):
        definition_id = _netflix(recurring_service)
        import_service.import_csv(
            write_csv("Date,Description,Amount\n2024-01-03,NETFLIX.COM,-16.99\n"),
            bank_account.id,
            mode="current",
            period_id=january.id,
        )
        recurring_service.delete_definition(definition_id)

        [posted] = temp_db.list_transactions(period_id=january.id)
        assert posted.recurring_definition_id is None
        assert posted.is_recurring_instance is False
        assert posted.status == TransactionStatus.POSTED
        with pytest.raises(NotFoundError):
            recurring_service.get_definition(definition_id)


class TestMatchExistingImports:
    def test_links_imports_made_before_the_definition(
        self, recurring_service, import_service, temp_db, bank_account, january, write_csv
    ):
        import_service.import_csv(
            write_csv("Date,Description,Amount\n2024-01-04,NETFLIX.COM,-16.99\n2024-01-05,GROCER,-30.00"),
            bank_account.id,
            mode="current",
            period_id=january.id,
        )
        definition_id = _netflix(recurring_service)
        assert len(temp_db.list_projected_transactions(january.id)) == 1

        assert recurring_service.match_existing_imports(january.id) == 1
        assert temp_db.list_projected_transactions(january.id) == []
        [linked] = temp_db.list_transactions(period_id=january.id, recurring_definition_id=definition_id)
        assert linked.description == "NETFLIX.COM"
        assert linked.category == "Recurring - Non-Essential"

        assert recurring_service.match_existing_imports(january.id) == 0

    def test_no_definitions(self, recurring_service, january):
        assert recurring_service.match_existing_imports(january.id) == 0

    def test_missing_period(self, recurring_service):
        with pytest.raises(MissingPeriodError):
            recurring_service.match_existing_imports(404)
