"""Recurring definition domain service."""

from decimal import Decimal
from typing import Any, Optional

from tallyup.database.base import Database
from tallyup.domain.entities import (
    AccountType,
    Period,
    PeriodStatus,
    RecurringDefinition,
    TransactionDraft,
    TransactionSource,
    TransactionStatus,
    UNCATEGORIZED,
    is_recurring_category,
)
from tallyup.domain.errors import (
    MissingPeriodError,
    NotFoundError,
    ValidationError,
    definition_not_found,
    period_not_found,
)
from tallyup.domain.normalizer import build_composite_description, normalize_description
from tallyup.domain.recurring_matcher import match_projections, match_recurring
from tallyup.domain.scheduling import SchedulingRule, frequency_of, projected_dates, rule_to_dict
from tallyup.logging_setup import get_logger
from tallyup.utils.amount_parser import round_currency

logger = get_logger(__name__)


class RecurringService:
    """Service for recurring definitions and their projected instances."""

    def __init__(self, db: Database):
        """Initialize recurring service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_definition(
        self,
        merchant_label: str,
        nominal_amount: Decimal,
        schedule: SchedulingRule,
        category: str,
        display_label: Optional[str] = None,
    ) -> int:
        """Create a definition and project it into every open period.

        Args:
            merchant_label: Text matched against row descriptions
            nominal_amount: Expected amount (positive; income is projected negative)
            schedule: Scheduling rule
            category: Category given to matched rows
            display_label: Optional label shown instead of the merchant label

        Returns:
            Definition ID

        Raises:
            ValidationError: If the label, category or amount is invalid
        """
        merchant_label = (merchant_label or "").strip()
        if not normalize_description(merchant_label):
            raise ValidationError("Merchant label is required")
        category = (category or "").strip()
        if not category:
            raise ValidationError("Category is required")
        nominal_amount = round_currency(nominal_amount)
        if nominal_amount == 0:
            raise ValidationError("Nominal amount must not be zero")
        # validates the shape
        rule_data = rule_to_dict(schedule)

        definition_id = self.db.create_recurring_definition(
            merchant_label=merchant_label,
            display_label=(display_label or "").strip() or None,
            nominal_amount=nominal_amount,
            frequency=frequency_of(schedule),
            schedule=rule_data,
            category=category,
        )
        self.generate_for_open_periods(definition_id)
        logger.info("Created recurring definition %d (%s)", definition_id, merchant_label)
        return definition_id

    def get_definition(self, definition_id: int) -> RecurringDefinition:
        """Get a definition by ID.

        Raises:
            NotFoundError: If the definition does not exist
        """
        definition = self.db.get_recurring_definition(definition_id)
        if definition is None:
            raise NotFoundError(definition_not_found(definition_id))
        return definition

    def list_definitions(self, active_only: bool = False) -> list[RecurringDefinition]:
        return self.db.list_recurring_definitions(active_only=active_only)

    def update_definition(
        self,
        definition_id: int,
        merchant_label: Optional[str] = None,
        display_label: Optional[str] = None,
        nominal_amount: Optional[Decimal] = None,
        schedule: Optional[SchedulingRule] = None,
        category: Optional[str] = None,
        active: Optional[bool] = None,
    ) -> None:
        """Update a definition and rebuild its projected instances.

        Still-projected instances are deleted; when the definition stays
        active they are generated again for every open period.
        """
        self.get_definition(definition_id)
        changes: dict[str, Any] = {}
        if merchant_label is not None:
            merchant_label = merchant_label.strip()
            if not normalize_description(merchant_label):
                raise ValidationError("Merchant label is required")
            changes["merchant_label"] = merchant_label
        if display_label is not None:
            changes["display_label"] = display_label.strip() or None
        if nominal_amount is not None:
            changes["nominal_amount"] = round_currency(nominal_amount)
        if schedule is not None:
            changes["schedule"] = rule_to_dict(schedule)
            changes["frequency"] = frequency_of(schedule)
        if category is not None:
            changes["category"] = category.strip()
        if active is not None:
            changes["active"] = active

        self.db.update_recurring_definition(definition_id, **changes)
        removed = self.db.delete_projected_instances(definition_id)
        updated = self.get_definition(definition_id)
        if updated.active:
            self.generate_for_open_periods(definition_id)
        logger.debug("Rebuilt projections for definition %d (%d removed)", definition_id, removed)

    def deactivate_definition(self, definition_id: int) -> None:
        """Deactivate a definition, removing its still-projected instances."""
        self.update_definition(definition_id, active=False)

    def delete_definition(self, definition_id: int) -> None:
        """Delete a definition.

        Posted instances are kept but unlinked; projected ones are deleted.
        """
        self.get_definition(definition_id)
        self.db.delete_recurring_definition(definition_id)
        logger.info("Deleted recurring definition %d", definition_id)

    def generate_projections(self, period: Period, definition_id: Optional[int] = None) -> int:
        """Create projected instances for a period.

        Idempotent: every instance the definition already has in the period
        (projected or posted) accounts for one scheduled date.

        Args:
            period: Period to project into
            definition_id: Restrict to one definition

        Returns:
            Number of projected transactions created
        """
        definitions = self.db.list_recurring_definitions(active_only=True)
        if definition_id is not None:
            definitions = [d for d in definitions if d.id == definition_id]

        drafts = []
        for definition in definitions:
            remaining = projected_dates(definition.schedule, period.year, period.month)
            # each existing instance, projected or posted, covers its nearest date
            for existing in self.db.list_transactions(period_id=period.id, recurring_definition_id=definition.id):
                if not remaining:
                    break
                remaining.remove(min(remaining, key=lambda d: abs((d - existing.date).days)))
            for projected_date in remaining:
                drafts.append(
                    TransactionDraft(
                        account_id=None,
                        period_id=period.id,
                        date=projected_date,
                        description=definition.label,
                        amount=definition.expected_amount,
                        category=definition.category,
                        status=TransactionStatus.PROJECTED,
                        source=TransactionSource.RECURRING,
                        is_recurring_instance=True,
                        recurring_definition_id=definition.id,
                    )
                )
        if drafts:
            self.db.apply_ledger_changes(created=drafts)
        return len(drafts)

    def generate_for_open_periods(self, definition_id: Optional[int] = None) -> int:
        total = 0
        for period in self.db.list_periods(status=PeriodStatus.OPEN):
            total += self.generate_projections(period, definition_id)
        return total

    def match_existing_imports(self, period_id: int) -> int:
        """Link already imported rows of a period to recurring definitions.

        Only unlinked, non-ignored imports that are Uncategorized or in a
        recurring category are considered. Bank deposits only match income
        placeholders; everything else tries placeholders, then definitions.

        Returns:
            Number of transactions linked

        Raises:
            MissingPeriodError: If the period does not exist
        """
        period = self.db.get_period(period_id)
        if period is None:
            raise MissingPeriodError(period_not_found(period_id))
        definitions = self.db.list_recurring_definitions(active_only=True)
        if not definitions:
            return 0
        income_definitions = [d for d in definitions if d.is_income]
        expense_definitions = [d for d in definitions if not d.is_income]
        projections = self.db.list_projected_transactions(period.id)
        account_types = {a.id: a.type for a in self.db.list_accounts()}

        candidates = [
            t for t in self.db.list_transactions(period_id=period.id, source=TransactionSource.IMPORT)
            if t.recurring_definition_id is None
            and not t.is_ignored
            and t.status != TransactionStatus.PROJECTED
            and (t.category == UNCATEGORIZED or is_recurring_category(t.category))
            and t.amount != 0
        ]

        consumed: set[int] = set()
        updates = []
        for txn in candidates:
            normalized = normalize_description(build_composite_description(txn.description, txn.sub_description))
            if not normalized:
                continue
            is_income = txn.amount < 0 and account_types.get(txn.account_id) == AccountType.BANK
            if is_income:
                matches = match_projections(
                    txn.date, txn.amount, normalized, projections, income_definitions, consumed
                )
                match = matches[0] if matches else None
            elif expense_definitions:
                match = match_recurring(txn.date, txn.amount, normalized, projections, expense_definitions, consumed)
            else:
                match = None
            if match is None:
                continue
            if match.projected_transaction_id is not None:
                consumed.add(match.projected_transaction_id)
            updates.append(
                (
                    txn.id,
                    {
                        "category": match.category,
                        "is_recurring_instance": True,
                        "recurring_definition_id": match.definition_id,
                        "status": TransactionStatus.POSTED,
                    },
                )
            )

        if updates:
            self.db.apply_ledger_changes(updated=updates, deleted_ids=sorted(consumed))
        logger.info("Linked %d existing imports in period %s", len(updates), period.label)
        return len(updates)
