"""Period domain service."""

from typing import Optional

from tallyup.database.base import Database
from tallyup.domain.entities import Period, PeriodStatus
from tallyup.domain.errors import ConflictError, MissingPeriodError, ValidationError, period_not_found
from tallyup.domain.recurring import RecurringService
from tallyup.logging_setup import get_logger

logger = get_logger(__name__)


class PeriodService:
    """Service for managing calendar-month periods."""

    def __init__(self, db: Database):
        """Initialize period service.

        Args:
            db: Database instance
        """
        self.db = db

    def get_period(self, period_id: int) -> Period:
        """Get a period by ID.

        Raises:
            MissingPeriodError: If the period does not exist
        """
        period = self.db.get_period(period_id)
        if period is None:
            raise MissingPeriodError(period_not_found(period_id))
        return period

    def find_period(self, year: int, month: int) -> Optional[Period]:
        return self.db.get_period_by_month(year, month)

    def list_periods(self, status: Optional[PeriodStatus] = None) -> list[Period]:
        return self.db.list_periods(status=status)

    def create_period(self, year: int, month: int) -> Period:
        """Create a period and project active recurring definitions into it.

        Raises:
            ValidationError: If the month is out of range
            ConflictError: If the period already exists
        """
        if not 1 <= month <= 12:
            raise ValidationError(f"Invalid month {month}, must be 1-12")
        if self.db.get_period_by_month(year, month) is not None:
            raise ConflictError(f"Period {year:04d}-{month:02d} already exists")

        with self.db.transaction():
            period_id = self.db.create_period(year, month)
            period = self.get_period(period_id)
            created = RecurringService(self.db).generate_projections(period)
        logger.info("Created period %s with %d projections", period.label, created)
        return period

    def get_or_create_period(self, year: int, month: int) -> Period:
        """Return the period for a month, creating it when missing."""
        period = self.db.get_period_by_month(year, month)
        if period is not None:
            return period
        try:
            return self.create_period(year, month)
        except ConflictError:
            # created concurrently; an enclosing transaction is already rolled back
            if self.db.in_transaction:
                raise
            period = self.db.get_period_by_month(year, month)
            if period is None:
                raise
            return period

    def lock_period(self, period_id: int) -> None:
        self.get_period(period_id)
        self.db.update_period_status(period_id, PeriodStatus.LOCKED)
