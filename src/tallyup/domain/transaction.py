"""Transaction domain service."""

from typing import Optional
from datetime import date
from decimal import Decimal

from tallyup.database.base import Database
from tallyup.domain.entities import (
    Transaction as TransactionEntity,
    TransactionDraft,
    TransactionSource,
    TransactionStatus,
    UNCATEGORIZED,
)
from tallyup.domain.errors import (
    MissingAccountError,
    NotFoundError,
    ValidationError,
    account_not_found,
    transaction_not_found,
)
from tallyup.domain.period import PeriodService
from tallyup.utils.amount_parser import round_currency


class TransactionService:
    """Service for manual ledger edits."""

    def __init__(self, db: Database):
        """Initialize transaction service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_transaction(
        self,
        account_id: int,
        date: date,
        amount: Decimal,
        description: str,
        category: str = UNCATEGORIZED,
        notes: Optional[str] = None,
    ) -> int:
        """Create a manual transaction in the period of its date.

        Args:
            account_id: Account ID
            date: Transaction date
            amount: Amount in the expense sign convention
            description: Description
            category: Category name
            notes: Optional notes

        Returns:
            Transaction ID

        Raises:
            MissingAccountError: If the account doesn't exist
            ValidationError: If the description is empty
        """
        if self.db.get_account(account_id) is None:
            raise MissingAccountError(account_not_found(account_id))
        description = (description or "").strip()
        if not description:
            raise ValidationError("Description is required")

        period = PeriodService(self.db).get_or_create_period(date.year, date.month)
        return self.db.create_transaction(
            TransactionDraft(
                account_id=account_id,
                period_id=period.id,
                date=date,
                description=description,
                amount=round_currency(amount),
                category=(category or "").strip() or UNCATEGORIZED,
                status=TransactionStatus.POSTED,
                source=TransactionSource.MANUAL,
                notes=notes,
            )
        )

    def get_transaction(self, transaction_id: int) -> TransactionEntity:
        """Get transaction by ID.

        Raises:
            NotFoundError: If the transaction does not exist
        """
        txn = self.db.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        return txn

    def update_category(self, transaction_id: int, category: Optional[str]) -> None:
        """Override a transaction's category.

        ``None`` resets it to Uncategorized.
        """
        self.get_transaction(transaction_id)
        self.db.update_transaction(transaction_id, category=(category or "").strip() or UNCATEGORIZED)

    def update_notes(self, transaction_id: int, notes: Optional[str]) -> None:
        self.get_transaction(transaction_id)
        self.db.update_transaction(transaction_id, notes=notes)

    def set_ignored(self, transaction_id: int, ignored: bool) -> None:
        self.get_transaction(transaction_id)
        self.db.update_transaction(transaction_id, is_ignored=ignored)

    def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction.

        Raises:
            NotFoundError: If the transaction does not exist
        """
        self.get_transaction(transaction_id)
        self.db.delete_transaction(transaction_id)

    def list_transactions(
        self,
        period_id: Optional[int] = None,
        account_id: Optional[int] = None,
        include_ignored: bool = True,
    ) -> list[TransactionEntity]:
        """List transactions ordered by date.

        Args:
            period_id: Optional period filter
            account_id: Optional account filter
            include_ignored: Whether ignored transactions are listed

        Returns:
            List of transaction entities
        """
        return self.db.list_transactions(
            period_id=period_id, account_id=account_id, include_ignored=include_ignored
        )
