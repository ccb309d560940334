"""Account domain service."""

from typing import Optional

from tallyup.database.base import Database
from tallyup.domain.entities import Account as AccountEntity, AccountType, KnownAccount
from tallyup.domain.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
    account_delete_blocked,
    account_not_found,
)


class AccountService:
    """Service for managing accounts."""

    def __init__(self, db: Database):
        """Initialize account service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_account(
        self,
        name: str,
        account_type: AccountType,
        last4: Optional[str] = None,
        display_alias: Optional[str] = None,
        invert_amounts: bool = False,
    ) -> int:
        """Create a new account.

        Args:
            name: Account name
            account_type: Bank or credit card
            last4: Last four digits of the card or account number
            display_alias: Name other accounts' statements use for this one
            invert_amounts: Whether the institution reports amounts with the opposite sign

        Returns:
            Account ID

        Raises:
            ConflictError: If account name already exists
            ValidationError: If last4 is not four digits
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name is required")
        if self.db.get_account_by_name(name) is not None:
            raise ConflictError(f"Account with name '{name}' already exists")
        if last4 is not None:
            last4 = last4.strip()
            if len(last4) != 4 or not last4.isdigit():
                raise ValidationError("last4 must be exactly four digits")

        return self.db.create_account(
            name=name,
            account_type=AccountType(account_type),
            last4=last4 or None,
            display_alias=(display_alias or "").strip() or None,
            invert_amounts=invert_amounts,
        )

    def get_account(self, account_id: int) -> Optional[AccountEntity]:
        """Get account by ID.

        Args:
            account_id: Account ID

        Returns:
            Account entity or None if not found
        """
        return self.db.get_account(account_id)

    def list_accounts(self) -> list[AccountEntity]:
        """List all accounts.

        Returns:
            List of account entities
        """
        return self.db.list_accounts()

    def known_accounts(self) -> list[KnownAccount]:
        """References to every account, as used by transfer detection."""
        return [
            KnownAccount(id=a.id, type=a.type, last4=a.last4, display_alias=a.display_alias)
            for a in self.db.list_accounts()
        ]

    def delete_account(self, account_id: int) -> None:
        """Delete an account.

        Raises:
            NotFoundError: If account not found
            DependencyError: If the account still has transactions
        """
        if self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))

        transaction_count = self.db.get_account_transaction_count(account_id)
        if transaction_count > 0:
            raise DependencyError(account_delete_blocked(account_id, transaction_count))

        self.db.delete_account(account_id)

    def set_invert_amounts(self, account_id: int, invert_amounts: bool) -> bool:
        """Set whether an account's amounts are reported with the opposite sign.

        Returns:
            True if the flag changed

        Raises:
            NotFoundError: If account not found
        """
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        if account.invert_amounts == invert_amounts:
            return False
        self.db.update_account_invert(account_id, invert_amounts)
        return True
