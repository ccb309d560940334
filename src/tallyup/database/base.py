"""Abstract database interface."""

from abc import ABC, abstractmethod
from typing import Any, ContextManager, Iterable, Optional
from decimal import Decimal

# Import entities directly to avoid circular import through domain/__init__.py
from tallyup.domain.entities import (
    Account,
    AccountType,
    AmazonOrder,
    AmazonOrderDraft,
    CategoryMappingRule,
    IgnoreRule,
    ImportBatch,
    OrderMatch,
    Period,
    PeriodStatus,
    RawImportRow,
    RawRowDraft,
    RecurringDefinition,
    Transaction,
    TransactionDraft,
    TransactionSource,
    TransactionStatus,
)

FieldUpdate = tuple[int, dict[str, Any]]


class Database(ABC):
    """Abstract database interface for tallyup."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def transaction(self) -> ContextManager[None]:
        """Group several operations into one storage transaction.

        Writes inside the block become visible together when it exits and
        are all rolled back when it raises. Nested blocks join the outer one.
        """
        pass

    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        """True inside a ``transaction()`` block."""
        pass

    # Account operations
    @abstractmethod
    def create_account(
        self,
        name: str,
        account_type: AccountType,
        last4: Optional[str] = None,
        display_alias: Optional[str] = None,
        invert_amounts: bool = False,
    ) -> int:
        """Create a new account. Returns account ID."""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    def get_account_by_name(self, name: str) -> Optional[Account]:
        """Get account by name."""
        pass

    @abstractmethod
    def list_accounts(self) -> list[Account]:
        """List all accounts."""
        pass

    @abstractmethod
    def update_account_invert(self, account_id: int, invert_amounts: bool) -> None:
        """Set an account's invert flag."""
        pass

    @abstractmethod
    def delete_account(self, account_id: int) -> None:
        """Delete an account."""
        pass

    @abstractmethod
    def get_account_transaction_count(self, account_id: int) -> int:
        """Get count of transactions associated with an account."""
        pass

    # Period operations
    @abstractmethod
    def create_period(self, year: int, month: int) -> int:
        """Create a period. Returns period ID."""
        pass

    @abstractmethod
    def get_period(self, period_id: int) -> Optional[Period]:
        """Get period by ID."""
        pass

    @abstractmethod
    def get_period_by_month(self, year: int, month: int) -> Optional[Period]:
        """Get period by calendar month."""
        pass

    @abstractmethod
    def list_periods(self, status: Optional[PeriodStatus] = None) -> list[Period]:
        """List periods, oldest first."""
        pass

    @abstractmethod
    def update_period_status(self, period_id: int, status: PeriodStatus) -> None:
        """Set a period's status."""
        pass

    # Transaction operations
    @abstractmethod
    def create_transaction(self, draft: TransactionDraft, import_batch_id: Optional[int] = None) -> int:
        """Create a transaction. Returns transaction ID."""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    def list_transactions(
        self,
        period_id: Optional[int] = None,
        account_id: Optional[int] = None,
        statuses: Optional[Iterable[TransactionStatus]] = None,
        source: Optional[TransactionSource] = None,
        include_ignored: bool = True,
        recurring_definition_id: Optional[int] = None,
    ) -> list[Transaction]:
        """List transactions with optional filters, ordered by date."""
        pass

    @abstractmethod
    def list_projected_transactions(self, period_id: int) -> list[Transaction]:
        """List a period's projected, non-ignored transactions."""
        pass

    @abstractmethod
    def get_transaction_by_external_id(self, account_id: int, external_id: str) -> Optional[Transaction]:
        """Get a transaction by its sync feed id."""
        pass

    @abstractmethod
    def get_external_ids(self, account_id: int) -> set[str]:
        """Get every sync feed id stored for an account."""
        pass

    @abstractmethod
    def get_transaction_hashes(self, account_id: int, period_id: int) -> set[str]:
        """Get the source import hashes of an account's transactions in a period."""
        pass

    @abstractmethod
    def update_transaction(self, transaction_id: int, **fields: Any) -> None:
        """Update fields of one transaction."""
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction."""
        pass

    @abstractmethod
    def apply_ledger_changes(
        self,
        created: Iterable[TransactionDraft] = (),
        updated: Iterable[FieldUpdate] = (),
        deleted_ids: Iterable[int] = (),
    ) -> list[int]:
        """Create, update and delete transactions in one storage transaction.

        Returns the IDs of the created transactions. A uniqueness violation
        rolls everything back and raises ConflictError.
        """
        pass

    # Import batch operations
    @abstractmethod
    def save_import(
        self,
        account_id: int,
        period_id: int,
        counts: dict[str, int],
        raw_rows: Iterable[RawRowDraft],
        transactions: Iterable[TransactionDraft],
        merged: Iterable[FieldUpdate] = (),
        deleted_projection_ids: Iterable[int] = (),
    ) -> int:
        """Persist one import run in one storage transaction. Returns batch ID."""
        pass

    @abstractmethod
    def get_import_batch(self, batch_id: int) -> Optional[ImportBatch]:
        """Get import batch by ID."""
        pass

    @abstractmethod
    def list_import_batches(self, account_id: Optional[int] = None) -> list[ImportBatch]:
        """List import batches, newest first."""
        pass

    @abstractmethod
    def delete_import_batch(self, batch_id: int) -> None:
        """Delete a batch together with its transactions and raw rows."""
        pass

    @abstractmethod
    def list_raw_rows(
        self, batch_id: Optional[int] = None, account_id: Optional[int] = None
    ) -> list[RawImportRow]:
        """List staged import rows."""
        pass

    @abstractmethod
    def get_raw_row_hashes(self, account_id: int) -> set[str]:
        """Get the hashes of every staged row of an account."""
        pass

    @abstractmethod
    def update_import_hashes(
        self, raw_row_updates: Iterable[FieldUpdate], transaction_updates: Iterable[FieldUpdate]
    ) -> None:
        """Rewrite stored hashes and amounts in one storage transaction."""
        pass

    @abstractmethod
    def mark_ignored(self, transaction_ids: Iterable[int], raw_row_ids: Iterable[int], reason: str) -> None:
        """Flag transactions ignored and raw rows ignored with a reason."""
        pass

    # Recurring definition operations
    @abstractmethod
    def create_recurring_definition(
        self,
        merchant_label: str,
        display_label: Optional[str],
        nominal_amount: Decimal,
        frequency: str,
        schedule: dict[str, Any],
        category: str,
    ) -> int:
        """Create a recurring definition. Returns definition ID."""
        pass

    @abstractmethod
    def get_recurring_definition(self, definition_id: int) -> Optional[RecurringDefinition]:
        """Get recurring definition by ID."""
        pass

    @abstractmethod
    def list_recurring_definitions(self, active_only: bool = False) -> list[RecurringDefinition]:
        """List recurring definitions."""
        pass

    @abstractmethod
    def update_recurring_definition(self, definition_id: int, **fields: Any) -> None:
        """Update fields of a recurring definition."""
        pass

    @abstractmethod
    def delete_recurring_definition(self, definition_id: int) -> None:
        """Delete a definition, its projected instances, and unlink posted ones."""
        pass

    @abstractmethod
    def delete_projected_instances(self, definition_id: int) -> int:
        """Delete a definition's still-projected instances. Returns count."""
        pass

    # Ignore rule operations
    @abstractmethod
    def create_ignore_rule(self, pattern: str, normalized_pattern: str) -> int:
        """Create an ignore rule. Returns rule ID."""
        pass

    @abstractmethod
    def get_ignore_rule(self, rule_id: int) -> Optional[IgnoreRule]:
        """Get ignore rule by ID."""
        pass

    @abstractmethod
    def get_ignore_rule_by_pattern(self, normalized_pattern: str) -> Optional[IgnoreRule]:
        """Get ignore rule by normalized pattern."""
        pass

    @abstractmethod
    def list_ignore_rules(self, active_only: bool = False) -> list[IgnoreRule]:
        """List ignore rules."""
        pass

    @abstractmethod
    def set_ignore_rule_active(self, rule_id: int, active: bool) -> None:
        """Enable or disable an ignore rule."""
        pass

    @abstractmethod
    def delete_ignore_rule(self, rule_id: int) -> None:
        """Delete an ignore rule."""
        pass

    # Category mapping rule operations
    @abstractmethod
    def upsert_category_mapping_rule(self, raw_description: str, normalized_description: str, category: str) -> int:
        """Create or replace the rule for a normalized description. Returns rule ID."""
        pass

    @abstractmethod
    def get_category_mapping_rule(self, normalized_description: str) -> Optional[CategoryMappingRule]:
        """Get the rule for a normalized description."""
        pass

    @abstractmethod
    def list_category_mapping_rules(self, active_only: bool = False) -> list[CategoryMappingRule]:
        """List category mapping rules."""
        pass

    # Suggestion dismissal operations
    @abstractmethod
    def add_suggestion_dismissal(self, suggestion_key: str) -> None:
        """Remember a dismissed suggestion key."""
        pass

    @abstractmethod
    def list_suggestion_dismissals(self) -> set[str]:
        """Get every dismissed suggestion key."""
        pass

    # Amazon order operations
    @abstractmethod
    def create_amazon_orders(self, drafts: Iterable[AmazonOrderDraft]) -> list[int]:
        """Create orders with their items. Returns the new order IDs."""
        pass

    @abstractmethod
    def get_amazon_order(self, order_id: int) -> Optional[AmazonOrder]:
        """Get order by ID."""
        pass

    @abstractmethod
    def get_amazon_order_by_order_id(self, amazon_order_id: str) -> Optional[AmazonOrder]:
        """Get order by marketplace order number."""
        pass

    @abstractmethod
    def list_amazon_orders(self) -> list[AmazonOrder]:
        """List orders, newest first."""
        pass

    @abstractmethod
    def list_order_links(self) -> list[tuple[int, int]]:
        """List every (order ID, transaction ID) link."""
        pass

    @abstractmethod
    def save_order_matches(self, matches: Iterable[OrderMatch]) -> None:
        """Store match statuses, metadata and links in one storage transaction."""
        pass

    @abstractmethod
    def replace_order_links(self, order_id: int, transaction_ids: Iterable[int]) -> None:
        """Replace an order's links; the order becomes matched, or unmatched when empty."""
        pass

    @abstractmethod
    def set_amazon_order_ignored(self, order_id: int, ignored: bool) -> None:
        """Set an order's ignored flag."""
        pass
