"""Domain model entities for tallyup.

These are pure data classes representing business concepts, independent of
database schema. Amounts on ledger entries always follow the expense sign
convention: positive means money leaving the user, negative means income or
a refund.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from tallyup.domain.scheduling import SchedulingRule

INCOME_CATEGORY = "Income"
UNCATEGORIZED = "Uncategorized"

BUDGET_CATEGORIES = (
    "Recurring - Essential",
    "Recurring - Non-Essential",
    "Auto",
    "Grocery",
    "Dining",
    "Entertainment",
    "Other - Fun",
    "Other - Responsible",
)

RECURRING_CATEGORIES = ("Recurring - Essential", "Recurring - Non-Essential")

TRANSACTION_CATEGORIES = BUDGET_CATEGORIES + (INCOME_CATEGORY, UNCATEGORIZED)


def is_recurring_category(category: Optional[str]) -> bool:
    return category in RECURRING_CATEGORIES


class AccountType(str, Enum):
    BANK = "bank"
    CREDIT_CARD = "credit_card"


class PeriodStatus(str, Enum):
    OPEN = "open"
    LOCKED = "locked"


class TransactionStatus(str, Enum):
    PROJECTED = "projected"
    PENDING = "pending"
    POSTED = "posted"


class TransactionSource(str, Enum):
    IMPORT = "import"
    RECURRING = "recurring"
    MANUAL = "manual"
    INCOME = "income"


class RowStatus(str, Enum):
    """Lifecycle of a staged import row."""

    PENDING = "pending"
    IMPORTED = "imported"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    OUT_OF_PERIOD = "out_of_period"


class TransferReason(str, Enum):
    CREDIT_CARD_PAYMENT = "credit_card_payment"
    INTER_ACCOUNT_TRANSFER = "inter_account_transfer"


IGNORE_RULE_REASON = "ignore_rule"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]


class MatchStatus(str, Enum):
    MATCHED = "matched"
    AMBIGUOUS = "ambiguous"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class Account:
    """Bank or credit card account domain entity."""

    id: int
    name: str
    type: AccountType
    last4: Optional[str] = None
    display_alias: Optional[str] = None
    invert_amounts: bool = False
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Period:
    """Calendar month bucket that owns transactions."""

    id: int
    year: int
    month: int
    status: PeriodStatus = PeriodStatus.OPEN
    created_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class Transaction:
    """Ledger entry domain entity (posted, pending or projected)."""

    id: int
    account_id: Optional[int]
    period_id: int
    date: date
    description: str
    amount: Decimal
    category: str = UNCATEGORIZED
    status: TransactionStatus = TransactionStatus.POSTED
    source: TransactionSource = TransactionSource.IMPORT
    sub_description: Optional[str] = None
    is_ignored: bool = False
    is_recurring_instance: bool = False
    recurring_definition_id: Optional[int] = None
    external_id: Optional[str] = None
    source_import_hash: Optional[str] = None
    import_batch_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class TransactionDraft:
    """A ledger entry produced by a pipeline run, not yet persisted."""

    account_id: Optional[int]
    period_id: int
    date: date
    description: str
    amount: Decimal
    category: str = UNCATEGORIZED
    status: TransactionStatus = TransactionStatus.POSTED
    source: TransactionSource = TransactionSource.IMPORT
    sub_description: Optional[str] = None
    is_ignored: bool = False
    is_recurring_instance: bool = False
    recurring_definition_id: Optional[int] = None
    external_id: Optional[str] = None
    source_import_hash: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class RawImportRow:
    """One parsed, normalized input line kept for audit and dedup."""

    id: int
    batch_id: int
    account_id: int
    line_number: int
    raw_data: dict[str, Any]
    parsed_date: date
    parsed_description: str
    amount_before_norm: Decimal
    normalized_amount: Decimal
    normalized_description: str
    hash_key: str
    status: RowStatus
    parsed_sub_description: Optional[str] = None
    external_id: Optional[str] = None
    ignore_reason: Optional[str] = None


@dataclass(frozen=True)
class RawRowDraft:
    """A staged input line produced by an import run, not yet persisted."""

    line_number: int
    raw_data: dict[str, Any]
    parsed_date: date
    parsed_description: str
    amount_before_norm: Decimal
    normalized_amount: Decimal
    normalized_description: str
    hash_key: str
    status: RowStatus
    parsed_sub_description: Optional[str] = None
    external_id: Optional[str] = None
    ignore_reason: Optional[str] = None


@dataclass(frozen=True)
class ImportBatch:
    """One file-ingestion run for one account and period."""

    id: int
    account_id: int
    period_id: int
    imported: int = 0
    duplicate: int = 0
    transfer_ignored: int = 0
    rule_ignored: int = 0
    out_of_period: int = 0
    recurring_matched: int = 0
    income_merged: int = 0
    malformed: int = 0
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class RecurringDefinition:
    """A recurring schedule such as a bill, subscription or paycheck."""

    id: int
    merchant_label: str
    nominal_amount: Decimal
    schedule: SchedulingRule
    category: str
    display_label: Optional[str] = None
    frequency: str = "monthly"
    active: bool = True
    created_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        return self.display_label or self.merchant_label

    @property
    def is_income(self) -> bool:
        return self.category == INCOME_CATEGORY

    @property
    def expected_amount(self) -> Decimal:
        """Nominal amount in the expense sign convention."""
        if self.is_income:
            return -abs(self.nominal_amount)
        return self.nominal_amount


@dataclass(frozen=True)
class IgnoreRule:
    """User-declared suppression pattern."""

    id: int
    pattern: str
    normalized_pattern: str
    active: bool = True


@dataclass(frozen=True)
class CategoryMappingRule:
    """Exact normalized-description to category mapping."""

    id: int
    raw_description: str
    normalized_description: str
    category: str
    active: bool = True


@dataclass(frozen=True)
class CandidateTransaction:
    """Per-transaction metadata shown when resolving an order by hand."""

    id: int
    date: date
    amount: Decimal
    description: str
    category: str
    sub_description: Optional[str] = None


@dataclass(frozen=True)
class CandidateGroup:
    """One or more transactions whose amounts add up to an order total."""

    transaction_ids: tuple[int, ...]
    transactions: tuple[CandidateTransaction, ...]
    total: Decimal
    date_span_days: int
    score: int


@dataclass(frozen=True)
class NoCandidates:
    """Order has no stored candidate set."""


@dataclass(frozen=True)
class Candidates:
    """Order is waiting for a manual choice among these groups."""

    groups: tuple[CandidateGroup, ...]


MatchMetadata = Union[NoCandidates, Candidates]


@dataclass(frozen=True)
class AmazonOrder:
    """One marketplace order."""

    id: int
    amazon_order_id: str
    order_date: date
    order_total: Decimal
    currency: str = "CAD"
    items: tuple[str, ...] = ()
    match_status: MatchStatus = MatchStatus.UNMATCHED
    match_metadata: MatchMetadata = field(default_factory=NoCandidates)
    is_ignored: bool = False
    linked_transaction_ids: tuple[int, ...] = ()
    order_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def matched_transaction_id(self) -> Optional[int]:
        if self.match_status != MatchStatus.MATCHED or not self.linked_transaction_ids:
            return None
        return self.linked_transaction_ids[0]


@dataclass(frozen=True)
class KnownAccount:
    """Account reference used when looking for transfers."""

    id: int
    type: AccountType
    last4: Optional[str] = None
    display_alias: Optional[str] = None


@dataclass(frozen=True)
class AmazonOrderDraft:
    """A validated order ready to be stored."""

    amazon_order_id: str
    order_date: date
    order_total: Decimal
    currency: str = "CAD"
    items: tuple[str, ...] = ()
    order_url: Optional[str] = None


@dataclass(frozen=True)
class OrderMatch:
    """Outcome of matching one order against the transaction pool."""

    order_id: int
    status: MatchStatus
    transaction_ids: tuple[int, ...] = ()
    metadata: MatchMetadata = field(default_factory=NoCandidates)
