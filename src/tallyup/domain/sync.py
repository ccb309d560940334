"""Reconciliation of push-feed batches (added, modified and removed events).

Feed amounts are positive when money leaves the account, which already is
the expense sign convention, so only the account's invert flag is applied.
Events are grouped by calendar month and each group is reconciled against
its own period with ``reconcile_sync``; ``SyncService`` loads the inputs and
persists the result.
"""

import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from tallyup.database.base import Database
from tallyup.domain.entities import (
    Account,
    CategoryMappingRule,
    IgnoreRule,
    Period,
    RecurringDefinition,
    Transaction,
    TransactionDraft,
    TransactionSource,
    TransactionStatus,
    UNCATEGORIZED,
)
from tallyup.domain.errors import (
    ConflictError,
    MalformedRowError,
    MissingAccountError,
    ValidationError,
    account_not_found,
)
from tallyup.domain.import_pipeline import matching_ignore_rule
from tallyup.domain.normalizer import (
    apply_invert,
    build_composite_description,
    compute_hash_key,
    normalize_description,
)
from tallyup.domain.period import PeriodService
from tallyup.domain.recurring_matcher import mapped_category, match_recurring
from tallyup.logging_setup import get_logger
from tallyup.utils.amount_parser import parse_amount
from tallyup.utils.date_parser import parse_date

logger = get_logger(__name__)

_TRANSFER_DESCRIPTION_PATTERNS = (
    re.compile(r"^TRANSFER\s+(TO|FROM)", re.IGNORECASE),
    re.compile(r"^(TO|FROM)\s+.*\d{4}$", re.IGNORECASE),
    re.compile(r"^ONLINE\s+TRANSFER", re.IGNORECASE),
    re.compile(r"^INTERNET\s+TRANSFER", re.IGNORECASE),
    re.compile(r"^PAYMENT\s+-\s+THANK\s+YOU", re.IGNORECASE),
)


def _text(value: Any) -> Optional[str]:
    return str(value) if value else None


@dataclass(frozen=True)
class FeedEvent:
    """One transaction as reported by the sync feed."""

    external_id: str
    date: date
    name: str
    amount: Decimal
    merchant_name: Optional[str] = None
    pending: bool = False
    category_primary: Optional[str] = None
    category_detailed: Optional[str] = None

    @property
    def description(self) -> str:
        return (self.name or "").strip() or (self.merchant_name or "").strip() or "Unknown"

    @property
    def sub_description(self) -> Optional[str]:
        merchant = (self.merchant_name or "").strip()
        if merchant and merchant != (self.name or "").strip():
            return merchant
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0) -> "FeedEvent":
        """Build an event from a feed record.

        Accepts ``transaction_id``/``external_id``, ``date``, ``name``,
        ``merchant_name``, ``amount``, ``pending`` and either a nested
        ``personal_finance_category`` or flat ``category_primary`` and
        ``category_detailed`` keys.

        Raises:
            MalformedRowError: If the record is not an object, or its id, date,
                amount or category is unusable
        """
        if not isinstance(data, dict):
            raise MalformedRowError(index, f"Expected an object, got {type(data).__name__}")
        external_id = str(data.get("transaction_id") or data.get("external_id") or "").strip()
        if not external_id:
            raise MalformedRowError(index, "Missing transaction id")
        try:
            event_date = parse_date(str(data.get("date", "")))
            amount = parse_amount(str(data.get("amount", "")))
        except ValueError as e:
            raise MalformedRowError(index, str(e))

        category = data.get("personal_finance_category") or {}
        if not isinstance(category, dict):
            raise MalformedRowError(index, "personal_finance_category must be an object")
        return cls(
            external_id=external_id,
            date=event_date,
            name=str(data.get("name") or ""),
            amount=amount,
            merchant_name=_text(data.get("merchant_name")),
            pending=bool(data.get("pending", False)),
            category_primary=_text(category.get("primary") or data.get("category_primary")),
            category_detailed=_text(category.get("detailed") or data.get("category_detailed")),
        )


@dataclass(frozen=True)
class SyncBatch:
    added: tuple[FeedEvent, ...] = ()
    modified: tuple[FeedEvent, ...] = ()
    removed: tuple[str, ...] = ()
    malformed: int = 0


@dataclass(frozen=True)
class SyncSummary:
    """Counts reported after a sync."""

    added: int = 0
    modified: int = 0
    removed: int = 0
    duplicate: int = 0
    transfer_ignored: int = 0
    rule_ignored: int = 0
    recurring_matched: int = 0
    malformed: int = 0

    def merge(self, other: "SyncSummary") -> "SyncSummary":
        return SyncSummary(
            **{name: getattr(self, name) + getattr(other, name) for name in self.__dataclass_fields__}
        )


@dataclass(frozen=True)
class SyncContext:
    """Everything one period group of a sync reads from storage."""

    account: Account
    period: Period
    ignore_rules: tuple[IgnoreRule, ...] = ()
    definitions: tuple[RecurringDefinition, ...] = ()
    category_rules: tuple[CategoryMappingRule, ...] = ()
    projections: tuple[Transaction, ...] = ()
    existing_external_ids: frozenset[str] = frozenset()
    existing_hashes: frozenset[str] = frozenset()


@dataclass
class SyncResult:
    transactions: list[TransactionDraft] = field(default_factory=list)
    consumed_projection_ids: list[int] = field(default_factory=list)
    summary: SyncSummary = field(default_factory=SyncSummary)


def is_transfer_category(primary: Optional[str], detailed: Optional[str]) -> bool:
    """Return True for feed categories that mark internal transfers."""
    if primary in ("TRANSFER_IN", "TRANSFER_OUT"):
        return True
    if detailed:
        upper = detailed.upper()
        if "TRANSFER" in upper or "CREDIT_CARD" in upper or upper == "CREDIT CARD":
            return True
    return False


def is_transfer_description(description: str) -> bool:
    """Return True for descriptions that read like an internal transfer."""
    upper = (description or "").upper()
    if "CREDIT CARD" in upper and "PAYMENT" in upper:
        return True
    return any(pattern.search(description or "") for pattern in _TRANSFER_DESCRIPTION_PATTERNS)


def group_by_month(events: Iterable[FeedEvent]) -> dict[tuple[int, int], list[FeedEvent]]:
    """Group events by the calendar month of their date, oldest first."""
    groups: dict[tuple[int, int], list[FeedEvent]] = defaultdict(list)
    for event in events:
        groups[(event.date.year, event.date.month)].append(event)
    return dict(sorted(groups.items()))


def reconcile_sync(context: SyncContext, events: Iterable[FeedEvent]) -> SyncResult:
    """Plan the writes for the added events of one period.

    Args:
        context: Account, period and storage state
        events: Added events dated inside the period

    Returns:
        Transactions to create, placeholders consumed and the counts
    """
    account, period = context.account, context.period
    projections = list(context.projections)
    definitions = list(context.definitions)
    consumed: set[int] = set()
    seen_ids = set(context.existing_external_ids)
    seen_hashes = set(context.existing_hashes)
    result = SyncResult()
    counts = defaultdict(int)

    for event in events:
        description = event.description
        sub_description = event.sub_description
        amount = apply_invert(event.amount, account.invert_amounts)
        normalized = normalize_description(build_composite_description(description, sub_description))
        hash_key = compute_hash_key(account.id, period.id, event.date, amount, normalized)

        if event.external_id in seen_ids or hash_key in seen_hashes:
            counts["duplicate"] += 1
            continue
        seen_ids.add(event.external_id)
        seen_hashes.add(hash_key)

        draft = dict(
            account_id=account.id,
            period_id=period.id,
            date=event.date,
            description=description,
            sub_description=sub_description,
            amount=amount,
            status=TransactionStatus.PENDING if event.pending else TransactionStatus.POSTED,
            source=TransactionSource.IMPORT,
            external_id=event.external_id,
            source_import_hash=hash_key,
        )

        if matching_ignore_rule(normalized, context.ignore_rules):
            counts["rule_ignored"] += 1
            result.transactions.append(TransactionDraft(category=UNCATEGORIZED, is_ignored=True, **draft))
            continue

        if is_transfer_category(event.category_primary, event.category_detailed) or is_transfer_description(
            description
        ):
            counts["transfer_ignored"] += 1
            result.transactions.append(TransactionDraft(category=UNCATEGORIZED, is_ignored=True, **draft))
            continue

        match = None
        if definitions:
            match = match_recurring(event.date, amount, normalized, projections, definitions, consumed)
        if match is not None:
            counts["recurring_matched"] += 1
            if match.projected_transaction_id is not None:
                consumed.add(match.projected_transaction_id)
                result.consumed_projection_ids.append(match.projected_transaction_id)
            result.transactions.append(
                TransactionDraft(
                    category=match.category,
                    is_recurring_instance=True,
                    recurring_definition_id=match.definition_id,
                    **draft,
                )
            )
        else:
            category = mapped_category(normalized, context.category_rules)
            result.transactions.append(TransactionDraft(category=category, **draft))
        counts["added"] += 1

    result.summary = SyncSummary(**counts)
    return result


def modification_fields(existing: Transaction, event: FeedEvent) -> dict[str, Any]:
    """Fields to update on a stored transaction for a modified event.

    The amount magnitude follows the feed while the stored sign is kept.
    """
    magnitude = abs(event.amount)
    return {
        "date": event.date,
        "description": (event.name or "").strip() or (event.merchant_name or "").strip() or existing.description,
        "sub_description": event.sub_description if event.sub_description else existing.sub_description,
        "amount": -magnitude if existing.amount < 0 else magnitude,
        "status": TransactionStatus.PENDING if event.pending else TransactionStatus.POSTED,
    }


def parse_sync_batch(data: dict[str, Any]) -> SyncBatch:
    """Build a batch from a feed payload with added/modified/removed lists.

    Malformed added or modified records are skipped and counted.

    Raises:
        ValidationError: If the payload or one of its lists has the wrong shape
    """
    if not isinstance(data, dict):
        raise ValidationError("Sync batch must be an object with added, modified and removed lists")
    for key in ("added", "modified", "removed"):
        if not isinstance(data.get(key) or [], list):
            raise ValidationError(f"Sync batch \"{key}\" must be a list")

    malformed = 0
    parsed: dict[str, list[FeedEvent]] = {"added": [], "modified": []}
    for key in parsed:
        for index, record in enumerate(data.get(key) or [], start=1):
            try:
                parsed[key].append(FeedEvent.from_dict(record, index))
            except MalformedRowError as e:
                malformed += 1
                logger.warning("Skipping malformed %s event %d: %s", key, e.row_num, e.reason)

    removed = []
    for record in data.get("removed") or []:
        external_id = record.get("transaction_id") if isinstance(record, dict) else record
        if external_id:
            removed.append(str(external_id))

    return SyncBatch(
        added=tuple(parsed["added"]),
        modified=tuple(parsed["modified"]),
        removed=tuple(removed),
        malformed=malformed,
    )


class SyncService:
    """Service that applies sync feed batches to the ledger."""

    def __init__(self, db: Database):
        """Initialize sync service.

        Args:
            db: Database instance
        """
        self.db = db
        self.period_service = PeriodService(db)

    def sync(self, account_id: int, batch: SyncBatch) -> SyncSummary:
        """Apply one feed batch to an account.

        Periods created for the batch and its ledger writes commit together.
        A uniqueness race with a concurrent writer is retried once so the
        raced events resolve as duplicates.

        Raises:
            MissingAccountError: If the account does not exist
        """
        try:
            with self.db.transaction():
                return self._sync(account_id, batch)
        except ConflictError:
            logger.info("Sync for account %d raced another writer; retrying", account_id)
            with self.db.transaction():
                return self._sync(account_id, batch)

    def _sync(self, account_id: int, batch: SyncBatch) -> SyncSummary:
        account = self.db.get_account(account_id)
        if account is None:
            raise MissingAccountError(account_not_found(account_id))

        summary = SyncSummary(malformed=batch.malformed)
        known_ids = self.db.get_external_ids(account_id)
        created: list[TransactionDraft] = []
        deleted_ids: list[int] = []
        for (year, month), events in group_by_month(batch.added).items():
            period = self.period_service.get_or_create_period(year, month)
            context = SyncContext(
                account=account,
                period=period,
                ignore_rules=tuple(self.db.list_ignore_rules(active_only=True)),
                definitions=tuple(self.db.list_recurring_definitions(active_only=True)),
                category_rules=tuple(self.db.list_category_mapping_rules(active_only=True)),
                projections=tuple(self.db.list_projected_transactions(period.id)),
                existing_external_ids=frozenset(known_ids),
                existing_hashes=frozenset(self.db.get_transaction_hashes(account_id, period.id)),
            )
            result = reconcile_sync(context, events)
            created.extend(result.transactions)
            deleted_ids.extend(result.consumed_projection_ids)
            known_ids |= {t.external_id for t in result.transactions if t.external_id}
            summary = summary.merge(result.summary)

        updates = []
        for event in batch.modified:
            existing = self.db.get_transaction_by_external_id(account_id, event.external_id)
            if existing is None:
                logger.debug("Modified event %s has no stored transaction", event.external_id)
                continue
            updates.append((existing.id, modification_fields(existing, event)))
        removed_ids = []
        for external_id in batch.removed:
            existing = self.db.get_transaction_by_external_id(account_id, external_id)
            if existing is not None:
                removed_ids.append(existing.id)

        # one storage transaction for the whole batch
        self.db.apply_ledger_changes(
            created=created,
            updated=updates,
            deleted_ids=deleted_ids + removed_ids,
        )

        summary = summary.merge(SyncSummary(modified=len(updates), removed=len(removed_ids)))
        logger.info(
            "Synced account %d: %d added, %d modified, %d removed, %d duplicate",
            account_id,
            summary.added,
            summary.modified,
            summary.removed,
            summary.duplicate,
        )
        return summary
