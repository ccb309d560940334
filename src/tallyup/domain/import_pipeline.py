"""Reconciliation of one file import against the ledger.

``reconcile_import`` is pure: it receives every input it needs in an
``ImportContext`` (already fetched from storage) and returns an
``ImportResult`` describing what to persist. Each row moves from ``pending``
to exactly one of ``imported``, ``duplicate``, ``ignored`` or
``out_of_period``. The steps run in a fixed order because later steps read
the classifications of earlier ones:

1. parse and normalize; ignore rules short-circuit in-period rows here
2. out-of-period classification
3. dedup against stored transactions and raw rows
4. transfer detection over still-pending rows
5. dedup within the file
6. income merge into projected Income entries
7. recurring match, then category mapping fallback
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from tallyup.domain.entities import (
    Account,
    AccountType,
    CategoryMappingRule,
    IGNORE_RULE_REASON,
    INCOME_CATEGORY,
    IgnoreRule,
    KnownAccount,
    Period,
    RawRowDraft,
    RecurringDefinition,
    RowStatus,
    Transaction,
    TransactionDraft,
    TransactionSource,
    TransactionStatus,
    UNCATEGORIZED,
)
from tallyup.domain.errors import MalformedRowError, ValidationError
from tallyup.domain.normalizer import (
    apply_invert,
    build_composite_description,
    compute_hash_key,
    is_date_in_period,
    normalize_amount,
    normalize_description,
    to_expense_amount,
)
from tallyup.domain.recurring_matcher import mapped_category, match_recurring
from tallyup.domain.transfers import TransferRow, detect_transfers
from tallyup.logging_setup import get_logger
from tallyup.utils.amount_parser import parse_amount
from tallyup.utils.date_parser import days_between, parse_date

logger = get_logger(__name__)

INCOME_MIN_TOLERANCE = Decimal(100)
INCOME_TOLERANCE_RATIO = Decimal("0.1")

_DATE_HEADERS = ("date", "transaction date", "posted date", "trans date")
_DESCRIPTION_HEADERS = ("description", "desc", "merchant", "payee", "details")
_AMOUNT_HEADERS = ("amount", "amt", "value", "transaction amount")
_SUB_DESCRIPTION_HEADERS = ("merchant", "payee", "sub-description", "subdescription")
_STATUS_HEADERS = ("status", "transaction status")
_TYPE_HEADERS = ("type", "transaction type", "type of transaction", "debit/credit")
_EXTERNAL_ID_HEADERS = ("transaction id", "external id")


@dataclass(frozen=True)
class ColumnMapping:
    """Which input column holds which field."""

    date: str
    description: str
    amount: str
    sub_description: Optional[str] = None
    status: Optional[str] = None
    transaction_type: Optional[str] = None
    external_id: Optional[str] = None


def detect_column_mapping(headers: Iterable[str]) -> ColumnMapping:
    """Guess a column mapping from header names.

    Description headers must match exactly; the other fields match when a
    known name occurs inside the header. Without a description header the
    second column is used.

    Raises:
        ValidationError: If no date or amount column can be found
    """
    headers = [h.strip() for h in headers if h is not None]
    found: dict[str, Optional[str]] = {
        "date": None,
        "description": None,
        "amount": None,
        "sub_description": None,
        "status": None,
        "transaction_type": None,
        "external_id": None,
    }

    for header in headers:
        lower = header.lower()
        if found["date"] is None and any(h in lower for h in _DATE_HEADERS):
            found["date"] = header
        if found["description"] is None and lower in _DESCRIPTION_HEADERS:
            found["description"] = header
        if found["amount"] is None and any(h in lower for h in _AMOUNT_HEADERS):
            found["amount"] = header
        if found["status"] is None and any(h in lower for h in _STATUS_HEADERS):
            found["status"] = header
        if found["transaction_type"] is None and any(h in lower for h in _TYPE_HEADERS):
            found["transaction_type"] = header
        if found["external_id"] is None and lower in _EXTERNAL_ID_HEADERS:
            found["external_id"] = header

    if found["description"] is None and len(headers) > 1:
        found["description"] = headers[1]

    for header in headers:
        lower = header.lower()
        if header != found["description"] and any(h in lower for h in _SUB_DESCRIPTION_HEADERS):
            found["sub_description"] = header
            break

    missing = [name for name in ("date", "description", "amount") if found[name] is None]
    if missing:
        raise ValidationError(f"Could not detect columns for: {', '.join(missing)}")
    return ColumnMapping(**found)


@dataclass(frozen=True)
class ImportContext:
    """Everything one import run reads from storage."""

    account: Account
    period: Period
    mapping: ColumnMapping
    known_accounts: tuple[KnownAccount, ...] = ()
    ignore_rules: tuple[IgnoreRule, ...] = ()
    definitions: tuple[RecurringDefinition, ...] = ()
    category_rules: tuple[CategoryMappingRule, ...] = ()
    projections: tuple[Transaction, ...] = ()
    income_projections: tuple[Transaction, ...] = ()
    existing_transaction_hashes: frozenset[str] = frozenset()
    existing_raw_hashes: frozenset[str] = frozenset()
    existing_external_ids: frozenset[str] = frozenset()
    income_match_window_days: int = 30


@dataclass
class ParsedRow:
    """One input row after parsing, with its current classification.

    ``native_amount`` is in the account's own sign convention (after the
    account's invert flag); ``amount`` is in the expense sign convention.
    """

    line_number: int
    raw_data: dict[str, Any]
    date: date
    description: str
    amount_before_norm: Decimal
    native_amount: Decimal
    amount: Decimal
    normalized_description: str
    hash_key: str
    sub_description: Optional[str] = None
    external_id: Optional[str] = None
    is_pending: bool = False
    status: RowStatus = RowStatus.PENDING
    ignore_reason: Optional[str] = None

    def to_draft(self) -> RawRowDraft:
        return RawRowDraft(
            line_number=self.line_number,
            raw_data=self.raw_data,
            parsed_date=self.date,
            parsed_description=self.description,
            parsed_sub_description=self.sub_description,
            amount_before_norm=self.amount_before_norm,
            normalized_amount=self.amount,
            normalized_description=self.normalized_description,
            hash_key=self.hash_key,
            status=self.status,
            external_id=self.external_id,
            ignore_reason=self.ignore_reason,
        )


@dataclass(frozen=True)
class IncomeMerge:
    """A deposit folded into a projected Income entry."""

    projection_id: int
    row: ParsedRow


@dataclass(frozen=True)
class ImportSummary:
    """Counts reported after an import."""

    imported: int = 0
    duplicate: int = 0
    transfer_ignored: int = 0
    rule_ignored: int = 0
    out_of_period: int = 0
    recurring_matched: int = 0
    income_merged: int = 0
    malformed: int = 0
    batch_ids: tuple[int, ...] = ()
    periods: tuple[str, ...] = ()

    def merge(self, other: "ImportSummary") -> "ImportSummary":
        return ImportSummary(
            imported=self.imported + other.imported,
            duplicate=self.duplicate + other.duplicate,
            transfer_ignored=self.transfer_ignored + other.transfer_ignored,
            rule_ignored=self.rule_ignored + other.rule_ignored,
            out_of_period=self.out_of_period + other.out_of_period,
            recurring_matched=self.recurring_matched + other.recurring_matched,
            income_merged=self.income_merged + other.income_merged,
            malformed=self.malformed + other.malformed,
            batch_ids=self.batch_ids + other.batch_ids,
            periods=self.periods + other.periods,
        )


@dataclass
class ImportResult:
    """What an import run wants persisted."""

    rows: list[ParsedRow]
    raw_rows: list[ParsedRow] = field(default_factory=list)
    transactions: list[TransactionDraft] = field(default_factory=list)
    income_merges: list[IncomeMerge] = field(default_factory=list)
    consumed_projection_ids: list[int] = field(default_factory=list)
    summary: ImportSummary = field(default_factory=ImportSummary)


def _cell(row: dict[str, Any], column: Optional[str]) -> str:
    if not column:
        return ""
    value = row.get(column)
    return str(value).strip() if value is not None else ""


def parse_row(
    line_number: int,
    row: dict[str, Any],
    mapping: ColumnMapping,
    account: Account,
    period: Period,
) -> ParsedRow:
    """Parse and normalize one input row.

    Raises:
        MalformedRowError: If the date or amount cannot be parsed
    """
    try:
        txn_date = parse_date(_cell(row, mapping.date))
    except ValueError as e:
        raise MalformedRowError(line_number, str(e))
    try:
        raw_amount = parse_amount(_cell(row, mapping.amount))
    except ValueError as e:
        raise MalformedRowError(line_number, str(e))

    description = _cell(row, mapping.description)
    sub_description = _cell(row, mapping.sub_description)
    if not description and sub_description:
        description, sub_description = sub_description, ""

    native = normalize_amount(raw_amount, account.type, _cell(row, mapping.transaction_type) or None)
    native = apply_invert(native, account.invert_amounts)
    amount = to_expense_amount(native, account.type)
    normalized = normalize_description(build_composite_description(description, sub_description))

    return ParsedRow(
        line_number=line_number,
        raw_data=dict(row),
        date=txn_date,
        description=description,
        sub_description=sub_description or None,
        amount_before_norm=raw_amount,
        native_amount=native,
        amount=amount,
        normalized_description=normalized,
        hash_key=compute_hash_key(account.id, period.id, txn_date, amount, normalized),
        external_id=_cell(row, mapping.external_id) or None,
        is_pending="pending" in _cell(row, mapping.status).lower(),
    )


def matching_ignore_rule(normalized_description: str, rules: Iterable[IgnoreRule]) -> Optional[IgnoreRule]:
    """Return the first active rule whose pattern occurs in the description."""
    for rule in rules:
        if rule.active and rule.normalized_pattern and rule.normalized_pattern in normalized_description:
            return rule
    return None


def find_income_candidates(
    row: ParsedRow,
    income_projections: Iterable[Transaction],
    used: set[int],
    window_days: int = 30,
) -> list[Transaction]:
    """Projected Income entries a deposit could be.

    A candidate is within ``window_days`` of the deposit and its amount is
    within ``max(100, 10% of the projected amount)``.
    """
    deposit = abs(row.amount)
    candidates = []
    for projected in income_projections:
        if projected.id in used:
            continue
        expected = abs(projected.amount)
        tolerance = max(INCOME_MIN_TOLERANCE, expected * INCOME_TOLERANCE_RATIO)
        if abs(deposit - expected) > tolerance:
            continue
        if days_between(projected.date, row.date) > window_days:
            continue
        candidates.append(projected)
    return candidates


def _classify_out_of_period(rows: list[ParsedRow], period: Period) -> None:
    for row in rows:
        if not is_date_in_period(row.date, period.year, period.month):
            row.status = RowStatus.OUT_OF_PERIOD
            row.ignore_reason = None


def _dedup_existing(rows: list[ParsedRow], context: ImportContext) -> None:
    existing = context.existing_transaction_hashes | context.existing_raw_hashes
    for row in rows:
        if row.status not in (RowStatus.PENDING, RowStatus.IGNORED):
            continue
        if row.hash_key in existing or (row.external_id and row.external_id in context.existing_external_ids):
            row.status = RowStatus.DUPLICATE
            row.ignore_reason = None


def _tag_transfers(rows: list[ParsedRow], context: ImportContext) -> None:
    """Run transfer detection over the still-pending rows of this file.

    An import covers a single account, so the two pairing stages (bank debit
    with card payment, bank with bank) never find a partner here; each side
    of a card payment is caught by the single-row keyword heuristic when its
    own statement is imported.
    """
    account = context.account
    candidates = [
        TransferRow(
            row_id=index,
            account_id=account.id,
            account_type=account.type,
            date=row.date,
            amount=row.native_amount,
            normalized_description=row.normalized_description,
        )
        for index, row in enumerate(rows)
        if row.status == RowStatus.PENDING
    ]
    transfers = detect_transfers(candidates, context.known_accounts)
    for index, candidate in transfers.items():
        rows[index].status = RowStatus.IGNORED
        rows[index].ignore_reason = candidate.reason.value


def _dedup_within_file(rows: list[ParsedRow]) -> None:
    """Mark repeated hashes duplicate and drop repeated external ids.

    Two rows with different content but the same id column value are both
    kept; only the first keeps the id, since the ledger stores each id once
    per account.
    """
    seen: set[str] = set()
    seen_ids: set[str] = set()
    for row in rows:
        if row.status == RowStatus.DUPLICATE:
            continue
        if row.hash_key in seen:
            row.status = RowStatus.DUPLICATE
            row.ignore_reason = None
            continue
        seen.add(row.hash_key)
        if row.external_id and row.status in (RowStatus.PENDING, RowStatus.IGNORED):
            if row.external_id in seen_ids:
                logger.debug("Row %d repeats external id %s; dropping the id", row.line_number, row.external_id)
                row.external_id = None
            else:
                seen_ids.add(row.external_id)


def _draft(row: ParsedRow, context: ImportContext, **overrides) -> TransactionDraft:
    values = dict(
        account_id=context.account.id,
        period_id=context.period.id,
        date=row.date,
        description=row.description,
        sub_description=row.sub_description,
        amount=row.amount,
        status=TransactionStatus.PENDING if row.is_pending else TransactionStatus.POSTED,
        source=TransactionSource.IMPORT,
        external_id=row.external_id,
        source_import_hash=row.hash_key,
    )
    values.update(overrides)
    return TransactionDraft(**values)


def reconcile_import(
    context: ImportContext,
    rows: Iterable[tuple[int, dict[str, Any]]],
) -> ImportResult:
    """Classify every row of one file and plan the writes.

    Args:
        context: Account, period and storage state for the run
        rows: ``(line_number, row)`` pairs in file order

    Returns:
        The classified rows plus the raw rows, transactions, income merges
        and consumed placeholders to persist
    """
    account, period = context.account, context.period
    parsed: list[ParsedRow] = []
    malformed = 0

    for line_number, raw in rows:
        try:
            row = parse_row(line_number, raw, context.mapping, account, period)
        except MalformedRowError as e:
            malformed += 1
            logger.warning("Skipping malformed row %d: %s", e.row_num, e.reason)
            continue
        if is_date_in_period(row.date, period.year, period.month):
            if matching_ignore_rule(row.normalized_description, context.ignore_rules):
                row.status = RowStatus.IGNORED
                row.ignore_reason = IGNORE_RULE_REASON
        parsed.append(row)

    _classify_out_of_period(parsed, period)
    _dedup_existing(parsed, context)
    _tag_transfers(parsed, context)
    _dedup_within_file(parsed)

    result = ImportResult(rows=parsed)
    result.raw_rows = [
        row for row in parsed
        if row.status != RowStatus.DUPLICATE and row.hash_key not in context.existing_raw_hashes
    ]
    pending = [row for row in result.raw_rows if row.status == RowStatus.PENDING]
    ignored = [row for row in result.raw_rows if row.status == RowStatus.IGNORED]

    consumed: set[int] = set()
    used_income: set[int] = set()
    is_bank = account.type == AccountType.BANK
    remaining = []
    for row in pending:
        if is_bank and row.amount < 0 and context.income_projections:
            candidates = find_income_candidates(
                row, context.income_projections, used_income, context.income_match_window_days
            )
            if len(candidates) == 1:
                used_income.add(candidates[0].id)
                consumed.add(candidates[0].id)
                result.income_merges.append(IncomeMerge(candidates[0].id, row))
                logger.debug("Row %d merged into projected income %d", row.line_number, candidates[0].id)
                continue
        remaining.append(row)

    projections = list(context.projections)
    definitions = list(context.definitions)
    recurring_matched = 0
    for row in remaining:
        match = None
        if definitions:
            match = match_recurring(
                row.date, row.amount, row.normalized_description, projections, definitions, consumed
            )
        if match is not None:
            recurring_matched += 1
            if match.projected_transaction_id is not None:
                consumed.add(match.projected_transaction_id)
                result.consumed_projection_ids.append(match.projected_transaction_id)
            logger.debug(
                "Row %d matched recurring definition %d (%s)",
                row.line_number,
                match.definition_id,
                match.confidence.value,
            )
            result.transactions.append(
                _draft(
                    row,
                    context,
                    category=match.category,
                    is_recurring_instance=True,
                    recurring_definition_id=match.definition_id,
                )
            )
        else:
            category = mapped_category(row.normalized_description, context.category_rules)
            result.transactions.append(_draft(row, context, category=category))

    for row in ignored:
        result.transactions.append(_draft(row, context, category=UNCATEGORIZED, is_ignored=True))

    result.summary = ImportSummary(
        imported=len(remaining) + len(result.income_merges),
        duplicate=sum(1 for r in parsed if r.status == RowStatus.DUPLICATE),
        transfer_ignored=sum(
            1 for r in parsed if r.status == RowStatus.IGNORED and r.ignore_reason != IGNORE_RULE_REASON
        ),
        rule_ignored=sum(
            1 for r in parsed if r.status == RowStatus.IGNORED and r.ignore_reason == IGNORE_RULE_REASON
        ),
        out_of_period=sum(1 for r in parsed if r.status == RowStatus.OUT_OF_PERIOD),
        recurring_matched=recurring_matched,
        income_merged=len(result.income_merges),
        malformed=malformed,
        periods=(period.label,),
    )

    for row in pending:
        row.status = RowStatus.IMPORTED
    return result


def income_merge_fields(merge: IncomeMerge, account_id: int) -> dict[str, Any]:
    """Fields written onto a projected Income entry when a deposit replaces it."""
    row = merge.row
    return {
        "account_id": account_id,
        "date": row.date,
        "description": row.description,
        "sub_description": row.sub_description,
        "amount": row.amount,
        "category": INCOME_CATEGORY,
        "status": TransactionStatus.POSTED,
        "source": TransactionSource.IMPORT,
        "external_id": row.external_id,
        "source_import_hash": row.hash_key,
    }

