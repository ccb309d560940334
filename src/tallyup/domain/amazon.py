"""Amazon order matching.

Orders are matched to imported card or bank charges by exact rounded amount
inside a date window around the order date. An order is linked
automatically only when it has a single candidate group and no other order
in the same run can use any of that group's transactions; anything else
with candidates is left ``ambiguous`` with its full candidate list stored
for a manual choice.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from itertools import combinations
from typing import Any, Iterable, Optional

from tallyup.config import (
    DEFAULT_AMAZON_MATCH_WINDOW_DAYS,
    DEFAULT_AMAZON_MAX_GROUP_SIZE,
    MAX_AMAZON_GROUP_SIZE,
    Settings,
    load_settings,
)
from tallyup.database.base import Database
from tallyup.domain.entities import (
    AmazonOrder,
    AmazonOrderDraft,
    CandidateGroup,
    CandidateTransaction,
    Candidates,
    MatchStatus,
    NoCandidates,
    OrderMatch,
    Transaction,
    TransactionSource,
)
from tallyup.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    order_not_found,
    transaction_already_linked,
    transaction_not_found,
)
from tallyup.logging_setup import get_logger
from tallyup.utils.amount_parser import round_currency
from tallyup.utils.date_parser import coerce_date

logger = get_logger(__name__)

AMAZON_KEYWORDS = ("amazon", "amzn")
DEFAULT_CURRENCY = "CAD"
MAX_CANDIDATE_GROUPS = 12


def mentions_amazon(transaction: Transaction) -> bool:
    text = f"{transaction.description} {transaction.sub_description or ''}".lower()
    return any(keyword in text for keyword in AMAZON_KEYWORDS)


def _candidate(transaction: Transaction) -> CandidateTransaction:
    return CandidateTransaction(
        id=transaction.id,
        date=transaction.date,
        amount=round_currency(transaction.amount),
        description=transaction.description,
        category=transaction.category,
        sub_description=transaction.sub_description,
    )


def _score_group(order_date: date, transactions: tuple[Transaction, ...]) -> tuple[int, int]:
    dates = [t.date for t in transactions]
    span = (max(dates) - min(dates)).days
    distance = sum(abs((order_date - d).days) for d in dates) / len(dates)
    score = 100 - 12 * (len(transactions) - 1) - 2 * span - distance
    return int(round(score)), span


def build_candidate_groups(
    order_date: date,
    order_total: Decimal,
    transactions: Iterable[Transaction],
    max_group_size: int = DEFAULT_AMAZON_MAX_GROUP_SIZE,
) -> list[CandidateGroup]:
    """Find transactions, or same-account combinations, adding up to an order total.

    Args:
        order_date: Date of the order
        order_total: Order total
        transactions: Candidate pool, already restricted to the date window
        max_group_size: Largest combination to consider (1 to 3)

    Returns:
        Candidate groups, best score first, at most twelve
    """
    target = round_currency(order_total)
    if target <= 0:
        return []
    max_group_size = max(1, min(max_group_size, MAX_AMAZON_GROUP_SIZE))

    by_account: dict[Optional[int], list[Transaction]] = {}
    for transaction in transactions:
        if round_currency(transaction.amount) <= 0:
            continue
        by_account.setdefault(transaction.account_id, []).append(transaction)

    seen: set[tuple[int, ...]] = set()
    groups = []
    for account_transactions in by_account.values():
        for size in range(1, max_group_size + 1):
            for combo in combinations(account_transactions, size):
                total = round_currency(sum((round_currency(t.amount) for t in combo), Decimal("0")))
                if total != target:
                    continue
                ordered = tuple(sorted(combo, key=lambda t: t.id))
                ids = tuple(t.id for t in ordered)
                if ids in seen:
                    continue
                seen.add(ids)
                score, span = _score_group(order_date, ordered)
                groups.append(
                    CandidateGroup(
                        transaction_ids=ids,
                        transactions=tuple(_candidate(t) for t in ordered),
                        total=total,
                        date_span_days=span,
                        score=score,
                    )
                )

    groups.sort(key=lambda g: (-g.score, g.transaction_ids))
    return groups[:MAX_CANDIDATE_GROUPS]


def in_window(transaction: Transaction, order_date: date, window_days: int) -> bool:
    return abs((transaction.date - order_date).days) <= window_days


def match_orders(
    orders: Iterable[AmazonOrder],
    pool: Iterable[Transaction],
    window_days: int = DEFAULT_AMAZON_MATCH_WINDOW_DAYS,
    max_group_size: int = DEFAULT_AMAZON_MAX_GROUP_SIZE,
) -> list[OrderMatch]:
    """Resolve every order to matched, ambiguous or unmatched.

    The pool must already exclude transactions claimed by other orders.
    Matching never assigns a transaction that another order in the same
    run could also use, so re-running over the same inputs gives the same
    result.

    Args:
        orders: Orders to match
        pool: Eligible expense transactions (expense sign)
        window_days: Allowed distance between order and transaction dates
        max_group_size: Largest split-shipment combination to consider

    Returns:
        One OrderMatch per order, in input order
    """
    orders = list(orders)
    pool = list(pool)

    candidates: dict[int, list[CandidateGroup]] = {}
    use_counts: dict[int, int] = {}
    for order in orders:
        scoped = [t for t in pool if in_window(t, order.order_date, window_days)]
        groups = build_candidate_groups(order.order_date, order.order_total, scoped, max_group_size)
        candidates[order.id] = groups
        for transaction_id in {tid for group in groups for tid in group.transaction_ids}:
            use_counts[transaction_id] = use_counts.get(transaction_id, 0) + 1

    results = []
    for order in orders:
        groups = candidates[order.id]
        if not groups:
            results.append(OrderMatch(order_id=order.id, status=MatchStatus.UNMATCHED))
            continue
        if len(groups) == 1 and all(use_counts[tid] == 1 for tid in groups[0].transaction_ids):
            results.append(
                OrderMatch(
                    order_id=order.id,
                    status=MatchStatus.MATCHED,
                    transaction_ids=groups[0].transaction_ids,
                )
            )
            continue
        results.append(
            OrderMatch(
                order_id=order.id,
                status=MatchStatus.AMBIGUOUS,
                metadata=Candidates(groups=tuple(groups)),
            )
        )
    return results


def parse_order(data: dict[str, Any]) -> AmazonOrderDraft:
    """Validate one order record.

    Accepts ``orderId``/``orderDate``/``orderTotal``/``currency``/
    ``orderUrl``/``items`` keys (snake_case spellings work too).

    Raises:
        ValidationError: If the id, date or total is missing or invalid
    """

    def pick(*keys):
        for key in keys:
            if data.get(key) not in (None, ""):
                return data[key]
        return None

    order_id = str(pick("orderId", "order_id") or "").strip()
    if not order_id:
        raise ValidationError("Order id is required")
    try:
        order_date = coerce_date(pick("orderDate", "order_date"))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Order {order_id}: invalid date") from e
    try:
        total = round_currency(pick("orderTotal", "order_total"))
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"Order {order_id}: invalid total") from e
    if not total.is_finite():
        raise ValidationError(f"Order {order_id}: invalid total")

    items = pick("items") or []
    if not isinstance(items, (list, tuple)):
        items = []
    titles = tuple(str(item).strip() for item in items if str(item).strip())
    return AmazonOrderDraft(
        amazon_order_id=order_id,
        order_date=order_date,
        order_total=total,
        currency=(pick("currency") or DEFAULT_CURRENCY),
        items=titles,
        order_url=pick("orderUrl", "order_url"),
    )


@dataclass
class AmazonImportSummary:
    received: int = 0
    created: int = 0
    skipped: int = 0
    invalid: int = 0
    matched: int = 0
    ambiguous: int = 0
    unmatched: int = 0


@dataclass
class AmazonMatchSummary:
    matched: int = 0
    ambiguous: int = 0
    unmatched: int = 0


class AmazonService:
    """Service for importing Amazon orders and linking them to charges."""

    def __init__(self, db: Database, settings: Optional[Settings] = None):
        """Initialize Amazon service.

        Args:
            db: Database instance
            settings: Matching window and group size; read from the environment when omitted
        """
        self.db = db
        self.settings = settings or load_settings()

    def get_order(self, order_id: int) -> AmazonOrder:
        order = self.db.get_amazon_order(order_id)
        if order is None:
            raise NotFoundError(order_not_found(order_id))
        return order

    def list_orders(self) -> list[AmazonOrder]:
        return self.db.list_amazon_orders()

    def import_orders(self, records: Iterable[dict[str, Any]], source_url: Optional[str] = None) -> AmazonImportSummary:
        """Store new orders and match them.

        Records with a missing id, date or total are counted as invalid.
        Orders already stored, or repeated within the input, are skipped.
        """
        summary = AmazonImportSummary()
        drafts: dict[str, AmazonOrderDraft] = {}
        for record in records:
            summary.received += 1
            try:
                draft = parse_order(record)
            except ValidationError as e:
                summary.invalid += 1
                logger.warning("Skipping Amazon order: %s", e)
                continue
            drafts.setdefault(draft.amazon_order_id, draft)

        new_drafts = []
        for order_id, draft in drafts.items():
            if self.db.get_amazon_order_by_order_id(order_id) is not None:
                continue
            if draft.order_url is None and source_url:
                draft = AmazonOrderDraft(
                    amazon_order_id=draft.amazon_order_id,
                    order_date=draft.order_date,
                    order_total=draft.order_total,
                    currency=draft.currency,
                    items=draft.items,
                    order_url=source_url,
                )
            new_drafts.append(draft)

        created_ids = self.db.create_amazon_orders(new_drafts) if new_drafts else []
        summary.created = len(created_ids)
        summary.skipped = len(drafts) - len(new_drafts)
        if created_ids:
            result = self.match(order_ids=created_ids)
            summary.matched = result.matched
            summary.ambiguous = result.ambiguous
            summary.unmatched = result.unmatched
        logger.info(
            "Amazon import: %d received, %d created, %d skipped, %d invalid",
            summary.received, summary.created, summary.skipped, summary.invalid,
        )
        return summary

    def _claimed_transactions(self, exclude_order_id: Optional[int] = None) -> dict[int, int]:
        """Map transaction id to the order that claims it."""
        return {
            transaction_id: order_id
            for order_id, transaction_id in self.db.list_order_links()
            if order_id != exclude_order_id
        }

    def _pool(self, claimed: Iterable[int]) -> list[Transaction]:
        claimed = set(claimed)
        return [
            t for t in self.db.list_transactions(source=TransactionSource.IMPORT, include_ignored=False)
            if t.id not in claimed and mentions_amazon(t)
        ]

    def match(self, order_ids: Optional[Iterable[int]] = None) -> AmazonMatchSummary:
        """Run the matcher over unlinked, non-ignored orders.

        All statuses and links are written in one storage transaction.
        """
        wanted = set(order_ids) if order_ids is not None else None
        orders = [
            o for o in self.db.list_amazon_orders()
            if not o.is_ignored
            and not o.linked_transaction_ids
            and (wanted is None or o.id in wanted)
        ]
        summary = AmazonMatchSummary()
        if not orders:
            return summary

        pool = self._pool(self._claimed_transactions())
        results = match_orders(
            orders,
            pool,
            window_days=self.settings.amazon_match_window_days,
            max_group_size=self.settings.amazon_max_group_size,
        )
        self.db.save_order_matches(results)
        for result in results:
            if result.status == MatchStatus.MATCHED:
                summary.matched += 1
            elif result.status == MatchStatus.AMBIGUOUS:
                summary.ambiguous += 1
            else:
                summary.unmatched += 1
        logger.info(
            "Amazon match: %d matched, %d ambiguous, %d unmatched",
            summary.matched, summary.ambiguous, summary.unmatched,
        )
        return summary

    def get_candidates(self, order_id: int) -> list[CandidateGroup]:
        """Compute the current candidate groups for one order."""
        order = self.get_order(order_id)
        window = self.settings.amazon_match_window_days
        pool = [
            t for t in self._pool(self._claimed_transactions(exclude_order_id=order.id))
            if in_window(t, order.order_date, window)
        ]
        return build_candidate_groups(
            order.order_date, order.order_total, pool, self.settings.amazon_max_group_size
        )

    def _check_transactions(self, transaction_ids: list[int]) -> None:
        for transaction_id in transaction_ids:
            if self.db.get_transaction(transaction_id) is None:
                raise NotFoundError(transaction_not_found(transaction_id))

    def link_order(self, order_id: int, transaction_ids: Iterable[int]) -> AmazonOrder:
        """Replace an order's links with the given transactions.

        An empty list unlinks the order.

        Raises:
            NotFoundError: If the order or a transaction does not exist
            ConflictError: If a transaction is claimed by another order
        """
        self.get_order(order_id)
        ids = sorted(set(transaction_ids))
        claimed = self._claimed_transactions(exclude_order_id=order_id)
        for transaction_id in ids:
            if transaction_id in claimed:
                other = self.get_order(claimed[transaction_id])
                raise ConflictError(transaction_already_linked(transaction_id, other.amazon_order_id))
        self._check_transactions(ids)
        self.db.replace_order_links(order_id, ids)
        return self.get_order(order_id)

    def split_link_order(self, order_id: int, transaction_ids: Iterable[int]) -> AmazonOrder:
        """Link an order to transactions that other orders may also claim.

        Raises:
            NotFoundError: If the order or a transaction does not exist
            ValidationError: If no transaction is given
        """
        self.get_order(order_id)
        ids = sorted(set(transaction_ids))
        if not ids:
            raise ValidationError("Split link needs at least one transaction")
        self._check_transactions(ids)
        self.db.replace_order_links(order_id, ids)
        return self.get_order(order_id)

    def unlink_order(self, order_id: int) -> AmazonOrder:
        return self.link_order(order_id, [])

    def set_ignored(self, order_id: int, ignored: bool) -> AmazonOrder:
        self.get_order(order_id)
        self.db.set_amazon_order_ignored(order_id, ignored)
        return self.get_order(order_id)


def window_bounds(order_date: date, window_days: int) -> tuple[date, date]:
    return order_date - timedelta(days=window_days), order_date + timedelta(days=window_days)
