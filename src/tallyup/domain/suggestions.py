"""Recurring suggestion mining.

Scans posted import history for charges that come back every month and
proposes them as new recurring definitions.
"""

import math
import statistics
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from tallyup.database.base import Database
from tallyup.domain.entities import RecurringDefinition, Transaction, TransactionSource, TransactionStatus
from tallyup.domain.errors import NotFoundError, ValidationError
from tallyup.domain.normalizer import build_composite_description, normalize_description
from tallyup.domain.recurring import RecurringService
from tallyup.domain.scheduling import MonthlySchedule, SchedulingRule
from tallyup.logging_setup import get_logger
from tallyup.utils.amount_parser import round_currency
from tallyup.utils.date_parser import month_index

logger = get_logger(__name__)

MIN_OCCURRENCES = 3
MIN_MEDIAN_GAP_DAYS = 25
MAX_MEDIAN_GAP_DAYS = 35
MAX_GAP_DAYS = 45
MAX_DAY_OF_MONTH_SPREAD = 10
STALE_MONTHS = 3


@dataclass(frozen=True)
class Occurrence:
    date: date
    amount: Decimal
    description: str
    composite_description: str


@dataclass(frozen=True)
class SuggestionMonth:
    year: int
    month: int
    date: date
    amount: Decimal


@dataclass(frozen=True)
class RecurringSuggestion:
    """A proposed recurring definition mined from history."""

    key: str
    normalized_description: str
    display_description: str
    match_description: str
    amount_median: Decimal
    amount_min: Decimal
    amount_max: Decimal
    day_of_month_median: float
    day_of_month_min: int
    day_of_month_max: int
    months: tuple[SuggestionMonth, ...]
    confidence: int


def suggestion_key(normalized_description: str, amount_median: Decimal) -> str:
    """Return the dismissal key of a suggestion."""
    return f"{normalized_description}|{round_currency(amount_median):.2f}"


def _month_of(occurrence: Occurrence) -> tuple[int, int]:
    return occurrence.date.year, occurrence.date.month


def cluster_by_amount(occurrences: list[Occurrence]) -> list[list[Occurrence]]:
    """Greedy nearest-mean clustering in ascending amount order.

    Each occurrence joins the existing cluster whose mean is nearest, provided
    it is within ``max(2, 10% of the mean)``; otherwise it starts a new cluster.
    Ties keep the earlier cluster.
    """
    clusters: list[list[Occurrence]] = []
    for occurrence in sorted(occurrences, key=lambda o: (o.amount, o.date)):
        best_index = None
        best_delta = None
        for index, cluster in enumerate(clusters):
            mean = sum(o.amount for o in cluster) / len(cluster)
            tolerance = max(Decimal(2), mean * Decimal("0.1"))
            delta = abs(occurrence.amount - mean)
            if delta <= tolerance and (best_delta is None or delta < best_delta):
                best_index, best_delta = index, delta
        if best_index is None:
            clusters.append([occurrence])
        else:
            clusters[best_index].append(occurrence)
    return clusters


def _most_common(values: Iterable[str], fallback: str) -> str:
    counts = Counter(v.strip() for v in values if v and v.strip())
    if not counts:
        return fallback
    # Counter.most_common keeps first-seen order on ties
    return counts.most_common(1)[0][0]


def confidence_score(day_range: int, amount_range_percent: float, gap_variance: float) -> int:
    """Weighted 0-100 score of how regular a monthly sequence is."""
    day_score = max(0.0, 1 - day_range / 10)
    amount_score = max(0.0, 1 - amount_range_percent / 60)
    gap_score = max(0.0, 1 - gap_variance / 10)
    blended = (day_score * 0.4 + amount_score * 0.3 + gap_score * 0.3) * 100
    return int(math.floor(blended + 0.5))


def build_sequence(normalized: str, occurrences: list[Occurrence]) -> Optional[RecurringSuggestion]:
    """Turn one cluster into a suggestion, or None if it is not monthly enough."""
    if len(occurrences) < MIN_OCCURRENCES:
        return None

    ordered = sorted(occurrences, key=lambda o: o.date)
    base_median = statistics.median(o.amount for o in ordered)

    by_month: dict[tuple[int, int], list[Occurrence]] = defaultdict(list)
    for occurrence in ordered:
        by_month[_month_of(occurrence)].append(occurrence)

    monthly = sorted(
        (min(items, key=lambda o: abs(o.amount - base_median)) for items in by_month.values()),
        key=lambda o: o.date,
    )
    if len(monthly) < MIN_OCCURRENCES:
        return None

    gaps = [(b.date - a.date).days for a, b in zip(monthly, monthly[1:])]
    median_gap = statistics.median(gaps)
    if median_gap < MIN_MEDIAN_GAP_DAYS or median_gap > MAX_MEDIAN_GAP_DAYS:
        return None
    if max(gaps) > MAX_GAP_DAYS:
        return None

    days = [o.date.day for o in monthly]
    if max(days) - min(days) > MAX_DAY_OF_MONTH_SPREAD:
        return None

    amounts = [o.amount for o in monthly]
    amount_min, amount_max = min(amounts), max(amounts)
    amount_median = statistics.median(amounts)
    amount_range_percent = 0.0 if amount_median == 0 else float((amount_max - amount_min) / amount_median * 100)

    median_rounded = round_currency(amount_median)
    return RecurringSuggestion(
        key=suggestion_key(normalized, median_rounded),
        normalized_description=normalized,
        display_description=_most_common((o.description for o in monthly), "Recurring item"),
        match_description=_most_common((o.composite_description for o in monthly), "Recurring item"),
        amount_median=median_rounded,
        amount_min=round_currency(amount_min),
        amount_max=round_currency(amount_max),
        day_of_month_median=statistics.median(days),
        day_of_month_min=min(days),
        day_of_month_max=max(days),
        months=tuple(SuggestionMonth(o.date.year, o.date.month, o.date, o.amount) for o in monthly),
        confidence=confidence_score(max(days) - min(days), amount_range_percent, max(gaps) - min(gaps)),
    )


def build_sequences(normalized: str, occurrences: list[Occurrence]) -> list[RecurringSuggestion]:
    months = Counter(_month_of(o) for o in occurrences)
    if any(count > 1 for count in months.values()):
        clusters = cluster_by_amount(occurrences)
    else:
        clusters = [occurrences]
    sequences = []
    for cluster in clusters:
        sequence = build_sequence(normalized, cluster)
        if sequence is not None:
            sequences.append(sequence)
    return sequences


def mine_suggestions(
    transactions: Iterable[Transaction],
    definitions: Iterable[RecurringDefinition],
    dismissed_keys: Optional[set[str]] = None,
) -> list[RecurringSuggestion]:
    """Propose recurring definitions from posted history.

    Args:
        transactions: Posted, non-ignored, import-sourced transactions
        definitions: Existing definitions; active ones suppress suggestions
        dismissed_keys: Keys the user asked not to see again

    Returns:
        Suggestions sorted by confidence, highest first
    """
    dismissed_keys = dismissed_keys or set()
    transactions = list(transactions)
    covered = [normalize_description(d.merchant_label) for d in definitions if d.active]
    covered = [label for label in covered if label]

    latest: Optional[date] = max((t.date for t in transactions), default=None)
    if latest is None:
        return []

    grouped: dict[str, list[Occurrence]] = defaultdict(list)
    for txn in transactions:
        if txn.amount <= 0:
            continue
        description = (txn.description or "").strip()
        composite = build_composite_description(description, txn.sub_description)
        normalized = normalize_description(composite)
        if not normalized:
            continue
        grouped[normalized].append(
            Occurrence(
                date=txn.date,
                amount=round_currency(abs(txn.amount)),
                description=description,
                composite_description=composite,
            )
        )

    suggestions = []
    for normalized, occurrences in grouped.items():
        if len(occurrences) < MIN_OCCURRENCES:
            continue
        if any(normalized in label or label in normalized for label in covered):
            continue

        for sequence in build_sequences(normalized, occurrences):
            if sequence.key in dismissed_keys:
                continue
            last = sequence.months[-1].date
            if month_index(latest) - month_index(last) >= STALE_MONTHS:
                continue
            suggestions.append(sequence)

    suggestions.sort(key=lambda s: s.confidence, reverse=True)
    return suggestions


class SuggestionService:
    """Service for listing, dismissing and accepting recurring suggestions."""

    def __init__(self, db: Database):
        """Initialize suggestion service.

        Args:
            db: Database instance
        """
        self.db = db

    def list_suggestions(self) -> list[RecurringSuggestion]:
        """Mine suggestions from every posted import."""
        transactions = self.db.list_transactions(
            source=TransactionSource.IMPORT,
            statuses=[TransactionStatus.POSTED],
            include_ignored=False,
        )
        definitions = self.db.list_recurring_definitions()
        dismissed = self.db.list_suggestion_dismissals()
        suggestions = mine_suggestions(transactions, definitions, dismissed)
        logger.info("Found %d recurring suggestions", len(suggestions))
        return suggestions

    def get_suggestion(self, key: str) -> Optional[RecurringSuggestion]:
        for suggestion in self.list_suggestions():
            if suggestion.key == key:
                return suggestion
        return None

    def dismiss(self, key: str) -> None:
        """Hide a suggestion permanently.

        Raises:
            ValidationError: If the key is empty
        """
        key = (key or "").strip()
        if not key:
            raise ValidationError("Suggestion key is required")
        self.db.add_suggestion_dismissal(key)

    def accept(
        self,
        key: str,
        category: str,
        schedule: Optional[SchedulingRule] = None,
        display_label: Optional[str] = None,
    ) -> int:
        """Create a recurring definition from a suggestion.

        The merchant label is the suggestion's match description and the
        nominal amount its median. Without an explicit schedule the definition
        is monthly on the median day of month.

        Returns:
            New definition ID

        Raises:
            NotFoundError: If no current suggestion has this key
        """
        suggestion = self.get_suggestion(key)
        if suggestion is None:
            raise NotFoundError(f"Suggestion '{key}' not found")
        if schedule is None:
            schedule = MonthlySchedule(day_of_month=int(math.floor(suggestion.day_of_month_median + 0.5)))
        return RecurringService(self.db).create_definition(
            merchant_label=suggestion.match_description,
            nominal_amount=suggestion.amount_median,
            schedule=schedule,
            category=category,
            display_label=display_label or suggestion.display_description,
        )
