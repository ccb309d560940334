"""Match ledger rows to recurring schedules.

A row is first compared with the period's projected placeholders (mode A),
then, when no placeholder fits, with the definitions themselves (mode B).
Labels match by substring of the normalized description only.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from tallyup.domain.entities import (
    CategoryMappingRule,
    Confidence,
    RecurringDefinition,
    Transaction,
    UNCATEGORIZED,
)
from tallyup.domain.normalizer import normalize_description, percent_difference
from tallyup.utils.date_parser import days_between

MAX_DAY_DIFF = 5
MAX_AMOUNT_DIFF_PERCENT = Decimal(10)


@dataclass(frozen=True)
class RecurringMatch:
    """Best recurring match for one row."""

    definition_id: int
    category: str
    merchant_label: str
    confidence: Confidence
    day_diff: int
    amount_diff_percent: Decimal
    projected_transaction_id: Optional[int] = None


def label_matches(normalized_description: str, definition: RecurringDefinition) -> bool:
    """Return True if the definition's merchant label occurs in the description."""
    label = normalize_description(definition.merchant_label)
    return bool(label) and label in normalized_description


def projection_confidence(day_diff: int, amount_diff_percent: Decimal) -> Confidence:
    if day_diff <= 1 and amount_diff_percent <= 1:
        return Confidence.HIGH
    if day_diff <= 2 and amount_diff_percent <= 5:
        return Confidence.MEDIUM
    return Confidence.LOW


def definition_confidence(amount_diff_percent: Decimal) -> Confidence:
    if amount_diff_percent <= 1:
        return Confidence.HIGH
    if amount_diff_percent <= 5:
        return Confidence.MEDIUM
    return Confidence.LOW


def match_projections(
    row_date: date,
    amount: Decimal,
    normalized_description: str,
    projections: Iterable[Transaction],
    definitions: Iterable[RecurringDefinition],
    consumed: Optional[set[int]] = None,
) -> list[RecurringMatch]:
    """Return every placeholder a row could stand for, best first.

    Args:
        row_date: Date of the row
        amount: Row amount in the expense sign convention
        normalized_description: Normalized (composite) description of the row
        projections: Projected transactions of the period
        definitions: Active recurring definitions
        consumed: Ids of placeholders already taken earlier in the run

    Returns:
        Matches sorted by confidence tier, then by day difference
    """
    consumed = consumed or set()
    by_id = {d.id: d for d in definitions if d.active}
    matches = []

    for projected in projections:
        if projected.id in consumed:
            continue
        definition = by_id.get(projected.recurring_definition_id)
        if definition is None or not label_matches(normalized_description, definition):
            continue
        if projected.amount == 0:
            continue

        day_diff = days_between(row_date, projected.date)
        if day_diff > MAX_DAY_DIFF:
            continue
        diff_percent = percent_difference(amount, projected.amount)
        if diff_percent > MAX_AMOUNT_DIFF_PERCENT:
            continue

        matches.append(
            RecurringMatch(
                definition_id=definition.id,
                category=definition.category,
                merchant_label=definition.merchant_label,
                confidence=projection_confidence(day_diff, diff_percent),
                day_diff=day_diff,
                amount_diff_percent=diff_percent,
                projected_transaction_id=projected.id,
            )
        )

    matches.sort(key=lambda m: (m.confidence.rank, m.day_diff))
    return matches


def match_definitions(
    amount: Decimal,
    normalized_description: str,
    definitions: Iterable[RecurringDefinition],
) -> list[RecurringMatch]:
    """Compare a row with definitions directly, ignoring dates.

    Returns:
        Matches sorted by confidence tier, then by amount difference
    """
    matches = []
    for definition in definitions:
        if not definition.active or not label_matches(normalized_description, definition):
            continue
        expected = definition.expected_amount
        if expected == 0:
            continue
        diff_percent = percent_difference(amount, expected)
        if diff_percent > MAX_AMOUNT_DIFF_PERCENT:
            continue
        matches.append(
            RecurringMatch(
                definition_id=definition.id,
                category=definition.category,
                merchant_label=definition.merchant_label,
                confidence=definition_confidence(diff_percent),
                day_diff=0,
                amount_diff_percent=diff_percent,
            )
        )

    matches.sort(key=lambda m: (m.confidence.rank, m.amount_diff_percent))
    return matches


def find_closest_projection(
    projections: Iterable[Transaction],
    definition_id: int,
    target_date: date,
    target_amount: Decimal,
    consumed: Optional[set[int]] = None,
) -> Optional[Transaction]:
    """Pick the placeholder of a definition closest to a posted row.

    Placeholders with the same sign as the row are preferred. The score is
    ``day_diff * 100 + amount_diff``, lowest wins.
    """
    consumed = consumed or set()
    candidates = [
        p for p in projections
        if p.recurring_definition_id == definition_id and p.id not in consumed
    ]
    if not candidates:
        return None

    if target_amount != 0:
        same_sign = [p for p in candidates if (p.amount > 0) == (target_amount > 0) and p.amount != 0]
        if same_sign:
            candidates = same_sign

    def score(projected: Transaction) -> Decimal:
        return days_between(projected.date, target_date) * 100 + abs(abs(projected.amount) - abs(target_amount))

    return min(candidates, key=score)


def match_recurring(
    row_date: date,
    amount: Decimal,
    normalized_description: str,
    projections: list[Transaction],
    definitions: list[RecurringDefinition],
    consumed: Optional[set[int]] = None,
) -> Optional[RecurringMatch]:
    """Find the recurring schedule a row belongs to, if any.

    Mode A (placeholders) is tried before mode B (definitions). When mode B
    wins, the closest remaining placeholder of that definition is attached
    to the match so it is consumed as well.

    Returns:
        The winning match or None
    """
    matches = match_projections(row_date, amount, normalized_description, projections, definitions, consumed)
    if matches:
        return matches[0]

    matches = match_definitions(amount, normalized_description, definitions)
    if not matches:
        return None

    best = matches[0]
    closest = find_closest_projection(projections, best.definition_id, row_date, amount, consumed)
    if closest is None:
        return best
    return RecurringMatch(
        definition_id=best.definition_id,
        category=best.category,
        merchant_label=best.merchant_label,
        confidence=best.confidence,
        day_diff=days_between(row_date, closest.date),
        amount_diff_percent=best.amount_diff_percent,
        projected_transaction_id=closest.id,
    )


def mapped_category(normalized_description: str, rules: Iterable[CategoryMappingRule]) -> str:
    """Category from an exact normalized-description rule, else Uncategorized."""
    for rule in rules:
        if rule.active and rule.normalized_description == normalized_description:
            return rule.category
    return UNCATEGORIZED
