"""Ignore rule and category mapping domain services."""

from typing import Optional

from tallyup.database.base import Database
from tallyup.domain.entities import (
    CategoryMappingRule,
    IGNORE_RULE_REASON,
    IgnoreRule,
    RowStatus,
    TransactionSource,
    UNCATEGORIZED,
)
from tallyup.domain.errors import NotFoundError, ValidationError
from tallyup.domain.normalizer import build_composite_description, normalize_description
from tallyup.logging_setup import get_logger

logger = get_logger(__name__)


class IgnoreRuleService:
    """Service for managing ignore rules."""

    def __init__(self, db: Database):
        """Initialize ignore rule service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_rule(self, pattern: str) -> tuple[IgnoreRule, bool, int]:
        """Create an ignore rule and apply it to existing imports.

        A pattern that normalizes to an existing rule's pattern reuses that
        rule. Matching imported transactions are flagged ignored and their
        raw rows marked ``ignored``.

        Args:
            pattern: Text to suppress (matched as a normalized substring)

        Returns:
            Tuple of (rule, created, number of transactions newly ignored)

        Raises:
            ValidationError: If the pattern normalizes to an empty string
        """
        trimmed = (pattern or "").strip()
        normalized = normalize_description(trimmed)
        if not normalized:
            raise ValidationError("Ignore rule cannot be empty")

        existing = self.db.get_ignore_rule_by_pattern(normalized)
        if existing is None:
            rule_id = self.db.create_ignore_rule(pattern=trimmed, normalized_pattern=normalized)
            rule = self.db.get_ignore_rule(rule_id)
        else:
            rule = existing

        ignored = self.apply_rule(normalized)
        logger.info("Ignore rule '%s' flagged %d existing transactions", normalized, ignored)
        return rule, existing is None, ignored

    def apply_rule(self, normalized_pattern: str) -> int:
        """Flag stored imports whose normalized description contains the pattern."""
        raw_rows = [
            row for row in self.db.list_raw_rows()
            if normalized_pattern in row.normalized_description and row.status != RowStatus.DUPLICATE
        ]
        hashes = {row.hash_key for row in raw_rows}
        transaction_ids = [
            txn.id
            for txn in self.db.list_transactions(source=TransactionSource.IMPORT)
            if not txn.is_ignored
            and (
                txn.source_import_hash in hashes
                or normalized_pattern
                in normalize_description(build_composite_description(txn.description, txn.sub_description))
            )
        ]
        self.db.mark_ignored(
            transaction_ids=transaction_ids,
            raw_row_ids=[row.id for row in raw_rows],
            reason=IGNORE_RULE_REASON,
        )
        return len(transaction_ids)

    def list_rules(self, active_only: bool = False) -> list[IgnoreRule]:
        return self.db.list_ignore_rules(active_only=active_only)

    def toggle_rule(self, rule_id: int, active: bool) -> IgnoreRule:
        """Enable or disable a rule.

        Raises:
            NotFoundError: If the rule does not exist
        """
        if self.db.get_ignore_rule(rule_id) is None:
            raise NotFoundError(f"Ignore rule {rule_id} not found")
        self.db.set_ignore_rule_active(rule_id, active)
        return self.db.get_ignore_rule(rule_id)

    def delete_rule(self, rule_id: int) -> None:
        if self.db.get_ignore_rule(rule_id) is None:
            raise NotFoundError(f"Ignore rule {rule_id} not found")
        self.db.delete_ignore_rule(rule_id)


class CategoryMappingService:
    """Service for exact-description category mapping rules."""

    def __init__(self, db: Database):
        """Initialize category mapping service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_rule(
        self, description: str, category: str, sub_description: Optional[str] = None
    ) -> tuple[CategoryMappingRule, int]:
        """Create or replace the rule for a description.

        Uncategorized, non-ignored imports with the same normalized
        description are categorized right away.

        Returns:
            Tuple of (rule, number of existing transactions categorized)

        Raises:
            ValidationError: If the description or category is empty
        """
        raw_description = build_composite_description(description, sub_description)
        normalized = normalize_description(raw_description)
        if not normalized:
            raise ValidationError("Description is required to create a mapping rule")
        category = (category or "").strip()
        if not category:
            raise ValidationError("Category is required")

        self.db.upsert_category_mapping_rule(
            raw_description=raw_description,
            normalized_description=normalized,
            category=category,
        )
        rule = self.db.get_category_mapping_rule(normalized)

        updates = [
            (txn.id, {"category": category})
            for txn in self.db.list_transactions(source=TransactionSource.IMPORT, include_ignored=False)
            if txn.category == UNCATEGORIZED
            and normalize_description(build_composite_description(txn.description, txn.sub_description))
            == normalized
        ]
        if updates:
            self.db.apply_ledger_changes(updated=updates)
        logger.info("Category rule '%s' -> %s applied to %d transactions", normalized, category, len(updates))
        return rule, len(updates)

    def list_rules(self, active_only: bool = False) -> list[CategoryMappingRule]:
        return self.db.list_category_mapping_rules(active_only=active_only)
