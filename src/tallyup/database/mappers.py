"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, making it easy to change when
the database schema changes. JSON columns (schedules, raw rows, order
match metadata) are decoded into their domain types here.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from tallyup.domain import entities as domain
from tallyup.domain.scheduling import rule_from_dict
from tallyup.database.models import (
    Account as ORMAccount,
    AmazonOrder as ORMAmazonOrder,
    CategoryMappingRule as ORMCategoryMappingRule,
    IgnoreRule as ORMIgnoreRule,
    ImportBatch as ORMImportBatch,
    Period as ORMPeriod,
    RawImportRow as ORMRawImportRow,
    RecurringDefinition as ORMRecurringDefinition,
    Transaction as ORMTransaction,
)


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        name=orm_account.name,
        type=domain.AccountType(orm_account.type),
        last4=orm_account.last4,
        display_alias=orm_account.display_alias,
        invert_amounts=orm_account.invert_amounts,
        created_at=orm_account.created_at,
    )


def period_to_domain(orm_period: ORMPeriod) -> domain.Period:
    """Convert SQLAlchemy Period model to domain Period entity."""
    return domain.Period(
        id=orm_period.id,
        year=orm_period.year,
        month=orm_period.month,
        status=domain.PeriodStatus(orm_period.status),
        created_at=orm_period.created_at,
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        account_id=orm_transaction.account_id,
        period_id=orm_transaction.period_id,
        date=orm_transaction.date,
        description=orm_transaction.description,
        sub_description=orm_transaction.sub_description,
        amount=_decimal(orm_transaction.amount),
        category=orm_transaction.category,
        status=domain.TransactionStatus(orm_transaction.status),
        source=domain.TransactionSource(orm_transaction.source),
        is_ignored=orm_transaction.is_ignored,
        is_recurring_instance=orm_transaction.is_recurring_instance,
        recurring_definition_id=orm_transaction.recurring_definition_id,
        external_id=orm_transaction.external_id,
        source_import_hash=orm_transaction.source_import_hash,
        import_batch_id=orm_transaction.import_batch_id,
        notes=orm_transaction.notes,
        created_at=orm_transaction.created_at,
    )


def transaction_from_draft(draft: domain.TransactionDraft, import_batch_id: Optional[int] = None) -> ORMTransaction:
    """Build a SQLAlchemy Transaction from a pipeline draft."""
    return ORMTransaction(
        account_id=draft.account_id,
        period_id=draft.period_id,
        import_batch_id=import_batch_id,
        date=draft.date,
        description=draft.description,
        sub_description=draft.sub_description,
        amount=draft.amount,
        category=draft.category,
        status=domain.TransactionStatus(draft.status).value,
        source=domain.TransactionSource(draft.source).value,
        is_ignored=draft.is_ignored,
        is_recurring_instance=draft.is_recurring_instance,
        recurring_definition_id=draft.recurring_definition_id,
        external_id=draft.external_id,
        source_import_hash=draft.source_import_hash,
        notes=draft.notes,
    )


def raw_row_to_domain(orm_row: ORMRawImportRow) -> domain.RawImportRow:
    """Convert SQLAlchemy RawImportRow model to domain RawImportRow entity."""
    return domain.RawImportRow(
        id=orm_row.id,
        batch_id=orm_row.batch_id,
        account_id=orm_row.account_id,
        line_number=orm_row.line_number,
        raw_data=dict(orm_row.raw_data or {}),
        parsed_date=orm_row.parsed_date,
        parsed_description=orm_row.parsed_description,
        parsed_sub_description=orm_row.parsed_sub_description,
        amount_before_norm=_decimal(orm_row.amount_before_norm),
        normalized_amount=_decimal(orm_row.normalized_amount),
        normalized_description=orm_row.normalized_description,
        hash_key=orm_row.hash_key,
        status=domain.RowStatus(orm_row.status),
        external_id=orm_row.external_id,
        ignore_reason=orm_row.ignore_reason,
    )


def raw_row_from_draft(draft: domain.RawRowDraft, account_id: int) -> ORMRawImportRow:
    """Build a SQLAlchemy RawImportRow from a pipeline draft."""
    return ORMRawImportRow(
        account_id=account_id,
        line_number=draft.line_number,
        raw_data=draft.raw_data,
        parsed_date=draft.parsed_date,
        parsed_description=draft.parsed_description,
        parsed_sub_description=draft.parsed_sub_description,
        amount_before_norm=draft.amount_before_norm,
        normalized_amount=draft.normalized_amount,
        normalized_description=draft.normalized_description,
        hash_key=draft.hash_key,
        status=domain.RowStatus(draft.status).value,
        external_id=draft.external_id,
        ignore_reason=draft.ignore_reason,
    )


def import_batch_to_domain(orm_batch: ORMImportBatch) -> domain.ImportBatch:
    """Convert SQLAlchemy ImportBatch model to domain ImportBatch entity."""
    return domain.ImportBatch(
        id=orm_batch.id,
        account_id=orm_batch.account_id,
        period_id=orm_batch.period_id,
        imported=orm_batch.imported,
        duplicate=orm_batch.duplicate,
        transfer_ignored=orm_batch.transfer_ignored,
        rule_ignored=orm_batch.rule_ignored,
        out_of_period=orm_batch.out_of_period,
        recurring_matched=orm_batch.recurring_matched,
        income_merged=orm_batch.income_merged,
        malformed=orm_batch.malformed,
        created_at=orm_batch.created_at,
    )


def recurring_definition_to_domain(orm_definition: ORMRecurringDefinition) -> domain.RecurringDefinition:
    """Convert SQLAlchemy RecurringDefinition model to domain entity."""
    return domain.RecurringDefinition(
        id=orm_definition.id,
        merchant_label=orm_definition.merchant_label,
        display_label=orm_definition.display_label,
        nominal_amount=_decimal(orm_definition.nominal_amount),
        schedule=rule_from_dict(orm_definition.schedule),
        frequency=orm_definition.frequency,
        category=orm_definition.category,
        active=orm_definition.active,
        created_at=orm_definition.created_at,
    )


def ignore_rule_to_domain(orm_rule: ORMIgnoreRule) -> domain.IgnoreRule:
    """Convert SQLAlchemy IgnoreRule model to domain IgnoreRule entity."""
    return domain.IgnoreRule(
        id=orm_rule.id,
        pattern=orm_rule.pattern,
        normalized_pattern=orm_rule.normalized_pattern,
        active=orm_rule.active,
    )


def category_mapping_rule_to_domain(orm_rule: ORMCategoryMappingRule) -> domain.CategoryMappingRule:
    """Convert SQLAlchemy CategoryMappingRule model to domain entity."""
    return domain.CategoryMappingRule(
        id=orm_rule.id,
        raw_description=orm_rule.raw_description,
        normalized_description=orm_rule.normalized_description,
        category=orm_rule.category,
        active=orm_rule.active,
    )


def match_metadata_to_json(metadata: domain.MatchMetadata) -> Optional[dict[str, Any]]:
    """Encode order match metadata for the JSON column (None for no candidates)."""
    if isinstance(metadata, domain.NoCandidates):
        return None
    return {
        "candidates": [
            {
                "transaction_ids": list(group.transaction_ids),
                "transactions": [
                    {
                        "id": t.id,
                        "date": t.date.isoformat(),
                        "amount": str(t.amount),
                        "description": t.description,
                        "sub_description": t.sub_description,
                        "category": t.category,
                    }
                    for t in group.transactions
                ],
                "total": str(group.total),
                "date_span_days": group.date_span_days,
                "score": group.score,
            }
            for group in metadata.groups
        ]
    }


def match_metadata_from_json(data: Optional[dict[str, Any]]) -> domain.MatchMetadata:
    """Decode the JSON column into NoCandidates or Candidates."""
    if not data or not data.get("candidates"):
        return domain.NoCandidates()
    groups = []
    for group in data["candidates"]:
        groups.append(
            domain.CandidateGroup(
                transaction_ids=tuple(group["transaction_ids"]),
                transactions=tuple(
                    domain.CandidateTransaction(
                        id=t["id"],
                        date=date.fromisoformat(t["date"]),
                        amount=Decimal(t["amount"]),
                        description=t["description"],
                        sub_description=t.get("sub_description"),
                        category=t["category"],
                    )
                    for t in group["transactions"]
                ),
                total=Decimal(group["total"]),
                date_span_days=group["date_span_days"],
                score=group["score"],
            )
        )
    return domain.Candidates(groups=tuple(groups))


def amazon_order_to_domain(orm_order: ORMAmazonOrder) -> domain.AmazonOrder:
    """Convert SQLAlchemy AmazonOrder model to domain AmazonOrder entity."""
    return domain.AmazonOrder(
        id=orm_order.id,
        amazon_order_id=orm_order.amazon_order_id,
        order_date=orm_order.order_date,
        order_total=_decimal(orm_order.order_total),
        currency=orm_order.currency,
        items=tuple(item.title for item in orm_order.items),
        match_status=domain.MatchStatus(orm_order.match_status),
        match_metadata=match_metadata_from_json(orm_order.match_metadata),
        is_ignored=orm_order.is_ignored,
        linked_transaction_ids=tuple(sorted(link.transaction_id for link in orm_order.links)),
        order_url=orm_order.order_url,
        created_at=orm_order.created_at,
    )
