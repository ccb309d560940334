"""CSV import domain service."""

import csv
from collections import defaultdict
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

from tallyup.config import Settings, load_settings
from tallyup.database.base import Database
from tallyup.domain.account import AccountService
from tallyup.domain.entities import Account, INCOME_CATEGORY, Period
from tallyup.domain.errors import (
    ConflictError,
    MissingAccountError,
    MissingPeriodError,
    NotFoundError,
    ValidationError,
    account_not_found,
    batch_not_found,
    period_not_found,
)
from tallyup.domain.import_pipeline import (
    ColumnMapping,
    ImportContext,
    ImportSummary,
    detect_column_mapping,
    income_merge_fields,
    reconcile_import,
)
from tallyup.domain.normalizer import build_composite_description, compute_hash_key, normalize_description
from tallyup.domain.period import PeriodService
from tallyup.domain.recurring import RecurringService
from tallyup.logging_setup import get_logger
from tallyup.utils.date_parser import month_of, parse_date

logger = get_logger(__name__)

IMPORT_MODES = ("current", "specific", "auto")

Rows = list[tuple[int, dict[str, Any]]]


def read_csv_rows(csv_file_path: str) -> tuple[list[str], Rows]:
    """Read a CSV file into ``(line_number, row)`` pairs.

    Header names are trimmed and a UTF-8 byte order mark is dropped.

    Raises:
        FileNotFoundError: If the file does not exist
        ValidationError: If the file has no header row
    """
    csv_path = Path(csv_file_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_file_path}")

    with open(csv_path, "r", encoding="utf-8-sig", newline="") as f:
        # Try to detect delimiter
        sample = f.read(1024)
        f.seek(0)
        try:
            delimiter = csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            delimiter = ","

        reader = csv.reader(f, delimiter=delimiter)
        header = next(reader, None)
        if not header or not any(h.strip() for h in header):
            raise ValidationError("CSV file has no columns")
        headers = [h.strip() for h in header]

        rows: Rows = []
        for row_num, values in enumerate(reader, start=2):  # Start at 2 (header is row 1)
            if not any(v.strip() for v in values):
                continue
            rows.append((row_num, dict(zip(headers, values))))
    return headers, rows


class CSVImportService:
    """Service for importing CSV files."""

    def __init__(self, db: Database, settings: Optional[Settings] = None):
        """Initialize CSV import service.

        Args:
            db: Database instance
            settings: Import settings; read from the environment when omitted
        """
        self.db = db
        self.settings = settings or load_settings()
        self.period_service = PeriodService(db)
        self.recurring_service = RecurringService(db)

    def import_csv(
        self,
        csv_file_path: str,
        account_id: int,
        mode: str = "current",
        period_id: Optional[int] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
        mapping: Optional[ColumnMapping] = None,
    ) -> ImportSummary:
        """Import a CSV file for one account.

        Args:
            csv_file_path: Path to CSV file
            account_id: Account the file belongs to
            mode: ``current`` (into ``period_id``), ``specific`` (into
                ``year``/``month``, created if missing) or ``auto`` (each row
                into the period of its own month)
            period_id: Target period for ``current`` mode
            year: Target year for ``specific`` mode
            month: Target month for ``specific`` mode
            mapping: Column mapping; detected from the header when omitted

        Returns:
            Import summary (merged over every batch in ``auto`` mode)

        Raises:
            MissingAccountError: If the account does not exist
            MissingPeriodError: If the target period does not exist
            ValidationError: If the mode or its arguments are invalid
            FileNotFoundError: If the CSV file doesn't exist
        """
        headers, rows = read_csv_rows(csv_file_path)
        if mapping is None:
            mapping = detect_column_mapping(headers)
        return self.import_rows(rows, account_id, mode, period_id, year, month, mapping)

    def import_rows(
        self,
        rows: Rows,
        account_id: int,
        mode: str,
        period_id: Optional[int],
        year: Optional[int],
        month: Optional[int],
        mapping: ColumnMapping,
    ) -> ImportSummary:
        """Import already read rows; see ``import_csv``."""
        if mode not in IMPORT_MODES:
            raise ValidationError(f"Invalid import mode '{mode}', must be one of: {', '.join(IMPORT_MODES)}")
        account = self.db.get_account(account_id)
        if account is None:
            raise MissingAccountError(account_not_found(account_id))

        if mode == "current":
            if period_id is None:
                raise ValidationError("A period is required for current-month imports")
            period = self.db.get_period(period_id)
            if period is None:
                raise MissingPeriodError(period_not_found(period_id))
            return self._import_period(account, period.year, period.month, mapping, rows)

        if mode == "specific":
            if year is None or month is None:
                raise ValidationError("Year and month are required for specific-month imports")
            return self._import_period(account, year, month, mapping, rows)

        by_month: dict[tuple[int, int], Rows] = defaultdict(list)
        undated = 0
        for line_number, row in rows:
            try:
                row_date = parse_date(str(row.get(mapping.date) or "").strip())
            except ValueError as e:
                undated += 1
                logger.warning("Skipping malformed row %d: %s", line_number, e)
                continue
            by_month[month_of(row_date)].append((line_number, row))

        summary = ImportSummary(malformed=undated)
        for (row_year, row_month) in sorted(by_month):
            summary = summary.merge(
                self._import_period(account, row_year, row_month, mapping, by_month[(row_year, row_month)])
            )
        return summary

    def _load_context(self, account: Account, period: Period, mapping: ColumnMapping) -> ImportContext:
        projections = self.db.list_projected_transactions(period.id)
        return ImportContext(
            account=account,
            period=period,
            mapping=mapping,
            known_accounts=tuple(AccountService(self.db).known_accounts()),
            ignore_rules=tuple(self.db.list_ignore_rules(active_only=True)),
            definitions=tuple(self.db.list_recurring_definitions(active_only=True)),
            category_rules=tuple(self.db.list_category_mapping_rules(active_only=True)),
            projections=tuple(projections),
            income_projections=tuple(p for p in projections if p.category == INCOME_CATEGORY),
            existing_transaction_hashes=frozenset(self.db.get_transaction_hashes(account.id, period.id)),
            existing_raw_hashes=frozenset(self.db.get_raw_row_hashes(account.id)),
            existing_external_ids=frozenset(self.db.get_external_ids(account.id)),
            income_match_window_days=self.settings.income_match_window_days,
        )

    def _save(self, account: Account, year: int, month: int, mapping: ColumnMapping, rows: Rows) -> ImportSummary:
        # a period created here is rolled back with a failed batch
        with self.db.transaction():
            period = self.period_service.get_or_create_period(year, month)
            result = reconcile_import(self._load_context(account, period, mapping), rows)
            summary = result.summary
            batch_id = self.db.save_import(
                account_id=account.id,
                period_id=period.id,
                counts={
                    "imported": summary.imported,
                    "duplicate": summary.duplicate,
                    "transfer_ignored": summary.transfer_ignored,
                    "rule_ignored": summary.rule_ignored,
                    "out_of_period": summary.out_of_period,
                    "recurring_matched": summary.recurring_matched,
                    "income_merged": summary.income_merged,
                    "malformed": summary.malformed,
                },
                raw_rows=[row.to_draft() for row in result.raw_rows],
                transactions=result.transactions,
                merged=[(m.projection_id, income_merge_fields(m, account.id)) for m in result.income_merges],
                deleted_projection_ids=result.consumed_projection_ids,
            )
        logger.info(
            "Import batch %d for account %d into %s: %d imported, %d duplicate, %d transfer, "
            "%d rule-ignored, %d out of period, %d recurring, %d income, %d malformed",
            batch_id,
            account.id,
            period.label,
            summary.imported,
            summary.duplicate,
            summary.transfer_ignored,
            summary.rule_ignored,
            summary.out_of_period,
            summary.recurring_matched,
            summary.income_merged,
            summary.malformed,
        )
        return replace(summary, batch_ids=(batch_id,))

    def _import_period(
        self, account: Account, year: int, month: int, mapping: ColumnMapping, rows: Rows
    ) -> ImportSummary:
        try:
            return self._save(account, year, month, mapping, rows)
        except ConflictError:
            # a concurrent batch stored some of these rows first
            logger.warning("Import into %04d-%02d raced another writer; retrying", year, month)
            return self._save(account, year, month, mapping, rows)

    def undo_batch(self, batch_id: int) -> int:
        """Delete an import batch with its transactions and raw rows.

        Placeholders consumed by the batch come back because projections
        are regenerated for the batch's period.

        Returns:
            Number of projected transactions recreated

        Raises:
            NotFoundError: If the batch does not exist
        """
        batch = self.db.get_import_batch(batch_id)
        if batch is None:
            raise NotFoundError(batch_not_found(batch_id))
        with self.db.transaction():
            self.db.delete_import_batch(batch_id)
            period = self.db.get_period(batch.period_id)
            restored = self.recurring_service.generate_projections(period) if period is not None else 0
        logger.info("Undid import batch %d (%d projections restored)", batch_id, restored)
        return restored

    def recompute_hashes(self, account_id: int, flip_amounts: bool = False) -> int:
        """Re-derive every stored hash of an account.

        Used after an account's invert flag changes; with ``flip_amounts``
        the stored amounts are negated first.

        Returns:
            Number of records whose hash changed

        Raises:
            MissingAccountError: If the account does not exist
        """
        if self.db.get_account(account_id) is None:
            raise MissingAccountError(account_not_found(account_id))

        batch_periods = {b.id: b.period_id for b in self.db.list_import_batches(account_id=account_id)}
        raw_updates = []
        for row in self.db.list_raw_rows(account_id=account_id):
            amount = -row.normalized_amount if flip_amounts else row.normalized_amount
            new_hash = compute_hash_key(
                account_id, batch_periods[row.batch_id], row.parsed_date, amount, row.normalized_description
            )
            if flip_amounts or new_hash != row.hash_key:
                raw_updates.append((row.id, {"normalized_amount": amount, "hash_key": new_hash}))

        transaction_updates = []
        for txn in self.db.list_transactions(account_id=account_id):
            if txn.source_import_hash is None:
                continue
            amount = -txn.amount if flip_amounts else txn.amount
            normalized = normalize_description(build_composite_description(txn.description, txn.sub_description))
            new_hash = compute_hash_key(account_id, txn.period_id, txn.date, amount, normalized)
            if flip_amounts or new_hash != txn.source_import_hash:
                transaction_updates.append((txn.id, {"amount": amount, "source_import_hash": new_hash}))

        self.db.update_import_hashes(raw_updates, transaction_updates)
        changed = len(raw_updates) + len(transaction_updates)
        logger.info("Recomputed hashes for account %d: %d records changed", account_id, changed)
        return changed
