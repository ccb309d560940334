"""Shared pytest fixtures for tallyup tests."""

import tempfile
import os
from pathlib import Path
import pytest

from tallyup.database.factories import create_sqlite_database
from tallyup.domain.account import AccountService
from tallyup.domain.csv_import import CSVImportService
from tallyup.domain.entities import AccountType
from tallyup.domain.period import PeriodService
from tallyup.domain.recurring import RecurringService
from tallyup.domain.transaction import TransactionService


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def account_service(temp_db):
    """Create an AccountService with a temporary database."""
    return AccountService(temp_db)


@pytest.fixture
def period_service(temp_db):
    """Create a PeriodService with a temporary database."""
    return PeriodService(temp_db)


@pytest.fixture
def recurring_service(temp_db):
    """Create a RecurringService with a temporary database."""
    return RecurringService(temp_db)


@pytest.fixture
def transaction_service(temp_db):
    """Create a TransactionService with a temporary database."""
    return TransactionService(temp_db)


@pytest.fixture
def import_service(temp_db):
    """Create a CSVImportService with a temporary database."""
    return CSVImportService(temp_db)


@pytest.fixture
def bank_account(account_service):
    """Create a chequing account."""
    account_id = account_service.create_account(name="Chequing", account_type=AccountType.BANK, last4="9876")
    return account_service.get_account(account_id)


@pytest.fixture
def card_account(account_service):
    """Create a credit card account."""
    account_id = account_service.create_account(
        name="Visa", account_type=AccountType.CREDIT_CARD, last4="1234", display_alias="VISA"
    )
    return account_service.get_account(account_id)


@pytest.fixture
def january(period_service):
    """Create the January 2024 period."""
    return period_service.create_period(2024, 1)


@pytest.fixture
def write_csv(tmp_path):
    """Return a helper that writes CSV text to a file and returns its path."""

    def _write(text: str, name: str = "statement.csv") -> str:
        path = tmp_path / name
        path.write_text(text.strip() + "\n", encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def stale_lookups(temp_db, monkeypatch):
    """Return a helper that makes database lookups miss once.

    Each named lookup returns an empty set on its first call, as if a
    concurrent writer had not committed yet, and reads storage afterwards.
    """

    def _stale(*names: str) -> None:
        for name in names:
            real = getattr(temp_db, name)
            calls = []

            def lookup(*args, _real=real, _calls=calls, **kwargs):
                _calls.append(args)
                if len(_calls) == 1:
                    return set()
                return _real(*args, **kwargs)

            monkeypatch.setattr(temp_db, name, lookup)

    return _stale
