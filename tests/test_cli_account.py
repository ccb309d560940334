"""Tests for account and period commands."""

import pytest
from tallyup.cli.main import cli


def _invoke(cli_runner, temp_db, *args, **kwargs):
    return cli_runner.invoke(cli, ["--db-path", temp_db.database_path, *args], **kwargs)


def test_account_create(cli_runner, temp_db):
    """Test creating a bank account."""
    result = _invoke(cli_runner, temp_db, "account", "create", "Chequing", "--last4", "9876")

    assert result.exit_code == 0
    assert "Created account 'Chequing'" in result.output
    assert "ID:" in result.output


def test_account_create_credit_card(cli_runner, temp_db):
    """Test creating a credit card with an alias."""
    result = _invoke(
        cli_runner, temp_db, "account", "create", "Visa", "--type", "credit_card", "--last4", "1234", "--alias", "VISA"
    )
    assert result.exit_code == 0

    result = _invoke(cli_runner, temp_db, "account", "list")
    assert result.exit_code == 0
    assert "Visa" in result.output
    assert "credit_card" in result.output
    assert "1234" in result.output


def test_account_create_duplicate(cli_runner, temp_db, bank_account):
    """Test that a duplicate name is rejected."""
    result = _invoke(cli_runner, temp_db, "account", "create", "Chequing")

    assert result.exit_code != 0
    assert "already exists" in result.output


def test_account_create_bad_last4(cli_runner, temp_db):
    result = _invoke(cli_runner, temp_db, "account", "create", "Visa", "--last4", "12")
    assert result.exit_code != 0
    assert "four digits" in result.output


def test_account_list_empty(cli_runner, temp_db):
    """Test listing accounts when none exist."""
    result = _invoke(cli_runner, temp_db, "account", "list")

    assert result.exit_code == 0
    assert "No accounts found" in result.output


def test_account_invert(cli_runner, temp_db, bank_account):
    result = _invoke(cli_runner, temp_db, "account", "invert", "Chequing")
    assert result.exit_code == 0
    assert "Amount inversion enabled" in result.output

    result = _invoke(cli_runner, temp_db, "account", "invert", "Chequing", "--on")
    assert result.exit_code == 0
    assert "Nothing to do" in result.output

    result = _invoke(cli_runner, temp_db, "account", "list")
    assert "inverted" in result.output


def test_account_delete(cli_runner, temp_db, bank_account):
    result = _invoke(cli_runner, temp_db, "account", "delete", "Chequing", input="n\n")
    assert "Deletion cancelled" in result.output

    result = _invoke(cli_runner, temp_db, "account", "delete", str(bank_account.id), "--yes")
    assert result.exit_code == 0
    assert "Deleted account 'Chequing'" in result.output


def test_account_delete_with_transactions(cli_runner, temp_db, bank_account):
    _invoke(
        cli_runner, temp_db, "transaction", "add", "--account", "Chequing", "--date", "2024-01-02",
        "--amount", "10", "--description", "Cash",
    )
    result = _invoke(cli_runner, temp_db, "account", "delete", "Chequing", "--yes")
    assert result.exit_code != 0
    assert "Error" in result.output


def test_unknown_account(cli_runner, temp_db):
    result = _invoke(cli_runner, temp_db, "account", "invert", "Nope")
    assert result.exit_code != 0
    assert "Error" in result.output


class TestPeriodCommands:
    def test_create_and_list(self, cli_runner, temp_db):
        result = _invoke(cli_runner, temp_db, "period", "create", "2024-01")
        assert result.exit_code == 0
        assert "Created period 2024-01" in result.output

        result = _invoke(cli_runner, temp_db, "period", "list")
        assert "2024-01 | open" in result.output

    def test_create_duplicate(self, cli_runner, temp_db, january):
        result = _invoke(cli_runner, temp_db, "period", "create", "2024-01")
        assert result.exit_code != 0
        assert "already exists" in result.output

    @pytest.mark.parametrize("month", ["2024-13", "January"])
    def test_create_invalid(self, cli_runner, temp_db, month):
        result = _invoke(cli_runner, temp_db, "period", "create", month)
        assert result.exit_code != 0

    def test_lock(self, cli_runner, temp_db, january):
        result = _invoke(cli_runner, temp_db, "period", "lock", "2024-01")
        assert result.exit_code == 0
        result = _invoke(cli_runner, temp_db, "period", "list")
        assert "2024-01 | locked" in result.output

    def test_lock_missing(self, cli_runner, temp_db):
        result = _invoke(cli_runner, temp_db, "period", "lock", "2030-01")
        assert result.exit_code != 0
        assert "not found" in result.output
