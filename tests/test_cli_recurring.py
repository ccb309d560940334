"""Tests for recurring and suggestions commands."""

from tallyup.cli.main import cli


def _invoke(cli_runner, temp_db, *args):
    return cli_runner.invoke(cli, ["--db-path", temp_db.database_path, *args])


def test_recurring_add_and_list(cli_runner, temp_db, january):
    result = _invoke(
        cli_runner, temp_db, "recurring", "add", "NETFLIX", "16.99", "--category", "Subscriptions", "--monthly", "3"
    )
    assert result.exit_code == 0
    assert "Created recurring definition 1 (monthly on day 3)" in result.output

    result = _invoke(cli_runner, temp_db, "recurring", "list")
    assert result.exit_code == 0
    assert "NETFLIX" in result.output
    assert "16.99" in result.output

    result = _invoke(cli_runner, temp_db, "view", "--month", "2024-01")
    assert "~" in result.output
    assert "Net spending: 0.00" in result.output


def test_recurring_add_twice_monthly_income(cli_runner, temp_db):
    result = _invoke(
        cli_runner,
        temp_db,
        "recurring",
        "add",
        "ACME PAYROLL",
        "2450",
        "--category",
        "Income",
        "--twice-monthly",
        "15,30",
        "--label",
        "Salary",
    )
    assert result.exit_code == 0
    assert "twice monthly on days 15 and 30" in result.output

    result = _invoke(cli_runner, temp_db, "recurring", "list")
    assert "Salary" in result.output


def test_recurring_add_requires_one_schedule(cli_runner, temp_db):
    result = _invoke(cli_runner, temp_db, "recurring", "add", "NETFLIX", "16.99", "--category", "Subscriptions")
    assert result.exit_code != 0
    assert "schedule is required" in result.output

    result = _invoke(
        cli_runner, temp_db, "recurring", "add", "NETFLIX", "16.99", "--category", "Subscriptions",
        "--monthly", "3", "--weekly", "mon",
    )
    assert result.exit_code != 0
    assert "Choose only one" in result.output


def test_recurring_update_and_delete(cli_runner, temp_db, january):
    _invoke(cli_runner, temp_db, "recurring", "add", "GYM", "25", "--category", "Fitness", "--weekly", "mon")

    result = _invoke(cli_runner, temp_db, "recurring", "update", "1", "--amount", "30", "--inactive")
    assert result.exit_code == 0
    result = _invoke(cli_runner, temp_db, "recurring", "list")
    assert "(inactive)" in result.output
    assert "weekly on mon" in result.output

    result = _invoke(cli_runner, temp_db, "recurring", "delete", "1")
    assert result.exit_code == 0
    result = _invoke(cli_runner, temp_db, "recurring", "delete", "1")
    assert result.exit_code != 0


def test_recurring_match(cli_runner, temp_db, bank_account, fixtures_dir):
    _invoke(cli_runner, temp_db, "import", str(fixtures_dir / "netflix_history.csv"), "--account", "Chequing")
    _invoke(
        cli_runner, temp_db, "recurring", "add", "NETFLIX", "16.99", "--category", "Recurring - Non-Essential",
        "--monthly", "3",
    )
    result = _invoke(cli_runner, temp_db, "recurring", "match", "--month", "2024-03")
    assert result.exit_code == 0
    assert "Linked 1 transactions in 2024-03" in result.output


class TestSuggestionCommands:
    def test_list_accept_and_cover(self, cli_runner, temp_db, bank_account, fixtures_dir):
        result = _invoke(cli_runner, temp_db, "suggestions", "list")
        assert "No recurring suggestions." in result.output

        _invoke(cli_runner, temp_db, "import", str(fixtures_dir / "netflix_history.csv"), "--account", "Chequing")
        result = _invoke(cli_runner, temp_db, "suggestions", "list", "-v")
        assert result.exit_code == 0
        assert "NETFLIX.COM" in result.output
        assert "key: netflixcom|16.99" in result.output
        assert "2024-02-04" in result.output
        assert "HARDWARE" not in result.output

        result = _invoke(
            cli_runner, temp_db, "suggestions", "accept", "netflixcom|16.99", "--category", "Subscriptions"
        )
        assert result.exit_code == 0
        assert "Created recurring definition" in result.output

        result = _invoke(cli_runner, temp_db, "suggestions", "list")
        assert "No recurring suggestions." in result.output

    def test_dismiss(self, cli_runner, temp_db, bank_account, fixtures_dir):
        _invoke(cli_runner, temp_db, "import", str(fixtures_dir / "netflix_history.csv"), "--account", "Chequing")
        result = _invoke(cli_runner, temp_db, "suggestions", "dismiss", "netflixcom|16.99")
        assert result.exit_code == 0

        result = _invoke(cli_runner, temp_db, "suggestions", "list")
        assert "No recurring suggestions." in result.output

    def test_accept_unknown(self, cli_runner, temp_db):
        result = _invoke(cli_runner, temp_db, "suggestions", "accept", "nothing|1.00", "--category", "Misc")
        assert result.exit_code != 0
        assert "not found" in result.output
