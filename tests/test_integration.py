"""Integration tests for end-to-end workflows."""

from tallyup.cli.main import cli


def test_full_month_workflow(cli_runner, temp_db, fixtures_dir):
    """Test complete workflow: accounts → period → recurring → imports → orders → view → undo."""

    def run(*args):
        result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, *args])
        assert result.exit_code == 0, result.output
        return result.output

    # Step 1: Accounts
    output = run("account", "create", "Chequing", "--last4", "9876")
    assert "Created account 'Chequing' (ID: 1)" in output
    run("account", "create", "Visa", "--type", "credit_card", "--last4", "1234", "--alias", "VISA")

    # Step 2: Period and recurring definitions
    run("period", "create", "2024-01")
    run("recurring", "add", "ACME PAYROLL", "2450", "--category", "Income", "--monthly", "15")
    run("recurring", "add", "NETFLIX", "16.99", "--category", "Recurring - Non-Essential", "--monthly", "3")

    output = run("view", "--month", "2024-01")
    assert "Found 2 transaction(s)" in output

    # Step 3: Bank statement: card payment, subscription, paycheque, groceries
    output = run(
        "import", str(fixtures_dir / "chequing_jan.csv"), "--account", "Chequing", "--mode", "current", "--month", "2024-01"
    )
    assert "Imported: 3 transactions" in output
    assert "Transfers ignored: 1" in output
    assert "Recurring matched: 1" in output
    assert "Income merged: 1" in output

    # Step 4: Card statement
    output = run("import", str(fixtures_dir / "visa_jan.csv"), "--account", "Visa")
    assert "Imported: 1 transactions" in output
    assert "Transfers ignored: 1" in output

    # Step 5: Amazon orders
    output = run("amazon", "import", str(fixtures_dir / "amazon_orders.json"))
    assert "Matched: 1, ambiguous: 0, unmatched: 1" in output

    # Step 6: The month nets out the paycheque against spending
    output = run("view", "--month", "2024-01", "-v")
    assert "~" not in output
    assert "ACME PAYROLL DEP" in output
    assert "MKTPL ORDER" in output
    assert "Net spending: -2302.90" in output

    # Step 7: Re-importing the bank statement changes nothing
    output = run(
        "import", str(fixtures_dir / "chequing_jan.csv"), "--account", "Chequing", "--mode", "current", "--month", "2024-01"
    )
    assert "Imported: 0 transactions" in output
    assert "Duplicates skipped: 4" in output

    # Step 8: Undo the bank import; both placeholders come back
    output = run("undo-import", "1")
    assert "(2 projected transactions restored)" in output

    output = run("view", "--month", "2024-01", "--account", "Chequing")
    assert "No transactions found." in output
    output = run("view", "--month", "2024-01")
    assert output.count("~") == 2
    assert "Net spending: 45.99" in output
