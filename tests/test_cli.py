from __future__ import annotations

from typer.testing import CliRunner

from broker_statements.cli import app

runner = CliRunner()


def test_option_symbol_command():
    result = runner.invoke(app, ["option-symbol", "AAPL  240621C00190000"])
    assert result.exit_code == 0
    assert '"ticker": "AAPL"' in result.stdout
    assert '"strike": 190.0' in result.stdout


def test_option_symbol_command_rejects_junk():
    result = runner.invoke(app, ["option-symbol", "junk"])
    assert result.exit_code == 2


def test_dry_run_tastytrade_import(tmp_path, monkeypatch, tastytrade_history_text):
    monkeypatch.chdir(tmp_path)
    p = tmp_path / "history.csv"
    p.write_text(tastytrade_history_text, encoding="utf-8")

    result = runner.invoke(app, ["import-tastytrade", str(p), "--dry-run", "--account-id", "3"])

    assert result.exit_code == 0, result.output
    assert '"option_trades": 7' in result.stdout


def test_unreadable_statement_exits_with_code_2(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    p = tmp_path / "activity.csv"
    p.write_text("", encoding="utf-8")

    result = runner.invoke(app, ["import-ibkr", str(p), "--dry-run"])

    assert result.exit_code == 2
    assert "No statement sections found" in result.output


def test_several_files_in_one_run(tmp_path, monkeypatch, tastytrade_history_text):
    monkeypatch.chdir(tmp_path)
    first = tmp_path / "jan.csv"
    second = tmp_path / "feb.csv"
    first.write_text(tastytrade_history_text, encoding="utf-8")
    second.write_text(tastytrade_history_text, encoding="utf-8")

    result = runner.invoke(app, ["import-tastytrade", str(first), str(second), "--dry-run"])

    assert result.exit_code == 0, result.output
    assert '"option_trades": 14' in result.stdout
    assert '"records": 13' in result.stdout


def test_missing_file_is_reported_after_the_others(tmp_path, monkeypatch, tastytrade_history_text):
    monkeypatch.chdir(tmp_path)
    good = tmp_path / "history.csv"
    good.write_text(tastytrade_history_text, encoding="utf-8")

    result = runner.invoke(app, ["import-tastytrade", str(tmp_path / "nope.csv"), str(good), "--dry-run"])

    assert result.exit_code == 2
    assert '"option_trades": 7' in result.stdout
    assert "File not found" in result.output
