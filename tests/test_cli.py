"""Tests for the command-line interface (commands that stay off the network)."""

import pytest
from typer.testing import CliRunner

from buytime.cli import app
from buytime.db import SqliteKeyValueStore
from buytime.ledger import LedgerStore
from buytime.restriction import Monitoring, Restricted, RestrictionStateMachine
from buytime.shield import ActivityCenter, ProcessShield

runner = CliRunner()


@pytest.fixture
def ledger_db(tmp_path):
    return tmp_path / "ledger.sqlite3"


def _ledger(path):
    return LedgerStore(SqliteKeyValueStore(path))


def _machine(path):
    kv = SqliteKeyValueStore(path)
    return RestrictionStateMachine(LedgerStore(kv), ActivityCenter(kv), ProcessShield(kv))


def test_select_shields_applications(ledger_db):
    result = runner.invoke(
        app, ["select", "--app", "steam", "--domain", "youtube.com", "--ledger-db", str(ledger_db)]
    )

    assert result.exit_code == 0, result.output
    assert "Selection saved: restricted" in result.output
    assert _machine(ledger_db).state == Restricted()
    assert _ledger(ledger_db).blocked_selection.web_domains == frozenset({"youtube.com"})


def test_select_without_arguments_clears(ledger_db):
    runner.invoke(app, ["select", "--app", "steam", "--ledger-db", str(ledger_db)])

    result = runner.invoke(app, ["select", "--ledger-db", str(ledger_db)])

    assert result.exit_code == 0, result.output
    assert "nothing selected" in result.output


def test_set_unit(ledger_db):
    result = runner.invoke(app, ["set-unit", "10", "--ledger-db", str(ledger_db)])

    assert result.exit_code == 0, result.output
    assert "Spend unit: 10 min" in result.output
    assert _ledger(ledger_db).spend_unit_minutes == 10


def test_set_unit_rejects_zero(ledger_db):
    result = runner.invoke(app, ["set-unit", "0", "--ledger-db", str(ledger_db)])
    assert result.exit_code != 0


def test_spend_without_balance_exits_with_code_two(ledger_db):
    result = runner.invoke(app, ["spend", "--ledger-db", str(ledger_db)])

    assert result.exit_code == 2
    assert "Not enough earned time" in result.output
    assert _ledger(ledger_db).earned_event_active is False


def test_spend_unlocks_and_debits(ledger_db):
    runner.invoke(app, ["select", "--app", "steam", "--ledger-db", str(ledger_db)])
    _ledger(ledger_db).available_minutes = 12

    result = runner.invoke(app, ["spend", "--ledger-db", str(ledger_db)])

    assert result.exit_code == 0, result.output
    assert "Unlocked for 5 min of use. 7 min left." in result.output
    assert isinstance(_machine(ledger_db).state, Monitoring)


def test_status_reads_local_state(ledger_db, tmp_path):
    _ledger(ledger_db).available_minutes = 75

    result = runner.invoke(
        app,
        ["status", "--ledger-db", str(ledger_db), "--cache-db", str(tmp_path / "local.sqlite3")],
    )

    assert result.exit_code == 0, result.output
    assert "1h 15m" in result.output
    assert "never synced" in result.output


def test_spend_reports_shield_failure(ledger_db, monkeypatch):
    runner.invoke(app, ["select", "--app", "steam", "--ledger-db", str(ledger_db)])
    _ledger(ledger_db).available_minutes = 12

    def fail(self):
        raise OSError("shield unavailable")

    monkeypatch.setattr(ProcessShield, "clear_restriction", fail)
    result = runner.invoke(app, ["spend", "--ledger-db", str(ledger_db)])

    assert result.exit_code == 1
    assert "Could not unlock: shield unavailable" in result.output
    assert _ledger(ledger_db).available_minutes == 12
    assert _machine(ledger_db).state == Restricted()
