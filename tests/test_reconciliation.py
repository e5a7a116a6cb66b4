from decimal import Decimal

from BrokerageLedger.database import db
from BrokerageLedger.Services.CapitalAccounts import deposit, get_capital, withdraw
from BrokerageLedger.Services.Reconciliation import reconcile_user
from BrokerageLedger.Services.Settlement import get_position, settle_trade

USER = 1


def _trade_history():
    deposit(USER, 20000)
    settle_trade(USER, "SBER", "stock", "buy", 10, 250, commission=25)
    settle_trade(USER, "SBER", "stock", "buy", 10, 270, commission=27)
    settle_trade(USER, "GAZP", "stock", "buy", 5, 160)
    settle_trade(USER, "SBER", "stock", "sell", 5, 280)
    withdraw(USER, 500)


def test_clean_ledger_is_consistent(app):
    _trade_history()
    report = reconcile_user(USER)
    assert report.consistent
    assert report.drifts == []
    assert report.transactions_replayed == 6


def test_empty_ledger_is_consistent(app):
    report = reconcile_user(USER)
    assert report.consistent
    assert report.transactions_replayed == 0


def test_edited_position_is_reported(app):
    _trade_history()
    pos = get_position(USER, "SBER")
    pos.quantity = Decimal(999)
    db.session.commit()

    report = reconcile_user(USER)
    assert not report.consistent
    assert [(d.symbol, d.field) for d in report.drifts] == [("SBER", "quantity")]
    assert report.drifts[0].live == Decimal(999)
    assert report.drifts[0].replayed == Decimal(15)


def test_edited_capital_is_reported(app):
    _trade_history()
    account = get_capital(USER)
    account.current_capital = Decimal(1)
    db.session.commit()

    report = reconcile_user(USER)
    assert not report.consistent
    assert report.drifts[0].symbol == "CASH"
    assert report.drifts[0].replayed == Decimal(19500)


def test_deleted_position_is_reported(app):
    _trade_history()
    db.session.delete(get_position(USER, "GAZP"))
    db.session.commit()

    report = reconcile_user(USER)
    drift = report.drifts[0]
    assert (drift.symbol, drift.live, drift.replayed) == ("GAZP", None, Decimal(5))
