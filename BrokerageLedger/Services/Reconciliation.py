from decimal import Decimal

from flask import current_app

from BrokerageLedger.Models.CapitalAccount import CapitalAccount
from BrokerageLedger.Models.Position import SCALE, Position
from BrokerageLedger.Schemas.reconciliation import Drift, ReconciliationReport
from BrokerageLedger.Services.Settlement import ledger_history, replay

TOLERANCE = SCALE


def _differs(a: Decimal, b: Decimal) -> bool:
    return abs(Decimal(a) - Decimal(b)) > TOLERANCE


def reconcile_user(user_id: int) -> ReconciliationReport:
    """
    Replay the user's transaction log and compare the result with the live
    Position and CapitalAccount rows. Read-only; drift is reported, never repaired.
    """
    state = replay(ledger_history(user_id))
    replayed = state.open_lots()
    live = {p.symbol: p for p in Position.query.filter_by(user_id=user_id).all()}
    drifts = []

    for symbol in sorted(set(replayed) | set(live)):
        lot = replayed.get(symbol)
        pos = live.get(symbol)
        if pos is None:
            drifts.append(Drift(symbol=symbol, field="quantity", live=None, replayed=lot.quantity))
            continue
        if lot is None:
            drifts.append(Drift(symbol=symbol, field="quantity", live=pos.quantity, replayed=None))
            continue
        if _differs(pos.quantity, lot.quantity):
            drifts.append(Drift(symbol=symbol, field="quantity", live=pos.quantity, replayed=lot.quantity))
        if _differs(pos.average_price, lot.average_price):
            drifts.append(Drift(symbol=symbol, field="average_price",
                                live=pos.average_price, replayed=lot.average_price))

    account = CapitalAccount.query.filter_by(user_id=user_id).first()
    live_cash = Decimal(account.current_capital) if account else Decimal(0)
    if _differs(live_cash, state.cash):
        drifts.append(Drift(symbol="CASH", field="current_capital", live=live_cash, replayed=state.cash))

    for anomaly in state.anomalies:
        current_app.logger.warning(f"Reconciliation of user {user_id}: {anomaly}")

    report = ReconciliationReport(
        user_id=user_id,
        transactions_replayed=state.replayed,
        consistent=not drifts and not state.anomalies,
        drifts=drifts,
    )
    if not report.consistent:
        current_app.logger.warning(f"Ledger drift for user {user_id}: {len(drifts)} field(s) differ from replay")
    return report
