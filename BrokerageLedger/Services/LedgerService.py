from decimal import Decimal

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from BrokerageLedger.errors import DataUnavailable
from BrokerageLedger.Schemas.position import PortfolioStatsOut, PortfolioSummaryOut, PositionOut
from BrokerageLedger.Schemas.transaction import TradeCreate, TransactionOut
from BrokerageLedger.Services.Reconciliation import reconcile_user
from BrokerageLedger.Services.Settlement import (
    get_portfolio_stats,
    get_portfolio_summary,
    get_positions,
    get_transactions,
    normalize_symbol,
    refresh_prices,
    settle_trade,
)

ledger_bp = Blueprint("portfolio", __name__, url_prefix="/portfolio")


def _positions_json(user_id: int) -> list:
    return [PositionOut.model_validate(p).model_dump(mode="json") for p in get_positions(user_id)]


@ledger_bp.route("", methods=["GET"])
@jwt_required()
def list_positions():
    user_id = int(get_jwt_identity())
    return jsonify(_positions_json(user_id)), 200


@ledger_bp.route("/summary", methods=["GET"])
@jwt_required()
def portfolio_summary():
    user_id = int(get_jwt_identity())
    summary = PortfolioSummaryOut(**get_portfolio_summary(user_id))
    return jsonify(summary.model_dump(mode="json")), 200


@ledger_bp.route("/stats", methods=["GET"])
@jwt_required()
def portfolio_stats():
    user_id = int(get_jwt_identity())
    stats = PortfolioStatsOut(**get_portfolio_stats(user_id))
    return jsonify(stats.model_dump(mode="json")), 200


@ledger_bp.route("/transactions", methods=["GET"])
@jwt_required()
def list_transactions():
    """
    GET /portfolio/transactions
    Query Params:
    - limit: max rows, newest first (default: 50)
    - symbol: only this symbol
    """
    user_id = int(get_jwt_identity())
    limit = request.args.get("limit", 50, type=int)
    symbol = request.args.get("symbol")
    txns = get_transactions(user_id, limit=max(1, min(limit, 500)), symbol=symbol)
    return jsonify([TransactionOut.model_validate(t).model_dump(mode="json") for t in txns]), 200


@ledger_bp.route("/trades", methods=["POST"])
@jwt_required()
def place_trade():
    user_id = int(get_jwt_identity())
    tc = TradeCreate(**(request.get_json(silent=True) or {}))
    symbol = normalize_symbol(tc.symbol)

    price = tc.price
    if price is None:
        price = current_app.extensions["price_oracle"].price(symbol)
        if price is None:
            raise DataUnavailable(f"No market price available for {symbol}; pass an explicit price")

    commission = tc.commission
    if commission is None:
        commission = Decimal(str(current_app.config["COMMISSION_RATE"])) * abs(tc.quantity) * price

    txn = settle_trade(
        user_id,
        symbol,
        tc.asset_type,
        tc.side,
        tc.quantity,
        price,
        commission=commission,
        notes=tc.notes,
    )
    return jsonify(TransactionOut.model_validate(txn).model_dump(mode="json")), 201


@ledger_bp.route("/refresh-prices", methods=["POST"])
@jwt_required()
def refresh_position_prices():
    user_id = int(get_jwt_identity())
    missing = refresh_prices(user_id, current_app.extensions["price_oracle"])
    return jsonify({"positions": _positions_json(user_id), "missing_prices": missing}), 200


@ledger_bp.route("/reconcile", methods=["GET"])
@jwt_required()
def reconcile():
    user_id = int(get_jwt_identity())
    return jsonify(reconcile_user(user_id).model_dump(mode="json")), 200
