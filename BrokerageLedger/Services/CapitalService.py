from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from BrokerageLedger.Schemas.capital import AmountIn, CapitalOut
from BrokerageLedger.Services.CapitalAccounts import (
    deposit,
    get_available,
    get_capital,
    initialize_capital,
    set_initial_capital,
    withdraw,
)

capital_bp = Blueprint("capital", __name__, url_prefix="/capital")


def _capital_json(user_id: int, account) -> dict:
    out = CapitalOut(
        initial_capital=account.initial_capital,
        current_capital=account.current_capital,
        available_capital=get_available(user_id),
        created_at=account.created_at,
        updated_at=account.updated_at,
    )
    return out.model_dump(mode="json")


def _amount() -> AmountIn:
    return AmountIn(**(request.get_json(silent=True) or {}))


@capital_bp.route("", methods=["GET"])
@jwt_required()
def get_capital_account():
    user_id = int(get_jwt_identity())
    account = get_capital(user_id)
    if not account:
        return jsonify({"error": "NoCapitalAccount", "message": "Capital account not found"}), 404
    return jsonify(_capital_json(user_id, account)), 200


@capital_bp.route("/initial", methods=["POST"])
@jwt_required()
def set_initial():
    user_id = int(get_jwt_identity())
    account = set_initial_capital(user_id, _amount().amount)
    return jsonify(_capital_json(user_id, account)), 200


@capital_bp.route("/initialize", methods=["POST"])
@jwt_required()
def initialize():
    user_id = int(get_jwt_identity())
    account = initialize_capital(user_id)
    return jsonify(_capital_json(user_id, account)), 200


@capital_bp.route("/deposit", methods=["POST"])
@jwt_required()
def deposit_money():
    user_id = int(get_jwt_identity())
    account = deposit(user_id, _amount().amount)
    return jsonify(_capital_json(user_id, account)), 200


@capital_bp.route("/withdraw", methods=["POST"])
@jwt_required()
def withdraw_money():
    user_id = int(get_jwt_identity())
    account = withdraw(user_id, _amount().amount)
    return jsonify(_capital_json(user_id, account)), 200


@capital_bp.route("/available", methods=["GET"])
@jwt_required()
def available_capital():
    user_id = int(get_jwt_identity())
    return jsonify({"available_capital": float(get_available(user_id))}), 200
