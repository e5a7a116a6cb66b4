from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from BrokerageLedger.Schemas.risk import RiskQuery, TradeRiskCheckIn
from BrokerageLedger.Services.RiskAssessor import (
    assess_risk,
    check_trade_risk,
    get_risk_statistics,
    get_stop_loss_recommendations,
    max_position_size_for_user,
)

risk_bp = Blueprint("risk", __name__, url_prefix="/risk")


def _query() -> RiskQuery:
    return RiskQuery(**request.args.to_dict())


@risk_bp.route("/assessment", methods=["GET"])
@jwt_required()
def risk_assessment():
    user_id = int(get_jwt_identity())
    assessment = assess_risk(user_id, _query().risk_tolerance)
    return jsonify(assessment.model_dump(mode="json")), 200


@risk_bp.route("/stop-loss", methods=["GET"])
@jwt_required()
def stop_loss():
    user_id = int(get_jwt_identity())
    return jsonify([r.model_dump(mode="json") for r in get_stop_loss_recommendations(user_id)]), 200


@risk_bp.route("/max-position-size", methods=["GET"])
@jwt_required()
def max_position_size():
    user_id = int(get_jwt_identity())
    return jsonify(max_position_size_for_user(user_id, _query().risk_tolerance)), 200


@risk_bp.route("/trade-check", methods=["POST"])
@jwt_required()
def trade_check():
    user_id = int(get_jwt_identity())
    body = TradeRiskCheckIn(**(request.get_json(silent=True) or {}))
    result = check_trade_risk(user_id, body.symbol, body.quantity, body.price, body.risk_tolerance)
    return jsonify(result.model_dump(mode="json")), 200


@risk_bp.route("/statistics", methods=["GET"])
@jwt_required()
def risk_statistics():
    user_id = int(get_jwt_identity())
    return jsonify(get_risk_statistics(user_id, _query().risk_tolerance).model_dump(mode="json")), 200
