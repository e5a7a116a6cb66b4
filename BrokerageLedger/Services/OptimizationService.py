from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from BrokerageLedger.Schemas.optimization import OptimizationRequest
from BrokerageLedger.Services.Optimizer import optimize_for_user

optimization_bp = Blueprint("optimization", __name__, url_prefix="/optimization")


@optimization_bp.route("", methods=["POST"])
@jwt_required()
def optimize_portfolio():
    """
    POST /optimization
    Body: {"method": "mean_variance" | "blended_views" | "risk_parity",
           "risk_tolerance": "low" | "medium" | "high",
           "views": {"SBER": {"expected_return": 0.001, "confidence": 0.5}}}
    """
    user_id = int(get_jwt_identity())
    body = OptimizationRequest(**(request.get_json(silent=True) or {}))
    result = optimize_for_user(user_id, body.method, body.risk_tolerance, body.views)
    return jsonify(result.model_dump(mode="json")), 200
