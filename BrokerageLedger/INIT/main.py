import logging

from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from pydantic import ValidationError

from BrokerageLedger.database import db
from BrokerageLedger.errors import LedgerError
from BrokerageLedger.Services.CapitalService import capital_bp
from BrokerageLedger.Services.LedgerService import ledger_bp
from BrokerageLedger.Services.OptimizationService import optimization_bp
from BrokerageLedger.Services.RiskService import risk_bp
from BrokerageLedger.Utils.Cache import MemoryCache
from BrokerageLedger.Utils.PriceOracle import HttpHistoryProvider, HttpPriceOracle
from BrokerageLedger.Utils.RowLocks import RowLockRegistry


def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(LedgerError)
    def handle_ledger_error(e: LedgerError):
        if e.status_code >= 500:
            app.logger.warning(f"{e.kind}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(ValidationError)
    def handle_invalid_payload(e: ValidationError):
        return jsonify({"error": "InvalidPayload", "message": f"Invalid payload: {str(e)}"}), 400


def create_app(config_name: str = "DevelopmentConfig", price_oracle=None, history_provider=None,
               cache=None) -> Flask:

    config_module = __import__("BrokerageLedger.config", fromlist=[config_name])
    config_class = getattr(config_module, config_name)

    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    db.init_app(app)
    JWTManager(app)
    CORS(app)

    # Collaborators the services look up through current_app.extensions
    app.extensions["row_locks"] = RowLockRegistry(app.config["LOCK_TIMEOUT_SECONDS"])
    app.extensions["price_oracle"] = price_oracle or HttpPriceOracle(
        app.config["MARKET_FEED_URL"], timeout=app.config["FEED_TIMEOUT_SECONDS"])
    app.extensions["history_provider"] = history_provider or HttpHistoryProvider(
        app.config["HISTORY_FEED_URL"],
        lookback=app.config["HISTORY_LOOKBACK"],
        timeout=app.config["FEED_TIMEOUT_SECONDS"],
    )
    app.extensions["cache"] = cache if cache is not None else MemoryCache(app.config["OPTIMIZATION_CACHE_TTL"])

    with app.app_context():
        db.create_all()

    register_error_handlers(app)

    app.register_blueprint(ledger_bp)
    app.register_blueprint(capital_bp)
    app.register_blueprint(risk_bp)
    app.register_blueprint(optimization_bp)

    app.logger.info(f"Ledger app created with {config_name}")
    return app
