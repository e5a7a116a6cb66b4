import pytest
from flask_jwt_extended import create_access_token

from BrokerageLedger.database import db
from BrokerageLedger.INIT.main import create_app
from BrokerageLedger.Utils.PriceOracle import StaticHistoryProvider, StaticPriceOracle, series_from_returns

SBER_RETURNS = [0.004, -0.002, 0.006, 0.001, -0.003, 0.005, 0.002, -0.001]
GAZP_RETURNS = [0.010, -0.012, 0.015, -0.008, 0.011, -0.009, 0.013, -0.006]


@pytest.fixture
def oracle():
    return StaticPriceOracle({"SBER": 280, "GAZP": 160, "BTC": 50000})


@pytest.fixture
def history():
    return StaticHistoryProvider([
        series_from_returns("SBER", SBER_RETURNS),
        series_from_returns("GAZP", GAZP_RETURNS),
    ])


@pytest.fixture
def app(oracle, history):
    app = create_app("TestingConfig", price_oracle=oracle, history_provider=history)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    token = create_access_token(identity="1")
    return {"Authorization": f"Bearer {token}"}
