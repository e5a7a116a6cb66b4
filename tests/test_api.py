import pytest


def trade(client, headers, **body):
    return client.post("/portfolio/trades", json=body, headers=headers)


def test_routes_require_a_token(client):
    assert client.get("/portfolio").status_code == 401
    assert client.post("/capital/deposit", json={"amount": 10}).status_code == 401


def test_trade_with_explicit_price(client, auth_headers):
    resp = trade(client, auth_headers, symbol="sber", side="BUY", quantity=10, price=250, commission=25)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["symbol"] == "SBER"
    assert body["type"] == "buy"
    assert body["asset_type"] == "stock"
    assert body["total_amount"] == pytest.approx(2525.0)

    positions = client.get("/portfolio", headers=auth_headers).get_json()
    assert len(positions) == 1
    assert positions[0]["quantity"] == pytest.approx(10)
    assert positions[0]["average_price"] == pytest.approx(250)


def test_trade_priced_from_market_feed(client, auth_headers):
    resp = trade(client, auth_headers, symbol="SBER", side="buy", quantity=10)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["price"] == pytest.approx(280)
    assert body["commission"] == pytest.approx(2.8)


def test_trade_without_market_price(client, auth_headers):
    resp = trade(client, auth_headers, symbol="XYZ", side="buy", quantity=1)
    assert resp.status_code == 503
    assert resp.get_json()["error"] == "DataUnavailable"


def test_trade_errors_render_as_json(client, auth_headers):
    resp = trade(client, auth_headers, symbol="SBER", side="sell", quantity=1, price=100)
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "NoSuchPosition"

    trade(client, auth_headers, symbol="SBER", side="buy", quantity=1, price=100)
    resp = trade(client, auth_headers, symbol="SBER", side="sell", quantity=2, price=100)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InsufficientHoldings"

    resp = trade(client, auth_headers, symbol="SBER", side="buy", quantity=-1, price=100)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidQuantityOrPrice"


def test_invalid_payload(client, auth_headers):
    resp = trade(client, auth_headers, symbol="SBER", quantity=1, price=100)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidPayload"


def test_summary_and_transactions(client, auth_headers):
    trade(client, auth_headers, symbol="SBER", side="buy", quantity=10, price=250, commission=0)
    trade(client, auth_headers, symbol="SBER", side="sell", quantity=5, price=270, commission=0)

    summary = client.get("/portfolio/summary", headers=auth_headers).get_json()
    assert summary["asset_count"] == 1
    assert summary["realized_profit_loss"] == pytest.approx(100)
    assert summary["unrealized_profit_loss"] == pytest.approx(100)

    txns = client.get("/portfolio/transactions?limit=1", headers=auth_headers).get_json()
    assert len(txns) == 1
    assert txns[0]["type"] == "sell"


def test_refresh_prices_and_reconcile(client, auth_headers):
    trade(client, auth_headers, symbol="SBER", side="buy", quantity=10, price=250)
    trade(client, auth_headers, symbol="XYZ", side="buy", quantity=1, price=10)

    body = client.post("/portfolio/refresh-prices", headers=auth_headers).get_json()
    assert body["missing_prices"] == ["XYZ"]
    sber = next(p for p in body["positions"] if p["symbol"] == "SBER")
    assert sber["current_price"] == pytest.approx(280)

    report = client.get("/portfolio/reconcile", headers=auth_headers).get_json()
    assert report["consistent"] is True
    assert report["transactions_replayed"] == 2


def test_capital_flow(client, auth_headers):
    assert client.get("/capital", headers=auth_headers).status_code == 404

    resp = client.post("/capital/deposit", json={"amount": 50000}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()["current_capital"] == pytest.approx(50000)

    resp = client.post("/capital/withdraw", json={"amount": 60000}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InsufficientFunds"

    trade(client, auth_headers, symbol="SBER", side="buy", quantity=10, price=250)
    available = client.get("/capital/available", headers=auth_headers).get_json()
    assert available["available_capital"] == pytest.approx(47500)

    body = client.get("/capital", headers=auth_headers).get_json()
    assert body["current_capital"] == pytest.approx(50000)
    assert body["available_capital"] == pytest.approx(47500)


def test_capital_initial_and_initialize(client, auth_headers):
    resp = client.post("/capital/initialize", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()["current_capital"] == 0

    resp = client.post("/capital/initial", json={"amount": 1000}, headers=auth_headers)
    assert resp.get_json()["initial_capital"] == pytest.approx(1000)

    resp = client.post("/capital/deposit", json={"amount": "lots"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidPayload"


def test_risk_routes(client, auth_headers):
    trade(client, auth_headers, symbol="SBER", side="buy", quantity=10, price=250)

    assessment = client.get("/risk/assessment", headers=auth_headers).get_json()
    assert assessment["diversification_score"] == pytest.approx(0.2857, abs=1e-3)
    assert assessment["overall_risk_level"] in ("low", "medium", "high")

    stops = client.get("/risk/stop-loss", headers=auth_headers).get_json()
    assert stops[0]["asset_symbol"] == "SBER"
    assert stops[0]["risk_level"] == "low"

    size = client.get("/risk/max-position-size?risk_tolerance=Medium", headers=auth_headers).get_json()
    assert size["max_position_size"] == pytest.approx(125)
    assert size["risk_tolerance"] == "medium"

    check = client.post("/risk/trade-check", json={"symbol": "gazp", "quantity": 1, "price": 40},
                        headers=auth_headers).get_json()
    assert check["is_within_limits"] is True
    assert check["suggested_max_quantity"] == 1


def test_bad_risk_tolerance(client, auth_headers):
    resp = client.get("/risk/assessment?risk_tolerance=reckless", headers=auth_headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidPayload"


def test_optimization_route(client, auth_headers):
    trade(client, auth_headers, symbol="SBER", side="buy", quantity=10, price=250)
    trade(client, auth_headers, symbol="GAZP", side="buy", quantity=10, price=160)
    trade(client, auth_headers, symbol="BTC", asset_type="crypto", side="buy", quantity=0.01, price=50000)

    resp = client.post("/optimization", json={"method": "RiskParity", "risk_tolerance": "high"},
                       headers=auth_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["method"] == "risk_parity"
    assert {a["symbol"] for a in body["allocations"]} == {"SBER", "GAZP"}
    assert body["excluded"] == [{"symbol": "BTC", "reason": "no historical data"}]


def test_optimization_without_positions(client, auth_headers):
    resp = client.post("/optimization", json={}, headers=auth_headers)
    assert resp.status_code == 503
    assert resp.get_json()["error"] == "DataUnavailable"


def test_portfolio_stats_route(client, auth_headers):
    client.post("/capital/deposit", json={"amount": 10000}, headers=auth_headers)
    trade(client, auth_headers, symbol="SBER", side="buy", quantity=10, price=250, commission=0)
    trade(client, auth_headers, symbol="SBER", side="buy", quantity=10, price=270, commission=0)
    trade(client, auth_headers, symbol="SBER", side="sell", quantity=5, price=280, commission=0)
    trade(client, auth_headers, symbol="SBER", side="sell", quantity=5, price=200, commission=0)

    resp = client.get("/portfolio/stats", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json() == {"transaction_count": 5, "total_trades": 4, "winning_trades": 1, "asset_count": 1}


def test_risk_statistics_route(client, auth_headers):
    trade(client, auth_headers, symbol="SBER", side="buy", quantity=10, price=250)

    resp = client.get("/risk/statistics", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["risk_level"] == "high"
    assert body["risk_score"] == 89
    assert body["diversification_score"] == 29
    assert body["concentration_risk"] == 100
    assert body["volatility_risk"] == 40
    assert body["recommendations_count"] == 1
    assert body["warnings_count"] == 2
    assert body["critical_warnings_count"] == 1
    assert body["stop_loss_coverage"] == 100
