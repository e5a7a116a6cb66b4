import pytest

from BrokerageLedger.Models.Position import AssetTypeEnum
from BrokerageLedger.Schemas.risk import RiskLevel, Severity
from BrokerageLedger.Services import RiskAssessor as risk
from BrokerageLedger.Services.RiskAssessor import Holding
from BrokerageLedger.Services.Settlement import settle_trade

USER = 1


def holding(symbol="SBER", asset_type=AssetTypeEnum.STOCK, quantity=1.0, average_price=100.0,
            current_price=100.0, profit_loss_percent=None):
    if profit_loss_percent is None:
        profit_loss_percent = (current_price - average_price) / average_price * 100
    return Holding(
        symbol=symbol,
        asset_type=asset_type,
        quantity=quantity,
        average_price=average_price,
        current_price=current_price,
        total_value=quantity * current_price,
        profit_loss_percent=profit_loss_percent,
    )


def test_diversification_single_position():
    assert risk.diversification_score([holding()]) == pytest.approx(0.2857, abs=1e-3)


def test_diversification_saturates():
    holdings = [holding(symbol=f"S{i}") for i in range(6)] + [holding("BTC", AssetTypeEnum.CRYPTO)]
    assert risk.diversification_score(holdings) == pytest.approx(1.0)
    three_types = holdings + [holding("USD", AssetTypeEnum.CURRENCY)]
    assert risk.diversification_score(three_types) == pytest.approx(1.0)


def test_empty_portfolio_metrics():
    assert risk.diversification_score([]) == 0.0
    assert risk.concentration_risk([]) == 0.0
    assert risk.volatility_risk([]) == 0.0


def test_concentration_and_volatility():
    holdings = [holding("SBER", quantity=7), holding("BTC", AssetTypeEnum.CRYPTO, quantity=3)]
    assert risk.concentration_risk(holdings) == pytest.approx(0.7)
    assert risk.volatility_risk(holdings) == pytest.approx(0.7 * 0.4 + 0.3 * 0.8)


@pytest.mark.parametrize("asset_type,pl_percent,expected", [
    (AssetTypeEnum.STOCK, 0, 10.0),
    (AssetTypeEnum.STOCK, 25, 8.0),
    (AssetTypeEnum.CRYPTO, -15, 17.0),
    (AssetTypeEnum.CURRENCY, 5, 5.0),
])
def test_stop_loss_percentage(asset_type, pl_percent, expected):
    h = holding(asset_type=asset_type, profit_loss_percent=pl_percent)
    assert risk.stop_loss_percentage(h) == expected


def test_stop_loss_recommendations_levels():
    recs = risk.stop_loss_recommendations(
        [holding("SBER"), holding("AAPL"), holding("BTC", AssetTypeEnum.CRYPTO)],
        low_risk_symbols=("SBER", "GAZP"),
    )
    by_symbol = {r.asset_symbol: r for r in recs}
    assert by_symbol["SBER"].risk_level == RiskLevel.low
    assert by_symbol["AAPL"].risk_level == RiskLevel.medium
    assert by_symbol["BTC"].risk_level == RiskLevel.high
    assert by_symbol["SBER"].recommended_stop_loss == pytest.approx(90.0)
    assert by_symbol["BTC"].recommended_stop_loss == pytest.approx(85.0)


def test_max_position_size():
    assert risk.max_position_size(10000, "low") == pytest.approx(200)
    assert risk.max_position_size(10000, RiskLevel.medium) == pytest.approx(500)
    assert risk.max_position_size(10000, "HIGH") == pytest.approx(1000)


@pytest.mark.parametrize("score,level", [(0, RiskLevel.low), (29.9, RiskLevel.low), (30, RiskLevel.medium),
                                         (59.9, RiskLevel.medium), (60, RiskLevel.high)])
def test_risk_level_thresholds(score, level):
    assert risk.risk_level(score) == level


def test_evaluate_flags_concentration_and_stop_loss():
    holdings = [
        holding("SBER", quantity=10, average_price=100, current_price=91),
        holding("GAZP", quantity=1, average_price=100, current_price=100),
    ]
    assessment = risk.evaluate(holdings, RiskLevel.high)

    kinds = {(w.type, w.affected_asset) for w in assessment.warnings}
    assert ("concentration", "SBER") in kinds
    assert ("stop_loss_breach", "SBER") in kinds
    assert ("stop_loss_breach", "GAZP") not in kinds
    assert all(w.severity == Severity.critical for w in assessment.warnings if w.type != "position_size")
    assert [r.type for r in assessment.recommendations] == ["diversification"]
    assert assessment.overall_risk_level == RiskLevel.high


def test_assess_risk_for_user(app):
    settle_trade(USER, "SBER", "stock", "buy", 10, 250)
    assessment = risk.assess_risk(USER)
    assert assessment.diversification_score == pytest.approx(0.2857, abs=1e-3)
    assert assessment.concentration_risk == pytest.approx(1.0)
    assert 0 <= assessment.portfolio_risk_score <= 100 + 20 * len(assessment.warnings)


def test_check_trade_risk(app):
    settle_trade(USER, "SBER", "stock", "buy", 100, 100)
    result = risk.check_trade_risk(USER, "gazp", 1, 150, "medium")
    assert result.symbol == "GAZP"
    assert result.max_position_size == pytest.approx(500)
    assert result.is_within_limits
    assert result.suggested_max_quantity == 3
    assert result.portfolio_percentage == pytest.approx(1.5)

    over = risk.check_trade_risk(USER, "GAZP", 10, 150)
    assert not over.is_within_limits
    assert over.max_position_size == pytest.approx(200)


def test_max_position_size_for_user(app):
    settle_trade(USER, "SBER", "stock", "buy", 10, 100)
    out = risk.max_position_size_for_user(USER, "high")
    assert out == {"max_position_size": pytest.approx(100), "total_portfolio_value": pytest.approx(1000),
                   "risk_tolerance": "high"}


def test_reported_score_is_capped_at_100():
    holdings = [holding("A", quantity=10, average_price=100, current_price=91)] + [
        holding(symbol, quantity=1, average_price=100, current_price=91) for symbol in ("B", "C", "D")
    ]
    assessment = risk.evaluate(holdings)
    critical = sum(1 for w in assessment.warnings if w.severity == Severity.critical)
    assert critical >= 4
    assert assessment.portfolio_risk_score == 100
    assert assessment.overall_risk_level == RiskLevel.high


def test_risk_statistics():
    holdings = [holding("SBER", quantity=7), holding("BTC", AssetTypeEnum.CRYPTO, quantity=3)]
    assessment = risk.evaluate(holdings, RiskLevel.low)
    stats = risk.risk_statistics(assessment, holdings, risk.stop_loss_recommendations(holdings))

    assert stats.risk_score == assessment.portfolio_risk_score
    assert stats.concentration_risk == 70
    assert stats.volatility_risk == 52
    assert stats.warnings_count == len(assessment.warnings)
    assert stats.critical_warnings_count == 1
    assert stats.stop_loss_coverage == 100


def test_risk_statistics_empty_portfolio():
    stats = risk.risk_statistics(risk.evaluate([]), [], [])
    assert stats.stop_loss_coverage == 100
    assert stats.warnings_count == 0
