import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from flask import current_app

from BrokerageLedger.Models.Position import AssetTypeEnum, Position
from BrokerageLedger.Schemas.risk import (
    RiskAssessment,
    RiskLevel,
    RiskRecommendation,
    RiskStatistics,
    RiskWarning,
    Severity,
    StopLossRecommendation,
    TradeRiskCheckOut,
)
from BrokerageLedger.Services.Settlement import get_positions, normalize_symbol

# Policy table
IDEAL_POSITION_COUNT = 7
IDEAL_ASSET_TYPES = 2
DIVERSIFICATION_THRESHOLD = 0.6
CONCENTRATION_WARNING = 0.3
CONCENTRATION_CRITICAL = 0.5
STOP_LOSS_BREACH_FRACTION = 0.8

BASE_STOP_LOSS_PERCENT = {
    AssetTypeEnum.STOCK: 10.0,
    AssetTypeEnum.CRYPTO: 15.0,
    AssetTypeEnum.CURRENCY: 5.0,
}
ASSET_RISK_LEVEL = {
    AssetTypeEnum.STOCK: RiskLevel.medium,
    AssetTypeEnum.CRYPTO: RiskLevel.high,
    AssetTypeEnum.CURRENCY: RiskLevel.low,
}
POSITION_SIZE_MULTIPLIER = {
    RiskLevel.low: 0.02,
    RiskLevel.medium: 0.05,
    RiskLevel.high: 0.10,
}
VOLATILITY_FACTOR = {AssetTypeEnum.CRYPTO: 0.8}
DEFAULT_VOLATILITY_FACTOR = 0.4


@dataclass(frozen=True)
class Holding:
    """Point-in-time view of one position, detached from the session."""
    symbol: str
    asset_type: AssetTypeEnum
    quantity: float
    average_price: float
    current_price: float
    total_value: float
    profit_loss_percent: float

    @classmethod
    def from_position(cls, p: Position) -> "Holding":
        return cls(
            symbol=p.symbol,
            asset_type=p.asset_type,
            quantity=float(p.quantity),
            average_price=float(p.average_price),
            current_price=float(p.current_price),
            total_value=float(p.total_value),
            profit_loss_percent=float(p.profit_loss_percent),
        )


def portfolio_value(holdings: Sequence[Holding]) -> float:
    return sum(h.total_value for h in holdings)


def diversification_score(holdings: Sequence[Holding]) -> float:
    if not holdings:
        return 0.0
    count_score = min(len(holdings) / IDEAL_POSITION_COUNT, 1.0)
    type_score = min(len({h.asset_type for h in holdings}) / IDEAL_ASSET_TYPES, 1.0)
    return count_score * 0.6 + type_score * 0.4


def concentration_risk(holdings: Sequence[Holding]) -> float:
    total = portfolio_value(holdings)
    if not holdings or total <= 0:
        return 0.0
    return max(h.total_value for h in holdings) / total


def volatility_risk(holdings: Sequence[Holding]) -> float:
    total = portfolio_value(holdings)
    if total <= 0:
        return 0.0
    return sum(h.total_value / total * VOLATILITY_FACTOR.get(h.asset_type, DEFAULT_VOLATILITY_FACTOR)
               for h in holdings)


def stop_loss_percentage(h: Holding) -> float:
    adjustment = 0.0
    if h.profit_loss_percent > 20:
        adjustment = -2.0  # already in profit, tighter stop
    elif h.profit_loss_percent < -10:
        adjustment = 2.0
    return BASE_STOP_LOSS_PERCENT[h.asset_type] + adjustment


def asset_risk_level(h: Holding, low_risk_symbols: Iterable[str] = ()) -> RiskLevel:
    if h.asset_type == AssetTypeEnum.STOCK and h.symbol in set(low_risk_symbols):
        return RiskLevel.low
    return ASSET_RISK_LEVEL.get(h.asset_type, RiskLevel.medium)


def stop_loss_recommendations(holdings: Sequence[Holding],
                              low_risk_symbols: Iterable[str] = ()) -> List[StopLossRecommendation]:
    low_risk_symbols = tuple(low_risk_symbols)
    out = []
    for h in holdings:
        pct = stop_loss_percentage(h)
        out.append(StopLossRecommendation(
            asset_symbol=h.symbol,
            current_price=h.current_price,
            recommended_stop_loss=h.current_price * (1 - pct / 100),
            stop_loss_percentage=pct,
            risk_level=asset_risk_level(h, low_risk_symbols),
        ))
    return out


def max_position_size(total_value: float, risk_tolerance=RiskLevel.low) -> float:
    return total_value * POSITION_SIZE_MULTIPLIER[RiskLevel(risk_tolerance)]


def risk_score(diversification: float, concentration: float, critical_warnings: int) -> float:
    return (1 - diversification) * 40 + concentration * 40 + critical_warnings * 20


def risk_level(score: float) -> RiskLevel:
    if score < 30:
        return RiskLevel.low
    if score < 60:
        return RiskLevel.medium
    return RiskLevel.high


def _diversification_recommendation(holdings: Sequence[Holding]) -> RiskRecommendation:
    return RiskRecommendation(
        type="diversification",
        priority=RiskLevel.high if len(holdings) < 3 else RiskLevel.medium,
        title="Increase portfolio diversification",
        description=(f"The portfolio holds {len(holdings)} assets. "
                     f"5-7 assets across asset types lower the overall risk."),
        action="Add new assets to the portfolio",
        affected_assets=[h.symbol for h in holdings],
    )


def _concentration_warning(holdings: Sequence[Holding], concentration: float) -> RiskWarning:
    largest = max(holdings, key=lambda h: h.total_value)
    return RiskWarning(
        type="concentration",
        severity=Severity.critical if concentration > CONCENTRATION_CRITICAL else Severity.warning,
        title="High concentration risk",
        description=f"{largest.symbol} is {round(concentration * 100)}% of the portfolio",
        affected_asset=largest.symbol,
        current_value=concentration,
        threshold=CONCENTRATION_WARNING,
    )


def _stop_loss_warnings(holdings: Sequence[Holding],
                        recommendations: Sequence[StopLossRecommendation]) -> List[RiskWarning]:
    by_symbol = {r.asset_symbol: r for r in recommendations}
    warnings = []
    for h in holdings:
        rec = by_symbol.get(h.symbol)
        if rec is None or h.average_price <= 0:
            continue
        drawdown = (h.current_price - h.average_price) / h.average_price * 100
        if drawdown < -rec.stop_loss_percentage * STOP_LOSS_BREACH_FRACTION:
            warnings.append(RiskWarning(
                type="stop_loss_breach",
                severity=Severity.critical,
                title="Approaching stop-loss",
                description=f"{h.symbol} is down {abs(drawdown):.1f}% and nearing its recommended stop-loss",
                affected_asset=h.symbol,
                current_value=h.current_price,
                threshold=rec.recommended_stop_loss,
            ))
    return warnings


def _position_size_warnings(holdings: Sequence[Holding], risk_tolerance) -> List[RiskWarning]:
    limit = max_position_size(portfolio_value(holdings), risk_tolerance)
    return [
        RiskWarning(
            type="position_size",
            severity=Severity.warning,
            title="Position too large",
            description=f"{h.symbol} exceeds the recommended position size",
            affected_asset=h.symbol,
            current_value=h.total_value,
            threshold=limit,
        )
        for h in holdings if h.total_value > limit
    ]


def evaluate(holdings: Sequence[Holding], risk_tolerance=RiskLevel.low,
             low_risk_symbols: Iterable[str] = ()) -> RiskAssessment:
    """Full risk assessment of a position snapshot. Pure: no DB, no app context."""
    recommendations = []
    warnings = []

    diversification = diversification_score(holdings)
    if diversification < DIVERSIFICATION_THRESHOLD:
        recommendations.append(_diversification_recommendation(holdings))

    concentration = concentration_risk(holdings)
    if concentration > CONCENTRATION_WARNING:
        warnings.append(_concentration_warning(holdings, concentration))

    stop_losses = stop_loss_recommendations(holdings, low_risk_symbols)
    warnings.extend(_stop_loss_warnings(holdings, stop_losses))
    warnings.extend(_position_size_warnings(holdings, risk_tolerance))

    critical = sum(1 for w in warnings if w.severity == Severity.critical)
    score = risk_score(diversification, concentration, critical)
    return RiskAssessment(
        overall_risk_level=risk_level(score),
        portfolio_risk_score=min(100, round(score)),
        diversification_score=diversification,
        concentration_risk=concentration,
        volatility_risk=volatility_risk(holdings),
        recommendations=recommendations,
        warnings=warnings,
    )


def risk_statistics(assessment: RiskAssessment, holdings: Sequence[Holding],
                    stop_losses: Sequence[StopLossRecommendation]) -> RiskStatistics:
    # an empty portfolio counts as fully covered
    coverage = len(stop_losses) / len(holdings) if holdings else 1.0
    return RiskStatistics(
        risk_level=assessment.overall_risk_level,
        risk_score=assessment.portfolio_risk_score,
        diversification_score=round(assessment.diversification_score * 100),
        concentration_risk=round(assessment.concentration_risk * 100),
        volatility_risk=round(assessment.volatility_risk * 100),
        recommendations_count=len(assessment.recommendations),
        warnings_count=len(assessment.warnings),
        critical_warnings_count=sum(1 for w in assessment.warnings if w.severity == Severity.critical),
        stop_loss_coverage=round(coverage * 100),
    )


def snapshot(user_id: int) -> List[Holding]:
    return [Holding.from_position(p) for p in get_positions(user_id)]


def _tolerance(risk_tolerance) -> RiskLevel:
    return RiskLevel(risk_tolerance or current_app.config["DEFAULT_RISK_TOLERANCE"])


def assess_risk(user_id: int, risk_tolerance=None) -> RiskAssessment:
    assessment = evaluate(snapshot(user_id), _tolerance(risk_tolerance),
                          current_app.config["LOW_RISK_SYMBOLS"])
    current_app.logger.debug(
        f"Risk for user {user_id}: {assessment.overall_risk_level.value} "
        f"(score {assessment.portfolio_risk_score}, {len(assessment.warnings)} warnings)")
    return assessment


def get_stop_loss_recommendations(user_id: int) -> List[StopLossRecommendation]:
    return stop_loss_recommendations(snapshot(user_id), current_app.config["LOW_RISK_SYMBOLS"])


def get_risk_statistics(user_id: int, risk_tolerance=None) -> RiskStatistics:
    holdings = snapshot(user_id)
    low_risk_symbols = current_app.config["LOW_RISK_SYMBOLS"]
    assessment = evaluate(holdings, _tolerance(risk_tolerance), low_risk_symbols)
    return risk_statistics(assessment, holdings, stop_loss_recommendations(holdings, low_risk_symbols))


def max_position_size_for_user(user_id: int, risk_tolerance=None) -> dict:
    tolerance = _tolerance(risk_tolerance)
    total = portfolio_value(snapshot(user_id))
    return {
        "max_position_size": max_position_size(total, tolerance),
        "total_portfolio_value": total,
        "risk_tolerance": tolerance.value,
    }


def check_trade_risk(user_id: int, symbol: str, quantity: float, price: float,
                     risk_tolerance=None) -> TradeRiskCheckOut:
    """Would a trade of `quantity` at `price` stay within the max position size?"""
    total = portfolio_value(snapshot(user_id))
    limit = max_position_size(total, _tolerance(risk_tolerance))
    trade_value = quantity * price
    return TradeRiskCheckOut(
        symbol=normalize_symbol(symbol),
        trade_value=trade_value,
        max_position_size=limit,
        is_within_limits=trade_value <= limit,
        portfolio_percentage=trade_value / total * 100 if total > 0 else 0.0,
        suggested_max_quantity=math.floor(limit / price) if price > 0 else 0,
    )
