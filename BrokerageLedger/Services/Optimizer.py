"""
Target-weight optimisation over a set of held assets.

Three methods share one pipeline: per-asset statistics are derived from the
return history (annualised), weights are produced by the chosen method, and the
weights are turned into a rebalancing plan against the current holdings.

MeanVariance is a heuristic projection, not a quadratic program: weights lean
towards assets whose Sharpe ratio clears the target return of the chosen risk
tolerance. Portfolio risk is aggregated on the diagonal of the covariance
matrix only.
"""
import hashlib
import json
import logging
import math
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
from flask import current_app

from BrokerageLedger.errors import DataUnavailable, InvalidQuantityOrPrice
from BrokerageLedger.Schemas.optimization import (
    AssetAllocation,
    ExcludedAsset,
    HistoricalSeries,
    OptimizationMethod,
    OptimizationResult,
    PositionInput,
    TradeAction,
    View,
)
from BrokerageLedger.Schemas.risk import RiskLevel
from BrokerageLedger.Services.Settlement import get_positions, normalize_symbol
from BrokerageLedger.Utils.Statistics import (
    annualize_return,
    annualize_volatility,
    correlation_matrix,
    covariance_matrix,
    mean_return,
    normalize,
    volatility,
)

logger = logging.getLogger(__name__)

TARGET_ANNUAL_RETURN = {
    RiskLevel.low: 0.08,
    RiskLevel.medium: 0.12,
    RiskLevel.high: 0.18,
}
HOLD_BAND = 0.01


def target_return(risk_tolerance) -> float:
    return TARGET_ANNUAL_RETURN[RiskLevel(risk_tolerance)]


def mean_variance_weights(expected_returns: Sequence[float], cov: np.ndarray, target: float) -> np.ndarray:
    """w_i ~ 0.5 * max((mu_i - target) / sigma_i, 0) + 0.5 / n, normalised."""
    mu = np.asarray(expected_returns, dtype=float)
    n = mu.size
    if n == 0:
        return mu
    sigma = np.sqrt(np.diag(cov))
    excess_sharpe = np.maximum((mu - target) / sigma, 0.0)
    return normalize(excess_sharpe * 0.5 + 0.5 / n)


def blend_views(equilibrium: Sequence[float], symbols: Sequence[str], views: Mapping[str, View],
                periods_per_year: int) -> np.ndarray:
    """
    blended = eq * (1 - conf) + view * conf, per asset. View returns are per-period
    like the history they are blended with; assets without a view keep eq.
    """
    blended = np.asarray(equilibrium, dtype=float).copy()
    for i, symbol in enumerate(symbols):
        view = views.get(symbol)
        if view is None:
            continue
        view_annual = annualize_return(view.expected_return, periods_per_year)
        blended[i] = blended[i] * (1 - view.confidence) + view_annual * view.confidence
    return blended


def risk_parity_weights(vols: Sequence[float]) -> np.ndarray:
    """Weights inversely proportional to volatility, normalised to 1."""
    sigma = np.asarray(vols, dtype=float)
    if sigma.size == 0:
        return sigma
    return normalize(1.0 / sigma)


def _coerce_series(symbol: str, raw) -> Optional[HistoricalSeries]:
    if raw is None:
        return None
    if isinstance(raw, HistoricalSeries):
        return raw
    return HistoricalSeries.model_validate({"symbol": symbol, **raw})


def _statistics(series: Optional[HistoricalSeries]):
    """(per-period mean, per-period volatility) or a reason the series is unusable."""
    if series is None:
        return None, "no historical data"
    mean = series.average_return if series.average_return is not None else mean_return(series.returns)
    vol = series.volatility if series.volatility is not None else volatility(series.returns)
    if mean is None or vol is None:
        return None, "not enough return history"
    if not math.isfinite(vol) or vol <= 0:
        return None, "non-positive volatility"
    return (mean, vol), None


def cache_key(positions, total_value, risk_tolerance, method, history, views, settings) -> str:
    payload = {
        "positions": sorted((p.symbol, p.quantity, p.price) for p in positions),
        "total_value": total_value,
        "risk_tolerance": RiskLevel(risk_tolerance).value,
        "method": OptimizationMethod(method).value,
        "history": {s: (h.model_dump() if h is not None else None) for s, h in sorted(history.items())},
        "views": {s: v.model_dump() for s, v in sorted(views.items())},
        "settings": settings,
    }
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()
    return f"portfolio_optimization:{digest}"


def optimize(positions, total_value: float, risk_tolerance, method, historical_data: Mapping[str, object],
             views: Mapping[str, object] = None, cache=None, *, periods_per_year: int = 252,
             default_correlation: float = 0.3, commission_rate: float = 0.001,
             slippage_rate: float = 0.0005, cache_ttl: Optional[float] = None) -> OptimizationResult:
    """
    Compute target weights and a rebalancing plan for `positions`.

    Symbols without usable history are left out of the maths and listed in
    `excluded`; the remaining assets share the value not held in them.
    Raises DataUnavailable when no asset is left to optimise.
    """
    positions = [p if isinstance(p, PositionInput) else PositionInput.model_validate(p) for p in positions]
    risk_tolerance = RiskLevel(risk_tolerance)
    method = OptimizationMethod(method)
    views = {normalize_symbol(s): (v if isinstance(v, View) else View.model_validate(v))
             for s, v in (views or {}).items()}
    historical_data = {normalize_symbol(s): h for s, h in historical_data.items()}
    history = {p.symbol: _coerce_series(p.symbol, historical_data.get(p.symbol)) for p in positions}
    total_value = float(total_value)
    if total_value <= 0:
        raise InvalidQuantityOrPrice(f"Total portfolio value must be positive, got {total_value}")

    key = None
    if cache is not None:
        key = cache_key(positions, total_value, risk_tolerance, method, history, views,
                        [periods_per_year, default_correlation, commission_rate, slippage_rate])
        cached = cache.get(key)
        if cached is not None:
            logger.debug("Portfolio optimisation served from cache")
            return cached.model_copy(deep=True)

    included: List[PositionInput] = []
    means, vols = [], []
    excluded = []
    for p in positions:
        stats, reason = _statistics(history[p.symbol])
        if stats is None:
            logger.warning(f"Excluding {p.symbol} from optimisation: {reason}")
            excluded.append(ExcludedAsset(symbol=p.symbol, reason=reason))
            continue
        included.append(p)
        means.append(annualize_return(stats[0], periods_per_year))
        vols.append(annualize_volatility(stats[1], periods_per_year))

    if not included:
        raise DataUnavailable("No asset has usable historical data to optimise")

    symbols = [p.symbol for p in included]
    returns = {s: history[s].returns for s in symbols}
    cov = covariance_matrix(vols, correlation_matrix(returns, symbols, default_correlation))
    expected = np.asarray(means, dtype=float)

    if method == OptimizationMethod.mean_variance:
        weights = mean_variance_weights(expected, cov, target_return(risk_tolerance))
    elif method == OptimizationMethod.blended_views:
        expected = blend_views(expected, symbols, views, periods_per_year)
        weights = mean_variance_weights(expected, cov, target_return(risk_tolerance))
    else:
        weights = risk_parity_weights(vols)

    excluded_symbols = {e.symbol for e in excluded}
    excluded_value = sum(p.quantity * p.price for p in positions if p.symbol in excluded_symbols)
    investable_share = max(total_value - excluded_value, 0.0) / total_value

    result = _build_result(included, weights, expected, vols, total_value, investable_share,
                           method, excluded, commission_rate + slippage_rate)
    logger.info(f"Portfolio optimised ({method.value}): expected return "
                f"{result.expected_portfolio_return:.4f}, risk {result.expected_portfolio_risk:.4f}")

    if cache is not None:
        cache.set(key, result.model_copy(deep=True), ttl=cache_ttl)
    return result


def _build_result(included: Sequence[PositionInput], weights: np.ndarray, expected: np.ndarray,
                  vols: Sequence[float], total_value: float, investable_share: float,
                  method: OptimizationMethod, excluded: List[ExcludedAsset],
                  cost_rate: float) -> OptimizationResult:
    allocations = []
    traded_value = 0.0
    for p, w, mu, sigma in zip(included, weights, expected, vols):
        current_value = p.quantity * p.price
        current_weight = current_value / total_value
        target_weight = float(w) * investable_share
        difference = target_weight - current_weight

        if abs(difference) < HOLD_BAND:
            action = TradeAction.HOLD
            quantity = 0
        else:
            action = TradeAction.BUY if difference > 0 else TradeAction.SELL
            quantity = abs(round((target_weight * total_value - current_value) / p.price))
            traded_value += quantity * p.price

        allocations.append(AssetAllocation(
            symbol=p.symbol,
            target_weight=target_weight,
            current_weight=current_weight,
            recommended_action=action,
            quantity_to_trade=quantity,
            expected_return=float(mu),
            risk=float(sigma),
            sharpe_ratio=float(mu / sigma),
        ))

    w = np.asarray(weights, dtype=float)
    portfolio_return = float(np.dot(w, expected))
    portfolio_risk = float(np.sqrt(np.sum((w * np.asarray(vols, dtype=float)) ** 2)))
    return OptimizationResult(
        method=method,
        allocations=allocations,
        expected_portfolio_return=portfolio_return,
        expected_portfolio_risk=portfolio_risk,
        sharpe_ratio=portfolio_return / portfolio_risk if portfolio_risk > 0 else 0.0,
        rebalancing_needed=any(a.recommended_action != TradeAction.HOLD for a in allocations),
        estimated_trading_cost=traded_value * cost_rate,
        excluded=excluded,
    )


def optimize_for_user(user_id: int, method=OptimizationMethod.mean_variance,
                      risk_tolerance=RiskLevel.medium, views: Dict[str, View] = None) -> OptimizationResult:
    """Optimise the user's live positions against the app's history provider."""
    positions = [
        PositionInput(symbol=p.symbol, quantity=float(p.quantity), price=float(p.current_price))
        for p in get_positions(user_id) if p.current_price and p.current_price > 0
    ]
    if not positions:
        raise DataUnavailable(f"User {user_id} has no priced positions to optimise")

    provider = current_app.extensions["history_provider"]
    history = {p.symbol: provider.history(p.symbol) for p in positions}
    config = current_app.config
    return optimize(
        positions,
        total_value=sum(p.quantity * p.price for p in positions),
        risk_tolerance=risk_tolerance,
        method=method,
        historical_data=history,
        views=views,
        cache=current_app.extensions.get("cache"),
        periods_per_year=config["PERIODS_PER_YEAR"],
        default_correlation=config["DEFAULT_CORRELATION"],
        commission_rate=config["COMMISSION_RATE"],
        slippage_rate=config["SLIPPAGE_RATE"],
        cache_ttl=config["OPTIMIZATION_CACHE_TTL"],
    )
