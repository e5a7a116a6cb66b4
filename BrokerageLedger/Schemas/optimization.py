from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from BrokerageLedger.Schemas.risk import RiskLevel


class OptimizationMethod(str, Enum):
    mean_variance = "mean_variance"
    blended_views = "blended_views"
    risk_parity = "risk_parity"

    @classmethod
    def _missing_(cls, value):
        # accepts MeanVariance, mean-variance, MARKOWITZ, BlackLitterman, RISK_PARITY, ...
        if not isinstance(value, str):
            return None
        key = value.replace("_", "").replace("-", "").replace(" ", "").lower()
        return _METHOD_ALIASES.get(key)


_METHOD_ALIASES = {
    "meanvariance": OptimizationMethod.mean_variance,
    "markowitz": OptimizationMethod.mean_variance,
    "blendedviews": OptimizationMethod.blended_views,
    "blacklitterman": OptimizationMethod.blended_views,
    "riskparity": OptimizationMethod.risk_parity,
}


class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class HistoricalSeries(BaseModel):
    """Per-period return history of one symbol. Missing statistics are derived from `returns`."""
    symbol: str
    returns: List[float] = []
    volatility: Optional[float] = None
    average_return: Optional[float] = None


class PositionInput(BaseModel):
    symbol: str
    quantity: float = Field(..., ge=0)
    price: float = Field(..., gt=0)

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, v: str) -> str:
        return v.upper().strip()


class View(BaseModel):
    expected_return: float
    confidence: float = Field(..., ge=0, le=1)


class OptimizationRequest(BaseModel):
    method: OptimizationMethod = OptimizationMethod.mean_variance
    risk_tolerance: RiskLevel = RiskLevel.medium
    views: Dict[str, View] = {}


class AssetAllocation(BaseModel):
    symbol: str
    target_weight: float
    current_weight: float
    recommended_action: TradeAction
    quantity_to_trade: int
    expected_return: float
    risk: float
    sharpe_ratio: float


class ExcludedAsset(BaseModel):
    symbol: str
    reason: str


class OptimizationResult(BaseModel):
    method: OptimizationMethod
    allocations: List[AssetAllocation]
    expected_portfolio_return: float
    expected_portfolio_risk: float
    sharpe_ratio: float
    rebalancing_needed: bool
    estimated_trading_cost: float
    excluded: List[ExcludedAsset] = []
