from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class RiskLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value.lower() != value:
            return cls(value.lower())
        return None


class Severity(str, Enum):
    warning = "warning"
    critical = "critical"


class RiskRecommendation(BaseModel):
    type: str  # diversification | stop_loss | position_size | asset_allocation
    priority: RiskLevel
    title: str
    description: str
    action: str
    affected_assets: List[str] = []


class RiskWarning(BaseModel):
    type: str  # concentration | stop_loss_breach | position_size | high_volatility
    severity: Severity
    title: str
    description: str
    affected_asset: Optional[str] = None
    current_value: Optional[float] = None
    threshold: Optional[float] = None


class StopLossRecommendation(BaseModel):
    asset_symbol: str
    current_price: float
    recommended_stop_loss: float
    stop_loss_percentage: float
    risk_level: RiskLevel


class RiskAssessment(BaseModel):
    overall_risk_level: RiskLevel
    portfolio_risk_score: int
    diversification_score: float
    concentration_risk: float
    volatility_risk: float
    recommendations: List[RiskRecommendation] = []
    warnings: List[RiskWarning] = []


class TradeRiskCheckIn(BaseModel):
    symbol: str
    quantity: float = Field(..., gt=0)
    price: float = Field(..., gt=0)
    risk_tolerance: RiskLevel = RiskLevel.low


class TradeRiskCheckOut(BaseModel):
    symbol: str
    trade_value: float
    max_position_size: float
    is_within_limits: bool
    portfolio_percentage: float
    suggested_max_quantity: int


class RiskQuery(BaseModel):
    risk_tolerance: Optional[RiskLevel] = None


class RiskStatistics(BaseModel):
    """Headline figures of a risk assessment; scores and risks as whole percentages."""
    risk_level: RiskLevel
    risk_score: int
    diversification_score: int
    concentration_risk: int
    volatility_risk: int
    recommendations_count: int
    warnings_count: int
    critical_warnings_count: int
    stop_loss_coverage: int
