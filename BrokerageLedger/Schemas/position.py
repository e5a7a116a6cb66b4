from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from BrokerageLedger.Models.Position import AssetTypeEnum
from BrokerageLedger.Schemas.common import Money


class PositionOut(BaseModel):
    symbol: str
    asset_type: AssetTypeEnum
    quantity: Money
    average_price: Money
    current_price: Money
    total_value: Money
    profit_loss: Money
    profit_loss_percent: Money
    updated_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class PortfolioSummaryOut(BaseModel):
    total_value: Money
    total_profit_loss: Money
    total_profit_loss_percentage: Money
    asset_count: int
    unrealized_profit_loss: Money
    realized_profit_loss: Money


class PortfolioStatsOut(BaseModel):
    transaction_count: int
    total_trades: int
    winning_trades: int
    asset_count: int
