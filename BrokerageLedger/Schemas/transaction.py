from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from BrokerageLedger.Models.Position import AssetTypeEnum
from BrokerageLedger.Models.Transaction import SideEnum, TransactionTypeEnum
from BrokerageLedger.Schemas.common import Money


class TradeCreate(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=20, examples=["SBER"])
    asset_type: AssetTypeEnum = Field(AssetTypeEnum.STOCK, examples=["stock"])
    side: SideEnum = Field(..., examples=["buy"])
    quantity: Decimal = Field(..., examples=[10])
    price: Optional[Decimal] = Field(
        None,
        examples=[250.0],
        description="Execution price; looked up from the market feed when omitted"
    )
    commission: Optional[Decimal] = Field(
        None,
        examples=[25.0],
        description="Defaults to COMMISSION_RATE x notional"
    )
    notes: str = Field("", max_length=255)

    @field_validator("side", "asset_type", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.lower() if isinstance(v, str) else v


class TransactionOut(BaseModel):
    id: int
    symbol: str
    asset_type: AssetTypeEnum
    type: TransactionTypeEnum
    quantity: Money
    price: Money
    commission: Money
    total_amount: Money
    timestamp: datetime
    notes: str
    model_config = {"from_attributes": True}
