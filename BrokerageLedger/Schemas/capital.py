from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from BrokerageLedger.Schemas.common import Money


class AmountIn(BaseModel):
    amount: Decimal = Field(..., examples=[50000])


class CapitalOut(BaseModel):
    initial_capital: Money
    current_capital: Money
    available_capital: Money
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
