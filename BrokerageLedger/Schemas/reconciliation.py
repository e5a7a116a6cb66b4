from typing import List, Optional

from pydantic import BaseModel

from BrokerageLedger.Schemas.common import Money


class Drift(BaseModel):
    symbol: str
    field: str
    live: Optional[Money] = None
    replayed: Optional[Money] = None


class ReconciliationReport(BaseModel):
    user_id: int
    transactions_replayed: int
    consistent: bool
    drifts: List[Drift] = []
