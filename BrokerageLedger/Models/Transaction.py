import enum

from BrokerageLedger.database import db
from BrokerageLedger.Models.Position import AssetTypeEnum, utcnow

CASH_SYMBOL = "CASH"


class SideEnum(enum.Enum):
    BUY = "buy"
    SELL = "sell"


class TransactionTypeEnum(enum.Enum):
    BUY = "buy"
    SELL = "sell"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class Transaction(db.Model):
    """
    One settled trade or cash movement. Rows are written once and never updated.
    """
    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True, index=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    symbol = db.Column(db.String(20), nullable=False, index=True)
    asset_type = db.Column(db.Enum(AssetTypeEnum), nullable=False)
    type = db.Column(db.Enum(TransactionTypeEnum), nullable=False)

    quantity = db.Column(db.Numeric(20, 8), nullable=False)
    price = db.Column(db.Numeric(20, 8), nullable=False)
    commission = db.Column(db.Numeric(20, 8), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(20, 8), nullable=False)

    timestamp = db.Column(db.DateTime, default=utcnow, index=True)
    notes = db.Column(db.String(255), nullable=False, default="")

    def __repr__(self):
        return (f"<Transaction id={self.id} user_id={self.user_id} {self.type.value} "
                f"{self.quantity} {self.symbol} @ {self.price}>")
