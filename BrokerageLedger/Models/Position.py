from datetime import datetime, timezone
from decimal import Decimal
import enum

from BrokerageLedger.database import db

# Every money/quantity column carries 8 decimal places
SCALE = Decimal("0.00000001")


class AssetTypeEnum(enum.Enum):
    STOCK = "stock"
    CRYPTO = "crypto"
    CURRENCY = "currency"


def utcnow():
    return datetime.now(timezone.utc)


class Position(db.Model):
    __tablename__ = "positions"

    id = db.Column(db.Integer, primary_key=True, index=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    symbol = db.Column(db.String(20), nullable=False)
    asset_type = db.Column(db.Enum(AssetTypeEnum), nullable=False, default=AssetTypeEnum.STOCK)

    quantity = db.Column(db.Numeric(20, 8), nullable=False, default=0)
    average_price = db.Column(db.Numeric(20, 8), nullable=False, default=0)
    current_price = db.Column(db.Numeric(20, 8), nullable=False, default=0)
    total_value = db.Column(db.Numeric(20, 8), nullable=False, default=0)
    profit_loss = db.Column(db.Numeric(20, 8), nullable=False, default=0)
    profit_loss_percent = db.Column(db.Numeric(20, 8), nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "symbol", name="uix_position_user_symbol"),
        db.CheckConstraint("quantity >= 0", name="ck_position_quantity_non_negative"),
    )

    @property
    def total_cost(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(self.average_price)

    def mark(self, price: Decimal):
        """
        Revalue the position at `price`. Quantity and average price are untouched.
        """
        price = Decimal(price)
        quantity = Decimal(self.quantity)
        cost = self.total_cost
        self.current_price = price
        self.total_value = (quantity * price).quantize(SCALE)
        self.profit_loss = (quantity * price - cost).quantize(SCALE)
        if cost > 0:
            self.profit_loss_percent = ((quantity * price - cost) / cost * 100).quantize(SCALE)
        else:
            self.profit_loss_percent = Decimal(0)

    def __repr__(self):
        return (f"<Position user_id={self.user_id} symbol='{self.symbol}' "
                f"quantity={self.quantity} avg_price={self.average_price}>")
