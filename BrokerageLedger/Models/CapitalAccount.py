from BrokerageLedger.database import db
from BrokerageLedger.Models.Position import utcnow


class CapitalAccount(db.Model):
    __tablename__ = "capital_accounts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    initial_capital = db.Column(db.Numeric(20, 8), nullable=False, default=0)
    current_capital = db.Column(db.Numeric(20, 8), nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<CapitalAccount user_id={self.user_id} current={self.current_capital}>"
