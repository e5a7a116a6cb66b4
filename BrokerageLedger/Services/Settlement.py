from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError

from BrokerageLedger.database import db
from BrokerageLedger.errors import (
    ConcurrentModification,
    InsufficientHoldings,
    InvalidQuantityOrPrice,
    LedgerError,
    NoSuchPosition,
)
from BrokerageLedger.Models.Position import SCALE, AssetTypeEnum, Position
from BrokerageLedger.Models.Transaction import SideEnum, Transaction, TransactionTypeEnum
from BrokerageLedger.Utils.RowLocks import row_locks


def normalize_symbol(symbol: str) -> str:
    return (symbol or "").upper().strip()


def as_decimal(value, name: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidQuantityOrPrice(f"{name} must be a number, got {value!r}")
    if not result.is_finite():
        raise InvalidQuantityOrPrice(f"{name} must be finite, got {value!r}")
    return result.quantize(SCALE)


def coerce_enum(enum_cls, value, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower().strip())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidQuantityOrPrice(f"{name} must be one of: {allowed}; got {value!r}")


def weighted_average_price(old_qty: Decimal, old_avg: Decimal, qty: Decimal, price: Decimal) -> Decimal:
    """
    Cost-weighted average after buying `qty` at `price` on top of `old_qty` at `old_avg`.
    Commission is not part of the average; it is cash flow only.
    """
    new_qty = old_qty + qty
    if new_qty <= 0:
        return Decimal(0)
    return ((old_avg * old_qty + price * qty) / new_qty).quantize(SCALE)


def settle_trade(user_id: int, symbol: str, asset_type, side, quantity, price, commission=0,
                 notes: str = "") -> Transaction:
    """
    Apply one BUY/SELL to the user's position and append it to the transaction log,
    as a single DB transaction under the (user, symbol) row lock.
    """
    symbol = normalize_symbol(symbol)
    side = coerce_enum(SideEnum, side, "side")
    asset_type = coerce_enum(AssetTypeEnum, asset_type, "asset_type")
    quantity = as_decimal(quantity, "quantity")
    price = as_decimal(price, "price")
    commission = as_decimal(commission or 0, "commission")

    if not symbol:
        raise InvalidQuantityOrPrice("symbol must not be empty")
    if quantity <= 0:
        raise InvalidQuantityOrPrice(f"Quantity must be positive, got {quantity}")
    if price <= 0:
        raise InvalidQuantityOrPrice(f"Price must be positive, got {price}")
    if commission < 0:
        raise InvalidQuantityOrPrice(f"Commission must not be negative, got {commission}")

    with row_locks().hold(("position", user_id, symbol)):
        try:
            # Lock the position row for update
            pos = (db.session.query(Position)
                   .filter_by(user_id=user_id, symbol=symbol)
                   .populate_existing()
                   .with_for_update()
                   .first())

            if side == SideEnum.BUY:
                if not pos:
                    pos = Position(user_id=user_id, symbol=symbol, asset_type=asset_type,
                                   quantity=Decimal(0), average_price=Decimal(0))
                    db.session.add(pos)
                asset_type = pos.asset_type  # the row keeps the type it was opened with
                held = Decimal(pos.quantity)
                pos.average_price = weighted_average_price(held, Decimal(pos.average_price), quantity, price)
                pos.quantity = held + quantity
                pos.mark(price)
                total_amount = quantity * price + commission
                txn_type = TransactionTypeEnum.BUY
            else:  # SELL
                if not pos:
                    raise NoSuchPosition(f"No open position in {symbol} to sell")
                held = Decimal(pos.quantity)
                if held < quantity:
                    raise InsufficientHoldings(
                        f"Insufficient holdings ({held}) of {symbol} to sell {quantity}")
                remaining = held - quantity
                if remaining == 0:
                    db.session.delete(pos)
                else:
                    # average price is never revalued on a sell
                    pos.quantity = remaining
                    pos.mark(price)
                asset_type = pos.asset_type
                total_amount = quantity * price - commission
                txn_type = TransactionTypeEnum.SELL

            txn = Transaction(
                user_id=user_id,
                symbol=symbol,
                asset_type=asset_type,
                type=txn_type,
                quantity=quantity,
                price=price,
                commission=commission,
                total_amount=total_amount.quantize(SCALE),
                notes=notes or "",
            )
            db.session.add(txn)
            db.session.commit()  # Position and Transaction land together or not at all
        except LedgerError:
            db.session.rollback()
            raise
        except (OperationalError, IntegrityError) as e:
            db.session.rollback()
            current_app.logger.warning(
                f"Conflict settling {side.value} {quantity} {symbol} for user {user_id}: {e}")
            raise ConcurrentModification(f"Position {symbol} was modified concurrently, retry") from e
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(
                f"Error settling {side.value} {quantity} {symbol} for user {user_id}: {str(e)}", exc_info=True)
            raise

    current_app.logger.info(
        f"Settled {side.value} {quantity} {symbol} @ {price} for user {user_id} (txn {txn.id})")
    return txn


def get_positions(user_id: int) -> List[Position]:
    return (Position.query
            .filter_by(user_id=user_id)
            .order_by(Position.total_value.desc(), Position.symbol.asc())
            .all())


def get_position(user_id: int, symbol: str) -> Optional[Position]:
    return Position.query.filter_by(user_id=user_id, symbol=normalize_symbol(symbol)).first()


def get_transactions(user_id: int, limit: int = 50, symbol: str = None) -> List[Transaction]:
    query = Transaction.query.filter_by(user_id=user_id)
    if symbol:
        query = query.filter_by(symbol=normalize_symbol(symbol))
    return query.order_by(Transaction.timestamp.desc(), Transaction.id.desc()).limit(limit).all()


def ledger_history(user_id: int) -> List[Transaction]:
    """The user's whole log in replay order."""
    return (Transaction.query
            .filter_by(user_id=user_id)
            .order_by(Transaction.timestamp.asc(), Transaction.id.asc())
            .all())


@dataclass
class Lot:
    asset_type: AssetTypeEnum
    quantity: Decimal = Decimal(0)
    average_price: Decimal = Decimal(0)
    fee_basis: Decimal = Decimal(0)  # buy commissions still attached to open quantity
    realized: Decimal = Decimal(0)


@dataclass
class ReplayState:
    lots: Dict[str, Lot] = field(default_factory=dict)
    cash: Decimal = Decimal(0)
    replayed: int = 0
    anomalies: List[str] = field(default_factory=list)
    winning_sells: int = 0

    def open_lots(self) -> Dict[str, Lot]:
        return {s: lot for s, lot in self.lots.items() if lot.quantity > 0}


def replay(transactions: Iterable[Transaction]) -> ReplayState:
    """
    Fold the transaction log into positions, realized P&L and net cash,
    using the same average-price rule as settlement.
    """
    state = ReplayState()
    for t in transactions:
        qty = Decimal(t.quantity)
        price = Decimal(t.price)
        commission = Decimal(t.commission or 0)
        state.replayed += 1

        if t.type == TransactionTypeEnum.BUY:
            lot = state.lots.setdefault(t.symbol, Lot(asset_type=t.asset_type))
            lot.average_price = weighted_average_price(lot.quantity, lot.average_price, qty, price)
            lot.quantity += qty
            lot.fee_basis += commission
        elif t.type == TransactionTypeEnum.SELL:
            lot = state.lots.get(t.symbol)
            if lot is None or lot.quantity < qty:
                state.anomalies.append(f"txn {t.id}: sell of {qty} {t.symbol} exceeds replayed holdings")
                continue
            fee_share = lot.fee_basis * qty / lot.quantity
            gain = qty * (price - lot.average_price) - commission - fee_share
            lot.realized += gain
            if gain > 0:
                state.winning_sells += 1
            lot.fee_basis -= fee_share
            lot.quantity -= qty
            if lot.quantity == 0:
                lot.average_price = Decimal(0)
                lot.fee_basis = Decimal(0)
        elif t.type == TransactionTypeEnum.DEPOSIT:
            state.cash += Decimal(t.total_amount)
        elif t.type == TransactionTypeEnum.WITHDRAW:
            state.cash -= Decimal(t.total_amount)
    return state


def realized_pnl(user_id: int, symbol: str = None) -> Decimal:
    """Realized gain/loss net of fees, derived from the transaction log."""
    state = replay(ledger_history(user_id))
    if symbol:
        lot = state.lots.get(normalize_symbol(symbol))
        return (lot.realized if lot else Decimal(0)).quantize(SCALE)
    return sum((lot.realized for lot in state.lots.values()), Decimal(0)).quantize(SCALE)


def get_portfolio_summary(user_id: int) -> dict:
    positions = get_positions(user_id)
    total_value = sum((Decimal(p.total_value) for p in positions), Decimal(0))
    unrealized = sum((Decimal(p.profit_loss) for p in positions), Decimal(0))
    realized = realized_pnl(user_id)
    total_profit_loss = unrealized + realized
    if total_value > 0:
        percentage = (total_profit_loss / total_value * 100).quantize(SCALE)
    else:
        percentage = Decimal(0)
    return {
        "total_value": total_value,
        "total_profit_loss": total_profit_loss,
        "total_profit_loss_percentage": percentage,
        "asset_count": len(positions),
        "unrealized_profit_loss": unrealized,
        "realized_profit_loss": realized,
    }


def portfolio_stats(transactions: Iterable[Transaction], positions: Iterable[Position]) -> dict:
    """
    Trade counts over the log. A buy wins while its price is below the symbol's
    current mark; a sell wins when it realized a gain net of fees.
    """
    transactions = list(transactions)
    marks = {p.symbol: Decimal(p.current_price) for p in positions}
    trades = [t for t in transactions if t.type in (TransactionTypeEnum.BUY, TransactionTypeEnum.SELL)]
    winning_buys = sum(1 for t in trades
                       if t.type == TransactionTypeEnum.BUY and t.symbol in marks
                       and Decimal(t.price) < marks[t.symbol])
    return {
        "transaction_count": len(transactions),
        "total_trades": len(trades),
        "winning_trades": winning_buys + replay(transactions).winning_sells,
        "asset_count": len(marks),
    }


def get_portfolio_stats(user_id: int) -> dict:
    return portfolio_stats(ledger_history(user_id), get_positions(user_id))


def refresh_prices(user_id: int, price_oracle) -> List[str]:
    """
    Re-mark every position of the user at the oracle price, one row lock at a time.
    Returns the symbols the oracle had no price for; those rows keep their last mark.
    """
    missing = []
    for symbol in [p.symbol for p in get_positions(user_id)]:
        price = price_oracle.price(symbol)
        if price is None or price <= 0:
            current_app.logger.warning(f"No market price for {symbol}; keeping last mark for user {user_id}")
            missing.append(symbol)
            continue
        with row_locks().hold(("position", user_id, symbol)):
            try:
                pos = (db.session.query(Position)
                       .filter_by(user_id=user_id, symbol=symbol)
                       .populate_existing()
                       .with_for_update()
                       .first())
                if pos is None:  # sold out since we listed it
                    db.session.rollback()
                    continue
                pos.mark(Decimal(price))
                db.session.commit()
            except OperationalError as e:
                db.session.rollback()
                raise ConcurrentModification(f"Position {symbol} was modified concurrently, retry") from e
            except Exception as e:
                db.session.rollback()
                current_app.logger.error(f"Error re-marking {symbol} for user {user_id}: {str(e)}", exc_info=True)
                raise
    return missing
