from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError

from BrokerageLedger.database import db
from BrokerageLedger.errors import ConcurrentModification, InsufficientFunds, InvalidQuantityOrPrice, LedgerError
from BrokerageLedger.Models.CapitalAccount import CapitalAccount
from BrokerageLedger.Models.Position import SCALE, AssetTypeEnum, Position
from BrokerageLedger.Models.Transaction import CASH_SYMBOL, Transaction, TransactionTypeEnum
from BrokerageLedger.Services.Settlement import as_decimal
from BrokerageLedger.Utils.RowLocks import row_locks


def get_capital(user_id: int) -> Optional[CapitalAccount]:
    return CapitalAccount.query.filter_by(user_id=user_id).first()


def _positive_amount(amount) -> Decimal:
    amount = as_decimal(amount, "amount")
    if amount <= 0:
        raise InvalidQuantityOrPrice(f"Amount must be positive, got {amount}")
    return amount


def _cash_transaction(user_id: int, txn_type: TransactionTypeEnum, amount: Decimal, notes: str) -> Transaction:
    return Transaction(
        user_id=user_id,
        symbol=CASH_SYMBOL,
        asset_type=AssetTypeEnum.CURRENCY,
        type=txn_type,
        quantity=Decimal(1),
        price=amount,
        commission=Decimal(0),
        total_amount=amount,
        notes=notes,
    )


def _locked_account(user_id: int) -> Optional[CapitalAccount]:
    return (db.session.query(CapitalAccount)
            .filter_by(user_id=user_id)
            .populate_existing()
            .with_for_update()
            .first())


def _mutate(user_id: int, action: str, apply):
    """
    Run `apply(account)` inside one DB transaction under the user's capital row lock.
    `apply` returns the account row it changed; everything is rolled back on failure.
    """
    with row_locks().hold(("capital", user_id)):
        try:
            account = apply(_locked_account(user_id))
            db.session.commit()
        except LedgerError:
            db.session.rollback()
            raise
        except (OperationalError, IntegrityError) as e:
            db.session.rollback()
            current_app.logger.warning(f"Conflict on capital {action} for user {user_id}: {e}")
            raise ConcurrentModification(f"Capital account of user {user_id} was modified concurrently, retry") from e
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Error on capital {action} for user {user_id}: {str(e)}", exc_info=True)
            raise
    current_app.logger.info(f"Capital {action} for user {user_id}: balance {account.current_capital}")
    return account


def deposit(user_id: int, amount) -> CapitalAccount:
    amount = _positive_amount(amount)

    def apply(account):
        if account is None:
            account = CapitalAccount(user_id=user_id, initial_capital=amount, current_capital=amount)
            db.session.add(account)
        else:
            account.current_capital = Decimal(account.current_capital) + amount
        db.session.add(_cash_transaction(user_id, TransactionTypeEnum.DEPOSIT, amount, f"Deposit of {amount:.2f}"))
        return account

    return _mutate(user_id, "deposit", apply)


def withdraw(user_id: int, amount) -> CapitalAccount:
    amount = _positive_amount(amount)

    def apply(account):
        balance = Decimal(account.current_capital) if account else Decimal(0)
        if account is None or amount > balance:
            raise InsufficientFunds(f"Insufficient funds ({balance}) to withdraw {amount}")
        account.current_capital = balance - amount
        db.session.add(_cash_transaction(user_id, TransactionTypeEnum.WITHDRAW, amount, f"Withdrawal of {amount:.2f}"))
        return account

    return _mutate(user_id, "withdraw", apply)


def set_initial_capital(user_id: int, amount) -> CapitalAccount:
    """
    Reset both initial and current capital to `amount`. The difference is logged as a
    deposit or withdrawal so the balance stays derivable from the transaction log.
    """
    amount = as_decimal(amount, "amount")
    if amount < 0:
        raise InvalidQuantityOrPrice(f"Initial capital must not be negative, got {amount}")

    def apply(account):
        if account is None:
            account = CapitalAccount(user_id=user_id, initial_capital=Decimal(0), current_capital=Decimal(0))
            db.session.add(account)
        delta = amount - Decimal(account.current_capital or 0)
        if delta > 0:
            db.session.add(_cash_transaction(user_id, TransactionTypeEnum.DEPOSIT, delta,
                                             f"Initial capital set to {amount:.2f}"))
        elif delta < 0:
            db.session.add(_cash_transaction(user_id, TransactionTypeEnum.WITHDRAW, -delta,
                                             f"Initial capital set to {amount:.2f}"))
        account.initial_capital = amount
        account.current_capital = amount
        return account

    return _mutate(user_id, "initial", apply)


def initialize_capital(user_id: int) -> CapitalAccount:
    """Create an empty capital row for the user if there is none yet."""
    existing = get_capital(user_id)
    if existing is not None:
        return existing

    def apply(account):
        if account is None:
            account = CapitalAccount(user_id=user_id, initial_capital=Decimal(0), current_capital=Decimal(0))
            db.session.add(account)
        return account

    return _mutate(user_id, "initialize", apply)


def invested_value(user_id: int) -> Decimal:
    total = (db.session.query(func.coalesce(func.sum(Position.total_value), 0))
             .filter(Position.user_id == user_id)
             .scalar())
    return Decimal(str(total)).quantize(SCALE)


def get_available(user_id: int) -> Decimal:
    """
    Cash not tied up in open positions: current capital minus the marked value of
    every position, floored at zero.
    """
    account = get_capital(user_id)
    if account is None:
        return Decimal(0)
    available = Decimal(account.current_capital) - invested_value(user_id)
    return max(Decimal(0), available).quantize(SCALE)
