import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, Optional, Protocol

import requests

from BrokerageLedger.Schemas.optimization import HistoricalSeries
from BrokerageLedger.Utils.Statistics import mean_return, simple_returns, volatility

logger = logging.getLogger(__name__)


class PriceOracle(Protocol):
    def price(self, symbol: str) -> Optional[Decimal]: ...


class HistoryProvider(Protocol):
    def history(self, symbol: str) -> Optional[HistoricalSeries]: ...


def _to_decimal(value) -> Optional[Decimal]:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return price if price > 0 else None


def series_from_returns(symbol: str, returns) -> HistoricalSeries:
    returns = [float(r) for r in returns]
    return HistoricalSeries(
        symbol=symbol,
        returns=returns,
        volatility=volatility(returns),
        average_return=mean_return(returns),
    )


class HttpPriceOracle:
    """
    Latest close from the Market-Feed service.
    GET <url>?symbol=<SYMBOL>&limit=1 -> [{"close": ...}, ...]
    """

    def __init__(self, url: str, timeout: float = 5.0, session: requests.Session = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def price(self, symbol: str) -> Optional[Decimal]:
        try:
            resp = self.session.get(self.url, params={"symbol": symbol, "limit": 1}, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Market-feed request for {symbol} failed: {e}")
            return None
        if resp.status_code != 200:
            logger.warning(f"Market-feed returned {resp.status_code} for {symbol}: {resp.text}")
            return None
        data = resp.json()
        if not data:
            logger.warning(f"No candles returned from market-feed for {symbol}")
            return None
        return _to_decimal(data[-1].get("close"))


class HttpHistoryProvider:
    """
    Return history built from the Market-Feed candle history.
    GET <url>?symbol=<SYMBOL>&limit=<lookback> -> [{"close": ...}, ...]
    """

    def __init__(self, url: str, lookback: int = 100, timeout: float = 5.0, session: requests.Session = None):
        self.url = url
        self.lookback = lookback
        self.timeout = timeout
        self.session = session or requests.Session()

    def history(self, symbol: str) -> Optional[HistoricalSeries]:
        try:
            resp = self.session.get(self.url, params={"symbol": symbol, "limit": self.lookback},
                                    timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"History request for {symbol} failed: {e}")
            return None
        if resp.status_code != 200:
            logger.warning(f"History feed returned {resp.status_code} for {symbol}: {resp.text}")
            return None
        closes = [c.get("close") for c in resp.json() or []]
        returns = simple_returns([float(c) for c in closes if c is not None])
        if len(returns) < 2:
            logger.warning(f"Not enough history for {symbol} ({len(returns)} returns)")
            return None
        return series_from_returns(symbol, returns)


class StaticPriceOracle:
    """Fixed price table, for development and tests."""

    def __init__(self, prices: Dict[str, object] = None):
        self.prices = {}
        for symbol, value in (prices or {}).items():
            self.set(symbol, value)

    def set(self, symbol: str, value) -> None:
        self.prices[symbol.upper()] = _to_decimal(value)

    def price(self, symbol: str) -> Optional[Decimal]:
        return self.prices.get(symbol.upper())


class StaticHistoryProvider:
    """Fixed history table, for development and tests."""

    def __init__(self, series: Iterable[HistoricalSeries] = ()):
        self.series = {s.symbol.upper(): s for s in series}

    def history(self, symbol: str) -> Optional[HistoricalSeries]:
        return self.series.get(symbol.upper())
