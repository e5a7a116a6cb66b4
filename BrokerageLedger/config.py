import os


basedir = os.path.abspath(os.path.dirname(__file__))


class BaseConfig:
    # Use a secure, random key in production
    JWT_SECRET_KEY = os.environ.get(
        "JWT_SECRET_KEY",
        "kR7vQ2xLp9ZsT4wNc8YhB1mF6dJ3gU0e"
    )
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{os.path.join(basedir, 'ledger.db')}"
    )

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_HEADERS = "Content-Type"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Market-Feed service (latest candle per symbol) and its history endpoint
    MARKET_FEED_URL = os.environ.get(
        "MARKET_FEED_URL",
        "http://localhost:8000/candles"
    )
    HISTORY_FEED_URL = os.environ.get(
        "HISTORY_FEED_URL",
        "http://localhost:8000/candles/history"
    )
    FEED_TIMEOUT_SECONDS = float(os.environ.get("FEED_TIMEOUT_SECONDS", "5"))
    HISTORY_LOOKBACK = int(os.environ.get("HISTORY_LOOKBACK", "100"))

    # Seconds a writer waits for a position/capital row before giving up
    LOCK_TIMEOUT_SECONDS = float(os.environ.get("LOCK_TIMEOUT_SECONDS", "10"))

    COMMISSION_RATE = 0.001
    SLIPPAGE_RATE = 0.0005
    PERIODS_PER_YEAR = 252
    DEFAULT_CORRELATION = 0.3
    OPTIMIZATION_CACHE_TTL = 3600

    DEFAULT_RISK_TOLERANCE = "low"
    LOW_RISK_SYMBOLS = ("SBER", "GAZP")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class ProductionConfig(BaseConfig):
    DEBUG = False
    # Override DATABASE_URL / JWT_SECRET_KEY / feed URLs via env vars


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOCK_TIMEOUT_SECONDS = 5
    OPTIMIZATION_CACHE_TTL = 60
