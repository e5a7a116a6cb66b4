class LedgerError(RuntimeError):
    """
    Base class for every failure the ledger reports to its callers.
    `kind` is the stable, machine-readable name; `message` is for humans.
    """
    status_code = 400
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class InvalidQuantityOrPrice(LedgerError):
    status_code = 400


class InsufficientHoldings(LedgerError):
    status_code = 400


class NoSuchPosition(LedgerError):
    status_code = 404


class InsufficientFunds(LedgerError):
    status_code = 400


class ConcurrentModification(LedgerError):
    status_code = 409
    retryable = True


class DataUnavailable(LedgerError):
    status_code = 503
