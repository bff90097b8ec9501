class IceFishingError(Exception):
    """Base class for errors surfaced to callers."""

    code = "error"
    retryable = False


class ValidationError(IceFishingError):
    """Bad stake, category, round or amount."""

    code = "validation_error"


class InsufficientFunds(IceFishingError):
    code = "insufficient_funds"

    def __init__(self, account: str, balance: int, requested: int):
        super().__init__(
            f"balance {balance} of {account} does not cover {requested}"
        )
        self.account = account
        self.balance = balance
        self.requested = requested


class NotFound(IceFishingError):
    code = "not_found"


class ExternalServiceUnavailable(IceFishingError):
    """The transfer-query service timed out or answered with an error."""

    code = "external_service_unavailable"
    retryable = True


class StoreUnavailable(IceFishingError):
    code = "store_unavailable"
    retryable = True


class NotConfigured(IceFishingError):
    """A feature this instance was started without, such as deposits."""

    code = "not_configured"
