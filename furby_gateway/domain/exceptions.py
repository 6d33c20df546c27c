"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input is malformed or out of range"""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class InsufficientFunds(DomainException):
    """Debit exceeds the available balance"""

    def __init__(self, balance_cents: int, requested_cents: int):
        super().__init__(f"Insufficient funds: balance {balance_cents}, requested {requested_cents}")
        self.balance_cents = balance_cents
        self.requested_cents = requested_cents


class NotFound(DomainException):
    """Referenced user, investment or transaction does not exist"""

    pass


class InvalidStateTransition(DomainException):
    """Lifecycle transition not allowed from the current status"""

    pass


class ExternalProviderError(DomainException):
    """Payment provider returned an error or is unavailable"""

    pass


class RateLimitExceeded(DomainException):
    """Too many requests for the same action within the window"""

    def __init__(self, key: str, retry_after: int):
        super().__init__(f"Rate limit exceeded for {key}")
        self.key = key
        self.retry_after = retry_after


class InternalError(DomainException):
    """Unexpected failure"""

    pass
