class DomainError(Exception):
    """Base exception for domain errors."""

    code = "DOMAIN_ERROR"


class InvalidRequestError(DomainError):
    """Raised when a request is malformed."""

    code = "INVALID_REQUEST"


class InvalidAmountError(InvalidRequestError):
    """Raised when transfer amount is invalid."""

    code = "INVALID_AMOUNT"

    def __init__(self, amount: int, reason: str) -> None:
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class SameAccountError(InvalidRequestError):
    """Raised when payer and payee are the same account."""

    code = "SAME_ACCOUNT"

    def __init__(self, account_id: str) -> None:
        self.account_id = account_id
        super().__init__(f"Payer and payee must be different accounts: {account_id}")


class IdempotencyKeyConflictError(InvalidRequestError):
    """Raised when an idempotency key is reused for a different transfer."""

    code = "IDEMPOTENCY_KEY_CONFLICT"

    def __init__(self) -> None:
        super().__init__("Idempotency-Key was already used for a different transfer")


class InsufficientFundsError(DomainError):
    """Raised when account has insufficient funds for a transfer."""

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, account_id: str, required: int, available: int | None = None) -> None:
        self.account_id = account_id
        self.required = required
        self.available = available
        super().__init__("Insufficient balance")


class AccountNotFoundError(DomainError):
    """Raised when an account cannot be found."""

    code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str, role: str = "Account") -> None:
        self.account_id = account_id
        self.role = role
        super().__init__(f"{role} not found")


class UnauthenticatedError(DomainError):
    code = "UNAUTHENTICATED"


class ForbiddenError(DomainError):
    code = "FORBIDDEN"


class BusinessAccountError(ForbiddenError):
    """Raised when a business account tries to send money."""

    code = "BUSINESS_ACCOUNT"

    def __init__(self, account_id: str) -> None:
        self.account_id = account_id
        super().__init__("Business accounts cannot send money")


class TransferNotAuthorizedError(DomainError):
    """Raised when the authorization service denies a transfer."""

    code = "NOT_AUTHORIZED"

    def __init__(self) -> None:
        super().__init__("Transfer not authorized")


class AuthorizationUnavailableError(DomainError):
    """Raised when the authorization service cannot be reached."""

    code = "SERVICE_UNAVAILABLE"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__("Authorization service unavailable")


class RateLimitedError(DomainError):
    code = "RATE_LIMITED"

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__("Too many requests")


class TransferFailedError(DomainError):
    """Raised when the transfer transaction fails for an unexpected reason."""

    code = "INTERNAL"

    def __init__(self) -> None:
        super().__init__("Internal server error")
