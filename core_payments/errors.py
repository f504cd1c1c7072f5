"""
Error Taxonomy Module

Exceptions raised by the transfer engine, ledger, receipt generator and
their collaborators. The API layer maps each family to an HTTP status.
"""


class PaymentError(Exception):
    """Base exception for payment processing errors."""

    pass


class ValidationError(PaymentError, ValueError):
    """Raised when input is malformed or violates a business rule."""

    pass


class NotFoundError(PaymentError):
    """Raised when a referenced entity does not exist."""

    pass


class AccountNotFoundError(NotFoundError):
    """Raised when an account id or account number does not resolve."""

    pass


class TransactionNotFoundError(NotFoundError):
    """Raised when a transaction id is not in the ledger."""

    pass


class AccessDeniedError(PaymentError):
    """Raised when a transaction or account does not belong to the caller."""

    pass


class InsufficientFundsError(PaymentError):
    """Raised when the sender balance cannot cover the transfer amount."""

    def __init__(self, account_id: str, available: int, requested: int):
        self.account_id = account_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient funds in account {account_id}: "
            f"available {available}, requested {requested} (minor units)"
        )


class ConflictError(PaymentError):
    """Raised when a concurrent write prevents an operation from completing."""

    pass


class DuplicateTransactionIdError(ConflictError):
    """Raised when a ledger entry reuses an existing transaction id."""

    pass


class VersionConflictError(ConflictError):
    """Raised when an account was modified since it was read."""

    pass


class LockTimeoutError(ConflictError):
    """Raised when account locks cannot be acquired within the timeout."""

    pass


class RenderError(PaymentError):
    """Raised when a receipt document cannot be produced or stored."""

    pass


class DispatchFailure(PaymentError):
    """Raised by notification providers; logged by the dispatcher, never surfaced."""

    pass
