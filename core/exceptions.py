"""Typed exceptions for crediário operations.

Each error carries a machine-readable ``code`` so the API layer can turn it
into a typed failure response without string matching.
"""


class CrediarioError(Exception):
    """Base class for expected failures in the installment core."""

    code = "CREDIARIO_ERROR"


class NotFoundError(CrediarioError):
    """Referenced order, installment, payment or commission batch does not exist."""

    code = "NOT_FOUND"


class InvalidAmountError(CrediarioError):
    """A discount, down payment, installment or payment amount failed its range check."""

    code = "INVALID_AMOUNT"


class InstallmentLimitExceededError(CrediarioError):
    """Requested installment count exceeds the cap imposed by the order's products."""

    code = "INSTALLMENT_LIMIT_EXCEEDED"

    def __init__(self, requested: int, limit: int):
        self.requested = requested
        self.limit = limit
        super().__init__(
            f"Requested {requested} installments but this order allows at most {limit}."
        )


class InvalidStatusTransitionError(CrediarioError):
    """Order status change is not allowed from the current status."""

    code = "INVALID_STATUS_TRANSITION"


class TransactionFailedError(CrediarioError):
    """
    An atomic multi-step mutation did not complete.

    No partial effect was applied. Callers may retry from scratch.
    The underlying storage error, if any, is kept on ``cause``.
    """

    code = "TRANSACTION_FAILED"

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)
