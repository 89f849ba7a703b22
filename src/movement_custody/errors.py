"""Exception hierarchy for custody-signed Movement transactions.

Every failure surfaced by this package is a ``CustodyError``. Callers that
only add context use ``with_context`` and re-raise, so the concrete error
kind survives all the way up to the caller.
"""

from typing import Optional


class CustodyError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def with_context(self, context: str) -> "CustodyError":
        """Prefix the message with ``context`` and return the same error."""
        self.message = f"{context}: {self.message}"
        self.args = (self.message,)
        return self

    def __str__(self) -> str:
        return self.message


# ======================
# Pool
# ======================


class PoolError(CustodyError):
    """Base class for client pool errors."""


class PoolCapacityError(PoolError):
    """Pool is at maximum size and holds no idle client to evict."""


class AccountBusyError(PoolError):
    """The account's client stayed in use for longer than the acquire timeout."""

    def __init__(self, account_id: str, timeout: Optional[float]):
        self.account_id = account_id
        self.timeout = timeout
        super().__init__(
            f"Account {account_id} is busy: not released within {timeout}s"
        )


class PoolClosedError(PoolError):
    """The pool has been shut down."""


class AccountInitializationError(PoolError):
    """Building an account client failed (identity lookup or validation)."""

    def __init__(self, account_id: str, cause: str):
        self.account_id = account_id
        self.cause = cause
        super().__init__(f"Failed to initialize client for account {account_id}: {cause}")


# ======================
# Account
# ======================


class AddressNotInitializedError(CustodyError):
    """An account client is missing its cached address or public key."""


# ======================
# Transactions
# ======================


class TransactionError(CustodyError):
    """Base class for transaction pipeline errors."""


class SigningFailedError(TransactionError):
    """The custody platform ended a signing request in a failure state."""

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Signing request {request_id} ended with status {status}")


class SigningTimeoutError(TransactionError):
    """No terminal signing status was reached before the deadline."""

    def __init__(self, request_id: str, timeout: float):
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(
            f"Signing request {request_id} did not reach a terminal status within {timeout}s"
        )


class InvalidSignatureError(TransactionError):
    """The custody signature is missing, malformed or does not verify."""


class SubmissionError(TransactionError):
    """The ledger rejected a signed transaction."""


class CommitError(TransactionError):
    """The ledger did not report the transaction as committed."""


class RemoteCallError(CustodyError):
    """Transport, HTTP status or response parsing failure of a remote service."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service} call failed: {message}")
