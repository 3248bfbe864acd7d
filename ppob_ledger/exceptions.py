"""
Ledger errors and their HTTP rendering.

Services raise these without knowing about HTTP. One handler turns any of
them into a JSON body with the class's status code and error_type.

Exception hierarchy:
    LedgerError (base)
    ├── NotFoundError
    │   ├── UserNotFoundError
    │   ├── ProductNotFoundError
    │   ├── TransactionNotFoundError
    │   └── LogNotFoundError
    ├── ProductInactiveError     — product exists but is switched off
    ├── InsufficientFundsError   — debit would drive the balance negative
    ├── InvalidArgumentError     — non-positive magnitude, unknown status, ...
    ├── ConflictError            — lock race not resolved within the retry budget
    ├── StorageUnavailableError  — database unreachable or failing
    ├── UnauthorizedAccessError  — caller lacks the role or ownership
    └── InvalidCredentialsError  — login rejected

NotFound, InsufficientFunds and InvalidArgument are terminal: the balance
mutator guarantees nothing was applied when they are raised. Conflict is
raised only after the internal retries are exhausted and is safe to retry.
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class LedgerError(Exception):
    """Base exception for all ledger domain errors."""

    status_code = 400
    error_type = "ledger_error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    def to_content(self) -> dict:
        return {"detail": self.detail, "error_type": self.error_type}


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class NotFoundError(LedgerError):
    """Raised when a requested entity does not exist."""

    status_code = 404
    error_type = "not_found"


class UserNotFoundError(NotFoundError):
    error_type = "user_not_found"

    def __init__(self, user_id: uuid.UUID):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class ProductNotFoundError(NotFoundError):
    error_type = "product_not_found"

    def __init__(self, product_id: uuid.UUID):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class TransactionNotFoundError(NotFoundError):
    error_type = "transaction_not_found"

    def __init__(self, transaction_id: uuid.UUID):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class LogNotFoundError(NotFoundError):
    error_type = "log_not_found"

    def __init__(self, log_id: uuid.UUID):
        self.log_id = log_id
        super().__init__(f"Balance log {log_id} not found")


# ---------------------------------------------------------------------------
# Business rule violations
# ---------------------------------------------------------------------------

class ProductInactiveError(LedgerError):
    """Raised when a transaction is requested against a disabled product."""

    error_type = "product_inactive"

    def __init__(self, product_id: uuid.UUID):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not active")


class InsufficientFundsError(LedgerError):
    """
    Raised when a debit would cause a negative balance.

    Attributes:
        user_id: The user that lacks sufficient balance.
        requested: The magnitude the caller tried to debit.
        available: The balance observed when the debit was rejected.
    """

    status_code = 422
    error_type = "insufficient_funds"

    def __init__(self, user_id: uuid.UUID, requested: int, available: int):
        self.user_id = user_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient balance: requested {requested}, available {available}"
        )

    def to_content(self) -> dict:
        content = super().to_content()
        content["requested"] = self.requested
        content["available"] = self.available
        return content


class InvalidArgumentError(LedgerError):
    """Raised for malformed input the schema layer could not catch."""

    error_type = "invalid_argument"


class ConflictError(LedgerError):
    """Raised when a balance write keeps losing lock races."""

    status_code = 409
    error_type = "conflict"
    retryable = True

    def __init__(self, user_id: uuid.UUID, attempts: int):
        self.user_id = user_id
        self.attempts = attempts
        super().__init__(
            f"Concurrent balance update for user {user_id} did not settle "
            f"after {attempts} attempts; retry the request"
        )

    def to_content(self) -> dict:
        content = super().to_content()
        content["retryable"] = self.retryable
        return content


class StorageUnavailableError(LedgerError):
    """Raised when the database fails for reasons other than lock contention."""

    status_code = 503
    error_type = "storage_unavailable"

    def __init__(self, detail: str = "Ledger storage is unavailable"):
        super().__init__(detail)


class UnauthorizedAccessError(LedgerError):
    """Raised when a user attempts to access a resource they don't own."""

    status_code = 403
    error_type = "unauthorized_access"

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


class InvalidCredentialsError(LedgerError):
    """Raised when login credentials are incorrect."""

    status_code = 401
    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the domain exception handler with the FastAPI application.

    Every LedgerError subclass maps to its own status code and a consistent
    JSON body: {"detail": "...", "error_type": "..."} plus any extra fields
    the subclass exposes (e.g. requested/available for insufficient funds).

    """

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_content())
