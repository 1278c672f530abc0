"""
Domain exceptions for the application.

Services raise these instead of fastapi.HTTPException to avoid coupling
the service layer to the web framework. A global exception handler in
main.py translates AppError subclasses into HTTP responses.

The engine errors (TransientFeedError, VenueDispatchError, PersistenceError,
InvariantViolation) are raised by the trading engine and handled by the
decision cycle; they only reach the API when an operator action triggers
a cycle step directly.
"""

from typing import Optional


class AppError(Exception):
    """Base application error with an HTTP-equivalent status code."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationError(AppError):
    """Input validation failure (400)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class ConflictError(AppError):
    """Request conflicts with current trade state (409)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class ExchangeUnavailableError(AppError):
    """Venue or upstream provider unavailable (503)."""

    def __init__(self, message: str = "Exchange service unavailable"):
        super().__init__(message, status_code=503)


class TransientFeedError(AppError):
    """Indicator fetch failed, timed out, or returned stale data.

    Never a trading signal: the cycle is skipped and retried next interval.
    """

    def __init__(self, message: str = "Indicator feed unavailable"):
        super().__init__(message, status_code=503)


class VenueDispatchError(ExchangeUnavailableError):
    """A trade command was not acknowledged by the venue."""

    def __init__(self, message: str, correlation_id: Optional[str] = None, attempts: int = 0):
        self.correlation_id = correlation_id
        self.attempts = attempts
        super().__init__(message)


class PersistenceError(AppError):
    """A ledger write failed; the cycle must abort without declaring success."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class InvariantViolation(AppError):
    """Fatal-class ledger inconsistency (e.g. two open trades for one account)."""

    def __init__(self, message: str, account_id: Optional[int] = None):
        self.account_id = account_id
        super().__init__(message, status_code=500)
