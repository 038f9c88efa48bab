"""
Exception classes for the expiry watch system.

All exceptions inherit from ExpiryWatchError and carry a machine-readable
code, a human-readable message and optional structured details.
"""

from typing import Optional


class ExpiryWatchError(Exception):
    """Base exception for all expiry watch errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ExpiryWatchError):
    """Raised when a domain name is not well-formed."""

    pass


class QuotaExceededError(ExpiryWatchError):
    """Raised when an account has reached its monitored-domain limit."""

    def __init__(self, current: int, limit: int) -> None:
        super().__init__(
            code="LIMIT_REACHED",
            message=f"Domain limit reached ({current}/{limit})",
            details={"current": current, "limit": limit},
        )
        self.current = current
        self.limit = limit


class DuplicateDomainError(ExpiryWatchError):
    """Raised when an account already monitors the given domain name."""

    pass


class NotFoundError(ExpiryWatchError):
    """Raised when a referenced record does not exist."""

    pass


class ForbiddenError(ExpiryWatchError):
    """Raised when an account touches a domain it does not own."""

    pass


class NetworkError(ExpiryWatchError):
    """Raised when network operations fail."""

    pass


class PersistenceError(ExpiryWatchError):
    """Raised when persistence operations fail (file I/O, HMAC validation)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation fails, indicating data tampering."""

    pass


class NotificationError(ExpiryWatchError):
    """Raised when notification delivery fails."""

    pass
