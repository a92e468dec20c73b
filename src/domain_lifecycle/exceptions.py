"""
Exception classes for the domain lifecycle system.

All exceptions inherit from DomainLifecycleError and provide structured
error information with codes, messages, optional details and a stable
``kind`` string that the RPC boundary hands back to callers.
"""

from typing import Optional


class DomainLifecycleError(Exception):
    """Base exception for all domain lifecycle errors."""

    kind = "internal"

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
            "kind": self.kind,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainLifecycleError):
    """Raised for malformed domains, ids, emails or missing fields."""

    kind = "invalid-argument"


class AuthenticationError(DomainLifecycleError):
    """Raised when an RPC is invoked without a caller identity."""

    kind = "unauthenticated"


class OwnershipError(DomainLifecycleError):
    """Raised when the caller does not own the domain, project, tenant or order."""

    kind = "permission-denied"


class ConflictError(DomainLifecycleError):
    """Raised when a domain is already claimed by another owner."""

    kind = "already-exists"


class LeaseUnavailableError(ConflictError):
    """Raised when another workflow currently holds the per-domain lease."""

    kind = "aborted"


class NotFoundError(DomainLifecycleError):
    """Raised when a domain, zone or order does not exist."""

    kind = "not-found"


class PreconditionError(DomainLifecycleError):
    """Raised when an operation is valid but the record is not in a usable state."""

    kind = "failed-precondition"


class StateTransitionError(ValidationError):
    """Raised when a status change would move a domain backwards."""

    pass


class ExternalProviderError(DomainLifecycleError):
    """
    Wraps any registrar, DNS provider or edge router failure.

    ``provider`` names the external system and ``retryable`` tells the
    retry manager whether another attempt may succeed.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
        provider: str = "unknown",
        retryable: bool = False,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(code, message, details)
        self.provider = provider
        self.retryable = retryable
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["provider"] = self.provider
        data["retryable"] = self.retryable
        return data


class PersistenceError(DomainLifecycleError):
    """Raised when registry persistence fails (file I/O, HMAC validation)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation fails, indicating data tampering."""

    pass


class ConfigurationError(DomainLifecycleError):
    """Raised at startup when required configuration is absent or invalid."""

    kind = "failed-precondition"


def rpc_error(error: Exception) -> dict:
    """
    Map any exception to the payload returned by the RPC boundary.

    Known errors keep their kind. Anything else is reported as ``internal``
    so stack details never reach the caller.
    """
    if isinstance(error, DomainLifecycleError):
        return {
            "kind": error.kind,
            "code": error.code,
            "message": error.message,
            "details": error.details,
        }
    return {
        "kind": "internal",
        "code": "internal",
        "message": "Internal error",
        "details": {},
    }
