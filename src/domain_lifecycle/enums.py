"""
Enumeration types for the domain lifecycle system.

These enums provide type-safe constants for lifecycle states, provider error
codes, DNS record types and configuration options throughout the system.
"""

from enum import Enum


class DomainStatus(Enum):
    """Lifecycle status of a custom domain, listed in forward order."""

    PENDING = "pending"
    PENDING_NAMESERVERS = "pending_nameservers"
    VERIFYING = "verifying"
    SSL_PENDING = "ssl_pending"
    ACTIVE = "active"
    ERROR = "error"


class SSLStatus(Enum):
    """Certificate status for a custom domain."""

    PENDING = "pending"
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    ERROR = "error"


class OrderStatus(Enum):
    """Status of a domain purchase order."""

    PENDING_PAYMENT = "pending_payment"
    REGISTERING = "registering"
    CONFIGURING_DNS = "configuring_dns"
    UPDATING_NAMESERVERS = "updating_nameservers"
    COMPLETED = "completed"
    FAILED = "failed"


class PortalDomainStatus(Enum):
    """Status of a white-label portal domain."""

    PENDING = "pending"
    VERIFYING = "verifying"
    ACTIVE = "active"
    ERROR = "error"


class DomainSource(Enum):
    """How the domain came under management."""

    EXTERNAL = "external"  # Registered elsewhere by the user
    PURCHASED = "purchased"  # Bought through our registrar account


class RecordType(Enum):
    """DNS record types handled by the engine."""

    A = "A"
    CNAME = "CNAME"
    TXT = "TXT"


class LookupStatus(Enum):
    """Outcome of a single live DNS lookup."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


class VerificationFlow(Enum):
    """Which verification rule applies to a domain."""

    ROOT = "root"  # A OR CNAME
    PORTAL = "portal"  # CNAME AND TXT


class ProviderErrorCode(Enum):
    """Error codes for registrar, DNS provider and edge router calls."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    CLIENT_ERROR = "client_error"
    PARSE_ERROR = "parse_error"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    NOT_CONFIGURED = "not_configured"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
