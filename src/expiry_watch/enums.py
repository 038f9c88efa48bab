"""
Enumeration types for the expiry watch system.

The public status enums mirror the values stored by the persistence layer;
Health is the internal three-tier classification (plus error).
"""

from enum import Enum


class Health(Enum):
    """Internal classification of a probe outcome."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    ERROR = "error"


class CertStatus(Enum):
    """Stored status of a domain's TLS certificate."""

    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    ERROR = "error"
    UNKNOWN = "unknown"


class RegistrationStatus(Enum):
    """Stored status of a domain's registration."""

    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    ERROR = "error"
    UNKNOWN = "unknown"


class AlertKind(Enum):
    """Kinds of alert recorded in the dedup ledger."""

    SSL_EXPIRY = "ssl_expiry"
    DOMAIN_EXPIRY = "domain_expiry"
    SSL_ERROR = "ssl_error"
    DOMAIN_ERROR = "domain_error"


class Facet(Enum):
    """The two independently monitored expiry clocks of a domain."""

    CERTIFICATE = "certificate"
    REGISTRATION = "registration"

    @property
    def expiry_kind(self) -> AlertKind:
        if self is Facet.CERTIFICATE:
            return AlertKind.SSL_EXPIRY
        return AlertKind.DOMAIN_EXPIRY

    @property
    def label(self) -> str:
        """Short label used in run log lines."""
        return "SSL" if self is Facet.CERTIFICATE else "Domain"


class ProbeErrorCode(Enum):
    """Error codes for probe failures."""

    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    TLS_ERROR = "tls_error"
    INVALID_CERTIFICATE = "invalid_certificate"
    NO_DATA = "no_data"
    PARSE_ERROR = "parse_error"


class LedgerWriteStatus(Enum):
    """Outcome of recording an alert in the dedup ledger."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class PlanId(Enum):
    """Subscription plans that drive the per-account domain quota."""

    FREE = "free"
    PRO = "pro"
    AGENCY = "agency"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
