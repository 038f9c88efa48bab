"""
Expiry Watch - TLS certificate and domain registration expiry monitor.

This package probes monitored domains for their certificate and WHOIS
registration expiry, persists the results with history, and sends
deduplicated alerts over email and webhooks as deadlines approach.
"""

__version__ = "0.1.0"

from expiry_watch.exceptions import (
    ExpiryWatchError,
    ValidationError,
    QuotaExceededError,
    DuplicateDomainError,
    NotFoundError,
    ForbiddenError,
    NetworkError,
    PersistenceError,
    TamperingError,
    NotificationError,
)
from expiry_watch.enums import (
    AlertKind,
    CertStatus,
    Facet,
    Health,
    LedgerWriteStatus,
    LogLevel,
    PlanId,
    ProbeErrorCode,
    RegistrationStatus,
)
from expiry_watch.classifier import (
    ALERT_THRESHOLDS,
    classify,
    days_until,
    find_threshold,
    to_cert_status,
    to_registration_status,
)
from expiry_watch.config import (
    ApiConfig,
    AppConfig,
    BatchConfig,
    LoggingConfig,
    PersistenceConfig,
    PlanConfig,
    ProbeConfig,
    SmtpConfig,
    WebhookSettings,
)
from expiry_watch.models import (
    Account,
    AlertMessage,
    AlertRecord,
    BatchRunResult,
    CertProbeResult,
    CheckHistoryRecord,
    CheckOutcome,
    DomainProbe,
    MonitoredDomain,
    NotificationPreference,
    ProbeError,
    RegistrationProbeResult,
)
from expiry_watch.domain_validator import DomainValidator, clean_domain, validate_domain
from expiry_watch.audit_logger import AuditLogger
from expiry_watch.tls_client import TLSClient
from expiry_watch.whois_client import WHOISClient
from expiry_watch.prober import DomainProber
from expiry_watch.state_store import Repository, StateStore
from expiry_watch.ledger import AlertLedger, LedgerWrite
from expiry_watch.notifications import (
    ChannelResult,
    DispatchResult,
    EmailChannel,
    NotificationDispatcher,
    WebhookChannel,
)
from expiry_watch.orchestrator import AccountCache, BatchOrchestrator
from expiry_watch.checks import DomainChecker, PrecheckResult, QuotaStatus
from expiry_watch.service import ExpiryWatchService

__all__ = [
    "__version__",
    # Exceptions
    "ExpiryWatchError",
    "ValidationError",
    "QuotaExceededError",
    "DuplicateDomainError",
    "NotFoundError",
    "ForbiddenError",
    "NetworkError",
    "PersistenceError",
    "TamperingError",
    "NotificationError",
    # Enums
    "AlertKind",
    "CertStatus",
    "Facet",
    "Health",
    "LedgerWriteStatus",
    "LogLevel",
    "PlanId",
    "ProbeErrorCode",
    "RegistrationStatus",
    # Classification
    "ALERT_THRESHOLDS",
    "classify",
    "days_until",
    "find_threshold",
    "to_cert_status",
    "to_registration_status",
    # Config
    "ApiConfig",
    "AppConfig",
    "BatchConfig",
    "LoggingConfig",
    "PersistenceConfig",
    "PlanConfig",
    "ProbeConfig",
    "SmtpConfig",
    "WebhookSettings",
    # Models
    "Account",
    "AlertMessage",
    "AlertRecord",
    "BatchRunResult",
    "CertProbeResult",
    "CheckHistoryRecord",
    "CheckOutcome",
    "DomainProbe",
    "MonitoredDomain",
    "NotificationPreference",
    "ProbeError",
    "RegistrationProbeResult",
    # Components
    "DomainValidator",
    "clean_domain",
    "validate_domain",
    "AuditLogger",
    "TLSClient",
    "WHOISClient",
    "DomainProber",
    "Repository",
    "StateStore",
    "AlertLedger",
    "LedgerWrite",
    "ChannelResult",
    "DispatchResult",
    "EmailChannel",
    "NotificationDispatcher",
    "WebhookChannel",
    "AccountCache",
    "BatchOrchestrator",
    "DomainChecker",
    "PrecheckResult",
    "QuotaStatus",
    "ExpiryWatchService",
]
