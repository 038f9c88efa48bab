"""
Data models for the expiry watch system.

This module defines the persisted records (monitored domains, check history,
alert ledger rows, notification preferences, accounts) and the in-flight
structures produced by probes and batch runs.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from .classifier import to_cert_status, to_registration_status
from .enums import (
    AlertKind,
    CertStatus,
    Health,
    PlanId,
    ProbeErrorCode,
    RegistrationStatus,
)


@dataclass
class ProbeError:
    """Error information attached to a failed probe."""

    code: ProbeErrorCode
    message: str


@dataclass
class CertProbeResult:
    """Outcome of a TLS certificate probe."""

    health: Health
    expiry: Optional[datetime] = None
    days_remaining: Optional[int] = None
    issuer: Optional[str] = None
    error: Optional[ProbeError] = None

    @property
    def status(self) -> CertStatus:
        return to_cert_status(self.health)

    def to_dict(self) -> dict:
        return {
            "expiry_date": self.expiry.isoformat() if self.expiry else None,
            "days_remaining": self.days_remaining,
            "status": self.health.value,
            "issuer": self.issuer,
            "error": self.error.message if self.error else None,
        }


@dataclass
class RegistrationProbeResult:
    """Outcome of a WHOIS registration probe."""

    health: Health
    expiry: Optional[datetime] = None
    days_remaining: Optional[int] = None
    registrar: Optional[str] = None
    error: Optional[ProbeError] = None

    @property
    def status(self) -> RegistrationStatus:
        return to_registration_status(self.health)

    def to_dict(self) -> dict:
        return {
            "expiry_date": self.expiry.isoformat() if self.expiry else None,
            "days_remaining": self.days_remaining,
            "status": self.health.value,
            "registrar": self.registrar,
            "error": self.error.message if self.error else None,
        }


@dataclass
class DomainProbe:
    """Both probe results for one domain, collected in a single check cycle."""

    domain_name: str
    cert: CertProbeResult
    registration: RegistrationProbeResult
    checked_at: datetime


@dataclass
class MonitoredDomain:
    """A domain name under watch, owned by one account."""

    id: str
    account_id: str
    domain_name: str
    created_at: datetime
    cert_expiry: Optional[datetime] = None
    cert_status: CertStatus = CertStatus.UNKNOWN
    cert_issuer: Optional[str] = None
    registration_expiry: Optional[datetime] = None
    registration_status: RegistrationStatus = RegistrationStatus.UNKNOWN
    registrar: Optional[str] = None
    last_checked: Optional[datetime] = None
    public_token: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "domain_name": self.domain_name,
            "created_at": self.created_at.isoformat(),
            "ssl_expiry_date": _iso(self.cert_expiry),
            "ssl_status": self.cert_status.value,
            "ssl_issuer": self.cert_issuer,
            "domain_expiry_date": _iso(self.registration_expiry),
            "domain_status": self.registration_status.value,
            "domain_registrar": self.registrar,
            "last_checked": _iso(self.last_checked),
            "public_token": self.public_token,
        }


@dataclass(frozen=True)
class CheckHistoryRecord:
    """Immutable snapshot of one probe outcome for one domain."""

    id: str
    domain_id: str
    cert_status: CertStatus
    registration_status: RegistrationStatus
    cert_expiry: Optional[datetime]
    registration_expiry: Optional[datetime]
    checked_at: datetime


@dataclass(frozen=True)
class AlertRecord:
    """Proof that a notification was sent for a domain, kind, tier and day."""

    id: str
    domain_id: str
    account_id: str
    kind: AlertKind
    threshold_days: int
    sent_date: date
    sent_at: datetime

    @property
    def dedup_key(self) -> tuple[str, str, int, str]:
        return (
            self.domain_id,
            self.kind.value,
            self.threshold_days,
            self.sent_date.isoformat(),
        )


@dataclass
class NotificationPreference:
    """Per-account webhook configuration (read-only for the core)."""

    account_id: str
    webhook_url: Optional[str] = None
    webhook_enabled: bool = False

    @property
    def webhook_target(self) -> Optional[str]:
        """The webhook URL if the account enabled it and supplied one."""
        if self.webhook_enabled and self.webhook_url:
            return self.webhook_url
        return None


@dataclass
class AlertMessage:
    """What a notification says, independent of the channel that carries it."""

    domain_name: str
    kind: AlertKind
    days_remaining: int
    expiry_date: datetime
    dashboard_url: str
    language: str = "en"

    @property
    def is_certificate(self) -> bool:
        return self.kind in (AlertKind.SSL_EXPIRY, AlertKind.SSL_ERROR)


@dataclass
class Account:
    """Identity data for the owner of monitored domains."""

    id: str
    email: Optional[str] = None
    plan: PlanId = PlanId.FREE


@dataclass
class CheckOutcome:
    """Fresh state returned by an on-demand check."""

    domain: MonitoredDomain
    probe: DomainProbe
    history: CheckHistoryRecord

    def to_dict(self) -> dict:
        data = self.domain.to_dict()
        data["ssl"] = self.probe.cert.to_dict()
        data["domain_whois"] = self.probe.registration.to_dict()
        return data


@dataclass
class BatchRunResult:
    """Summary of one batch run."""

    success: bool
    checked: int
    alerts_sent: int
    log: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "checked": self.checked,
            "alerts_sent": self.alerts_sent,
            "log": list(self.log),
        }
        if self.error is not None:
            data["error"] = self.error
        return data


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
